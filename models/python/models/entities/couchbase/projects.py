from datetime import datetime
from typing import Optional
from clients.couchbase import BaseDocument, BaseEntityData
from models.entities.lifecycle import ProjectSector, ProjectStatus


class ProjectInventoryData(BaseEntityData):
    developer_id: str
    name: str
    sector: ProjectSector = ProjectSector.RENEWABLE_ENERGY
    vintage: int
    status: ProjectStatus = ProjectStatus.PENDING
    total_credits: int
    available_credits: int = 0
    held_credits: int = 0
    retired_credits: int = 0
    issued_credits: int = 0
    price_per_credit: float
    serial_counter: int = 0
    batch_sequence: int = 0
    # Advisory metadata from the scoring collaborator; never gates the ledger.
    integrity_score: Optional[int] = None
    rejection_reason: Optional[str] = None
    approved_at: Optional[datetime] = None


class ProjectInventory(BaseDocument[ProjectInventoryData]):
    _collection_name = "projects"
