from datetime import datetime
from typing import Optional
from clients.couchbase import BaseDocument, BaseEntityData
from models.entities.lifecycle import BatchStatus


class CreditBatchData(BaseEntityData):
    project_id: str
    serial_number: str
    vintage: int
    quantity: int
    sequence: int
    status: BatchStatus = BatchStatus.ISSUED
    owner_id: Optional[str] = None
    issued_at: datetime
    traded_at: Optional[datetime] = None
    retired_at: Optional[datetime] = None
    retired_by_id: Optional[str] = None


class CreditBatch(BaseDocument[CreditBatchData]):
    # Keyed by serial number so the store itself rejects a reused serial.
    _collection_name = "credit_batches"
