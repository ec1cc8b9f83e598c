"""Storage contracts for the registry.

Each entity has a read/write repository; ``RegistryStore`` groups them and
owns the one atomic write path, ``commit(ChangeSet)``. Versions on project,
holding and batch documents make that commit a compare-and-commit: the store
raises ``ConflictError`` when any of them moved since the snapshot.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Tuple

from models.entities.couchbase.credit_batches import CreditBatch
from models.entities.couchbase.holdings import Holding
from models.entities.couchbase.ledger_entries import LedgerEntry
from models.entities.couchbase.projects import ProjectInventory


@dataclass
class ProjectSnapshot:
    """State of one project as read at the start of a coordinated operation."""
    project: ProjectInventory
    holding: Optional[Holding] = None
    open_batches: List[CreditBatch] = field(default_factory=list)


@dataclass
class ChangeSet:
    """Everything one operation writes, applied together or not at all.

    ``project``/``holding``/``updated_batches`` carry the versions they were
    read at; the store checks those before writing and bumps them on write.
    ``holding`` with version 0 and no prior document is a create.
    """
    project: ProjectInventory
    ledger_entry: LedgerEntry
    holding: Optional[Holding] = None
    holding_is_new: bool = False
    new_batches: List[CreditBatch] = field(default_factory=list)
    updated_batches: List[CreditBatch] = field(default_factory=list)


class ProjectRepository(Protocol):
    async def get(self, project_id: str) -> Optional[ProjectInventory]: ...
    async def list(self) -> List[ProjectInventory]: ...
    async def create(self, project: ProjectInventory) -> ProjectInventory: ...
    async def update(self, project: ProjectInventory) -> ProjectInventory:
        """Version-guarded replace; raises ``ConflictError`` if stale."""
        ...


class CreditBatchRepository(Protocol):
    async def list_by_project(self, project_id: str, open_only: bool = False) -> List[CreditBatch]: ...
    async def serial_exists(self, serial_number: str) -> bool: ...


class LedgerRepository(Protocol):
    async def get(self, entry_id: str) -> Optional[LedgerEntry]: ...
    async def list(
        self, page: int, page_size: int, project_id: Optional[str] = None,
    ) -> Tuple[List[LedgerEntry], int]:
        """Most recent first, with the total count of matching entries."""
        ...
    async def list_by_project(self, project_id: str) -> List[LedgerEntry]:
        """Oldest first, for replay."""
        ...
    async def list_by_recipient(self, user_id: str) -> List[LedgerEntry]: ...


class HoldingRepository(Protocol):
    async def get(self, buyer_id: str, project_id: str) -> Optional[Holding]: ...
    async def list_by_buyer(self, buyer_id: str) -> List[Holding]: ...
    async def list_by_project(self, project_id: str) -> List[Holding]: ...


class RegistryStore(Protocol):
    projects: ProjectRepository
    batches: CreditBatchRepository
    ledger: LedgerRepository
    holdings: HoldingRepository

    async def open(self) -> None: ...
    async def close(self) -> None: ...
    async def commit(self, changes: ChangeSet) -> None:
        """Apply the whole change set or nothing; stamps the ledger entry with commit time."""
        ...
