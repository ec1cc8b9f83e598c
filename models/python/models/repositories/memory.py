"""Process-local registry store.

Used by the test suite and by single-node development deployments. Documents
are copied on the way in and out so callers never alias stored state, and
``commit`` validates and applies a whole change set under one lock.
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from models.entities.couchbase.credit_batches import CreditBatch
from models.entities.couchbase.holdings import Holding, holding_key
from models.entities.couchbase.ledger_entries import LedgerEntry
from models.entities.couchbase.projects import ProjectInventory
from models.entities.lifecycle import BatchStatus
from models.errors import ConflictError
from models.repositories.base import ChangeSet


logger = logging.getLogger(__name__)


def _copy(item):
    return item.model_copy(deep=True)


class _MemoryState:
    def __init__(self):
        self.lock = threading.Lock()
        self.projects: Dict[str, ProjectInventory] = {}
        self.batches: Dict[str, CreditBatch] = {}  # by serial number
        self.ledger: List[LedgerEntry] = []
        self.ledger_ids: Dict[str, LedgerEntry] = {}
        self.holdings: Dict[str, Holding] = {}


class MemoryProjectRepository:
    def __init__(self, state: _MemoryState):
        self._state = state

    async def get(self, project_id: str) -> Optional[ProjectInventory]:
        with self._state.lock:
            project = self._state.projects.get(project_id)
            return _copy(project) if project else None

    async def list(self) -> List[ProjectInventory]:
        with self._state.lock:
            projects = [_copy(p) for p in self._state.projects.values()]
        return sorted(projects, key=lambda p: p.data.created_at or datetime.min.replace(tzinfo=timezone.utc), reverse=True)

    async def create(self, project: ProjectInventory) -> ProjectInventory:
        with self._state.lock:
            if project.id in self._state.projects:
                raise ConflictError(f"Project {project.id} already exists")
            now = datetime.now(timezone.utc)
            stored = _copy(project)
            stored.data.created_at = stored.data.created_at or now
            stored.data.updated_at = now
            self._state.projects[project.id] = stored
            return _copy(stored)

    async def update(self, project: ProjectInventory) -> ProjectInventory:
        with self._state.lock:
            current = self._state.projects.get(project.id)
            if current is None or current.data.version != project.data.version:
                raise ConflictError(f"Project {project.id} changed concurrently")
            stored = _copy(project)
            stored.data.version += 1
            stored.data.updated_at = datetime.now(timezone.utc)
            self._state.projects[project.id] = stored
            return _copy(stored)


class MemoryCreditBatchRepository:
    def __init__(self, state: _MemoryState):
        self._state = state

    async def list_by_project(self, project_id: str, open_only: bool = False) -> List[CreditBatch]:
        with self._state.lock:
            batches = [
                _copy(b) for b in self._state.batches.values()
                if b.data.project_id == project_id
                and not (open_only and b.data.status == BatchStatus.RETIRED)
            ]
        return sorted(batches, key=lambda b: b.data.sequence)

    async def serial_exists(self, serial_number: str) -> bool:
        with self._state.lock:
            return serial_number in self._state.batches


class MemoryLedgerRepository:
    def __init__(self, state: _MemoryState):
        self._state = state

    async def get(self, entry_id: str) -> Optional[LedgerEntry]:
        with self._state.lock:
            entry = self._state.ledger_ids.get(entry_id)
            return _copy(entry) if entry else None

    async def list(self, page: int, page_size: int, project_id: Optional[str] = None) -> Tuple[List[LedgerEntry], int]:
        with self._state.lock:
            entries = [e for e in self._state.ledger if project_id is None or e.data.project_id == project_id]
            # Appended in commit order, so reversal is most-recent-first even on equal timestamps.
            entries = list(reversed(entries))
            start = (page - 1) * page_size
            return [_copy(e) for e in entries[start:start + page_size]], len(entries)

    async def list_by_project(self, project_id: str) -> List[LedgerEntry]:
        with self._state.lock:
            return [_copy(e) for e in self._state.ledger if e.data.project_id == project_id]

    async def list_by_recipient(self, user_id: str) -> List[LedgerEntry]:
        with self._state.lock:
            return [_copy(e) for e in self._state.ledger if e.data.to_user_id == user_id]


class MemoryHoldingRepository:
    def __init__(self, state: _MemoryState):
        self._state = state

    async def get(self, buyer_id: str, project_id: str) -> Optional[Holding]:
        with self._state.lock:
            holding = self._state.holdings.get(holding_key(buyer_id, project_id))
            return _copy(holding) if holding else None

    async def list_by_buyer(self, buyer_id: str) -> List[Holding]:
        with self._state.lock:
            return [_copy(h) for h in self._state.holdings.values() if h.data.buyer_id == buyer_id]

    async def list_by_project(self, project_id: str) -> List[Holding]:
        with self._state.lock:
            return [_copy(h) for h in self._state.holdings.values() if h.data.project_id == project_id]


class MemoryRegistryStore:
    def __init__(self):
        self._state = _MemoryState()
        self.projects = MemoryProjectRepository(self._state)
        self.batches = MemoryCreditBatchRepository(self._state)
        self.ledger = MemoryLedgerRepository(self._state)
        self.holdings = MemoryHoldingRepository(self._state)
        self.is_open = False

    async def open(self) -> None:
        self.is_open = True
        logger.info("In-memory registry store opened")

    async def close(self) -> None:
        self.is_open = False
        logger.info("In-memory registry store closed")

    async def commit(self, changes: ChangeSet) -> None:
        state = self._state
        with state.lock:
            self._check_versions(changes)
            now = datetime.now(timezone.utc)

            project = _copy(changes.project)
            project.data.version += 1
            project.data.updated_at = now
            state.projects[project.id] = project

            if changes.holding is not None:
                holding = _copy(changes.holding)
                holding.data.version += 1
                holding.data.created_at = holding.data.created_at or now
                holding.data.updated_at = now
                state.holdings[holding.id] = holding

            for batch in changes.new_batches + changes.updated_batches:
                stored = _copy(batch)
                stored.data.version += 1
                stored.data.created_at = stored.data.created_at or now
                stored.data.updated_at = now
                state.batches[stored.id] = stored

            # Ledger order is commit order.
            changes.ledger_entry.data.timestamp = now
            entry = _copy(changes.ledger_entry)
            entry.data.created_at = now
            entry.data.updated_at = now
            state.ledger.append(entry)
            state.ledger_ids[entry.id] = entry

    def _check_versions(self, changes: ChangeSet) -> None:
        state = self._state
        current = state.projects.get(changes.project.id)
        if current is None or current.data.version != changes.project.data.version:
            raise ConflictError(f"Project {changes.project.id} changed concurrently")

        if changes.holding is not None:
            stored = state.holdings.get(changes.holding.id)
            if changes.holding_is_new:
                if stored is not None:
                    raise ConflictError(f"Holding {changes.holding.id} was created concurrently")
            elif stored is None or stored.data.version != changes.holding.data.version:
                raise ConflictError(f"Holding {changes.holding.id} changed concurrently")

        for batch in changes.new_batches:
            if batch.id in state.batches:
                raise ConflictError(f"Serial {batch.id} already issued")
        for batch in changes.updated_batches:
            stored = state.batches.get(batch.id)
            if stored is None or stored.data.version != batch.data.version:
                raise ConflictError(f"Batch {batch.id} changed concurrently")

        if changes.ledger_entry.id in state.ledger_ids:
            raise ConflictError(f"Ledger entry {changes.ledger_entry.id} already written")
