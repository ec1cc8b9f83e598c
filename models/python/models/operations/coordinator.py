import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, Optional

from models.errors import ConflictError, ConsistencyViolationError, NotFoundError
from models.operations.invariants import verify_changes
from models.repositories.base import ChangeSet, ProjectSnapshot, RegistryStore

logger = logging.getLogger(__name__)

Plan = Callable[[ProjectSnapshot], Awaitable[ChangeSet]]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TransactionCoordinator:
    """Runs registry mutations as atomic, per-project serialized operations.

    Each ``run`` holds the project's lock for the whole read-check-write
    sequence, so concurrent callers in this process never plan from the same
    snapshot. The store's version-guarded commit covers other processes: a
    ``ConflictError`` there re-reads and re-plans, with exponential backoff
    (10 ms, 20 ms, 40 ms, ...) up to ``max_retries`` times.
    """

    def __init__(
        self,
        store: RegistryStore,
        max_retries: int = 5,
        lock_timeout: float = 5.0,
        initial_backoff_ms: int = 10,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.max_retries = max_retries
        self.lock_timeout = lock_timeout
        self.initial_backoff_ms = initial_backoff_ms
        self.clock = clock
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    def now(self) -> datetime:
        return self.clock()

    def _lock_for(self, project_id: str) -> asyncio.Lock:
        """Project lock, counted until the matching ``_lock_forget``."""
        lock = self._locks.get(project_id)
        if lock is None:
            lock = self._locks[project_id] = asyncio.Lock()
        self._lock_users[project_id] = self._lock_users.get(project_id, 0) + 1
        return lock

    def _lock_forget(self, project_id: str) -> None:
        users = self._lock_users[project_id] - 1
        if users:
            self._lock_users[project_id] = users
        else:
            del self._lock_users[project_id]
            del self._locks[project_id]

    async def snapshot(self, project_id: str, buyer_id: Optional[str] = None) -> ProjectSnapshot:
        project = await self.store.projects.get(project_id)
        if project is None:
            raise NotFoundError(f"Project {project_id} not found")
        holding = await self.store.holdings.get(buyer_id, project_id) if buyer_id else None
        open_batches = await self.store.batches.list_by_project(project_id, open_only=True)
        return ProjectSnapshot(project=project, holding=holding, open_batches=open_batches)

    async def run(
        self,
        project_id: str,
        plan: Plan,
        transaction_id: str,
        buyer_id: Optional[str] = None,
    ) -> ChangeSet:
        """Plan and commit one operation; ``transaction_id`` is its ledger entry id."""
        lock = self._lock_for(project_id)
        try:
            try:
                await asyncio.wait_for(lock.acquire(), timeout=self.lock_timeout)
            except asyncio.TimeoutError:
                raise ConflictError(f"Project {project_id} is busy; retry the operation")
            try:
                return await self._run_locked(project_id, plan, transaction_id, buyer_id)
            finally:
                lock.release()
        finally:
            self._lock_forget(project_id)

    async def _run_locked(
        self,
        project_id: str,
        plan: Plan,
        transaction_id: str,
        buyer_id: Optional[str],
    ) -> ChangeSet:
        backoff_ms = self.initial_backoff_ms
        for attempt in range(self.max_retries + 1):
            snapshot = await self.snapshot(project_id, buyer_id)
            changes = await plan(snapshot)
            try:
                verify_changes(snapshot, changes)
            except ConsistencyViolationError as e:
                logger.critical(
                    f"Consistency violation on project {project_id}, transaction {transaction_id} aborted: "
                    + "; ".join(e.violations)
                )
                raise

            try:
                await self.store.commit(changes)
                return changes
            except ConflictError as e:
                # An ambiguous commit may have landed; the ledger id settles it.
                if await self.store.ledger.get(transaction_id) is not None:
                    logger.warning(f"Transaction {transaction_id} found committed after conflict: {e}")
                    return changes
                if attempt == self.max_retries:
                    logger.warning(f"Transaction {transaction_id} on project {project_id} gave up after {attempt + 1} attempts")
                    raise
                logger.warning(f"Commit conflict on project {project_id} (attempt {attempt + 1}): {e}")
                await asyncio.sleep(backoff_ms / 1000)
                backoff_ms *= 2

        raise ConflictError("Max retries exceeded")
