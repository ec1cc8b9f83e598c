import asyncio

import pytest

from models.entities.lifecycle import LedgerEntryType
from models.errors import ConflictError, ConsistencyViolationError, NotFoundError
from models.operations.coordinator import TransactionCoordinator
from models.operations.ledger import ledger_entry_new, transaction_id_new
from models.operations.transfers import credits_purchase
from models.repositories.base import ChangeSet
from models.repositories.memory import MemoryRegistryStore

from conftest import register_active


class FlakyStore(MemoryRegistryStore):
    """Fails the first ``failures`` commits as if another writer got there first."""

    def __init__(self, failures: int):
        super().__init__()
        self.failures = failures
        self.attempts = 0

    async def commit(self, changes):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise ConflictError("simulated contention")
        await super().commit(changes)


class AmbiguousStore(MemoryRegistryStore):
    """Applies the first commit, then reports it as failed."""

    def __init__(self):
        super().__init__()
        self.attempts = 0

    async def commit(self, changes):
        self.attempts += 1
        await super().commit(changes)
        if self.attempts == 1:
            raise ConflictError("commit outcome unknown")


@pytest.mark.asyncio
async def test_retries_after_transient_conflicts():
    store = FlakyStore(failures=2)
    await register_active(store)
    coordinator = TransactionCoordinator(store, max_retries=5, initial_backoff_ms=1)

    result = await credits_purchase(coordinator, "proj-kasigau", "buyer-1", 100)

    assert store.attempts == 3
    assert result.quantity == 100
    assert (await store.projects.get("proj-kasigau")).data.available_credits == 9900


@pytest.mark.asyncio
async def test_gives_up_after_max_retries():
    store = FlakyStore(failures=100)
    await register_active(store)
    coordinator = TransactionCoordinator(store, max_retries=2, initial_backoff_ms=1)

    with pytest.raises(ConflictError):
        await credits_purchase(coordinator, "proj-kasigau", "buyer-1", 100)

    assert store.attempts == 3
    assert (await store.projects.get("proj-kasigau")).data.available_credits == 10000
    assert await store.holdings.get("buyer-1", "proj-kasigau") is None


@pytest.mark.asyncio
async def test_ambiguous_commit_is_not_applied_twice():
    store = AmbiguousStore()
    await register_active(store)
    coordinator = TransactionCoordinator(store, initial_backoff_ms=1)

    result = await credits_purchase(coordinator, "proj-kasigau", "buyer-1", 100)

    assert store.attempts == 1
    entries, total = await store.ledger.list(1, 10)
    assert total == 1
    assert entries[0].id == result.transaction_id
    assert (await store.projects.get("proj-kasigau")).data.available_credits == 9900
    assert (await store.holdings.get("buyer-1", "proj-kasigau")).data.quantity == 100


@pytest.mark.asyncio
async def test_busy_project_times_out(store, active_project):
    coordinator = TransactionCoordinator(store, lock_timeout=0.05)
    lock = coordinator._lock_for(active_project)
    await lock.acquire()
    try:
        with pytest.raises(ConflictError):
            await credits_purchase(coordinator, active_project, "buyer-1", 1)
    finally:
        lock.release()
        coordinator._lock_forget(active_project)
    assert coordinator._locks == {}
    assert (await store.projects.get(active_project)).data.available_credits == 10000


@pytest.mark.asyncio
async def test_inconsistent_change_set_is_never_committed(store, coordinator, active_project):
    transaction_id = transaction_id_new()

    async def leaky_plan(snapshot):
        project = snapshot.project.model_copy(deep=True)
        # Supply leaves the project without landing in any holding.
        project.data.available_credits -= 5
        return ChangeSet(
            project=project,
            ledger_entry=ledger_entry_new(
                transaction_id, LedgerEntryType.PURCHASE, project.id,
                to_user_id="buyer-1", quantity=5, timestamp=coordinator.now(),
            ),
        )

    with pytest.raises(ConsistencyViolationError) as exc_info:
        await coordinator.run(active_project, leaky_plan, transaction_id)

    assert exc_info.value.violations
    assert await store.ledger.get(transaction_id) is None
    assert (await store.projects.get(active_project)).data.available_credits == 10000


@pytest.mark.asyncio
async def test_store_rejects_stale_project_version(store, active_project):
    stale = await store.projects.get(active_project)
    fresh = await store.projects.get(active_project)
    fresh.data.price_per_credit = 150.0
    await store.projects.update(fresh)

    stale.data.price_per_credit = 175.0
    with pytest.raises(ConflictError):
        await store.projects.update(stale)


@pytest.mark.asyncio
async def test_mutations_on_different_projects_run_concurrently(store, coordinator):
    await register_active(store, project_id="proj-a")
    await register_active(store, project_id="proj-b")

    await asyncio.gather(
        credits_purchase(coordinator, "proj-a", "buyer-1", 10),
        credits_purchase(coordinator, "proj-b", "buyer-1", 20),
    )

    assert (await store.projects.get("proj-a")).data.held_credits == 10
    assert (await store.projects.get("proj-b")).data.held_credits == 20


@pytest.mark.asyncio
async def test_lock_table_does_not_grow_with_unknown_projects(coordinator):
    for i in range(1000):
        with pytest.raises(NotFoundError):
            await credits_purchase(coordinator, f"missing-{i}", "buyer-1", 1)

    assert coordinator._locks == {}
    assert coordinator._lock_users == {}


@pytest.mark.asyncio
async def test_lock_is_dropped_once_the_last_waiter_finishes(store, coordinator, active_project):
    await asyncio.gather(*[credits_purchase(coordinator, active_project, f"buyer-{i}", 1) for i in range(20)])

    assert coordinator._locks == {}
    assert (await store.projects.get(active_project)).data.held_credits == 20
