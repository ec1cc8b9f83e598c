import asyncio
import hashlib

import pytest

from models.entities.lifecycle import LedgerEntryType
from models.errors import CapacityExceededError, ConflictError, InvalidQuantityError, ProjectNotActiveError
from models.operations.issuance import credits_issue, serial_format, serial_namespace, split_quantity
from models.operations.projects import project_register

from conftest import DEVELOPER_ID, register_active


class TestSplitQuantity:
    def test_even_split(self):
        assert split_quantity(10000, 5) == [2000] * 5

    def test_remainder_goes_to_first_batches(self):
        assert split_quantity(7, 5) == [2, 2, 1, 1, 1]

    def test_fewer_credits_than_batches(self):
        assert split_quantity(3, 5) == [1, 1, 1]

    @pytest.mark.parametrize("quantity", [1, 4, 5, 6, 99, 1001])
    def test_sizes_sum_and_differ_by_at_most_one(self, quantity):
        sizes = split_quantity(quantity, 5)
        assert sum(sizes) == quantity
        assert len(sizes) <= 5
        assert max(sizes) - min(sizes) <= 1


def test_serial_format():
    namespace = hashlib.sha256(b"proj-kasigau").hexdigest()[:8].upper()
    assert serial_format("proj-kasigau", 2024, 1) == f"BCX-{namespace}-2024-000001"
    assert serial_format("proj-kasigau", 2023, 42).endswith("-2023-000042")


def test_projects_with_a_common_prefix_get_distinct_serial_namespaces():
    assert serial_namespace("proj-kasigau") != serial_namespace("proj-katingan")


@pytest.mark.asyncio
async def test_issue_mints_batches_without_changing_supply(store, coordinator, active_project):
    result = await credits_issue(coordinator, active_project, 10000)

    assert result.quantity == 10000
    assert len(result.batch_serials) == 5
    project = await store.projects.get(active_project)
    assert project.data.issued_credits == 10000
    assert project.data.available_credits == 10000

    batches = await store.batches.list_by_project(active_project)
    assert [b.data.quantity for b in batches] == [2000] * 5
    assert all(b.data.owner_id == DEVELOPER_ID for b in batches)

    entry = await store.ledger.get(result.transaction_id)
    assert entry.data.type == LedgerEntryType.ISSUANCE
    assert entry.data.to_user_id == DEVELOPER_ID
    assert entry.data.quantity == 10000


@pytest.mark.asyncio
async def test_issue_beyond_capacity_is_rejected(store, coordinator, active_project):
    await credits_issue(coordinator, active_project, 6000)
    before = await store.projects.get(active_project)

    with pytest.raises(CapacityExceededError):
        await credits_issue(coordinator, active_project, 5000)

    after = await store.projects.get(active_project)
    assert after.data == before.data
    assert len(await store.batches.list_by_project(active_project)) == 5


@pytest.mark.asyncio
async def test_issue_requires_active_project(store, coordinator):
    view = await project_register(
        store, developer_id=DEVELOPER_ID, name="Pending", total_credits=100,
        price_per_credit=10.0, vintage=2024,
    )
    with pytest.raises(ProjectNotActiveError):
        await credits_issue(coordinator, view.project_id, 10)


@pytest.mark.asyncio
@pytest.mark.parametrize("quantity", [0, -1, 2.5, True, "10"])
async def test_issue_rejects_invalid_quantity(coordinator, active_project, quantity):
    with pytest.raises(InvalidQuantityError):
        await credits_issue(coordinator, active_project, quantity)


@pytest.mark.asyncio
async def test_concurrent_issuance_never_reuses_a_serial(store, coordinator, active_project):
    results = await asyncio.gather(*[credits_issue(coordinator, active_project, 100) for _ in range(10)])

    serials = [s for r in results for s in r.batch_serials]
    assert len(serials) == 50
    assert len(set(serials)) == 50

    project = await store.projects.get(active_project)
    batches = await store.batches.list_by_project(active_project)
    assert project.data.issued_credits == 1000
    assert sum(b.data.quantity for b in batches) == 1000


@pytest.mark.asyncio
async def test_issuance_is_unaffected_by_another_projects_serials(store, coordinator):
    await register_active(store, project_id="proj-kasigau")
    await register_active(store, project_id="proj-katingan")

    first = await credits_issue(coordinator, "proj-kasigau", 101, max_batches=101)
    second = await credits_issue(coordinator, "proj-katingan", 10)
    again = await credits_issue(coordinator, "proj-katingan", 10)

    assert len(first.batch_serials) == 101
    assert not set(first.batch_serials) & set(second.batch_serials + again.batch_serials)
    assert (await store.projects.get("proj-katingan")).data.issued_credits == 20


@pytest.mark.asyncio
async def test_exhausted_serial_search_is_retryable(store, coordinator, active_project, monkeypatch):
    async def always_taken(serial_number):
        return True

    monkeypatch.setattr(store.batches, "serial_exists", always_taken)
    before = await store.projects.get(active_project)

    with pytest.raises(ConflictError):
        await credits_issue(coordinator, active_project, 10)

    assert (await store.projects.get(active_project)).data == before.data
