import asyncio

import pytest

from models.errors import (
    InsufficientHoldingsError,
    InsufficientSupplyError,
    NotFoundError,
    ProjectNotActiveError,
)
from models.operations.issuance import credits_issue
from models.operations.projects import project_register, project_set_price
from models.operations.retirements import credits_retire
from models.operations.transfers import credits_purchase, weighted_average_price

from conftest import DEVELOPER_ID


def test_weighted_average_price():
    assert weighted_average_price(4000, 100.0, 1000, 200.0) == pytest.approx(120.0)
    assert weighted_average_price(0, 0.0, 10, 55.0) == 55.0


@pytest.mark.asyncio
async def test_purchase_reprice_and_retire(store, coordinator, active_project):
    await credits_issue(coordinator, active_project, 10000)

    first = await credits_purchase(coordinator, active_project, "buyer-1", 4000)
    assert first.total_value == 400000.0
    assert first.price_per_credit == 100.0
    assert first.block_hash.startswith("0x") and len(first.block_hash) == 18

    await project_set_price(store, active_project, 200.0)
    await credits_purchase(coordinator, active_project, "buyer-1", 1000)

    holding = await store.holdings.get("buyer-1", active_project)
    assert holding.data.quantity == 5000
    assert holding.data.avg_price == pytest.approx(120.0)

    retired = await credits_retire(coordinator, active_project, "buyer-1", 2000, reason="FY2025 Scope 1 offset")
    assert retired.quantity == 2000

    holding = await store.holdings.get("buyer-1", active_project)
    assert holding.data.quantity == 3000
    assert holding.data.retired_quantity == 2000

    d = (await store.projects.get(active_project)).data
    assert d.available_credits == 5000
    assert d.held_credits == 3000
    assert d.retired_credits == 2000
    assert d.available_credits + d.held_credits + d.retired_credits == d.total_credits

    entry = await store.ledger.get(retired.transaction_id)
    assert entry.data.reason == "FY2025 Scope 1 offset"


@pytest.mark.asyncio
async def test_purchase_sets_seller_to_developer(store, coordinator, active_project):
    result = await credits_purchase(coordinator, active_project, "buyer-1", 10)
    entry = await store.ledger.get(result.transaction_id)
    assert entry.data.from_user_id == DEVELOPER_ID
    assert entry.data.to_user_id == "buyer-1"


@pytest.mark.asyncio
async def test_oversell_leaves_state_untouched(store, coordinator, active_project):
    before = await store.projects.get(active_project)

    with pytest.raises(InsufficientSupplyError):
        await credits_purchase(coordinator, active_project, "buyer-1", 10001)

    after = await store.projects.get(active_project)
    assert after.data == before.data
    assert await store.holdings.get("buyer-1", active_project) is None
    _, total = await store.ledger.list(1, 10)
    assert total == 0


@pytest.mark.asyncio
async def test_over_retire_leaves_state_untouched(store, coordinator, active_project):
    await credits_purchase(coordinator, active_project, "buyer-1", 100)
    project_before = await store.projects.get(active_project)
    holding_before = await store.holdings.get("buyer-1", active_project)

    with pytest.raises(InsufficientHoldingsError):
        await credits_retire(coordinator, active_project, "buyer-1", 101)

    assert (await store.projects.get(active_project)).data == project_before.data
    assert (await store.holdings.get("buyer-1", active_project)).data == holding_before.data


@pytest.mark.asyncio
async def test_retire_without_holding(coordinator, active_project):
    with pytest.raises(NotFoundError):
        await credits_retire(coordinator, active_project, "nobody", 1)


@pytest.mark.asyncio
async def test_purchase_unknown_project(coordinator):
    with pytest.raises(NotFoundError):
        await credits_purchase(coordinator, "missing", "buyer-1", 1)


@pytest.mark.asyncio
async def test_purchase_requires_active_project(store, coordinator):
    view = await project_register(
        store, developer_id=DEVELOPER_ID, name="Pending", total_credits=100,
        price_per_credit=10.0, vintage=2024,
    )
    with pytest.raises(ProjectNotActiveError):
        await credits_purchase(coordinator, view.project_id, "buyer-1", 1)


@pytest.mark.asyncio
@pytest.mark.parametrize("quantity, attempts", [(400, 30), (3000, 5), (1500, 8)])
async def test_concurrent_purchases_never_oversell(store, coordinator, active_project, quantity, attempts):
    results = await asyncio.gather(
        *[credits_purchase(coordinator, active_project, f"buyer-{i}", quantity) for i in range(attempts)],
        return_exceptions=True,
    )

    succeeded = [r for r in results if not isinstance(r, Exception)]
    failed = [r for r in results if isinstance(r, Exception)]
    assert len(succeeded) == 10000 // quantity
    assert all(isinstance(e, InsufficientSupplyError) for e in failed)

    d = (await store.projects.get(active_project)).data
    assert d.available_credits == 10000 % quantity
    assert d.held_credits == 10000 - 10000 % quantity
    holdings = await store.holdings.list_by_project(active_project)
    assert sum(h.data.quantity for h in holdings) == d.held_credits
