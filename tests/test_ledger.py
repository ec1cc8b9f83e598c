from datetime import datetime, timezone

import pytest

from models.entities.lifecycle import LedgerEntryType
from models.errors import NotFoundError
from models.operations.coordinator import TransactionCoordinator
from models.operations.ledger import ledger_list
from models.operations.projects import project_set_price
from models.operations.registry import holding_get, portfolio_get
from models.operations.retirements import credits_retire
from models.operations.transfers import credits_purchase

from conftest import register_active


@pytest.mark.asyncio
async def test_ledger_pages_most_recent_first(store, coordinator, active_project):
    ids = []
    for i in range(25):
        result = await credits_purchase(coordinator, active_project, f"buyer-{i}", 10)
        ids.append(result.transaction_id)

    first = await ledger_list(store, page=1, page_size=10)
    assert first.total == 25
    assert [e.id for e in first.entries] == list(reversed(ids))[:10]

    last = await ledger_list(store, page=3, page_size=10)
    assert [e.id for e in last.entries] == list(reversed(ids))[20:]

    beyond = await ledger_list(store, page=4, page_size=10)
    assert beyond.entries == []
    assert beyond.total == 25


@pytest.mark.asyncio
async def test_ledger_page_size_is_clamped(store, coordinator, active_project):
    await credits_purchase(coordinator, active_project, "buyer-1", 1)
    page = await ledger_list(store, page=0, page_size=10_000)
    assert page.page == 1
    assert page.page_size == 200
    assert len(page.entries) == 1


@pytest.mark.asyncio
async def test_ledger_filters_by_project(store, coordinator, active_project):
    await register_active(store, project_id="proj-other")
    await credits_purchase(coordinator, active_project, "buyer-1", 1)
    await credits_purchase(coordinator, "proj-other", "buyer-1", 2)

    page = await ledger_list(store, project_id="proj-other")
    assert page.total == 1
    assert page.entries[0].project_id == "proj-other"
    assert page.entries[0].type == LedgerEntryType.PURCHASE
    assert page.entries[0].quantity == 2


@pytest.mark.asyncio
async def test_holding_get(store, coordinator, active_project):
    await credits_purchase(coordinator, active_project, "buyer-1", 30)
    view = await holding_get(store, "buyer-1", active_project)
    assert view.quantity == 30
    assert view.avg_price == 100.0
    assert view.purchased_at is not None

    with pytest.raises(NotFoundError):
        await holding_get(store, "buyer-2", active_project)


@pytest.mark.asyncio
async def test_portfolio_totals(store, coordinator, active_project):
    await register_active(store, project_id="proj-other", price=20.0)
    await credits_purchase(coordinator, active_project, "buyer-1", 30)
    await credits_purchase(coordinator, "proj-other", "buyer-1", 50)
    await credits_retire(coordinator, "proj-other", "buyer-1", 15)
    await credits_purchase(coordinator, active_project, "buyer-2", 5)

    portfolio = await portfolio_get(store, "buyer-1")
    assert portfolio.total_owned == 65
    assert portfolio.total_retired == 15
    assert portfolio.total_spent == 30 * 100.0 + 50 * 20.0
    assert {h.project_id for h in portfolio.holdings} == {active_project, "proj-other"}


@pytest.mark.asyncio
async def test_empty_portfolio(store):
    portfolio = await portfolio_get(store, "newcomer")
    assert portfolio.holdings == []
    assert portfolio.total_owned == portfolio.total_retired == 0
    assert portfolio.total_spent == 0


@pytest.mark.asyncio
async def test_total_value_keeps_sub_cent_prices(store, coordinator, active_project):
    await project_set_price(store, active_project, 0.3333)
    result = await credits_purchase(coordinator, active_project, "buyer-1", 7)

    assert result.total_value == 7 * 0.3333
    entry = await store.ledger.get(result.transaction_id)
    assert entry.data.total_value == 7 * 0.3333


@pytest.mark.asyncio
async def test_ledger_timestamps_follow_commit_order(store, active_project):
    planned_at = datetime(2020, 1, 1, tzinfo=timezone.utc)
    coordinator = TransactionCoordinator(store, clock=lambda: planned_at)

    results = [await credits_purchase(coordinator, active_project, f"buyer-{i}", 1) for i in range(3)]

    page = await ledger_list(store)
    assert [e.id for e in page.entries] == [r.transaction_id for r in reversed(results)]
    timestamps = [e.timestamp for e in page.entries]
    assert timestamps == sorted(timestamps, reverse=True)
    assert all(t > planned_at for t in timestamps)
    assert [r.timestamp for r in reversed(results)] == timestamps
