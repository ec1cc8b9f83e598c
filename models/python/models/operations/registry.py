"""Public registry operations.

Mutations go through a ``TransactionCoordinator``; reads take the store
directly and never block behind in-flight mutations.
"""

import logging
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from models.entities.couchbase.holdings import Holding
from models.entities.lifecycle import LedgerEntryStatus, LedgerEntryType
from models.errors import NotFoundError
from models.operations.issuance import IssuanceResult, credits_issue
from models.operations.ledger import LedgerEntryView, LedgerPage, ledger_list
from models.operations.projects import (
    InventoryView,
    batches_list,
    inventory_get,
    project_approve,
    project_list,
    project_register,
    project_reject,
    project_set_price,
)
from models.operations.retirements import credits_retire
from models.operations.transfers import TransactionResult, credits_purchase

logger = logging.getLogger(__name__)

__all__ = [
    "HoldingView",
    "InventoryView",
    "IssuanceResult",
    "LedgerEntryView",
    "LedgerPage",
    "Portfolio",
    "TransactionResult",
    "batches_list",
    "credits_issue",
    "credits_purchase",
    "credits_retire",
    "holding_get",
    "inventory_get",
    "ledger_list",
    "portfolio_get",
    "project_approve",
    "project_list",
    "project_register",
    "project_reject",
    "project_set_price",
]


class HoldingView(BaseModel):
    buyer_id: str
    project_id: str
    quantity: int
    avg_price: float
    retired_quantity: int
    purchased_at: Optional[datetime] = None


class Portfolio(BaseModel):
    buyer_id: str
    holdings: List[HoldingView]
    total_owned: int
    total_retired: int
    total_spent: float


def holding_view(holding: Holding) -> HoldingView:
    d = holding.data
    return HoldingView(
        buyer_id=d.buyer_id,
        project_id=d.project_id,
        quantity=d.quantity,
        avg_price=d.avg_price,
        retired_quantity=d.retired_quantity,
        purchased_at=d.purchased_at,
    )


async def holding_get(store, buyer_id: str, project_id: str) -> HoldingView:
    holding = await store.holdings.get(buyer_id, project_id)
    if not holding:
        raise NotFoundError(f"Buyer {buyer_id} holds no credits of project {project_id}")
    return holding_view(holding)


async def portfolio_get(store, buyer_id: str) -> Portfolio:
    holdings = sorted(await store.holdings.list_by_buyer(buyer_id), key=lambda h: h.data.project_id)
    received = await store.ledger.list_by_recipient(buyer_id)
    spent = sum(
        e.data.total_value or 0.0
        for e in received
        if e.data.type == LedgerEntryType.PURCHASE and e.data.status == LedgerEntryStatus.CONFIRMED
    )
    return Portfolio(
        buyer_id=buyer_id,
        holdings=[holding_view(h) for h in holdings],
        total_owned=sum(h.data.quantity for h in holdings),
        total_retired=sum(h.data.retired_quantity for h in holdings),
        total_spent=spent,
    )
