import logging
from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from models.entities.couchbase.holdings import Holding, HoldingData, holding_key
from models.entities.lifecycle import LedgerEntryType, ProjectStatus
from models.errors import InsufficientSupplyError, ProjectNotActiveError, require_quantity
from models.operations.batches import batches_project_status
from models.operations.coordinator import TransactionCoordinator
from models.operations.ledger import ledger_entry_new, transaction_id_new
from models.repositories.base import ChangeSet, ProjectSnapshot

logger = logging.getLogger(__name__)


class TransactionResult(BaseModel):
    transaction_id: str
    project_id: str
    buyer_id: str
    quantity: int
    price_per_credit: Optional[float] = None
    total_value: Optional[float] = None
    block_hash: Optional[str] = None
    timestamp: datetime


def transaction_result(changes: ChangeSet, buyer_id: str) -> TransactionResult:
    entry = changes.ledger_entry
    return TransactionResult(
        transaction_id=entry.id,
        project_id=entry.data.project_id,
        buyer_id=buyer_id,
        quantity=entry.data.quantity,
        price_per_credit=entry.data.price_per_credit,
        total_value=entry.data.total_value,
        block_hash=entry.data.block_hash,
        timestamp=entry.data.timestamp,
    )


def weighted_average_price(held_quantity: int, held_avg: float, quantity: int, price: float) -> float:
    total = held_quantity + quantity
    if total == 0:
        return price
    return (held_quantity * held_avg + quantity * price) / total


async def credits_purchase(
    coordinator: TransactionCoordinator,
    project_id: str,
    buyer_id: str,
    quantity: int,
) -> TransactionResult:
    """Move ``quantity`` credits from the project's available supply to the buyer at the posted price."""
    require_quantity(quantity)
    transaction_id = transaction_id_new()

    async def plan(snapshot: ProjectSnapshot) -> ChangeSet:
        project = snapshot.project.model_copy(deep=True)
        d = project.data
        if d.status != ProjectStatus.ACTIVE:
            raise ProjectNotActiveError(f"Project {project_id} is {d.status.value}, not active")
        if d.available_credits < quantity:
            raise InsufficientSupplyError(
                f"Requested {quantity} credits but only {d.available_credits} available"
            )

        now = coordinator.now()
        price = d.price_per_credit
        d.available_credits -= quantity
        d.held_credits += quantity

        if snapshot.holding is None:
            holding = Holding(
                id=holding_key(buyer_id, project_id),
                data=HoldingData(
                    buyer_id=buyer_id,
                    project_id=project_id,
                    quantity=quantity,
                    avg_price=price,
                    purchased_at=now,
                ),
            )
        else:
            holding = snapshot.holding.model_copy(deep=True)
            h = holding.data
            h.avg_price = weighted_average_price(h.quantity, h.avg_price, quantity, price)
            h.quantity += quantity

        open_batches = [b.model_copy(deep=True) for b in snapshot.open_batches]
        return ChangeSet(
            project=project,
            ledger_entry=ledger_entry_new(
                transaction_id, LedgerEntryType.PURCHASE, project_id,
                to_user_id=buyer_id, quantity=quantity, timestamp=now,
                from_user_id=d.developer_id, price_per_credit=price,
            ),
            holding=holding,
            holding_is_new=snapshot.holding is None,
            updated_batches=batches_project_status(d, open_batches, now, actor_id=buyer_id),
        )

    changes = await coordinator.run(project_id, plan, transaction_id, buyer_id=buyer_id)
    logger.info(
        f"Purchase {transaction_id}: buyer {buyer_id} bought {quantity} credits of project {project_id} "
        f"at {changes.ledger_entry.data.price_per_credit}"
    )
    return transaction_result(changes, buyer_id)
