import logging
from typing import Optional

from models.entities.lifecycle import LedgerEntryType
from models.errors import InsufficientHoldingsError, NotFoundError, require_quantity
from models.operations.batches import batches_project_status
from models.operations.coordinator import TransactionCoordinator
from models.operations.ledger import ledger_entry_new, transaction_id_new
from models.operations.transfers import TransactionResult, transaction_result
from models.repositories.base import ChangeSet, ProjectSnapshot

logger = logging.getLogger(__name__)


async def credits_retire(
    coordinator: TransactionCoordinator,
    project_id: str,
    buyer_id: str,
    quantity: int,
    reason: Optional[str] = None,
) -> TransactionResult:
    """Permanently remove credits from the buyer's holding.

    Retired credits never return to available supply. Retirement does not
    depend on project status: owned credits stay retirable.
    """
    require_quantity(quantity)
    transaction_id = transaction_id_new()
    reason = (reason or "").strip() or None

    async def plan(snapshot: ProjectSnapshot) -> ChangeSet:
        if snapshot.holding is None:
            raise NotFoundError(f"Buyer {buyer_id} holds no credits of project {project_id}")
        if snapshot.holding.data.quantity < quantity:
            raise InsufficientHoldingsError(
                f"Requested retirement of {quantity} credits but buyer holds {snapshot.holding.data.quantity}"
            )

        now = coordinator.now()
        project = snapshot.project.model_copy(deep=True)
        d = project.data
        d.held_credits -= quantity
        d.retired_credits += quantity

        holding = snapshot.holding.model_copy(deep=True)
        holding.data.quantity -= quantity
        holding.data.retired_quantity += quantity

        open_batches = [b.model_copy(deep=True) for b in snapshot.open_batches]
        return ChangeSet(
            project=project,
            ledger_entry=ledger_entry_new(
                transaction_id, LedgerEntryType.RETIREMENT, project_id,
                to_user_id=buyer_id, quantity=quantity, timestamp=now, reason=reason,
            ),
            holding=holding,
            updated_batches=batches_project_status(d, open_batches, now, actor_id=buyer_id),
        )

    changes = await coordinator.run(project_id, plan, transaction_id, buyer_id=buyer_id)
    logger.info(
        f"Retirement {transaction_id}: buyer {buyer_id} retired {quantity} credits of project {project_id}"
        + (f" ({reason})" if reason else "")
    )
    return transaction_result(changes, buyer_id)
