"""FIFO status projection of credit batches.

Credits move as fungible quantities, so batches are not owned individually.
Their status follows the project's cumulative totals in issuance order: a
batch is ``traded`` once purchases cover its whole range and ``retired``
once retirements do.
"""

from datetime import datetime
from typing import List, Optional

from models.entities.couchbase.credit_batches import CreditBatch
from models.entities.couchbase.projects import ProjectInventoryData
from models.entities.lifecycle import BATCH_TRANSITIONS, BatchStatus, can_transition
from models.errors import InvalidTransitionError


def batch_advance(batch: CreditBatch, target: BatchStatus, now: datetime, actor_id: Optional[str] = None) -> None:
    current = batch.data.status
    if not can_transition(BATCH_TRANSITIONS, current, target):
        raise InvalidTransitionError(f"Batch {batch.id} cannot move {current.value} -> {target.value}")
    batch.data.status = target
    if target == BatchStatus.TRADED:
        batch.data.traded_at = now
        if actor_id:
            batch.data.owner_id = actor_id
    elif target == BatchStatus.RETIRED:
        batch.data.retired_at = now
        batch.data.retired_by_id = actor_id


def batches_project_status(
    project: ProjectInventoryData,
    open_batches: List[CreditBatch],
    now: datetime,
    actor_id: Optional[str] = None,
) -> List[CreditBatch]:
    """Advance open batches (sorted by sequence) in place; return those that changed.

    ``project`` is the post-operation state. Retired batches are not loaded,
    but they are the oldest, so their combined size is whatever part of
    ``issued_credits`` the open batches do not account for.
    """
    purchased = project.total_credits - project.available_credits
    retired = project.retired_credits
    position = project.issued_credits - sum(b.data.quantity for b in open_batches)

    changed = []
    for batch in open_batches:
        position += batch.data.quantity
        before = batch.data.status
        if batch.data.status == BatchStatus.ISSUED and position <= purchased:
            batch_advance(batch, BatchStatus.TRADED, now, actor_id)
        if batch.data.status == BatchStatus.TRADED and position <= retired:
            batch_advance(batch, BatchStatus.RETIRED, now, actor_id)
        if batch.data.status != before:
            changed.append(batch)
    return changed
