import hashlib
import logging
from typing import List, Set

from pydantic import BaseModel

from models.entities.couchbase.credit_batches import CreditBatch, CreditBatchData
from models.entities.couchbase.projects import ProjectInventory
from models.entities.lifecycle import LedgerEntryType, ProjectStatus
from models.errors import CapacityExceededError, ConflictError, ProjectNotActiveError, require_quantity
from models.operations.batches import batches_project_status
from models.operations.coordinator import TransactionCoordinator
from models.operations.ledger import ledger_entry_new, transaction_id_new
from models.repositories.base import ChangeSet, ProjectSnapshot

logger = logging.getLogger(__name__)

DEFAULT_MAX_BATCHES = 5
SERIAL_PREFIX = "BCX"
MAX_SERIAL_ATTEMPTS = 100


class IssuanceResult(BaseModel):
    transaction_id: str
    project_id: str
    quantity: int
    batch_serials: List[str]


def split_quantity(quantity: int, max_batches: int = DEFAULT_MAX_BATCHES) -> List[int]:
    """Split into at most ``max_batches`` sizes that differ by at most one and sum to ``quantity``."""
    count = max(1, min(quantity, max_batches))
    base, remainder = divmod(quantity, count)
    return [base + 1 if i < remainder else base for i in range(count)]


def serial_namespace(project_id: str) -> str:
    """Eight hex digits of the project id's SHA-256; distinct ids never share a prefix in practice."""
    return hashlib.sha256(project_id.encode()).hexdigest()[:8].upper()


def serial_format(project_id: str, vintage: int, counter: int) -> str:
    project_part = serial_namespace(project_id)
    return f"{SERIAL_PREFIX}-{project_part}-{vintage}-{counter:06d}"


async def _serial_next(store, project: ProjectInventory, taken: Set[str]) -> str:
    d = project.data
    for _ in range(MAX_SERIAL_ATTEMPTS):
        d.serial_counter += 1
        serial = serial_format(project.id, d.vintage, d.serial_counter)
        if serial not in taken and not await store.batches.serial_exists(serial):
            taken.add(serial)
            return serial
    raise ConflictError(
        f"No free serial for project {project.id} after {MAX_SERIAL_ATTEMPTS} attempts; retry the issuance"
    )


async def credits_issue(
    coordinator: TransactionCoordinator,
    project_id: str,
    quantity: int,
    max_batches: int = DEFAULT_MAX_BATCHES,
) -> IssuanceResult:
    """Mint serialized batches against the project's approved capacity.

    Available supply was fixed at approval, so issuance leaves
    ``available_credits`` alone and only raises ``issued_credits``.
    """
    require_quantity(quantity)
    transaction_id = transaction_id_new()

    async def plan(snapshot: ProjectSnapshot) -> ChangeSet:
        project = snapshot.project.model_copy(deep=True)
        d = project.data
        if d.status != ProjectStatus.ACTIVE:
            raise ProjectNotActiveError(f"Project {project_id} is {d.status.value}, not active")
        if d.issued_credits + quantity > d.total_credits:
            raise CapacityExceededError(
                f"Issuing {quantity} would exceed capacity: {d.total_credits - d.issued_credits} of "
                f"{d.total_credits} credits left to issue"
            )

        now = coordinator.now()
        taken: Set[str] = set()
        new_batches = []
        for size in split_quantity(quantity, max_batches):
            serial = await _serial_next(coordinator.store, project, taken)
            d.batch_sequence += 1
            new_batches.append(CreditBatch(
                id=serial,
                data=CreditBatchData(
                    project_id=project_id,
                    serial_number=serial,
                    vintage=d.vintage,
                    quantity=size,
                    sequence=d.batch_sequence,
                    owner_id=d.developer_id,
                    issued_at=now,
                ),
            ))
        d.issued_credits += quantity

        open_batches = [b.model_copy(deep=True) for b in snapshot.open_batches]
        changed = batches_project_status(d, open_batches + new_batches, now)
        fresh = {b.id for b in new_batches}

        return ChangeSet(
            project=project,
            ledger_entry=ledger_entry_new(
                transaction_id, LedgerEntryType.ISSUANCE, project_id,
                to_user_id=d.developer_id, quantity=quantity, timestamp=now,
            ),
            new_batches=new_batches,
            updated_batches=[b for b in changed if b.id not in fresh],
        )

    changes = await coordinator.run(project_id, plan, transaction_id)
    serials = [b.data.serial_number for b in changes.new_batches]
    logger.info(f"Issued {quantity} credits for project {project_id} in {len(serials)} batches ({transaction_id})")
    return IssuanceResult(
        transaction_id=transaction_id,
        project_id=project_id,
        quantity=quantity,
        batch_serials=serials,
    )
