import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, List, Optional

from pydantic import BaseModel

from models.entities.couchbase.credit_batches import CreditBatch
from models.entities.couchbase.projects import ProjectInventory, ProjectInventoryData
from models.entities.lifecycle import (
    BatchStatus,
    PROJECT_TRANSITIONS,
    ProjectSector,
    ProjectStatus,
    can_transition,
)
from models.errors import (
    ConflictError,
    InvalidQuantityError,
    InvalidTransitionError,
    NotFoundError,
    RegistryError,
    require_quantity,
)

logger = logging.getLogger(__name__)


class InventoryView(BaseModel):
    project_id: str
    name: str
    developer_id: str
    sector: ProjectSector
    vintage: int
    status: ProjectStatus
    total_credits: int
    available_credits: int
    held_credits: int
    retired_credits: int
    issued_credits: int
    price_per_credit: float
    integrity_score: Optional[int] = None
    rejection_reason: Optional[str] = None
    approved_at: Optional[datetime] = None


class BatchView(BaseModel):
    serial_number: str
    project_id: str
    vintage: int
    quantity: int
    sequence: int
    status: BatchStatus
    owner_id: Optional[str] = None
    issued_at: datetime
    traded_at: Optional[datetime] = None
    retired_at: Optional[datetime] = None
    retired_by_id: Optional[str] = None


def inventory_view(project: ProjectInventory) -> InventoryView:
    d = project.data
    return InventoryView(
        project_id=project.id,
        name=d.name,
        developer_id=d.developer_id,
        sector=d.sector,
        vintage=d.vintage,
        status=d.status,
        total_credits=d.total_credits,
        available_credits=d.available_credits,
        held_credits=d.held_credits,
        retired_credits=d.retired_credits,
        issued_credits=d.issued_credits,
        price_per_credit=d.price_per_credit,
        integrity_score=d.integrity_score,
        rejection_reason=d.rejection_reason,
        approved_at=d.approved_at,
    )


def batch_view(batch: CreditBatch) -> BatchView:
    return BatchView(**batch.data.model_dump(exclude={"created_at", "updated_at", "version"}))


def _require_price(price) -> float:
    if isinstance(price, bool) or not isinstance(price, (int, float)) or price <= 0:
        raise InvalidQuantityError(f"Price per credit must be positive, got {price!r}")
    return float(price)


async def _project_cas_retry(
    store,
    project_id: str,
    mutator: Callable[[ProjectInventoryData], None],
    max_retries: int = 5,
) -> ProjectInventory:
    """Read-modify-write a project with version-guarded retry.

    *mutator* mutates ``ProjectInventoryData`` in place and raises a
    ``RegistryError`` to abort. On ``ConflictError`` the helper re-reads and
    retries with exponential backoff (10 ms, 20 ms, 40 ms, ...).
    """
    backoff_ms = 10
    for attempt in range(max_retries + 1):
        project = await store.projects.get(project_id)
        if not project:
            raise NotFoundError(f"Project {project_id} not found")

        mutator(project.data)

        try:
            return await store.projects.update(project)
        except ConflictError:
            if attempt == max_retries:
                raise
            await asyncio.sleep(backoff_ms / 1000)
            backoff_ms *= 2

    raise ConflictError("Max retries exceeded")


def _transition(data: ProjectInventoryData, target: ProjectStatus) -> None:
    if not can_transition(PROJECT_TRANSITIONS, data.status, target):
        raise InvalidTransitionError(f"Cannot move project from {data.status.value} to {target.value}")
    data.status = target


async def project_register(
    store,
    developer_id: str,
    name: str,
    total_credits: int,
    price_per_credit: float,
    vintage: int,
    sector: ProjectSector = ProjectSector.RENEWABLE_ENERGY,
    integrity_score: Optional[int] = None,
    project_id: Optional[str] = None,
) -> InventoryView:
    """Register a project awaiting approval.

    The full capacity is posted as available supply now; nothing is sellable
    until the project is active.
    """
    require_quantity(total_credits)
    price = _require_price(price_per_credit)
    if not name or not name.strip():
        raise RegistryError("Project name is required")

    project = ProjectInventory(
        id=project_id or str(uuid.uuid4()),
        data=ProjectInventoryData(
            developer_id=developer_id,
            name=name.strip(),
            sector=sector,
            vintage=vintage,
            status=ProjectStatus.PENDING,
            total_credits=total_credits,
            available_credits=total_credits,
            price_per_credit=price,
            integrity_score=integrity_score,
        ),
    )
    project = await store.projects.create(project)
    logger.info(f"Registered project {project.id} ({name}) with {total_credits} credits for developer {developer_id}")
    return inventory_view(project)


async def project_approve(store, project_id: str) -> InventoryView:
    def _mutate(data: ProjectInventoryData) -> None:
        if data.status == ProjectStatus.PENDING:
            _transition(data, ProjectStatus.APPROVED)
        _transition(data, ProjectStatus.ACTIVE)
        data.approved_at = datetime.now(timezone.utc)

    project = await _project_cas_retry(store, project_id, _mutate)
    logger.info(f"Project {project_id} approved and active")
    return inventory_view(project)


async def project_reject(store, project_id: str, reason: str) -> InventoryView:
    def _mutate(data: ProjectInventoryData) -> None:
        _transition(data, ProjectStatus.REJECTED)
        data.rejection_reason = (reason or "").strip() or None

    project = await _project_cas_retry(store, project_id, _mutate)
    logger.info(f"Project {project_id} rejected: {reason}")
    return inventory_view(project)


async def project_set_price(store, project_id: str, price_per_credit: float) -> InventoryView:
    price = _require_price(price_per_credit)

    def _mutate(data: ProjectInventoryData) -> None:
        data.price_per_credit = price

    project = await _project_cas_retry(store, project_id, _mutate)
    logger.info(f"Project {project_id} price set to {price}")
    return inventory_view(project)


async def inventory_get(store, project_id: str) -> InventoryView:
    project = await store.projects.get(project_id)
    if not project:
        raise NotFoundError(f"Project {project_id} not found")
    return inventory_view(project)


async def project_list(store, status: Optional[ProjectStatus] = None) -> List[InventoryView]:
    projects = await store.projects.list()
    return [inventory_view(p) for p in projects if status is None or p.data.status == status]


async def batches_list(store, project_id: str) -> List[BatchView]:
    if not await store.projects.get(project_id):
        raise NotFoundError(f"Project {project_id} not found")
    batches = await store.batches.list_by_project(project_id)
    return [batch_view(b) for b in sorted(batches, key=lambda b: b.data.sequence)]
