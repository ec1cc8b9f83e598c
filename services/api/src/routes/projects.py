from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, StrictInt

from models.entities.lifecycle import ProjectSector, ProjectStatus
from models.operations.audit import project_audit
from models.operations.registry import (
    InventoryView,
    inventory_get,
    project_approve,
    project_list,
    project_register,
    project_reject,
    project_set_price,
)
from utils import log

from .dependencies import store_get

logger = log.get_logger(__name__)

router = APIRouter(prefix="/projects", tags=["projects"])


# ── Request models ────────────────────────────────────────────────────────────

class ProjectRegisterRequest(BaseModel):
    developer_id: str
    name: str
    total_credits: StrictInt
    price_per_credit: float
    vintage: int = Field(ge=1900, le=2200)
    sector: ProjectSector = ProjectSector.RENEWABLE_ENERGY
    integrity_score: Optional[int] = Field(default=None, ge=0, le=100)


class ProjectRejectRequest(BaseModel):
    reason: str


class ProjectPriceRequest(BaseModel):
    price_per_credit: float


class AuditResponse(BaseModel):
    project_id: str
    is_consistent: bool
    entries_replayed: int
    violations: List[str]


# ── Routes ────────────────────────────────────────────────────────────────────

@router.post("", status_code=201)
async def route_project_register(body: ProjectRegisterRequest, store=Depends(store_get)) -> InventoryView:
    return await project_register(
        store,
        developer_id=body.developer_id,
        name=body.name,
        total_credits=body.total_credits,
        price_per_credit=body.price_per_credit,
        vintage=body.vintage,
        sector=body.sector,
        integrity_score=body.integrity_score,
    )


@router.get("")
async def route_project_list(status: Optional[ProjectStatus] = None, store=Depends(store_get)) -> List[InventoryView]:
    return await project_list(store, status)


@router.get("/{project_id}")
async def route_project_get(project_id: str, store=Depends(store_get)) -> InventoryView:
    return await inventory_get(store, project_id)


@router.post("/{project_id}/approve")
async def route_project_approve(project_id: str, store=Depends(store_get)) -> InventoryView:
    return await project_approve(store, project_id)


@router.post("/{project_id}/reject")
async def route_project_reject(project_id: str, body: ProjectRejectRequest, store=Depends(store_get)) -> InventoryView:
    return await project_reject(store, project_id, body.reason)


@router.put("/{project_id}/price")
async def route_project_set_price(project_id: str, body: ProjectPriceRequest, store=Depends(store_get)) -> InventoryView:
    return await project_set_price(store, project_id, body.price_per_credit)


@router.get("/{project_id}/audit")
async def route_project_audit(project_id: str, store=Depends(store_get)) -> AuditResponse:
    report = await project_audit(store, project_id)
    return AuditResponse(
        project_id=report.project_id,
        is_consistent=report.is_consistent,
        entries_replayed=report.entries_replayed,
        violations=report.violations,
    )
