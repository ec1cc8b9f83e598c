from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, StrictInt

from models.operations.registry import (
    IssuanceResult,
    TransactionResult,
    batches_list,
    credits_issue,
    credits_purchase,
    credits_retire,
    inventory_get,
)
from models.operations.projects import BatchView
from models.operations.settlement import settlement_record_purchase
from utils import log

from .dependencies import coordinator_get, max_batches_get, settlement_client_get, store_get

logger = log.get_logger(__name__)

router = APIRouter(prefix="/projects/{project_id}", tags=["credits"])


class IssueRequest(BaseModel):
    quantity: StrictInt


class PurchaseRequest(BaseModel):
    buyer_id: str
    quantity: StrictInt


class RetireRequest(BaseModel):
    buyer_id: str
    quantity: StrictInt
    reason: Optional[str] = None


@router.post("/issuances", status_code=201)
async def route_credits_issue(
    project_id: str,
    body: IssueRequest,
    coordinator=Depends(coordinator_get),
    max_batches: int = Depends(max_batches_get),
) -> IssuanceResult:
    return await credits_issue(coordinator, project_id, body.quantity, max_batches=max_batches)


@router.get("/batches")
async def route_batches_list(project_id: str, store=Depends(store_get)) -> List[BatchView]:
    return await batches_list(store, project_id)


@router.post("/purchases", status_code=201)
async def route_credits_purchase(
    project_id: str,
    body: PurchaseRequest,
    coordinator=Depends(coordinator_get),
    settlement_client=Depends(settlement_client_get),
) -> TransactionResult:
    result = await credits_purchase(coordinator, project_id, body.buyer_id, body.quantity)
    if settlement_client is not None:
        inventory = await inventory_get(coordinator.store, project_id)
        await settlement_record_purchase(settlement_client, result, inventory.developer_id)
    return result


@router.post("/retirements", status_code=201)
async def route_credits_retire(
    project_id: str,
    body: RetireRequest,
    coordinator=Depends(coordinator_get),
) -> TransactionResult:
    return await credits_retire(coordinator, project_id, body.buyer_id, body.quantity, body.reason)
