from typing import Optional

from fastapi import APIRouter, Depends, Query

from models.operations.registry import (
    HoldingView,
    LedgerPage,
    Portfolio,
    holding_get,
    ledger_list,
    portfolio_get,
)
from utils import log

from .dependencies import store_get

logger = log.get_logger(__name__)

router = APIRouter(tags=["ledger"])


@router.get("/ledger")
async def route_ledger_list(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=200),
    project_id: Optional[str] = None,
    store=Depends(store_get),
) -> LedgerPage:
    return await ledger_list(store, page, page_size, project_id=project_id)


@router.get("/holdings/{buyer_id}/{project_id}")
async def route_holding_get(buyer_id: str, project_id: str, store=Depends(store_get)) -> HoldingView:
    return await holding_get(store, buyer_id, project_id)


@router.get("/buyers/{buyer_id}/portfolio")
async def route_portfolio_get(buyer_id: str, store=Depends(store_get)) -> Portfolio:
    return await portfolio_get(store, buyer_id)
