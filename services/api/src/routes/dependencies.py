from fastapi import HTTPException, Request, status

from models.operations.coordinator import TransactionCoordinator
from utils import log

logger = log.get_logger(__name__)


def store_get(request: Request):
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Registry store not ready")
    return store


def coordinator_get(request: Request) -> TransactionCoordinator:
    coordinator = getattr(request.app.state, "coordinator", None)
    if coordinator is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Registry store not ready")
    return coordinator


def settlement_client_get(request: Request):
    """TigerBeetle client, or None when settlement mirroring is disabled."""
    return getattr(request.app.state, "tigerbeetle_client", None)


def max_batches_get(request: Request) -> int:
    return request.app.state.registry_conf.max_batches
