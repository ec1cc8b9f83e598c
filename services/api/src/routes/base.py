from fastapi import APIRouter
from utils import log

from .credits import router as credits_router
from .health import router as health_router
from .ledger import router as ledger_router
from .projects import router as projects_router

logger = log.get_logger(__name__)

router = APIRouter(prefix="/api")
router.include_router(projects_router)
router.include_router(credits_router)
router.include_router(ledger_router)
router.include_router(health_router)
