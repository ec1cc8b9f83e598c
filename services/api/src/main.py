from contextlib import asynccontextmanager
from pathlib import Path

import conf
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from error_handlers import register_error_handlers
from routes.base import router
from scheduler import init_scheduler, shutdown_scheduler
from utils import log

from clients import tigerbeetle
from clients.couchbase import CouchbaseConnection
from models.operations.coordinator import TransactionCoordinator
from models.repositories.couchbase import CouchbaseRegistryStore
from models.repositories.memory import MemoryRegistryStore

log.init(conf.get_log_level(), conf.get_environment())
logger = log.get_logger(__name__)


def _store_create(registry_conf: conf.RegistryConf):
    if registry_conf.backend == "couchbase":
        couchbase_conf = conf.get_couchbase_conf()
        if couchbase_conf is None:
            raise ValueError("REGISTRY_BACKEND=couchbase requires COUCHBASE_HOST")
        couchbase_conf.validate_settings()
        return CouchbaseRegistryStore(CouchbaseConnection(couchbase_conf))
    logger.warning("Using the in-memory registry store; state is lost on restart")
    return MemoryRegistryStore()


def _settlement_client_create():
    tb_conf = conf.get_tigerbeetle_conf()
    if not tb_conf.enabled:
        logger.info("TigerBeetle settlement mirror disabled")
        return None
    try:
        client = tigerbeetle.connect(tb_conf.cluster_id, tb_conf.address)
    except Exception as e:
        logger.error(f"Cannot connect to TigerBeetle at {tb_conf.address}, settlement mirror disabled: {e}")
        return None
    logger.info(f"TigerBeetle settlement mirror connected ({tb_conf.address})")
    return client


@asynccontextmanager
async def lifespan(app: FastAPI):
    registry_conf = conf.get_registry_conf()
    app.state.registry_conf = registry_conf

    store = _store_create(registry_conf)
    await store.open()
    app.state.store = store
    app.state.coordinator = TransactionCoordinator(
        store,
        max_retries=registry_conf.max_retries,
        lock_timeout=registry_conf.lock_timeout_ms / 1000,
    )
    app.state.tigerbeetle_client = _settlement_client_create()

    init_scheduler(store, registry_conf.audit_interval_minutes)

    yield

    shutdown_scheduler()
    if app.state.tigerbeetle_client is not None:
        app.state.tigerbeetle_client.close()
    await store.close()


app = FastAPI(
    title="Offset Registry API",
    version="0.1.0",
    docs_url="/docs",
    lifespan=lifespan,
    debug=conf.get_http_expose_errors(),
)

app.include_router(router)
register_error_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

if not conf.validate():
    raise ValueError("Invalid configuration.")

http_conf = conf.get_http_conf()
logger.info(f"Starting API on port {http_conf.port}")

logger.info("--- Registered Routes ---")
for route in app.routes:
    methods_set = getattr(route, "methods", None)
    methods = ", ".join(methods_set) if methods_set else "Any"
    path = getattr(route, "path", "<unknown>")
    logger.info(f"{path} [{methods}]")
logger.info("-------------------------")

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=http_conf.host,
        port=http_conf.port,
        reload=http_conf.autoreload,
        log_level="info",
        reload_dirs=[str(Path(__file__).parent), "/models", "/clients"],
        log_config=None,
    )
