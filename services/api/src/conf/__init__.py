from typing import Literal, Optional

from pydantic import BaseModel

from clients.couchbase import CouchbaseConfig
from utils import env, log
from utils.env import EnvVarSpec

logger = log.get_logger(__name__)


def _parse_bool(x: str) -> bool:
    return x.lower() == "true"


#### Types ####

class HttpServerConf(BaseModel):
    host: str
    port: int
    autoreload: bool


class RegistryConf(BaseModel):
    backend: Literal["memory", "couchbase"]
    max_batches: int
    max_retries: int
    lock_timeout_ms: int
    audit_interval_minutes: int


class TigerBeetleConf(BaseModel):
    enabled: bool
    cluster_id: int
    address: str


#### Env Vars ####

## Logging ##

LOG_LEVEL = EnvVarSpec(id="LOG_LEVEL", default="INFO")

ENVIRONMENT = EnvVarSpec(id="ENVIRONMENT", default="development")

## HTTP ##

HTTP_HOST = EnvVarSpec(id="HTTP_HOST", default="0.0.0.0")

HTTP_PORT = EnvVarSpec(id="HTTP_PORT", default="8000", parse=int, type=(int, ...))

HTTP_AUTORELOAD = EnvVarSpec(
    id="HTTP_AUTORELOAD",
    parse=_parse_bool,
    default="false",
    type=(bool, ...),
)

HTTP_EXPOSE_ERRORS = EnvVarSpec(
    id="HTTP_EXPOSE_ERRORS",
    default="false",
    parse=_parse_bool,
    type=(bool, ...),
)

## Registry ##

REGISTRY_BACKEND = EnvVarSpec(
    id="REGISTRY_BACKEND",
    default="memory",
    parse=lambda x: x.lower(),
    type=(Literal["memory", "couchbase"], ...),
)

REGISTRY_MAX_BATCHES = EnvVarSpec(id="REGISTRY_MAX_BATCHES", default="5", parse=int, type=(int, ...))

REGISTRY_MAX_RETRIES = EnvVarSpec(id="REGISTRY_MAX_RETRIES", default="5", parse=int, type=(int, ...))

REGISTRY_LOCK_TIMEOUT_MS = EnvVarSpec(id="REGISTRY_LOCK_TIMEOUT_MS", default="5000", parse=int, type=(int, ...))

REGISTRY_AUDIT_INTERVAL_MINUTES = EnvVarSpec(
    id="REGISTRY_AUDIT_INTERVAL_MINUTES",
    default="60",
    parse=int,
    type=(int, ...),
)

## Couchbase ##
## Only read when REGISTRY_BACKEND=couchbase.

COUCHBASE_HOST = EnvVarSpec(id="COUCHBASE_HOST", is_optional=True)
COUCHBASE_USERNAME = EnvVarSpec(id="COUCHBASE_USERNAME", is_optional=True)
COUCHBASE_PASSWORD = EnvVarSpec(id="COUCHBASE_PASSWORD", is_optional=True, is_secret=True)
COUCHBASE_BUCKET = EnvVarSpec(id="COUCHBASE_BUCKET", is_optional=True)
COUCHBASE_PROTOCOL = EnvVarSpec(id="COUCHBASE_PROTOCOL", default="couchbase")
COUCHBASE_SCOPE = EnvVarSpec(id="COUCHBASE_SCOPE", default="_default")

## TigerBeetle ##

TIGERBEETLE_ENABLED = EnvVarSpec(
    id="TIGERBEETLE_ENABLED",
    default="false",
    parse=_parse_bool,
    type=(bool, ...),
)
TIGERBEETLE_CLUSTER_ID = EnvVarSpec(id="TIGERBEETLE_CLUSTER_ID", default="0", parse=int, type=(int, ...))
TIGERBEETLE_ADDRESS = EnvVarSpec(id="TIGERBEETLE_ADDRESS", default="3000")


#### Validation ####
VALIDATED_ENV_VARS = [
    HTTP_AUTORELOAD,
    HTTP_EXPOSE_ERRORS,
    HTTP_PORT,
    LOG_LEVEL,
    REGISTRY_BACKEND,
    REGISTRY_MAX_BATCHES,
    REGISTRY_MAX_RETRIES,
    REGISTRY_LOCK_TIMEOUT_MS,
    REGISTRY_AUDIT_INTERVAL_MINUTES,
    TIGERBEETLE_ENABLED,
    TIGERBEETLE_CLUSTER_ID,
]


def validate() -> bool:
    specs = list(VALIDATED_ENV_VARS)
    if env.parse(REGISTRY_BACKEND) == "couchbase":
        specs.extend([
            COUCHBASE_HOST.model_copy(update={"is_optional": False}),
            COUCHBASE_USERNAME.model_copy(update={"is_optional": False}),
            COUCHBASE_PASSWORD.model_copy(update={"is_optional": False}),
            COUCHBASE_BUCKET.model_copy(update={"is_optional": False}),
        ])
    return env.validate(specs)


#### Getters ####

def get_log_level() -> str:
    return env.parse(LOG_LEVEL)


def get_environment() -> str:
    return env.parse(ENVIRONMENT)


def get_http_expose_errors() -> bool:
    return env.parse(HTTP_EXPOSE_ERRORS)


def get_http_conf() -> HttpServerConf:
    return HttpServerConf(
        host=env.parse(HTTP_HOST),
        port=env.parse(HTTP_PORT),
        autoreload=env.parse(HTTP_AUTORELOAD),
    )


def get_registry_conf() -> RegistryConf:
    return RegistryConf(
        backend=env.parse(REGISTRY_BACKEND),
        max_batches=max(1, env.parse(REGISTRY_MAX_BATCHES)),
        max_retries=max(0, env.parse(REGISTRY_MAX_RETRIES)),
        lock_timeout_ms=max(1, env.parse(REGISTRY_LOCK_TIMEOUT_MS)),
        audit_interval_minutes=max(0, env.parse(REGISTRY_AUDIT_INTERVAL_MINUTES)),
    )


def get_couchbase_conf() -> Optional[CouchbaseConfig]:
    host = env.parse(COUCHBASE_HOST)
    if not host:
        return None
    return CouchbaseConfig(
        host=host,
        username=env.parse(COUCHBASE_USERNAME),
        password=env.parse(COUCHBASE_PASSWORD),
        bucket=env.parse(COUCHBASE_BUCKET),
        protocol=env.parse(COUCHBASE_PROTOCOL),
        scope=env.parse(COUCHBASE_SCOPE),
    )


def get_tigerbeetle_conf() -> TigerBeetleConf:
    return TigerBeetleConf(
        enabled=env.parse(TIGERBEETLE_ENABLED),
        cluster_id=env.parse(TIGERBEETLE_CLUSTER_ID),
        address=env.parse(TIGERBEETLE_ADDRESS),
    )
