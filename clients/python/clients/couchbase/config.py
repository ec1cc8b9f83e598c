import asyncio
import logging
from datetime import timedelta
from typing import Optional

from pydantic import BaseModel
from couchbase.auth import PasswordAuthenticator
from acouchbase.cluster import Cluster as AsyncCluster
from couchbase.options import ClusterOptions

logger = logging.getLogger(__name__)

VALID_PROTOCOLS = ('couchbase', 'couchbases')


class CouchbaseConfig(BaseModel):
    host: str
    username: str
    password: str
    bucket: str
    protocol: str = "couchbase"
    scope: str = "_default"

    def validate_settings(self) -> None:
        errors = []
        if not self.username:
            errors.append("COUCHBASE_USERNAME is missing or empty")
        if not self.password:
            errors.append("COUCHBASE_PASSWORD is missing or empty")
        if not self.host:
            errors.append("COUCHBASE_HOST is missing or empty")
        if not self.bucket:
            errors.append("COUCHBASE_BUCKET is missing or empty")
        if self.protocol not in VALID_PROTOCOLS:
            errors.append(f"COUCHBASE_PROTOCOL '{self.protocol}' is invalid. Must be one of {VALID_PROTOCOLS}")
        if errors:
            raise ValueError(f"Invalid Couchbase Configuration:\n" + "\n".join(errors))

    @property
    def url(self) -> str:
        return self.protocol + "://" + self.host


class CouchbaseConnection:
    """
    Explicit handle on a Couchbase cluster.

    Opened once at service start with ``connect()`` and released at shutdown
    with ``close()``. Everything that needs the cluster receives this handle.
    """

    def __init__(self, config: CouchbaseConfig):
        config.validate_settings()
        self.config = config
        self._cluster: Optional[AsyncCluster] = None

    @property
    def cluster(self) -> AsyncCluster:
        if self._cluster is None:
            raise RuntimeError("Couchbase connection is not open")
        return self._cluster

    @property
    def is_open(self) -> bool:
        return self._cluster is not None

    async def connect(self, max_retries: int = 10, initial_delay: float = 1.0, max_delay: float = 30.0) -> None:
        """
        Connects to the cluster.
        Implements retry with exponential backoff for startup race conditions.
        """
        if self._cluster is not None:
            return
        auth = PasswordAuthenticator(self.config.username, self.config.password)
        delay = initial_delay

        for attempt in range(1, max_retries + 1):
            try:
                cluster = await AsyncCluster.connect(self.config.url, ClusterOptions(auth))
                break
            except Exception as e:
                if attempt >= max_retries:
                    raise
                logger.warning(f"Couchbase connect attempt {attempt} failed: {e}; retrying in {delay}s")
                await asyncio.sleep(delay)
                delay = min(delay * 2, max_delay)  # Exponential backoff with cap

        await cluster.wait_until_ready(timedelta(seconds=50))
        self._cluster = cluster

    async def close(self) -> None:
        if self._cluster is None:
            return
        cluster, self._cluster = self._cluster, None
        await cluster.close()

    async def check_connection(self) -> None:
        """
        Explicitly checks the connection to the Couchbase cluster.
        Useful for startup checks.
        """
        await self.cluster.ping()
