from dataclasses import dataclass
from typing import Optional
from couchbase.result import MutationResult
from couchbase.options import QueryOptions
from .config import CouchbaseConnection


@dataclass
class Keyspace:
    connection: CouchbaseConnection
    bucket_name: str
    scope_name: str
    collection_name: str

    def __str__(self) -> str:
        return f"{self.bucket_name}.{self.scope_name}.{self.collection_name}"

    async def query(self, query: str, **kwargs) -> list:
        options = QueryOptions(named_parameters=kwargs) if kwargs else QueryOptions()
        result = self.connection.cluster.query(query, options)
        return [row async for row in result]

    def get_collection(self):
        bucket = self.connection.cluster.bucket(self.bucket_name)
        return bucket.scope(self.scope_name).collection(self.collection_name)

    async def get(self, key: str):
        return await self.get_collection().get(key)

    async def exists(self, key: str) -> bool:
        result = await self.get_collection().exists(key)
        return result.exists

    async def insert(self, key: str, value: dict, **kwargs) -> MutationResult:
        return await self.get_collection().insert(key, value, **kwargs)

    async def replace(self, key: str, value: dict, **kwargs) -> MutationResult:
        return await self.get_collection().replace(key, value, **kwargs)


def get_keyspace(connection: CouchbaseConnection, collection_name: str, scope_name: Optional[str] = None) -> Keyspace:
    """
    Create a Keyspace on the connection's bucket.

    Args:
        connection: Open Couchbase connection handle
        collection_name: Name of the collection
        scope_name: Name of the scope (defaults to the configured scope)

    Returns:
        Keyspace instance
    """
    return Keyspace(
        connection,
        connection.config.bucket,
        scope_name or connection.config.scope,
        collection_name,
    )
