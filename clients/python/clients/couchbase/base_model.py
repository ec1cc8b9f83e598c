from datetime import datetime, timezone
from typing import Any, ClassVar, Dict, Generic, List, Optional, Type, TypeVar
from pydantic import BaseModel
from couchbase.exceptions import CASMismatchException, DocumentExistsException, DocumentNotFoundException
from couchbase.options import ReplaceOptions
from .config import CouchbaseConnection
from .keyspace import Keyspace, get_keyspace


class BaseEntityData(BaseModel):
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    version: int = 0


DataT = TypeVar("DataT", bound=BaseEntityData)


class BaseDocument(BaseModel, Generic[DataT]):
    id: str
    data: DataT
    cas: Optional[int] = None

    _collection_name: ClassVar[str] = ""


T = TypeVar("T", bound=BaseDocument)


class StaleDocumentError(Exception):
    """Raised when a CAS-guarded write finds the document changed since it was read."""


class CouchbaseRepository(Generic[T]):
    """
    Data access for one document type over an explicit connection.

    Subclasses set ``document_class``; the collection comes from the
    document's ``_collection_name``.
    """

    document_class: Type[T]

    def __init__(self, connection: CouchbaseConnection):
        self.connection = connection

    @property
    def keyspace(self) -> Keyspace:
        name = self.document_class._collection_name
        if not name:
            raise ValueError(f"_collection_name not set for {self.document_class.__name__}")
        return get_keyspace(self.connection, name)

    @property
    def collection_name(self) -> str:
        return self.document_class._collection_name

    @staticmethod
    def to_document(data: BaseEntityData) -> dict:
        return data.model_dump(mode='json')

    def from_row(self, row: Dict[str, Any]) -> Optional[T]:
        # Row structure: {'id': '...', '<collection_name>': {...}}
        data_dict = row.get(self.collection_name)
        if not data_dict:
            return None
        return self.document_class(id=row['id'], data=data_dict)

    async def get_document(self, id: str) -> Optional[T]:
        try:
            result = await self.keyspace.get(id)
        except DocumentNotFoundException:
            return None
        return self.document_class(id=id, data=result.content_as[dict], cas=result.cas)

    async def insert_document(self, item: T) -> T:
        now = datetime.now(timezone.utc)
        if item.data.created_at is None:
            item.data.created_at = now
        item.data.updated_at = now
        try:
            result = await self.keyspace.insert(item.id, self.to_document(item.data))
        except DocumentExistsException:
            raise StaleDocumentError(f"{self.collection_name}/{item.id} already exists")
        item.cas = result.cas
        return item

    async def replace_document(self, item: T) -> T:
        item.data.updated_at = datetime.now(timezone.utc)
        item.data.version += 1
        options = ReplaceOptions(cas=item.cas) if item.cas else None
        try:
            if options:
                result = await self.keyspace.replace(item.id, self.to_document(item.data), options)
            else:
                result = await self.keyspace.replace(item.id, self.to_document(item.data))
        except CASMismatchException:
            item.data.version -= 1
            raise StaleDocumentError(f"{self.collection_name}/{item.id} changed concurrently")
        item.cas = result.cas
        return item

    async def find(
        self,
        where: str,
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        **params,
    ) -> List[T]:
        keyspace = self.keyspace
        query = f"SELECT META().id, * FROM {keyspace} WHERE {where}"
        if order_by:
            query += f" ORDER BY {order_by}"
        if limit is not None:
            query += f" LIMIT {int(limit)}"
        if offset:
            query += f" OFFSET {int(offset)}"
        rows = await keyspace.query(query, **params)
        items = []
        for row in rows:
            item = self.from_row(row)
            if item is not None:
                items.append(item)
        return items

    async def count(self, where: str = "TRUE", **params) -> int:
        keyspace = self.keyspace
        rows = await keyspace.query(f"SELECT COUNT(*) AS total FROM {keyspace} WHERE {where}", **params)
        return int(rows[0]["total"]) if rows else 0
