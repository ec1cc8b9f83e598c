"""Couchbase-backed registry store.

Reads go through per-collection repositories. ``commit`` runs one Couchbase
distributed ACID transaction that re-reads every versioned document, and
writes nothing (reporting a conflict) if any version moved since the
snapshot the change set was planned from.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from couchbase.exceptions import CouchbaseException, TransactionCommitAmbiguous, TransactionFailed

from clients.couchbase import CouchbaseConnection, CouchbaseRepository, StaleDocumentError
from models.entities.couchbase.credit_batches import CreditBatch
from models.entities.couchbase.holdings import Holding, holding_key
from models.entities.couchbase.ledger_entries import LedgerEntry
from models.entities.couchbase.projects import ProjectInventory
from models.entities.lifecycle import BatchStatus
from models.errors import ConflictError
from models.repositories.base import ChangeSet

logger = logging.getLogger(__name__)


class CouchbaseProjectRepository(CouchbaseRepository[ProjectInventory]):
    document_class = ProjectInventory

    async def get(self, project_id: str) -> Optional[ProjectInventory]:
        return await self.get_document(project_id)

    async def list(self) -> List[ProjectInventory]:
        return await self.find("TRUE", order_by="created_at DESC")

    async def create(self, project: ProjectInventory) -> ProjectInventory:
        try:
            return await self.insert_document(project)
        except StaleDocumentError as e:
            raise ConflictError(str(e)) from e

    async def update(self, project: ProjectInventory) -> ProjectInventory:
        try:
            return await self.replace_document(project)
        except StaleDocumentError as e:
            raise ConflictError(str(e)) from e


class CouchbaseCreditBatchRepository(CouchbaseRepository[CreditBatch]):
    document_class = CreditBatch

    async def list_by_project(self, project_id: str, open_only: bool = False) -> List[CreditBatch]:
        where = "project_id = $project_id"
        params = {"project_id": project_id}
        if open_only:
            where += " AND status != $retired"
            params["retired"] = BatchStatus.RETIRED.value
        return await self.find(where, order_by="`sequence` ASC", **params)

    async def serial_exists(self, serial_number: str) -> bool:
        return await self.keyspace.exists(serial_number)


class CouchbaseLedgerRepository(CouchbaseRepository[LedgerEntry]):
    document_class = LedgerEntry

    async def get(self, entry_id: str) -> Optional[LedgerEntry]:
        return await self.get_document(entry_id)

    async def list(self, page: int, page_size: int, project_id: Optional[str] = None) -> Tuple[List[LedgerEntry], int]:
        where, params = "TRUE", {}
        if project_id is not None:
            where, params = "project_id = $project_id", {"project_id": project_id}
        entries = await self.find(
            where,
            order_by="`timestamp` DESC, META().id DESC",
            limit=page_size,
            offset=(page - 1) * page_size,
            **params,
        )
        total = await self.count(where, **params)
        return entries, total

    async def list_by_project(self, project_id: str) -> List[LedgerEntry]:
        return await self.find("project_id = $project_id", order_by="`timestamp` ASC, META().id ASC", project_id=project_id)

    async def list_by_recipient(self, user_id: str) -> List[LedgerEntry]:
        return await self.find("to_user_id = $user_id", order_by="`timestamp` ASC, META().id ASC", user_id=user_id)


class CouchbaseHoldingRepository(CouchbaseRepository[Holding]):
    document_class = Holding

    async def get(self, buyer_id: str, project_id: str) -> Optional[Holding]:
        return await self.get_document(holding_key(buyer_id, project_id))

    async def list_by_buyer(self, buyer_id: str) -> List[Holding]:
        return await self.find("buyer_id = $buyer_id", buyer_id=buyer_id)

    async def list_by_project(self, project_id: str) -> List[Holding]:
        return await self.find("project_id = $project_id", project_id=project_id)


class CouchbaseRegistryStore:
    def __init__(self, connection: CouchbaseConnection):
        self.connection = connection
        self.projects = CouchbaseProjectRepository(connection)
        self.batches = CouchbaseCreditBatchRepository(connection)
        self.ledger = CouchbaseLedgerRepository(connection)
        self.holdings = CouchbaseHoldingRepository(connection)

    @property
    def is_open(self) -> bool:
        return self.connection.is_open

    async def open(self) -> None:
        logger.info("Verifying Couchbase connection...")
        await self.connection.connect()
        await self.connection.check_connection()
        logger.info("Couchbase connection verified.")

    async def close(self) -> None:
        await self.connection.close()
        logger.info("Couchbase connection closed.")

    async def commit(self, changes: ChangeSet) -> None:
        now = datetime.now(timezone.utc)
        stale: List[str] = []

        def _versioned(item, expected_version: int) -> dict:
            item.data.updated_at = now
            item.data.created_at = item.data.created_at or now
            doc = item.data.model_dump(mode='json')
            doc["version"] = expected_version + 1
            return doc

        async def _replace_if_current(ctx, repo: CouchbaseRepository, item) -> bool:
            current = await ctx.get(repo.keyspace.get_collection(), item.id)
            if current.content_as[dict].get("version", 0) != item.data.version:
                stale.append(f"{repo.collection_name}/{item.id}")
                return False
            await ctx.replace(current, _versioned(item, item.data.version))
            return True

        async def txn_logic(ctx):
            stale.clear()
            if not await _replace_if_current(ctx, self.projects, changes.project):
                return
            if changes.holding is not None:
                if changes.holding_is_new:
                    await ctx.insert(self.holdings.keyspace.get_collection(), changes.holding.id, _versioned(changes.holding, 0))
                elif not await _replace_if_current(ctx, self.holdings, changes.holding):
                    return
            for batch in changes.updated_batches:
                if not await _replace_if_current(ctx, self.batches, batch):
                    return
            batch_collection = self.batches.keyspace.get_collection()
            for batch in changes.new_batches:
                await ctx.insert(batch_collection, batch.id, _versioned(batch, 0))
            changes.ledger_entry.data.timestamp = datetime.now(timezone.utc)
            await ctx.insert(self.ledger.keyspace.get_collection(), changes.ledger_entry.id, _versioned(changes.ledger_entry, 0))

        # A transaction whose logic returned early wrote nothing and commits empty.
        try:
            await self.connection.cluster.transactions.run(txn_logic)
        except TransactionCommitAmbiguous as e:
            logger.warning(f"Ambiguous commit for ledger entry {changes.ledger_entry.id}: {e}")
            raise ConflictError(f"Commit outcome unknown for {changes.ledger_entry.id}") from e
        except TransactionFailed as e:
            # Duplicate keys and write-write contention both land here.
            raise ConflictError(f"Transaction failed for project {changes.project.id}: {e}") from e
        except CouchbaseException as e:
            raise ConflictError(f"Couchbase error during commit: {e}") from e

        if stale:
            raise ConflictError(f"Documents changed concurrently: {', '.join(stale)}")
