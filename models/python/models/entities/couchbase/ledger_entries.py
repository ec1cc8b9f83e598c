from datetime import datetime
from typing import Optional
from clients.couchbase import BaseDocument, BaseEntityData
from models.entities.lifecycle import LedgerEntryStatus, LedgerEntryType


class LedgerEntryData(BaseEntityData):
    type: LedgerEntryType
    project_id: str
    from_user_id: Optional[str] = None
    to_user_id: str
    quantity: int
    price_per_credit: Optional[float] = None
    total_value: Optional[float] = None
    reason: Optional[str] = None
    status: LedgerEntryStatus = LedgerEntryStatus.CONFIRMED
    block_hash: Optional[str] = None
    timestamp: datetime


class LedgerEntry(BaseDocument[LedgerEntryData]):
    _collection_name = "ledger_entries"
