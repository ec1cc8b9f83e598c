import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from models.entities.couchbase.ledger_entries import LedgerEntry, LedgerEntryData
from models.entities.lifecycle import LedgerEntryStatus, LedgerEntryType


def transaction_id_new() -> str:
    return str(uuid.uuid4())


def block_hash_new() -> str:
    """Opaque display value shown as a "chain hash". It proves nothing."""
    return "0x" + uuid.uuid4().hex[:16]


def ledger_entry_new(
    transaction_id: str,
    entry_type: LedgerEntryType,
    project_id: str,
    to_user_id: str,
    quantity: int,
    timestamp: datetime,
    from_user_id: Optional[str] = None,
    price_per_credit: Optional[float] = None,
    reason: Optional[str] = None,
) -> LedgerEntry:
    total_value = quantity * price_per_credit if price_per_credit is not None else None
    return LedgerEntry(
        id=transaction_id,
        data=LedgerEntryData(
            type=entry_type,
            project_id=project_id,
            from_user_id=from_user_id,
            to_user_id=to_user_id,
            quantity=quantity,
            price_per_credit=price_per_credit,
            total_value=total_value,
            reason=reason,
            status=LedgerEntryStatus.CONFIRMED,
            block_hash=block_hash_new(),
            timestamp=timestamp,
        ),
    )


class LedgerEntryView(BaseModel):
    id: str
    type: LedgerEntryType
    project_id: str
    from_user_id: Optional[str] = None
    to_user_id: str
    quantity: int
    price_per_credit: Optional[float] = None
    total_value: Optional[float] = None
    reason: Optional[str] = None
    status: LedgerEntryStatus
    block_hash: Optional[str] = None
    timestamp: datetime


class LedgerPage(BaseModel):
    entries: List[LedgerEntryView]
    total: int
    page: int
    page_size: int


def ledger_entry_view(entry: LedgerEntry) -> LedgerEntryView:
    return LedgerEntryView(id=entry.id, **entry.data.model_dump(exclude={"created_at", "updated_at", "version"}))


async def ledger_list(store, page: int = 1, page_size: int = 20, project_id: Optional[str] = None) -> LedgerPage:
    """Ledger entries, most recent first."""
    page = max(page, 1)
    page_size = max(1, min(page_size, 200))
    entries, total = await store.ledger.list(page, page_size, project_id=project_id)
    return LedgerPage(
        entries=[ledger_entry_view(e) for e in entries],
        total=total,
        page=page,
        page_size=page_size,
    )
