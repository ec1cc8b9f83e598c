from datetime import datetime
from typing import Optional
from clients.couchbase import BaseDocument, BaseEntityData


class HoldingData(BaseEntityData):
    buyer_id: str
    project_id: str
    quantity: int = 0
    avg_price: float = 0.0
    retired_quantity: int = 0
    purchased_at: Optional[datetime] = None


class Holding(BaseDocument[HoldingData]):
    _collection_name = "holdings"


def holding_key(buyer_id: str, project_id: str) -> str:
    return f"{buyer_id}::{project_id}"
