"""Mirror committed purchases into the TigerBeetle settlement ledger.

The registry is the source of truth for credits; TigerBeetle only records the
money side. Mirroring happens after commit and never fails the purchase.
"""

import asyncio
import logging
from typing import Optional

from clients.tigerbeetle import (
    ACCOUNT_CODE_BUYER,
    ACCOUNT_CODE_DEVELOPER,
    TRANSFER_CODE_PURCHASE,
    account_id_for,
    create_transfer,
    ensure_accounts,
    transfer_id_for,
)
from models.operations.transfers import TransactionResult

logger = logging.getLogger(__name__)


def _record_purchase_sync(client, result: TransactionResult, developer_id: str) -> Optional[int]:
    amount_cents = int(round((result.total_value or 0.0) * 100))
    if amount_cents <= 0:
        return None

    buyer_account = account_id_for(result.buyer_id, ACCOUNT_CODE_BUYER)
    developer_account = account_id_for(developer_id, ACCOUNT_CODE_DEVELOPER)
    ensure_accounts(client, [
        (buyer_account, ACCOUNT_CODE_BUYER),
        (developer_account, ACCOUNT_CODE_DEVELOPER),
    ])
    return create_transfer(
        client,
        transfer_id_for(result.transaction_id),
        debit_id=buyer_account,
        credit_id=developer_account,
        amount_cents=amount_cents,
        code=TRANSFER_CODE_PURCHASE,
    )


async def settlement_record_purchase(client, result: TransactionResult, developer_id: str) -> Optional[int]:
    """Returns the TigerBeetle transfer id, or ``None`` if nothing was recorded."""
    if client is None:
        return None
    loop = asyncio.get_running_loop()
    try:
        transfer_id = await loop.run_in_executor(None, _record_purchase_sync, client, result, developer_id)
    except Exception as e:
        logger.error(f"Settlement mirror failed for purchase {result.transaction_id}: {e}")
        return None
    if transfer_id is not None:
        logger.info(f"Settlement transfer {transfer_id} recorded for purchase {result.transaction_id}")
    return transfer_id
