from .client import (
    connect,
    SETTLEMENT_LEDGER,
    ACCOUNT_CODE_BUYER,
    ACCOUNT_CODE_DEVELOPER,
    TRANSFER_CODE_PURCHASE,
    account_id_for,
    transfer_id_for,
    ensure_accounts,
    create_transfer,
)

__all__ = [
    "connect",
    "SETTLEMENT_LEDGER",
    "ACCOUNT_CODE_BUYER",
    "ACCOUNT_CODE_DEVELOPER",
    "TRANSFER_CODE_PURCHASE",
    "account_id_for",
    "transfer_id_for",
    "ensure_accounts",
    "create_transfer",
]
