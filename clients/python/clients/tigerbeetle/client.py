import hashlib
import uuid
from typing import Iterable
from tigerbeetle import (
    ClientSync,
    Account,
    Transfer,
    AccountFlags,
    CreateAccountResult,
    CreateTransferResult,
)

# Ledger constants
SETTLEMENT_LEDGER = 1
ACCOUNT_CODE_BUYER = 1
ACCOUNT_CODE_DEVELOPER = 2
TRANSFER_CODE_PURCHASE = 1    # buyer -> project developer

_U128_MASK = (1 << 128) - 1


def connect(cluster_id: int, address: str) -> ClientSync:
    """Open a TigerBeetle client. The caller owns it and must close it."""
    return ClientSync(
        cluster_id=cluster_id,
        replica_addresses=address,
    )


def account_id_for(user_id: str, code: int) -> int:
    """Deterministic 128-bit account ID for a registry user and account code."""
    digest = hashlib.sha256(f"{code}:{user_id}".encode()).digest()
    value = int.from_bytes(digest[:16], "big") & _U128_MASK
    # 0 and 2^128-1 are reserved by TigerBeetle
    if value in (0, _U128_MASK):
        value = 1
    return value


def transfer_id_for(transaction_id: str) -> int:
    """Ledger entry IDs are UUIDs; reuse them so a replayed transfer hits EXISTS."""
    return uuid.UUID(transaction_id).int


def ensure_accounts(client: ClientSync, accounts: Iterable[tuple[int, int]]) -> None:
    """Create (account_id, code) accounts on the settlement ledger (idempotent)."""
    results = client.create_accounts([
        Account(
            id=account_id,
            ledger=SETTLEMENT_LEDGER,
            code=code,
            flags=AccountFlags.NONE,
        )
        for account_id, code in accounts
    ])
    for r in results:
        if r.result not in (CreateAccountResult.OK, CreateAccountResult.EXISTS):
            raise RuntimeError(f"Failed to create settlement account: {r.result}")


def create_transfer(client: ClientSync, transfer_id: int, debit_id: int, credit_id: int, amount_cents: int, code: int) -> int:
    """Create a single transfer. Returns the transfer ID."""
    results = client.create_transfers([
        Transfer(
            id=transfer_id,
            debit_account_id=debit_id,
            credit_account_id=credit_id,
            amount=amount_cents,
            ledger=SETTLEMENT_LEDGER,
            code=code,
        ),
    ])
    for r in results:
        if r.result not in (CreateTransferResult.OK, CreateTransferResult.EXISTS):
            raise RuntimeError(f"Failed to create transfer: {r.result}")
    return transfer_id

