"""Consistency rules of the registry as pure functions.

Conservation, for every project after every commit::

    total_credits == available_credits + held_credits + retired_credits
    sum(batch.quantity) == issued_credits <= total_credits

``verify_changes`` checks a staged change set against the snapshot it was
planned from; ``audit_project`` replays the ledger against stored state.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from models.entities.couchbase.credit_batches import CreditBatch
from models.entities.couchbase.holdings import Holding
from models.entities.couchbase.ledger_entries import LedgerEntry
from models.entities.couchbase.projects import ProjectInventory
from models.entities.lifecycle import BATCH_TRANSITIONS, LedgerEntryStatus, LedgerEntryType, can_advance
from models.errors import ConsistencyViolationError
from models.repositories.base import ChangeSet, ProjectSnapshot


def inventory_violations(project: ProjectInventory) -> List[str]:
    d = project.data
    violations = []
    if not 0 <= d.available_credits <= d.total_credits:
        violations.append(f"available_credits {d.available_credits} outside [0, {d.total_credits}]")
    if d.held_credits < 0:
        violations.append(f"held_credits {d.held_credits} is negative")
    if d.retired_credits < 0:
        violations.append(f"retired_credits {d.retired_credits} is negative")
    if not 0 <= d.issued_credits <= d.total_credits:
        violations.append(f"issued_credits {d.issued_credits} outside [0, {d.total_credits}]")
    accounted = d.available_credits + d.held_credits + d.retired_credits
    if accounted != d.total_credits:
        violations.append(
            f"total_credits {d.total_credits} != available {d.available_credits} "
            f"+ held {d.held_credits} + retired {d.retired_credits}"
        )
    return violations


def change_violations(snapshot: ProjectSnapshot, changes: ChangeSet) -> List[str]:
    before, after = snapshot.project.data, changes.project.data
    entry = changes.ledger_entry.data
    violations = inventory_violations(changes.project)

    if changes.project.id != snapshot.project.id or entry.project_id != snapshot.project.id:
        violations.append("change set targets a different project than its snapshot")
    if after.total_credits != before.total_credits:
        violations.append("total_credits changed")
    if after.retired_credits < before.retired_credits:
        violations.append("retired_credits decreased")
    if after.issued_credits < before.issued_credits:
        violations.append("issued_credits decreased")
    if after.serial_counter < before.serial_counter:
        violations.append("serial_counter moved backward")

    d_available = after.available_credits - before.available_credits
    d_held = after.held_credits - before.held_credits
    d_retired = after.retired_credits - before.retired_credits
    d_issued = after.issued_credits - before.issued_credits

    old_holding = snapshot.holding.data if snapshot.holding is not None else None
    new_holding = changes.holding.data if changes.holding is not None else None
    d_holding = d_holding_retired = 0
    if new_holding is not None:
        if new_holding.quantity < 0:
            violations.append(f"holding quantity {new_holding.quantity} is negative")
        d_holding = new_holding.quantity - (old_holding.quantity if old_holding else 0)
        d_holding_retired = new_holding.retired_quantity - (old_holding.retired_quantity if old_holding else 0)
        if d_holding_retired < 0:
            violations.append("holding retired_quantity decreased")
        if new_holding.project_id != snapshot.project.id:
            violations.append("holding belongs to a different project")
    if d_held != d_holding:
        violations.append(f"held_credits moved by {d_held} but holding moved by {d_holding}")
    if d_retired != d_holding_retired:
        violations.append(f"retired_credits moved by {d_retired} but holding retired by {d_holding_retired}")

    minted = sum(b.data.quantity for b in changes.new_batches)
    if d_issued != minted:
        violations.append(f"issued_credits moved by {d_issued} but {minted} credits were batched")
    serials = [b.data.serial_number for b in changes.new_batches]
    if len(serials) != len(set(serials)):
        violations.append("duplicate serial numbers within one issuance")

    previous = {b.id: b for b in snapshot.open_batches}
    for batch in changes.updated_batches:
        old = previous.get(batch.id)
        if old is None:
            violations.append(f"batch {batch.id} updated without being read")
        elif old.data.quantity != batch.data.quantity:
            violations.append(f"batch {batch.id} quantity changed")
        elif old.data.status != batch.data.status and not can_advance(BATCH_TRANSITIONS, old.data.status, batch.data.status):
            violations.append(f"batch {batch.id} moved {old.data.status.value} -> {batch.data.status.value}")

    if entry.quantity <= 0:
        violations.append(f"ledger quantity {entry.quantity} is not positive")
    expected = {
        LedgerEntryType.ISSUANCE: d_issued,
        LedgerEntryType.PURCHASE: -d_available,
        LedgerEntryType.TRANSFER: -d_available,
        LedgerEntryType.RETIREMENT: d_retired,
    }[entry.type]
    if entry.quantity != expected:
        violations.append(f"{entry.type.value} ledger quantity {entry.quantity} != state change {expected}")
    if entry.type == LedgerEntryType.ISSUANCE and (d_available or d_held or d_retired):
        violations.append("issuance changed circulating quantities")
    if entry.type == LedgerEntryType.RETIREMENT and d_available:
        violations.append("retirement changed available_credits")
    return violations


def verify_changes(snapshot: ProjectSnapshot, changes: ChangeSet) -> None:
    violations = change_violations(snapshot, changes)
    if violations:
        raise ConsistencyViolationError(
            f"Project {snapshot.project.id}: {violations[0]}", violations=violations,
        )


@dataclass
class AuditReport:
    project_id: str
    violations: List[str] = field(default_factory=list)
    entries_replayed: int = 0

    @property
    def is_consistent(self) -> bool:
        return not self.violations


def audit_project(
    project: ProjectInventory,
    ledger: Iterable[LedgerEntry],
    holdings: Iterable[Holding],
    batches: Iterable[CreditBatch],
) -> AuditReport:
    """Replay confirmed ledger entries and compare with the stored aggregates."""
    report = AuditReport(project_id=project.id, violations=inventory_violations(project))
    d = project.data
    issued = purchased = retired = 0
    held: Dict[str, int] = defaultdict(int)
    retired_by: Dict[str, int] = defaultdict(int)

    for entry in ledger:
        if entry.data.status != LedgerEntryStatus.CONFIRMED:
            continue
        report.entries_replayed += 1
        q = entry.data.quantity
        if entry.data.type == LedgerEntryType.ISSUANCE:
            issued += q
        elif entry.data.type in (LedgerEntryType.PURCHASE, LedgerEntryType.TRANSFER):
            purchased += q
            held[entry.data.to_user_id] += q
        elif entry.data.type == LedgerEntryType.RETIREMENT:
            retired += q
            held[entry.data.to_user_id] -= q
            retired_by[entry.data.to_user_id] += q

    if purchased > d.total_credits:
        report.violations.append(f"ledger purchases {purchased} exceed total_credits {d.total_credits}")
    if d.available_credits != d.total_credits - purchased:
        report.violations.append(f"available_credits {d.available_credits} != ledger {d.total_credits - purchased}")
    if d.retired_credits != retired:
        report.violations.append(f"retired_credits {d.retired_credits} != ledger {retired}")
    if d.held_credits != purchased - retired:
        report.violations.append(f"held_credits {d.held_credits} != ledger {purchased - retired}")
    if d.issued_credits != issued:
        report.violations.append(f"issued_credits {d.issued_credits} != ledger {issued}")

    seen_buyers = set()
    for holding in holdings:
        buyer = holding.data.buyer_id
        seen_buyers.add(buyer)
        if holding.data.quantity != held[buyer]:
            report.violations.append(f"holding {buyer} quantity {holding.data.quantity} != ledger {held[buyer]}")
        if holding.data.retired_quantity != retired_by[buyer]:
            report.violations.append(
                f"holding {buyer} retired {holding.data.retired_quantity} != ledger {retired_by[buyer]}"
            )
    for buyer, quantity in held.items():
        if buyer not in seen_buyers and (quantity or retired_by[buyer]):
            report.violations.append(f"ledger credits {quantity} for {buyer} but no holding record")

    batch_list = list(batches)
    batched = sum(b.data.quantity for b in batch_list)
    if batched != issued:
        report.violations.append(f"batched quantity {batched} != ledger issuance {issued}")
    serials = [b.data.serial_number for b in batch_list]
    if len(serials) != len(set(serials)):
        report.violations.append("duplicate serial numbers")
    return report
