"""Closed status and sector vocabularies, with their allowed transitions."""

from enum import Enum
from typing import Dict, FrozenSet


class ProjectStatus(str, Enum):
    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    ACTIVE = "active"


class ProjectSector(str, Enum):
    RENEWABLE_ENERGY = "Renewable Energy"
    AFFORESTATION = "Afforestation"
    METHANE_CAPTURE = "Methane Capture"
    ENERGY_EFFICIENCY = "Energy Efficiency"
    BLUE_CARBON = "Blue Carbon"
    SOIL_CARBON = "Soil Carbon"
    WASTE_MANAGEMENT = "Waste Management"


class BatchStatus(str, Enum):
    ISSUED = "issued"
    TRADED = "traded"
    RETIRED = "retired"


class LedgerEntryType(str, Enum):
    ISSUANCE = "issuance"
    TRANSFER = "transfer"
    PURCHASE = "purchase"
    RETIREMENT = "retirement"


class LedgerEntryStatus(str, Enum):
    CONFIRMED = "confirmed"
    PENDING = "pending"
    FAILED = "failed"


PROJECT_TRANSITIONS: Dict[ProjectStatus, FrozenSet[ProjectStatus]] = {
    ProjectStatus.DRAFT: frozenset({ProjectStatus.PENDING}),
    ProjectStatus.PENDING: frozenset({ProjectStatus.APPROVED, ProjectStatus.REJECTED, ProjectStatus.ACTIVE}),
    ProjectStatus.APPROVED: frozenset({ProjectStatus.ACTIVE}),
    ProjectStatus.REJECTED: frozenset(),
    ProjectStatus.ACTIVE: frozenset(),
}

BATCH_TRANSITIONS: Dict[BatchStatus, FrozenSet[BatchStatus]] = {
    BatchStatus.ISSUED: frozenset({BatchStatus.TRADED}),
    BatchStatus.TRADED: frozenset({BatchStatus.RETIRED}),
    BatchStatus.RETIRED: frozenset(),
}


def can_transition(table: Dict, current: Enum, target: Enum) -> bool:
    return target in table[current]


def can_advance(table: Dict, current: Enum, target: Enum) -> bool:
    """True if ``target`` is reachable from ``current`` through one or more transitions."""
    frontier, seen = [current], set()
    while frontier:
        state = frontier.pop()
        for nxt in table[state]:
            if nxt == target:
                return True
            if nxt not in seen:
                seen.add(nxt)
                frontier.append(nxt)
    return False
