"""Typed failures of registry operations.

Precondition errors carry no partial effect. ``ConflictError`` is the only
retryable kind. ``ConsistencyViolationError`` means stored or staged state
broke an invariant and is never retried.
"""

from typing import List, Optional


class RegistryError(Exception):
    code = "REGISTRY_ERROR"
    http_status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_response(self) -> dict:
        return {"error": {"code": self.code, "message": self.message}}


class NotFoundError(RegistryError):
    code = "NOT_FOUND"
    http_status = 404


class InvalidQuantityError(RegistryError):
    code = "INVALID_QUANTITY"
    http_status = 400


class CapacityExceededError(InvalidQuantityError):
    code = "CAPACITY_EXCEEDED"


class InsufficientSupplyError(RegistryError):
    code = "INSUFFICIENT_SUPPLY"
    http_status = 409


class InsufficientHoldingsError(RegistryError):
    code = "INSUFFICIENT_HOLDINGS"
    http_status = 409


class ProjectNotActiveError(RegistryError):
    code = "PROJECT_NOT_ACTIVE"
    http_status = 409


class InvalidTransitionError(RegistryError):
    code = "INVALID_TRANSITION"
    http_status = 409


class ConflictError(RegistryError):
    code = "CONFLICT"
    http_status = 503


class ConsistencyViolationError(RegistryError):
    code = "CONSISTENCY_VIOLATION"
    http_status = 500

    def __init__(self, message: str, violations: Optional[List[str]] = None):
        super().__init__(message)
        self.violations = violations or [message]

    def to_response(self) -> dict:
        # Internal state details stay in the logs.
        return {"error": {"code": self.code, "message": "Registry state check failed; operation aborted"}}


def require_quantity(quantity) -> int:
    """Quantities are positive integers; bool is rejected even though it is an int."""
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidQuantityError(f"Quantity must be an integer, got {quantity!r}")
    if quantity <= 0:
        raise InvalidQuantityError(f"Quantity must be positive, got {quantity}")
    return quantity
