"""Error taxonomy for allocation operations."""

from __future__ import annotations

from typing import Any


class AllocationError(Exception):
    """Base class for failures surfaced to callers of the allocation core."""

    code = "allocation"
    retriable = False

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class ValidationError(AllocationError):
    """Malformed or missing request fields."""

    code = "validation"


class NotFoundError(AllocationError):
    """A referenced candidate, course, institution or application is absent."""

    code = "not_found"


class ForbiddenError(AllocationError):
    """The acting party does not own the record."""

    code = "forbidden"


class NotQualifiedError(AllocationError):
    """The candidate fails the qualification gate or match threshold."""

    code = "not_qualified"


class ConflictError(AllocationError):
    """The request conflicts with the current ledger state."""

    code = "conflict"


class CapacityError(ConflictError):
    code = "capacity"


class DuplicateAdmissionError(ConflictError):
    code = "duplicate_admission"


class NotAdmittedError(ConflictError):
    code = "not_admitted"


class InvalidTransitionError(ConflictError):
    code = "invalid_transition"


class TransactionError(AllocationError):
    """The store rejected or failed an atomic commit. Nothing was applied."""

    code = "transaction"
    retriable = True


class StaleWriteError(TransactionError):
    """An optimistic-concurrency precondition no longer holds."""

    code = "stale_write"


class NotificationError(AllocationError):
    """A notification sink failed to record a message."""

    code = "notification"


__all__ = [
    "AllocationError",
    "ValidationError",
    "NotFoundError",
    "ForbiddenError",
    "NotQualifiedError",
    "ConflictError",
    "CapacityError",
    "DuplicateAdmissionError",
    "NotAdmittedError",
    "InvalidTransitionError",
    "TransactionError",
    "StaleWriteError",
    "NotificationError",
]
