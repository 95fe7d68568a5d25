"""Exception taxonomy shared by the data access and business logic layers."""

from __future__ import annotations

from typing import Optional


class LedgerError(Exception):
    """Base class for every domain error raised by the spirits ledger."""


class ValidationError(LedgerError, ValueError):
    """Raised when a requested operation violates a domain constraint.

    Validation always happens before anything is written, so a caller that
    receives this error can rely on the workbook being untouched.
    """


class MissingReferenceError(ValidationError):
    """Raised when a referenced container, product, or log entry is unknown."""


class PersistenceError(LedgerError):
    """Raised when a write set could not be applied or saved.

    The write set is all-or-nothing: when this error surfaces the in-memory
    workbook has been rolled back to its pre-operation state.
    """


class ConflictError(LedgerError):
    """Raised when a container changed since the snapshot an operation used.

    The operation can be retried after reloading the container.
    """

    retryable = True

    def __init__(self, container_id: str, expected_version: int, actual_version: Optional[int]) -> None:
        self.container_id = container_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Container '{container_id}' was modified concurrently "
            f"(expected version {expected_version}, found {actual_version})"
        )


class EligibilityError(LedgerError):
    """Raised when an undo is requested for an entry that cannot be undone."""

    def __init__(self, entry_id: str, reason: str) -> None:
        self.entry_id = entry_id
        self.reason = reason
        super().__init__(f"Entry '{entry_id}' cannot be undone: {reason}")


__all__ = [
    "LedgerError",
    "ValidationError",
    "MissingReferenceError",
    "PersistenceError",
    "ConflictError",
    "EligibilityError",
]
