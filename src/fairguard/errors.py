"""
Exception hierarchy for FairGuard.

Only genuine failures are exceptions. Expected policy results (appeal past its
deadline, word already present, confirmation already consumed, ...) are typed
outcome objects returned by the operations themselves.
"""

from __future__ import annotations


class FairGuardError(Exception):
    """Base class for every error raised by the moderation engine."""


class StorageError(FairGuardError):
    """A store operation failed and its transaction was rolled back."""

    def __init__(self, operation: str, cause: BaseException | None = None) -> None:
        self.operation = operation
        self.cause = cause
        message = f"storage error during {operation}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class LedgerError(StorageError):
    """The warning ledger could not apply a mutation; prior state is intact."""


class ValidationError(FairGuardError, ValueError):
    """User-supplied input was rejected before any side effect.

    Attributes:
        field: Name of the offending input field.
        reason: Human readable explanation for the rejection.
    """

    def __init__(self, field: str, reason: str) -> None:
        self.field = field
        self.reason = reason
        super().__init__(f"{field}: {reason}")


class ClassifierBackendError(FairGuardError):
    """A classifier provider call failed.

    Attributes:
        status: HTTP-like status code when one is known, otherwise None.
        retryable: Whether the gateway may retry the call.
    """

    RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})

    def __init__(self, message: str, *, status: int | None = None, retryable: bool | None = None) -> None:
        self.status = status
        if retryable is None:
            retryable = status in self.RETRYABLE_STATUSES
        self.retryable = retryable
        super().__init__(message)


class PlatformError(FairGuardError):
    """The chat platform rejected or failed a request."""


class MessageAlreadyDeleted(PlatformError):
    """The target message no longer exists on the platform."""


class PlatformPermissionError(PlatformError):
    """The bot lacks the permission required for the request."""
