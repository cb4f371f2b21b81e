"""Sync error taxonomy.

Convention:
- Errors that abort a whole pass (``SessionExpiredError``,
  ``NetworkUnavailableError``, ``ConflictRetryError``, ``CapacityExceededError``,
  ``SyncCancelledError``) propagate out of ``SyncOrchestrator.sync()``.  The
  caller decides whether to re-authenticate, retry later or re-run the pass.
- ``PermissionDeniedError`` skips the affected item only.
- ``RemoteAlreadyGoneError`` is raised by transports on a 404 during delete and
  is treated as success by the executor.
- Every other transport failure is a ``TransportError`` carrying the failing
  operation as context.
"""

from __future__ import annotations

from typing import Any


class SyncError(Exception):
    """Base class for all sync engine errors."""


class SessionExpiredError(SyncError):
    """Raised when the backend rejects the credentials (HTTP 401).

    The caller must re-authenticate before retrying the pass.
    """


class NetworkUnavailableError(SyncError):
    """Raised when the backend cannot be reached. Safe to retry the pass later."""


class CapacityExceededError(SyncError):
    """Raised by the pre-flight capacity check. No writes have happened."""


class ConflictRetryError(SyncError):
    """Raised when a version or optimistic-lock check fails mid-execution.

    The remote state moved under the pass; the whole pass must be re-run.
    """


class PermissionDeniedError(SyncError):
    """Raised when a role-gated write is attempted without sufficient privilege."""


class RemoteAlreadyGoneError(SyncError):
    """Raised when a remote record to delete no longer exists."""


class TransportError(SyncError):
    """Raised for backend failures that have no more specific classification."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RemoteNotFoundError(TransportError):
    """Raised when the backend answers 404 for a record operation."""


class RemoteConflictError(TransportError):
    """Raised when the backend answers 409 for a write."""

    def __init__(
        self,
        message: str,
        *,
        error: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, status_code=409)
        self.error = error
        self.details = details or {}


class SyncInProgressError(SyncError):
    """Raised when a second pass is started while one is already running."""


class SyncCancelledError(SyncError):
    """Raised between executor phases after cancellation was requested."""


class LedgerNotInitializedError(SyncError):
    """Raised when the ledger is mutated before it has been initialized."""


class PlanInvariantError(ValueError):
    """Raised when a sync plan would touch the same local record twice."""
