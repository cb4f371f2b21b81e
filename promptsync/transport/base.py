"""Transport protocol between the sync engine and a workspace backend."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from promptsync.exceptions import RemoteConflictError

if TYPE_CHECKING:
    from promptsync.models.ledger import LedgerEntry
    from promptsync.models.prompt import PromptRecord
    from promptsync.models.remote import RemoteRecord, UploadResult

logger = logging.getLogger(__name__)


class ConflictCode(StrEnum):
    """Reason the backend rejected a write with 409."""

    CONTENT_SOFT_DELETED = "CONTENT_SOFT_DELETED"
    VERSION_MISMATCH = "VERSION_MISMATCH"
    OPTIMISTIC_LOCK = "OPTIMISTIC_LOCK"


LEGACY_CONFLICT = "conflict"


@dataclass(frozen=True)
class RemoteConflict:
    """A parsed 409 response."""

    code: ConflictCode
    message: str
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class WritePermission:
    """What the current user may write in this workspace."""

    can_upload: bool
    can_delete: bool


@dataclass(frozen=True)
class TransportCapabilities:
    """Optional engine phases a workspace mode supports."""

    handles_remote_deletion: bool = False
    handles_backend_created: bool = False
    checks_capacity: bool = False
    supports_restore: bool = False


@runtime_checkable
class SyncTransport(Protocol):
    """Protocol for workspace-mode specific backend I/O.

    ``check_capacity``, ``register_workspace`` and ``restore`` are optional;
    callers look them up with ``getattr`` and the capability flags.
    """

    mode: str
    capabilities: TransportCapabilities

    async def fetch_remote(self, include_deleted: bool = False) -> list[RemoteRecord]:
        """Fetch remote records, optionally including soft-deleted ones."""
        ...

    async def upload(self, record: PromptRecord, entry: LedgerEntry | None = None) -> UploadResult:
        """Create or update a remote record. *entry* carries the expected version."""
        ...

    async def delete(self, remote_id: str) -> None:
        """Soft-delete a remote record."""
        ...

    def parse_conflict(self, error: BaseException) -> RemoteConflict | None:
        """Classify a write failure as a sync conflict, if it is one."""
        ...

    def write_permission(self) -> WritePermission:
        """Return what the current user may write."""
        ...

    def identity(self) -> str:
        """Return the device name used to attribute conflict copies."""
        ...

    async def aclose(self) -> None:
        """Release network resources."""
        ...


def parse_conflict_error(error: BaseException) -> RemoteConflict | None:
    """Parse a 409 error into a RemoteConflict.

    Known codes map to themselves. Older backend deployments answer every
    conflict with a generic ``conflict`` error; those are treated as
    ``CONTENT_SOFT_DELETED``.
    """
    if not isinstance(error, RemoteConflictError):
        return None

    if error.error in {code.value for code in ConflictCode}:
        return RemoteConflict(
            code=ConflictCode(error.error),
            message=str(error) or "Sync conflict",
            details=dict(error.details),
        )

    if error.error == LEGACY_CONFLICT or LEGACY_CONFLICT in str(error).lower():
        logger.warning("Received legacy 409 conflict format; assuming CONTENT_SOFT_DELETED")
        return RemoteConflict(
            code=ConflictCode.CONTENT_SOFT_DELETED,
            message="Conflict detected (legacy format)",
        )

    return None
