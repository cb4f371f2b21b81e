"""Sync plan and sync result value objects."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from promptsync.exceptions import PlanInvariantError

if TYPE_CHECKING:
    from collections.abc import Mapping
    from datetime import datetime

    from promptsync.models.prompt import PromptRecord
    from promptsync.models.remote import RemoteRecord


@dataclass(frozen=True)
class RemoteDeletion:
    """A remote record to soft-delete because its local record was deleted."""

    remote_id: str


@dataclass(frozen=True)
class LocalDeletion:
    """A local record to delete because its remote record was soft-deleted."""

    local_id: str
    remote_id: str
    deleted_at: datetime


@dataclass(frozen=True)
class LocalIdAssignment:
    """A backend-created record that needs a local id."""

    remote: RemoteRecord
    new_local_id: str


@dataclass(frozen=True)
class Conflict:
    """Both sides changed the same record to different content."""

    local: PromptRecord
    remote: RemoteRecord


@dataclass(frozen=True)
class PlanLink:
    """Local and remote already agree; only the ledger link is missing."""

    local: PromptRecord
    remote: RemoteRecord


@dataclass(frozen=True)
class SyncPlan:
    """The computed sync plan.

    Computed once per pass, checked against capacity, then executed once.
    Construction rejects plans where a local record id appears in more than
    one list, or where a conflict also appears as an upload or download.
    """

    to_upload: tuple[PromptRecord, ...] = ()
    to_download: tuple[RemoteRecord, ...] = ()
    to_delete_remotely: tuple[RemoteDeletion, ...] = ()
    to_delete_locally: tuple[LocalDeletion, ...] = ()
    to_assign_local_id: tuple[LocalIdAssignment, ...] = ()
    conflicts: tuple[Conflict, ...] = ()
    to_link: tuple[PlanLink, ...] = ()

    def __post_init__(self) -> None:
        local_ids = [
            *(p.id for p in self.to_upload),
            *(d.local_id for d in self.to_delete_locally),
            *(a.new_local_id for a in self.to_assign_local_id),
            *(c.local.id for c in self.conflicts),
            *(link.local.id for link in self.to_link),
        ]
        _reject_duplicates(local_ids)

        conflict_remote_ids = {c.remote.remote_id for c in self.conflicts}
        if any(r.remote_id in conflict_remote_ids for r in self.to_download):
            raise PlanInvariantError("Conflicting remote record is also queued for download")

    @property
    def upload_count(self) -> int:
        """Records this plan will create or update remotely, conflict copies included."""
        return len(self.to_upload) + len(self.conflicts)

    @property
    def is_empty(self) -> bool:
        return not (
            self.to_upload
            or self.to_download
            or self.to_delete_remotely
            or self.to_delete_locally
            or self.to_assign_local_id
            or self.conflicts
            or self.to_link
        )

    def check_download_targets(self, targets: Mapping[str, str]) -> None:
        """Verify downloads do not touch a local record queued elsewhere.

        *targets* maps remote id -> local id for downloads whose local id is
        already known (via the ledger or the remote owner id).
        """
        local_ids = [
            *(p.id for p in self.to_upload),
            *(d.local_id for d in self.to_delete_locally),
            *(a.new_local_id for a in self.to_assign_local_id),
            *(c.local.id for c in self.conflicts),
            *(link.local.id for link in self.to_link),
            *(targets[r.remote_id] for r in self.to_download if r.remote_id in targets),
        ]
        _reject_duplicates(local_ids)


def _reject_duplicates(local_ids: list[str]) -> None:
    duplicates = sorted(k for k, n in Counter(local_ids).items() if n > 1)
    if duplicates:
        raise PlanInvariantError(f"Local records queued more than once: {', '.join(duplicates)}")


@dataclass
class SyncStats:
    """Counters accumulated while executing a plan."""

    uploaded: int = 0
    downloaded: int = 0
    deleted: int = 0
    conflicts: int = 0
    linked: int = 0
    duration_ms: int = 0


@dataclass(frozen=True)
class ItemFailure:
    """A single plan item that failed without aborting its phase."""

    phase: str
    item_id: str
    reason: str


@dataclass
class SyncResult:
    """Outcome of executing a plan."""

    stats: SyncStats = field(default_factory=SyncStats)
    failures: list[ItemFailure] = field(default_factory=list)
    conflicts: list[Conflict] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures
