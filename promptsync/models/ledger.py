"""Sync ledger: what was last agreed upon between local and remote.

The ledger is stored separately from the prompt files so that bookkeeping
updates never touch a record's ``modified`` timestamp.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

CURRENT_SCHEMA_VERSION = 3


class LedgerEntry(BaseModel):
    """Link between one local record and its remote counterpart."""

    model_config = ConfigDict(frozen=True)

    remote_id: str
    fingerprint_at_last_sync: str
    last_synced_at: datetime
    remote_version_at_last_sync: int = 0
    is_deleted: bool = False
    deleted_at: datetime | None = None


class LedgerState(BaseModel):
    """Complete ledger for one workspace on one device."""

    model_config = ConfigDict(frozen=True)

    schema_version: int = CURRENT_SCHEMA_VERSION
    workspace_id: str | None = None
    user_id: str | None = None
    device_id: str
    device_name: str
    last_synced_at: datetime | None = None
    entries: dict[str, LedgerEntry] = Field(default_factory=dict)

    def with_entry(self, local_id: str, entry: LedgerEntry) -> LedgerState:
        return self.model_copy(update={"entries": {**self.entries, local_id: entry}})

    def without_entry(self, local_id: str) -> LedgerState:
        entries = {k: v for k, v in self.entries.items() if k != local_id}
        return self.model_copy(update={"entries": entries})

    def with_last_synced(self, when: datetime) -> LedgerState:
        return self.model_copy(update={"last_synced_at": when})

    def reverse_index(self) -> dict[str, str]:
        """Map remote id -> local id.

        After a conflict split both the superseded record (marked deleted) and
        the remote-side copy point at the same remote id; the live link wins.
        """
        index: dict[str, str] = {}
        for local_id, entry in self.entries.items():
            if entry.remote_id and entry.is_deleted:
                index.setdefault(entry.remote_id, local_id)
        for local_id, entry in self.entries.items():
            if entry.remote_id and not entry.is_deleted:
                index[entry.remote_id] = local_id
        return index
