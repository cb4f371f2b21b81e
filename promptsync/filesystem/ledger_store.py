"""JSON persistence for the sync ledger.

The ledger lives in ``sync-state.json`` next to ``workspace-meta.json``
inside the state directory. All writes go through a temporary file and
``os.replace`` so a crash never leaves a half-written ledger behind.
"""

from __future__ import annotations

import json
import logging
import os
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from promptsync.exceptions import LedgerNotInitializedError
from promptsync.models.ledger import CURRENT_SCHEMA_VERSION, LedgerEntry, LedgerState

if TYPE_CHECKING:
    from datetime import datetime
    from pathlib import Path

    from promptsync.services.device_service import DeviceInfo

logger = logging.getLogger(__name__)

SYNC_STATE_FILE = "sync-state.json"
WORKSPACE_META_FILE = "workspace-meta.json"

# Ledgers written before workspace isolation carry no schema version
_LEGACY_SCHEMA_VERSION = 2


def _atomic_write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f"{path.name}.tmp")
    tmp_path.write_text(text, encoding="utf-8")
    os.replace(tmp_path, path)


@dataclass
class JsonLedgerStore:
    """File-backed ledger store for one workspace on one device."""

    state_dir: Path

    @property
    def state_file(self) -> Path:
        return self.state_dir / SYNC_STATE_FILE

    @property
    def meta_file(self) -> Path:
        return self.state_dir / WORKSPACE_META_FILE

    # -- whole-state operations ------------------------------------------

    def get(self) -> LedgerState | None:
        """Load the ledger, migrating older schema versions. None if never synced."""
        try:
            raw = self.state_file.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        data: dict[str, Any] = json.loads(raw)
        version = data.get("schema_version") or _LEGACY_SCHEMA_VERSION
        if version >= CURRENT_SCHEMA_VERSION and data.get("workspace_id"):
            return LedgerState.model_validate(data)
        return self._migrate(data)

    def initialize(self, user_id: str | None, device: DeviceInfo, workspace_id: str) -> LedgerState:
        """Create and persist an empty ledger."""
        state = LedgerState(
            workspace_id=workspace_id,
            user_id=user_id,
            device_id=device.id,
            device_name=device.name,
        )
        self.save(state)
        return state

    def save(self, state: LedgerState) -> None:
        """Replace the persisted ledger."""
        _atomic_write(self.state_file, state.model_dump_json(indent=2))

    def clear(self) -> None:
        """Delete the ledger file entirely (sign-out or reset)."""
        self.state_file.unlink(missing_ok=True)

    def _require(self) -> LedgerState:
        state = self.get()
        if state is None:
            msg = "Sync ledger has not been initialized"
            raise LedgerNotInitializedError(msg)
        return state

    # -- entry operations -------------------------------------------------

    def get_entry(self, local_id: str) -> LedgerEntry | None:
        state = self.get()
        return state.entries.get(local_id) if state is not None else None

    def set_entry(self, local_id: str, entry: LedgerEntry) -> None:
        state = self._require()
        self.save(state.with_entry(local_id, entry))

    def remove_entry(self, local_id: str) -> None:
        """Remove an entry. A missing ledger is not an error."""
        state = self.get()
        if state is None:
            return
        self.save(state.without_entry(local_id))

    def find_local_id_by_remote_id(self, remote_id: str) -> str | None:
        state = self.get()
        if state is None:
            return None
        return state.reverse_index().get(remote_id)

    def mark_deleted(self, local_id: str, when: datetime) -> None:
        """Flag an entry as deleted, keeping it for restore. Unknown ids are ignored."""
        state = self._require()
        entry = state.entries.get(local_id)
        if entry is None:
            return
        updated = entry.model_copy(update={"is_deleted": True, "deleted_at": when})
        self.save(state.with_entry(local_id, updated))

    def clear_deleted_flag(self, local_id: str) -> None:
        state = self._require()
        entry = state.entries.get(local_id)
        if entry is None:
            return
        updated = entry.model_copy(update={"is_deleted": False, "deleted_at": None})
        self.save(state.with_entry(local_id, updated))

    def deleted_entries(self) -> list[tuple[str, LedgerEntry]]:
        """Return ``(local_id, entry)`` pairs flagged as deleted."""
        state = self.get()
        if state is None:
            return []
        return [(local_id, entry) for local_id, entry in state.entries.items() if entry.is_deleted]

    def update_last_synced_at(self, when: datetime) -> None:
        state = self._require()
        self.save(state.with_last_synced(when))

    # -- workspace metadata ----------------------------------------------

    def read_workspace_id(self) -> str | None:
        try:
            data = json.loads(self.meta_file.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        workspace_id = data.get("workspace_id") if isinstance(data, dict) else None
        return str(workspace_id) if workspace_id else None

    def get_or_create_workspace_id(self) -> str:
        """Return the workspace id, creating ``workspace-meta.json`` on first use."""
        existing = self.read_workspace_id()
        if existing:
            return existing
        workspace_id = str(uuid.uuid4())
        _atomic_write(self.meta_file, json.dumps({"workspace_id": workspace_id}, indent=2))
        logger.info("Created workspace id %s...", workspace_id[:8])
        return workspace_id

    def _migrate(self, data: dict[str, Any]) -> LedgerState:
        if not data.get("workspace_id"):
            workspace_id = self.read_workspace_id()
            if workspace_id is None:
                # Picked up again once workspace-meta.json exists
                logger.info("No workspace metadata found, skipping ledger migration")
                data.setdefault("schema_version", _LEGACY_SCHEMA_VERSION)
                return LedgerState.model_validate(data)
            data["workspace_id"] = workspace_id
        data["schema_version"] = CURRENT_SCHEMA_VERSION
        state = LedgerState.model_validate(data)
        self.save(state)
        logger.info(
            "Migrated sync ledger to v%d with workspace id %s...",
            CURRENT_SCHEMA_VERSION,
            str(state.workspace_id)[:8],
        )
        return state
