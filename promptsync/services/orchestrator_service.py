"""Sync orchestrator: one full pass from fetch to ledger commit."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from promptsync.exceptions import (
    LedgerNotInitializedError,
    NetworkUnavailableError,
    SessionExpiredError,
    SyncCancelledError,
    SyncError,
    SyncInProgressError,
)
from promptsync.models.prompt import generate_record_id, record_payload_size
from promptsync.services.datetime_service import now_utc
from promptsync.services.executor_service import PlanExecutor
from promptsync.services.sync_service import compute_sync_plan

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from datetime import datetime

    from promptsync.filesystem.ledger_store import JsonLedgerStore
    from promptsync.filesystem.prompt_store import FilePromptStore
    from promptsync.models.ledger import LedgerState
    from promptsync.models.plan import SyncPlan, SyncResult
    from promptsync.services.device_service import DeviceInfo
    from promptsync.transport.base import SyncTransport

logger = logging.getLogger(__name__)


class SyncPhase(StrEnum):
    IDLE = "idle"
    FETCHING = "fetching"
    PLANNING = "planning"
    EXECUTING = "executing"


@dataclass(frozen=True)
class SyncStatus:
    """Ledger summary for display."""

    user_id: str | None
    device_name: str
    last_synced_at: datetime | None
    synced_count: int
    deleted_count: int


@dataclass(frozen=True)
class DeletedRecord:
    """A record deleted through sync that may still be restored."""

    local_id: str
    remote_id: str
    deleted_at: datetime | None
    title: str


class SyncOrchestrator:
    """Runs sync passes for one workspace.

    At most one pass runs at a time per orchestrator. Each pass fetches the
    remote records, plans against the ledger, checks capacity and executes.
    An error aborts the pass but leaves everything committed so far in the
    ledger, so the next pass resumes from there.
    """

    def __init__(
        self,
        transport: SyncTransport,
        ledger_store: JsonLedgerStore,
        prompt_store: FilePromptStore,
        device: DeviceInfo,
        *,
        user_id: str | None = None,
        workspace_id: str | None = None,
        clock: Callable[[], datetime] = now_utc,
        id_factory: Callable[[], str] = generate_record_id,
    ) -> None:
        self.transport = transport
        self.ledger_store = ledger_store
        self.prompt_store = prompt_store
        self.device = device
        self.user_id = user_id
        self.workspace_id = workspace_id
        self.clock = clock
        self.id_factory = id_factory
        self.phase = SyncPhase.IDLE
        self._lock = asyncio.Lock()
        self._cancel_requested = False

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    async def sync(self) -> SyncResult:
        """Run one full sync pass.

        Raises SyncInProgressError if a pass is already running, and any
        pass-aborting SyncError from the transport or executor.
        """
        if self._lock.locked():
            msg = "A sync is already in progress for this workspace"
            raise SyncInProgressError(msg)
        async with self._lock:
            self._cancel_requested = False
            try:
                return await self._sync_inner()
            finally:
                self.phase = SyncPhase.IDLE

    def cancel(self) -> None:
        """Request cancellation; honored between executor phases."""
        if self.is_running:
            logger.info("Sync cancellation requested")
            self._cancel_requested = True

    async def _sync_inner(self) -> SyncResult:
        register = getattr(self.transport, "register_workspace", None)
        if register is not None:
            await register()

        state = self._load_or_initialize()

        self.phase = SyncPhase.FETCHING
        remote = await self.transport.fetch_remote(include_deleted=True)
        local = self.prompt_store.list_all()

        self.phase = SyncPhase.PLANNING
        capabilities = self.transport.capabilities
        plan = compute_sync_plan(
            local,
            remote,
            state.entries,
            state.last_synced_at,
            handle_remote_deletion=capabilities.handles_remote_deletion,
            handle_backend_created=capabilities.handles_backend_created,
            id_factory=self.id_factory,
        )
        logger.debug(
            "Plan: %d up, %d down, %d delete remote, %d delete local, %d assign, "
            "%d conflicts, %d links",
            len(plan.to_upload),
            len(plan.to_download),
            len(plan.to_delete_remotely),
            len(plan.to_delete_locally),
            len(plan.to_assign_local_id),
            len(plan.conflicts),
            len(plan.to_link),
        )
        if capabilities.checks_capacity:
            await self._check_capacity(plan)

        if self._cancel_requested:
            raise SyncCancelledError("Sync cancelled")

        self.phase = SyncPhase.EXECUTING
        executor = PlanExecutor(
            self.transport,
            self.ledger_store,
            self.prompt_store,
            clock=self.clock,
            id_factory=self.id_factory,
        )
        result = await executor.execute(plan, should_cancel=lambda: self._cancel_requested)
        self.ledger_store.update_last_synced_at(self.clock())

        stats = result.stats
        logger.info(
            "Sync complete: %d uploaded, %d downloaded, %d deleted, %d conflicts in %d ms",
            stats.uploaded,
            stats.downloaded,
            stats.deleted,
            stats.conflicts,
            stats.duration_ms,
        )
        if result.failures:
            logger.warning("%d item(s) failed and will be retried next pass", len(result.failures))
        return result

    def _load_or_initialize(self) -> LedgerState:
        state = self.ledger_store.get()
        if state is not None:
            return state
        workspace_id = self.workspace_id or self.ledger_store.get_or_create_workspace_id()
        logger.info("Initializing sync ledger for workspace %s...", workspace_id[:8])
        return self.ledger_store.initialize(self.user_id, self.device, workspace_id)

    async def _check_capacity(self, plan: SyncPlan) -> None:
        check = getattr(self.transport, "check_capacity", None)
        if check is None:
            return
        if not plan.upload_count:
            return
        outgoing = [*plan.to_upload, *(c.local for c in plan.conflicts)]
        await check(plan.upload_count, sum(record_payload_size(r) for r in outgoing))

    # -- ledger views -----------------------------------------------------

    def status(self) -> SyncStatus:
        """Summarize the ledger. Raises LedgerNotInitializedError before the first pass."""
        state = self.ledger_store.get()
        if state is None:
            msg = "Not configured for sync - please sign in first"
            raise LedgerNotInitializedError(msg)
        deleted = sum(1 for entry in state.entries.values() if entry.is_deleted)
        return SyncStatus(
            user_id=state.user_id,
            device_name=state.device_name,
            last_synced_at=state.last_synced_at,
            synced_count=len(state.entries) - deleted,
            deleted_count=deleted,
        )

    async def list_deleted(self) -> list[DeletedRecord]:
        """List ledger entries deleted through sync, titled from the remote side."""
        deleted = self.ledger_store.deleted_entries()
        if not deleted:
            return []
        remote = await self.transport.fetch_remote(include_deleted=True)
        titles = {r.remote_id: r.title for r in remote}
        return [
            DeletedRecord(
                local_id=local_id,
                remote_id=entry.remote_id,
                deleted_at=entry.deleted_at,
                title=titles.get(entry.remote_id, "Unknown"),
            )
            for local_id, entry in deleted
        ]

    async def restore_deleted(self, remote_ids: Iterable[str]) -> int:
        """Restore soft-deleted remote records; returns how many were restored.

        Failures for one id are logged and do not stop the others. A restored
        record whose local file is gone loses its ledger entry, so the next
        pass downloads it like any other new remote record.
        """
        restore = getattr(self.transport, "restore", None)
        if restore is None or not self.transport.capabilities.supports_restore:
            logger.warning("Restore is not supported in %s mode", self.transport.mode)
            return 0

        restored = 0
        for remote_id in remote_ids:
            try:
                await restore(remote_id)
            except (SessionExpiredError, NetworkUnavailableError):
                raise
            except SyncError as exc:
                logger.error("Failed to restore %s: %s", remote_id, exc)
                continue
            local_id = self.ledger_store.find_local_id_by_remote_id(remote_id)
            if local_id is not None:
                if self.prompt_store.get(local_id) is not None:
                    self.ledger_store.clear_deleted_flag(local_id)
                else:
                    self.ledger_store.remove_entry(local_id)
            restored += 1
        return restored

    def reset(self) -> None:
        """Forget all sync state; the next pass behaves like a first sync."""
        self.ledger_store.clear()

    async def aclose(self) -> None:
        await self.transport.aclose()
