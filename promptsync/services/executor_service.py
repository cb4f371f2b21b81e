"""Plan executor: apply a sync plan to the local store, the backend and the ledger."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from promptsync.exceptions import (
    ConflictRetryError,
    NetworkUnavailableError,
    PermissionDeniedError,
    RemoteAlreadyGoneError,
    SessionExpiredError,
    SyncCancelledError,
    SyncError,
)
from promptsync.models.ledger import LedgerEntry
from promptsync.models.plan import ItemFailure, SyncResult
from promptsync.models.prompt import generate_record_id, merge_version_histories
from promptsync.services.conflict_service import remote_to_record, resolve_conflict
from promptsync.services.datetime_service import now_utc
from promptsync.services.fingerprint_service import fingerprint_record, fingerprint_remote
from promptsync.services.sync_service import build_reverse_index, resolve_download_target
from promptsync.transport.base import ConflictCode

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from promptsync.filesystem.ledger_store import JsonLedgerStore
    from promptsync.filesystem.prompt_store import FilePromptStore
    from promptsync.models.plan import SyncPlan
    from promptsync.models.prompt import PromptRecord
    from promptsync.models.remote import RemoteRecord, UploadResult
    from promptsync.transport.base import SyncTransport

logger = logging.getLogger(__name__)

# Errors that end the whole pass; everything else is scoped to one item
ABORT_ERRORS: tuple[type[SyncError], ...] = (
    ConflictRetryError,
    SessionExpiredError,
    NetworkUnavailableError,
    SyncCancelledError,
)

# Non-abort failures recorded per item
_ITEM_ERRORS = (SyncError, OSError, ValueError)


class PlanExecutor:
    """Executes a SyncPlan phase by phase.

    Phase order is fixed: conflicts, remote-triggered local deletions,
    remote deletions, uploads, downloads, local-id assignment, links.
    Every ledger write happens right after the side effect it records, so a
    pass aborted midway leaves a ledger that matches what was done.
    """

    def __init__(
        self,
        transport: SyncTransport,
        ledger_store: JsonLedgerStore,
        prompt_store: FilePromptStore,
        clock: Callable[[], datetime] = now_utc,
        id_factory: Callable[[], str] = generate_record_id,
    ) -> None:
        self.transport = transport
        self.ledger_store = ledger_store
        self.prompt_store = prompt_store
        self.clock = clock
        self.id_factory = id_factory

    async def execute(
        self,
        plan: SyncPlan,
        should_cancel: Callable[[], bool] | None = None,
    ) -> SyncResult:
        """Execute *plan* and return statistics plus per-item failures.

        Raises one of ``ABORT_ERRORS`` if the pass cannot continue.
        """
        started = time.monotonic()
        result = SyncResult()
        permission = self.transport.write_permission()
        capabilities = self.transport.capabilities

        def checkpoint() -> None:
            if should_cancel is not None and should_cancel():
                raise SyncCancelledError("Sync cancelled")

        checkpoint()
        for conflict in plan.conflicts:
            try:
                await self._split_conflict(
                    conflict.local, conflict.remote, permission.can_upload, result
                )
            except ABORT_ERRORS:
                raise
            except _ITEM_ERRORS as exc:
                self._record_failure(result, "conflict", conflict.local.id, exc)
                continue
            result.conflicts.append(conflict)
            result.stats.conflicts += 1

        checkpoint()
        for deletion in plan.to_delete_locally:
            try:
                if self.prompt_store.delete_by_id(deletion.local_id):
                    self.ledger_store.set_entry(
                        deletion.local_id,
                        LedgerEntry(
                            remote_id=deletion.remote_id,
                            fingerprint_at_last_sync="",
                            last_synced_at=self.clock(),
                            remote_version_at_last_sync=0,
                            is_deleted=True,
                            deleted_at=deletion.deleted_at,
                        ),
                    )
                    result.stats.deleted += 1
            except _ITEM_ERRORS as exc:
                self._record_failure(result, "delete_local", deletion.local_id, exc)

        checkpoint()
        if capabilities.handles_remote_deletion and permission.can_delete:
            for remote_deletion in plan.to_delete_remotely:
                try:
                    await self._delete_remote(remote_deletion.remote_id)
                except ABORT_ERRORS:
                    raise
                except PermissionDeniedError as exc:
                    logger.warning(
                        "Skipping remote deletion of %s: %s", remote_deletion.remote_id, exc
                    )
                    continue
                except _ITEM_ERRORS as exc:
                    self._record_failure(result, "delete_remote", remote_deletion.remote_id, exc)
                    continue
                result.stats.deleted += 1
        elif plan.to_delete_remotely:
            logger.info(
                "Not deleting %d remote record(s): %s mode lacks delete permission",
                len(plan.to_delete_remotely),
                self.transport.mode,
            )

        checkpoint()
        if permission.can_upload:
            for record in plan.to_upload:
                try:
                    await self._upload(record)
                except ABORT_ERRORS:
                    raise
                except PermissionDeniedError as exc:
                    logger.warning("Skipping upload of %s: %s", record.id, exc)
                    continue
                except _ITEM_ERRORS as exc:
                    self._record_failure(result, "upload", record.id, exc)
                    continue
                result.stats.uploaded += 1
        elif plan.to_upload:
            logger.info("Not uploading %d record(s): read-only access", len(plan.to_upload))

        checkpoint()
        for remote in plan.to_download:
            try:
                self._download(remote)
            except _ITEM_ERRORS as exc:
                self._record_failure(result, "download", remote.remote_id, exc)
                continue
            result.stats.downloaded += 1

        checkpoint()
        if capabilities.handles_backend_created:
            for assignment in plan.to_assign_local_id:
                try:
                    await self._assign_local_id(
                        assignment.remote, assignment.new_local_id, permission.can_upload
                    )
                except ABORT_ERRORS:
                    raise
                except _ITEM_ERRORS as exc:
                    self._record_failure(result, "assign", assignment.remote.remote_id, exc)
                    continue
                result.stats.downloaded += 1

        checkpoint()
        for link in plan.to_link:
            try:
                self._link(link.local.id, link.remote)
            except _ITEM_ERRORS as exc:
                self._record_failure(result, "link", link.local.id, exc)
                continue
            result.stats.linked += 1

        result.stats.duration_ms = int((time.monotonic() - started) * 1000)
        return result

    # -- phases -----------------------------------------------------------

    async def _split_conflict(
        self,
        local: PromptRecord,
        remote: RemoteRecord,
        can_upload: bool,
        result: SyncResult,
    ) -> None:
        local_copy, remote_copy = resolve_conflict(
            local, remote, self.transport.identity(), self.id_factory
        )
        logger.info(
            "Conflict on %s: keeping %s (local) and %s (remote)",
            local.id,
            local_copy.id,
            remote_copy.id,
        )
        self.prompt_store.save_directly(local_copy)
        try:
            self.prompt_store.save_directly(remote_copy)
        except OSError:
            # Leave the original as the only copy; the next pass splits it again
            self.prompt_store.delete_by_id(local_copy.id)
            raise
        self.prompt_store.delete_by_id(local.id)
        self.ledger_store.mark_deleted(local.id, self.clock())

        if can_upload:
            try:
                uploaded = await self.transport.upload(local_copy)
                self._record_upload(local_copy, uploaded)
            except ABORT_ERRORS:
                raise
            except _ITEM_ERRORS as exc:
                logger.warning("Conflict copy %s not uploaded; will retry", local_copy.id)
                self._record_failure(result, "conflict", local_copy.id, exc)

        try:
            self._link(remote_copy.id, remote)
        except _ITEM_ERRORS as exc:
            logger.warning(
                "Failed to link conflict copy %s to %s: %s", remote_copy.id, remote.remote_id, exc
            )
            if not can_upload:
                self._record_failure(result, "conflict", remote_copy.id, exc)
                return
            try:
                uploaded = await self.transport.upload(remote_copy)
                self._record_upload(remote_copy, uploaded)
            except ABORT_ERRORS:
                raise
            except _ITEM_ERRORS as upload_exc:
                self._record_failure(result, "conflict", remote_copy.id, upload_exc)

    async def _delete_remote(self, remote_id: str) -> None:
        try:
            await self.transport.delete(remote_id)
        except RemoteAlreadyGoneError:
            logger.debug("Remote record %s already gone", remote_id)
        local_id = self.ledger_store.find_local_id_by_remote_id(remote_id)
        if local_id is not None:
            self.ledger_store.mark_deleted(local_id, self.clock())

    async def _upload(self, record: PromptRecord) -> None:
        entry = self.ledger_store.get_entry(record.id)
        if entry is not None and entry.remote_id and entry.is_deleted:
            # Ledger points at a record we deleted; start over as a new record
            logger.info("Ledger for %s points at a deleted record; uploading as new", record.id)
            self.ledger_store.remove_entry(record.id)
            entry = None
        uploaded = await self._upload_with_conflict_handling(record, entry)
        self._record_upload(record, uploaded)

    async def _upload_with_conflict_handling(
        self, record: PromptRecord, entry: LedgerEntry | None
    ) -> UploadResult:
        try:
            return await self.transport.upload(record, entry)
        except SyncError as exc:
            conflict = self.transport.parse_conflict(exc)
            if conflict is None:
                raise
            if conflict.code is ConflictCode.CONTENT_SOFT_DELETED:
                logger.info("Remote record for %s was deleted; uploading as new", record.id)
                return await self.transport.upload(record)
            logger.warning(
                "%s for %s (expected v%s, actual v%s); the pass must be re-run",
                conflict.code,
                record.id,
                conflict.details.get("expected_version"),
                conflict.details.get("actual_version"),
            )
            raise ConflictRetryError(f"{conflict.code}: {conflict.message}") from exc

    def _download(self, remote: RemoteRecord) -> None:
        state = self.ledger_store.get()
        entries = state.entries if state is not None else {}
        target = resolve_download_target(
            remote,
            entries,
            build_reverse_index(entries),
            self._occupied,
        )
        record = remote_to_record(remote, local_id=target or self.id_factory())
        existing = self.prompt_store.get(record.id) if target is not None else None
        if existing is not None and existing.versions:
            record.versions = merge_version_histories(existing.versions, record.versions)
            logger.debug("Merged history of %s: %d versions", record.id, len(record.versions))
        self.prompt_store.save_directly(record)
        self._link(record.id, remote)

    async def _assign_local_id(self, remote: RemoteRecord, local_id: str, can_upload: bool) -> None:
        record = remote_to_record(remote, local_id=local_id)
        self.prompt_store.save_directly(record)
        link = LedgerEntry(
            remote_id=remote.remote_id,
            fingerprint_at_last_sync=fingerprint_remote(remote),
            last_synced_at=self.clock(),
            remote_version_at_last_sync=remote.version,
        )
        if not can_upload:
            self.ledger_store.set_entry(local_id, link)
            return
        try:
            uploaded = await self.transport.upload(record, link)
        except ABORT_ERRORS:
            raise
        except SyncError as exc:
            # Keep the local copy; an empty baseline is re-evaluated next pass
            logger.warning("Could not assign local id to %s: %s", remote.remote_id, exc)
            self.ledger_store.set_entry(
                local_id, link.model_copy(update={"fingerprint_at_last_sync": ""})
            )
            return
        self._record_upload(record, uploaded)

    def _occupied(self, local_id: str) -> bool:
        try:
            return self.prompt_store.get(local_id) is not None
        except ValueError:
            # Not usable as a file name
            return True

    def _link(self, local_id: str, remote: RemoteRecord) -> None:
        self.ledger_store.set_entry(
            local_id,
            LedgerEntry(
                remote_id=remote.remote_id,
                fingerprint_at_last_sync=fingerprint_remote(remote),
                last_synced_at=self.clock(),
                remote_version_at_last_sync=remote.version,
            ),
        )

    # -- helpers ----------------------------------------------------------

    def _record_upload(self, record: PromptRecord, uploaded: UploadResult) -> None:
        self.ledger_store.set_entry(
            record.id,
            LedgerEntry(
                remote_id=uploaded.remote_id,
                fingerprint_at_last_sync=fingerprint_record(record),
                last_synced_at=self.clock(),
                remote_version_at_last_sync=uploaded.version,
            ),
        )

    @staticmethod
    def _record_failure(result: SyncResult, phase: str, item_id: str, exc: Exception) -> None:
        logger.error("Sync %s failed for %s: %s", phase, item_id, exc)
        result.failures.append(ItemFailure(phase=phase, item_id=item_id, reason=str(exc)))
