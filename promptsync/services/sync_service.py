"""Sync service: three-way merge of local records, remote records and the ledger."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from promptsync.models.plan import (
    Conflict,
    LocalDeletion,
    LocalIdAssignment,
    PlanLink,
    RemoteDeletion,
    SyncPlan,
)
from promptsync.models.prompt import generate_record_id
from promptsync.services.datetime_service import ensure_aware
from promptsync.services.fingerprint_service import fingerprint_record, fingerprint_remote

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence
    from datetime import datetime

    from promptsync.models.ledger import LedgerEntry
    from promptsync.models.prompt import PromptRecord
    from promptsync.models.remote import RemoteRecord

logger = logging.getLogger(__name__)


def build_reverse_index(entries: Mapping[str, LedgerEntry]) -> dict[str, str]:
    """Map remote id -> local id over live (not deleted) ledger entries."""
    return {
        entry.remote_id: local_id
        for local_id, entry in entries.items()
        if entry.remote_id and not entry.is_deleted
    }


def compute_sync_plan(
    local: Sequence[PromptRecord],
    remote: Sequence[RemoteRecord],
    entries: Mapping[str, LedgerEntry],
    last_synced_at: datetime | None,
    *,
    handle_remote_deletion: bool = True,
    handle_backend_created: bool = True,
    id_factory: Callable[[], str] = generate_record_id,
) -> SyncPlan:
    """Compute the sync plan by comparing local state, remote state and the ledger.

    Pure: no I/O. For each local record the candidate remote record is found
    through the ledger, or on a first sync through the remote owner id. The
    ledger fingerprint is the common ancestor: a side whose current
    fingerprint differs from it has changed since the last sync.

    *last_synced_at* is None only when this workspace has never completed a
    pass; in that case records without a ledger fingerprint are compared by
    content alone.
    """
    to_upload: list[PromptRecord] = []
    to_download: list[RemoteRecord] = []
    to_delete_remotely: list[RemoteDeletion] = []
    to_delete_locally: list[LocalDeletion] = []
    to_assign: list[LocalIdAssignment] = []
    conflicts: list[Conflict] = []
    to_link: list[PlanLink] = []

    local_ids = {p.id for p in local}
    active = {r.remote_id: r for r in remote if not r.is_deleted}
    deleted = {r.remote_id: r for r in remote if r.is_deleted}
    remote_to_local = build_reverse_index(entries)
    first_workspace_sync = last_synced_at is None

    # Remote ids whose local record was deleted since the last sync
    deleted_locally: list[str] = []
    for local_id, entry in entries.items():
        if local_id not in local_ids and not entry.is_deleted and entry.remote_id:
            deleted_locally.append(entry.remote_id)
    deleted_locally_set = set(deleted_locally)

    matched_remote_ids: set[str] = set()
    owner_index: dict[str, RemoteRecord] = {}
    for r in active.values():
        if r.owner_local_id is not None:
            owner_index.setdefault(r.owner_local_id, r)

    for record in local:
        entry = entries.get(record.id)
        remote_id = entry.remote_id if entry is not None and entry.remote_id else None

        if entry is not None and entry.is_deleted:
            # Stale link for a record that still exists locally; the executor
            # clears it and uploads the record as new
            if remote_id:
                logger.warning(
                    "Ledger marks %s deleted but the record still exists locally; re-uploading",
                    record.id,
                )
                matched_remote_ids.add(remote_id)
            to_upload.append(record)
            continue

        candidate = active.get(remote_id) if remote_id else None
        if candidate is None and remote_id is None:
            candidate = owner_index.get(record.id)
            if candidate is not None and candidate.remote_id in remote_to_local:
                # Already linked to another local record
                candidate = None

        if candidate is None:
            gone = deleted.get(remote_id) if remote_id else None
            if gone is None:
                to_upload.append(record)
            elif gone.deleted_at is not None and ensure_aware(record.modified) > gone.deleted_at:
                to_upload.append(record)
            # else: remote deletion wins, handled in the deletion pass below
            continue

        matched_remote_ids.add(candidate.remote_id)
        local_fp = fingerprint_record(record)
        remote_fp = fingerprint_remote(candidate)
        base_fp = entry.fingerprint_at_last_sync if entry is not None else ""

        if not base_fp and first_workspace_sync:
            if local_fp != remote_fp:
                conflicts.append(Conflict(local=record, remote=candidate))
            elif ensure_aware(record.modified) > candidate.updated_at:
                to_upload.append(record)
            else:
                to_link.append(PlanLink(local=record, remote=candidate))
            continue

        local_changed = local_fp != base_fp
        remote_changed = remote_fp != base_fp
        if local_changed and remote_changed:
            if local_fp != remote_fp:
                conflicts.append(Conflict(local=record, remote=candidate))
            else:
                # Converged independently; refresh the baseline
                to_link.append(PlanLink(local=record, remote=candidate))
        elif local_changed:
            to_upload.append(record)
        elif remote_changed:
            to_download.append(candidate)

    # Remote soft-deletes of records that still exist locally
    upload_ids = {p.id for p in to_upload}
    for r in deleted.values():
        local_id = remote_to_local.get(r.remote_id)
        if local_id is None or local_id not in local_ids or local_id in upload_ids:
            continue
        if r.deleted_at is None:
            continue
        to_delete_locally.append(
            LocalDeletion(local_id=local_id, remote_id=r.remote_id, deleted_at=r.deleted_at)
        )

    if handle_remote_deletion:
        for remote_id in deleted_locally:
            to_delete_remotely.append(RemoteDeletion(remote_id=remote_id))

    # Remote records with no local counterpart
    for r in active.values():
        if r.remote_id in matched_remote_ids or r.remote_id in deleted_locally_set:
            continue
        local_id = remote_to_local.get(r.remote_id)
        if local_id is not None and local_id in local_ids:
            continue
        if r.owner_local_id is None and handle_backend_created:
            to_assign.append(LocalIdAssignment(remote=r, new_local_id=id_factory()))
        else:
            to_download.append(r)

    plan = SyncPlan(
        to_upload=tuple(to_upload),
        to_download=tuple(to_download),
        to_delete_remotely=tuple(to_delete_remotely),
        to_delete_locally=tuple(to_delete_locally),
        to_assign_local_id=tuple(to_assign),
        conflicts=tuple(conflicts),
        to_link=tuple(to_link),
    )
    # Downloads are applied in order, so a claimed owner id is taken for later ones
    targets: dict[str, str] = {}
    claimed: set[str] = set()
    for r in plan.to_download:
        target = resolve_download_target(
            r, entries, remote_to_local, lambda i: i in local_ids or i in claimed
        )
        if target is not None:
            targets[r.remote_id] = target
            claimed.add(target)
    plan.check_download_targets(targets)
    return plan


def resolve_download_target(
    remote: RemoteRecord,
    entries: Mapping[str, LedgerEntry],
    remote_to_local: Mapping[str, str],
    exists_locally: Callable[[str], bool],
) -> str | None:
    """Return the local id a downloaded record is written to.

    The live ledger link wins. Otherwise the remote owner id is reused unless
    it already belongs to a different record, locally or in the ledger. None
    means a fresh id must be generated.
    """
    linked = remote_to_local.get(remote.remote_id)
    if linked is not None:
        return linked
    owner = remote.owner_local_id
    if owner is None:
        return None
    entry = entries.get(owner)
    if entry is not None:
        return owner if entry.remote_id == remote.remote_id else None
    return None if exists_locally(owner) else owner
