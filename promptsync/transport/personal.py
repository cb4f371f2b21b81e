"""Personal workspace transport."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from promptsync.exceptions import (
    CapacityExceededError,
    PermissionDeniedError,
    RemoteAlreadyGoneError,
    RemoteNotFoundError,
    TransportError,
)
from promptsync.models.remote import CapacityQuota, RemoteRecord, UploadResult
from promptsync.transport.base import (
    RemoteConflict,
    TransportCapabilities,
    WritePermission,
    parse_conflict_error,
)
from promptsync.transport.http import build_upload_body

if TYPE_CHECKING:
    from promptsync.models.ledger import LedgerEntry
    from promptsync.models.prompt import PromptRecord
    from promptsync.services.device_service import DeviceInfo
    from promptsync.transport.http import BackendClient

logger = logging.getLogger(__name__)

_MB = 1024 * 1024


def parse_remote_records(data: Any, function: str) -> list[RemoteRecord]:
    """Validate a ``{"prompts": [...]}`` response body."""
    raw = data.get("prompts") if isinstance(data, dict) else None
    if raw is None:
        return []
    try:
        return [RemoteRecord.model_validate(item) for item in raw]
    except ValidationError as exc:
        msg = f"{function}: malformed remote record: {exc.error_count()} validation error(s)"
        raise TransportError(msg) from exc


def parse_upload_result(data: Any, function: str) -> UploadResult:
    try:
        return UploadResult.model_validate(data)
    except ValidationError as exc:
        msg = f"{function}: malformed upload response"
        raise TransportError(msg) from exc


class PersonalTransport:
    """Transport for a user's own workspace.

    Full write access, remote deletion, backend-created records, capacity
    checks and restore are all supported.
    """

    mode: str = "personal"
    capabilities = TransportCapabilities(
        handles_remote_deletion=True,
        handles_backend_created=True,
        checks_capacity=True,
        supports_restore=True,
    )

    def __init__(
        self,
        client: BackendClient,
        device: DeviceInfo,
        workspace_id: str,
        workspace_name: str = "Unnamed Workspace",
        quota_warning_percent: int = 90,
    ) -> None:
        self.client = client
        self.device = device
        self.workspace_id = workspace_id
        self.workspace_name = workspace_name
        self.quota_warning_percent = quota_warning_percent

    async def fetch_remote(self, include_deleted: bool = False) -> list[RemoteRecord]:
        """Fetch the workspace's remote records."""
        data = await self.client.call(
            "get-user-prompts",
            {"workspace_id": self.workspace_id, "include_deleted": include_deleted},
        )
        return parse_remote_records(data, "get-user-prompts")

    async def upload(self, record: PromptRecord, entry: LedgerEntry | None = None) -> UploadResult:
        """Upload a record with optimistic locking against *entry*'s version."""
        body = build_upload_body(record, entry, self.device)
        body["workspace_id"] = self.workspace_id
        data = await self.client.call("sync-prompt", body)
        return parse_upload_result(data, "sync-prompt")

    async def delete(self, remote_id: str) -> None:
        """Soft-delete a remote record. Raises RemoteAlreadyGoneError on 404."""
        try:
            await self.client.call(
                "delete-prompt",
                {
                    "workspace_id": self.workspace_id,
                    "remote_id": remote_id,
                    "device_id": self.device.id,
                },
            )
        except RemoteNotFoundError as exc:
            logger.info("Remote record %s already deleted", remote_id)
            raise RemoteAlreadyGoneError(remote_id) from exc

    async def restore(self, remote_id: str) -> None:
        """Restore a soft-deleted remote record."""
        await self.client.call(
            "restore-prompt",
            {"workspace_id": self.workspace_id, "remote_id": remote_id},
        )

    def parse_conflict(self, error: BaseException) -> RemoteConflict | None:
        return parse_conflict_error(error)

    def write_permission(self) -> WritePermission:
        return WritePermission(can_upload=True, can_delete=True)

    def identity(self) -> str:
        return self.device.name

    async def fetch_quota(self) -> CapacityQuota:
        data = await self.client.call("get-user-quota", {})
        try:
            return CapacityQuota.model_validate(data)
        except ValidationError as exc:
            msg = "get-user-quota: malformed quota response"
            raise TransportError(msg) from exc

    async def check_capacity(self, upload_count: int, upload_bytes: int) -> None:
        """Reject the pass before any write if it would exceed the user's quota."""
        quota = await self.fetch_quota()

        if quota.prompt_count + upload_count > quota.prompt_limit:
            overage = upload_count - (quota.prompt_limit - quota.prompt_count)
            msg = (
                f"Cannot sync: would exceed limit by {overage} prompts. "
                f"Delete {overage} prompts and try again."
            )
            raise CapacityExceededError(msg)

        if quota.storage_bytes + upload_bytes > quota.storage_limit:
            overage_mb = (quota.storage_bytes + upload_bytes - quota.storage_limit) / _MB
            limit_mb = quota.storage_limit / _MB
            msg = (
                f"Cannot sync: would exceed {limit_mb:.0f} MB storage limit by "
                f"{overage_mb:.1f} MB. Delete some prompts and try again."
            )
            raise CapacityExceededError(msg)

        if quota.percentage_used > self.quota_warning_percent:
            logger.warning(
                "Using %.0f%% of the storage quota; consider deleting old prompts",
                quota.percentage_used,
            )

    async def register_workspace(self) -> None:
        """Register this workspace with the backend.

        Backend and permission failures are only logged; an expired session
        or an unreachable backend still propagates.
        """
        try:
            await self.client.call(
                "register-workspace",
                {
                    "workspace_id": self.workspace_id,
                    "workspace_name": self.workspace_name,
                    "device_name": self.device.name,
                },
            )
        except (TransportError, PermissionDeniedError) as exc:
            logger.warning("Failed to register workspace %s: %s", self.workspace_id, exc)

    async def aclose(self) -> None:
        await self.client.aclose()
