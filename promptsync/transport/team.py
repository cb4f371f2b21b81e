"""Shared (team) workspace transport with role-gated writes."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Literal

from promptsync.exceptions import PermissionDeniedError
from promptsync.models.remote import UploadResult
from promptsync.transport.base import (
    RemoteConflict,
    TransportCapabilities,
    WritePermission,
    parse_conflict_error,
)
from promptsync.transport.http import build_upload_body
from promptsync.transport.personal import parse_remote_records, parse_upload_result

if TYPE_CHECKING:
    from promptsync.models.ledger import LedgerEntry
    from promptsync.models.prompt import PromptRecord
    from promptsync.models.remote import RemoteRecord
    from promptsync.services.device_service import DeviceInfo
    from promptsync.transport.http import BackendClient

logger = logging.getLogger(__name__)

TeamRole = Literal["owner", "admin", "editor", "viewer"]

# Higher rank = more privilege
ROLE_RANK: dict[str, int] = {"owner": 4, "admin": 3, "editor": 2, "viewer": 1}


def has_min_role(role: str, min_role: str) -> bool:
    return ROLE_RANK.get(role, 0) >= ROLE_RANK[min_role]


def can_edit(role: str) -> bool:
    """Editors and above may upload."""
    return has_min_role(role, "editor")


def can_delete(role: str) -> bool:
    """Admins and above may delete."""
    return has_min_role(role, "admin")


class TeamTransport:
    """Transport for a team workspace.

    Deletions are managed by team admins through the web UI, so remote
    deletion, backend-created assignment, capacity and restore are off.
    """

    mode: str = "team"
    capabilities = TransportCapabilities()

    def __init__(
        self,
        client: BackendClient,
        device: DeviceInfo,
        team_id: str,
        team_role: TeamRole,
    ) -> None:
        self.client = client
        self.device = device
        self.team_id = team_id
        self.team_role = team_role

    async def fetch_remote(self, include_deleted: bool = False) -> list[RemoteRecord]:
        """Fetch the team's remote records."""
        try:
            data = await self.client.call(
                "get-team-prompts",
                {"team_id": self.team_id, "include_deleted": include_deleted},
            )
        except PermissionDeniedError as exc:
            msg = f"You are not a member of team {self.team_id}"
            raise PermissionDeniedError(msg) from exc
        return parse_remote_records(data, "get-team-prompts")

    async def upload(self, record: PromptRecord, entry: LedgerEntry | None = None) -> UploadResult:
        """Upload a record. Raises PermissionDeniedError for insufficient roles."""
        if not can_edit(self.team_role):
            msg = f"Role {self.team_role!r} cannot edit team prompts"
            raise PermissionDeniedError(msg)
        body = build_upload_body(record, entry, self.device)
        body["team_id"] = self.team_id
        data = await self.client.call("sync-team-prompt", body)
        return parse_upload_result(data, "sync-team-prompt")

    async def delete(self, remote_id: str) -> None:
        logger.warning("Team prompts cannot be deleted from a device (remote id %s)", remote_id)

    def parse_conflict(self, error: BaseException) -> RemoteConflict | None:
        return parse_conflict_error(error)

    def write_permission(self) -> WritePermission:
        return WritePermission(
            can_upload=can_edit(self.team_role),
            can_delete=can_delete(self.team_role),
        )

    def identity(self) -> str:
        return self.device.name

    async def aclose(self) -> None:
        await self.client.aclose()
