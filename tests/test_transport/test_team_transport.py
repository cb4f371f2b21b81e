"""Tests for the team workspace transport and its role checks."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from factories import make_record

from promptsync.exceptions import PermissionDeniedError
from promptsync.transport.team import TeamTransport, can_delete, can_edit, has_min_role

if TYPE_CHECKING:
    from fake_backend import FakeBackend

    from promptsync.services.device_service import DeviceInfo
    from promptsync.transport.http import BackendClient


class TestRoles:
    @pytest.mark.parametrize(
        ("role", "edit", "delete"),
        [
            ("owner", True, True),
            ("admin", True, True),
            ("editor", True, False),
            ("viewer", False, False),
            ("stranger", False, False),
        ],
    )
    def test_role_matrix(self, role: str, edit: bool, delete: bool) -> None:
        assert can_edit(role) is edit
        assert can_delete(role) is delete

    def test_min_role(self) -> None:
        assert has_min_role("owner", "viewer")
        assert not has_min_role("viewer", "editor")


class TestTeamTransport:
    async def test_fetch_is_scoped_to_team(
        self, team_transport: TeamTransport, backend: FakeBackend, workspace_id: str
    ) -> None:
        backend.create_record("team:team-1", title="Shared", content="a")
        backend.create_record(f"ws:{workspace_id}", title="Private", content="b")

        records = await team_transport.fetch_remote()

        assert [r.title for r in records] == ["Shared"]

    async def test_non_member_is_told_so(
        self, backend_client: BackendClient, device: DeviceInfo
    ) -> None:
        outsider = TeamTransport(backend_client, device, "team-x", "owner")
        with pytest.raises(PermissionDeniedError, match="not a member of team team-x"):
            await outsider.fetch_remote()

    async def test_editor_uploads(
        self, team_transport: TeamTransport, backend: FakeBackend
    ) -> None:
        uploaded = await team_transport.upload(make_record("p1"))
        assert backend.records[uploaded.remote_id]["scope"] == "team:team-1"

    async def test_viewer_cannot_upload(
        self,
        backend: FakeBackend,
        backend_client: BackendClient,
        device: DeviceInfo,
    ) -> None:
        backend.add_team("team-1")
        viewer = TeamTransport(backend_client, device, "team-1", "viewer")
        with pytest.raises(PermissionDeniedError, match="viewer"):
            await viewer.upload(make_record("p1"))
        assert backend.calls_to("sync-team-prompt") == 0

    async def test_delete_is_a_no_op(
        self, team_transport: TeamTransport, backend: FakeBackend
    ) -> None:
        uploaded = await team_transport.upload(make_record("p1"))
        await team_transport.delete(uploaded.remote_id)
        assert backend.records[uploaded.remote_id]["deleted_at"] is None
        assert backend.calls_to("delete-prompt") == 0

    def test_capabilities_are_off(self, team_transport: TeamTransport) -> None:
        caps = team_transport.capabilities
        assert not caps.handles_remote_deletion
        assert not caps.handles_backend_created
        assert not caps.checks_capacity
        assert not caps.supports_restore
        permission = team_transport.write_permission()
        assert permission.can_upload
        assert not permission.can_delete
