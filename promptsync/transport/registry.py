"""Workspace mode registry."""

from __future__ import annotations

from typing import TYPE_CHECKING

from promptsync.transport.http import BackendClient
from promptsync.transport.personal import PersonalTransport
from promptsync.transport.team import TeamTransport

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    import httpx

    from promptsync.config import Settings
    from promptsync.services.device_service import DeviceInfo
    from promptsync.transport.base import SyncTransport

MODES: dict[str, type[PersonalTransport] | type[TeamTransport]] = {
    "personal": PersonalTransport,
    "team": TeamTransport,
}


def create_transport(
    mode: str,
    settings: Settings,
    device: DeviceInfo,
    token: str,
    *,
    workspace_id: str = "",
    workspace_name: str = "Unnamed Workspace",
    http_client: httpx.AsyncClient | None = None,
    on_session_expired: Callable[[], Awaitable[None]] | None = None,
) -> SyncTransport:
    """Create the transport for a workspace mode.

    Raises ValueError if the mode is unknown or is missing required settings.
    """
    if mode not in MODES:
        msg = f"Unknown workspace mode: {mode!r}. Available: {list(MODES)}"
        raise ValueError(msg)
    if mode == "team" and not settings.team_id:
        msg = "Team mode requires a team id"
        raise ValueError(msg)

    client = BackendClient(
        settings.api_url,
        token,
        timeout=settings.request_timeout,
        on_session_expired=on_session_expired,
        http_client=http_client,
    )
    if mode == "team":
        return TeamTransport(client, device, settings.team_id, settings.team_role)
    return PersonalTransport(
        client,
        device,
        workspace_id,
        workspace_name=workspace_name,
        quota_warning_percent=settings.quota_warning_percent,
    )


def list_modes() -> list[str]:
    """Return the supported workspace mode names."""
    return list(MODES.keys())
