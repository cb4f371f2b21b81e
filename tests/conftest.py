"""Shared test fixtures for promptsync."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from fake_backend import BASE_URL, TEST_TOKEN, FakeBackend

from promptsync.config import Settings
from promptsync.filesystem.ledger_store import JsonLedgerStore
from promptsync.filesystem.prompt_store import FilePromptStore
from promptsync.services.device_service import DeviceInfo
from promptsync.services.orchestrator_service import SyncOrchestrator
from promptsync.transport.http import BackendClient
from promptsync.transport.personal import PersonalTransport
from promptsync.transport.team import TeamTransport

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator
    from pathlib import Path

    import httpx


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Create test settings with temporary paths."""
    return Settings(
        debug=True,
        api_url=BASE_URL,
        prompts_dir=tmp_path / "prompts",
        state_dir=tmp_path / "state",
        device_name="Desktop (Linux)",
    )


@pytest.fixture
def device() -> DeviceInfo:
    return DeviceInfo(id="device-1", name="Desktop (Linux)", platform="linux", hostname="desktop")


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
async def http_client(backend: FakeBackend) -> AsyncGenerator[httpx.AsyncClient]:
    async with backend.client() as client:
        yield client


@pytest.fixture
def backend_client(http_client: httpx.AsyncClient) -> BackendClient:
    return BackendClient(BASE_URL, TEST_TOKEN, http_client=http_client)


@pytest.fixture
def prompt_store(test_settings: Settings) -> FilePromptStore:
    return FilePromptStore(test_settings.prompts_dir)


@pytest.fixture
def ledger_store(test_settings: Settings) -> JsonLedgerStore:
    return JsonLedgerStore(test_settings.state_dir)


@pytest.fixture
def workspace_id(ledger_store: JsonLedgerStore) -> str:
    return ledger_store.get_or_create_workspace_id()


@pytest.fixture
def personal_transport(
    backend_client: BackendClient, device: DeviceInfo, workspace_id: str
) -> PersonalTransport:
    return PersonalTransport(backend_client, device, workspace_id, workspace_name="Tests")


@pytest.fixture
def team_transport(
    backend: FakeBackend, backend_client: BackendClient, device: DeviceInfo
) -> TeamTransport:
    backend.add_team("team-1")
    return TeamTransport(backend_client, device, "team-1", "editor")


@pytest.fixture
def orchestrator(
    personal_transport: PersonalTransport,
    ledger_store: JsonLedgerStore,
    prompt_store: FilePromptStore,
    device: DeviceInfo,
    workspace_id: str,
) -> SyncOrchestrator:
    return SyncOrchestrator(
        personal_transport,
        ledger_store,
        prompt_store,
        device,
        user_id="user@example.com",
        workspace_id=workspace_id,
    )
