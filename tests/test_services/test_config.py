"""Tests for sync configuration."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import pytest
from pydantic import ValidationError

from promptsync.config import Settings, configure_logging

if TYPE_CHECKING:
    from pathlib import Path


class TestSettings:
    def test_default_settings(self) -> None:
        s = Settings(_env_file=None)
        assert s.debug is False
        assert s.workspace_mode == "personal"
        assert s.quota_warning_percent == 90
        assert s.request_timeout == 30.0

    def test_custom_settings(self, tmp_path: Path) -> None:
        s = Settings(
            _env_file=None,
            workspace_mode="team",
            team_id="team-1",
            team_role="admin",
            prompts_dir=tmp_path / "prompts",
        )
        assert s.team_role == "admin"
        assert s.prompts_dir == tmp_path / "prompts"

    def test_settings_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PROMPTSYNC_API_URL", "https://sync.example.com/functions/v1")
        monkeypatch.setenv("PROMPTSYNC_DEVICE_NAME", "Build box")
        s = Settings(_env_file=None)
        assert s.api_url == "https://sync.example.com/functions/v1"
        assert s.device_name == "Build box"

    def test_settings_from_fixture(self, test_settings: Settings) -> None:
        assert test_settings.debug is True
        assert test_settings.device_name == "Desktop (Linux)"

    def test_rejects_non_positive_timeout(self) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, request_timeout=0)

    def test_rejects_unknown_workspace_mode(self) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, workspace_mode="shared")


class TestValidateRuntime:
    def test_accepts_https(self) -> None:
        Settings(_env_file=None, api_url="https://sync.example.com").validate_runtime()

    def test_accepts_http_for_localhost(self) -> None:
        Settings(_env_file=None, api_url="http://localhost:54321").validate_runtime()

    def test_rejects_insecure_http_for_remote_hosts(self) -> None:
        s = Settings(_env_file=None, api_url="http://sync.example.com")
        with pytest.raises(ValueError, match="HTTPS"):
            s.validate_runtime()

    def test_allows_insecure_http_when_flag_enabled(self) -> None:
        s = Settings(_env_file=None, api_url="http://sync.example.com", allow_insecure_http=True)
        s.validate_runtime()

    def test_rejects_url_without_host(self) -> None:
        with pytest.raises(ValueError, match="scheme and host"):
            Settings(_env_file=None, api_url="sync.example.com").validate_runtime()

    def test_team_mode_requires_team_id(self) -> None:
        s = Settings(_env_file=None, workspace_mode="team")
        with pytest.raises(ValueError, match="TEAM_ID"):
            s.validate_runtime()


class TestConfigureLogging:
    def test_debug_sets_debug_level(self) -> None:
        configure_logging(debug=True)
        assert logging.getLogger().level == logging.DEBUG

    def test_quiets_http_libraries(self) -> None:
        configure_logging(debug=False)
        assert logging.getLogger().level == logging.INFO
        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("httpcore").level == logging.WARNING
