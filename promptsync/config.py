"""Sync configuration loaded from environment variables."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Literal
from urllib.parse import urlparse

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_LOCALHOST_HOSTS = {"localhost", "127.0.0.1", "::1"}


class Settings(BaseSettings):
    """promptsync settings."""

    model_config = SettingsConfigDict(
        env_prefix="PROMPTSYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    debug: bool = False

    # Backend
    api_url: str = "http://localhost:54321/functions/v1"
    request_timeout: float = Field(default=30.0, gt=0)
    allow_insecure_http: bool = False

    # Workspace
    workspace_mode: Literal["personal", "team"] = "personal"
    team_id: str = ""
    team_role: Literal["owner", "admin", "editor", "viewer"] = "viewer"

    # Paths
    prompts_dir: Path = Path("./prompts")
    state_dir: Path = Path("./.promptsync")

    # Device
    device_name: str = ""
    app_name: str = "promptsync"

    # Capacity
    quota_warning_percent: int = Field(default=90, ge=1, le=100)

    def validate_runtime(self) -> None:
        """Validate settings that cannot be expressed as field constraints."""
        violations: list[str] = []
        if self.workspace_mode == "team" and not self.team_id:
            violations.append("TEAM_ID must be set when WORKSPACE_MODE is 'team'")

        parsed = urlparse(self.api_url)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            violations.append("API_URL must include scheme and host (e.g. https://example.com)")
        elif (
            parsed.scheme == "http"
            and not self.allow_insecure_http
            and parsed.hostname not in _LOCALHOST_HOSTS
        ):
            violations.append("API_URL must use HTTPS for non-localhost hosts")

        if violations:
            joined = "; ".join(violations)
            raise ValueError(f"Invalid sync configuration: {joined}")


def configure_logging(debug: bool) -> None:
    """Configure logging for applications embedding the sync engine."""
    level = logging.DEBUG if debug else logging.INFO
    fmt = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
    logging.basicConfig(
        level=level,
        format=fmt,
        stream=sys.stdout,
        force=True,
    )
    # Quiet noisy libraries
    logging.getLogger("httpx").setLevel(logging.INFO if debug else logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
