"""Device identity used for attribution and ledger bookkeeping."""

from __future__ import annotations

import getpass
import hashlib
import socket
import sys
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from promptsync.config import Settings

_PLATFORM_LABELS = {"darwin": "Mac", "win32": "Windows", "linux": "Linux"}


@dataclass(frozen=True)
class DeviceInfo:
    """Stable identity of this installation."""

    id: str
    name: str
    platform: str
    hostname: str


def _username() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "unknown"


def compute_device_id(hostname: str, username: str, app_name: str) -> str:
    """Derive a stable device id from host, user and application name."""
    digest = hashlib.sha256(f"{hostname}:{username}:{app_name}".encode()).hexdigest()
    return digest[:32]


def default_device_name(hostname: str, platform: str) -> str:
    """Format a human-readable device name, e.g. ``"devbox (Linux)"``."""
    label = _PLATFORM_LABELS.get(platform)
    return f"{hostname} ({label})" if label else hostname


def get_device_info(settings: Settings) -> DeviceInfo:
    """Return this device's identity; ``settings.device_name`` overrides the name."""
    hostname = socket.gethostname()
    platform = sys.platform
    name = settings.device_name.strip() or default_device_name(hostname, platform)
    return DeviceInfo(
        id=compute_device_id(hostname, _username(), settings.app_name),
        name=name,
        platform=platform,
        hostname=hostname,
    )
