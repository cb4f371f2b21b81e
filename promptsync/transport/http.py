"""HTTP plumbing shared by the workspace transports."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, NoReturn

import httpx

from promptsync.exceptions import (
    NetworkUnavailableError,
    PermissionDeniedError,
    RemoteConflictError,
    RemoteNotFoundError,
    SessionExpiredError,
    TransportError,
)
from promptsync.services.datetime_service import format_iso
from promptsync.services.fingerprint_service import fingerprint_record

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from promptsync.models.ledger import LedgerEntry
    from promptsync.models.prompt import PromptRecord
    from promptsync.services.device_service import DeviceInfo

logger = logging.getLogger(__name__)


class BackendClient:
    """Thin JSON-over-HTTP client for the sync backend.

    Every backend operation is a ``POST /<function>`` with a JSON body.
    Failures are mapped onto the sync error taxonomy so transports never
    leak ``httpx`` exceptions to the engine.
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        *,
        timeout: float = 30.0,
        on_session_expired: Callable[[], Awaitable[None]] | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._on_session_expired = on_session_expired
        self._owns_client = http_client is None
        self.client = http_client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)
        self.client.headers["Authorization"] = f"Bearer {token}"

    async def aclose(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self.client.aclose()

    async def call(self, function: str, body: dict[str, Any]) -> Any:
        """Invoke a backend function and return its decoded JSON response."""
        try:
            resp = await self.client.post(f"/{function}", json=body)
        except httpx.TransportError as exc:
            logger.warning("Backend unreachable calling %s: %s", function, exc)
            msg = "Unable to sync - check your internet connection"
            raise NetworkUnavailableError(msg) from exc

        if resp.is_success:
            if not resp.content:
                return None
            try:
                return resp.json()
            except ValueError as exc:
                msg = f"{function}: backend returned invalid JSON"
                raise TransportError(msg, status_code=resp.status_code) from exc

        await self._raise_for_status(function, resp)

    async def _raise_for_status(self, function: str, resp: httpx.Response) -> NoReturn:
        status = resp.status_code
        payload = _error_payload(resp)
        message = str(payload.get("message") or payload.get("error") or resp.reason_phrase)

        if status == 401:
            logger.warning("Backend rejected credentials during %s", function)
            if self._on_session_expired is not None:
                await self._on_session_expired()
            msg = "Your session has expired. Please sign in again."
            raise SessionExpiredError(msg)
        if status == 403:
            raise PermissionDeniedError(f"{function}: {message}")
        if status == 404:
            raise RemoteNotFoundError(f"{function}: {message}", status_code=404)
        if status == 409:
            if not payload:
                msg = "Sync conflict detected but response body could not be parsed"
                raise TransportError(msg, status_code=409)
            details = payload.get("details")
            raise RemoteConflictError(
                str(payload.get("message") or "Sync conflict"),
                error=payload.get("error"),
                details=details if isinstance(details, dict) else None,
            )
        msg = f"{function} failed ({status}): {message}"
        raise TransportError(msg, status_code=status)


def _error_payload(resp: httpx.Response) -> dict[str, Any]:
    try:
        data = resp.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def build_upload_body(
    record: PromptRecord,
    entry: LedgerEntry | None,
    device: DeviceInfo,
) -> dict[str, Any]:
    """Build the upload payload shared by all workspace modes.

    Without a ledger entry (or with a deleted one) the upload carries no
    remote id and the backend creates a new record, or updates the active
    record owned by the same local id.
    """
    linked = entry is not None and bool(entry.remote_id) and not entry.is_deleted
    return {
        "remote_id": entry.remote_id if linked and entry is not None else None,
        "expected_version": (
            entry.remote_version_at_last_sync if linked and entry is not None else None
        ),
        "content_fingerprint": fingerprint_record(record),
        "owner_local_id": record.id,
        "title": record.title,
        "content": record.content,
        "description": record.description,
        "category": record.category,
        "prompt_order": record.order,
        "category_order": record.category_order,
        "variables": [v.to_dict() for v in record.variables],
        "metadata": {
            "created": format_iso(record.created),
            "modified": format_iso(record.modified),
            "usage_count": record.usage_count,
            "last_used": format_iso(record.last_used) if record.last_used else None,
            "context": record.context.to_dict() if record.context else None,
            "versions": [v.to_dict() for v in record.versions],
        },
        "attribution": {
            "device_id": device.id,
            "device_name": device.name,
        },
    }
