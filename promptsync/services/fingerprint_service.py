"""Content fingerprints for change and conflict detection."""

from __future__ import annotations

import hashlib
import json
from typing import TYPE_CHECKING

from promptsync.models.prompt import normalize_category

if TYPE_CHECKING:
    from collections.abc import Iterable

    from promptsync.models.prompt import PromptRecord
    from promptsync.models.remote import RemoteRecord


def compute_fingerprint(title: str, content: str, category: str | None) -> str:
    """Compute SHA-256 of a record's user-meaningful fields.

    Only title, content and category take part, each trimmed, serialized as
    canonical JSON with a fixed key order. The serialization matches the web
    companion's ``JSON.stringify`` so both produce identical digests.
    """
    canonical = json.dumps(
        {
            "title": title.strip(),
            "content": content.strip(),
            "category": (category or "").strip(),
        },
        ensure_ascii=False,
        separators=(",", ":"),
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def fingerprint_record(record: PromptRecord) -> str:
    """Fingerprint a local record."""
    return compute_fingerprint(record.title, record.content, record.category)


def fingerprint_remote(remote: RemoteRecord) -> str:
    """Fingerprint a remote record the way it reads once stored locally.

    The backend digest covers the raw category, which may be blank; locally a
    blank category becomes the default one.
    """
    return compute_fingerprint(remote.title, remote.content, normalize_category(remote.category))


def matches_fingerprint(record: PromptRecord, expected: str) -> bool:
    """Return True if the record's content still hashes to *expected*."""
    return fingerprint_record(record) == expected


def fingerprint_records(records: Iterable[PromptRecord]) -> dict[str, str]:
    """Map record id -> fingerprint."""
    return {record.id: fingerprint_record(record) for record in records}
