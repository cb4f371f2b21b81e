"""Local prompt record model."""

from __future__ import annotations

import json
import re
import secrets
import string
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from promptsync.services.datetime_service import format_iso

if TYPE_CHECKING:
    from datetime import datetime

DEFAULT_CATEGORY = "General"

_ID_ALPHABET = string.ascii_lowercase + string.digits

_VARIABLE_RE = re.compile(r"\{\{(\w+)\}\}")

_KNOWN_VARIABLES = {
    "filename": "Current file name",
    "selectedText": "Currently selected text",
    "language": "Current file language",
    "projectName": "Current project name",
}


@dataclass(frozen=True)
class FileContext:
    """Editor context captured when a prompt was created."""

    file_extension: str
    language: str

    def to_dict(self) -> dict[str, Any]:
        return {"file_extension": self.file_extension, "language": self.language}


@dataclass(frozen=True)
class TemplateVariable:
    """A ``{{name}}`` placeholder filled in when the prompt is used."""

    name: str
    type: str = "text"
    description: str | None = None
    default_value: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name, "type": self.type}
        if self.description is not None:
            data["description"] = self.description
        if self.default_value is not None:
            data["default_value"] = self.default_value
        return data


@dataclass(frozen=True)
class PromptVersion:
    """A past state of a record, kept so history follows the record across devices."""

    version_id: str
    timestamp: datetime
    device_id: str
    device_name: str
    title: str
    content: str
    category: str
    description: str | None = None
    change_reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "version_id": self.version_id,
            "timestamp": format_iso(self.timestamp),
            "device_id": self.device_id,
            "device_name": self.device_name,
            "title": self.title,
            "content": self.content,
            "category": self.category,
        }
        if self.description is not None:
            data["description"] = self.description
        if self.change_reason is not None:
            data["change_reason"] = self.change_reason
        return data


@dataclass
class PromptRecord:
    """A prompt as stored in the local workspace.

    ``modified`` is the authority for recency comparisons during sync.
    """

    id: str
    title: str
    content: str
    category: str
    created: datetime
    modified: datetime
    usage_count: int = 0
    description: str | None = None
    order: int | None = None
    category_order: int | None = None
    last_used: datetime | None = None
    context: FileContext | None = field(default=None)
    variables: list[TemplateVariable] = field(default_factory=list)
    versions: list[PromptVersion] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        data: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "category": self.category,
            "created": format_iso(self.created),
            "modified": format_iso(self.modified),
            "usage_count": self.usage_count,
        }
        if self.description is not None:
            data["description"] = self.description
        if self.order is not None:
            data["order"] = self.order
        if self.category_order is not None:
            data["category_order"] = self.category_order
        if self.last_used is not None:
            data["last_used"] = format_iso(self.last_used)
        if self.context is not None:
            data["context"] = self.context.to_dict()
        if self.variables:
            data["variables"] = [v.to_dict() for v in self.variables]
        if self.versions:
            data["versions"] = [v.to_dict() for v in self.versions]
        return data


def normalize_category(category: str | None) -> str:
    """Return the category, falling back to the default for blank values."""
    if category is None or not category.strip():
        return DEFAULT_CATEGORY
    return category


def generate_record_id() -> str:
    """Generate a new local record id.

    Format: ``prompt_<epoch-ms>_<9 random base36 chars>``.
    """
    timestamp = int(time.time() * 1000)
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"prompt_{timestamp}_{suffix}"


def record_payload_size(record: PromptRecord) -> int:
    """Approximate the upload size of a record in bytes."""
    return len(json.dumps(record.to_dict(), ensure_ascii=False).encode("utf-8"))


def _variable_type(name: str) -> str:
    lowered = name.lower()
    if "file" in lowered or "name" in lowered:
        return "filename"
    if "select" in lowered or "text" in lowered:
        return "selection"
    if "lang" in lowered:
        return "language"
    return "text"


def extract_variables(content: str) -> list[TemplateVariable]:
    """Find ``{{name}}`` placeholders in *content*, first occurrence first."""
    seen: set[str] = set()
    variables: list[TemplateVariable] = []
    for match in _VARIABLE_RE.finditer(content):
        name = match.group(1)
        if name in seen:
            continue
        seen.add(name)
        variables.append(
            TemplateVariable(
                name=name,
                type=_variable_type(name),
                description=_KNOWN_VARIABLES.get(name, f"Variable: {name}"),
            )
        )
    return variables


def merge_version_histories(
    local: list[PromptVersion], remote: list[PromptVersion]
) -> list[PromptVersion]:
    """Combine two histories of the same record, oldest first.

    A version present on both sides appears once; the earliest copy wins.
    """
    merged: dict[str, PromptVersion] = {}
    for version in sorted([*local, *remote], key=lambda v: v.timestamp):
        merged.setdefault(version.version_id, version)
    return list(merged.values())
