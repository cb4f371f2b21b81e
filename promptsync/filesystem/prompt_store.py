"""Markdown-with-front-matter storage for local prompt records."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import frontmatter
import yaml

from promptsync.models.prompt import (
    FileContext,
    PromptRecord,
    PromptVersion,
    TemplateVariable,
    extract_variables,
    normalize_category,
)
from promptsync.services.datetime_service import format_iso, parse_timestamp

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

_SAFE_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


def validate_record_id(record_id: str) -> str:
    """Reject ids that could escape the prompts directory.

    Raises ValueError for empty ids, path separators and dot segments.
    """
    if not _SAFE_ID_RE.match(record_id) or ".." in record_id:
        msg = f"Invalid record id: {record_id!r}"
        raise ValueError(msg)
    return record_id


def _optional_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _optional_str(value: Any) -> str | None:
    return str(value) if value is not None else None


def _parse_variables(raw: Any, content: str) -> list[TemplateVariable]:
    # Files written before variables were stored get them from the content
    if not isinstance(raw, list):
        return extract_variables(content)
    return [
        TemplateVariable(
            name=str(item["name"]),
            type=str(item.get("type") or "text"),
            description=_optional_str(item.get("description")),
            default_value=_optional_str(item.get("default_value")),
        )
        for item in raw
        if isinstance(item, dict) and item.get("name")
    ]


def _parse_versions(raw: Any) -> list[PromptVersion]:
    if not isinstance(raw, list):
        return []
    versions: list[PromptVersion] = []
    for item in raw:
        try:
            timestamp = parse_timestamp(item["timestamp"])
            version_id = str(item["version_id"])
        except (TypeError, KeyError, ValueError):
            logger.debug("Dropping malformed version entry: %r", item)
            continue
        versions.append(
            PromptVersion(
                version_id=version_id,
                timestamp=timestamp,
                device_id=str(item.get("device_id") or ""),
                device_name=str(item.get("device_name") or ""),
                title=str(item.get("title") or ""),
                content=str(item.get("content") or ""),
                category=str(item.get("category") or ""),
                description=_optional_str(item.get("description")),
                change_reason=_optional_str(item.get("change_reason")),
            )
        )
    return versions


def parse_record(raw_content: str, fallback_id: str = "") -> PromptRecord:
    """Parse a markdown file with YAML front matter into a PromptRecord."""
    post = frontmatter.loads(raw_content)

    raw_created = post.get("created")
    if raw_created is None:
        msg = "Missing 'created' in front matter"
        raise ValueError(msg)
    created = parse_timestamp(raw_created)
    raw_modified = post.get("modified")
    modified = parse_timestamp(raw_modified) if raw_modified is not None else created
    raw_last_used = post.get("last_used")

    context = None
    raw_context = post.get("context")
    if isinstance(raw_context, dict):
        context = FileContext(
            file_extension=str(raw_context.get("file_extension", "")),
            language=str(raw_context.get("language", "")),
        )

    description = post.get("description")
    return PromptRecord(
        id=str(post.get("id") or fallback_id),
        title=str(post.get("title") or ""),
        content=post.content,
        category=normalize_category(post.get("category")),
        created=created,
        modified=modified,
        usage_count=_optional_int(post.get("usage_count")) or 0,
        description=str(description) if description is not None else None,
        order=_optional_int(post.get("order")),
        category_order=_optional_int(post.get("category_order")),
        last_used=parse_timestamp(raw_last_used) if raw_last_used is not None else None,
        context=context,
        variables=_parse_variables(post.get("variables"), post.content),
        versions=_parse_versions(post.get("versions")),
    )


def serialize_record(record: PromptRecord) -> str:
    """Serialize a PromptRecord to markdown with YAML front matter."""
    metadata: dict[str, Any] = {
        "id": record.id,
        "title": record.title,
        "category": record.category,
        "created": format_iso(record.created),
        "modified": format_iso(record.modified),
        "usage_count": record.usage_count,
    }
    if record.description is not None:
        metadata["description"] = record.description
    if record.order is not None:
        metadata["order"] = record.order
    if record.category_order is not None:
        metadata["category_order"] = record.category_order
    if record.last_used is not None:
        metadata["last_used"] = format_iso(record.last_used)
    if record.context is not None:
        metadata["context"] = record.context.to_dict()
    if record.variables:
        metadata["variables"] = [v.to_dict() for v in record.variables]
    if record.versions:
        metadata["versions"] = [v.to_dict() for v in record.versions]
    post = frontmatter.Post(record.content, **metadata)
    return str(frontmatter.dumps(post, sort_keys=False)) + "\n"


def _sort_key(record: PromptRecord) -> tuple[int, int, int, int, str]:
    # Unordered records sort after ordered ones
    cat_order = record.category_order
    order = record.order
    return (
        cat_order is None,
        cat_order or 0,
        order is None,
        order or 0,
        record.title.lower(),
    )


@dataclass
class FilePromptStore:
    """One ``<id>.md`` file per prompt record."""

    prompts_dir: Path

    def _path_for(self, record_id: str) -> Path:
        validate_record_id(record_id)
        full_path = (self.prompts_dir / f"{record_id}.md").resolve()
        if not full_path.is_relative_to(self.prompts_dir.resolve()):
            raise ValueError(f"Path traversal detected: {record_id}")
        return full_path

    def list_all(self) -> list[PromptRecord]:
        """Load every record; unparsable files are logged and skipped."""
        if not self.prompts_dir.exists():
            return []
        records: list[PromptRecord] = []
        for path in sorted(self.prompts_dir.glob("*.md")):
            try:
                record = parse_record(path.read_text(encoding="utf-8"), fallback_id=path.stem)
            except (OSError, ValueError, yaml.YAMLError) as exc:
                logger.warning("Skipping prompt file %s: %s", path.name, exc)
                continue
            records.append(record)
        records.sort(key=_sort_key)
        return records

    def get(self, record_id: str) -> PromptRecord | None:
        """Read a single record by id."""
        path = self._path_for(record_id)
        if not path.is_file():
            return None
        return parse_record(path.read_text(encoding="utf-8"), fallback_id=record_id)

    def save_directly(self, record: PromptRecord) -> None:
        """Write a record exactly as given, without touching ``modified``."""
        path = self._path_for(record.id)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(f"{path.name}.tmp")
        tmp_path.write_text(serialize_record(record), encoding="utf-8")
        os.replace(tmp_path, path)

    def delete_by_id(self, record_id: str) -> bool:
        """Delete a record file. Returns True if it existed."""
        path = self._path_for(record_id)
        if path.exists():
            path.unlink()
            return True
        return False
