"""Conflict resolution: split a disputed record into two attributed copies."""

from __future__ import annotations

import re
from dataclasses import replace
from typing import TYPE_CHECKING

from promptsync.models.prompt import (
    FileContext,
    PromptRecord,
    PromptVersion,
    TemplateVariable,
    extract_variables,
    generate_record_id,
    normalize_category,
)

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from promptsync.models.remote import RemoteRecord

UNKNOWN_DEVICE = "Unknown Device"

_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

# " (from <device> - <Mon> <day> <HH:MM>)" at the very end of a title.
ATTRIBUTION_SUFFIX_RE = re.compile(r" \(from .+? - [A-Z][a-z]{2} \d{1,2}(?: \d{2}:\d{2})?\)$")


def strip_attribution(title: str) -> str:
    """Remove every trailing attribution suffix from a title."""
    stripped = title
    while True:
        candidate = ATTRIBUTION_SUFFIX_RE.sub("", stripped)
        if candidate == stripped:
            return stripped
        stripped = candidate


def format_attribution_time(dt: datetime) -> str:
    """Format a timestamp as ``Mon D HH:MM`` in the timestamp's own zone."""
    return f"{_MONTHS[dt.month - 1]} {dt.day} {dt.hour:02d}:{dt.minute:02d}"


def attributed_title(title: str, device: str, when: datetime) -> str:
    return f"{strip_attribution(title)} (from {device} - {format_attribution_time(when)})"


def remote_to_record(
    remote: RemoteRecord,
    local_id: str | None = None,
    id_factory: Callable[[], str] = generate_record_id,
) -> PromptRecord:
    """Convert a remote record into a local one.

    The local id is, in order of preference, *local_id*, the remote owner id,
    or a freshly generated id. Records written without template variables
    (e.g. from the web companion) get them from their content.
    """
    meta = remote.metadata
    context = None
    if meta.context is not None:
        context = FileContext(
            file_extension=meta.context.file_extension,
            language=meta.context.language,
        )
    variables = [TemplateVariable(**v.model_dump()) for v in remote.variables]
    return PromptRecord(
        id=local_id or remote.owner_local_id or id_factory(),
        title=remote.title,
        content=remote.content,
        category=normalize_category(remote.category),
        description=remote.description or None,
        order=remote.prompt_order,
        category_order=remote.category_order,
        created=meta.created,
        modified=meta.modified,
        usage_count=meta.usage_count or 0,
        last_used=meta.last_used,
        context=context,
        variables=variables or extract_variables(remote.content),
        versions=[PromptVersion(**v.model_dump()) for v in meta.versions],
    )


def resolve_conflict(
    local: PromptRecord,
    remote: RemoteRecord,
    identity: str,
    id_factory: Callable[[], str] = generate_record_id,
) -> tuple[PromptRecord, PromptRecord]:
    """Resolve a conflict by creating two new records.

    Neither copy reuses ``local.id``. The local copy is attributed to this
    device (*identity*) at the local modification time; the remote copy to
    the device that last wrote the remote record at its update time. Both
    titles start from the local title with earlier suffixes stripped.
    """
    base_title = strip_attribution(local.title)

    local_copy = replace(
        local,
        id=id_factory(),
        title=attributed_title(base_title, identity, local.modified),
    )

    remote_device = remote.attribution.device_name or UNKNOWN_DEVICE
    remote_copy = remote_to_record(remote, local_id=id_factory())
    remote_copy.title = attributed_title(base_title, remote_device, remote.updated_at)

    return local_copy, remote_copy
