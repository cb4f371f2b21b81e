"""Tests for markdown prompt storage."""

from __future__ import annotations

import string
from typing import TYPE_CHECKING

import pytest
from factories import T0, at, make_record, make_version
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from promptsync.filesystem.prompt_store import (
    FilePromptStore,
    parse_record,
    serialize_record,
    validate_record_id,
)
from promptsync.models.prompt import DEFAULT_CATEGORY, FileContext, TemplateVariable
from promptsync.services.fingerprint_service import fingerprint_record

if TYPE_CHECKING:
    from pathlib import Path

_TEXT = string.ascii_letters + string.digits + " _"
_LINE = st.text(alphabet=_TEXT, max_size=30)


class TestParseRecord:
    def test_full_front_matter(self) -> None:
        raw = (
            "---\n"
            "id: p1\n"
            "title: Greeting\n"
            "category: Writing\n"
            "description: Opens an email\n"
            "created: '2026-03-01T12:00:00+00:00'\n"
            "modified: '2026-03-01T12:30:00+00:00'\n"
            "usage_count: 4\n"
            "order: 2\n"
            "category_order: 1\n"
            "last_used: '2026-03-02T08:00:00+00:00'\n"
            "context:\n"
            "  file_extension: .py\n"
            "  language: python\n"
            "---\n"
            "Say hello\n"
        )
        record = parse_record(raw)
        assert record.id == "p1"
        assert record.category == "Writing"
        assert record.description == "Opens an email"
        assert record.created == T0
        assert record.modified == at(30)
        assert record.usage_count == 4
        assert (record.order, record.category_order) == (2, 1)
        assert record.last_used == at(20 * 60)
        assert record.context == FileContext(file_extension=".py", language="python")
        assert record.content == "Say hello"

    def test_defaults(self) -> None:
        raw = "---\ncreated: 2026-03-01\n---\nbody\n"
        record = parse_record(raw, fallback_id="from-file")
        assert record.id == "from-file"
        assert record.category == DEFAULT_CATEGORY
        assert record.modified == record.created
        assert record.created.tzinfo is not None
        assert record.usage_count == 0

    def test_javascript_timestamps(self) -> None:
        raw = "---\ncreated: '2026-03-01T12:00:00.000Z'\n---\nbody\n"
        assert parse_record(raw).created == T0

    def test_garbage_counters_are_ignored(self) -> None:
        raw = "---\ncreated: 2026-03-01\nusage_count: lots\norder: true\n---\nbody\n"
        record = parse_record(raw)
        assert record.usage_count == 0
        assert record.order is None

    def test_missing_created_is_rejected(self) -> None:
        with pytest.raises(ValueError, match="created"):
            parse_record("---\ntitle: x\n---\nbody\n")

    def test_variables_default_to_the_content(self) -> None:
        raw = "---\ncreated: 2026-03-01\n---\nReview {{filename}}\n"
        [variable] = parse_record(raw).variables
        assert variable.name == "filename"
        assert variable.type == "filename"

    def test_stored_variables_win_over_the_content(self) -> None:
        raw = (
            "---\n"
            "created: 2026-03-01\n"
            "variables:\n"
            "- name: tone\n"
            "  type: custom\n"
            "  default_value: friendly\n"
            "- bogus\n"
            "---\n"
            "Review {{filename}}\n"
        )
        assert parse_record(raw).variables == [
            TemplateVariable(name="tone", type="custom", default_value="friendly")
        ]

    def test_malformed_versions_are_dropped(self) -> None:
        raw = (
            "---\n"
            "created: 2026-03-01\n"
            "versions:\n"
            "- version_id: v1\n"
            "  timestamp: '2026-03-01T12:00:00+00:00'\n"
            "  content: first draft\n"
            "- version_id: v2\n"
            "  timestamp: whenever\n"
            "- just text\n"
            "---\n"
            "body\n"
        )
        [version] = parse_record(raw).versions
        assert version.version_id == "v1"
        assert version.timestamp == T0
        assert version.content == "first draft"


class TestSerialize:
    def test_optional_fields_are_omitted(self) -> None:
        text = serialize_record(make_record("p1"))
        assert "description" not in text
        assert "last_used" not in text
        assert text.startswith("---\nid: p1\ntitle: Greeting\n")
        assert text.endswith("Say hello\n")

    def test_variables_and_history_survive_storage(self) -> None:
        record = make_record(
            "p1",
            content="Explain {{selectedText}}",
            variables=[TemplateVariable(name="selectedText", type="selection")],
            versions=[
                make_version("v1", 0, content="Explain this\nplease"),
                make_version("v2", 30, content="Explain {{selectedText}}", device_name="Laptop"),
            ],
        )
        loaded = parse_record(serialize_record(record))
        assert loaded.variables == record.variables
        assert loaded.versions == record.versions

    @settings(max_examples=120, deadline=None, suppress_health_check=[HealthCheck.too_slow])
    @given(
        title=_LINE,
        content=st.text(alphabet=_TEXT + "\n", max_size=120),
        category=_LINE.map(str.strip).filter(bool),
    )
    def test_storage_never_changes_the_fingerprint(
        self, title: str, content: str, category: str
    ) -> None:
        record = make_record("p1", title=title, content=content, category=category)
        loaded = parse_record(serialize_record(record))
        assert fingerprint_record(loaded) == fingerprint_record(record)
        assert loaded.modified == record.modified


class TestValidateRecordId:
    @pytest.mark.parametrize(
        "record_id",
        ["prompt_1709294400000_abc123xyz", "p1", "a.b-c_d"],
    )
    def test_accepts(self, record_id: str) -> None:
        assert validate_record_id(record_id) == record_id

    @pytest.mark.parametrize(
        "record_id",
        ["", "../escape", "a/b", "a\\b", ".hidden", "a..b", "-dash"],
    )
    def test_rejects(self, record_id: str) -> None:
        with pytest.raises(ValueError, match="Invalid record id"):
            validate_record_id(record_id)


class TestFilePromptStore:
    def test_save_and_get(self, prompt_store: FilePromptStore) -> None:
        record = make_record("p1", description="Opens an email", usage_count=3)
        prompt_store.save_directly(record)
        loaded = prompt_store.get("p1")
        assert loaded is not None
        assert loaded.description == "Opens an email"
        assert loaded.usage_count == 3
        assert loaded.modified == record.modified

    def test_get_missing(self, prompt_store: FilePromptStore) -> None:
        assert prompt_store.get("nope") is None

    def test_list_all_on_missing_directory(self, tmp_path: Path) -> None:
        assert FilePromptStore(tmp_path / "absent").list_all() == []

    def test_list_all_orders_records(self, prompt_store: FilePromptStore) -> None:
        prompt_store.save_directly(make_record("a", title="zeta"))
        prompt_store.save_directly(make_record("b", title="Alpha"))
        prompt_store.save_directly(make_record("c", title="last", category_order=0, order=1))
        prompt_store.save_directly(make_record("d", title="first", category_order=0, order=0))
        assert [r.id for r in prompt_store.list_all()] == ["d", "c", "b", "a"]

    def test_list_all_skips_broken_files(
        self, prompt_store: FilePromptStore, caplog: pytest.LogCaptureFixture
    ) -> None:
        prompt_store.save_directly(make_record("good"))
        (prompt_store.prompts_dir / "no-created.md").write_text("---\ntitle: x\n---\nbody\n")
        (prompt_store.prompts_dir / "bad-yaml.md").write_text("---\ntitle: [unclosed\n---\n")

        records = prompt_store.list_all()

        assert [r.id for r in records] == ["good"]
        assert "Skipping prompt file" in caplog.text

    def test_save_leaves_no_temp_file(self, prompt_store: FilePromptStore) -> None:
        prompt_store.save_directly(make_record("p1"))
        prompt_store.save_directly(make_record("p1", content="again"))
        assert sorted(p.name for p in prompt_store.prompts_dir.iterdir()) == ["p1.md"]

    def test_delete_by_id(self, prompt_store: FilePromptStore) -> None:
        prompt_store.save_directly(make_record("p1"))
        assert prompt_store.delete_by_id("p1")
        assert not prompt_store.delete_by_id("p1")
        assert prompt_store.get("p1") is None

    def test_rejects_path_traversal(self, prompt_store: FilePromptStore) -> None:
        with pytest.raises(ValueError):
            prompt_store.save_directly(make_record("../outside"))
        with pytest.raises(ValueError):
            prompt_store.get("../../etc/passwd")
