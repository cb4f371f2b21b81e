"""Tests for content fingerprints."""

from __future__ import annotations

import hashlib
from dataclasses import replace

from factories import at, make_record, make_remote

from promptsync.services.conflict_service import remote_to_record
from promptsync.services.fingerprint_service import (
    compute_fingerprint,
    fingerprint_record,
    fingerprint_records,
    fingerprint_remote,
    matches_fingerprint,
)


class TestComputeFingerprint:
    def test_matches_canonical_json_digest(self) -> None:
        expected = hashlib.sha256(
            b'{"title":"Greeting","content":"Say hello","category":"General"}'
        ).hexdigest()
        assert compute_fingerprint("Greeting", "Say hello", "General") == expected

    def test_trims_fields(self) -> None:
        padded = compute_fingerprint("  T ", "\nbody\n", " C")
        assert padded == compute_fingerprint("T", "body", "C")

    def test_non_ascii_is_not_escaped(self) -> None:
        expected = hashlib.sha256(
            '{"title":"Café","content":"ü","category":"General"}'.encode()
        ).hexdigest()
        assert compute_fingerprint("Café", "ü", "General") == expected

    def test_each_field_matters(self) -> None:
        base = compute_fingerprint("T", "C", "K")
        assert compute_fingerprint("T2", "C", "K") != base
        assert compute_fingerprint("T", "C2", "K") != base
        assert compute_fingerprint("T", "C", "K2") != base

    def test_none_category_equals_empty(self) -> None:
        assert compute_fingerprint("T", "C", None) == compute_fingerprint("T", "C", "")


class TestFingerprintRecord:
    def test_ignores_bookkeeping_fields(self) -> None:
        record = make_record()
        touched = replace(
            record,
            usage_count=42,
            last_used=at(30),
            modified=at(60),
            order=3,
            category_order=1,
            description="changed",
        )
        assert fingerprint_record(touched) == fingerprint_record(record)

    def test_matches_fingerprint(self) -> None:
        record = make_record()
        assert matches_fingerprint(record, fingerprint_record(record))
        assert not matches_fingerprint(replace(record, title="Other"), fingerprint_record(record))

    def test_fingerprint_records_keys_by_id(self) -> None:
        a = make_record("a")
        b = make_record("b", content="other")
        assert fingerprint_records([a, b]) == {
            "a": fingerprint_record(a),
            "b": fingerprint_record(b),
        }


class TestFingerprintRemote:
    def test_matches_backend_digest_for_named_category(self) -> None:
        remote = make_remote("r1", category="Docs")
        assert fingerprint_remote(remote) == remote.content_fingerprint

    def test_blank_category_hashes_as_stored_locally(self) -> None:
        remote = make_remote("r1", category="")
        local = remote_to_record(remote)
        assert local.category == "General"
        assert fingerprint_remote(remote) == fingerprint_record(local)
        assert fingerprint_remote(remote) != remote.content_fingerprint
