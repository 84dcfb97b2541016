"""Tests for batch decoding, envelope parsing, and interval flattening.

Covers:
- decode_batch on JSON text, bytes, and mappings
- decode errors reported as values, never raised
- null / missing / empty subject and interval lists
- envelope split and non-envelope messages
- flatten_intervals dropping entries without a start
"""

from __future__ import annotations

import datetime as dt
import json
from typing import Any

import pytest

from studycue.ingest.intervals import flatten_intervals
from studycue.ingest.payload import RawInterval, RawSubject, decode_batch, is_envelope, parse_envelope


class TestDecodeBatch:
    def test_decodes_json_text(self, sample_batch: dict[str, Any]) -> None:
        result = decode_batch(json.dumps(sample_batch))
        assert result.ok
        assert [s.name for s in result.subjects] == ["Math", "Physics", "History"]

    def test_decodes_bytes_and_mapping_identically(self, sample_batch: dict[str, Any]) -> None:
        from_bytes = decode_batch(json.dumps(sample_batch).encode("utf-8"))
        from_mapping = decode_batch(sample_batch)
        assert from_bytes == from_mapping

    def test_offsets_normalised_to_naive_utc(self, sample_batch: dict[str, Any]) -> None:
        result = decode_batch(sample_batch)
        physics = result.subjects[1].tomatoes[0]
        assert physics.start_at == dt.datetime(2026, 3, 2, 9, 10)
        assert physics.start_at.tzinfo is None

    def test_malformed_json_is_an_error_value(self) -> None:
        result = decode_batch("{not json")
        assert not result.ok
        assert result.error
        assert result.subjects == []

    def test_schema_violation_is_an_error_value(self) -> None:
        result = decode_batch({"subjects": [{"name": "Math", "tomatoes": [{"start_at": "yesterday"}]}]})
        assert not result.ok
        assert "start_at" in result.error

    @pytest.mark.parametrize("payload", [{}, {"subjects": None}, {"subjects": []}])
    def test_no_subjects_is_empty_not_error(self, payload: dict[str, Any]) -> None:
        result = decode_batch(payload)
        assert result.ok
        assert result.subjects == []

    def test_null_subject_name_becomes_empty(self) -> None:
        result = decode_batch({"subjects": [{"name": None, "tomatoes": None}]})
        assert result.ok
        assert result.subjects[0].name == ""


class TestEnvelope:
    def test_split(self) -> None:
        env = parse_envelope('EMAIL:alice@example.com|DATA:{"subjects": []}')
        assert env is not None
        assert env.recipient == "alice@example.com"
        assert env.data == '{"subjects": []}'

    def test_recipient_not_validated(self) -> None:
        env = parse_envelope("EMAIL:|DATA:{}")
        assert env is not None
        assert env.recipient == ""

    def test_splits_at_first_separator(self) -> None:
        env = parse_envelope('EMAIL:bob|DATA:{"note": "|DATA:"}')
        assert env is not None
        assert env.recipient == "bob"
        assert env.data == '{"note": "|DATA:"}'

    @pytest.mark.parametrize("message", [None, "", "hello", "EMAIL:bob", "DATA:{}|EMAIL:bob"])
    def test_non_envelope(self, message: str | None) -> None:
        assert not is_envelope(message)
        assert parse_envelope(message) is None


class TestFlattenIntervals:
    def test_drops_intervals_without_start(self, sample_batch: dict[str, Any]) -> None:
        intervals = flatten_intervals(decode_batch(sample_batch).subjects)
        assert len(intervals) == 3
        assert all(iv.start is not None for iv in intervals)

    def test_preserves_input_order_and_subject(self, sample_batch: dict[str, Any]) -> None:
        intervals = flatten_intervals(decode_batch(sample_batch).subjects)
        assert [(iv.subject_name, iv.start.time()) for iv in intervals] == [
            ("Math", dt.time(9, 0)),
            ("Math", dt.time(9, 45)),
            ("Physics", dt.time(9, 10)),
        ]

    def test_open_interval_kept_with_missing_end(self, sample_batch: dict[str, Any]) -> None:
        intervals = flatten_intervals(decode_batch(sample_batch).subjects)
        assert intervals[1].end is None
        assert intervals[1].pause_end is None
        assert not intervals[1].is_complete

    @pytest.mark.parametrize(
        "subjects",
        [None, [], [RawSubject(name="Math", tomatoes=None)], [RawSubject(name="Math", tomatoes=[])]],
    )
    def test_empty_inputs(self, subjects: list[RawSubject] | None) -> None:
        assert flatten_intervals(subjects) == []

    def test_all_without_start(self) -> None:
        subjects = [RawSubject(name="Math", tomatoes=[RawInterval(end_at=dt.datetime(2026, 3, 2, 9, 25))])]
        assert flatten_intervals(subjects) == []
