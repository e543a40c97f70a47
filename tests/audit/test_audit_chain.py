# SPDX-License-Identifier: MIT
"""
Tests for the hash-chained audit log.
"""

import json

import pytest

from memorylink.audit.logger import (
    append_audit_event,
    compute_event_hash,
    filter_events,
    load_audit_events,
    read_audit_events,
    verify_audit_chain,
    verify_events,
)
from memorylink.core.exceptions import ValidationError
from memorylink.core.outcome import Ok, Recovered
from memorylink.core.paths import audit_log_path


def _append_many(project, count):
    return [append_audit_event(project, {"event_type": "CAPTURE", "record_id": f"r{i}", "n": i})
            for i in range(count)]


def _rewrite_lines(project, transform):
    path = audit_log_path(project)
    lines = path.read_text(encoding="utf-8").splitlines()
    path.write_text("\n".join(transform(lines)) + "\n", encoding="utf-8")


class TestAppend:
    """Test writing events."""

    def test_chain_fields(self, project):
        first, second = _append_many(project, 2)
        assert "prev_event_hash" not in first
        assert second["prev_event_hash"] == first["event_hash"]
        assert first["event_id"].startswith("evt_")
        assert first["timestamp"].endswith("Z")
        assert compute_event_hash(second) == second["event_hash"]

    def test_caller_cannot_set_chain_fields(self, project):
        event = append_audit_event(project, {"event_type": "GATE", "event_hash": "x", "prev_event_hash": "y"})
        assert event["event_hash"] != "x"
        assert "prev_event_hash" not in event

    def test_event_type_required(self, project):
        with pytest.raises(ValidationError):
            append_audit_event(project, {"record_id": "r1"})

    def test_one_json_object_per_line(self, project):
        _append_many(project, 3)
        lines = audit_log_path(project).read_text(encoding="utf-8").splitlines()
        assert len(lines) == 3
        assert all(json.loads(line)["event_type"] == "CAPTURE" for line in lines)

    def test_hash_ignores_key_order(self):
        assert compute_event_hash({"a": 1, "b": 2}) == compute_event_hash({"b": 2, "a": 1})


class TestVerify:
    """Test chain verification."""

    def test_clean_chain(self, project):
        _append_many(project, 5)
        verification = verify_audit_chain(project)
        assert verification.to_dict() == {"valid": True, "eventCount": 5, "errors": []}

    def test_empty_log(self, project):
        verification = verify_audit_chain(project)
        assert verification.valid
        assert verification.event_count == 0

    def test_mutated_field_detected(self, project):
        events = _append_many(project, 5)

        def mutate(lines):
            event = json.loads(lines[2])
            event["n"] = 999
            lines[2] = json.dumps(event)
            return lines

        _rewrite_lines(project, mutate)
        verification = verify_audit_chain(project)
        assert not verification.valid
        assert f"Event 3 ({events[2]['event_id']}): Hash mismatch" in verification.errors

    def test_mutated_hash_breaks_next_link(self, project):
        events = _append_many(project, 3)

        def mutate(lines):
            event = json.loads(lines[0])
            event["event_hash"] = "0" * 64
            lines[0] = json.dumps(event)
            return lines

        _rewrite_lines(project, mutate)
        errors = verify_audit_chain(project).errors
        assert f"Event 1 ({events[0]['event_id']}): Hash mismatch" in errors
        assert f"Event 2 ({events[1]['event_id']}): Chain broken" in errors

    def test_deleted_line_reported_as_broken_link(self, project):
        events = _append_many(project, 4)
        _rewrite_lines(project, lambda lines: lines[:1] + lines[2:])
        verification = verify_audit_chain(project)
        assert verification.event_count == 3
        assert verification.errors == [f"Event 2 ({events[2]['event_id']}): Chain broken"]

    def test_events_without_hash_are_skipped(self):
        assert verify_events([{"event_id": "e", "timestamp": "t", "event_type": "X"}]).valid


class TestRead:
    """Test reading and degraded reads."""

    def test_corrupted_lines_skipped(self, project):
        _append_many(project, 2)
        _rewrite_lines(project, lambda lines: [lines[0], "{broken", '{"event_type": "NO_ID"}', lines[1]])
        outcome = load_audit_events(project)
        assert isinstance(outcome, Ok)
        assert [e["record_id"] for e in outcome.value] == ["r0", "r1"]
        assert verify_audit_chain(project).valid

    def test_append_after_corrupted_tail(self, project):
        _append_many(project, 1)
        path = audit_log_path(project)
        path.write_text(path.read_text(encoding="utf-8") + "{truncated", encoding="utf-8")
        event = append_audit_event(project, {"event_type": "GATE"})
        assert "prev_event_hash" not in event
        assert len(read_audit_events(project)) == 2

    def test_oversized_log_recovers(self, project, monkeypatch):
        _append_many(project, 2)
        monkeypatch.setattr("memorylink.audit.logger.MAX_FILE_SIZE", 10)
        outcome = load_audit_events(project)
        assert isinstance(outcome, Recovered)
        assert outcome.value == []
        assert read_audit_events(project) == []

    def test_missing_log(self, project):
        assert read_audit_events(project) == []

    def test_filter_events(self, project):
        append_audit_event(project, {"event_type": "CAPTURE", "record_id": "a"})
        append_audit_event(project, {"event_type": "QUARANTINE", "record_id": "a"})
        append_audit_event(project, {"event_type": "CAPTURE", "record_id": "b"})
        events = read_audit_events(project)
        assert len(filter_events(events, event_type="CAPTURE")) == 2
        assert len(filter_events(events, record_id="a")) == 2
        assert len(filter_events(events, event_type="CAPTURE", record_id="b")) == 1
