# SPDX-License-Identifier: MIT
"""
Tests for record persistence and the capture flow.
"""

import json

import pytest

from memorylink.audit.logger import filter_events, read_audit_events, verify_audit_chain
from memorylink.core.exceptions import EvidenceLevelError, FileReadError, RecordNotFoundError, ValidationError
from memorylink.core.ids import generate_record_id
from memorylink.core.paths import record_path
from memorylink.quarantine.handler import mark_as_quarantined
from memorylink.storage.capture import capture_memory, quarantined_placeholder
from memorylink.storage.records import (
    EvidenceLevel,
    MemoryRecord,
    MemoryStatus,
    Scope,
    ScopeType,
    delete_record,
    iter_records,
    list_record_ids,
    load_record,
    save_record,
)


def _record(project, **overrides):
    values = dict(
        id=generate_record_id(),
        content="use pnpm for installs",
        evidence_level=EvidenceLevel.RAW,
        status=MemoryStatus.ACTIVE,
        scope=Scope.for_project(project),
        conflict_key="package-manager",
        created_at="2026-01-01T00:00:00.000Z",
    )
    values.update(overrides)
    return MemoryRecord(**values)


def _path(project, record):
    return record_path(project, record.scope.type.value, record.scope.id, record.id)


class TestRecordStore:
    """Test saving and loading records."""

    def test_round_trip(self, project):
        record = _record(project, purpose_tags=["work", "tooling"])
        save_record(project, record)
        assert load_record(project, record.scope, record.id) == record

    def test_optional_fields_omitted(self, project):
        record = _record(project)
        save_record(project, record)
        data = json.loads(_path(project, record).read_text(encoding="utf-8"))
        assert "quarantine_ref" not in data
        assert "ownership" not in data
        assert data["scope"] == {"type": "project", "id": record.scope.id}

    def test_invalid_id_rejected(self, project):
        with pytest.raises(ValidationError):
            save_record(project, _record(project, id="../escape"))

    def test_quarantined_requires_ref(self, project):
        with pytest.raises(ValidationError):
            save_record(project, _record(project, status=MemoryStatus.QUARANTINED))

    def test_mark_as_quarantined(self, project):
        record = _record(project)
        marked = mark_as_quarantined(record, ".memorylink/quarantined/x.original")
        assert marked.status == MemoryStatus.QUARANTINED
        assert marked.quarantine_ref == ".memorylink/quarantined/x.original"
        assert record.status == MemoryStatus.ACTIVE
        save_record(project, marked)
        assert load_record(project, marked.scope, marked.id).is_quarantined

    def test_missing_record(self, project):
        with pytest.raises(RecordNotFoundError):
            load_record(project, Scope.for_project(project), generate_record_id())

    def test_corrupted_record(self, project):
        record = _record(project)
        save_record(project, record)
        _path(project, record).write_text("{oops", encoding="utf-8")
        with pytest.raises(FileReadError, match="Corrupted record file"):
            load_record(project, record.scope, record.id)

    def test_id_mismatch(self, project):
        record = _record(project)
        other = _record(project)
        save_record(project, record)
        _path(project, record).write_text(json.dumps(other.to_dict()), encoding="utf-8")
        with pytest.raises(FileReadError, match="Record ID mismatch"):
            load_record(project, record.scope, record.id)

    def test_missing_fields(self):
        with pytest.raises(ValidationError):
            MemoryRecord.from_dict({"id": "mem_a_12345678"})

    def test_list_iter_and_delete(self, project):
        scope = Scope.for_project(project)
        good = _record(project)
        broken = _record(project)
        save_record(project, good)
        save_record(project, broken)
        _path(project, broken).write_text("[]", encoding="utf-8")
        (_path(project, good).parent / "notes.txt").write_text("ignored", encoding="utf-8")

        assert list_record_ids(project, scope) == sorted([good.id, broken.id])
        assert [r.id for r in iter_records(project, scope)] == [good.id]

        delete_record(project, scope, good.id)
        delete_record(project, scope, good.id)
        assert list_record_ids(project, scope) == [broken.id]

    def test_scopes_are_separate(self, project):
        user_scope = Scope(ScopeType.USER, "someone")
        save_record(project, _record(project, scope=user_scope))
        assert list_record_ids(project, Scope.for_project(project)) == []
        assert len(list_record_ids(project, user_scope)) == 1

    def test_scope_id_is_stable(self, project):
        assert Scope.for_project(project) == Scope.for_project(str(project) + "/")


class TestCapture:
    """Test the capture flow."""

    def test_clean_capture(self, project):
        record = capture_memory(project, "use pnpm for installs", "package-manager")
        assert record.status == MemoryStatus.ACTIVE
        assert record.quarantine_ref is None
        assert record.purpose_tags == ["work"]
        assert record.sources[0]["ref"] == f"memory:{record.id}"
        assert load_record(project, record.scope, record.id).content == "use pnpm for installs"

        capture = filter_events(read_audit_events(project), event_type="CAPTURE")[0]
        assert capture["record_id"] == record.id
        assert capture["content"] == "use pnpm for installs"

    def test_secret_is_quarantined(self, project, openai_style_secret):
        record = capture_memory(project, openai_style_secret, "deploy")
        assert record.status == MemoryStatus.QUARANTINED
        assert record.quarantine_ref
        assert record.content == quarantined_placeholder("api-key-1")

        stored = _path(project, record).read_text(encoding="utf-8")
        assert "sk-" not in stored

        events = read_audit_events(project)
        assert [e["event_type"] for e in events] == ["QUARANTINE", "CAPTURE"]
        assert events[1]["quarantine"] is True
        assert "content" not in events[1]
        assert "sk-" not in json.dumps(events)
        assert verify_audit_chain(project).valid

    def test_source_file_recorded(self, project):
        record = capture_memory(project, "notes", "topic", evidence_level="E1", file_path="docs/notes.txt")
        assert record.evidence_level == EvidenceLevel.CURATED
        assert record.sources[0]["ref"] == "docs/notes.txt"

    @pytest.mark.parametrize("content, key", [("", "k"), ("   ", "k"), ("text", ""), ("text", "  ")])
    def test_empty_input_rejected(self, project, content, key):
        with pytest.raises(ValidationError):
            capture_memory(project, content, key)

    def test_verified_level_rejected(self, project):
        with pytest.raises(EvidenceLevelError):
            capture_memory(project, "text", "k", evidence_level=EvidenceLevel.VERIFIED)
