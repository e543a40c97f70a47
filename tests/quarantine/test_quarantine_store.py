# SPDX-License-Identifier: MIT
"""
Tests for quarantining, inspecting and releasing content.
"""

import json

import pytest

from memorylink.audit.logger import read_audit_events, verify_audit_chain
from memorylink.core.exceptions import DecryptionError, RecordNotFoundError, StorageError
from memorylink.core.paths import quarantine_content_path, quarantine_metadata_path
from memorylink.quarantine.encryption import ProjectKeyStore, is_encrypted
from memorylink.quarantine.handler import (
    check_and_quarantine,
    load_quarantined_content,
    quarantine_content,
    save_quarantined_content,
)
from memorylink.quarantine.release import (
    DEFAULT_RELEASE_REASON,
    get_quarantine_details,
    list_quarantined,
    read_quarantine_metadata,
    release_from_quarantine,
)
from memorylink.storage.capture import capture_memory
from memorylink.storage.records import MemoryStatus, Scope, load_record

RECORD_ID = "mem_abc123_0123abcd"


def _break_key(project):
    store = ProjectKeyStore(project)
    store.directory.mkdir(parents=True, exist_ok=True)
    store.key_path.write_text("not a key", encoding="utf-8")


def _write_config(project, config):
    directory = project / ".memorylink"
    directory.mkdir(exist_ok=True)
    (directory / "config.json").write_text(json.dumps(config), encoding="utf-8")


class TestQuarantineContent:
    """Test writing quarantined content."""

    def test_content_is_encrypted_at_rest(self, project, openai_style_secret):
        result = quarantine_content(project, openai_style_secret, RECORD_ID, "api-key-1")
        assert result.quarantined
        stored = quarantine_content_path(project, RECORD_ID).read_text(encoding="utf-8")
        assert is_encrypted(stored)
        assert "sk-" not in stored
        assert result.quarantine_ref == str(quarantine_content_path(project, RECORD_ID))
        assert load_quarantined_content(project, RECORD_ID) == openai_style_secret

    def test_metadata_and_audit_written(self, project, openai_style_secret):
        quarantine_content(project, openai_style_secret, RECORD_ID, "api-key-1")
        metadata = read_quarantine_metadata(project, RECORD_ID)
        assert metadata["pattern_id"] == "api-key-1"
        assert metadata["validity"] is None
        events = read_audit_events(project)
        assert [e["event_type"] for e in events] == ["QUARANTINE"]
        assert events[0]["reason"] == "Secret detected: api-key-1"
        assert "sk-" not in json.dumps(events)

    def test_check_without_secret(self, project):
        result = check_and_quarantine(project, "nothing to see here", RECORD_ID)
        assert not result.quarantined
        assert not quarantine_content_path(project, RECORD_ID).exists()

    def test_check_with_secret(self, project, openai_style_secret):
        result = check_and_quarantine(project, openai_style_secret, RECORD_ID)
        assert result.quarantined
        assert result.pattern == "api-key-1"


class TestEncryptionFailure:
    """The encryption_failure setting decides between plaintext and failure."""

    def test_plaintext_fallback_by_default(self, project):
        _break_key(project)
        path = save_quarantined_content(project, RECORD_ID, "fallback text")
        assert path.read_text(encoding="utf-8") == "fallback text"
        assert load_quarantined_content(project, RECORD_ID) == "fallback text"

    def test_fail_mode_raises(self, project):
        _break_key(project)
        _write_config(project, {"quarantine": {"encryption_failure": "fail"}})
        with pytest.raises(StorageError):
            save_quarantined_content(project, RECORD_ID, "no plaintext please")
        assert not quarantine_content_path(project, RECORD_ID).exists()

    def test_capture_survives_quarantine_failure(self, project, openai_style_secret):
        """The record is still created, without a quarantine reference."""
        _break_key(project)
        _write_config(project, {"quarantine": {"encryption_failure": "fail"}})
        record = capture_memory(project, openai_style_secret, "deploy")
        assert record.status == MemoryStatus.ACTIVE
        assert record.quarantine_ref is None


class TestReadBack:
    """Test loading quarantined content."""

    def test_missing_item(self, project):
        with pytest.raises(RecordNotFoundError):
            load_quarantined_content(project, RECORD_ID)

    def test_tampered_item(self, project, openai_style_secret):
        quarantine_content(project, openai_style_secret, RECORD_ID, "api-key-1")
        path = quarantine_content_path(project, RECORD_ID)
        stored = path.read_text(encoding="utf-8")
        swapped = stored[:-6] + ("A" if stored[-6] != "A" else "B") + stored[-5:]
        path.write_text(swapped, encoding="utf-8")
        with pytest.raises(DecryptionError):
            load_quarantined_content(project, RECORD_ID)


class TestListAndRelease:
    """Test listing, inspecting and releasing items."""

    def test_list_and_details(self, project, openai_style_secret):
        record = capture_memory(project, openai_style_secret, "deploy")
        items = list_quarantined(project)
        assert [item.id for item in items] == [record.id]
        assert items[0].encrypted
        assert items[0].pattern_id == "api-key-1"
        details = get_quarantine_details(project, record.id)
        assert details["content"] == openai_style_secret
        assert details["metadata"]["record_id"] == record.id

    def test_list_empty(self, project):
        assert list_quarantined(project) == []

    def test_release_retires_record(self, project, openai_style_secret):
        record = capture_memory(project, openai_style_secret, "deploy")
        event = release_from_quarantine(project, record.id)

        assert event["event_type"] == "RELEASE"
        assert event["reason"] == DEFAULT_RELEASE_REASON
        assert event["record_retired"] is True
        assert not quarantine_content_path(project, record.id).exists()
        assert not quarantine_metadata_path(project, record.id).exists()

        retired = load_record(project, Scope.for_project(project), record.id)
        assert retired.status == MemoryStatus.DEPRECATED
        assert retired.quarantine_ref is None
        assert verify_audit_chain(project).valid

    def test_release_with_reason(self, project, openai_style_secret):
        record = capture_memory(project, openai_style_secret, "deploy")
        event = release_from_quarantine(project, record.id, "false positive")
        assert event["reason"] == "false positive"

    def test_release_unknown(self, project):
        with pytest.raises(RecordNotFoundError):
            release_from_quarantine(project, RECORD_ID)
