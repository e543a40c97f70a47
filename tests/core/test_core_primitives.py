# SPDX-License-Identifier: MIT
"""
Tests for retry, atomic writes, locking, ids and redaction helpers.
"""

import errno
import json

import pytest

from memorylink.core.atomic import atomic_write_json, atomic_write_text
from memorylink.core.exceptions import (
    ConflictResolutionError,
    ExitCode,
    FileWriteError,
    LockError,
    StorageError,
    ValidationError,
    get_exit_code_meaning,
)
from memorylink.core.filelock import FileLock, fcntl, is_lock_stale
from memorylink.core.ids import generate_event_id, generate_record_id, is_valid_record_id, to_base36
from memorylink.core.outcome import Fatal, Ok, Recovered, unwrap
from memorylink.core.redaction import create_safe_preview, is_masked, mask_line_secret, mask_secret, redact_secret
from memorylink.core.retry import RetryOptions, with_retry


class TestRetry:
    """Test bounded retry of transient errors."""

    def test_transient_error_is_retried(self):
        """A busy error followed by success returns the result."""
        calls = []
        delays = []

        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise OSError(errno.EBUSY, "busy")
            return "done"

        assert with_retry(flaky, RetryOptions(max_retries=3), sleep=delays.append) == "done"
        assert len(calls) == 3
        assert len(delays) == 2
        assert delays[1] >= delays[0] * 0.5

    def test_gives_up_after_max_retries(self):
        """The last error propagates once retries are exhausted."""
        calls = []

        def always_busy():
            calls.append(1)
            raise OSError(errno.EAGAIN, "again")

        with pytest.raises(OSError):
            with_retry(always_busy, RetryOptions(max_retries=2), sleep=lambda _: None)
        assert len(calls) == 3

    def test_non_retryable_error_raises_immediately(self):
        """Permission errors are not retried."""
        calls = []

        def denied():
            calls.append(1)
            raise PermissionError(errno.EACCES, "denied")

        with pytest.raises(PermissionError):
            with_retry(denied, sleep=lambda _: None)
        assert len(calls) == 1


class TestAtomicWrite:
    """Test atomic file replacement."""

    def test_write_creates_parents(self, tmp_path):
        """Missing parent directories are created."""
        target = tmp_path / "a" / "b" / "file.txt"
        atomic_write_text(target, "hello")
        assert target.read_text(encoding="utf-8") == "hello"

    def test_overwrite_leaves_no_temp_files(self, tmp_path):
        """Replacing a file leaves only the target behind."""
        target = tmp_path / "data.json"
        atomic_write_json(target, {"n": 1})
        atomic_write_json(target, {"n": 2})
        assert json.loads(target.read_text(encoding="utf-8")) == {"n": 2}
        assert [p.name for p in tmp_path.iterdir()] == ["data.json"]

    def test_write_into_file_parent_fails(self, tmp_path):
        """A parent that is a regular file surfaces as FileWriteError."""
        blocker = tmp_path / "blocker"
        blocker.write_text("x", encoding="utf-8")
        with pytest.raises(FileWriteError):
            atomic_write_text(blocker / "child.txt", "data", RetryOptions(max_retries=0))


class TestFileLock:
    """Test the advisory project lock."""

    def test_lock_is_exclusive(self, tmp_path):
        """A second holder times out while the first holds the lock."""
        with FileLock(tmp_path, "audit") as first:
            assert first.is_held
            with pytest.raises(LockError):
                FileLock(tmp_path, "audit", timeout=0.2, retry_interval=0.05).acquire()
        with FileLock(tmp_path, "audit", timeout=0.2) as again:
            assert again.is_held

    def test_sentinel_lock_released_on_exit(self, tmp_path):
        """The sentinel strategy removes its lock file on release."""
        lock = FileLock(tmp_path, "records", use_flock=False)
        with lock:
            assert lock.lock_path.exists()
        assert not lock.lock_path.exists()

    def test_stale_sentinel_detection(self):
        """Old or dead-owner sentinels are stale, fresh live ones are not."""
        now = 1_000_000.0
        fresh = {"pid": 42, "timestamp": int(now * 1000), "hostname": "host-a"}
        assert is_lock_stale(None, 30)
        assert is_lock_stale({**fresh, "timestamp": int((now - 60) * 1000)}, 30, now=now, hostname="host-a")
        assert is_lock_stale(fresh, 30, now=now, hostname="host-a", alive=lambda pid: False)
        assert not is_lock_stale(fresh, 30, now=now, hostname="host-a", alive=lambda pid: True)
        assert not is_lock_stale(fresh, 30, now=now, hostname="host-b", alive=lambda pid: False)

    @pytest.mark.skipif(fcntl is None, reason="flock not available")
    def test_unopenable_lock_file_raises_lock_error(self, tmp_path):
        """An OS failure opening the lock surfaces as LockError, not a bare OSError."""
        (tmp_path / ".locks" / "audit.lock").mkdir(parents=True)
        with pytest.raises(LockError) as exc_info:
            FileLock(tmp_path, "audit", timeout=0.2, use_flock=True).acquire()
        assert isinstance(exc_info.value, StorageError)
        assert exc_info.value.exit_code == ExitCode.ERROR

    def test_unremovable_sentinel_raises_lock_error(self, tmp_path):
        (tmp_path / ".locks" / "records.lock").mkdir(parents=True)
        with pytest.raises(LockError):
            FileLock(tmp_path, "records", timeout=0.2, use_flock=False).acquire()

    def test_unusable_lock_directory(self, tmp_path):
        (tmp_path / ".locks").write_text("not a directory", encoding="utf-8")
        with pytest.raises(LockError):
            FileLock(tmp_path, "audit", timeout=0.2).acquire()


class TestIds:
    """Test record and event id formats."""

    def test_record_id_format(self):
        record_id = generate_record_id()
        assert record_id.startswith("mem_")
        assert is_valid_record_id(record_id)

    def test_invalid_record_ids(self):
        assert not is_valid_record_id("")
        assert not is_valid_record_id("../../etc/passwd")
        assert not is_valid_record_id("mem_ABC_1234abcd")

    def test_event_id_and_base36(self):
        assert generate_event_id().startswith("evt_")
        assert to_base36(0) == "0"
        assert to_base36(35) == "z"
        assert to_base36(36) == "10"
        with pytest.raises(ValueError):
            to_base36(-1)


class TestRedaction:
    """Test masking and previews."""

    def test_mask_secret(self):
        assert mask_secret("short") == "****"
        masked = mask_secret("sk-" + "a" * 40)
        assert masked.startswith("sk-a")
        assert masked.endswith("aaa")
        assert masked.count("*") == 20

    def test_mask_line_secret(self):
        """Only the secret inside the line is masked."""
        secret = "sk-" + "b" * 40
        masked = mask_line_secret(f"API_KEY={secret}  # prod", secret)
        assert secret not in masked
        assert masked.startswith("API_KEY=sk-b")
        assert masked.endswith("  # prod")
        assert mask_line_secret("DEBUG=1", secret) == "DEBUG=1"
        assert mask_line_secret("DEBUG=1", "") == "DEBUG=1"

    def test_redact_secret(self):
        assert redact_secret("abcdefghij") == "****"
        assert redact_secret("abcdefghijklmnop") == "abcdef****mnop"

    def test_safe_preview_hides_tokens(self):
        """Long token-shaped runs never survive into a preview."""
        token = "ABCDEFGHIJKLMNOPQRSTUVWXYZ123456"
        preview = create_safe_preview(f"note with token {token}\nsecond line")
        assert token not in preview
        assert "\n" not in preview
        assert is_masked(preview)

    def test_safe_preview_truncates(self):
        preview = create_safe_preview("word " * 100, max_length=20)
        assert preview.endswith("...")
        assert len(preview) == 23


class TestOutcomeAndErrors:
    """Test result wrappers and exit codes."""

    def test_outcomes(self):
        assert unwrap(Ok(1)) == 1
        recovered = Recovered([], "fell back")
        assert recovered.is_ok and unwrap(recovered) == []
        fatal = Fatal(ValidationError("bad"))
        assert not fatal.is_ok
        with pytest.raises(ValidationError):
            unwrap(fatal)

    def test_exit_codes(self):
        assert ValidationError("bad", field="content").exit_code == ExitCode.FAILURE
        assert "field: content" in str(ValidationError("bad", field="content"))
        assert get_exit_code_meaning(2).startswith("ERROR")
        assert get_exit_code_meaning(9) == "UNKNOWN"

    def test_conflict_resolution_error(self):
        error = ConflictResolutionError("Two E2 records share conflict key deploy-day")
        assert error.exit_code == ExitCode.ERROR
        assert error.to_dict() == {
            "error": "ConflictResolutionError",
            "code": "CONFLICT_RESOLUTION_ERROR",
            "message": "Two E2 records share conflict key deploy-day",
        }
