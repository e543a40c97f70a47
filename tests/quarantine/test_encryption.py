# SPDX-License-Identifier: MIT
"""
Tests for per-project AES-256-GCM quarantine encryption.
"""

import base64
import os

import pytest

from memorylink.core.exceptions import DecryptionError, FileReadError
from memorylink.quarantine.encryption import (
    ENCRYPTED_MARKER,
    IV_LENGTH,
    SALT_LENGTH,
    ProjectKeyStore,
    QuarantineCipher,
    decrypt,
    decrypt_file,
    encrypt,
    encrypt_file,
    get_encryption_status,
    hash_for_audit,
    is_encrypted,
)

_HEADER = len(ENCRYPTED_MARKER) + 1


def _flip(payload, index):
    raw = bytearray(base64.b64decode(payload))
    raw[index] ^= 0x01
    return base64.b64encode(bytes(raw)).decode("ascii")


class TestRoundTrip:
    """Test encrypt/decrypt behaviour."""

    @pytest.mark.parametrize("message", ["hello", "API_KEY=sk-" + "a" * 40, "ünïcödé ✓ 秘密", "x" * 100_000])
    def test_round_trip(self, project, message):
        assert decrypt(encrypt(message, project), project) == message

    def test_payload_is_marked_and_unique(self, project):
        """Fresh salt and IV make two encryptions of one message differ."""
        first = encrypt("same", project)
        second = encrypt("same", project)
        assert first != second
        assert is_encrypted(first)
        assert not is_encrypted("plain text")
        assert base64.b64decode(first).startswith(ENCRYPTED_MARKER.encode("utf-8"))

    def test_ciphertext_bit_flip_fails(self, project):
        payload = encrypt("secret message", project)
        raw_length = len(base64.b64decode(payload))
        with pytest.raises(DecryptionError):
            decrypt(_flip(payload, raw_length - 1), project)

    def test_tag_bit_flip_fails(self, project):
        payload = encrypt("secret message", project)
        with pytest.raises(DecryptionError):
            decrypt(_flip(payload, _HEADER + SALT_LENGTH + IV_LENGTH), project)

    def test_salt_bit_flip_fails(self, project):
        payload = encrypt("secret message", project)
        with pytest.raises(DecryptionError):
            decrypt(_flip(payload, _HEADER), project)

    @pytest.mark.parametrize("payload", ["not base64 !!", base64.b64encode(b"no marker").decode("ascii")])
    def test_malformed_payload(self, project, payload):
        with pytest.raises(DecryptionError):
            decrypt(payload, project)

    def test_truncated_payload(self, project):
        truncated = base64.b64encode((ENCRYPTED_MARKER + "\n").encode("utf-8") + b"short").decode("ascii")
        with pytest.raises(DecryptionError):
            decrypt(truncated, project)

    def test_other_project_cannot_decrypt(self, tmp_path):
        first = tmp_path / "one"
        second = tmp_path / "two"
        first.mkdir()
        second.mkdir()
        payload = encrypt("secret", first)
        with pytest.raises(DecryptionError):
            decrypt(payload, second)


class TestKeyStore:
    """Test project key handling."""

    def test_key_created_once_with_private_mode(self, project):
        store = ProjectKeyStore(project)
        assert not store.exists()
        key = store.load_or_create()
        assert len(key) == 32
        assert store.exists()
        assert store.load_or_create() == key
        assert os.stat(store.key_path).st_mode & 0o777 == 0o600

    def test_key_lives_outside_project(self, project, tmp_path):
        store = ProjectKeyStore(project)
        assert str(store.key_path).startswith(str(tmp_path / "home"))
        assert project not in store.key_path.parents

    def test_bad_key_file(self, project):
        store = ProjectKeyStore(project)
        store.directory.mkdir(parents=True)
        store.key_path.write_text("zz-not-hex", encoding="utf-8")
        with pytest.raises(FileReadError):
            QuarantineCipher(project, store).encrypt("data")

    def test_short_key_file(self, project):
        store = ProjectKeyStore(project)
        store.directory.mkdir(parents=True)
        store.key_path.write_text("ab" * 8, encoding="utf-8")
        with pytest.raises(FileReadError):
            store.load_or_create()


class TestFilesAndStatus:
    """Test file helpers and status reporting."""

    def test_encrypt_file_in_place(self, project):
        target = project / "note.txt"
        target.write_text("remember this", encoding="utf-8")
        encrypt_file(target, project)
        once = target.read_text(encoding="utf-8")
        assert is_encrypted(once)
        encrypt_file(target, project)
        assert target.read_text(encoding="utf-8") == once
        assert decrypt_file(target, project) == "remember this"

    def test_decrypt_plain_file(self, project):
        target = project / "plain.txt"
        target.write_text("plain", encoding="utf-8")
        assert decrypt_file(target, project) == "plain"

    def test_status(self, project):
        status = get_encryption_status(project)
        assert status["key_exists"] is False
        assert status["algorithm"] == "aes-256-gcm"
        assert status["key_length"] == 256
        encrypt("x", project)
        assert get_encryption_status(project)["key_exists"] is True

    def test_hash_for_audit(self):
        digest = hash_for_audit("content")
        assert len(digest) == 16
        assert digest == hash_for_audit("content")
        assert digest != hash_for_audit("other")
