# SPDX-License-Identifier: MIT
"""
Per-project authenticated encryption for quarantined content.

One random 256-bit master key per project lives outside the project tree at
``~/.memorylink/keys/<sha256(project path)[:16]>.key`` (hex, mode 0600).
Every message gets a fresh salt and IV; the message key is derived with
PBKDF2-HMAC-SHA256 and the payload sealed with AES-256-GCM.

At-rest layout (base64 encoded)::

    MEMORYLINK_ENCRYPTED_V1\\n | salt(32) | iv(16) | tag(16) | ciphertext
"""
from __future__ import annotations

import base64
import binascii
import hashlib
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from memorylink.core.atomic import atomic_write_text
from memorylink.core.exceptions import DecryptionError, FileReadError, StorageError
from memorylink.core.paths import keys_dir

logger = logging.getLogger(__name__)

ALGORITHM = "aes-256-gcm"
IV_LENGTH = 16
AUTH_TAG_LENGTH = 16
SALT_LENGTH = 32
KEY_LENGTH = 32
PBKDF2_ITERATIONS = 100_000
ENCRYPTED_MARKER = "MEMORYLINK_ENCRYPTED_V1"
_MARKER_BYTES = (ENCRYPTED_MARKER + "\n").encode("utf-8")


def project_hash(project_root) -> str:
    return hashlib.sha256(str(Path(project_root).resolve()).encode("utf-8")).hexdigest()[:16]


class ProjectKeyStore:
    """Creates and reads the master key of one project."""

    def __init__(self, project_root, directory: Optional[Path] = None):
        self.project_root = Path(project_root)
        self.directory = Path(directory) if directory is not None else keys_dir()

    @property
    def key_path(self) -> Path:
        return self.directory / f"{project_hash(self.project_root)}.key"

    def exists(self) -> bool:
        return self.key_path.exists()

    def load_or_create(self) -> bytes:
        path = self.key_path
        if path.exists():
            try:
                key = bytes.fromhex(path.read_text(encoding="utf-8").strip())
            except (OSError, ValueError) as e:
                logger.error("Unreadable encryption key %s: %s", path, e)
                raise FileReadError(f"Unreadable encryption key: {e}", operation="read_key", path=str(path)) from e
            if len(key) != KEY_LENGTH:
                raise FileReadError("Encryption key has the wrong length", operation="read_key", path=str(path))
            return key

        self.directory.mkdir(parents=True, exist_ok=True, mode=0o700)
        key = os.urandom(KEY_LENGTH)
        try:
            fd = os.open(str(path), os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        except FileExistsError:
            # Another process created it first.
            return self.load_or_create()
        except OSError as e:
            raise StorageError(f"Failed to create encryption key: {e}", operation="create_key", path=str(path)) from e
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(key.hex())
        try:
            os.chmod(path, 0o600)
        except OSError:
            pass
        logger.info("Created encryption key for project at %s", path)
        return key


def derive_key(master_key: bytes, salt: bytes) -> bytes:
    kdf = PBKDF2HMAC(algorithm=hashes.SHA256(), length=KEY_LENGTH, salt=salt, iterations=PBKDF2_ITERATIONS)
    return kdf.derive(master_key)


class QuarantineCipher:
    """Encrypts and decrypts quarantine payloads for one project."""

    def __init__(self, project_root, key_store: Optional[ProjectKeyStore] = None):
        self.key_store = key_store or ProjectKeyStore(project_root)

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt plaintext string.

        Args:
            plaintext: UTF-8 text to seal

        Returns:
            Base64 payload carrying marker, salt, IV, tag and ciphertext
        """
        master_key = self.key_store.load_or_create()
        salt = os.urandom(SALT_LENGTH)
        iv = os.urandom(IV_LENGTH)
        sealed = AESGCM(derive_key(master_key, salt)).encrypt(iv, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[:-AUTH_TAG_LENGTH], sealed[-AUTH_TAG_LENGTH:]
        combined = _MARKER_BYTES + salt + iv + tag + ciphertext
        return base64.b64encode(combined).decode("ascii")

    def decrypt(self, payload: str) -> str:
        """
        Decrypt a payload produced by ``encrypt``.

        Raises:
            DecryptionError: On a bad marker, truncated payload or failed
                authentication tag
        """
        try:
            combined = base64.b64decode(payload.strip(), validate=True)
        except (binascii.Error, ValueError) as e:
            raise DecryptionError("Invalid encrypted data format") from e

        if not combined.startswith(_MARKER_BYTES):
            raise DecryptionError("Invalid encrypted data format")

        offset = len(_MARKER_BYTES)
        header_end = offset + SALT_LENGTH + IV_LENGTH + AUTH_TAG_LENGTH
        if len(combined) < header_end:
            raise DecryptionError("Encrypted data is truncated")

        salt = combined[offset: offset + SALT_LENGTH]
        offset += SALT_LENGTH
        iv = combined[offset: offset + IV_LENGTH]
        offset += IV_LENGTH
        tag = combined[offset: offset + AUTH_TAG_LENGTH]
        ciphertext = combined[header_end:]

        master_key = self.key_store.load_or_create()
        try:
            plaintext = AESGCM(derive_key(master_key, salt)).decrypt(iv, ciphertext + tag, None)
        except InvalidTag as e:
            logger.error("Quarantine payload failed authentication")
            raise DecryptionError("Decryption failed: authentication tag mismatch") from e
        return plaintext.decode("utf-8")


def is_encrypted(data: str) -> bool:
    try:
        return base64.b64decode(data.strip(), validate=True).startswith(ENCRYPTED_MARKER.encode("utf-8"))
    except (binascii.Error, ValueError):
        return False


def encrypt(plaintext: str, cwd) -> str:
    return QuarantineCipher(cwd).encrypt(plaintext)


def decrypt(payload: str, cwd) -> str:
    return QuarantineCipher(cwd).decrypt(payload)


def encrypt_file(file_path, cwd) -> None:
    """Encrypt a file in place; already-encrypted files are left alone."""
    path = Path(file_path)
    content = path.read_text(encoding="utf-8")
    if is_encrypted(content):
        return
    atomic_write_text(path, QuarantineCipher(cwd).encrypt(content))


def decrypt_file(file_path, cwd) -> str:
    content = Path(file_path).read_text(encoding="utf-8")
    if not is_encrypted(content):
        return content
    return QuarantineCipher(cwd).decrypt(content)


def get_encryption_status(cwd) -> Dict[str, Any]:
    store = ProjectKeyStore(cwd)
    return {
        "key_exists": store.exists(),
        "key_path": str(store.key_path),
        "algorithm": ALGORITHM,
        "key_length": KEY_LENGTH * 8,
    }


def hash_for_audit(data: str) -> str:
    return hashlib.sha256(data.encode("utf-8")).hexdigest()[:16]
