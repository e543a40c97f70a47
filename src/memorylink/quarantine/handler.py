# SPDX-License-Identifier: MIT
"""
Quarantine a piece of content once a secret has been detected in it.

The original text goes to ``.memorylink/quarantined/<record_id>.original``
(encrypted), a plaintext metadata sidecar records which pattern fired, and
a ``QUARANTINE`` event is appended to the audit log.
"""
from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from memorylink.audit.logger import append_audit_event, utc_timestamp
from memorylink.config import load_project_config_safe
from memorylink.core.atomic import atomic_write_json, atomic_write_text
from memorylink.core.exceptions import (
    DecryptionError,
    FileReadError,
    MemoryLinkError,
    RecordNotFoundError,
    StorageError,
)
from memorylink.core.outcome import Recovered
from memorylink.core.paths import MAX_FILE_SIZE, quarantine_content_path, quarantine_metadata_path
from memorylink.quarantine.detector import DetectionResult, detect_secrets
from memorylink.quarantine.encryption import QuarantineCipher, hash_for_audit, is_encrypted
from memorylink.storage.records import MemoryRecord, MemoryStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QuarantineResult:
    quarantined: bool
    record_id: Optional[str] = None
    quarantine_ref: Optional[str] = None
    pattern: Optional[str] = None


def _encryption_failure_mode(cwd) -> str:
    outcome = load_project_config_safe(cwd)
    if isinstance(outcome, Recovered):
        logger.warning("Warning: %s", outcome.warning)
    return outcome.value["quarantine"]["encryption_failure"]


def _validate_size(content: str) -> None:
    if len(content.encode("utf-8")) > MAX_FILE_SIZE:
        raise StorageError("Content too large to process safely", operation="validate")


def save_quarantined_content(cwd, record_id: str, content: str) -> Path:
    """
    Encrypt and write ``content`` to the record's quarantine file.

    When encryption fails the project setting
    ``quarantine.encryption_failure`` decides: ``"plaintext"`` stores the text
    as-is with a warning, ``"fail"`` raises StorageError.
    """
    _validate_size(content)
    path = quarantine_content_path(cwd, record_id)
    try:
        payload = QuarantineCipher(cwd).encrypt(content)
    except (MemoryLinkError, ValueError, OSError) as e:
        if _encryption_failure_mode(cwd) == "fail":
            logger.error("Encryption failed for %s: %s", record_id, e)
            raise StorageError(f"Encryption failed: {e}", operation="encrypt", path=str(path)) from e
        logger.warning("Warning: Encryption failed, storing plaintext: %s", e)
        payload = content
    atomic_write_text(path, payload)
    return path


def load_quarantined_content(cwd, record_id: str) -> str:
    """
    Read back quarantined content, decrypting it when needed.

    Raises:
        RecordNotFoundError: If nothing is quarantined under ``record_id``
        DecryptionError: If the payload fails authentication
    """
    path = quarantine_content_path(cwd, record_id)
    try:
        stored = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise RecordNotFoundError(f"No quarantined content for {record_id}", operation="read", path=str(path)) from e
    except OSError as e:
        raise FileReadError(f"Failed to load quarantined content: {e}", operation="read", path=str(path)) from e
    if not is_encrypted(stored):
        return stored
    try:
        return QuarantineCipher(cwd).decrypt(stored)
    except DecryptionError as e:
        raise DecryptionError(f"Failed to decrypt quarantined content: {e.message}") from e


def write_quarantine_metadata(cwd, record_id: str, pattern_id: str) -> Dict[str, Any]:
    metadata = {
        "record_id": record_id,
        "pattern_id": pattern_id,
        "quarantined_at": utc_timestamp(),
        # Filled in by a later validity check.
        "validity": None,
    }
    atomic_write_json(quarantine_metadata_path(cwd, record_id), metadata)
    return metadata


def quarantine_content(cwd, content: str, record_id: str, pattern_id: str) -> QuarantineResult:
    """Store ``content`` for ``record_id``; metadata and audit failures only warn."""
    path = save_quarantined_content(cwd, record_id, content)

    try:
        write_quarantine_metadata(cwd, record_id, pattern_id)
    except StorageError as e:
        logger.warning("Warning: Failed to create metadata file: %s", e)

    try:
        append_audit_event(cwd, {
            "event_type": "QUARANTINE",
            "record_id": record_id,
            "pattern": pattern_id,
            "reason": f"Secret detected: {pattern_id}",
            "content_hash": hash_for_audit(content),
        })
    except MemoryLinkError as e:
        logger.warning("Warning: Failed to log audit event: %s", e)

    logger.info("Quarantined %s (%s)", record_id, pattern_id)
    return QuarantineResult(quarantined=True, record_id=record_id, quarantine_ref=str(path), pattern=pattern_id)


def check_and_quarantine(
    cwd,
    content: str,
    record_id: str,
    file_path: Optional[str] = None,
    detection: Optional[DetectionResult] = None,
) -> QuarantineResult:
    """
    Detect secrets in ``content`` and quarantine it on a hit.

    Args:
        cwd: Project root (its config customises detection)
        content: Text about to be stored
        record_id: Record the content belongs to
        file_path: Origin of the text, if any
        detection: A detection already computed by the caller

    Returns:
        QuarantineResult; ``quarantined`` is False when nothing was found

    Raises:
        StorageError: If the content is over the size limit or cannot be written
    """
    _validate_size(content)
    result = detection if detection is not None else detect_secrets(content, file_path=file_path, cwd=cwd)
    if not result.found:
        return QuarantineResult(quarantined=False)
    return quarantine_content(cwd, content, record_id, result.pattern_id or "unknown")


def mark_as_quarantined(record: MemoryRecord, quarantine_ref: str) -> MemoryRecord:
    return dataclasses.replace(record, status=MemoryStatus.QUARANTINED, quarantine_ref=quarantine_ref)
