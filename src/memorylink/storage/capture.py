# SPDX-License-Identifier: MIT
"""
Capture flow: screen new memory content, quarantine it when it holds a
secret, then persist the record and audit the capture.
"""
from __future__ import annotations

import dataclasses
import logging
import os
from typing import List, Optional

from memorylink.audit.logger import append_audit_event, utc_timestamp
from memorylink.core.exceptions import EvidenceLevelError, MemoryLinkError, StorageError, ValidationError
from memorylink.core.ids import generate_record_id
from memorylink.core.redaction import create_safe_preview
from memorylink.quarantine.encryption import hash_for_audit
from memorylink.quarantine.handler import QuarantineResult, check_and_quarantine, mark_as_quarantined
from memorylink.storage.records import EvidenceLevel, MemoryRecord, MemoryStatus, Scope, save_record

logger = logging.getLogger(__name__)

AUDIT_PREVIEW_LENGTH = 100


def quarantined_placeholder(pattern_id: Optional[str]) -> str:
    return f"[QUARANTINED: {pattern_id or 'unknown'}]"


def capture_memory(
    cwd,
    content: str,
    conflict_key: str,
    evidence_level: EvidenceLevel = EvidenceLevel.RAW,
    purpose_tags: Optional[List[str]] = None,
    scope: Optional[Scope] = None,
    file_path: Optional[str] = None,
) -> MemoryRecord:
    """
    Create a memory record from ``content``.

    Content with a detected secret is quarantined and the stored record only
    keeps a placeholder. If quarantine storage fails the record is still saved
    as ACTIVE, without a reference, and the failure is logged.

    Raises:
        ValidationError: On empty content or conflict key
        EvidenceLevelError: If E2 is requested (only reachable through promotion)
        StorageError: If the record itself cannot be saved
    """
    if not content or not content.strip():
        raise ValidationError("Content cannot be empty", field="content")
    if not conflict_key or not conflict_key.strip():
        raise ValidationError("Conflict key cannot be empty", field="conflict_key")
    evidence_level = EvidenceLevel(evidence_level)
    if evidence_level == EvidenceLevel.VERIFIED:
        raise EvidenceLevelError("E2 cannot be set at capture; promote the record instead")

    record_id = generate_record_id()
    try:
        quarantine = check_and_quarantine(cwd, content, record_id, file_path=file_path)
    except StorageError as e:
        logger.warning("Warning: Failed to quarantine content: %s", e)
        quarantine = QuarantineResult(quarantined=False)

    now = utc_timestamp()
    record = MemoryRecord(
        id=record_id,
        content=content,
        evidence_level=evidence_level,
        status=MemoryStatus.ACTIVE,
        scope=scope or Scope.for_project(cwd),
        conflict_key=conflict_key.strip(),
        created_at=now,
        purpose_tags=list(purpose_tags or ["work"]),
        sources=[{"type": "capture", "ref": file_path or f"memory:{record_id}", "captured_at": now}],
    )
    if quarantine.quarantined:
        record = mark_as_quarantined(
            dataclasses.replace(record, content=quarantined_placeholder(quarantine.pattern)),
            quarantine.quarantine_ref,
        )
    save_record(cwd, record)

    event = {
        "event_type": "CAPTURE",
        "record_id": record.id,
        "evidence_level": record.evidence_level.value,
        "status": record.status.value,
        "conflict_key": record.conflict_key,
        "content_hash": hash_for_audit(content),
        "author": os.environ.get("USER") or os.environ.get("USERNAME") or "unknown",
    }
    if quarantine.quarantined:
        event.update(quarantine=True, pattern=quarantine.pattern)
    else:
        event["content"] = create_safe_preview(content, AUDIT_PREVIEW_LENGTH)
    try:
        append_audit_event(cwd, event)
    except MemoryLinkError as e:
        logger.warning("Warning: Failed to log audit event: %s", e)
    return record
