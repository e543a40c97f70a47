# SPDX-License-Identifier: MIT
"""
Inspecting and releasing quarantined items.
"""
from __future__ import annotations

import dataclasses
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from memorylink.audit.logger import append_audit_event
from memorylink.core.exceptions import RecordNotFoundError, StorageError
from memorylink.core.paths import quarantine_content_path, quarantine_dir, quarantine_metadata_path
from memorylink.quarantine.encryption import is_encrypted
from memorylink.quarantine.handler import load_quarantined_content
from memorylink.storage.records import MemoryStatus, Scope, load_record, save_record

logger = logging.getLogger(__name__)

CONTENT_SUFFIX = ".original"
DEFAULT_RELEASE_REASON = "Manual release by user"


@dataclass(frozen=True)
class QuarantinedItem:
    id: str
    file_name: str
    quarantined_at: str
    pattern_id: Optional[str]
    size: int
    encrypted: bool

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)


def read_quarantine_metadata(cwd, record_id: str) -> Optional[Dict[str, Any]]:
    path = quarantine_metadata_path(cwd, record_id)
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning("Warning: Unreadable quarantine metadata %s: %s", path, e)
        return None
    return data if isinstance(data, dict) else None


def list_quarantined(cwd) -> List[QuarantinedItem]:
    directory = quarantine_dir(cwd)
    if not directory.is_dir():
        return []

    items = []
    for path in sorted(directory.iterdir()):
        if not path.name.endswith(CONTENT_SUFFIX):
            continue
        record_id = path.name[: -len(CONTENT_SUFFIX)]
        try:
            stats = path.stat()
            stored = path.read_text(encoding="utf-8")
        except OSError as e:
            logger.warning("Warning: Skipping unreadable quarantine file %s: %s", path, e)
            continue
        metadata = read_quarantine_metadata(cwd, record_id) or {}
        quarantined_at = metadata.get("quarantined_at") or datetime.fromtimestamp(
            stats.st_mtime, timezone.utc
        ).isoformat()
        items.append(QuarantinedItem(
            id=record_id,
            file_name=path.name,
            quarantined_at=quarantined_at,
            pattern_id=metadata.get("pattern_id"),
            size=stats.st_size,
            encrypted=is_encrypted(stored),
        ))
    return items


def get_quarantine_details(cwd, record_id: str) -> Dict[str, Any]:
    """
    Decrypt one quarantined item for explicit inspection.

    Raises:
        RecordNotFoundError: If ``record_id`` is not quarantined
        DecryptionError: If the stored payload fails authentication
    """
    return {
        "record_id": record_id,
        "content": load_quarantined_content(cwd, record_id),
        "metadata": read_quarantine_metadata(cwd, record_id),
    }


def _retire_record(cwd, record_id: str) -> bool:
    scope = Scope.for_project(cwd)
    try:
        record = load_record(cwd, scope, record_id)
    except StorageError:
        return False
    if record.status != MemoryStatus.QUARANTINED:
        return False
    save_record(cwd, dataclasses.replace(record, status=MemoryStatus.DEPRECATED, quarantine_ref=None))
    return True


def release_from_quarantine(cwd, record_id: str, reason: Optional[str] = None) -> Dict[str, Any]:
    """
    Delete a quarantined item and record the release in the audit log.

    The matching project record, if still QUARANTINED, is marked DEPRECATED
    so it no longer trips the gate.

    Raises:
        RecordNotFoundError: If ``record_id`` is not quarantined
        StorageError: If the files cannot be removed
    """
    content_path = quarantine_content_path(cwd, record_id)
    if not content_path.exists():
        raise RecordNotFoundError("Quarantined item not found", operation="release", path=str(content_path))

    try:
        content_path.unlink()
        quarantine_metadata_path(cwd, record_id).unlink(missing_ok=True)
    except OSError as e:
        logger.error("Failed to release %s: %s", record_id, e)
        raise StorageError(f"Failed to release quarantined item: {e}", operation="release",
                           path=str(content_path)) from e

    retired = _retire_record(cwd, record_id)
    event = append_audit_event(cwd, {
        "event_type": "RELEASE",
        "record_id": record_id,
        "reason": reason or DEFAULT_RELEASE_REASON,
        "record_retired": retired,
    })
    logger.info("Released %s from quarantine", record_id)
    return event
