# SPDX-License-Identifier: MIT
"""
Append-only audit log stored as NDJSON at ``.memorylink/audit/events.ndjson``.

Every event gets an ``event_id``, an ISO-8601 ``timestamp``, the previous
event's hash in ``prev_event_hash`` and its own ``event_hash``: SHA-256 over
the key-sorted JSON of the event without ``event_hash``.
"""
from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from memorylink.core.atomic import atomic_write_text
from memorylink.core.exceptions import FileReadError, StorageError, ValidationError
from memorylink.core.filelock import FileLock
from memorylink.core.ids import generate_event_id
from memorylink.core.outcome import Ok, Outcome, Recovered
from memorylink.core.paths import MAX_FILE_SIZE, audit_log_path, memorylink_dir
from memorylink.core.retry import with_retry

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("event_id", "timestamp", "event_type")
_CHAIN_FIELDS = ("event_hash", "prev_event_hash")


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def canonical_json(event: Mapping[str, Any]) -> str:
    return json.dumps(event, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def compute_event_hash(event: Mapping[str, Any]) -> str:
    """Hash of the canonical form of ``event`` with ``event_hash`` left out."""
    body = {k: v for k, v in event.items() if k != "event_hash"}
    return hashlib.sha256(canonical_json(body).encode("utf-8")).hexdigest()


def _read_log_text(path: Path) -> str:
    if not path.exists():
        return ""
    if path.stat().st_size > MAX_FILE_SIZE:
        raise StorageError("Audit log too large to read safely", operation="read", path=str(path))
    return path.read_text(encoding="utf-8")


def _last_event_hash(text: str) -> Optional[str]:
    lines = [line for line in text.splitlines() if line.strip()]
    if not lines:
        return None
    try:
        last = json.loads(lines[-1])
    except ValueError:
        # A corrupted tail starts a fresh chain.
        return None
    return last.get("event_hash") if isinstance(last, dict) else None


def append_audit_event(cwd, event_data: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Append one event to the project's audit log.

    Args:
        cwd: Project root
        event_data: Event payload; must contain ``event_type``

    Returns:
        The event as written, including its chain fields

    Raises:
        ValidationError: If ``event_type`` is missing
        StorageError: If the log cannot be read, locked or rewritten
    """
    if not event_data.get("event_type"):
        raise ValidationError("Audit event requires an event_type", field="event_type")

    path = audit_log_path(cwd)
    payload = {k: v for k, v in event_data.items() if k not in _CHAIN_FIELDS}

    with FileLock(memorylink_dir(cwd), "audit"):
        try:
            existing = with_retry(lambda: _read_log_text(path), description="read audit log")
        except OSError as e:
            logger.error("Failed to read audit log %s: %s", path, e)
            raise FileReadError(f"Failed to append audit event: {e}", operation="read", path=str(path)) from e

        event: Dict[str, Any] = {"event_id": generate_event_id(), "timestamp": utc_timestamp()}
        event.update(payload)
        prev_hash = _last_event_hash(existing)
        if prev_hash:
            event["prev_event_hash"] = prev_hash
        event["event_hash"] = compute_event_hash(event)

        if existing and not existing.endswith("\n"):
            existing += "\n"
        atomic_write_text(path, existing + json.dumps(event, ensure_ascii=False) + "\n")

    logger.debug("Audit event %s (%s) appended", event["event_id"], event["event_type"])
    return event


def _parse_lines(text: str) -> List[Dict[str, Any]]:
    events = []
    for number, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line:
            continue
        try:
            event = json.loads(line)
        except ValueError:
            logger.warning("Warning: Skipping corrupted audit event at line %d", number)
            continue
        if not isinstance(event, dict) or not all(event.get(k) for k in REQUIRED_FIELDS):
            logger.warning("Warning: Skipping incomplete audit event at line %d", number)
            continue
        events.append(event)
    return events


def load_audit_events(cwd) -> Outcome:
    """
    Read every parseable event in file order.

    Returns ``Ok(events)`` for a clean read. An oversized or unreadable log
    yields ``Recovered([], warning)``; corrupted lines are skipped.
    """
    path = audit_log_path(cwd)
    try:
        text = with_retry(lambda: _read_log_text(path), description="read audit log")
    except StorageError as e:
        return Recovered([], str(e))
    except OSError as e:
        return Recovered([], f"Failed to read audit events: {e}")
    return Ok(_parse_lines(text))


def read_audit_events(cwd) -> List[Dict[str, Any]]:
    """Never raises; degraded reads are logged and return what could be read."""
    outcome = load_audit_events(cwd)
    if isinstance(outcome, Recovered):
        logger.warning("Warning: %s", outcome.warning)
    return outcome.value


@dataclass
class ChainVerification:
    valid: bool
    event_count: int
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"valid": self.valid, "eventCount": self.event_count, "errors": list(self.errors)}


def verify_events(events: List[Mapping[str, Any]]) -> ChainVerification:
    errors = []
    for index, event in enumerate(events):
        stored_hash = event.get("event_hash")
        if not stored_hash:
            continue
        label = f"Event {index + 1} ({event.get('event_id') or 'unknown'})"
        if compute_event_hash(event) != stored_hash:
            errors.append(f"{label}: Hash mismatch")
        if index > 0 and event.get("prev_event_hash"):
            if events[index - 1].get("event_hash") != event["prev_event_hash"]:
                errors.append(f"{label}: Chain broken")
    return ChainVerification(valid=not errors, event_count=len(events), errors=errors)


def verify_audit_chain(cwd) -> ChainVerification:
    """
    Recompute every event hash and check each back-link.

    Verification runs over the whole log; every mismatch is reported with
    the event's 1-based index and id.
    """
    return verify_events(read_audit_events(cwd))


def filter_events(
    events: List[Dict[str, Any]], event_type: Optional[str] = None, record_id: Optional[str] = None
) -> List[Dict[str, Any]]:
    return [
        e for e in events
        if (event_type is None or e.get("event_type") == event_type)
        and (record_id is None or e.get("record_id") == record_id)
    ]
