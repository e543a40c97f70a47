# SPDX-License-Identifier: MIT
"""
Time-boxed gate bypasses stored in ``.memorylink/bypasses.json``.

A bypass is live while ``expires_at`` is in the future. Expired entries are
pruned from the file every time it is loaded. A bypass without pattern or
file scope is global and covers every violation.
"""
from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from memorylink.core.atomic import atomic_write_json
from memorylink.core.exceptions import FileReadError, StorageError, ValidationError
from memorylink.core.paths import bypass_path
from memorylink.protection.ownership import get_current_user

logger = logging.getLogger(__name__)

DEFAULT_EXPIRY_HOURS = 24


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _format_time(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_time(value: str) -> Optional[datetime]:
    try:
        moment = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


@dataclass
class BypassRecord:
    reason: str
    created_at: str
    expires_at: str
    created_by: Optional[str] = None
    pattern_id: Optional[str] = None
    file_path: Optional[str] = None

    @property
    def is_global(self) -> bool:
        return not self.pattern_id and not self.file_path

    def is_live(self, now: Optional[datetime] = None) -> bool:
        expires = parse_time(self.expires_at)
        return expires is not None and expires > (now or _utcnow())

    def matches(self, pattern_id: Optional[str] = None, file_path: Optional[str] = None) -> bool:
        pattern_ok = not self.pattern_id or self.pattern_id == pattern_id
        file_ok = not self.file_path or self.file_path == file_path
        return pattern_ok and file_ok

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BypassRecord":
        return cls(
            reason=str(data.get("reason", "")),
            created_at=str(data.get("created_at", "")),
            expires_at=str(data.get("expires_at", "")),
            created_by=data.get("created_by"),
            pattern_id=data.get("pattern_id"),
            file_path=data.get("file_path"),
        )


def _read_raw(cwd) -> List[Dict[str, Any]]:
    path = bypass_path(cwd)
    if not path.exists():
        return []
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.error("Failed to load bypass config %s: %s", path, e)
        raise FileReadError(f"Failed to load bypass config: {e}", operation="bypass_load", path=str(path)) from e
    entries = data.get("bypasses") if isinstance(data, dict) else None
    if not isinstance(entries, list):
        raise FileReadError("Bypass config must contain a bypasses list", operation="bypass_load", path=str(path))
    return [e for e in entries if isinstance(e, dict)]


def save_bypasses(cwd, bypasses: List[BypassRecord]) -> None:
    atomic_write_json(bypass_path(cwd), {"bypasses": [b.to_dict() for b in bypasses]})


def load_bypasses(cwd, now: Optional[datetime] = None) -> List[BypassRecord]:
    """
    Load live bypasses, rewriting the file when expired entries were dropped.

    Raises:
        StorageError: If the bypass file is unreadable or malformed
    """
    records = [BypassRecord.from_dict(e) for e in _read_raw(cwd)]
    live = [b for b in records if b.is_live(now)]
    if len(live) != len(records):
        logger.debug("Pruned %d expired bypass(es)", len(records) - len(live))
        save_bypasses(cwd, live)
    return live


def create_bypass(
    cwd,
    reason: str,
    expires_in_hours: Optional[float] = None,
    pattern_id: Optional[str] = None,
    file_path: Optional[str] = None,
    now: Optional[datetime] = None,
) -> BypassRecord:
    """
    Record a new bypass.

    Args:
        cwd: Project root
        reason: Why the gate is being bypassed (required)
        expires_in_hours: Lifetime; 24 when omitted. Zero or negative values
            create a bypass that is already expired.
        pattern_id: Limit the bypass to one pattern
        file_path: Limit the bypass to one file
    """
    if not reason or not reason.strip():
        raise ValidationError("Bypass reason is required", field="reason")
    hours = DEFAULT_EXPIRY_HOURS if expires_in_hours is None else expires_in_hours
    created = now or _utcnow()
    bypass = BypassRecord(
        reason=reason.strip(),
        created_at=_format_time(created),
        expires_at=_format_time(created + timedelta(hours=hours)),
        created_by=get_current_user(),
        pattern_id=pattern_id,
        file_path=file_path,
    )
    bypasses = load_bypasses(cwd, now)
    bypasses.append(bypass)
    save_bypasses(cwd, bypasses)
    logger.info("Created bypass expiring %s", bypass.expires_at)
    return bypass


def is_bypassed(cwd, pattern_id: Optional[str] = None, file_path: Optional[str] = None,
                now: Optional[datetime] = None) -> bool:
    return any(b.matches(pattern_id, file_path) for b in load_bypasses(cwd, now))


def list_bypasses(cwd) -> List[BypassRecord]:
    return load_bypasses(cwd)


def remove_bypass(cwd, index: Optional[int] = None, pattern_id: Optional[str] = None,
                  file_path: Optional[str] = None) -> int:
    """
    Remove bypasses by list index, or every bypass scoped to ``pattern_id``
    or ``file_path``. Returns how many were removed.
    """
    bypasses = load_bypasses(cwd)
    if index is not None:
        if not 0 <= index < len(bypasses):
            raise StorageError(f"Invalid bypass index: {index}", operation="bypass_remove")
        del bypasses[index]
        removed = 1
    elif pattern_id or file_path:
        kept = [
            b for b in bypasses
            if not ((pattern_id and b.pattern_id == pattern_id) or (file_path and b.file_path == file_path))
        ]
        removed = len(bypasses) - len(kept)
        bypasses = kept
    else:
        raise ValidationError("Must specify index, pattern_id, or file_path")
    save_bypasses(cwd, bypasses)
    return removed
