# SPDX-License-Identifier: MIT
"""
Memory records stored one JSON file per record under
``.memorylink/records/<scope_type>/<scope_id>/<record_id>.json``.
"""
from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional

from memorylink.core.atomic import atomic_write_json
from memorylink.core.exceptions import FileReadError, RecordNotFoundError, StorageError, ValidationError
from memorylink.core.ids import is_valid_record_id
from memorylink.core.paths import MAX_FILE_SIZE, project_scope_id, record_path, records_dir
from memorylink.core.retry import with_retry

logger = logging.getLogger(__name__)


class EvidenceLevel(str, Enum):
    RAW = "E0"
    CURATED = "E1"
    VERIFIED = "E2"


class MemoryStatus(str, Enum):
    ACTIVE = "ACTIVE"
    DEPRECATED = "DEPRECATED"
    QUARANTINED = "QUARANTINED"


class ScopeType(str, Enum):
    PROJECT = "project"
    USER = "user"
    ORG = "org"


@dataclass(frozen=True)
class Scope:
    type: ScopeType
    id: str

    @classmethod
    def for_project(cls, cwd) -> "Scope":
        return cls(ScopeType.PROJECT, project_scope_id(cwd))

    def to_dict(self) -> Dict[str, str]:
        return {"type": self.type.value, "id": self.id}


REQUIRED_FIELDS = ("id", "content", "evidence_level", "status", "scope", "conflict_key", "created_at")


@dataclass
class MemoryRecord:
    id: str
    content: str
    evidence_level: EvidenceLevel
    status: MemoryStatus
    scope: Scope
    conflict_key: str
    created_at: str
    purpose_tags: List[str] = field(default_factory=lambda: ["work"])
    sources: List[Dict[str, Any]] = field(default_factory=list)
    quarantine_ref: Optional[str] = None
    ownership: Optional[Dict[str, Any]] = None

    @property
    def is_quarantined(self) -> bool:
        return self.status == MemoryStatus.QUARANTINED

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["evidence_level"] = self.evidence_level.value
        data["status"] = self.status.value
        data["scope"] = self.scope.to_dict()
        if self.quarantine_ref is None:
            data.pop("quarantine_ref")
        if self.ownership is None:
            data.pop("ownership")
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MemoryRecord":
        missing = [name for name in REQUIRED_FIELDS if not data.get(name)]
        if missing:
            raise ValidationError(f"Invalid record format: missing {', '.join(missing)}", field=missing[0])
        scope = data["scope"]
        try:
            return cls(
                id=data["id"],
                content=data["content"],
                evidence_level=EvidenceLevel(data["evidence_level"]),
                status=MemoryStatus(data["status"]),
                scope=Scope(ScopeType(scope["type"]), scope["id"]),
                conflict_key=data["conflict_key"],
                created_at=data["created_at"],
                purpose_tags=list(data.get("purpose_tags") or []),
                sources=list(data.get("sources") or []),
                quarantine_ref=data.get("quarantine_ref"),
                ownership=data.get("ownership"),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"Invalid record format: {e}") from e


def save_record(cwd, record: MemoryRecord) -> None:
    """
    Persist ``record`` atomically.

    Raises:
        ValidationError: If the id is malformed or a quarantined record has no reference
        StorageError: If the write fails
    """
    if not is_valid_record_id(record.id):
        raise ValidationError(f"Invalid record id: {record.id}", field="id")
    if record.is_quarantined and not record.quarantine_ref:
        raise ValidationError("QUARANTINED records require a quarantine_ref", field="quarantine_ref")
    path = record_path(cwd, record.scope.type.value, record.scope.id, record.id)
    atomic_write_json(path, record.to_dict())


def load_record(cwd, scope: Scope, record_id: str) -> MemoryRecord:
    """
    Load one record, checking it is intact.

    Raises:
        RecordNotFoundError: If no file exists for ``record_id``
        FileReadError: If the file is too large, not JSON, malformed or
            holds a different id
    """
    path = record_path(cwd, scope.type.value, scope.id, record_id)

    def _read() -> str:
        if path.stat().st_size > MAX_FILE_SIZE:
            raise FileReadError("File too large to read safely", operation="read", path=str(path))
        return path.read_text(encoding="utf-8")

    try:
        text = with_retry(_read, description=f"read {record_id}")
    except FileNotFoundError as e:
        raise RecordNotFoundError(f"Record not found: {record_id}", operation="read", path=str(path)) from e
    except OSError as e:
        raise FileReadError(f"Failed to read record: {e}", operation="read", path=str(path)) from e

    try:
        data = json.loads(text)
    except ValueError as e:
        raise FileReadError(f"Corrupted record file: {e}", operation="read", path=str(path)) from e
    if not isinstance(data, dict):
        raise FileReadError("Corrupted record file: not a JSON object", operation="read", path=str(path))

    try:
        record = MemoryRecord.from_dict(data)
    except ValidationError as e:
        raise FileReadError(str(e), operation="read", path=str(path)) from e
    if record.id != record_id:
        raise FileReadError(
            f"Record ID mismatch: expected {record_id}, got {record.id}", operation="read", path=str(path)
        )
    return record


def list_record_ids(cwd, scope: Scope) -> List[str]:
    directory = records_dir(cwd, scope.type.value, scope.id)
    if not directory.is_dir():
        return []
    try:
        names = with_retry(lambda: sorted(p.name for p in directory.iterdir()), description="list records")
    except OSError as e:
        raise StorageError(f"Failed to list records: {e}", operation="read", path=str(directory)) from e
    return [name[: -len(".json")] for name in names if name.startswith("mem_") and name.endswith(".json")]


def iter_records(cwd, scope: Scope) -> Iterator[MemoryRecord]:
    """Yield every readable record in ``scope``; unreadable ones are skipped with a warning."""
    for record_id in list_record_ids(cwd, scope):
        try:
            yield load_record(cwd, scope, record_id)
        except StorageError as e:
            logger.warning("Warning: Skipping record %s: %s", record_id, e.message)


def delete_record(cwd, scope: Scope, record_id: str) -> None:
    """Remove a record file; deleting a missing record is not an error."""
    path = record_path(cwd, scope.type.value, scope.id, record_id)
    try:
        with_retry(path.unlink, description=f"delete {record_id}")
    except FileNotFoundError:
        return
    except OSError as e:
        raise StorageError(f"Failed to delete record: {e}", operation="delete", path=str(path)) from e
