# SPDX-License-Identifier: MIT
"""
Gate rules.

``block-quarantined`` reports every QUARANTINED record in the scope plus
records sourced from team files the current user may not edit. Violations
only ever carry ids, keys, timestamps and paths, never content.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from memorylink.core.exceptions import ValidationError
from memorylink.protection.ownership import can_edit, get_current_user, is_team_file
from memorylink.quarantine.release import read_quarantine_metadata
from memorylink.storage.records import MemoryRecord, Scope, iter_records

logger = logging.getLogger(__name__)

RULE_BLOCK_QUARANTINED = "block-quarantined"
RULES = (RULE_BLOCK_QUARANTINED,)

KIND_QUARANTINED = "quarantined"
KIND_OWNERSHIP = "ownership"


@dataclass
class GateViolation:
    record_id: str
    conflict_key: str
    created_at: str
    kind: str = KIND_QUARANTINED
    quarantine_ref: Optional[str] = None
    pattern_id: Optional[str] = None
    file_path: Optional[str] = None
    validity: Optional[Dict[str, Any]] = None
    bypassed: bool = False

    @property
    def validity_status(self) -> str:
        if not self.validity:
            return "unknown"
        return str(self.validity.get("status") or "unknown")

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "record_id": self.record_id,
            "conflict_key": self.conflict_key,
            "created_at": self.created_at,
            "kind": self.kind,
        }
        for key in ("quarantine_ref", "pattern_id", "file_path", "validity"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        if self.bypassed:
            data["bypassed"] = True
        return data


def _source_file(record: MemoryRecord) -> Optional[str]:
    for source in record.sources:
        ref = str(source.get("ref") or "")
        if ref and not ref.startswith("memory:"):
            return ref
    return None


def _quarantine_violation(cwd, record: MemoryRecord) -> GateViolation:
    metadata = read_quarantine_metadata(cwd, record.id) or {}
    return GateViolation(
        record_id=record.id,
        conflict_key=record.conflict_key,
        created_at=record.created_at,
        quarantine_ref=record.quarantine_ref,
        pattern_id=metadata.get("pattern_id"),
        file_path=_source_file(record),
        validity=metadata.get("validity"),
    )


def _ownership_violations(cwd, record: MemoryRecord, user: str) -> List[GateViolation]:
    violations = []
    for source in record.sources:
        ref = source.get("ref")
        if not ref or str(ref).startswith("memory:"):
            continue
        source_path = Path(cwd) / ref
        if not is_team_file(source_path, cwd):
            continue
        try:
            allowed = can_edit(source_path, user, cwd)
        except (ValidationError, OSError, UnicodeDecodeError) as e:
            logger.warning("Warning: Skipping ownership check for %s: %s", ref, e)
            continue
        if not allowed:
            violations.append(GateViolation(
                record_id=record.id,
                conflict_key=record.conflict_key,
                created_at=record.created_at,
                kind=KIND_OWNERSHIP,
                file_path=str(ref),
            ))
    return violations


def check_block_quarantined(cwd, scope: Optional[Scope] = None, user: Optional[str] = None) -> List[GateViolation]:
    """
    Collect violations for the ``block-quarantined`` rule.

    Unreadable records are skipped with a warning.

    Raises:
        StorageError: If the record directory cannot be listed
    """
    scope = scope or Scope.for_project(cwd)
    user = user or get_current_user()
    violations = []
    for record in iter_records(cwd, scope):
        if record.is_quarantined:
            violations.append(_quarantine_violation(cwd, record))
        violations.extend(_ownership_violations(cwd, record, user))
    return violations


@dataclass
class GateResult:
    passed: bool
    rule: str
    violations: List[GateViolation]
    exit_code: int
    warn_only: bool = False
    tier: str = "green"
    mode: Optional[Any] = None
    error: Optional[str] = None

    @property
    def blocking_violations(self) -> List[GateViolation]:
        return [v for v in self.violations if not v.bypassed]

    @property
    def status(self) -> str:
        if self.error:
            return "ERROR"
        if self.exit_code == 1:
            return "BLOCK"
        return "WARN" if self.violations else "PASS"
