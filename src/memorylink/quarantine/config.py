# SPDX-License-Identifier: MIT
"""
Active pattern set: built-in signatures plus per-project customisation.

The project config may disable built-in ids and add or override patterns:

    {"patterns": {"disabled": ["email"],
                  "custom": [{"id": "acme", "name": "Acme token",
                              "pattern": "/acme_[a-z0-9]{32}/i"}]}}
"""
from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional, Pattern, Sequence

from memorylink.config import load_project_config
from memorylink.core.exceptions import ConfigError
from memorylink.core.outcome import Ok, Outcome, Recovered
from memorylink.quarantine.patterns import SECRET_PATTERNS, PatternSeverity, SecretPattern, get_all_pattern_ids

logger = logging.getLogger(__name__)

_FLAG_MAP = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL}
# Global/unicode/sticky flags have no meaning for a single search.
_IGNORED_FLAGS = set("guy")


def compile_pattern(pattern_text: str) -> Pattern[str]:
    """
    Compile a user-supplied pattern.

    ``/body/flags`` literals honour the i, m and s flags; anything else is
    compiled case-insensitively.

    Raises:
        ConfigError: If the regex or its flags are invalid
    """
    try:
        last_slash = pattern_text.rfind("/")
        if pattern_text.startswith("/") and last_slash > 0:
            body, flag_text = pattern_text[1:last_slash], pattern_text[last_slash + 1:]
            flags = 0
            for flag in flag_text:
                if flag in _FLAG_MAP:
                    flags |= _FLAG_MAP[flag]
                elif flag not in _IGNORED_FLAGS:
                    raise ConfigError(f"Invalid regex flag {flag!r} in pattern: {pattern_text}")
            return re.compile(body, flags)
        return re.compile(pattern_text, re.IGNORECASE)
    except re.error as e:
        raise ConfigError(f"Invalid regex pattern: {pattern_text}. Error: {e}") from e


def _custom_pattern(entry: Any) -> Optional[SecretPattern]:
    if not isinstance(entry, dict) or not all(entry.get(k) for k in ("id", "name", "pattern")):
        logger.warning("Skipping invalid custom pattern: %r", entry)
        return None
    try:
        regex = compile_pattern(str(entry["pattern"]))
    except ConfigError as e:
        logger.warning('Skipping custom pattern "%s": %s', entry["id"], e)
        return None
    severity = PatternSeverity.WARN if str(entry.get("severity", "")).lower() == "warn" else PatternSeverity.ERROR
    return SecretPattern(
        id=str(entry["id"]),
        name=str(entry["name"]),
        regex=regex,
        description=str(entry.get("description") or "Custom pattern"),
        severity=severity,
        builtin=False,
    )


def build_active_patterns(
    config: Dict[str, Any], builtin: Sequence[SecretPattern] = SECRET_PATTERNS
) -> List[SecretPattern]:
    """Apply ``patterns.disabled`` and ``patterns.custom`` to the built-in table."""
    section = config.get("patterns") or {}
    disabled = set(section.get("disabled") or [])
    active = [p for p in builtin if p.id not in disabled]

    for entry in section.get("custom") or []:
        pattern = _custom_pattern(entry)
        if pattern is None:
            continue
        for index, existing in enumerate(active):
            if existing.id == pattern.id:
                active[index] = pattern
                break
        else:
            active.append(pattern)
    return active


class PatternProvider:
    """
    Supplies the pattern set for a detection call.

    With a ``cwd`` the project config is applied; a broken config degrades to
    the built-in table with a warning instead of failing the caller.
    """

    def __init__(self, cwd=None, builtin: Sequence[SecretPattern] = SECRET_PATTERNS):
        self.cwd = cwd
        self.builtin = tuple(builtin)

    def load(self) -> Outcome:
        if self.cwd is None:
            return Ok(list(self.builtin))
        try:
            config = load_project_config(self.cwd)
        except ConfigError as e:
            return Recovered(list(self.builtin), f"Using built-in patterns only. Config error: {e}")
        return Ok(build_active_patterns(config, self.builtin))


class StaticPatternProvider(PatternProvider):
    """Provider over a fixed list, for callers that already hold patterns."""

    def __init__(self, patterns: Sequence[SecretPattern]):
        super().__init__(cwd=None, builtin=patterns)


def load_active_patterns(cwd) -> Outcome:
    return PatternProvider(cwd).load()


def get_pattern_stats(cwd) -> Dict[str, int]:
    """Counts of built-in, active, disabled and custom patterns for ``cwd``.

    Disabled ids that name no built-in pattern are not counted.
    """
    try:
        section = load_project_config(cwd).get("patterns") or {}
    except ConfigError:
        section = {}
    builtin_ids = set(get_all_pattern_ids())
    disabled = {str(item) for item in section.get("disabled") or []} & builtin_ids
    outcome = load_active_patterns(cwd)
    return {
        "builtin": len(builtin_ids),
        "active": len(outcome.value),
        "disabled": len(disabled),
        "custom": len(section.get("custom") or []),
    }
