# SPDX-License-Identifier: MIT
"""
Context classification for detected values.

Combines the file type, the variable name and the project whitelist into a
0-100 confidence score that a value is a real secret.
"""
from __future__ import annotations

import fnmatch
import logging
import os
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from memorylink.config import load_project_config
from memorylink.core.exceptions import ConfigError
from memorylink.core.outcome import Ok, Outcome, Recovered
from memorylink.quarantine.validation import calculate_entropy

logger = logging.getLogger(__name__)


class FileType(str, Enum):
    ENV = "env"
    TERRAFORM = "terraform"
    YAML = "yaml"
    JSON = "json"
    CODE = "code"
    CONFIG = "config"
    BROWSER = "browser"
    OTHER = "other"


class ConfidenceLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    VERY_LOW = "very_low"


CODE_EXTENSIONS = {".js", ".ts", ".py", ".java", ".go", ".rb", ".php", ".cpp", ".c"}


def detect_file_type(file_path: str) -> FileType:
    name = os.path.basename(file_path).lower()
    ext = os.path.splitext(name)[1]

    if name.startswith(".env") or ext == ".env":
        return FileType.ENV
    if ext in (".tf", ".tfvars") or "terraform" in name:
        return FileType.TERRAFORM
    if ext in (".yaml", ".yml"):
        return FileType.YAML
    if ext == ".json":
        return FileType.JSON
    if ext in CODE_EXTENSIONS:
        return FileType.CODE
    if "config" in name or "settings" in name or "secret" in name:
        return FileType.CONFIG
    if ext in (".html", ".htm") or "browser" in name or "client" in name:
        return FileType.BROWSER
    return FileType.OTHER


_TOKEN_CHARS_RE = re.compile(r"^[A-Za-z0-9+/=_-]{32,}$")
_HEX_RE = re.compile(r"^[0-9a-fA-F]{32,}$")
_UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)
_ALNUM_RE = re.compile(r"^[A-Za-z0-9_-]{32,}$")


def is_token_like(value: str) -> bool:
    """Length >= 16 and a base64/hex/UUID shape with enough entropy."""
    trimmed = value.strip()
    if len(trimmed) < 16:
        return False
    if _TOKEN_CHARS_RE.match(trimmed) and calculate_entropy(trimmed) > 4.0:
        return True
    if _HEX_RE.match(trimmed) or _UUID_RE.match(trimmed):
        return True
    return bool(_ALNUM_RE.match(trimmed)) and calculate_entropy(trimmed) > 4.0


BROWSER_INDICATORS = (
    "localstorage",
    "sessionstorage",
    "window.",
    "document.",
    "navigator.",
    "location.",
    "history.",
    "fetch(",
    "xmlhttprequest",
    "websocket",
)


def is_browser_context(content: str, file_path: Optional[str] = None) -> bool:
    if file_path and detect_file_type(file_path) is FileType.BROWSER:
        return True
    normalized = content.lower()
    if any(indicator in normalized for indicator in BROWSER_INDICATORS):
        return True
    if "?token=" in normalized or "?key=" in normalized or "?auth=" in normalized:
        return True
    return "console.log" in normalized and any(w in normalized for w in ("header", "authorization", "token"))


def _compile_all(patterns: List[str]) -> List["re.Pattern[str]"]:
    return [re.compile(p, re.IGNORECASE) for p in patterns]


VERY_LOW_CONFIDENCE_PATTERNS = _compile_all([
    r"^TEST[_-]?KEY$",
    r"^MOCK[_-]?SECRET$",
    r"^EXAMPLE[_-]?PASSWORD$",
    r"^SAMPLE[_-]?TOKEN$",
    r"^DUMMY[_-]?KEY$",
    r"^FAKE[_-]?SECRET$",
])

LOW_CONFIDENCE_PATTERNS = _compile_all([
    r"^(TEST|MOCK|EXAMPLE|SAMPLE|DEMO|FAKE|DUMMY|PLACEHOLDER)[_-]?",
])

HIGH_CONFIDENCE_PATTERNS = _compile_all([
    r"^API[_-]?KEY$",
    r"^SECRET[_-]?KEY$",
    r"^SECRET$",
    r"^PASSWORD$",
    r"^PASS$",
    r"^PWD$",
    r"^TOKEN$",
    r"^AUTH[_-]?TOKEN$",
    r"^ACCESS[_-]?TOKEN$",
    r"^PRIVATE[_-]?KEY$",
    r"^CLIENT[_-]?SECRET$",
    r"^CREDENTIALS?$",
    r"^AUTH[_-]?KEY$",
])

MEDIUM_CONFIDENCE_PATTERNS = _compile_all([r"^KEY$", r"^TOKEN$", r"^AUTH$", r"^SECRET$", r"^PASS$"])


def classify_variable_name(variable_name: str) -> ConfidenceLevel:
    """Bucket a variable name; unknown names are MEDIUM."""
    for level, patterns in (
        (ConfidenceLevel.VERY_LOW, VERY_LOW_CONFIDENCE_PATTERNS),
        (ConfidenceLevel.LOW, LOW_CONFIDENCE_PATTERNS),
        (ConfidenceLevel.HIGH, HIGH_CONFIDENCE_PATTERNS),
        (ConfidenceLevel.MEDIUM, MEDIUM_CONFIDENCE_PATTERNS),
    ):
        if any(p.search(variable_name) for p in patterns):
            return level
    return ConfidenceLevel.MEDIUM


def is_low_confidence_name(variable_name: Optional[str]) -> bool:
    return bool(variable_name) and classify_variable_name(variable_name) in (
        ConfidenceLevel.LOW,
        ConfidenceLevel.VERY_LOW,
    )


DEFAULT_SKIP_FILES: List[str] = [
    # Lockfiles
    "package-lock.json",
    "yarn.lock",
    "pnpm-lock.yaml",
    "composer.lock",
    "Gemfile.lock",
    "poetry.lock",
    "Pipfile.lock",
    "uv.lock",
    "Cargo.lock",
    # Build output
    "*.min.js",
    "*.min.css",
    "*.map",
    "dist/**",
    "build/**",
    "out/**",
    # Dependencies
    "node_modules/**",
    "vendor/**",
    ".pnpm/**",
    ".venv/**",
    "venv/**",
    "__pycache__/**",
    ".git/**",
    "coverage/**",
    "__snapshots__/**",
    # Our own signature sources
    "**/memorylink/quarantine/patterns.py",
    "**/memorylink/quarantine/keyvalue.py",
    "**/memorylink/quarantine/filters.py",
    "**/memorylink/quarantine/context.py",
    "**/memorylink/quarantine/validation.py",
    "**/memorylink/quarantine/detector.py",
    "**/memorylink/core/exceptions.py",
    # Documentation
    "*.md",
    "docs/**",
    # Tests
    "**/*.test.ts",
    "**/*.spec.ts",
    "**/test_*.py",
    "**/*_test.py",
    "**/test/**",
    "**/tests/**",
    "**/__tests__/**",
]


def match_glob(path: str, pattern: str) -> bool:
    """Match a slash-separated path against a glob anchored at any directory."""
    if path == pattern or path.endswith("/" + pattern) or path.endswith(pattern):
        return True
    candidates = [pattern, "*/" + pattern]
    if pattern.startswith("**/"):
        candidates.append(pattern[3:])
    return any(fnmatch.fnmatchcase(path, candidate) for candidate in candidates)


@dataclass
class Whitelist:
    patterns: List[str] = field(default_factory=list)
    variable_names: List[str] = field(default_factory=list)
    values: List[str] = field(default_factory=list)
    file_types: List[str] = field(default_factory=list)
    files: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Whitelist":
        data = data or {}

        def _list(key: str) -> List[str]:
            value = data.get(key) or []
            return [str(v) for v in value] if isinstance(value, list) else []

        return cls(
            patterns=_list("patterns"),
            variable_names=_list("variableNames"),
            values=_list("values"),
            file_types=_list("fileTypes"),
            files=_list("files"),
        )

    @property
    def is_empty(self) -> bool:
        return not (self.patterns or self.variable_names or self.values or self.file_types or self.files)


def load_whitelist(cwd) -> Outcome:
    """Read the ``whitelist`` section; a broken config yields an empty whitelist."""
    try:
        config = load_project_config(cwd)
    except ConfigError as e:
        return Recovered(Whitelist(), f"Whitelist config error: {e}. Continuing without whitelist.")
    return Ok(Whitelist.from_dict(config.get("whitelist")))


def should_skip_file(file_path: Optional[str], whitelist: Optional[Whitelist] = None) -> bool:
    if not file_path:
        return False
    normalized = file_path.replace("\\", "/")
    name = os.path.basename(normalized)
    globs = list(DEFAULT_SKIP_FILES)
    if whitelist is not None:
        globs.extend(whitelist.files)
    return any(match_glob(normalized, g) or match_glob(name, g) for g in globs)


def is_whitelisted(
    value: str,
    variable_name: Optional[str] = None,
    file_path: Optional[str] = None,
    whitelist: Optional[Whitelist] = None,
) -> bool:
    if whitelist is None:
        return False

    for pattern in whitelist.patterns:
        try:
            if re.search(pattern, value, re.IGNORECASE):
                return True
        except re.error:
            logger.warning("Ignoring invalid whitelist pattern %r", pattern)

    if value in whitelist.values:
        return True
    if variable_name and variable_name in whitelist.variable_names:
        return True
    if file_path and detect_file_type(file_path).value in whitelist.file_types:
        return True
    if file_path:
        normalized = file_path.replace("\\", "/")
        if any(match_glob(normalized, g) for g in whitelist.files):
            return True
    return False


_FILE_TYPE_ADJUSTMENT = {
    FileType.ENV: 20,
    FileType.CONFIG: 20,
    FileType.TERRAFORM: 15,
    FileType.YAML: 15,
    FileType.CODE: -10,
}

_VARIABLE_ADJUSTMENT = {
    ConfidenceLevel.HIGH: 30,
    ConfidenceLevel.MEDIUM: 10,
    ConfidenceLevel.LOW: -20,
    ConfidenceLevel.VERY_LOW: -40,
}


def get_context_confidence(
    value: str,
    variable_name: Optional[str] = None,
    file_path: Optional[str] = None,
    whitelist: Optional[Whitelist] = None,
) -> int:
    """
    Score 0-100 that ``value`` is a real secret.

    Base 50, adjusted by file type and variable-name bucket, clamped. A
    whitelist hit scores 0.
    """
    if is_whitelisted(value, variable_name, file_path, whitelist):
        return 0

    score = 50
    if file_path:
        score += _FILE_TYPE_ADJUSTMENT.get(detect_file_type(file_path), 0)
    if variable_name:
        score += _VARIABLE_ADJUSTMENT[classify_variable_name(variable_name)]
    return max(0, min(100, score))


def should_flag_as_secret(
    value: str,
    variable_name: Optional[str] = None,
    file_path: Optional[str] = None,
    whitelist: Optional[Whitelist] = None,
    threshold: int = 40,
) -> bool:
    return get_context_confidence(value, variable_name, file_path, whitelist) >= threshold
