# SPDX-License-Identifier: MIT
"""
Key-value and standalone secret scanning.

These passes catch values that no signature in the pattern table knows
about: ``KEY=value`` assignments, JSON ``"key": "value"`` pairs and bare
secret-shaped blobs.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from memorylink.quarantine.patterns import KNOWN_SECRET_PREFIX_RE, find_prefixed_token

SECRET_VALUE_PATTERNS = [
    re.compile(r"^[a-zA-Z0-9\-_!@#$%^&*()+=]{20,}$"),
    re.compile(r"^[A-Za-z0-9+/]{24,}={0,2}$"),
    re.compile(r"^[a-f0-9]{32,}$", re.IGNORECASE),
    re.compile(r"^[a-zA-Z0-9\-_]{32,}$"),
    re.compile(r"^(sk-|sk_|SK-|api-|API-|token-|TOKEN-|key-|KEY-|bearer-|BEARER-|auth-|AUTH-)[a-zA-Z0-9\-_]{16,}$"),
    re.compile(r"^eyJ[a-zA-Z0-9_-]+\.eyJ[a-zA-Z0-9_-]+\.[a-zA-Z0-9_-]+$"),
    re.compile(r"^[a-zA-Z0-9!@#$%^&*()_+\-=\[\]{};':\"\\|,.<>\/?]{16,}$"),
]

SECRET_KEY_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"secret", r"key", r"token", r"password", r"credential", r"auth", r"api[_-]?key",
        r"access[_-]?token", r"private[_-]?key", r"client[_-]?secret", r"api[_-]?secret",
        r"bearer", r"apikey",
    )
]

NON_SECRET_VALUES = {
    v.lower()
    for v in (
        "RESPONSIBILITIES", "PURPOSE", "DESCRIPTION", "category", "pattern", "result", "detection",
        "config", "filePath", "fileType", "variableName", "confidence", "parse", "strict_mode",
        "validator", "audit_path", "detect_key_value_secrets", "looks_like_secret", "standalone_result",
    )
}

KEY_VALUE_RE = re.compile(r"([\"']?[a-zA-Z_][a-zA-Z0-9_]*[\"']?)\s*[:=]\s*(['\"`]?)([^\s'\"`\n\r,;]+)\2")
JSON_PAIR_RE = re.compile(r"\"([a-zA-Z_][a-zA-Z0-9_]*)\":\s*\"([^\"]+)\"")

_SECRET_WORD_PREFIX_RE = re.compile(r"^(key_|secret_|token_|access_|session_|cred_|auth_|pass_|sec_|api_key_)", re.I)

DISPLAY_LIMIT = 50


@dataclass(frozen=True)
class KeyValueMatch:
    key: Optional[str]
    value: str
    position: int

    @property
    def display_value(self) -> str:
        if len(self.value) > DISPLAY_LIMIT:
            return self.value[:DISPLAY_LIMIT] + "..."
        return self.value

    @property
    def has_known_prefix(self) -> bool:
        return bool(KNOWN_SECRET_PREFIX_RE.match(self.value))


def is_secret_key(key_name: str) -> bool:
    return bool(key_name) and any(p.search(key_name) for p in SECRET_KEY_PATTERNS)


def looks_like_secret(value: str) -> bool:
    if not value:
        return False
    clean = re.sub(r"^['\"]|['\"]$", "", value)
    return any(p.match(clean) for p in SECRET_VALUE_PATTERNS)


def _mixed(value: str, need_upper: bool = True, need_digit: bool = True) -> bool:
    has_lower = any(c.islower() for c in value)
    has_upper = any(c.isupper() for c in value)
    has_digit = any(c.isdigit() for c in value)
    return has_lower and (not need_upper or has_upper) and (not need_digit or has_digit)


def _looks_like_actual_secret(value: str) -> bool:
    if KNOWN_SECRET_PREFIX_RE.match(value):
        return True
    if re.match(r"^[A-Za-z0-9+/]{20,}={0,2}$", value):
        return True
    if re.match(r"^[a-f0-9]{24,}$", value, re.I):
        return True
    if len(value) >= 24 and re.match(r"^[a-zA-Z0-9\-_]{24,}$", value):
        if _mixed(value):
            return True
        if ("_" in value or "-" in value) and any(c.islower() for c in value) and (
            any(c.isupper() for c in value) or any(c.isdigit() for c in value)
        ):
            return True
    if len(value) >= 40:
        return True
    if len(value) >= 20 and _SECRET_WORD_PREFIX_RE.match(value):
        return True
    if len(value) >= 40 and re.match(r"^[0-9]{10,}[a-zA-Z]", value) and _mixed(value, need_digit=False):
        return True
    return False


def _scan_json_pairs(content: str) -> Optional[KeyValueMatch]:
    for match in JSON_PAIR_RE.finditer(content):
        key, value = match.group(1), match.group(2)
        if len(value) < 12 or any(ch in value for ch in "()."):
            continue
        if not _looks_like_actual_secret(value):
            continue
        if KNOWN_SECRET_PREFIX_RE.match(value) or is_secret_key(key) or len(value) >= 20:
            return KeyValueMatch(key=key, value=value, position=match.start())
    return None


def _scan_assignments(content: str) -> Optional[KeyValueMatch]:
    for match in KEY_VALUE_RE.finditer(content):
        key = re.sub(r"^[\"']|[\"']$", "", match.group(1))
        value = match.group(3)
        if len(value) < 12:
            continue
        if any(ch in value for ch in "().="):
            continue
        if value.lower() in NON_SECRET_VALUES:
            continue
        if _looks_like_actual_secret(value):
            return KeyValueMatch(key=key, value=value, position=match.start())
    return None


def detect_key_value_secrets(content: str) -> Optional[KeyValueMatch]:
    """
    Find the first key/value pair whose value looks like a secret.

    JSON pairs are checked before generic assignments. Returns None when
    nothing qualifies.
    """
    if not content:
        return None
    return _scan_json_pairs(content) or _scan_assignments(content)


def detect_standalone_secrets(content: str) -> Optional[KeyValueMatch]:
    """
    Find a bare secret-shaped value.

    A complete provider token with a known prefix wins wherever it appears;
    otherwise the whole (stripped) content must be one secret-shaped token.
    """
    if not content:
        return None
    token = find_prefixed_token(content)
    if token:
        return KeyValueMatch(key=None, value=token.group(0), position=token.start())
    stripped = content.strip()
    for pattern in SECRET_VALUE_PATTERNS:
        match = pattern.match(stripped)
        if match and len(match.group(0)) >= 16:
            return KeyValueMatch(key=None, value=match.group(0), position=content.find(stripped))
    return None
