# SPDX-License-Identifier: MIT
"""
Exclusion rules that discard false-positive matches.

Every rule is an independent predicate over a ``Candidate`` (the scanned
content, the matched text and its position, the file path and the pattern
that matched). ``first_exclusion`` evaluates an ordered tuple of rules and
stops at the first one that fires, so each rule can be tested on its own.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from memorylink.quarantine.context import is_browser_context, is_low_confidence_name, is_token_like
from memorylink.quarantine.patterns import SecretPattern

# Paths under this directory hold detection fixtures and are scanned without
# the code-shape and comment heuristics.
DETECTION_FIXTURE_DIR = "test-pattern-detection/"

CODE_FRAGMENTS = ("(", ")", ".", "=", "new ", "const ", "let ", "var ")


@dataclass(frozen=True)
class Candidate:
    content: str
    text: str
    start: int = 0
    file_path: Optional[str] = None
    pattern: Optional[SecretPattern] = None

    @property
    def before(self) -> str:
        return self.content[: self.start]

    @property
    def after(self) -> str:
        return self.content[self.start + len(self.text):]

    @property
    def line(self) -> str:
        line_start = self.content.rfind("\n", 0, self.start) + 1
        line_end = self.content.find("\n", self.start)
        return self.content[line_start: line_end if line_end != -1 else len(self.content)]

    @property
    def pattern_id(self) -> str:
        return self.pattern.id if self.pattern else ""

    @property
    def is_detection_fixture(self) -> bool:
        return bool(self.file_path) and DETECTION_FIXTURE_DIR in self.file_path

    @classmethod
    def for_text(cls, content: str, text: str, file_path: Optional[str] = None) -> "Candidate":
        """Locate ``text`` inside ``content`` (first occurrence)."""
        index = content.find(text)
        return cls(content=content, text=text, start=max(index, 0), file_path=file_path)


@dataclass(frozen=True)
class ExclusionRule:
    name: str
    predicate: Callable[[Candidate], bool]
    # Fixture files skip heuristics about code shape and comments.
    applies_to_fixtures: bool = True

    def excludes(self, candidate: Candidate) -> bool:
        if candidate.is_detection_fixture and not self.applies_to_fixtures:
            return False
        return self.predicate(candidate)


def first_exclusion(candidate: Candidate, rules: Sequence[ExclusionRule]) -> Optional[str]:
    """Return the name of the first rule that discards ``candidate``."""
    for rule in rules:
        if rule.excludes(candidate):
            return rule.name
    return None


def has_code_fragment(text: str, fragments=CODE_FRAGMENTS) -> bool:
    return any(fragment in text for fragment in fragments)


# -- Shared heuristics ------------------------------------------------------

_DOC_MARKERS_RE = re.compile(r"(?:PURPOSE|RESPONSIBILITIES|DESCRIPTION|EXAMPLE|NOTE|TODO|FIXME)", re.IGNORECASE)
_LABEL_RES = (re.compile(r"^[A-Z_]+:\s*$"), re.compile(r"^[A-Z_]+:\s*[A-Za-z\s-]+$"))


def is_docstring_or_comment(candidate: Candidate) -> bool:
    """Inside a triple-quoted block, on a comment line, in prose, or a bare label."""
    before = candidate.before
    if re.search(r"['\"]{3}", before):
        return True
    current_line = before[before.rfind("\n") + 1:].strip()
    if current_line.startswith("//") or current_line.startswith("#"):
        return True
    if _DOC_MARKERS_RE.search(before):
        return True
    return any(label.match(candidate.text) for label in _LABEL_RES)


_REGEX_INDICATORS = [
    re.compile(r"pattern\s*[:=]\s*[/]"),
    re.compile(r"pattern\s*[:=]\s*new\s+RegExp"),
    re.compile(r"\/[^\/]*\/[gimuy]*\s*[,;]"),
    re.compile(r"new\s+RegExp\("),
    re.compile(r"re\.compile\("),
    re.compile(r"\/\^.*\$\/"),
    re.compile(r"^\s*\d+\.\s*"),
    re.compile(r"^\s*[-*]\s*"),
]

_DOC_PATH_MARKERS = ("validated_data/", "docs/", "concepts/")


def is_pattern_definition(candidate: Candidate) -> bool:
    """Match lives in documentation, a signature catalog, or a regex literal."""
    if is_docstring_or_comment(candidate):
        return True

    path = candidate.file_path
    if path:
        if path.endswith(".md") or any(marker in path for marker in _DOC_PATH_MARKERS):
            return True
        if "pattern" in path:
            return True

    before, after = candidate.before, candidate.after
    if re.search(r"['\"`]$", before) and re.match(r"^['\"`]", after):
        if "```" in before or "Example:" in before or "Pattern:" in before:
            return True

    return any(indicator.search(before) for indicator in _REGEX_INDICATORS)


_TEST_PATH_MARKERS = (
    "/tests/", "\\tests\\", "/test/", "\\test\\", "/__tests__/", "\\__tests__\\", "/spec/", "\\spec\\",
    ".test.", ".spec.", "test.ts", "test.js", "spec.ts", "spec.js", "/test_", "\\test_", "_test.py",
)

_TEST_CONTENT_INDICATORS = [
    re.compile(r"\b(expect|it|describe|test|beforeEach|afterEach)\s*\("),
    re.compile(r"\bconst\s+\w+\s*=\s*['\"]"),
    re.compile(r"\bexpect\(.*\)\.to"),
    re.compile(r"^\s*def\s+test_\w*\s*\(", re.MULTILINE),
]


def is_test_code(candidate: Candidate) -> bool:
    """Test file by path convention, or content that reads like a test body."""
    path = candidate.file_path
    if not path or DETECTION_FIXTURE_DIR in path:
        return False
    if any(marker in path for marker in _TEST_PATH_MARKERS):
        return True
    return any(indicator.search(candidate.content) for indicator in _TEST_CONTENT_INDICATORS)


NON_SECRET_KEYS = {
    k.lower()
    for k in (
        "conflict_key", "record_key", "primary_key", "foreign_key", "id", "key", "keys", "keyName", "keyValue",
        "created_at", "updated_at", "deleted_at", "startTime", "endTime", "performance", "category", "pattern",
        "patternId", "pattern_id", "result", "value", "detection", "detector", "config", "configPath",
        "filePath", "file_path", "fileType", "variableName", "confidence", "responsibilities", "purpose",
        "description", "example", "parse", "validator", "strict_mode",
    )
}

_COMMON_WORDS = (
    "responsibilities", "purpose", "description", "example", "category", "pattern", "result", "value",
    "detection", "config", "filepath", "parse",
)


def is_variable_name_only(candidate: Candidate, key: Optional[str] = None) -> bool:
    """The matched text is an identifier or prose word rather than a credential."""
    text = candidate.text
    if key:
        if key.lower() in NON_SECRET_KEYS:
            return True
        before = candidate.before
        if re.search(r"\w+\.(key|id|token|secret|pattern|category|result|value|detection|config)\s*[:=]", before):
            return True
        if re.search(r"\w+\([^)]*\)", before[-50:]):
            return True
        if re.search(r"['\"]{3}|#|RESPONSIBILITIES|PURPOSE", before):
            return True

    if text and len(text) < 20 and text == text.upper() and "=" not in text:
        return True
    if text and has_code_fragment(text):
        return True
    lowered = text.lower()
    return any(word in lowered for word in _COMMON_WORDS)


# -- Specific-pattern pass rules --------------------------------------------

_STATEMENT_PREFIXES = ("const ", "let ", "var ")
_STATEMENT_MARKERS = ("function ", "return ", "if (", "for (", "while (")


def _comment_line(c: Candidate) -> bool:
    trimmed = c.line.strip()
    return trimmed.startswith("//") or trimmed.startswith("#")


def _code_statement(c: Candidate) -> bool:
    trimmed = c.line.strip()
    if not (trimmed.startswith(_STATEMENT_PREFIXES) or any(m in trimmed for m in _STATEMENT_MARKERS)):
        return False
    if any(ch in c.text for ch in "()."):
        return True
    if "(" in trimmed or ")" in trimmed:
        return True
    return "=" in trimmed and ("(" in trimmed or "." in trimmed)


def _code_expression(c: Candidate) -> bool:
    if not any(ch in c.text for ch in "()."):
        return False
    return bool(re.search(r"\b(const|let|var)\s+\w+\s*=\s*$", c.before, re.IGNORECASE)) or bool(
        re.match(r"^\s*\(", c.after)
    )


_CAPTURED_VALUE_RE = re.compile(r"['\"]?([A-Za-z0-9+/=_-]{16,})['\"]?")


def _browser_gate(c: Candidate) -> bool:
    if not (c.pattern and c.pattern.is_browser):
        return False
    if not is_browser_context(c.content, c.file_path):
        return True
    value = _CAPTURED_VALUE_RE.search(c.text)
    return bool(value) and not is_token_like(value.group(1))


_BARE_DEBUG_PATTERNS = ("debug-stack-trace-production", "debug-temporary-logging")


def _debug_gate(c: Candidate) -> bool:
    if not (c.pattern and c.pattern.is_debug):
        return False
    value = _CAPTURED_VALUE_RE.search(c.text)
    if value:
        return not is_token_like(value.group(1))
    return c.pattern_id not in _BARE_DEBUG_PATTERNS


_ABOUT_SECRET_RE = re.compile(r"['\"]\s*(?:reason|error|warning|message|info).*?(?:secret|detected|contains)", re.I)
_REAL_SECRET_HINT_RE = re.compile(r"(?:sk-|AKIA|ghp_|eyJ|api[_-]?key\s*[:=]\s*['\"]?[a-zA-Z0-9]{20,})", re.I)


def _message_about_secret(c: Candidate) -> bool:
    if c.pattern_id not in ("console-log-secret", "browser-console-log-header"):
        return False
    return bool(_ABOUT_SECRET_RE.search(c.text)) and not _REAL_SECRET_HINT_RE.search(c.text)


def _commented_ci_dump(c: Candidate) -> bool:
    if c.pattern_id != "ci-secret-dump" or c.start == 0:
        return False
    return bool(re.search(r"\/\/|\s*#", c.before))


_KEY_VALUE_PATTERN_IDS = ("key-value-any", "key-value-generic", "key-value-dynamic")
_ASSIGNED_VALUE_RE = re.compile(r"[:=]\s*['\"]?([^'\"]+)['\"]?")
_NAMED_VALUE_RE = re.compile(
    r"(?:secret|key|token|password|credential|auth|api[_-]?key|access[_-]?token|private[_-]?key|"
    r"client[_-]?secret|api[_-]?secret)\s*[:=]\s*['\"]?([^'\"]+)['\"]?",
    re.I,
)
_NON_SECRET_FRAGMENTS = tuple(
    v.lower()
    for v in (
        "ensureParentDirectory", "DataValidator", "detect_standalone_secrets", "is_secret_key", "strict_mode",
        "strict_validation", "audit_path", "dirResult", "keyIsSecret", "category", "pattern", "result", "value",
        "keyName", "keyValue", "detection", "detector", "config",
    )
)
_STRICT_SECRET_PREFIX_RE = re.compile(
    r"^(sk-|sk_|SK-|AKIA|ghp_|gho_|ghu_|ghs_|ghr_|eyJ|AIza|SK[0-9a-f]{32}|SG\.|key-|shpat_|xox[baprs]-)", re.I
)


def _weak_key_value(c: Candidate) -> bool:
    """Generic key=value signatures need a value that is unmistakably a secret."""
    if c.pattern_id not in _KEY_VALUE_PATTERN_IDS:
        return False
    found = _ASSIGNED_VALUE_RE.search(c.text) or _NAMED_VALUE_RE.search(c.text)
    if not found or not found.group(1):
        return True
    value = found.group(1)
    if has_code_fragment(value, CODE_FRAGMENTS + (";",)):
        return True
    if any(fragment in c.text for fragment in ("const ", "let ", "var ", "function ")):
        return True
    lowered = value.lower()
    if any(fragment in lowered for fragment in _NON_SECRET_FRAGMENTS):
        return True
    return not (
        _STRICT_SECRET_PREFIX_RE.match(value)
        or re.match(r"^[A-Za-z0-9+/]{24,}={0,2}$", value)
        or re.match(r"^[a-f0-9]{32,}$", value, re.I)
        or (
            len(value) >= 32
            and re.match(r"^[a-zA-Z0-9\-_]{32,}$", value)
            and re.search(r"[a-z]", value)
            and re.search(r"[A-Z]", value)
            and re.search(r"[0-9]", value)
        )
    )


_ASSIGNMENT_NAME_RE = re.compile(r"^\s*(?:export\s+)?[\"']?([A-Za-z_][A-Za-z0-9_.-]*)[\"']?\s*[:=]")


def assigned_variable_name(c: Candidate) -> Optional[str]:
    """Name on the left of the assignment that holds the match, if any."""
    found = _ASSIGNMENT_NAME_RE.match(c.line)
    return found.group(1) if found else None


def _low_confidence_variable(c: Candidate) -> bool:
    return is_low_confidence_name(assigned_variable_name(c))


SPECIFIC_PASS_RULES = (
    ExclusionRule("comment-line", _comment_line, applies_to_fixtures=False),
    ExclusionRule("code-statement", _code_statement, applies_to_fixtures=False),
    ExclusionRule("code-expression", _code_expression),
    ExclusionRule("browser-context", _browser_gate),
    ExclusionRule("debug-context", _debug_gate),
    ExclusionRule("docstring-or-comment", is_docstring_or_comment, applies_to_fixtures=False),
    ExclusionRule("pattern-definition", is_pattern_definition, applies_to_fixtures=False),
    ExclusionRule("test-code", is_test_code, applies_to_fixtures=False),
    ExclusionRule("message-about-secret", _message_about_secret),
    ExclusionRule("commented-ci-dump", _commented_ci_dump),
    ExclusionRule("weak-key-value", _weak_key_value, applies_to_fixtures=False),
    ExclusionRule("low-confidence-variable", _low_confidence_variable),
)

KEY_VALUE_PASS_RULES = (
    ExclusionRule("docstring-or-comment", is_docstring_or_comment),
    ExclusionRule("pattern-definition", is_pattern_definition),
    ExclusionRule("test-code", is_test_code),
    ExclusionRule("code-value", lambda c: has_code_fragment(c.text)),
)

STANDALONE_PASS_RULES = (
    ExclusionRule("code-value", lambda c: has_code_fragment(c.text)),
    ExclusionRule("docstring-or-comment", is_docstring_or_comment),
    ExclusionRule("pattern-definition", is_pattern_definition),
    ExclusionRule("test-code", is_test_code),
)
