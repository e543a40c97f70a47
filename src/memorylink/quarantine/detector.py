# SPDX-License-Identifier: MIT
"""
Secret detection engine.

Three passes, first positive result wins:

1. Specific patterns from the active pattern table, each match screened by
   the exclusion rules in ``filters`` and by per-pattern validators.
2. Key-value fallback for ``KEY=value`` / ``"key": "value"`` shapes, scored
   by the context classifier (threshold 40).
3. Standalone fallback for bare secret-shaped values (threshold 30).

Fallback values that look base64/hex encoded or are highly random score at
least ``OBFUSCATED_CONFIDENCE``.

A value carrying a known provider prefix (``sk-``, ``ghp_``, ``AKIA`` ...)
is always reported, whatever surrounds it.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional

from memorylink.core.exceptions import QuarantineError
from memorylink.core.outcome import Recovered
from memorylink.quarantine.config import PatternProvider
from memorylink.quarantine.context import (
    Whitelist,
    detect_file_type,
    get_context_confidence,
    is_whitelisted,
    load_whitelist,
    should_flag_as_secret,
    should_skip_file,
)
from memorylink.quarantine.filters import (
    KEY_VALUE_PASS_RULES,
    SPECIFIC_PASS_RULES,
    STANDALONE_PASS_RULES,
    Candidate,
    assigned_variable_name,
    first_exclusion,
    is_variable_name_only,
)
from memorylink.quarantine.keyvalue import KeyValueMatch, detect_key_value_secrets, detect_standalone_secrets
from memorylink.quarantine.patterns import KEY_VALUE_PATTERN, SecretPattern, has_prefixed_token
from memorylink.quarantine.validation import is_obfuscated_secret, validate_luhn, validate_ssn

logger = logging.getLogger(__name__)

Validator = Callable[[str], bool]

DEFAULT_VALIDATORS: Dict[str, Validator] = {
    "credit-card": lambda text: validate_luhn(re.sub(r"\D", "", text)),
    "ssn": validate_ssn,
}

SPECIFIC_MATCH_CONFIDENCE = 80
PREFIX_CONFIDENCE = 90
VERY_LONG_CONFIDENCE = 85
OBFUSCATED_CONFIDENCE = 75
KEY_VALUE_THRESHOLD = 40
STANDALONE_THRESHOLD = 30


@dataclass(frozen=True)
class DetectionResult:
    found: bool
    pattern: Optional[SecretPattern] = None
    match: Optional[str] = None
    position: Optional[int] = None
    confidence: Optional[int] = None
    severity: Optional[str] = None
    file_type: Optional[str] = None
    variable_name: Optional[str] = None

    @property
    def pattern_id(self) -> Optional[str]:
        return self.pattern.id if self.pattern else None

    def to_dict(self) -> Dict[str, Any]:
        """Summary safe to print: the matched text itself is left out."""
        if not self.found:
            return {"found": False}
        return {
            "found": True,
            "pattern_id": self.pattern_id,
            "pattern_name": self.pattern.name if self.pattern else None,
            "position": self.position,
            "confidence": self.confidence,
            "severity": self.severity,
            "file_type": self.file_type,
            "variable_name": self.variable_name,
        }


NOT_FOUND = DetectionResult(found=False)


def _is_very_long(value: str) -> bool:
    if len(value) >= 50:
        return True
    if len(value) < 40:
        return False
    if re.match(r"^[a-zA-Z0-9\-_+/]{40,}$", value) and re.search(r"[a-z]", value) and re.search(r"[A-Z0-9]", value):
        return True
    return bool(re.match(r"^[A-Za-z0-9+/]{40,}={0,2}$", value))


def _fallback_confidence(value: str, variable_name, file_path, whitelist) -> int:
    confidence = get_context_confidence(value, variable_name, file_path, whitelist)
    if is_obfuscated_secret(value):
        return max(confidence, OBFUSCATED_CONFIDENCE)
    return confidence


class SecretDetector:
    """
    Runs the detection passes over a piece of content.

    Args:
        provider: Supplies the active pattern set (built-ins when omitted)
        validators: Extra checks keyed by pattern id (Luhn, SSN ranges)
        whitelist: Project whitelist; loaded from ``provider.cwd`` when omitted
    """

    def __init__(
        self,
        provider: Optional[PatternProvider] = None,
        validators: Optional[Mapping[str, Validator]] = None,
        whitelist: Optional[Whitelist] = None,
    ):
        self.provider = provider or PatternProvider()
        self.validators = dict(DEFAULT_VALIDATORS if validators is None else validators)
        self._whitelist = whitelist

    def _load_patterns(self) -> List[SecretPattern]:
        outcome = self.provider.load()
        if isinstance(outcome, Recovered):
            logger.warning("Warning: %s", outcome.warning)
        return outcome.value

    def _load_whitelist(self) -> Optional[Whitelist]:
        if self._whitelist is not None or self.provider.cwd is None:
            return self._whitelist
        outcome = load_whitelist(self.provider.cwd)
        if isinstance(outcome, Recovered):
            logger.warning("Warning: %s", outcome.warning)
            return None
        return outcome.value

    def detect(self, content: str, file_path: Optional[str] = None) -> DetectionResult:
        if not content or not content.strip():
            return NOT_FOUND

        whitelist = self._load_whitelist()
        if file_path and should_skip_file(file_path, whitelist):
            return NOT_FOUND

        patterns = self._load_patterns()
        file_type = detect_file_type(file_path).value if file_path else None

        return (
            self._specific_pass(content, file_path, file_type, patterns, whitelist)
            or self._key_value_pass(content, file_path, file_type, whitelist)
            or self._standalone_pass(content, file_path, file_type, whitelist)
            or NOT_FOUND
        )

    def _specific_pass(self, content, file_path, file_type, patterns, whitelist) -> Optional[DetectionResult]:
        for pattern in patterns:
            match = pattern.regex.search(content)
            if not match:
                continue
            candidate = Candidate(content, match.group(0), match.start(), file_path, pattern)
            prefixed = has_prefixed_token(candidate.text)

            if not prefixed:
                excluded_by = first_exclusion(candidate, SPECIFIC_PASS_RULES)
                if excluded_by:
                    logger.debug("Discarded %s match (%s)", pattern.id, excluded_by)
                    continue
                validator = self.validators.get(pattern.id)
                if validator is not None and not validator(candidate.text):
                    logger.debug("Discarded %s match (validator)", pattern.id)
                    continue

            if is_whitelisted(candidate.text, None, file_path, whitelist):
                continue

            return DetectionResult(
                found=True,
                pattern=pattern,
                match=candidate.text,
                position=match.start(),
                confidence=PREFIX_CONFIDENCE if prefixed else SPECIFIC_MATCH_CONFIDENCE,
                severity=pattern.severity.value,
                file_type=file_type,
                variable_name=assigned_variable_name(candidate),
            )
        return None

    def _key_value_result(self, kv: KeyValueMatch, file_type, confidence: int) -> DetectionResult:
        return DetectionResult(
            found=True,
            pattern=KEY_VALUE_PATTERN,
            match=f"{kv.key}={kv.display_value}",
            position=kv.position,
            confidence=confidence,
            severity="error",
            file_type=file_type,
            variable_name=kv.key,
        )

    def _key_value_pass(self, content, file_path, file_type, whitelist) -> Optional[DetectionResult]:
        kv = detect_key_value_secrets(content)
        if kv is None:
            return None

        if kv.has_known_prefix:
            return self._key_value_result(kv, file_type, PREFIX_CONFIDENCE)
        if _is_very_long(kv.value):
            return self._key_value_result(kv, file_type, VERY_LONG_CONFIDENCE)

        candidate = Candidate.for_text(content, kv.value, file_path)
        if first_exclusion(candidate, KEY_VALUE_PASS_RULES):
            return None
        if is_variable_name_only(candidate, key=kv.key):
            return None
        if not should_flag_as_secret(kv.value, kv.key, file_path, whitelist, KEY_VALUE_THRESHOLD):
            return None
        return self._key_value_result(
            kv, file_type, _fallback_confidence(kv.value, kv.key, file_path, whitelist)
        )

    def _standalone_pass(self, content, file_path, file_type, whitelist) -> Optional[DetectionResult]:
        standalone = detect_standalone_secrets(content)
        if standalone is None:
            return None

        if has_prefixed_token(standalone.value):
            confidence = PREFIX_CONFIDENCE
        else:
            candidate = Candidate.for_text(content, standalone.value, file_path)
            if first_exclusion(candidate, STANDALONE_PASS_RULES):
                return None
            if not should_flag_as_secret(standalone.value, None, file_path, whitelist, STANDALONE_THRESHOLD):
                return None
            confidence = _fallback_confidence(standalone.value, None, file_path, whitelist)

        return DetectionResult(
            found=True,
            pattern=KEY_VALUE_PATTERN,
            match=standalone.display_value,
            position=standalone.position,
            confidence=confidence,
            severity="error",
            file_type=file_type,
        )


def detect_secrets(
    content: str,
    file_path: Optional[str] = None,
    cwd=None,
    provider: Optional[PatternProvider] = None,
    validators: Optional[Mapping[str, Validator]] = None,
    whitelist: Optional[Whitelist] = None,
) -> DetectionResult:
    """
    Convenience function for one-off detection.

    Args:
        content: Text to scan
        file_path: Where the text came from (drives file-type scoring and skips)
        cwd: Project root whose config customises patterns and whitelist
        provider: Explicit pattern provider (overrides ``cwd``)
        validators: Per-pattern validators (Luhn and SSN checks by default)
        whitelist: Explicit whitelist (overrides the one in config)

    Returns:
        DetectionResult for the first retained match
    """
    detector = SecretDetector(provider or PatternProvider(cwd), validators, whitelist)
    return detector.detect(content, file_path)


def assert_no_secrets(content: str, file_path: Optional[str] = None, cwd=None, record_id: Optional[str] = None) -> None:
    """
    Raise ``QuarantineError`` when ``content`` holds a secret.

    Raises:
        QuarantineError: Carrying the pattern id and record id
    """
    result = detect_secrets(content, file_path=file_path, cwd=cwd)
    if result.found:
        raise QuarantineError(
            f"Secret detected: {result.pattern.name}",
            pattern_id=result.pattern_id,
            record_id=record_id,
        )


def should_quarantine(content: str, file_path: Optional[str] = None, cwd=None) -> bool:
    return detect_secrets(content, file_path=file_path, cwd=cwd).found
