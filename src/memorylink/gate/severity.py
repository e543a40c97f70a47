# SPDX-License-Identifier: MIT
"""
RED / YELLOW / GREEN classification used by the gate.

RED blocks (ERROR-severity findings), YELLOW warns (WARN-severity or
bypassed findings), GREEN means nothing was found.
"""
from __future__ import annotations

from enum import Enum
from typing import Optional, Union

from memorylink.core.exceptions import ExitCode
from memorylink.quarantine.detector import DetectionResult


class SeverityTier(str, Enum):
    RED = "red"
    YELLOW = "yellow"
    GREEN = "green"


TIER_DESCRIPTIONS = {
    SeverityTier.RED: "🔴 CRITICAL: Working secrets found - Fix before continuing!",
    SeverityTier.YELLOW: "🟡 WARNING: Possible issues found - Review recommended",
    SeverityTier.GREEN: "🟢 ALL CLEAR: No problems found",
}


def get_severity_tier(detection: Union[DetectionResult, str, None]) -> SeverityTier:
    """Map a detection (or its severity string) to a tier; unknown severities count as RED."""
    if isinstance(detection, DetectionResult):
        if not detection.found:
            return SeverityTier.GREEN
        severity: Optional[str] = detection.severity
    else:
        severity = detection
    if severity is None:
        return SeverityTier.GREEN
    if severity == "warn":
        return SeverityTier.YELLOW
    return SeverityTier.RED


def should_block(tier: SeverityTier) -> bool:
    return tier == SeverityTier.RED


def get_tier_exit_code(tier: SeverityTier) -> int:
    return int(ExitCode.FAILURE if should_block(tier) else ExitCode.SUCCESS)


def get_tier_description(tier: SeverityTier) -> str:
    return TIER_DESCRIPTIONS[SeverityTier(tier)]
