# SPDX-License-Identifier: MIT
"""
Gate decision engine.

Exit code is derived from the tier and the resolved mode:

- INACTIVE mode: always 0 (warn only)
- ACTIVE mode: GREEN 0, YELLOW (everything bypassed) 0, RED 1
- any internal or config failure: 2
"""
from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from typing import List, Mapping, Optional, Tuple

from memorylink import __version__
from memorylink.audit.logger import append_audit_event, utc_timestamp
from memorylink.core.exceptions import ExitCode, GateError, MemoryLinkError
from memorylink.gate.bypass import create_bypass, load_bypasses
from memorylink.gate.formatter import format_safe
from memorylink.gate.mode import ModeInfo, gather_mode_input, resolve_mode
from memorylink.gate.rules import RULE_BLOCK_QUARANTINED, RULES, GateResult, GateViolation, check_block_quarantined
from memorylink.gate.severity import SeverityTier
from memorylink.storage.records import Scope

logger = logging.getLogger(__name__)


@dataclass
class GateOptions:
    rule: str = RULE_BLOCK_QUARANTINED
    mode: Optional[str] = None
    scope: Optional[Scope] = None
    severity: Optional[str] = None
    validity: Optional[str] = None
    bypass_reason: Optional[str] = None
    bypass_hours: Optional[float] = None
    json: bool = False
    environ: Optional[Mapping[str, str]] = None


def _error_result(rule: str, message: str, mode: Optional[ModeInfo] = None) -> GateResult:
    logger.error("Gate failed: %s", message)
    return GateResult(
        passed=False,
        rule=rule,
        violations=[],
        exit_code=int(ExitCode.ERROR),
        tier=SeverityTier.GREEN.value,
        mode=mode,
        error=message,
    )


def _violation_tier(violation: GateViolation) -> SeverityTier:
    return SeverityTier.YELLOW if violation.bypassed else SeverityTier.RED


def _overall_tier(violations: List[GateViolation]) -> SeverityTier:
    if any(not v.bypassed for v in violations):
        return SeverityTier.RED
    return SeverityTier.YELLOW if violations else SeverityTier.GREEN


def _apply_bypasses(cwd, violations: List[GateViolation], options: GateOptions) -> None:
    live = load_bypasses(cwd)
    if options.bypass_reason and violations and not any(b.is_global for b in live):
        create_bypass(cwd, options.bypass_reason, options.bypass_hours)
        # Reload so an already-expired request does not count.
        live = load_bypasses(cwd)
    for violation in violations:
        violation.bypassed = any(b.matches(violation.pattern_id, violation.file_path) for b in live)


def run_gate(cwd, options: Optional[GateOptions] = None) -> GateResult:
    """
    Evaluate the gate for the project at ``cwd``.

    Never raises for storage or config problems; those come back as an
    exit code 2 result carrying the error message.
    """
    options = options or GateOptions()
    if options.rule not in RULES:
        return _error_result(options.rule, f"Unknown rule: {options.rule}")

    mode = None
    try:
        mode = resolve_mode(gather_mode_input(cwd, options.mode, options.environ))
        violations = check_block_quarantined(cwd, options.scope)
        if options.validity:
            violations = [v for v in violations if v.validity_status == options.validity]
        _apply_bypasses(cwd, violations, options)
        if options.severity:
            wanted = SeverityTier(options.severity)
            violations = [v for v in violations if _violation_tier(v) == wanted]
    except (MemoryLinkError, ValueError) as e:
        return _error_result(options.rule, str(e), mode)

    tier = _overall_tier(violations)
    if mode.is_blocking:
        exit_code = int(ExitCode.FAILURE if tier == SeverityTier.RED else ExitCode.SUCCESS)
        warn_only = tier == SeverityTier.YELLOW
    else:
        exit_code = int(ExitCode.SUCCESS)
        warn_only = True

    return GateResult(
        passed=exit_code == ExitCode.SUCCESS,
        rule=options.rule,
        violations=violations,
        exit_code=exit_code,
        warn_only=warn_only,
        tier=tier.value,
        mode=mode,
    )


def execute_gate(cwd, options: Optional[GateOptions] = None) -> Tuple[GateResult, str]:
    """
    Run the gate, audit the decision and render safe output.

    Returns:
        The result and the text (or JSON) to print
    """
    options = options or GateOptions()
    result = run_gate(cwd, options)

    try:
        append_audit_event(cwd, {
            "event_type": "GATE",
            "rule": result.rule,
            "result": "PASS" if result.passed else "FAIL",
            "violations": len(result.violations),
            "exit_code": result.exit_code,
            "tier": result.tier,
            "mode": result.mode.effective.value if result.mode else None,
        })
    except MemoryLinkError as e:
        logger.warning("Warning: Failed to log audit event: %s", e)

    try:
        output = format_safe(result, as_json=options.json, version=__version__, timestamp=utc_timestamp())
    except GateError as e:
        failed = dataclasses.replace(result, passed=False, exit_code=int(ExitCode.ERROR), error=e.message)
        return failed, f"Error: {e.message}"
    return result, output
