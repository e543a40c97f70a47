# SPDX-License-Identifier: MIT
"""
Gate output rendering.

Output may only carry record ids, conflict keys, timestamps and quarantine
paths. Every rendering is checked for secret-shaped text before it is handed
back to the caller.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Optional

from memorylink.core.exceptions import GateError
from memorylink.gate.rules import KIND_OWNERSHIP, GateResult, GateViolation
from memorylink.gate.severity import SeverityTier, get_tier_description
from memorylink.quarantine.patterns import get_pattern_by_id, has_prefixed_token

logger = logging.getLogger(__name__)

TOOL_NAME = "memorylink"

_UNSAFE_OUTPUT_PATTERNS = [
    re.compile(r"sk-[a-zA-Z0-9]{32,}"),
    re.compile(r"AKIA[0-9A-Z]{16}"),
    re.compile(r"password\s*[:=]\s*[^\s'\"]{8,}", re.IGNORECASE),
]

GENERIC_REMEDIATION = [
    "1. Review the quarantined file",
    "2. Remove or redact the secret",
    "3. Rotate the credential if it was real",
    "4. Remove it from Git history if it was committed",
]

_VALIDITY_LABELS = {
    "active": "🔴 WORKING (this secret still works)",
    "inactive": "🟡 EXPIRED (this secret no longer works)",
}


def validate_gate_output(output: str) -> bool:
    """True when ``output`` contains nothing that looks like a live secret."""
    if has_prefixed_token(output):
        return False
    return not any(p.search(output) for p in _UNSAFE_OUTPUT_PATTERNS)


def _violation_lines(violation: GateViolation) -> List[str]:
    icon = "🟡" if violation.bypassed else "🔴"
    lines = [f"{icon} {violation.record_id}"]
    lines.append(f"   About: {violation.conflict_key}")
    lines.append(f"   When:  {violation.created_at}")
    if violation.kind == KIND_OWNERSHIP:
        lines.append(f"   Team file not editable by current user: {violation.file_path}")
    if violation.quarantine_ref:
        lines.append(f"   File:  {violation.quarantine_ref}")
    if violation.pattern_id:
        lines.append(f"   Rule:  {violation.pattern_id}")
    if violation.validity:
        label = _VALIDITY_LABELS.get(violation.validity_status, "Unknown (could not verify)")
        lines.append(f"   Secret: {label}")
    if violation.bypassed:
        lines.append("   Bypassed: yes")
    lines.append("")
    return lines


def format_gate_result(result: GateResult) -> str:
    """Human-readable gate report."""
    check = result.rule.replace("block-quarantined", "blocked secrets")
    lines = [""]
    if result.error:
        lines.append("❌ SECURITY CHECK ERROR")
        lines.append(f"  Check: {check}")
        lines.append(f"  Error: {result.error}")
        return "\n".join(lines)

    if result.violations:
        count = len(result.violations)
        header = "❌ SECURITY CHECK FAILED" if result.exit_code == 1 else "⚠️ SECURITY CHECK WARNING"
        lines.append(header)
        lines.append(f"  Check:  {check}")
        lines.append(f"  Issues: {count} problem{'s' if count != 1 else ''} found")
    else:
        lines.append("✅ SECURITY CHECK PASSED")
        lines.append(f"  Check:  {check}")
        lines.append("  Result: All clear - no issues found")
    lines.append(f"  {get_tier_description(SeverityTier(result.tier))}")

    if result.mode is not None:
        label = "ACTIVE (blocking)" if result.mode.is_blocking else "INACTIVE (warn-only)"
        lines.append(f"📊 Mode: {label}, source: {result.mode.source.value}")

    if result.violations:
        lines.extend(["", "Problems found:", ""])
        for violation in result.violations:
            lines.extend(_violation_lines(violation))
        lines.extend([
            "How to fix this:",
            "  1. Inspect the item with: memorylink quarantine show <id>",
            "  2. If it is a real password or key, rotate it immediately",
            "  3. Remove the secret from your code",
            "  4. Run memorylink gate again",
        ])
    return "\n".join(lines)


def _remediation(violation: GateViolation) -> Dict[str, Any]:
    pattern = get_pattern_by_id(violation.pattern_id) if violation.pattern_id else None
    provider = pattern.name if pattern else "Generic"
    return {"provider": provider, "steps": list(GENERIC_REMEDIATION)}


def format_gate_json(result: GateResult, version: str, timestamp: str) -> Dict[str, Any]:
    findings = []
    for violation in result.violations:
        finding = violation.to_dict()
        pattern = get_pattern_by_id(violation.pattern_id) if violation.pattern_id else None
        if pattern:
            finding["pattern_name"] = pattern.name
        finding["remediation"] = _remediation(violation)
        findings.append(finding)

    mode = result.mode.to_dict() if result.mode is not None else None
    critical = sum(1 for v in result.violations if v.validity_status == "active")
    return {
        "tool": TOOL_NAME,
        "command": "gate",
        "version": version,
        "timestamp": timestamp,
        "mode": mode,
        "scan": {"scope": "full", "rule": result.rule},
        "result": {
            "status": result.status,
            "exit_code": result.exit_code,
            "tier": result.tier,
            "warn_only": result.warn_only,
        },
        "summary": {
            "critical": critical,
            "warning": len(result.violations) - critical,
            "total": len(result.violations),
        },
        "findings": findings,
    }


def format_safe(result: GateResult, as_json: bool = False, version: str = "",
                timestamp: Optional[str] = None) -> str:
    """
    Render ``result`` and refuse to return anything secret-shaped.

    Raises:
        GateError: If the rendered output fails ``validate_gate_output``
    """
    if as_json:
        output = json.dumps(format_gate_json(result, version, timestamp or ""), indent=2, ensure_ascii=False)
    else:
        output = format_gate_result(result)
    if not validate_gate_output(output):
        logger.error("Gate output contains potential secrets; refusing to print it")
        raise GateError("Gate output contains potential secrets", rule=result.rule)
    return output
