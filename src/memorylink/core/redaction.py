# SPDX-License-Identifier: MIT
"""
Central redaction and masking utilities for MemoryLink.

Anything that may echo detected content (log lines, CLI output, audit
previews) goes through these helpers first.
"""

from __future__ import annotations
import re
from typing import Iterable, List, Union


def redact_secret(secret: str) -> str:
    """
    Redact secret showing first 6 + last 4 characters.

    For secrets <= 10 characters, shows only ****.
    For secrets > 10 characters, shows first6****last4.

    Args:
        secret: The secret string to redact

    Returns:
        Redacted string
    """
    if len(secret) <= 10:
        return "****"
    return secret[:6] + "****" + secret[-4:]


def redact_evidence_string(evidence: str) -> str:
    """
    Redact long token-shaped runs in free text, line by line.

    Args:
        evidence: Text that may contain secrets

    Returns:
        Text with 16+ character tokens redacted
    """
    return "\n".join(
        re.sub(r"\b[A-Za-z0-9+/_-]{16,}\b", lambda m: redact_secret(m.group(0)), line)
        for line in evidence.split("\n")
    )


def mask_secret(secret: str) -> str:
    """
    Mask a secret for display: first 4 chars, a bounded run of ``*``, last 3.

    Values of 10 characters or fewer become ``****``.
    """
    if not secret or len(secret) <= 10:
        return "****"
    stars = min(len(secret) - 7, 20)
    return secret[:4] + "*" * stars + secret[-3:]


def mask_secrets(content: str, matches: Iterable[str]) -> str:
    """Replace every occurrence of each match with its masked form, longest first."""
    masked = content
    for match in sorted({m for m in matches if m}, key=len, reverse=True):
        masked = masked.replace(match, mask_secret(match))
    return masked


def mask_line_secret(line: str, secret: str) -> str:
    """Mask ``secret`` inside one source line; the line is returned as is when absent."""
    if not secret or secret not in line:
        return line
    return line.replace(secret, mask_secret(secret))


def create_safe_preview(content: str, max_length: int = 200, matches: Union[List[str], None] = None) -> str:
    """
    Build a single-line preview that is safe to print.

    Known matches are masked, remaining token-shaped runs are redacted and the
    result is truncated to ``max_length`` characters.
    """
    preview = mask_secrets(content, matches or [])
    preview = redact_evidence_string(preview)
    preview = " ".join(preview.split())
    if len(preview) > max_length:
        preview = preview[:max_length] + "..."
    return preview


def is_masked(value: str) -> bool:
    return value == "****" or bool(re.search(r"\*{4,}", value or ""))
