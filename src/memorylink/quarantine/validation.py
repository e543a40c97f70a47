# SPDX-License-Identifier: MIT
"""
Numeric and statistical validators used to confirm pattern matches.
"""
from __future__ import annotations

import math
import re
from collections import Counter

_BASE64_RE = re.compile(r"^[A-Za-z0-9+/]+={0,2}$")
_HEX_RE = re.compile(r"^[0-9a-fA-F]+$")


def validate_luhn(number: str) -> bool:
    """Luhn checksum over the digits of ``number`` (13-19 digits required)."""
    digits = [int(ch) for ch in number if ch.isdigit()]
    if len(digits) < 13 or len(digits) > 19:
        return False

    total = 0
    for index, digit in enumerate(reversed(digits)):
        if index % 2 == 1:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return total % 10 == 0


def validate_ssn(ssn: str) -> bool:
    """Reject SSNs in reserved ranges: area 000/666/9xx, group 00, serial 0000."""
    digits = re.sub(r"\D", "", ssn)
    if len(digits) != 9:
        return False
    area, group, serial = int(digits[:3]), int(digits[3:5]), int(digits[5:])
    if area == 0 or area == 666 or area >= 900:
        return False
    if group == 0 or serial == 0:
        return False
    return True


def calculate_entropy(text: str) -> float:
    """Calculate Shannon entropy of text in bits per character."""
    if not text:
        return 0.0

    counts = Counter(text)
    length = len(text)

    entropy = 0.0
    for count in counts.values():
        probability = count / length
        entropy -= probability * math.log2(probability)

    return entropy


def has_high_entropy(text: str, threshold: float = 3.5) -> bool:
    return calculate_entropy(text) >= threshold


def is_base64_encoded(text: str) -> bool:
    return len(text) >= 16 and bool(_BASE64_RE.match(text)) and has_high_entropy(text, 4.0)


def is_hex_encoded(text: str) -> bool:
    return (
        len(text) >= 16
        and len(text) % 2 == 0
        and bool(_HEX_RE.match(text))
        and has_high_entropy(text, 3.8)
    )


def is_obfuscated_secret(text: str) -> bool:
    """High-entropy value that is encoded or random enough to hide a secret."""
    if len(text) < 16:
        return False
    if not has_high_entropy(text):
        return False
    return is_base64_encoded(text) or is_hex_encoded(text) or has_high_entropy(text, 4.5)
