# SPDX-License-Identifier: MIT
"""Identifier generation for records and audit events."""
from __future__ import annotations

import re
import secrets
import time

RECORD_ID_RE = re.compile(r"^mem_[a-z0-9]+_[a-f0-9]{8}$")

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def to_base36(number: int) -> str:
    if number < 0:
        raise ValueError("base36 encoding requires a non-negative integer")
    if number == 0:
        return "0"
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def now_ms() -> int:
    return int(time.time() * 1000)


def generate_record_id() -> str:
    """Return ``mem_<base36 ms>_<8 hex>``."""
    return f"mem_{to_base36(now_ms())}_{secrets.token_hex(4)}"


def is_valid_record_id(record_id: str) -> bool:
    return bool(record_id) and RECORD_ID_RE.match(record_id) is not None


def generate_event_id() -> str:
    """Return ``evt_<ms>_<7 base36 chars>``."""
    suffix = "".join(secrets.choice(_BASE36) for _ in range(7))
    return f"evt_{now_ms()}_{suffix}"
