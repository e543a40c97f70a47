# SPDX-License-Identifier: MIT
"""
Atomic file replacement: write a temp file beside the target, then rename.
"""
from __future__ import annotations

import json
import logging
import os
import secrets
from pathlib import Path
from typing import Any, Optional

from memorylink.core.exceptions import FileWriteError
from memorylink.core.retry import RetryOptions, with_retry

logger = logging.getLogger(__name__)


def ensure_directory(path: Path, mode: int = 0o755) -> None:
    path.mkdir(parents=True, exist_ok=True, mode=mode)


def _write_once(target: Path, data: str) -> None:
    ensure_directory(target.parent)
    tmp = target.with_name(f"{target.name}.tmp.{os.getpid()}.{secrets.token_hex(4)}")
    try:
        with open(tmp, "w", encoding="utf-8") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, target)
    except OSError:
        if tmp.exists():
            broken = target.with_name(f"{target.name}.tmp.broken")
            try:
                os.replace(tmp, broken)
            except OSError as cleanup_exc:
                logger.warning("Could not preserve broken temp file %s: %s", tmp, cleanup_exc)
        raise


def atomic_write_text(path, data: str, retry: Optional[RetryOptions] = None) -> None:
    """
    Replace ``path`` with ``data`` so readers never observe a partial write.

    Raises:
        FileWriteError: If the write fails after retries
    """
    target = Path(path)
    try:
        with_retry(lambda: _write_once(target, data), retry, description=f"write {target.name}")
    except OSError as exc:
        logger.error("Atomic write failed for %s: %s", target, exc)
        raise FileWriteError(f"Failed to write file: {exc}", operation="write", path=str(target)) from exc


def atomic_write_json(path, payload: Any, retry: Optional[RetryOptions] = None) -> None:
    atomic_write_text(path, json.dumps(payload, indent=2, ensure_ascii=False) + "\n", retry)
