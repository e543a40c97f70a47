# SPDX-License-Identifier: MIT
"""
Bounded retry with exponential backoff for transient filesystem errors.
"""
from __future__ import annotations

import errno
import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, FrozenSet, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_ERRNOS: FrozenSet[int] = frozenset(
    code
    for code in (
        getattr(errno, "EAGAIN", None),
        getattr(errno, "EBUSY", None),
        getattr(errno, "EMFILE", None),
        getattr(errno, "ENFILE", None),
        getattr(errno, "ETIMEDOUT", None),
    )
    if code is not None
)


@dataclass
class RetryOptions:
    max_retries: int = 3
    initial_delay: float = 0.1
    max_delay: float = 2.0
    multiplier: float = 2.0
    jitter: float = 0.3


DEFAULT_RETRY_OPTIONS = RetryOptions()


def is_retryable_error(exc: BaseException) -> bool:
    return isinstance(exc, OSError) and exc.errno in RETRYABLE_ERRNOS


def _delay_for(attempt: int, options: RetryOptions) -> float:
    delay = min(options.initial_delay * (options.multiplier ** attempt), options.max_delay)
    return delay + delay * options.jitter * random.random()


def with_retry(
    operation: Callable[[], T],
    options: Optional[RetryOptions] = None,
    description: str = "file operation",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Run ``operation``, retrying transient OS errors.

    Args:
        operation: Zero-argument callable performing the I/O
        options: Backoff settings (defaults: 3 retries, 100ms doubling to 2s)
        description: Used in log messages
        sleep: Injectable sleep for tests

    Returns:
        Whatever ``operation`` returns

    Raises:
        The last error once retries are exhausted, or any non-retryable error
        immediately.
    """
    opts = options or DEFAULT_RETRY_OPTIONS
    attempt = 0
    while True:
        try:
            return operation()
        except OSError as exc:
            if not is_retryable_error(exc) or attempt >= opts.max_retries:
                raise
            delay = _delay_for(attempt, opts)
            logger.debug(
                "Retrying %s after %s (attempt %d/%d, %.3fs)",
                description, errno.errorcode.get(exc.errno, exc.errno), attempt + 1, opts.max_retries, delay,
            )
            sleep(delay)
            attempt += 1
