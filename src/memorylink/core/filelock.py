# SPDX-License-Identifier: MIT
"""
Advisory inter-process lock for a project directory.

Uses ``fcntl.flock`` where the platform provides it. Elsewhere a sentinel
file created with ``O_EXCL`` records ``{pid, hostname, timestamp}`` so a lock
left behind by a crashed process can be detected as stale.
"""
from __future__ import annotations

import json
import logging
import os
import socket
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from memorylink.core.exceptions import LockError

try:
    import fcntl
except ImportError:  # Windows
    fcntl = None

logger = logging.getLogger(__name__)

LOCKS_DIR = ".locks"


def is_process_alive(pid: int) -> bool:
    """Probe ``pid`` with signal 0."""
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    except OSError:
        return False
    return True


def read_lock_state(lock_path: Path) -> Optional[Dict[str, Any]]:
    try:
        state = json.loads(lock_path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return None
    return state if isinstance(state, dict) else None


def is_lock_stale(
    state: Optional[Dict[str, Any]],
    stale_after: float,
    now: Optional[float] = None,
    hostname: Optional[str] = None,
    alive: Callable[[int], bool] = is_process_alive,
) -> bool:
    """A sentinel is stale when unreadable, too old, or owned by a dead local PID."""
    if not state:
        return True
    current = time.time() if now is None else now
    try:
        age = current - float(state.get("timestamp", 0)) / 1000.0
    except (TypeError, ValueError):
        return True
    if age > stale_after:
        return True
    if state.get("hostname") == (hostname or socket.gethostname()):
        try:
            return not alive(int(state.get("pid", 0)))
        except (TypeError, ValueError):
            return True
    return False


class FileLock:
    """
    Context manager guarding ``<directory>/.locks/<name>.lock``.

    Args:
        directory: Directory that owns the lock (usually ``.memorylink``)
        name: Lock name, e.g. ``audit``
        timeout: Seconds to wait before raising LockError
        retry_interval: Seconds between acquisition attempts
        stale_after: Sentinel age in seconds after which it may be broken
        use_flock: Force the native (True) or sentinel (False) strategy
    """

    def __init__(
        self,
        directory,
        name: str,
        timeout: float = 5.0,
        retry_interval: float = 0.1,
        stale_after: float = 30.0,
        use_flock: Optional[bool] = None,
    ):
        self.lock_path = Path(directory) / LOCKS_DIR / f"{name}.lock"
        self.timeout = timeout
        self.retry_interval = retry_interval
        self.stale_after = stale_after
        self.use_flock = (fcntl is not None) if use_flock is None else (use_flock and fcntl is not None)
        self._fd: Optional[int] = None
        self._owned_sentinel = False

    def _state(self) -> Dict[str, Any]:
        return {"pid": os.getpid(), "timestamp": int(time.time() * 1000), "hostname": socket.gethostname()}

    def _lock_error(self, action: str, error: OSError) -> LockError:
        logger.error("Failed to %s lock %s: %s", action, self.lock_path, error)
        return LockError(f"Failed to {action} lock: {error}", operation="lock", path=str(self.lock_path))

    def _try_flock(self) -> bool:
        try:
            fd = os.open(str(self.lock_path), os.O_RDWR | os.O_CREAT, 0o644)
        except OSError as e:
            raise self._lock_error("open", e) from e
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError:
            os.close(fd)
            return False
        os.ftruncate(fd, 0)
        os.write(fd, json.dumps(self._state()).encode("utf-8"))
        self._fd = fd
        return True

    def _try_sentinel(self) -> bool:
        try:
            fd = os.open(str(self.lock_path), os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o644)
        except FileExistsError:
            if is_lock_stale(read_lock_state(self.lock_path), self.stale_after):
                logger.warning("Removing stale lock %s", self.lock_path)
                try:
                    self.lock_path.unlink()
                except FileNotFoundError:
                    pass
                except OSError as e:
                    raise self._lock_error("break stale", e) from e
            return False
        except OSError as e:
            raise self._lock_error("create", e) from e
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(self._state(), f)
        self._owned_sentinel = True
        return True

    def acquire(self) -> "FileLock":
        try:
            self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise self._lock_error("prepare", e) from e
        deadline = time.monotonic() + self.timeout
        attempt = self._try_flock if self.use_flock else self._try_sentinel
        while True:
            if attempt():
                return self
            if time.monotonic() >= deadline:
                raise LockError(
                    f"Timed out after {self.timeout}s waiting for lock",
                    operation="lock",
                    path=str(self.lock_path),
                )
            time.sleep(self.retry_interval)

    def release(self) -> None:
        if self._fd is not None:
            try:
                fcntl.flock(self._fd, fcntl.LOCK_UN)
            finally:
                os.close(self._fd)
                self._fd = None
            return
        if self._owned_sentinel:
            state = read_lock_state(self.lock_path)
            if state and state.get("pid") == os.getpid():
                try:
                    self.lock_path.unlink()
                except FileNotFoundError:
                    pass
            self._owned_sentinel = False

    @property
    def is_held(self) -> bool:
        return self._fd is not None or self._owned_sentinel

    def __enter__(self) -> "FileLock":
        return self.acquire()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
