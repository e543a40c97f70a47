# SPDX-License-Identifier: MIT
"""MemoryLink error hierarchy.

Every error carries a stable ``code`` string and the process ``exit_code``
the CLI should return when it surfaces.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Any, List, Optional


class ExitCode(IntEnum):
    SUCCESS = 0
    FAILURE = 1
    ERROR = 2


EXIT_CODE_MEANINGS = {
    ExitCode.SUCCESS: "PASS - Safe to proceed",
    ExitCode.FAILURE: "FAIL - Block pipeline",
    ExitCode.ERROR: "ERROR - Invalid config",
}


def get_exit_code_meaning(code: int) -> str:
    try:
        return EXIT_CODE_MEANINGS[ExitCode(code)]
    except ValueError:
        return "UNKNOWN"


class MemoryLinkError(Exception):
    """Base class for all MemoryLink failures."""

    code = "MEMORYLINK_ERROR"
    default_exit_code = ExitCode.ERROR

    def __init__(self, message: str, code: Optional[str] = None, exit_code: Optional[int] = None):
        self.message = message
        if code is not None:
            self.code = code
        self.exit_code = int(exit_code if exit_code is not None else self.default_exit_code)
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"error": type(self).__name__, "code": self.code, "message": self.message}


class ValidationError(MemoryLinkError):
    """Raised when caller input is malformed."""

    code = "VALIDATION_ERROR"
    default_exit_code = ExitCode.FAILURE

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)

    def __str__(self):
        msg = super().__str__()
        if self.field:
            msg += f" (field: {self.field})"
        return msg


class StorageError(MemoryLinkError):
    """Raised when a filesystem operation fails."""

    code = "STORAGE_ERROR"
    default_exit_code = ExitCode.ERROR

    def __init__(self, message: str, operation: Optional[str] = None, path: Optional[str] = None):
        self.operation = operation
        self.path = path
        super().__init__(message)

    def __str__(self):
        msg = super().__str__()
        if self.operation:
            msg += f" (operation: {self.operation})"
        if self.path:
            msg += f" (path: {self.path})"
        return msg


class RecordNotFoundError(StorageError):
    code = "FILE_NOT_FOUND"


class FileReadError(StorageError):
    code = "FILE_READ_ERROR"


class FileWriteError(StorageError):
    code = "FILE_WRITE_ERROR"


class LockError(StorageError):
    code = "LOCK_ERROR"


class DecryptionError(MemoryLinkError):
    """Raised when ciphertext fails marker or authentication checks."""

    code = "DECRYPTION_ERROR"
    default_exit_code = ExitCode.ERROR


class QuarantineError(MemoryLinkError):
    """Signals that content contains a secret and must not be stored as-is."""

    code = "QUARANTINE_ERROR"
    default_exit_code = ExitCode.FAILURE

    def __init__(self, message: str, pattern_id: Optional[str] = None, record_id: Optional[str] = None):
        self.pattern_id = pattern_id
        self.record_id = record_id
        super().__init__(message)


class GateError(MemoryLinkError):
    code = "GATE_ERROR"
    default_exit_code = ExitCode.FAILURE

    def __init__(self, message: str, violations: Optional[List[Any]] = None, rule: Optional[str] = None):
        self.violations = list(violations or [])
        self.rule = rule
        super().__init__(message)


class EvidenceLevelError(MemoryLinkError):
    code = "EVIDENCE_LEVEL_ERROR"
    default_exit_code = ExitCode.FAILURE


class ConflictResolutionError(MemoryLinkError):
    code = "CONFLICT_RESOLUTION_ERROR"
    default_exit_code = ExitCode.ERROR


class ConfigError(MemoryLinkError):
    """Raised when configuration is missing or invalid."""

    code = "CONFIG_ERROR"
    default_exit_code = ExitCode.ERROR

    def __init__(self, message: str, config_path: Optional[str] = None, section: Optional[str] = None):
        self.config_path = config_path
        self.section = section
        super().__init__(message)

    def __str__(self):
        msg = super().__str__()
        if self.config_path:
            msg += f" (config: {self.config_path})"
        if self.section:
            msg += f" (section: {self.section})"
        return msg
