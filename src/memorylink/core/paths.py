# SPDX-License-Identifier: MIT
"""
On-disk layout of a MemoryLink project.

All project state lives under ``<project>/.memorylink``; encryption keys live
under the per-user directory (``~/.memorylink`` or ``$MEMORYLINK_HOME``).
"""
from __future__ import annotations

import hashlib
import os
import re
from pathlib import Path
from typing import Union

PathLike = Union[str, "os.PathLike[str]"]

MEMORYLINK_DIR = ".memorylink"
RECORDS_DIR = "records"
QUARANTINE_DIR = "quarantined"
AUDIT_DIR = "audit"
AUDIT_FILE = "events.ndjson"
BYPASS_FILE = "bypasses.json"
CONFIG_FILE = "config.json"
CONFIG_YAML_FILES = ("config.yml", "config.yaml")

# Largest file any reader loads into memory.
MAX_FILE_SIZE = 10 * 1024 * 1024


def memorylink_dir(cwd: PathLike) -> Path:
    return Path(cwd) / MEMORYLINK_DIR


def records_dir(cwd: PathLike, scope_type: str, scope_id: str) -> Path:
    return memorylink_dir(cwd) / RECORDS_DIR / scope_type / scope_id


def record_path(cwd: PathLike, scope_type: str, scope_id: str, record_id: str) -> Path:
    return records_dir(cwd, scope_type, scope_id) / f"{record_id}.json"


def quarantine_dir(cwd: PathLike) -> Path:
    return memorylink_dir(cwd) / QUARANTINE_DIR


def quarantine_content_path(cwd: PathLike, record_id: str) -> Path:
    return quarantine_dir(cwd) / f"{record_id}.original"


def quarantine_metadata_path(cwd: PathLike, record_id: str) -> Path:
    return quarantine_dir(cwd) / f"{record_id}.metadata.json"


def audit_log_path(cwd: PathLike) -> Path:
    return memorylink_dir(cwd) / AUDIT_DIR / AUDIT_FILE


def bypass_path(cwd: PathLike) -> Path:
    return memorylink_dir(cwd) / BYPASS_FILE


def config_path(cwd: PathLike) -> Path:
    return memorylink_dir(cwd) / CONFIG_FILE


def user_home_dir() -> Path:
    override = os.environ.get("MEMORYLINK_HOME")
    if override:
        return Path(override)
    return Path.home() / MEMORYLINK_DIR


def keys_dir() -> Path:
    return user_home_dir() / "keys"


def normalize_scope_identifier(identifier: str) -> str:
    """Normalize a repository URL or path so equivalent spellings hash alike."""
    normalized = re.sub(r"^[a-z][a-z0-9+.-]*://", "", identifier.strip(), flags=re.IGNORECASE)
    normalized = re.sub(r"\.git/?$", "", normalized)
    normalized = normalized.lower()
    return normalized.rstrip("/")


def generate_scope_id(identifier: str) -> str:
    """SHA-256 of the normalized repository URL or project path."""
    return hashlib.sha256(normalize_scope_identifier(identifier).encode("utf-8")).hexdigest()


def project_scope_id(cwd: PathLike) -> str:
    return generate_scope_id(str(Path(cwd).resolve()))
