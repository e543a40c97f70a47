# SPDX-License-Identifier: MIT
"""
Project configuration loader for MemoryLink.

Search order inside ``<project>/.memorylink``:
1. ``config.json``
2. ``config.yml`` / ``config.yaml``
3. built-in defaults
"""
from __future__ import annotations

import copy
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from memorylink.core.exceptions import ConfigError
from memorylink.core.outcome import Ok, Outcome, Recovered
from memorylink.core.paths import CONFIG_YAML_FILES, MAX_FILE_SIZE, config_path, memorylink_dir

logger = logging.getLogger(__name__)

ENCRYPTION_FAILURE_MODES = ("plaintext", "fail")

_DEFAULT_CONFIG: Dict[str, Any] = {
    "patterns": {"disabled": [], "custom": []},
    "whitelist": {"patterns": [], "variableNames": [], "values": [], "fileTypes": [], "files": []},
    "preferences": {"block_mode": None},
    "quarantine": {"encryption_failure": "plaintext"},
}


def get_default_config() -> Dict[str, Any]:
    """
    Get the default project configuration.

    Returns:
        Dictionary with default settings
    """
    return copy.deepcopy(_DEFAULT_CONFIG)


def find_config_file(cwd) -> Optional[Path]:
    json_path = config_path(cwd)
    if json_path.exists():
        return json_path
    for name in CONFIG_YAML_FILES:
        candidate = memorylink_dir(cwd) / name
        if candidate.exists():
            return candidate
    return None


def load_project_config(cwd) -> Dict[str, Any]:
    """
    Load and validate the project configuration.

    Args:
        cwd: Project root

    Returns:
        Configuration with defaults applied

    Raises:
        ConfigError: If the file is unreadable, malformed or has wrong types
    """
    path = find_config_file(cwd)
    if path is None:
        return get_default_config()

    try:
        if path.stat().st_size > MAX_FILE_SIZE:
            raise ConfigError("Config file exceeds maximum size", config_path=str(path))
        with open(path, "r", encoding="utf-8") as f:
            if path.suffix == ".json":
                config = json.load(f)
            else:
                config = yaml.safe_load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in config file: {e}", config_path=str(path)) from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file: {e}", config_path=str(path)) from e
    except OSError as e:
        raise ConfigError(f"Failed to load config: {e}", config_path=str(path)) from e

    if config is None:
        config = {}

    if not isinstance(config, dict):
        raise ConfigError("Config must be a mapping", config_path=str(path))

    _validate_config(config, path)
    return _apply_config_defaults(config)


def load_project_config_safe(cwd) -> Outcome:
    """Like ``load_project_config`` but falls back to defaults with a warning."""
    try:
        return Ok(load_project_config(cwd))
    except ConfigError as e:
        return Recovered(get_default_config(), str(e))


def _validate_config(config: Dict[str, Any], path: Path) -> None:
    patterns = config.get("patterns")
    if patterns is not None:
        if not isinstance(patterns, dict):
            raise ConfigError("config.patterns must be a mapping", config_path=str(path), section="patterns")
        for key in ("disabled", "custom"):
            if patterns.get(key) is not None and not isinstance(patterns[key], list):
                raise ConfigError(
                    f"config.patterns.{key} must be an array", config_path=str(path), section="patterns"
                )

    whitelist = config.get("whitelist")
    if whitelist is not None and not isinstance(whitelist, dict):
        raise ConfigError("config.whitelist must be a mapping", config_path=str(path), section="whitelist")

    quarantine = config.get("quarantine") or {}
    mode = quarantine.get("encryption_failure") if isinstance(quarantine, dict) else None
    if mode is not None and mode not in ENCRYPTION_FAILURE_MODES:
        raise ConfigError(
            f"quarantine.encryption_failure must be one of {', '.join(ENCRYPTION_FAILURE_MODES)}",
            config_path=str(path),
            section="quarantine",
        )


def _apply_config_defaults(config: Dict[str, Any]) -> Dict[str, Any]:
    """Fill in any section or key the file leaves out."""
    defaults = get_default_config()
    for section, values in defaults.items():
        current = config.get(section)
        if not isinstance(current, dict):
            config[section] = values
            continue
        for key, value in values.items():
            if current.get(key) is None:
                current[key] = value
    return config
