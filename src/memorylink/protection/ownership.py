# SPDX-License-Identifier: MIT
"""
Team isolation for shared memory files under ``.agent/teams/``.

A team file may declare its owner in YAML front matter::

    ---
    memorylink:
      owner: frontend
      editors: [alice, bob]
      readonly: [backend]
    ---
"""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import yaml

from memorylink.core.exceptions import ValidationError

logger = logging.getLogger(__name__)

TEAMS_SEGMENT = ".agent/teams/"
_FRONT_MATTER_RE = re.compile(r"\A---\r?\n(.*?)\r?\n---", re.DOTALL)
_TEAM_NAME_RE = re.compile(r"[/\\]teams[/\\]([^/\\]+)\.md$")


@dataclass
class OwnershipMetadata:
    owner: Optional[str] = None
    editors: List[str] = field(default_factory=list)
    readonly: List[str] = field(default_factory=list)


def _as_names(value) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = value.split(",")
    return [str(v).strip() for v in value if str(v).strip()]


def parse_ownership_metadata(file_path) -> Optional[OwnershipMetadata]:
    """
    Read the ``memorylink`` block from a file's front matter.

    Returns None when the file, the front matter or the block is absent.

    Raises:
        ValidationError: If the front matter is not valid YAML
    """
    path = Path(file_path)
    if not path.exists():
        return None
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ValidationError(f"Failed to parse ownership metadata: {e}", field="ownership") from e

    match = _FRONT_MATTER_RE.match(content)
    if not match:
        return None
    try:
        front_matter = yaml.safe_load(match.group(1)) or {}
    except yaml.YAMLError as e:
        raise ValidationError(f"Failed to parse ownership metadata: {e}", field="ownership") from e

    section = front_matter.get("memorylink") if isinstance(front_matter, dict) else None
    if not isinstance(section, dict):
        return None
    owner = section.get("owner")
    metadata = OwnershipMetadata(
        owner=str(owner).strip() if owner else None,
        editors=_as_names(section.get("editors")),
        readonly=_as_names(section.get("readonly")),
    )
    if not (metadata.owner or metadata.editors or metadata.readonly):
        return None
    return metadata


def is_team_file(file_path, cwd=None) -> bool:
    normalized = str(file_path).replace("\\", "/")
    root = str(cwd or os.getcwd()).replace("\\", "/").rstrip("/")
    if normalized.startswith(root + "/"):
        normalized = normalized[len(root) + 1:]
    return TEAMS_SEGMENT in normalized


def get_team_name_from_path(file_path) -> Optional[str]:
    match = _TEAM_NAME_RE.search(str(file_path))
    return match.group(1) if match else None


def can_edit(file_path, user_or_team: str, cwd=None) -> bool:
    """
    Whether ``user_or_team`` may change a team file.

    Files outside ``.agent/teams/`` and files without ownership metadata are
    open. Otherwise editors and the owning team may edit; readonly entries
    and anyone else are denied once an owner is set.
    """
    if not is_team_file(file_path, cwd):
        return True
    metadata = parse_ownership_metadata(file_path)
    if metadata is None:
        return True
    if user_or_team in metadata.editors:
        return True
    if metadata.owner and metadata.owner == user_or_team:
        return True
    if user_or_team in metadata.readonly:
        return False
    return not metadata.owner


def get_current_user() -> str:
    for name in ("GIT_AUTHOR_NAME", "USER", "USERNAME"):
        value = os.environ.get(name)
        if value:
            return value
    return "unknown"
