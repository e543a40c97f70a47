# SPDX-License-Identifier: MIT
"""
Block-vs-warn mode resolution.

Priority, highest first: explicit flag, ``ML_MODE``, CI detection, the
project's ``preferences.block_mode``, then the INACTIVE default.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from memorylink.config import load_project_config_safe
from memorylink.core.outcome import Recovered

logger = logging.getLogger(__name__)


class GateMode(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class ModeSource(str, Enum):
    FLAG = "flag"
    ENV = "env"
    CI = "ci"
    CONFIG = "config"
    DEFAULT = "default"


CI_ENV_VARS = (
    "CI",
    "GITHUB_ACTIONS",
    "GITLAB_CI",
    "JENKINS_URL",
    "CIRCLECI",
    "TRAVIS",
    "BUILDKITE",
    "AZURE_PIPELINES",
    "TF_BUILD",
    "TEAMCITY_VERSION",
    "BITBUCKET_PIPELINES",
    "BITBUCKET_BUILD_NUMBER",
    "DRONE",
    "APPVEYOR",
    "SEMAPHORE",
    "BUDDY",
    "VERCEL",
    "NETLIFY",
    "BITRISE_IO",
    "CODESHIP",
    "CODEBUILD_BUILD_ID",
)

_FALSE_VALUES = ("", "0", "false", "no")


def parse_mode(value: Any) -> Optional[GateMode]:
    """Accept ``active``/``inactive`` in any case, or a boolean block flag."""
    if value is None:
        return None
    if isinstance(value, GateMode):
        return value
    if isinstance(value, bool):
        return GateMode.ACTIVE if value else GateMode.INACTIVE
    text = str(value).strip().lower()
    if text == GateMode.ACTIVE.value:
        return GateMode.ACTIVE
    if text == GateMode.INACTIVE.value:
        return GateMode.INACTIVE
    return None


def detect_ci(environ: Optional[Mapping[str, str]] = None) -> bool:
    env = os.environ if environ is None else environ
    return any(str(env.get(name, "")).strip().lower() not in _FALSE_VALUES for name in CI_ENV_VARS)


@dataclass(frozen=True)
class ModeResolutionInput:
    flag: Optional[GateMode] = None
    env_value: Optional[GateMode] = None
    ci_detected: bool = False
    config_value: Optional[GateMode] = None


@dataclass(frozen=True)
class ModeInfo:
    effective: GateMode
    source: ModeSource
    config_value: Optional[GateMode]
    env_value: Optional[GateMode]
    flag_value: Optional[GateMode]
    is_ci: bool

    @property
    def is_blocking(self) -> bool:
        return self.effective == GateMode.ACTIVE

    def to_dict(self) -> Dict[str, Any]:
        def _value(mode: Optional[GateMode]) -> Optional[str]:
            return mode.value if mode else None

        return {
            "effective": self.effective.value,
            "source": self.source.value,
            "config_value": _value(self.config_value) or GateMode.INACTIVE.value,
            "env_value": _value(self.env_value),
            "flag_value": _value(self.flag_value),
            "is_ci": self.is_ci,
        }


def resolve_mode(inputs: ModeResolutionInput) -> ModeInfo:
    if inputs.flag is not None:
        effective, source = inputs.flag, ModeSource.FLAG
    elif inputs.env_value is not None:
        effective, source = inputs.env_value, ModeSource.ENV
    elif inputs.ci_detected:
        effective, source = GateMode.ACTIVE, ModeSource.CI
    elif inputs.config_value is not None:
        effective, source = inputs.config_value, ModeSource.CONFIG
    else:
        effective, source = GateMode.INACTIVE, ModeSource.DEFAULT
    return ModeInfo(
        effective=effective,
        source=source,
        config_value=inputs.config_value,
        env_value=inputs.env_value,
        flag_value=inputs.flag,
        is_ci=inputs.ci_detected,
    )


def load_mode_preference(cwd) -> Optional[GateMode]:
    outcome = load_project_config_safe(cwd)
    if isinstance(outcome, Recovered):
        logger.warning("Warning: %s", outcome.warning)
    return parse_mode(outcome.value["preferences"].get("block_mode"))


def gather_mode_input(cwd, flag: Any = None, environ: Optional[Mapping[str, str]] = None) -> ModeResolutionInput:
    """Collect every mode source from the flag, the environment and the project config."""
    env = os.environ if environ is None else environ
    return ModeResolutionInput(
        flag=parse_mode(flag),
        env_value=parse_mode(env.get("ML_MODE")),
        ci_detected=detect_ci(env),
        config_value=load_mode_preference(cwd),
    )
