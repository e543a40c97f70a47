# SPDX-License-Identifier: MIT
"""
Tests for block-vs-warn mode resolution.
"""

import json

import pytest

from memorylink.gate.mode import (
    GateMode,
    ModeResolutionInput,
    ModeSource,
    detect_ci,
    gather_mode_input,
    parse_mode,
    resolve_mode,
)


class TestResolveMode:
    """The resolver is a pure function of its inputs."""

    def test_default_is_inactive(self):
        info = resolve_mode(ModeResolutionInput())
        assert info.effective == GateMode.INACTIVE
        assert info.source == ModeSource.DEFAULT
        assert not info.is_blocking

    def test_flag_wins(self):
        info = resolve_mode(ModeResolutionInput(
            flag=GateMode.INACTIVE, env_value=GateMode.ACTIVE, ci_detected=True, config_value=GateMode.ACTIVE,
        ))
        assert info.effective == GateMode.INACTIVE
        assert info.source == ModeSource.FLAG

    def test_env_beats_ci(self):
        info = resolve_mode(ModeResolutionInput(env_value=GateMode.INACTIVE, ci_detected=True))
        assert info.effective == GateMode.INACTIVE
        assert info.source == ModeSource.ENV

    def test_ci_beats_config(self):
        info = resolve_mode(ModeResolutionInput(ci_detected=True, config_value=GateMode.INACTIVE))
        assert info.effective == GateMode.ACTIVE
        assert info.source == ModeSource.CI
        assert info.is_ci

    def test_config_used_last(self):
        info = resolve_mode(ModeResolutionInput(config_value=GateMode.ACTIVE))
        assert info.effective == GateMode.ACTIVE
        assert info.source == ModeSource.CONFIG

    def test_to_dict(self):
        data = resolve_mode(ModeResolutionInput(flag=GateMode.ACTIVE)).to_dict()
        assert data == {
            "effective": "active",
            "source": "flag",
            "config_value": "inactive",
            "env_value": None,
            "flag_value": "active",
            "is_ci": False,
        }


class TestInputs:
    """Test parsing and gathering of mode sources."""

    @pytest.mark.parametrize("value, expected", [
        ("active", GateMode.ACTIVE),
        (" ACTIVE ", GateMode.ACTIVE),
        ("inactive", GateMode.INACTIVE),
        (True, GateMode.ACTIVE),
        (False, GateMode.INACTIVE),
        ("maybe", None),
        (None, None),
    ])
    def test_parse_mode(self, value, expected):
        assert parse_mode(value) == expected

    @pytest.mark.parametrize("environ, expected", [
        ({}, False),
        ({"CI": "true"}, True),
        ({"CI": "false"}, False),
        ({"CI": "0"}, False),
        ({"GITHUB_ACTIONS": "true"}, True),
        ({"TF_BUILD": "True"}, True),
        ({"JENKINS_URL": "https://ci.example.com"}, True),
    ])
    def test_detect_ci(self, environ, expected):
        assert detect_ci(environ) is expected

    def test_gather_from_env_and_config(self, project):
        (project / ".memorylink").mkdir()
        (project / ".memorylink" / "config.json").write_text(
            json.dumps({"preferences": {"block_mode": "active"}}), encoding="utf-8"
        )
        inputs = gather_mode_input(project, flag=None, environ={"ML_MODE": "inactive"})
        assert inputs.env_value == GateMode.INACTIVE
        assert inputs.config_value == GateMode.ACTIVE
        assert not inputs.ci_detected
        assert resolve_mode(inputs).source == ModeSource.ENV

    def test_broken_config_ignored(self, project):
        (project / ".memorylink").mkdir()
        (project / ".memorylink" / "config.json").write_text("{", encoding="utf-8")
        inputs = gather_mode_input(project, environ={})
        assert inputs.config_value is None
        assert resolve_mode(inputs).effective == GateMode.INACTIVE

    def test_process_environment_used_by_default(self, project, monkeypatch):
        monkeypatch.setenv("ML_MODE", "active")
        assert gather_mode_input(project).env_value == GateMode.ACTIVE
