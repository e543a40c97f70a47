# SPDX-License-Identifier: MIT
"""Shared fixtures: isolate keys, mode variables and CI markers per test."""

import pytest

from memorylink.gate.mode import CI_ENV_VARS


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Keep encryption keys under the test tmp dir and clear mode overrides."""
    monkeypatch.setenv("MEMORYLINK_HOME", str(tmp_path / "home"))
    monkeypatch.delenv("ML_MODE", raising=False)
    for name in CI_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def project(tmp_path):
    """An empty project root."""
    root = tmp_path / "project"
    root.mkdir()
    return root


@pytest.fixture
def openai_style_secret():
    return "API_KEY=sk-" + "a" * 40
