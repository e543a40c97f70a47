# SPDX-License-Identifier: MIT
"""Pass/fail gating for CI and pre-commit hooks."""
