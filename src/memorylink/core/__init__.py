# SPDX-License-Identifier: MIT
"""Shared building blocks: errors, outcomes, paths and safe file I/O."""
