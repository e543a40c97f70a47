# SPDX-License-Identifier: MIT
"""Secret detection, encrypted quarantine storage and release."""
