# SPDX-License-Identifier: MIT
"""Team file ownership checks."""
