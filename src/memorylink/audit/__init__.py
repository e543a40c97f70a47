# SPDX-License-Identifier: MIT
"""Hash-chained, append-only audit trail."""
