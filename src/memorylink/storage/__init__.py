# SPDX-License-Identifier: MIT
"""Memory record persistence and the capture flow."""
