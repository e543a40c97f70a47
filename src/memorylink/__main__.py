#!/usr/bin/env python3
"""
Allow running memorylink as a module: python -m memorylink
"""

from memorylink.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
