"""
Entry point for running godeb as a module.

Usage:
    python -m godeb install
"""

import sys

from .cli import main

if __name__ == "__main__":
    sys.exit(main())
