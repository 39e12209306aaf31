"""HERDBOOK CLI entry point (python -m herdbook)"""

from __future__ import annotations

import sys

from herdbook.cli import main

if __name__ == "__main__":
    sys.exit(main())
