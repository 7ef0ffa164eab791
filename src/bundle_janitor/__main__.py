"""!
@brief ``python -m bundle_janitor`` entry point.
"""
from __future__ import annotations

import sys

from .main import main

if __name__ == "__main__":  # pragma: no cover - manual invocation
    sys.exit(main())
