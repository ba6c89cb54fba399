"""Module entrypoint to run the settings CLI via ``python -m logview_settings``."""

from __future__ import annotations

import sys

from .cli import main

if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
