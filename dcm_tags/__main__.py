"""Entry point for ``python -m dcm_tags``."""

import sys

from dcm_tags.cli import main

if __name__ == "__main__":
    sys.exit(main())
