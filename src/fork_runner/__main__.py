"""fork-runner entry point.

Supports: python -m fork_runner
"""

import sys

from .app import main

if __name__ == "__main__":
    sys.exit(main())
