"""Entry point for ``python -m autoapply``."""

import sys

from autoapply.main import main

if __name__ == "__main__":
    sys.exit(main())
