"""CLI entrypoint for the scope capture tools."""

import sys

from scope_capture.cli import main


if __name__ == "__main__":
    sys.exit(main())
