"""Entry point for python -m sentinel command.

This module provides the CLI entry point for `python -m sentinel`,
which is an alias to `python -m sentinel_service`.
"""

from sentinel_service.__main__ import main

if __name__ == "__main__":
    main()
