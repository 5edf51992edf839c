"""Sentinel package alias.

This package provides an alias to sentinel_service, allowing users to run
`python -m sentinel` instead of `python -m sentinel_service`.
"""

# Import everything from sentinel_service for convenience
from sentinel_service import *  # noqa: F403, F401
