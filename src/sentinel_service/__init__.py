"""
sentinel_service

Exports CloudWatch Logs streams for a time window into gzip archives of
space-delimited records and ships them to S3.
"""

from .discovery import DiscoveryStrategy, discover
from .events import package
from .models import ExportWindow, LogEvent, LogStream, PackageResult

__version__ = "0.1.0"

__all__ = [
  "DiscoveryStrategy",
  "ExportWindow",
  "LogEvent",
  "LogStream",
  "PackageResult",
  "discover",
  "package",
]
