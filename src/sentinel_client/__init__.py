"""
sentinel_client

AWS adapters for the log export pipeline: a CloudWatch Logs source and an
S3 transport for packaged archives.
"""

from .config import ClientConfig
from .logs import CloudWatchLogSource
from .transport import S3Transport

__all__ = ["ClientConfig", "CloudWatchLogSource", "S3Transport"]
