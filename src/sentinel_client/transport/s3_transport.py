from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Union

from boto3.exceptions import S3UploadFailedError
from botocore.exceptions import BotoCoreError, ClientError

from sentinel_service.errors import UploadError
from sentinel_service.storage import ArchiveStore

from ..config import ClientConfig, create_client

_logger = logging.getLogger("sentinel_client.transport")


@dataclass
class S3Transport(ArchiveStore):
  """
  Uploads packaged archives to S3.

  Multipart handling and retries are left to boto3's managed transfer and
  the botocore retry configuration; failures are raised as UploadError.
  """

  config: Optional[ClientConfig] = None
  client: Any = field(default=None, repr=False)

  def __post_init__(self) -> None:
    if self.client is None:
      self.client = create_client("s3", self.config)

  def upload(self, path: Union[str, Path], bucket: str, key: str) -> None:
    _logger.debug("Uploading %s to s3://%s/%s", path, bucket, key)
    try:
      self.client.upload_file(
        str(path),
        bucket,
        key,
        ExtraArgs={"ContentType": "application/gzip"},
      )
    except (S3UploadFailedError, ClientError, BotoCoreError, OSError) as exc:
      raise UploadError(f"failed to upload file {str(path)!r} to s3://{bucket}/{key}: {exc}", key=key) from exc
