from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Union

from .archive import ARCHIVE_SUFFIX


class ArchiveStore:
  """
  Durable destination for packaged archives.

  The S3 implementation lives in sentinel_client. Tests are expected to use
  an in-memory subclass so they do not require a bucket.
  """

  def upload(self, path: Union[str, Path], bucket: str, key: str) -> None:  # pragma: no cover - integration concern
    """
    Upload the closed archive at `path` to `bucket`/`key`.

    Raises UploadError on failure.
    """
    raise NotImplementedError


def run_stamp(now: datetime) -> str:
  """
  Timestamp shared by every key of one run, e.g. 2024-01-02T03:04:05Z.
  """
  if now.tzinfo is None:
    now = now.replace(tzinfo=timezone.utc)
  return now.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def archive_key(prefix: str, stream_name: str, stamp: str) -> str:
  """
  Object key for a stream's archive: <prefix>/<stream name>/<run stamp>.gz
  """
  parts = [p for p in (prefix.strip("/"), stream_name.strip("/")) if p]
  parts.append(f"{stamp}{ARCHIVE_SUFFIX}")
  return "/".join(parts)
