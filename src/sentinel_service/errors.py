from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
  from .models import LogStream, PackageResult


class SentinelError(Exception):
  """Base class for every error raised by the export pipeline."""


class ConfigError(SentinelError):
  def __init__(self, problems: List[str]) -> None:
    self.problems = list(problems)
    super().__init__("invalid configuration:\n" + "\n".join(f"  - {p}" for p in self.problems))


class SourceError(SentinelError):
  """
  Raised by LogSource implementations when a call to the log service fails.
  """


class DiscoveryError(SentinelError):
  """
  Stream listing failed. `streams` holds what was accumulated before the failure.
  """

  def __init__(self, message: str, streams: Optional[List["LogStream"]] = None) -> None:
    super().__init__(message)
    self.streams = list(streams or [])


class ExportError(SentinelError):
  """
  Export of one stream failed. `result` carries the partial count.
  """

  def __init__(self, message: str, result: Optional["PackageResult"] = None) -> None:
    super().__init__(message)
    self.result = result


class FetchError(ExportError):
  pass


class EncodeError(ExportError):
  pass


class FlushError(ExportError):
  pass


class CloseError(ExportError):
  pass


class UploadError(SentinelError):
  def __init__(self, message: str, key: Optional[str] = None) -> None:
    super().__init__(message)
    self.key = key


class CleanupError(SentinelError):
  """
  The archive was uploaded but the local copy could not be removed.
  """
