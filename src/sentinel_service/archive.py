from __future__ import annotations

import csv
import gzip
import io
import logging
import os
from pathlib import Path
from types import TracebackType
from typing import BinaryIO, Iterable, List, Optional, Sequence, Type, Union
from urllib.parse import quote

from .errors import CloseError, EncodeError, ExportError, FlushError
from .models import LogEvent, format_timestamp

ARCHIVE_SUFFIX = ".gz"

# Space separated records, matching the format the downstream SIEM connector expects.
RECORD_DELIMITER = " "

_logger = logging.getLogger("sentinel_service.archive")


def archive_path(directory: Union[str, Path], stream_name: str) -> Path:
  """
  Deterministic archive location for a stream.

  Stream names often contain '/', so the name is percent-quoted to keep the
  file inside `directory`.
  """
  return Path(directory) / f"{quote(stream_name, safe='')}{ARCHIVE_SUFFIX}"


def encode_fields(fields: Iterable[str]) -> str:
  """
  Build the injected metadata column: each non-blank field prefixed by a comma.
  """
  return "".join("," + f.strip() for f in fields if f and f.strip())


class ArchiveWriter:
  """
  Scoped chain file -> gzip -> UTF-8 text -> space-delimited records.

  Use as a context manager. A clean exit flushes the text encoder, flushes
  and finalizes the gzip stream (writing its trailer) and then closes the
  file. An exit through an exception only releases the file handle; the
  partial archive stays on disk and must not be trusted.
  """

  def __init__(self, path: Union[str, Path], inject_fields: Sequence[str] = ()) -> None:
    self.path = Path(path)
    self.records_written = 0
    self._suffix = encode_fields(inject_fields)
    self._raw: Optional[BinaryIO] = None
    self._gzip: Optional[gzip.GzipFile] = None
    self._text: Optional[io.TextIOWrapper] = None
    self._writer = None

  def __enter__(self) -> "ArchiveWriter":
    self.open()
    return self

  def __exit__(
    self,
    exc_type: Optional[Type[BaseException]],
    exc: Optional[BaseException],
    tb: Optional[TracebackType],
  ) -> None:
    if exc_type is None:
      self.close()
    else:
      self.abort()

  def open(self) -> None:
    try:
      self._raw = open(self.path, "wb")
    except OSError as exc:
      raise EncodeError(f"failed to create archive {self.path}: {exc}") from exc
    try:
      # Empty filename keeps the stream name out of the gzip header.
      self._gzip = gzip.GzipFile(filename="", mode="wb", fileobj=self._raw)
      self._text = io.TextIOWrapper(self._gzip, encoding="utf-8", newline="")
    except Exception:
      self._raw.close()
      raise
    self._writer = csv.writer(
      self._text,
      delimiter=RECORD_DELIMITER,
      quoting=csv.QUOTE_MINIMAL,
      lineterminator="\n",
    )

  def write_events(self, events: Iterable[LogEvent]) -> int:
    """
    Encode a batch of events and push them into the compressor.

    Returns the number of records written for this batch.
    """
    if self._writer is None:
      raise EncodeError(f"archive {self.path} is not open")

    written = 0
    for event in events:
      record: List[str] = [format_timestamp(event.timestamp), event.message]
      if self._suffix:
        record.append(self._suffix)
      try:
        self._writer.writerow(record)
      except (csv.Error, OSError, ValueError) as exc:
        raise EncodeError(f"failed to write log event to {self.path}: {exc}") from exc
      written += 1
      self.records_written += 1

    return written

  def close(self) -> None:
    if self._raw is None:
      return
    try:
      try:
        self._text.flush()
        self._gzip.flush()
      except (OSError, ValueError) as exc:
        raise FlushError(f"failed to flush archive {self.path}: {exc}") from exc

      try:
        self._gzip.close()
      except (OSError, ValueError) as exc:
        raise CloseError(f"failed to finalize gzip stream for {self.path}: {exc}") from exc
    except ExportError:
      self.abort()
      raise

    self._release(quiet=False)

  def abort(self) -> None:
    text = self._text
    if text is not None and self._raw is not None:
      try:
        # Closes the gzip layer as well, so nothing is left to write on garbage collection.
        text.close()
      except (OSError, ValueError) as exc:
        _logger.warning("Failed to close encoder for %s while aborting: %s", self.path, exc)
    self._release(quiet=True)

  def _release(self, quiet: bool) -> None:
    raw, self._raw = self._raw, None
    self._writer = None
    self._text = None
    self._gzip = None
    if raw is None:
      return
    try:
      raw.close()
    except OSError as exc:
      if not quiet:
        raise CloseError(f"failed to close archive {self.path}: {exc}") from exc
      # Another error is already propagating; keep it as the primary failure.
      _logger.warning("Failed to close archive %s while aborting: %s", self.path, exc)


def ensure_directory(directory: Union[str, Path]) -> Path:
  path = Path(directory)
  try:
    os.makedirs(path, exist_ok=True)
  except OSError as exc:
    raise EncodeError(f"failed to create archive directory {path}: {exc}") from exc
  return path
