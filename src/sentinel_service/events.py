from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Sequence, Union

from .archive import ArchiveWriter, archive_path, ensure_directory
from .errors import ExportError, FetchError, SourceError
from .models import ExportWindow, PackageResult
from .source import LogSource

_logger = logging.getLogger("sentinel_service.events")


def package(
  source: LogSource,
  group: str,
  stream_name: str,
  window: ExportWindow,
  output_dir: Union[str, Path],
  inject_fields: Sequence[str] = (),
) -> PackageResult:
  """
  Export one stream's events in `window` into a gzip archive in `output_dir`.

  Pages are encoded and compressed as they arrive, so memory stays bounded
  by a single page. The archive is always created, even when the stream has
  no events in the window.

  Termination follows the log service's cursor convention: an empty page
  ends the walk, and once a cursor has been sent, receiving that same cursor
  back means there is nothing further to read. The first request carries no
  cursor, so its returned cursor is always followed once.

  Raises FetchError, EncodeError, FlushError or CloseError; each carries the
  partial PackageResult in `.result`.
  """
  if not group:
    raise ValueError("group must be a non-empty string")
  if not stream_name:
    raise ValueError("stream_name must be a non-empty string")

  path = archive_path(output_dir, stream_name)
  archive = ArchiveWriter(path, inject_fields=inject_fields)
  token: Optional[str] = None
  fetches = 0

  try:
    ensure_directory(output_dir)
    with archive:
      while True:
        try:
          page = source.get_log_events(
            group,
            stream_name,
            window.start,
            window.end,
            next_token=token,
          )
        except SourceError as exc:
          raise FetchError(f"failed to get log events for {stream_name!r}: {exc}") from exc
        fetches += 1

        # Nothing more to write for this window.
        if not page.events:
          break

        archive.write_events(page.events)

        returned = page.next_forward_token
        if not returned:
          break
        # The service echoes the cursor it was given once the stream is exhausted.
        # The first request sent no cursor, so its returned one is always followed.
        if token is not None and returned == token:
          break
        token = returned
  except ExportError as exc:
    exc.result = PackageResult(archive_path=path, event_count=archive.records_written)
    raise

  count = archive.records_written
  _logger.debug(
    "Packaged %s event(s) from %s/%s into %s using %s fetch(es)",
    count,
    group,
    stream_name,
    path,
    fetches,
  )
  return PackageResult(archive_path=path, event_count=count)
