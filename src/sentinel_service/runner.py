from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from .config import ExportConfig
from .discovery import discover
from .errors import CleanupError, ExportError, SentinelError, UploadError
from .events import package
from .logging_setup import (
  LOG_KEY_GROUP_NAME,
  LOG_KEY_S3_BUCKET_KEY,
  LOG_KEY_S3_BUCKET_NAME,
  LOG_KEY_STREAM_END_TIME,
  LOG_KEY_STREAM_LOG_COUNT,
  LOG_KEY_STREAM_NAME,
  LOG_KEY_STREAM_START_TIME,
  LOG_KEY_TEMPORARY_FILE_PATH,
)
from .models import ExportWindow, PackageResult, format_timestamp, to_epoch_ms
from .source import LogSource
from .storage import ArchiveStore, archive_key, run_stamp

logger = logging.getLogger(__name__)


@dataclass
class StreamOutcome:
  stream_name: str
  result: Optional[PackageResult] = None
  key: Optional[str] = None
  uploaded: bool = False
  error: Optional[SentinelError] = None

  @property
  def ok(self) -> bool:
    return self.error is None


@dataclass
class RunSummary:
  group_name: str
  window: ExportWindow
  outcomes: List[StreamOutcome] = field(default_factory=list)

  @property
  def exported_count(self) -> int:
    return sum(o.result.event_count for o in self.outcomes if o.result is not None)

  @property
  def failed(self) -> List[StreamOutcome]:
    return [o for o in self.outcomes if not o.ok]


def resolve_window(config: ExportConfig, now: datetime) -> ExportWindow:
  return ExportWindow.from_offsets(now, config.start, config.end)


def select_streams(config: ExportConfig, source: LogSource, now: datetime) -> List[str]:
  """
  Explicitly configured streams win; otherwise discover active streams.
  """
  if config.stream_names:
    return list(config.stream_names)

  discovery_start = to_epoch_ms(now + config.effective_discovery_start)
  streams = discover(source, config.group_name, discovery_start, config.discovery_strategy)
  return [s.name for s in streams]


def run_export(
  config: ExportConfig,
  source: LogSource,
  store: ArchiveStore,
  now: Optional[datetime] = None,
) -> RunSummary:
  """
  Execute one export run: select streams, package each one and upload it.

  The first failure propagates unless config.continue_on_error is set, in
  which case it is recorded on the summary instead.
  """
  now = now or datetime.now(timezone.utc)
  window = resolve_window(config, now)
  stamp = run_stamp(now)

  logger.info(
    "Executing export",
    extra={
      LOG_KEY_GROUP_NAME: config.group_name,
      LOG_KEY_STREAM_START_TIME: format_timestamp(window.start),
      LOG_KEY_STREAM_END_TIME: format_timestamp(window.end),
      LOG_KEY_S3_BUCKET_NAME: config.bucket_name,
    },
  )

  logger.info("Getting CloudWatch log streams", extra={LOG_KEY_GROUP_NAME: config.group_name})
  stream_names = select_streams(config, source, now)

  summary = RunSummary(group_name=config.group_name, window=window)

  def export_one(stream_name: str) -> StreamOutcome:
    outcome = StreamOutcome(stream_name=stream_name)
    try:
      _export_stream(config, source, store, window, stamp, outcome)
    except SentinelError as exc:
      outcome.error = exc
      if not config.continue_on_error:
        raise
      logger.error(
        "Failed to export log stream, continuing: %s",
        exc,
        extra={LOG_KEY_GROUP_NAME: config.group_name, LOG_KEY_STREAM_NAME: stream_name},
      )
    return outcome

  if config.max_workers <= 1 or len(stream_names) <= 1:
    for name in stream_names:
      summary.outcomes.append(export_one(name))
  else:
    with ThreadPoolExecutor(max_workers=config.max_workers) as pool:
      futures = [pool.submit(export_one, name) for name in stream_names]
      try:
        for future in futures:
          summary.outcomes.append(future.result())
      except SentinelError:
        for future in futures:
          future.cancel()
        raise

  logger.info(
    "Finished export run",
    extra={
      LOG_KEY_GROUP_NAME: config.group_name,
      LOG_KEY_STREAM_LOG_COUNT: summary.exported_count,
      "streams": len(summary.outcomes),
      "failed_streams": len(summary.failed),
    },
  )
  return summary


def _export_stream(
  config: ExportConfig,
  source: LogSource,
  store: ArchiveStore,
  window: ExportWindow,
  stamp: str,
  outcome: StreamOutcome,
) -> None:
  name = outcome.stream_name
  logger.info(
    "Packaging log events",
    extra={LOG_KEY_GROUP_NAME: config.group_name, LOG_KEY_STREAM_NAME: name},
  )

  try:
    result = package(
      source,
      config.group_name,
      name,
      window,
      config.output_dir,
      inject_fields=config.inject_fields,
    )
  except ExportError as exc:
    outcome.result = exc.result
    raise

  outcome.result = result
  logger.info(
    "Successfully packaged log events to filesystem",
    extra={
      LOG_KEY_GROUP_NAME: config.group_name,
      LOG_KEY_STREAM_NAME: name,
      LOG_KEY_TEMPORARY_FILE_PATH: str(result.archive_path),
      LOG_KEY_STREAM_LOG_COUNT: result.event_count,
    },
  )

  if config.skip_empty and not result.has_events:
    logger.info(
      "Skipping upload of empty archive",
      extra={LOG_KEY_STREAM_NAME: name, LOG_KEY_TEMPORARY_FILE_PATH: str(result.archive_path)},
    )
    return

  key = archive_key(config.bucket_prefix, name, stamp)
  outcome.key = key
  try:
    store.upload(result.archive_path, config.bucket_name, key)
  except UploadError as exc:
    exc.key = exc.key or key
    raise
  outcome.uploaded = True

  logger.info(
    "Finished pushing log events to S3 bucket",
    extra={
      LOG_KEY_GROUP_NAME: config.group_name,
      LOG_KEY_STREAM_NAME: name,
      LOG_KEY_STREAM_LOG_COUNT: result.event_count,
      LOG_KEY_TEMPORARY_FILE_PATH: str(result.archive_path),
      LOG_KEY_S3_BUCKET_NAME: config.bucket_name,
      LOG_KEY_S3_BUCKET_KEY: key,
    },
  )

  if config.remove_uploaded:
    try:
      os.remove(result.archive_path)
    except OSError as exc:
      raise CleanupError(f"failed to remove uploaded archive {result.archive_path}: {exc}") from exc
