from __future__ import annotations

import json
import logging
import sys
import traceback
from datetime import datetime, timezone
from typing import IO, Any, Dict, Optional

# Structured attribute keys attached to log lines via `extra=`.
LOG_KEY_GROUP_NAME = "cloudwatch_logs_group_name"
LOG_KEY_STREAM_NAME = "cloudwatch_logs_stream_name"
LOG_KEY_STREAM_START_TIME = "cloudwatch_logs_stream_start_time"
LOG_KEY_STREAM_END_TIME = "cloudwatch_logs_stream_end_time"
LOG_KEY_STREAM_LOG_COUNT = "cloudwatch_logs_stream_log_count"
LOG_KEY_TEMPORARY_FILE_PATH = "temporary_file_path"
LOG_KEY_S3_BUCKET_NAME = "s3_bucket_name"
LOG_KEY_S3_BUCKET_KEY = "s3_bucket_key"

# Attributes every LogRecord carries; anything else came from `extra=`.
_RESERVED = set(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
  """
  Render each record as a single JSON object.
  """

  def format(self, record: logging.LogRecord) -> str:
    payload: Dict[str, Any] = {
      "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
      "level": record.levelname,
      "logger": record.name,
      "msg": record.getMessage(),
    }

    for key, value in record.__dict__.items():
      if key in _RESERVED or key.startswith("_"):
        continue
      payload[key] = value

    if record.exc_info:
      _type, _value, _tb = record.exc_info
      if _type is not None:
        payload["exception_type"] = _type.__name__
        payload["stacktrace"] = "".join(traceback.format_exception(_type, _value, _tb))

    return json.dumps(payload, default=str)


class _SentinelHandler(logging.StreamHandler):
  """
  Stdout handler used by the CLI; marked so it is never attached twice.
  """


def setup_logging(
  level: str = "info",
  logger: Optional[logging.Logger] = None,
  stream: Optional[IO[str]] = None,
) -> logging.Logger:
  """
  Attach a JSON stdout handler to `logger` (the root logger by default).

  Calling this again only updates the level of the existing handler.
  """
  target_logger = logger or logging.getLogger()
  numeric_level = getattr(logging, level.upper(), logging.INFO)
  target_logger.setLevel(numeric_level)

  for existing in target_logger.handlers:
    if isinstance(existing, _SentinelHandler):
      existing.setLevel(numeric_level)
      return target_logger

  handler = _SentinelHandler(stream or sys.stdout)
  handler.setFormatter(JsonFormatter())
  handler.setLevel(numeric_level)
  target_logger.addHandler(handler)
  return target_logger
