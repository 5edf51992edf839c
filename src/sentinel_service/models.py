from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class LogStream(BaseModel):
  """
  Snapshot of one stream inside a log group, as returned by discovery.
  """

  name: str
  last_event_time: Optional[int] = Field(
    default=None,
    description="Epoch milliseconds of the most recent event; absent if the stream never received one",
  )

  # Informational only; nothing in the pipeline depends on these.
  first_event_time: Optional[int] = None
  creation_time: Optional[int] = None


class LogEvent(BaseModel):
  timestamp: int = Field(..., description="Epoch milliseconds when the event occurred")
  message: str
  ingestion_time: Optional[int] = None


class StreamPage(BaseModel):
  """
  One page of the stream listing, ordered by last event time descending.
  """

  streams: List[LogStream] = Field(default_factory=list)
  next_token: Optional[str] = None


class EventPage(BaseModel):
  """
  One page of events read forward in time.

  The source echoes the caller's token in next_forward_token once the end of
  the stream has been reached.
  """

  events: List[LogEvent] = Field(default_factory=list)
  next_forward_token: Optional[str] = None


class ExportWindow(BaseModel):
  """
  Half-open export window [start, end) in epoch milliseconds.
  """

  start: int
  end: int

  @model_validator(mode="after")
  def _check_order(self) -> "ExportWindow":
    if self.start >= self.end:
      raise ValueError(f"window start {self.start} must be before end {self.end}")
    return self

  @classmethod
  def from_offsets(cls, now: datetime, start: timedelta, end: timedelta) -> "ExportWindow":
    return cls(start=to_epoch_ms(now + start), end=to_epoch_ms(now + end))


class PackageResult(BaseModel):
  """
  Outcome of packaging one stream. The archive exists on disk even when no
  events were written; the caller decides whether to upload or discard it.
  """

  archive_path: Path
  event_count: int = Field(default=0, ge=0)

  @property
  def has_events(self) -> bool:
    return self.event_count > 0


def to_epoch_ms(value: datetime) -> int:
  if value.tzinfo is None:
    value = value.replace(tzinfo=timezone.utc)
  delta = value - _EPOCH
  return (delta.days * 86_400 + delta.seconds) * 1000 + delta.microseconds // 1000


def from_epoch_ms(value: int) -> datetime:
  return _EPOCH + timedelta(milliseconds=value)


def format_timestamp(value: int) -> str:
  """
  Render epoch milliseconds as an ISO-8601 UTC timestamp with millisecond
  precision, e.g. 2024-01-02T03:04:05.006Z.
  """
  moment = from_epoch_ms(value)
  return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"
