from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from pydantic import ValidationError

from sentinel_service.models import (
  ExportWindow,
  LogEvent,
  PackageResult,
  format_timestamp,
  from_epoch_ms,
  to_epoch_ms,
)


def test_format_timestamp_is_utc_with_millisecond_precision():
  assert format_timestamp(0) == "1970-01-01T00:00:00.000Z"
  assert format_timestamp(1_700_000_000_123) == "2023-11-14T22:13:20.123Z"
  assert format_timestamp(1_700_000_000_005) == "2023-11-14T22:13:20.005Z"


def test_epoch_conversion_round_trips():
  moment = datetime(2024, 2, 29, 12, 30, 15, 250_000, tzinfo=timezone.utc)
  ms = to_epoch_ms(moment)
  assert ms == 1_709_209_815_250
  assert from_epoch_ms(ms) == moment


def test_naive_datetimes_are_treated_as_utc():
  assert to_epoch_ms(datetime(1970, 1, 1, 0, 0, 1)) == 1000


def test_window_requires_start_before_end():
  with pytest.raises(ValidationError):
    ExportWindow(start=10, end=10)
  with pytest.raises(ValidationError):
    ExportWindow(start=11, end=10)


def test_window_from_offsets():
  now = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
  window = ExportWindow.from_offsets(now, timedelta(hours=-1), timedelta(0))
  assert window.end - window.start == 3_600_000
  assert window.end == to_epoch_ms(now)


def test_has_events_tracks_event_count():
  assert PackageResult(archive_path=Path("x.gz")).has_events is False
  assert PackageResult(archive_path=Path("x.gz"), event_count=1).has_events is True
  with pytest.raises(ValidationError):
    PackageResult(archive_path=Path("x.gz"), event_count=-1)


def test_log_event_requires_timestamp_and_message():
  with pytest.raises(ValidationError):
    LogEvent(message="no timestamp")  # type: ignore[call-arg]
