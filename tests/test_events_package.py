import csv
import gzip
from pathlib import Path
from typing import List, Optional, Union

import pytest

from sentinel_service import events as events_mod
from sentinel_service.archive import ArchiveWriter
from sentinel_service.errors import CloseError, EncodeError, FetchError, FlushError, SourceError
from sentinel_service.events import package
from sentinel_service.models import EventPage, ExportWindow, LogEvent, from_epoch_ms
from sentinel_service.source import LogSource

WINDOW = ExportWindow(start=1_700_000_000_000, end=1_700_003_600_000)


class ScriptedEventSource(LogSource):
  """
  Replays a fixed sequence of responses and records the token sent with each request.
  """

  def __init__(self, responses: List[Union[EventPage, Exception]]) -> None:
    self.responses = list(responses)
    self.tokens: List[Optional[str]] = []
    self.windows: List[tuple] = []

  def get_log_events(
    self,
    group: str,
    stream: str,
    start: int,
    end: int,
    next_token: Optional[str] = None,
  ) -> EventPage:
    self.tokens.append(next_token)
    self.windows.append((start, end))
    if not self.responses:
      raise AssertionError("exporter fetched more pages than the stream has")
    response = self.responses.pop(0)
    if isinstance(response, Exception):
      raise response
    return response


def _events(count: int, start: int = WINDOW.start, prefix: str = "line") -> List[LogEvent]:
  return [LogEvent(timestamp=start + i * 1000, message=f"{prefix} {i}") for i in range(count)]


def _read_records(path: Path) -> List[List[str]]:
  with gzip.open(path, "rt", encoding="utf-8", newline="") as f:
    return list(csv.reader(f, delimiter=" "))


def test_three_events_produce_three_records(tmp_path):
  source = ScriptedEventSource(
    [
      EventPage(events=_events(3), next_forward_token="f/1"),
      EventPage(events=[], next_forward_token="f/1"),
    ]
  )

  result = package(source, "/app/prod", "web", WINDOW, tmp_path)

  assert result.event_count == 3
  assert result.has_events is True
  assert result.archive_path == tmp_path / "web.gz"
  assert len(_read_records(result.archive_path)) == 3
  assert source.windows[0] == (WINDOW.start, WINDOW.end)


def test_empty_stream_still_creates_archive(tmp_path):
  source = ScriptedEventSource([EventPage(events=[], next_forward_token="f/0")])

  result = package(source, "/app/prod", "idle", WINDOW, tmp_path)

  assert result.event_count == 0
  assert result.has_events is False
  assert result.archive_path.exists()
  with gzip.open(result.archive_path, "rb") as f:
    assert f.read() == b""
  assert source.tokens == [None]


def test_first_returned_cursor_is_followed_exactly_once(tmp_path):
  # No cursor was sent on the first request, so nothing can be compared yet.
  source = ScriptedEventSource(
    [
      EventPage(events=_events(2), next_forward_token="f/a"),
      EventPage(events=_events(1, prefix="tail"), next_forward_token="f/a"),
    ]
  )

  result = package(source, "/app/prod", "web", WINDOW, tmp_path)

  assert source.tokens == [None, "f/a"]
  assert result.event_count == 3


def test_echoed_cursor_stops_even_when_page_had_events(tmp_path):
  source = ScriptedEventSource(
    [
      EventPage(events=_events(2), next_forward_token="f/1"),
      EventPage(events=_events(2), next_forward_token="f/2"),
      EventPage(events=_events(4), next_forward_token="f/2"),
    ]
  )

  result = package(source, "/app/prod", "web", WINDOW, tmp_path)

  assert source.tokens == [None, "f/1", "f/2"]
  assert result.event_count == 8
  assert len(_read_records(result.archive_path)) == 8


def test_event_count_is_sum_of_page_sizes(tmp_path):
  sizes = [5, 1, 7, 3]
  responses = [
    EventPage(events=_events(n), next_forward_token=f"f/{i}") for i, n in enumerate(sizes)
  ]
  responses.append(EventPage(events=[], next_forward_token="f/3"))
  source = ScriptedEventSource(responses)

  result = package(source, "/app/prod", "web", WINDOW, tmp_path)

  assert result.event_count == sum(sizes)
  assert source.tokens == [None, "f/0", "f/1", "f/2", "f/3"]


def test_empty_page_terminates_and_keeps_earlier_count(tmp_path):
  source = ScriptedEventSource(
    [
      EventPage(events=_events(2), next_forward_token="f/1"),
      EventPage(events=[], next_forward_token="f/2"),
    ]
  )

  result = package(source, "/app/prod", "web", WINDOW, tmp_path)

  assert result.event_count == 2
  assert result.has_events is True
  assert len(source.tokens) == 2


def test_missing_cursor_stops_pagination(tmp_path):
  source = ScriptedEventSource([EventPage(events=_events(2), next_forward_token=None)])

  result = package(source, "/app/prod", "web", WINDOW, tmp_path)

  assert result.event_count == 2
  assert source.tokens == [None]


def test_round_trip_preserves_timestamps_and_messages(tmp_path):
  events = [
    LogEvent(timestamp=1_700_000_000_123, message="GET /health 200"),
    LogEvent(timestamp=1_700_000_001_000, message='multi\nline "quoted" payload'),
    LogEvent(timestamp=1_700_000_002_007, message="plain"),
  ]
  source = ScriptedEventSource(
    [
      EventPage(events=events, next_forward_token="f/1"),
      EventPage(events=[], next_forward_token="f/1"),
    ]
  )

  result = package(source, "/app/prod", "web", WINDOW, tmp_path)
  records = _read_records(result.archive_path)

  assert len(records) == result.event_count
  assert records[0][0] == "2023-11-14T22:13:20.123Z"
  parsed = [r[0] for r in records]
  expected = [from_epoch_ms(e.timestamp).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z" for e in events]
  assert parsed == expected
  assert [r[1] for r in records] == [e.message for e in events]


def test_injected_fields_are_appended_to_every_record(tmp_path):
  source = ScriptedEventSource(
    [
      EventPage(events=_events(3), next_forward_token="f/1"),
      EventPage(events=[], next_forward_token="f/1"),
    ]
  )

  result = package(
    source,
    "/app/prod",
    "web",
    WINDOW,
    tmp_path,
    inject_fields=["env=prod", "svc=web"],
  )

  with gzip.open(result.archive_path, "rt", encoding="utf-8") as f:
    lines = f.read().splitlines()
  assert len(lines) == 3
  assert all(line.endswith(",env=prod,svc=web") for line in lines)


def test_stream_name_with_slashes_stays_inside_output_dir(tmp_path):
  source = ScriptedEventSource([EventPage(events=[], next_forward_token="f/0")])

  result = package(source, "/ecs/app", "web/task/1234", WINDOW, tmp_path / "out")

  assert result.archive_path.parent == tmp_path / "out"
  assert result.archive_path.name == "web%2Ftask%2F1234.gz"
  assert result.archive_path.exists()


def test_fetch_failure_carries_partial_result_and_closes_archive(tmp_path):
  source = ScriptedEventSource(
    [
      EventPage(events=_events(2), next_forward_token="f/1"),
      SourceError("ServiceUnavailableException"),
    ]
  )

  with pytest.raises(FetchError) as exc_info:
    package(source, "/app/prod", "web", WINDOW, tmp_path)

  partial = exc_info.value.result
  assert partial is not None
  assert partial.event_count == 2
  assert partial.archive_path.exists()
  assert isinstance(exc_info.value.__cause__, SourceError)
  # The partial archive was closed, so what was written can still be read back.
  assert len(_read_records(partial.archive_path)) == 2


def test_identifiers_must_be_non_empty(tmp_path):
  source = ScriptedEventSource([])

  with pytest.raises(ValueError):
    package(source, "", "web", WINDOW, tmp_path)
  with pytest.raises(ValueError):
    package(source, "/app/prod", "", WINDOW, tmp_path)
  assert source.tokens == []


class RecordingArchiveWriter(ArchiveWriter):
  instances: List["RecordingArchiveWriter"] = []

  def __init__(self, *args, **kwargs) -> None:
    super().__init__(*args, **kwargs)
    RecordingArchiveWriter.instances.append(self)


@pytest.fixture
def recorded_writers(monkeypatch):
  RecordingArchiveWriter.instances = []
  monkeypatch.setattr(events_mod, "ArchiveWriter", RecordingArchiveWriter)
  return RecordingArchiveWriter.instances


def _two_events_then_end() -> ScriptedEventSource:
  return ScriptedEventSource(
    [
      EventPage(events=_events(2), next_forward_token="f/1"),
      EventPage(events=[], next_forward_token="f/1"),
    ]
  )


def test_output_dir_that_is_a_file_raises_encode_error_with_empty_result(tmp_path):
  blocker = tmp_path / "archives"
  blocker.write_text("not a directory")
  source = ScriptedEventSource([])

  with pytest.raises(EncodeError) as exc_info:
    package(source, "/app/prod", "web", WINDOW, blocker)

  partial = exc_info.value.result
  assert partial is not None
  assert partial.event_count == 0
  assert partial.archive_path == blocker / "web.gz"
  assert isinstance(exc_info.value.__cause__, OSError)
  assert source.tokens == []


def test_close_failure_raises_close_error_with_partial_result(tmp_path, monkeypatch, recorded_writers):
  def failing_close(self):
    raise OSError("Input/output error")

  monkeypatch.setattr(gzip.GzipFile, "close", failing_close)

  with pytest.raises(CloseError) as exc_info:
    package(_two_events_then_end(), "/app/prod", "web", WINDOW, tmp_path)

  assert exc_info.value.result.event_count == 2
  assert exc_info.value.result.archive_path == tmp_path / "web.gz"
  assert [w._raw for w in recorded_writers] == [None]


def test_flush_failure_raises_flush_error_with_partial_result(tmp_path, monkeypatch, recorded_writers):
  def failing_flush(self, *args, **kwargs):
    raise OSError("No space left on device")

  monkeypatch.setattr(gzip.GzipFile, "flush", failing_flush)

  with pytest.raises(FlushError) as exc_info:
    package(_two_events_then_end(), "/app/prod", "web", WINDOW, tmp_path)

  assert exc_info.value.result.event_count == 2
  assert [w._raw for w in recorded_writers] == [None]


def test_encode_failure_raises_encode_error_with_partial_result(tmp_path):
  bad = LogEvent.model_construct(timestamp=WINDOW.start + 1, message="broken \ud800 surrogate")
  source = ScriptedEventSource(
    [EventPage.model_construct(events=[_events(1)[0], bad], next_forward_token="f/1")]
  )

  with pytest.raises(EncodeError) as exc_info:
    package(source, "/app/prod", "web", WINDOW, tmp_path)

  assert exc_info.value.result.event_count == 1
  assert exc_info.value.result.archive_path.exists()
  assert source.tokens == [None]
