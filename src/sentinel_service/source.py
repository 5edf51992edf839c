from __future__ import annotations

from typing import Optional

from .models import EventPage, StreamPage


class LogSource:
  """
  Read-only view of the log service used by discovery and export.

  The concrete AWS implementation lives in sentinel_client. Tests subclass
  this with in-memory fakes. Implementations raise SourceError on failure and
  leave retries to their transport.
  """

  def describe_log_streams(
    self,
    group: str,
    next_token: Optional[str] = None,
  ) -> StreamPage:  # pragma: no cover - integration concern
    """
    Return one page of streams ordered by last event time, most recent first.
    """
    raise NotImplementedError

  def get_log_events(
    self,
    group: str,
    stream: str,
    start: int,
    end: int,
    next_token: Optional[str] = None,
  ) -> EventPage:  # pragma: no cover - integration concern
    """
    Return one page of events in [start, end), reading forward from the oldest.
    """
    raise NotImplementedError
