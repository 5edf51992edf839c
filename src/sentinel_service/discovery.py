from __future__ import annotations

import enum
import logging
from typing import List, Optional

from .errors import DiscoveryError, SourceError
from .models import LogStream
from .source import LogSource

_logger = logging.getLogger("sentinel_service.discovery")


class DiscoveryStrategy(str, enum.Enum):
  """
  How the stream listing walk decides it has seen every qualifying stream.

  EARLY_EXIT assumes the listing is sorted by last event time, descending:
  the first stream older than the window start ends the walk.
  FULL_SCAN only stops once a whole page has nothing qualifying, which
  tolerates a listing that is not perfectly sorted.
  """

  EARLY_EXIT = "early-exit"
  FULL_SCAN = "full-scan"


def discover(
  source: LogSource,
  group: str,
  window_start: int,
  strategy: DiscoveryStrategy = DiscoveryStrategy.EARLY_EXIT,
) -> List[LogStream]:
  """
  Return the streams in `group` with activity at or after `window_start`,
  most recently active first.
  """
  if not group:
    raise ValueError("group must be a non-empty string")

  strategy = DiscoveryStrategy(strategy)
  streams: List[LogStream] = []
  token: Optional[str] = None
  pages = 0

  while True:
    try:
      page = source.describe_log_streams(group, next_token=token)
    except SourceError as exc:
      raise DiscoveryError(f"failed to describe log streams for {group!r}: {exc}", streams) from exc
    pages += 1

    if strategy is DiscoveryStrategy.EARLY_EXIT:
      exhausted = False
      for stream in page.streams:
        if stream.last_event_time is None:
          continue
        if stream.last_event_time < window_start:
          exhausted = True
          break
        streams.append(stream)
      if exhausted:
        break
    else:
      qualifying = [
        s for s in page.streams
        if s.last_event_time is not None and s.last_event_time >= window_start
      ]
      if not qualifying:
        break
      streams.extend(qualifying)

    if not page.next_token:
      break
    token = page.next_token

  _logger.debug(
    "Discovered %s stream(s) in %s after %s page(s) (%s)",
    len(streams),
    group,
    pages,
    strategy.value,
  )
  return streams
