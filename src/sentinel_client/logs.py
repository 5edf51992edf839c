from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from botocore.exceptions import BotoCoreError, ClientError

from sentinel_service.errors import SourceError
from sentinel_service.models import EventPage, LogEvent, LogStream, StreamPage
from sentinel_service.source import LogSource

from .config import ClientConfig, create_client

_logger = logging.getLogger("sentinel_client.logs")


class CloudWatchLogSource(LogSource):
  """
  LogSource backed by the CloudWatch Logs API via boto3.
  """

  def __init__(self, client: Any = None, config: Optional[ClientConfig] = None) -> None:
    if client is None:
      client = create_client("logs", config)
    self._client = client

  def describe_log_streams(self, group: str, next_token: Optional[str] = None) -> StreamPage:
    params: Dict[str, Any] = {
      "logGroupName": group,
      "orderBy": "LastEventTime",
      "descending": True,
    }
    if next_token:
      params["nextToken"] = next_token

    try:
      resp = self._client.describe_log_streams(**params)
    except (ClientError, BotoCoreError) as exc:
      raise SourceError(f"describe_log_streams failed: {exc}") from exc

    streams = [
      LogStream(
        name=item["logStreamName"],
        last_event_time=item.get("lastEventTimestamp"),
        first_event_time=item.get("firstEventTimestamp"),
        creation_time=item.get("creationTime"),
      )
      for item in resp.get("logStreams", [])
    ]
    return StreamPage(streams=streams, next_token=resp.get("nextToken"))

  def get_log_events(
    self,
    group: str,
    stream: str,
    start: int,
    end: int,
    next_token: Optional[str] = None,
  ) -> EventPage:
    params: Dict[str, Any] = {
      "logGroupName": group,
      "logStreamName": stream,
      "startTime": start,
      "endTime": end,
      "startFromHead": True,
    }
    if next_token:
      params["nextToken"] = next_token

    try:
      resp = self._client.get_log_events(**params)
    except (ClientError, BotoCoreError) as exc:
      raise SourceError(f"get_log_events failed: {exc}") from exc

    events = [
      LogEvent(
        timestamp=item["timestamp"],
        message=item.get("message", ""),
        ingestion_time=item.get("ingestionTime"),
      )
      for item in resp.get("events", [])
    ]
    _logger.debug("Fetched %s event(s) from %s/%s", len(events), group, stream)
    return EventPage(events=events, next_forward_token=resp.get("nextForwardToken"))
