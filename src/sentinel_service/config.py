from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import List, Mapping, Optional, Tuple

from .discovery import DiscoveryStrategy

ENV_PREFIX = "CLOUDWATCH_LOGS_SENTINEL_"

DEFAULT_START = "-1h"
DEFAULT_END = "0s"
DEFAULT_LOG_LEVEL = "info"
MAX_WORKERS_LIMIT = 32

VALID_LOG_LEVELS = ("debug", "info", "warning", "error")

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|us|µs|ns|s|m|h|d)")
_UNIT_SECONDS = {
  "ns": 1e-9,
  "us": 1e-6,
  "µs": 1e-6,
  "ms": 1e-3,
  "s": 1.0,
  "m": 60.0,
  "h": 3600.0,
  "d": 86400.0,
}


def parse_duration(raw: str) -> timedelta:
  """
  Parse a signed duration such as "-1h", "90m", "-1h30m", "500ms" or "0".

  Bare integers are read as seconds.
  """
  text = (raw or "").strip().lower()
  if not text:
    raise ValueError("empty duration")

  sign = 1
  if text[0] in "+-":
    sign = -1 if text[0] == "-" else 1
    text = text[1:]

  if text.isdigit():
    return timedelta(seconds=sign * int(text))

  pos = 0
  seconds = 0.0
  for match in _DURATION_PART.finditer(text):
    if match.start() != pos:
      break
    seconds += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
    pos = match.end()

  if pos == 0 or pos != len(text):
    raise ValueError(f"Invalid duration: {raw!r}. Use a format like '-1h', '30m', '-1h30m' or '45s'")

  return timedelta(seconds=sign * seconds)


def split_list(raw: Optional[str]) -> Tuple[str, ...]:
  if not raw:
    return ()
  return tuple(part.strip() for part in raw.split(",") if part.strip())


def parse_bool(raw: Optional[str], default: bool = False) -> bool:
  if raw is None or not raw.strip():
    return default
  value = raw.strip().lower()
  if value in ("1", "true", "yes", "on"):
    return True
  if value in ("0", "false", "no", "off"):
    return False
  raise ValueError(f"Invalid boolean value: {raw!r}")


@dataclass(frozen=True)
class ExportConfig:
  """
  Settings for one export run.

  Offsets are relative to the moment the run starts, so "-1h" / "0s"
  exports the last hour.
  """

  group_name: str = ""
  bucket_name: str = ""
  bucket_prefix: str = ""
  temporary_directory: str = ""
  start: timedelta = field(default_factory=lambda: parse_duration(DEFAULT_START))
  end: timedelta = field(default_factory=lambda: parse_duration(DEFAULT_END))
  discovery_start: Optional[timedelta] = None
  stream_names: Tuple[str, ...] = ()
  inject_fields: Tuple[str, ...] = ()
  discovery_strategy: DiscoveryStrategy = DiscoveryStrategy.EARLY_EXIT
  max_workers: int = 1
  skip_empty: bool = False
  continue_on_error: bool = False
  remove_uploaded: bool = False
  log_level: str = DEFAULT_LOG_LEVEL

  @property
  def effective_discovery_start(self) -> timedelta:
    return self.start if self.discovery_start is None else self.discovery_start

  @property
  def output_dir(self) -> Path:
    return Path(self.temporary_directory)

  def validate(self, require_upload: bool = True, require_output: bool = True) -> List[str]:
    """
    Return a list of problems; an empty list means the configuration is usable.
    """
    problems: List[str] = []

    if not self.group_name:
      problems.append(f"{ENV_PREFIX}GROUP_NAME is a required variable")

    if self.effective_discovery_start > self.start:
      problems.append(
        f"{ENV_PREFIX}DISCOVERY_START should not be later than {ENV_PREFIX}START"
      )

    if self.start >= self.end:
      problems.append(f"{ENV_PREFIX}START should be a duration before {ENV_PREFIX}END")

    if require_upload:
      if not self.bucket_name:
        problems.append(f"{ENV_PREFIX}BUCKET_NAME is a required variable")
      if not self.bucket_prefix:
        problems.append(f"{ENV_PREFIX}BUCKET_PREFIX is a required variable")

    if require_output and not self.temporary_directory:
      problems.append(f"{ENV_PREFIX}TEMPORARY_DIRECTORY is a required variable")

    if not 1 <= self.max_workers <= MAX_WORKERS_LIMIT:
      problems.append(f"{ENV_PREFIX}MAX_WORKERS must be between 1 and {MAX_WORKERS_LIMIT}")

    if self.log_level not in VALID_LOG_LEVELS:
      problems.append(
        f"Invalid {ENV_PREFIX}LOG_LEVEL: {self.log_level}. Must be one of: {', '.join(VALID_LOG_LEVELS)}"
      )

    return problems

  @classmethod
  def from_mapping(cls, values: Mapping[str, Optional[str]]) -> "ExportConfig":
    """
    Build a config from CLOUDWATCH_LOGS_SENTINEL_* keys.

    Raises ValueError when a value cannot be parsed.
    """

    def get(name: str) -> Optional[str]:
      value = values.get(ENV_PREFIX + name)
      if value is None:
        return None
      value = value.strip()
      return value or None

    discovery_raw = get("DISCOVERY_START")
    workers_raw = get("MAX_WORKERS")
    try:
      max_workers = int(workers_raw) if workers_raw else 1
    except ValueError:
      raise ValueError(f"Invalid value for {ENV_PREFIX}MAX_WORKERS: must be an integer")

    strategy_raw = get("DISCOVERY_STRATEGY") or DiscoveryStrategy.EARLY_EXIT.value
    try:
      strategy = DiscoveryStrategy(strategy_raw.lower())
    except ValueError:
      choices = ", ".join(s.value for s in DiscoveryStrategy)
      raise ValueError(f"Invalid {ENV_PREFIX}DISCOVERY_STRATEGY: {strategy_raw}. Must be one of: {choices}")

    return cls(
      group_name=get("GROUP_NAME") or "",
      bucket_name=get("BUCKET_NAME") or "",
      bucket_prefix=get("BUCKET_PREFIX") or "",
      temporary_directory=get("TEMPORARY_DIRECTORY") or "",
      start=parse_duration(get("START") or DEFAULT_START),
      end=parse_duration(get("END") or DEFAULT_END),
      discovery_start=parse_duration(discovery_raw) if discovery_raw else None,
      stream_names=split_list(get("STREAM_NAMES")),
      inject_fields=split_list(get("INJECT_FIELDS")),
      discovery_strategy=strategy,
      max_workers=max_workers,
      skip_empty=parse_bool(get("SKIP_EMPTY")),
      continue_on_error=parse_bool(get("CONTINUE_ON_ERROR")),
      remove_uploaded=parse_bool(get("REMOVE_UPLOADED")),
      log_level=(get("LOG_LEVEL") or DEFAULT_LOG_LEVEL).lower(),
    )
