from __future__ import annotations

import argparse
import logging
import sys
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, NoReturn, Optional

from .config import ExportConfig, parse_duration
from .config_loader import load_config
from .discovery import discover
from .errors import ConfigError, SentinelError
from .events import package
from .logging_setup import setup_logging
from .models import ExportWindow, to_epoch_ms

COMMANDS = {"run", "discover", "package", "check-config"}

EXIT_OK = 0
EXIT_USAGE = 1
EXIT_FAILED = 2

logger = logging.getLogger("sentinel_service")


def main(argv: list[str] | None = None) -> NoReturn:
  argv = list(sys.argv[1:] if argv is None else argv)

  if not argv or argv[0] not in COMMANDS:
    print("Usage: python -m sentinel {run|discover|package|check-config}", file=sys.stderr)
    print("  run           - Export active streams and upload the archives to S3", file=sys.stderr)
    print("  discover      - List streams with activity in the discovery window", file=sys.stderr)
    print("  package       - Package one stream into a local archive (no upload)", file=sys.stderr)
    print("  check-config  - Validate configuration and report problems", file=sys.stderr)
    sys.exit(EXIT_USAGE)

  if argv[0] == "run":
    _run_export(argv[1:])
  elif argv[0] == "discover":
    _run_discover(argv[1:])
  elif argv[0] == "package":
    _run_package(argv[1:])
  elif argv[0] == "check-config":
    _run_check_config(argv[1:])


def _load(
  overrides: Dict[str, Optional[str]],
  project_root: str,
  require_upload: bool = True,
  require_output: bool = True,
) -> ExportConfig:
  try:
    return load_config(
      project_root=project_root,
      overrides=overrides,
      require_upload=require_upload,
      require_output=require_output,
    )
  except ConfigError as e:
    print(f"Error: {e}", file=sys.stderr)
    sys.exit(EXIT_USAGE)


def _connect(factory: Callable[[], Any]) -> Any:
  """Build an AWS adapter, exiting with a usage error if the client settings are unusable."""
  try:
    return factory()
  except ConfigError as e:
    print(f"Error: {e}", file=sys.stderr)
    sys.exit(EXIT_USAGE)


def _add_common(parser: argparse.ArgumentParser) -> None:
  parser.add_argument(
    "--project-root",
    default=".",
    help="Directory containing defaults.env (default: current directory)",
  )
  parser.add_argument("--group", help="Log group name (overrides CLOUDWATCH_LOGS_SENTINEL_GROUP_NAME)")
  parser.add_argument(
    "--log-level",
    choices=["debug", "info", "warning", "error"],
    help="Log level for JSON log lines",
  )


def _run_export(args: list[str]) -> None:
  """Run a full export: discover (or take --stream), package, upload."""
  parser = argparse.ArgumentParser(
    prog="sentinel run",
    description="Export CloudWatch log streams to S3 as gzip archives",
  )
  _add_common(parser)
  parser.add_argument(
    "--stream",
    action="append",
    default=[],
    help="Export this stream instead of discovering streams (repeatable)",
  )
  parser.add_argument("--output-dir", help="Directory for temporary archives")
  parser.add_argument("--workers", type=int, help="Number of streams exported in parallel")
  parser.add_argument("--skip-empty", action="store_true", help="Do not upload archives with no events")
  parser.add_argument(
    "--continue-on-error",
    action="store_true",
    help="Record failed streams and keep going instead of aborting the run",
  )

  parsed = parser.parse_args(args)
  config = _load(
    {
      "GROUP_NAME": parsed.group,
      "STREAM_NAMES": ",".join(parsed.stream) if parsed.stream else None,
      "TEMPORARY_DIRECTORY": parsed.output_dir,
      "MAX_WORKERS": str(parsed.workers) if parsed.workers is not None else None,
      "SKIP_EMPTY": "true" if parsed.skip_empty else None,
      "CONTINUE_ON_ERROR": "true" if parsed.continue_on_error else None,
      "LOG_LEVEL": parsed.log_level,
    },
    parsed.project_root,
  )
  setup_logging(config.log_level)

  from sentinel_client import CloudWatchLogSource, S3Transport

  from .runner import run_export

  started = time.monotonic()
  logger.info("Starting function")
  source = _connect(CloudWatchLogSource)
  store = _connect(S3Transport)

  try:
    summary = run_export(config, source, store)
  except SentinelError as e:
    logger.error("Export run failed: %s", e, exc_info=True)
    print(f"Error: {e}", file=sys.stderr)
    sys.exit(EXIT_FAILED)

  elapsed_ms = int((time.monotonic() - started) * 1000)
  print(
    f"Exported {summary.exported_count} event(s) from {len(summary.outcomes)} stream(s) in {elapsed_ms}ms"
  )
  if summary.failed:
    for outcome in summary.failed:
      print(f"  FAILED {outcome.stream_name}: {outcome.error}", file=sys.stderr)
    sys.exit(EXIT_FAILED)
  sys.exit(EXIT_OK)


def _run_discover(args: list[str]) -> None:
  """Print the streams that qualify for the configured discovery window."""
  parser = argparse.ArgumentParser(
    prog="sentinel discover",
    description="List log streams with events after the discovery start",
  )
  _add_common(parser)
  parser.add_argument("--since", help="Discovery start as a relative duration, e.g. '1h' or '30m'")

  parsed = parser.parse_args(args)
  config = _load(
    {"GROUP_NAME": parsed.group, "LOG_LEVEL": parsed.log_level},
    parsed.project_root,
    require_upload=False,
    require_output=False,
  )
  setup_logging(config.log_level)

  now = datetime.now(timezone.utc)
  try:
    offset = -abs(parse_duration(parsed.since)) if parsed.since else config.effective_discovery_start
  except ValueError as e:
    print(f"Error: {e}", file=sys.stderr)
    sys.exit(EXIT_USAGE)

  from sentinel_client import CloudWatchLogSource

  source = _connect(CloudWatchLogSource)
  try:
    streams = discover(
      source,
      config.group_name,
      to_epoch_ms(now + offset),
      config.discovery_strategy,
    )
  except SentinelError as e:
    print(f"Error: {e}", file=sys.stderr)
    sys.exit(EXIT_FAILED)

  for stream in streams:
    print(stream.name)
  sys.exit(EXIT_OK)


def _parse_window(
  config: ExportConfig,
  since: Optional[str],
  start: Optional[str],
  end: Optional[str],
) -> ExportWindow:
  """
  Resolve the window from CLI flags, falling back to the configured offsets.

  Supports:
  - Relative: --since "5m" (last 5 minutes), "1h", "30s"
  - Explicit: --start <epoch ms> --end <epoch ms>
  """
  now = datetime.now(timezone.utc)

  if since:
    return ExportWindow.from_offsets(now, -abs(parse_duration(since)), parse_duration("0"))

  if start or end:
    if not (start and end):
      raise ValueError("--start and --end must be given together")
    try:
      return ExportWindow(start=int(start), end=int(end))
    except ValueError:
      raise ValueError("--start and --end must be epoch milliseconds with start before end")

  return ExportWindow.from_offsets(now, config.start, config.end)


def _run_package(args: list[str]) -> None:
  """Package a single stream to a local archive without uploading it."""
  parser = argparse.ArgumentParser(
    prog="sentinel package",
    description="Package one log stream into a local gzip archive",
  )
  _add_common(parser)
  parser.add_argument("--stream", required=True, help="Log stream name")
  parser.add_argument("--output-dir", help="Directory for the archive")
  parser.add_argument("--since", help="Relative window ending now, e.g. '1h'")
  parser.add_argument("--start", help="Window start (epoch milliseconds)")
  parser.add_argument("--end", help="Window end (epoch milliseconds)")

  parsed = parser.parse_args(args)
  config = _load(
    {
      "GROUP_NAME": parsed.group,
      "TEMPORARY_DIRECTORY": parsed.output_dir,
      "LOG_LEVEL": parsed.log_level,
    },
    parsed.project_root,
    require_upload=False,
  )
  setup_logging(config.log_level)

  try:
    window = _parse_window(config, parsed.since, parsed.start, parsed.end)
  except ValueError as e:
    print(f"Error: {e}", file=sys.stderr)
    sys.exit(EXIT_USAGE)

  from sentinel_client import CloudWatchLogSource

  source = _connect(CloudWatchLogSource)
  try:
    result = package(
      source,
      config.group_name,
      parsed.stream,
      window,
      config.output_dir,
      inject_fields=config.inject_fields,
    )
  except SentinelError as e:
    print(f"Error: {e}", file=sys.stderr)
    sys.exit(EXIT_FAILED)

  print(f"{result.archive_path} ({result.event_count} event(s))")
  sys.exit(EXIT_OK)


def _run_check_config(args: list[str]) -> None:
  parser = argparse.ArgumentParser(
    prog="sentinel check-config",
    description="Validate export configuration",
  )
  parser.add_argument("--project-root", default=".", help="Directory containing defaults.env")
  parsed = parser.parse_args(args)

  try:
    config = load_config(project_root=parsed.project_root)
  except ConfigError as e:
    print("Configuration is invalid:", file=sys.stderr)
    for problem in e.problems:
      print(f"  - {problem}", file=sys.stderr)
    sys.exit(EXIT_USAGE)

  mode = "explicit streams: " + ", ".join(config.stream_names) if config.stream_names else "discovery"
  print("Configuration OK")
  print(f"  Group: {config.group_name}")
  print(f"  Mode: {mode} ({config.discovery_strategy.value})")
  print(f"  Destination: s3://{config.bucket_name}/{config.bucket_prefix.strip('/')}")
  sys.exit(EXIT_OK)


if __name__ == "__main__":
  main()
