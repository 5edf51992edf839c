from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import urlparse

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError

from sentinel_service.errors import ConfigError

DEFAULT_MAX_ATTEMPTS = 3


@dataclass(frozen=True)
class ClientConfig:
  """
  Settings for the AWS clients used by the exporter.

  Credentials are never configured here; boto3 resolves them through its
  default provider chain.
  """

  region_name: Optional[str] = None
  endpoint_url: Optional[str] = None
  max_attempts: int = DEFAULT_MAX_ATTEMPTS

  @classmethod
  def from_env(cls) -> "ClientConfig":
    """
    Load configuration from environment variables.

    Optional:
      - AWS_REGION or AWS_DEFAULT_REGION
      - CLOUDWATCH_LOGS_SENTINEL_ENDPOINT_URL (e.g. a local stack)
      - CLOUDWATCH_LOGS_SENTINEL_MAX_ATTEMPTS (default: 3)
    """
    return cls.from_params_or_env()

  @classmethod
  def from_params_or_env(
    cls,
    region_name: Optional[str] = None,
    endpoint_url: Optional[str] = None,
    max_attempts: Optional[int] = None,
  ) -> "ClientConfig":
    """
    Build configuration from explicit parameters, falling back to environment variables.
    """
    region = region_name or os.getenv("AWS_REGION") or os.getenv("AWS_DEFAULT_REGION")

    url = endpoint_url or os.getenv("CLOUDWATCH_LOGS_SENTINEL_ENDPOINT_URL") or None
    if url:
      _validate_endpoint_url(url)

    if max_attempts is None:
      raw = os.getenv("CLOUDWATCH_LOGS_SENTINEL_MAX_ATTEMPTS")
      try:
        max_attempts = int(raw) if raw else DEFAULT_MAX_ATTEMPTS
      except ValueError:
        raise ValueError("Invalid CLOUDWATCH_LOGS_SENTINEL_MAX_ATTEMPTS: must be an integer")
    if max_attempts < 1:
      raise ValueError("CLOUDWATCH_LOGS_SENTINEL_MAX_ATTEMPTS must be at least 1")

    return cls(region_name=region, endpoint_url=url, max_attempts=max_attempts)

  def botocore_config(self) -> Config:
    # Retries belong to the transport; the exporter never retries itself.
    return Config(
      region_name=self.region_name,
      retries={"max_attempts": self.max_attempts, "mode": "standard"},
    )


def _validate_endpoint_url(url: str) -> None:
  parsed = urlparse(url)
  if parsed.scheme not in ("http", "https") or not parsed.netloc:
    raise ValueError(
      f"Invalid CLOUDWATCH_LOGS_SENTINEL_ENDPOINT_URL '{url}'. "
      "Expected an http(s) URL like http://localhost:4566."
    )


def create_client(service_name: str, config: Optional[ClientConfig] = None) -> Any:
  """
  Build a boto3 client for `service_name` from `config` (or the environment).

  Raises ConfigError when the client settings are invalid or botocore cannot
  build a client from them (e.g. no region configured).
  """
  try:
    config = config or ClientConfig.from_env()
    return boto3.client(
      service_name,
      endpoint_url=config.endpoint_url,
      config=config.botocore_config(),
    )
  except (ValueError, BotoCoreError) as exc:
    raise ConfigError([f"Cannot create {service_name} client: {exc}"]) from exc
