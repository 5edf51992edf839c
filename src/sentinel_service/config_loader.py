"""
Configuration loading for the log export run.

Priority (highest to lowest):
1. Explicit overrides (e.g. CLI flags)
2. Environment variables (CLOUDWATCH_LOGS_SENTINEL_* prefix)
3. defaults.env in the project directory
4. Default values

Usage:
    >>> from sentinel_service.config_loader import load_config
    >>> config = load_config(project_root=".")
    >>> print(config.group_name)
"""

import os
from pathlib import Path
from typing import Dict, Mapping, Optional

from dotenv import dotenv_values

from .config import ENV_PREFIX, ExportConfig
from .errors import ConfigError

DEFAULTS_FILENAME = "defaults.env"


class ConfigLoader:
    """Loads and merges configuration from multiple sources."""

    @classmethod
    def load(
        cls,
        project_root: str = ".",
        overrides: Optional[Mapping[str, Optional[str]]] = None,
        environ: Optional[Mapping[str, str]] = None,
        require_upload: bool = True,
        require_output: bool = True,
    ) -> ExportConfig:
        """
        Load configuration with hierarchical merging.

        Args:
            project_root: Directory that may contain defaults.env
            overrides: Values that win over every other source. Keys may be
                       given with or without the CLOUDWATCH_LOGS_SENTINEL_ prefix;
                       None values are ignored.
            environ: Environment to read (defaults to os.environ)
            require_upload: Whether bucket settings must be present
            require_output: Whether a temporary directory must be present

        Returns:
            Validated ExportConfig

        Raises:
            ConfigError: If configuration is missing values or cannot be parsed
        """
        values = cls._load_env_file(Path(project_root) / DEFAULTS_FILENAME)
        values = cls._merge(values, cls._prefixed(os.environ if environ is None else environ))
        if overrides:
            values = cls._merge(values, cls._normalize_overrides(overrides))

        try:
            config = ExportConfig.from_mapping(values)
        except ValueError as e:
            raise ConfigError([str(e)]) from e

        problems = config.validate(require_upload=require_upload, require_output=require_output)
        if problems:
            raise ConfigError(problems)

        return config

    @staticmethod
    def _load_env_file(filepath: Path) -> Dict[str, str]:
        """Load KEY=VALUE pairs from a dotenv file, if it exists."""
        if not filepath.exists():
            return {}
        try:
            raw = dotenv_values(filepath)
        except OSError as e:
            raise ConfigError([f"Error reading {filepath}: {e}"]) from e
        return {k: v for k, v in raw.items() if v is not None}

    @staticmethod
    def _prefixed(environ: Mapping[str, str]) -> Dict[str, str]:
        return {k: v for k, v in environ.items() if k.startswith(ENV_PREFIX)}

    @staticmethod
    def _normalize_overrides(overrides: Mapping[str, Optional[str]]) -> Dict[str, str]:
        result: Dict[str, str] = {}
        for key, value in overrides.items():
            if value is None:
                continue
            name = key.upper()
            if not name.startswith(ENV_PREFIX):
                name = ENV_PREFIX + name
            result[name] = value
        return result

    @staticmethod
    def _merge(base: Dict[str, str], overrides: Mapping[str, str]) -> Dict[str, str]:
        result = dict(base)
        result.update(overrides)
        return result


def load_config(
    project_root: str = ".",
    overrides: Optional[Mapping[str, Optional[str]]] = None,
    require_upload: bool = True,
    require_output: bool = True,
) -> ExportConfig:
    """
    Convenience function to load configuration.

    Args:
        project_root: Directory that may contain defaults.env
        overrides: Highest-priority values, e.g. from CLI flags
        require_upload: Whether bucket settings must be present
        require_output: Whether a temporary directory must be present

    Returns:
        Loaded and validated ExportConfig
    """
    return ConfigLoader.load(
        project_root=project_root,
        overrides=overrides,
        require_upload=require_upload,
        require_output=require_output,
    )

