"""Config Loader - Loads runtime configuration for the REST processor.

Handles loading the YAML config file with environment variable substitution
and expanding ${name} property references in endpoints.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml

from rest_processor.models import RuntimeConfig


class ConfigError(Exception):
    """Raised when configuration loading fails."""


_REFERENCE = re.compile(r"\$\{([^}]+)\}")


def load_runtime_config(config_path: Path) -> RuntimeConfig:
    """Load runtime configuration from YAML with ${ENV_VAR} substitution."""
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file: {e}") from e

    # An empty file means all defaults
    if raw_config is None:
        raw_config = {}
    if not isinstance(raw_config, dict):
        raise ConfigError("Config file must be a YAML mapping")

    raw_config = _substitute_env_vars(raw_config)

    try:
        return RuntimeConfig.model_validate(raw_config)
    except Exception as e:
        raise ConfigError(f"Invalid config structure: {e}") from e


def expand_properties(endpoint: str, properties: dict[str, str]) -> str:
    """Replace ${name} references in endpoint with values from properties.

    Unknown names are left in place; the executor rejects such endpoints.
    """

    def replacer(match: re.Match) -> str:
        return properties.get(match.group(1), match.group(0))

    return _REFERENCE.sub(replacer, endpoint)


def _substitute_env_vars(data: Any) -> Any:
    """Recursively substitute ${ENV_VAR} patterns in strings within data."""
    if isinstance(data, str):
        return _substitute_string(data)
    elif isinstance(data, dict):
        return {k: _substitute_env_vars(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_substitute_env_vars(item) for item in data]
    return data


def _substitute_string(s: str) -> str:
    """Substitute ${ENV_VAR} patterns. Raises ConfigError if env var is not set."""

    def replacer(match: re.Match) -> str:
        var_name = match.group(1)
        value = os.environ.get(var_name)
        if value is None:
            raise ConfigError(f"Environment variable '{var_name}' is not set")
        return value

    return _REFERENCE.sub(replacer, s)
