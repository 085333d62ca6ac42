"""Configuration loader for gguf-pack.

This module handles loading configuration from multiple sources:
1. Default values (lowest priority)
2. User config file (~/.config/gguf-pack/config.toml)
3. Environment variables (GGUF_PACK_* prefix)
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Any, Optional

from gguf_pack.errors import ConfigError

from .schema import PackConfig

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

logger = logging.getLogger(__name__)

# Default paths
USER_CONFIG_DIR = Path.home() / ".config" / "gguf-pack"
USER_CONFIG_PATH = USER_CONFIG_DIR / "config.toml"
ENV_PREFIX = "GGUF_PACK_"

# Known section names (first level)
SECTIONS = {"logging", "output"}


def _parse_env_value(value: str) -> Any:
    """Parse an environment variable value to appropriate Python type."""
    if value.lower() in ("true", "yes", "on"):
        return True
    if value.lower() in ("false", "no", "off"):
        return False

    if value.lower() in ("none", "null", ""):
        return None

    return value


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries, with override taking precedence."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


class ConfigLoader:
    """Load configuration from multiple sources with priority handling."""

    def __init__(
        self,
        user_config_path: Optional[Path] = None,
        environ: Optional[dict[str, str]] = None,
    ):
        """Initialize the configuration loader.

        Args:
            user_config_path: Optional override for user config path
            environ: Optional environment mapping, defaults to os.environ
        """
        self.user_config_path = Path(user_config_path or USER_CONFIG_PATH)
        self.environ = os.environ if environ is None else environ

    def load(self) -> PackConfig:
        """Load configuration from all sources with priority handling.

        Returns:
            Merged PackConfig instance

        Raises:
            ConfigError: If a source is malformed or holds invalid values
        """
        config_dict: dict[str, Any] = {}

        if self.user_config_path.exists():
            config_dict = _deep_merge(config_dict, self._load_toml(self.user_config_path))
            logger.debug(f"Loaded user config from {self.user_config_path}")

        env_overrides = self._load_env_vars()
        if env_overrides:
            config_dict = _deep_merge(config_dict, env_overrides)
            logger.debug("Applied environment variable overrides")

        try:
            return PackConfig.from_dict(config_dict)
        except ValueError as e:
            raise ConfigError(f"invalid configuration: {e}") from e

    def _load_toml(self, path: Path) -> dict[str, Any]:
        """Load a TOML configuration file.

        Args:
            path: Path to the TOML file

        Returns:
            Parsed configuration dict
        """
        try:
            with open(path, "rb") as f:
                return tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"failed to parse config file {path}: {e}") from e

    def _load_env_vars(self) -> dict[str, Any]:
        """Load configuration from environment variables.

        Environment variables are prefixed with GGUF_PACK_ and use an
        underscore between section and key. For example:
        - GGUF_PACK_LOGGING_LEVEL -> logging.level
        - GGUF_PACK_OUTPUT_ATOMIC_WRITE -> output.atomic_write

        Returns:
            Configuration dictionary from environment variables
        """
        result: dict[str, Any] = {}

        for key, value in self.environ.items():
            if not key.startswith(ENV_PREFIX):
                continue

            parts = key[len(ENV_PREFIX) :].lower().split("_")
            if parts[0] not in SECTIONS or len(parts) < 2:
                logger.debug(f"Ignoring unknown environment variable {key}")
                continue

            nested = {parts[0]: {"_".join(parts[1:]): _parse_env_value(value)}}
            result = _deep_merge(result, nested)

        return result


def load_config(user_config_path: Optional[Path] = None) -> PackConfig:
    """Load gguf-pack configuration from all sources.

    This is the main entry point for loading configuration.

    Args:
        user_config_path: Optional override for user config path

    Returns:
        Merged PackConfig instance
    """
    return ConfigLoader(user_config_path).load()


def get_default_config() -> PackConfig:
    """Get a PackConfig with all default values."""
    return PackConfig()
