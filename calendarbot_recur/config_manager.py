"""Configuration management for calendarbot_recur from environment variables."""

from __future__ import annotations

import dataclasses
import logging
import os
from pathlib import Path
from typing import Any

from .config_loader import Config, load_config

logger = logging.getLogger(__name__)

# Environment variable -> (config key, is_int)
ENV_KEYS: dict[str, tuple[str, bool]] = {
    "CALENDARBOT_RECUR_CACHE_CAPACITY": ("cache_capacity", True),
    "CALENDARBOT_RECUR_CACHE_STRIDE": ("cache_stride", True),
    "CALENDARBOT_RECUR_MAX_OCCURRENCES": ("max_occurrences", True),
    "CALENDARBOT_RECUR_UID_DOMAIN": ("uid_domain", False),
    "CALENDARBOT_DEFAULT_TIMEZONE": ("default_timezone", False),
    "CALENDARBOT_LOG_LEVEL": ("log_level", False),
}


class ConfigManager:
    """Manages calendarbot_recur configuration from files, environment variables and .env files."""

    def __init__(self, env_file_path: Path | None = None):
        """Initialize configuration manager.

        Args:
            env_file_path: Optional path to .env file (defaults to .env in current directory)
        """
        self.env_file_path = env_file_path or Path.cwd() / ".env"

    def load_env_file(self) -> list[str]:
        """Load .env file and set environment variables.

        Only sets variables that are not already in the environment to avoid
        surprising overrides of user's environment.

        Returns:
            List of environment variable keys that were loaded from .env file
        """
        if not self.env_file_path.exists():
            logger.debug("No .env file found at %s", self.env_file_path)
            return []

        set_keys = []
        try:
            content = self.env_file_path.read_text(encoding="utf-8")
        except OSError:
            logger.debug("Failed to read .env file (continuing): %s", self.env_file_path, exc_info=True)
            return []

        for raw_line in content.splitlines():
            line = raw_line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, val = line.split("=", 1)
            key = key.strip()
            val = val.strip().strip('"').strip("'")
            if key and key not in os.environ:
                os.environ[key] = val
                set_keys.append(key)

        if set_keys:
            logger.debug("Loaded .env defaults for keys: %s", ", ".join(set_keys))
        return set_keys

    def build_config_from_env(self) -> dict[str, Any]:
        """Build configuration dictionary from environment variables.

        Recognizes the variables listed in ENV_KEYS; integer values that do not
        parse are ignored with a warning.

        Returns:
            Configuration dictionary compatible with Config.from_dict
        """
        cfg: dict[str, Any] = {}
        for env_name, (key, is_int) in ENV_KEYS.items():
            raw = os.environ.get(env_name)
            if not raw:
                continue
            if is_int:
                try:
                    cfg[key] = int(raw)
                except ValueError:
                    logger.warning("Invalid %s=%r; ignoring", env_name, raw)
                    continue
            else:
                cfg[key] = raw
        return cfg

    def load_full_config(self, config_path: str | None = None) -> Config:
        """Load the config file, then overlay .env and environment values.

        Args:
            config_path: Optional YAML/JSON config file path

        Returns:
            Merged Config
        """
        base = load_config(config_path)
        self.load_env_file()
        overrides = self.build_config_from_env()
        if not overrides:
            return base
        merged = {**dataclasses.asdict(base), **overrides}
        logger.debug("Environment overrides applied: %s", sorted(overrides))
        return Config.from_dict(merged)


def get_config_value(config: Any, key: str, default: Any = None) -> Any:
    """Get configuration value supporting both dict and dataclass-like objects.

    Args:
        config: Configuration object (dict or object with attributes)
        key: Configuration key to retrieve
        default: Default value if key not found

    Returns:
        Configuration value or default
    """
    if isinstance(config, dict):
        return config.get(key, default)
    return getattr(config, key, default)
