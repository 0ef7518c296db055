"""calendarbot_recur.config_loader

Config loader for calendarbot_recur.

- Reads YAML (PyYAML); JSON documents load too since YAML is a superset.
- Exposes a typed dataclass `Config` and a `load_config()` helper that accepts
  an optional path override.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from .occurrence_cache import DEFAULT_CACHE_CAPACITY, DEFAULT_CACHE_STRIDE
from .series_editor import DEFAULT_UID_DOMAIN
from .timezone_utils import DEFAULT_TIMEZONE

logger = logging.getLogger(__name__)


@dataclass
class Config:
    """Typed configuration for calendarbot_recur.

    Fields:
        cache_capacity: entries kept in each series' occurrence cache (1..1000)
        cache_stride: sequence positions between cached entries (1..1000)
        max_occurrences: instances materialized per expansion query
        default_timezone: zone applied to CLI date-times without one
        uid_domain: domain part of generated UIDs
        log_level: logging level name
    """

    cache_capacity: int = DEFAULT_CACHE_CAPACITY
    cache_stride: int = DEFAULT_CACHE_STRIDE
    max_occurrences: int = 250
    default_timezone: str = DEFAULT_TIMEZONE
    uid_domain: str = DEFAULT_UID_DOMAIN
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Config:
        """Create Config from a plain mapping, applying defaults and validation.

        Numeric-like values are coerced to int and clamped to their allowed
        range, logging warnings when coercions occur.
        """
        if data is None:
            data = {}

        def _coerce_int(key: str, default: int, low: int, high: int) -> int:
            raw = data.get(key, default)
            try:
                value = int(raw)
            except (TypeError, ValueError):
                logger.warning("Config %s=%r is not an int; using default %d", key, raw, default)
                return default
            if value < low:
                logger.warning("%s %d below minimum; coercing to %d", key, value, low)
                return low
            if value > high:
                logger.warning("%s %d above maximum; coercing to %d", key, value, high)
                return high
            return value

        def _coerce_str(key: str, default: str) -> str:
            raw = data.get(key, default)
            return str(raw) if raw is not None else default

        return cls(
            cache_capacity=_coerce_int("cache_capacity", DEFAULT_CACHE_CAPACITY, 1, 1000),
            cache_stride=_coerce_int("cache_stride", DEFAULT_CACHE_STRIDE, 1, 1000),
            max_occurrences=_coerce_int("max_occurrences", 250, 1, 100000),
            default_timezone=_coerce_str("default_timezone", DEFAULT_TIMEZONE),
            uid_domain=_coerce_str("uid_domain", DEFAULT_UID_DOMAIN),
            log_level=_coerce_str("log_level", "INFO").upper(),
        )


def _load_yaml(path: Path) -> Any:
    """Load a mapping from a YAML (or JSON) file; empty files load as {}."""
    try:
        loaded = yaml.safe_load(path.read_text())
    except yaml.YAMLError as exc:
        raise ValueError(f"Unable to parse config file {path}: {exc}") from exc
    return {} if loaded is None else loaded


def load_config(path: str | None = None) -> Config:
    """Load configuration from a YAML/JSON file and return a Config instance.

    Args:
        path: Optional path to the config file. If not provided the default is
              ./calendarbot_recur.yaml (relative to current working dir).

    Returns:
        Config dataclass instance with values from file (or defaults).

    Behavior:
    - If file is missing: returns Config() with defaults.
    - If file exists but top-level is not a mapping: raises ValueError.
    """
    p = Path(path) if path else Path.cwd() / "calendarbot_recur.yaml"
    logger.debug("Attempting to load config from %s", p)
    if not p.exists():
        logger.info("Config file %s not found; using defaults", p)
        return Config()

    raw = _load_yaml(p)
    if not isinstance(raw, dict):
        logger.warning("Config file %s parsed but top-level is not a mapping: %r", p, raw)
        raise ValueError("Config file must contain a mapping at top level")  # noqa: TRY004
    cfg = Config.from_dict(raw)
    logger.info("Loaded configuration from %s", p)
    logger.debug("Configuration values: %s", cfg)
    return cfg
