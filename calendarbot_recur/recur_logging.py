"""
Central logging configuration for calendarbot_recur.

Keeps the engine's per-module loggers at INFO by default (DEBUG when requested)
and quiets third-party libraries whose debug output is not useful when
diagnosing recurrence expansion.
"""

import logging
import os
from typing import Optional

# Engine modules whose level follows the debug switch
RECUR_MODULES = [
    "calendarbot_recur",
    "calendarbot_recur.rrule_iterator",
    "calendarbot_recur.occurrence_cache",
    "calendarbot_recur.recurrence_set",
    "calendarbot_recur.series_editor",
    "calendarbot_recur.recur_expander",
    "calendarbot_recur.ics_adapter",
    "calendarbot_recur.temporal",
]

# Third-party libraries that generate excessive debug logs
THIRD_PARTY_LEVELS: dict[str, int] = {
    "icalendar": logging.INFO,
    "dateutil": logging.WARNING,
}


def configure_recur_logging(
    debug_mode: bool = False,
    force_debug: Optional[bool] = None,
    log_level: Optional[str] = None,
) -> None:
    """
    Configure logging levels for calendarbot_recur.

    Args:
        debug_mode: Whether to enable debug logging for calendarbot_recur modules
        force_debug: Override debug mode setting (None to use env var detection)
        log_level: Configured root level name, used when not in debug mode

    Environment Variables:
        CALENDARBOT_DEBUG: Set to '1', 'true', 'yes' to force debug logging
        CALENDARBOT_LOG_LEVEL: Override root log level (DEBUG, INFO, WARNING, ERROR)
    """
    env_debug = os.getenv("CALENDARBOT_DEBUG", "").lower() in ("1", "true", "yes")
    env_log_level = os.getenv("CALENDARBOT_LOG_LEVEL", "").upper()

    if force_debug is not None:
        final_debug = force_debug
    elif env_debug:
        final_debug = True
    else:
        final_debug = debug_mode

    root_level = logging.DEBUG if final_debug else logging.INFO
    if not final_debug and log_level and log_level.upper() in ("DEBUG", "INFO", "WARNING", "ERROR"):
        root_level = getattr(logging, log_level.upper())
    if env_log_level in ("DEBUG", "INFO", "WARNING", "ERROR"):
        root_level = getattr(logging, env_log_level)

    # Handlers are installed by calendarbot_recur._init_logging; only levels are set here
    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)

    logger_config = dict(THIRD_PARTY_LEVELS)
    recur_level = logging.DEBUG if final_debug else logging.INFO
    for module in RECUR_MODULES:
        logger_config[module] = recur_level

    for logger_name, level in logger_config.items():
        logging.getLogger(logger_name).setLevel(level)

    if final_debug:
        root_logger.debug("Debug logging enabled for calendarbot_recur modules")


def get_logging_status() -> dict[str, str]:
    """
    Get current logging configuration status.

    Returns:
        Dictionary mapping logger names to their current levels
    """
    status = {"root": logging.getLevelName(logging.getLogger().level)}
    for logger_name in ["calendarbot_recur", *THIRD_PARTY_LEVELS]:
        status[logger_name] = logging.getLevelName(logging.getLogger(logger_name).level)
    return status
