"""calendarbot_recur - iCalendar recurrence engine for CalendarBot.

Expands recurring calendar components (DTSTART, RRULE, RDATE, EXDATE and
per-instance overrides) into lazily produced, time-ordered occurrences, with a
windowed cache for repeated queries over nearby ranges and the edit/split
operations a calendar UI needs.
"""

__version__ = "0.1.0"

from typing import Optional

from .occurrence_cache import CacheEntry, OccurrenceCache
from .recur_exceptions import (
    EmptyRecurrenceSetError,
    RecurrenceConfigurationError,
    RecurrenceError,
    RecurrenceParseError,
    RecurrenceValidationError,
    TemporalTypeMismatchError,
)
from .recur_expander import RecurrenceExpander, RecurrenceExpanderConfig
from .recur_models import (
    Frequency,
    OccurrenceInstance,
    RecurrenceRule,
    RecurrenceValidationResult,
    SeriesState,
    WeekdayNum,
)
from .recurrence_set import RecurrenceSet
from .rrule_iterator import RuleCursor, iter_rule
from .series_editor import SeriesEditor, SessionUidGenerator
from .temporal import TemporalKind, compare, is_after, is_before, kind_of, same_kind, shift_by_days

__all__ = [
    "CacheEntry",
    "EmptyRecurrenceSetError",
    "Frequency",
    "OccurrenceCache",
    "OccurrenceInstance",
    "RecurrenceConfigurationError",
    "RecurrenceError",
    "RecurrenceExpander",
    "RecurrenceExpanderConfig",
    "RecurrenceParseError",
    "RecurrenceRule",
    "RecurrenceSet",
    "RecurrenceValidationError",
    "RecurrenceValidationResult",
    "RuleCursor",
    "SeriesEditor",
    "SeriesState",
    "SessionUidGenerator",
    "TemporalKind",
    "TemporalTypeMismatchError",
    "WeekdayNum",
    "__version__",
    "compare",
    "is_after",
    "is_before",
    "iter_rule",
    "kind_of",
    "same_kind",
    "shift_by_days",
]


def _init_logging(level_name: Optional[str]) -> None:
    """Initialize root logging to stream to console.

    This sets a colorized formatter and level so that early messages are
    visible on the console. Callers may adjust the level later (e.g. from config).

    For diagnostics this function will also honor the CALENDARBOT_DEBUG environment
    variable (truthy values: "1", "true", "yes") which forces DEBUG verbosity.
    """
    import logging
    import os
    import sys

    from colorlog import ColoredFormatter

    debug_env = os.environ.get("CALENDARBOT_DEBUG", "")
    if debug_env.strip().lower() in ("1", "true", "yes", "on"):
        level_name = "DEBUG"

    root = logging.getLogger()
    # Only configure a handler if none are present to avoid duplicate output.
    if not root.handlers:
        handler = logging.StreamHandler(stream=sys.stderr)
        # HH:MM:SS  LEVEL   logger.name: message, with only the level colorized
        fmt = "%(asctime)s %(log_color)s%(levelname)-7s%(reset)s %(name)s: %(message)s"
        log_colors = {
            "DEBUG": "cyan",
            "INFO": "green",
            "WARNING": "yellow",
            "ERROR": "red",
            "CRITICAL": "bold_red",
        }
        handler.setFormatter(ColoredFormatter(fmt, datefmt="%H:%M:%S", log_colors=log_colors))
        root.addHandler(handler)

    level = logging.INFO
    if isinstance(level_name, str):
        level = getattr(logging, level_name.upper(), logging.INFO)
        if not isinstance(level, int):
            level = logging.INFO
    root.setLevel(level)
    logging.getLogger(__name__).debug(
        "Logging initialized at level %s", logging.getLevelName(level)
    )
