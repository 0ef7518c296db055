"""Temporal value helpers for calendarbot_recur.

A temporal value is one of three kinds, mapped onto the standard library types:

- CALENDAR_DATE: ``datetime.date`` (never a ``datetime``)
- LOCAL_INSTANT: naive ``datetime.datetime``
- ZONED_INSTANT: aware ``datetime.datetime``

Values of different kinds are never compared or combined; doing so raises
TemporalTypeMismatchError. Zoned values are ordered by their UTC instant.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from typing import Optional, Union

from dateutil import parser as date_parser
from icalendar.prop import vDDDTypes

from .recur_exceptions import RecurrenceParseError, TemporalTypeMismatchError
from .timezone_utils import resolve_timezone

logger = logging.getLogger(__name__)

Temporal = Union[date, datetime]


class TemporalKind(str, Enum):
    """The three kinds of temporal value a series can be built from."""

    CALENDAR_DATE = "calendar_date"
    LOCAL_INSTANT = "local_instant"
    ZONED_INSTANT = "zoned_instant"


def kind_of(value: Temporal) -> TemporalKind:
    """Return the kind of a temporal value.

    Raises:
        TemporalTypeMismatchError: If the value is not a date or datetime
    """
    # datetime subclasses date, so it must be checked first
    if isinstance(value, datetime):
        if value.tzinfo is not None and value.utcoffset() is not None:
            return TemporalKind.ZONED_INSTANT
        return TemporalKind.LOCAL_INSTANT
    if isinstance(value, date):
        return TemporalKind.CALENDAR_DATE
    raise TemporalTypeMismatchError(f"Not a temporal value: {value!r}")


def same_kind(a: Temporal, b: Temporal) -> bool:
    """Return True when both values have the same temporal kind."""
    return kind_of(a) == kind_of(b)


def require_same_kind(a: Temporal, b: Temporal, context: str = "values") -> TemporalKind:
    """Return the shared kind of ``a`` and ``b`` or raise on mismatch.

    Args:
        a: First temporal value
        b: Second temporal value
        context: Short description used in the error message

    Returns:
        The common TemporalKind

    Raises:
        TemporalTypeMismatchError: If the kinds differ
    """
    kind_a = kind_of(a)
    kind_b = kind_of(b)
    if kind_a != kind_b:
        raise TemporalTypeMismatchError(
            f"Cannot combine {context} of different kinds: "
            f"{kind_a.value} ({a!r}) and {kind_b.value} ({b!r})"
        )
    return kind_a


def to_utc(value: Temporal) -> Temporal:
    """Normalize a zoned value to UTC; other kinds are returned unchanged."""
    if kind_of(value) is TemporalKind.ZONED_INSTANT:
        return value.astimezone(timezone.utc)  # type: ignore[union-attr]
    return value


def sort_key(value: Temporal) -> Temporal:
    """Key usable for ordering and hashing values of one kind."""
    return to_utc(value)


def compare(a: Temporal, b: Temporal) -> int:
    """Three-way compare two values of the same kind.

    Returns:
        -1, 0 or 1

    Raises:
        TemporalTypeMismatchError: If the kinds differ
    """
    require_same_kind(a, b)
    ka, kb = sort_key(a), sort_key(b)
    if ka < kb:
        return -1
    if ka > kb:
        return 1
    return 0


def is_before(a: Temporal, b: Temporal) -> bool:
    return compare(a, b) < 0


def is_after(a: Temporal, b: Temporal) -> bool:
    return compare(a, b) > 0


def shift_by_days(value: Temporal, days: int) -> Temporal:
    """Shift a value by whole calendar days.

    Date-times keep their wall-clock time, including zoned values across a
    daylight saving transition.
    """
    kind_of(value)
    return value + timedelta(days=days)


def shift_seconds(value: Temporal, seconds: int) -> Temporal:
    """Shift a date-time by an exact number of seconds.

    Zoned values are shifted on the UTC timeline and returned in their
    original zone.

    Raises:
        TemporalTypeMismatchError: If the value is date-only
    """
    kind = kind_of(value)
    if kind is TemporalKind.CALENDAR_DATE:
        raise TemporalTypeMismatchError(f"Cannot shift date-only value {value!r} by seconds")
    if kind is TemporalKind.ZONED_INSTANT:
        shifted = value.astimezone(timezone.utc) + timedelta(seconds=seconds)  # type: ignore[union-attr]
        return shifted.astimezone(value.tzinfo)  # type: ignore[union-attr]
    return value + timedelta(seconds=seconds)


def previous_unit(value: Temporal) -> Temporal:
    """Return the value one unit earlier: one day for dates, one second otherwise."""
    if kind_of(value) is TemporalKind.CALENDAR_DATE:
        return shift_by_days(value, -1)
    return shift_seconds(value, -1)


def to_wall_clock(value: Temporal) -> datetime:
    """Return the naive wall-clock datetime of a value (dates at midnight)."""
    kind = kind_of(value)
    if kind is TemporalKind.CALENDAR_DATE:
        return datetime.combine(value, time())
    return value.replace(tzinfo=None)  # type: ignore[call-arg]


def from_wall_clock(wall: datetime, like: Temporal) -> Temporal:
    """Build a value of the same kind (and zone) as ``like`` from a wall-clock datetime."""
    kind = kind_of(like)
    if kind is TemporalKind.CALENDAR_DATE:
        return wall.date()
    if kind is TemporalKind.ZONED_INSTANT:
        return wall.replace(tzinfo=like.tzinfo)  # type: ignore[union-attr]
    return wall


def coerce_to_kind(value: Temporal, like: Temporal) -> Temporal:
    """Express ``value`` in the kind of ``like`` where that is lossless.

    Used for bounds supplied by callers (display ranges), never for stored
    series values. A date bound becomes midnight of that day, a date-time bound
    against a date series becomes its calendar day, and a naive bound against
    a zoned series takes the series zone. A zoned bound against a naive series
    has no meaningful wall clock and raises.
    """
    kind = kind_of(value)
    target = kind_of(like)
    if kind == target:
        return value
    if kind is TemporalKind.CALENDAR_DATE:
        return from_wall_clock(datetime.combine(value, time()), like)
    if target is TemporalKind.CALENDAR_DATE:
        return value.date()  # type: ignore[union-attr]
    if kind is TemporalKind.LOCAL_INSTANT:
        return value.replace(tzinfo=like.tzinfo)  # type: ignore[union-attr]
    raise TemporalTypeMismatchError(
        f"Cannot use zoned bound {value!r} with a {target.value} series"
    )


def parse_temporal(text: str, tzid: Optional[str] = None) -> Temporal:
    """Parse one of the textual forms of a temporal value.

    Supported forms:
        - ``20151109`` (date-only)
        - ``20151109T100000`` (local)
        - ``20151109T100000Z`` (UTC)
        - ``TZID=Europe/Berlin:20151109T100000`` (zoned)
        - ISO-8601 strings such as ``2015-11-09T10:00:00+01:00``

    Args:
        text: Text to parse
        tzid: Optional timezone name applied to a local date-time

    Returns:
        date or datetime

    Raises:
        RecurrenceParseError: If the text cannot be parsed
    """
    raw = (text or "").strip()
    if raw.upper().startswith("TZID="):
        tzid, _, raw = raw[5:].rpartition(":")
        if not tzid:
            raise RecurrenceParseError(f"Malformed TZID value: {text!r}")

    try:
        value = vDDDTypes.from_ical(raw)
    except ValueError:
        value = None

    if not isinstance(value, (date, datetime)):
        try:
            value = date_parser.isoparse(raw)
        except ValueError as e:
            raise RecurrenceParseError(f"Unrecognized date/time value: {text!r}") from e
        # a bare ISO date parses as midnight; keep it date-only
        if len(raw) == 10 and isinstance(value, datetime):
            value = value.date()

    if tzid:
        if kind_of(value) is not TemporalKind.LOCAL_INSTANT:
            raise RecurrenceParseError(f"TZID only applies to local date-times: {text!r}")
        value = value.replace(tzinfo=resolve_timezone(tzid))  # type: ignore[call-arg]

    logger.debug("Parsed temporal %r as %r", text, value)
    return value


def format_temporal(value: Temporal) -> str:
    """Format a value in its iCalendar text form (zoned values in UTC)."""
    kind = kind_of(value)
    if kind is TemporalKind.CALENDAR_DATE:
        return value.strftime("%Y%m%d")
    if kind is TemporalKind.ZONED_INSTANT:
        return value.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")  # type: ignore[union-attr]
    return value.strftime("%Y%m%dT%H%M%S")
