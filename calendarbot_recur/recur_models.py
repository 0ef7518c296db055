"""Data models for recurrence rules and expanded occurrences."""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Optional, Union

from icalendar.prop import vRecur
from pydantic import BaseModel, ConfigDict, Field, field_serializer, model_validator

from .recur_exceptions import RecurrenceConfigurationError, RecurrenceParseError
from .temporal import TemporalKind, format_temporal, kind_of, to_utc

logger = logging.getLogger(__name__)

# Weekday codes in Monday-first order, matching datetime.weekday()
WEEKDAY_CODES = ("MO", "TU", "WE", "TH", "FR", "SA", "SU")

# Longest length of each month (February in a leap year)
MAX_MONTH_DAYS = (31, 29, 31, 30, 31, 30, 31, 31, 30, 31, 30, 31)


class Frequency(str, Enum):
    """RRULE FREQ values, finest first."""

    SECONDLY = "SECONDLY"
    MINUTELY = "MINUTELY"
    HOURLY = "HOURLY"
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"

    @property
    def is_sub_daily(self) -> bool:
        return self in (Frequency.SECONDLY, Frequency.MINUTELY, Frequency.HOURLY)


class SeriesState(str, Enum):
    """Edit state of a recurrence set."""

    INDIVIDUAL = "individual"
    REPEATING = "repeating"
    REPEATING_WITH_OVERRIDES = "repeating_with_overrides"


class WeekdayNum(BaseModel):
    """A BYDAY entry: a weekday with an optional ordinal (e.g. -1FR, 2TU)."""

    weekday: int
    ordinal: Optional[int] = None

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _check_ranges(self) -> WeekdayNum:
        if not 0 <= self.weekday <= 6:
            raise RecurrenceConfigurationError(f"Weekday index out of range: {self.weekday}")
        if self.ordinal is not None and (self.ordinal == 0 or abs(self.ordinal) > 53):
            raise RecurrenceConfigurationError(f"BYDAY ordinal out of range: {self.ordinal}")
        return self

    @classmethod
    def from_ical(cls, text: str) -> WeekdayNum:
        """Parse a weekday such as ``MO`` or ``-1FR``."""
        value = text.strip().upper()
        code = value[-2:]
        if code not in WEEKDAY_CODES:
            raise RecurrenceParseError(f"Invalid weekday: {text!r}")
        prefix = value[:-2]
        ordinal: Optional[int] = None
        if prefix not in ("", "+", "-"):
            try:
                ordinal = int(prefix)
            except ValueError as e:
                raise RecurrenceParseError(f"Invalid weekday ordinal: {text!r}") from e
        return cls(weekday=WEEKDAY_CODES.index(code), ordinal=ordinal)

    def to_ical(self) -> str:
        code = WEEKDAY_CODES[self.weekday]
        return f"{self.ordinal}{code}" if self.ordinal else code


def _check_values(name: str, values: tuple[int, ...], low: int, high: int, signed: bool) -> None:
    for v in values:
        if signed:
            ok = v != 0 and low <= abs(v) <= high
        else:
            ok = low <= v <= high
        if not ok:
            raise RecurrenceConfigurationError(f"{name} value out of range: {v}")


class RecurrenceRule(BaseModel):
    """Parsed RRULE with frequency, interval, termination and BYxxx constraints.

    Instances are immutable; use copy_with() to derive a modified rule.
    Construction raises RecurrenceConfigurationError for invalid combinations.
    """

    frequency: Frequency
    interval: int = 1
    count: Optional[int] = None
    until: Optional[Union[datetime, date]] = None

    by_second: tuple[int, ...] = ()
    by_minute: tuple[int, ...] = ()
    by_hour: tuple[int, ...] = ()
    by_day: tuple[WeekdayNum, ...] = ()
    by_month_day: tuple[int, ...] = ()
    by_year_day: tuple[int, ...] = ()
    by_week_no: tuple[int, ...] = ()
    by_month: tuple[int, ...] = ()
    by_set_pos: tuple[int, ...] = ()
    week_start: int = Field(default=0, description="First day of the week, 0=Monday")

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _check_configuration(self) -> RecurrenceRule:
        freq = self.frequency
        if self.interval < 1:
            raise RecurrenceConfigurationError(f"INTERVAL must be >= 1, got {self.interval}")
        if self.count is not None and self.count < 1:
            raise RecurrenceConfigurationError(f"COUNT must be >= 1, got {self.count}")
        if self.count is not None and self.until is not None:
            raise RecurrenceConfigurationError("COUNT and UNTIL cannot both be set")
        if not 0 <= self.week_start <= 6:
            raise RecurrenceConfigurationError(f"WKST out of range: {self.week_start}")

        _check_values("BYSECOND", self.by_second, 0, 59, signed=False)
        _check_values("BYMINUTE", self.by_minute, 0, 59, signed=False)
        _check_values("BYHOUR", self.by_hour, 0, 23, signed=False)
        _check_values("BYMONTH", self.by_month, 1, 12, signed=False)
        _check_values("BYMONTHDAY", self.by_month_day, 1, 31, signed=True)
        _check_values("BYYEARDAY", self.by_year_day, 1, 366, signed=True)
        _check_values("BYWEEKNO", self.by_week_no, 1, 53, signed=True)
        _check_values("BYSETPOS", self.by_set_pos, 1, 366, signed=True)

        if self.by_week_no and freq is not Frequency.YEARLY:
            raise RecurrenceConfigurationError("BYWEEKNO is only valid with FREQ=YEARLY")
        if self.by_year_day and freq in (Frequency.DAILY, Frequency.WEEKLY, Frequency.MONTHLY):
            raise RecurrenceConfigurationError(f"BYYEARDAY is not valid with FREQ={freq.value}")
        if self.by_month_day and freq is Frequency.WEEKLY:
            raise RecurrenceConfigurationError("BYMONTHDAY is not valid with FREQ=WEEKLY")
        if any(wd.ordinal for wd in self.by_day):
            if freq not in (Frequency.MONTHLY, Frequency.YEARLY):
                raise RecurrenceConfigurationError(
                    f"Ordinal BYDAY values are not valid with FREQ={freq.value}"
                )
            if freq is Frequency.YEARLY and self.by_week_no:
                raise RecurrenceConfigurationError(
                    "Ordinal BYDAY values are not valid with FREQ=YEARLY and BYWEEKNO"
                )
        if self.by_set_pos and not self.has_by_parts(exclude_set_pos=True):
            raise RecurrenceConfigurationError("BYSETPOS requires another BYxxx rule part")
        if self.by_month and self.by_month_day and not any(
            abs(day) <= MAX_MONTH_DAYS[month - 1] for month in self.by_month for day in self.by_month_day
        ):
            raise RecurrenceConfigurationError(
                f"BYMONTHDAY={list(self.by_month_day)} never falls in BYMONTH={list(self.by_month)}"
            )
        return self

    def has_by_parts(self, exclude_set_pos: bool = False) -> bool:
        parts = [
            self.by_second,
            self.by_minute,
            self.by_hour,
            self.by_day,
            self.by_month_day,
            self.by_year_day,
            self.by_week_no,
            self.by_month,
        ]
        if not exclude_set_pos:
            parts.append(self.by_set_pos)
        return any(parts)

    @property
    def has_time_parts(self) -> bool:
        return bool(self.by_hour or self.by_minute or self.by_second)

    @property
    def is_infinite(self) -> bool:
        return self.count is None and self.until is None

    def copy_with(self, **changes: Any) -> RecurrenceRule:
        """Return a validated copy with the given fields replaced."""
        data = {name: getattr(self, name) for name in type(self).model_fields}
        data.update(changes)
        return type(self)(**data)

    @classmethod
    def from_ical(cls, text: str) -> RecurrenceRule:
        """Decode RRULE text such as ``FREQ=WEEKLY;INTERVAL=2;BYDAY=MO,WE,FR``.

        Args:
            text: RRULE value, optionally prefixed with ``RRULE:``

        Returns:
            RecurrenceRule

        Raises:
            RecurrenceParseError: If the text is malformed
            RecurrenceConfigurationError: If the decoded rule is invalid
        """
        raw = (text or "").strip()
        if raw.upper().startswith("RRULE:"):
            raw = raw[6:]
        try:
            parts = vRecur.from_ical(raw)
        except ValueError as e:
            raise RecurrenceParseError(f"Malformed RRULE {text!r}: {e}") from e
        return cls.from_vrecur(parts, source=text)

    @classmethod
    def from_vrecur(cls, parts: Any, source: Any = None) -> RecurrenceRule:
        """Build a rule from an already decoded ``icalendar.vRecur`` mapping."""
        source = source if source is not None else parts
        freq_values = parts.get("FREQ")
        if not freq_values:
            raise RecurrenceParseError(f"RRULE is missing FREQ: {source!r}")
        try:
            frequency = Frequency(str(freq_values[0]).upper())
        except ValueError as e:
            raise RecurrenceParseError(f"Unknown FREQ in RRULE {source!r}") from e

        def ints(key: str) -> tuple[int, ...]:
            return tuple(int(v) for v in parts.get(key, []))

        def single(key: str) -> Optional[Any]:
            values = parts.get(key)
            return values[0] if values else None

        week_start = 0
        wkst = single("WKST")
        if wkst is not None:
            week_start = WeekdayNum.from_ical(str(wkst)).weekday

        interval = single("INTERVAL")
        count = single("COUNT")
        return cls(
            frequency=frequency,
            interval=int(interval) if interval is not None else 1,
            count=int(count) if count is not None else None,
            until=single("UNTIL"),
            by_second=ints("BYSECOND"),
            by_minute=ints("BYMINUTE"),
            by_hour=ints("BYHOUR"),
            by_day=tuple(WeekdayNum.from_ical(str(v)) for v in parts.get("BYDAY", [])),
            by_month_day=ints("BYMONTHDAY"),
            by_year_day=ints("BYYEARDAY"),
            by_week_no=ints("BYWEEKNO"),
            by_month=ints("BYMONTH"),
            by_set_pos=ints("BYSETPOS"),
            week_start=week_start,
        )

    def to_vrecur(self) -> vRecur:
        """Encode the rule as an ``icalendar.vRecur`` mapping."""
        parts: dict[str, Any] = {"FREQ": [self.frequency.value]}
        if self.until is not None:
            parts["UNTIL"] = [to_utc(self.until)]
        if self.count is not None:
            parts["COUNT"] = [self.count]
        if self.interval != 1:
            parts["INTERVAL"] = [self.interval]
        for key, values in (
            ("BYSECOND", self.by_second),
            ("BYMINUTE", self.by_minute),
            ("BYHOUR", self.by_hour),
            ("BYDAY", tuple(wd.to_ical() for wd in self.by_day)),
            ("BYMONTHDAY", self.by_month_day),
            ("BYYEARDAY", self.by_year_day),
            ("BYWEEKNO", self.by_week_no),
            ("BYMONTH", self.by_month),
            ("BYSETPOS", self.by_set_pos),
        ):
            if values:
                parts[key] = list(values)
        if self.week_start != 0:
            parts["WKST"] = [WEEKDAY_CODES[self.week_start]]
        return vRecur(parts)

    def to_ical(self) -> str:
        """Render canonical RRULE text."""
        return self.to_vrecur().to_ical().decode("utf-8")

    def __str__(self) -> str:
        return self.to_ical()


class OccurrenceInstance(BaseModel):
    """A materialized occurrence of a recurrence set within a display range."""

    uid: str = Field(..., description="UID of the series the instance belongs to")
    start: Union[datetime, date] = Field(..., description="Start of this occurrence")
    end: Optional[Union[datetime, date]] = Field(default=None, description="End of this occurrence")
    recurrence_id: Union[datetime, date] = Field(
        ..., description="Instant this occurrence was generated for"
    )
    summary: Optional[str] = None
    is_override: bool = False
    is_addition: bool = False

    @field_serializer("start", "end", "recurrence_id")
    def serialize_temporal(self, value: Optional[Union[datetime, date]]) -> Optional[str]:
        """Serialize temporal values to their iCalendar text form."""
        return format_temporal(value) if value is not None else None

    @property
    def is_all_day(self) -> bool:
        return kind_of(self.start) is TemporalKind.CALENDAR_DATE


class RecurrenceValidationResult(BaseModel):
    """Result of validating a recurrence set."""

    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    is_empty: bool = Field(default=False, description="Set produces no occurrence")

    @property
    def is_valid(self) -> bool:
        """Check if validation passed without errors."""
        return not self.errors

    def add_error(self, message: str) -> None:
        self.errors.append(message)
        logger.debug("Recurrence validation error: %s", message)

    def add_warning(self, message: str) -> None:
        self.warnings.append(message)


def default_duration(start: Union[datetime, date]) -> timedelta:
    """Duration assumed when a component has none: one day for dates, zero otherwise."""
    if kind_of(start) is TemporalKind.CALENDAR_DATE:
        return timedelta(days=1)
    return timedelta(0)
