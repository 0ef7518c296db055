"""Lazy RRULE expansion for calendarbot_recur.

RuleCursor walks the periods of a rule (years, months, weeks, days, hours,
minutes or seconds, advancing by INTERVAL), expands each period into its
candidate instants according to the BYxxx parts, applies BYSETPOS and then
the COUNT/UNTIL termination in full-sequence order. Work is done one period
at a time as the consumer pulls, so infinite rules are safe to iterate.

Candidates are computed on the naive wall clock of the series start and
converted back to the start's kind (date, naive or zoned) on emission.
"""

# ruff: noqa: I001
import calendar
from collections import deque
from datetime import MAXYEAR, date, datetime, timedelta
import logging
from typing import Iterator, Optional

from dateutil.relativedelta import relativedelta

from .recur_exceptions import RecurrenceConfigurationError
from .recur_models import Frequency, RecurrenceRule
from .temporal import (
    Temporal,
    TemporalKind,
    compare,
    from_wall_clock,
    kind_of,
    require_same_kind,
    to_wall_clock,
)

logger = logging.getLogger(__name__)

_SUB_DAILY_SECONDS = {
    Frequency.HOURLY: 3600,
    Frequency.MINUTELY: 60,
    Frequency.SECONDLY: 1,
}


def _week_start(day: date, wkst: int) -> date:
    return day - timedelta(days=(day.weekday() - wkst) % 7)


def _week_one_start(year: int, wkst: int) -> date:
    """First day of week 1 of ``year``: the week (per WKST) containing Jan 4."""
    if year > MAXYEAR:
        return date.max
    try:
        return _week_start(date(year, 1, 4), wkst)
    except OverflowError:
        return date.min


def _week_year(day: date, wkst: int) -> int:
    """Week-numbering year (per WKST) that ``day`` belongs to."""
    year = day.year
    if day < _week_one_start(year, wkst):
        return year - 1
    if day >= _week_one_start(year + 1, wkst):
        return year + 1
    return year


def _truncate(wall: datetime, frequency: Frequency) -> datetime:
    if frequency is Frequency.HOURLY:
        return wall.replace(minute=0, second=0, microsecond=0)
    if frequency is Frequency.MINUTELY:
        return wall.replace(second=0, microsecond=0)
    return wall.replace(microsecond=0)


def _wall_in_zone_of(value: Temporal, dtstart: Temporal) -> datetime:
    """Wall clock of ``value`` as seen in the zone of ``dtstart``."""
    if kind_of(dtstart) is TemporalKind.ZONED_INSTANT:
        return value.astimezone(dtstart.tzinfo).replace(tzinfo=None)  # type: ignore[union-attr]
    return to_wall_clock(value)


def check_rule_against_start(rule: RecurrenceRule, dtstart: Temporal) -> None:
    """Validate a rule against the kind of the series start.

    Raises:
        RecurrenceConfigurationError: For time-based rules on a date-only start
        TemporalTypeMismatchError: If UNTIL is of a different kind than the start
    """
    if kind_of(dtstart) is TemporalKind.CALENDAR_DATE:
        if rule.frequency.is_sub_daily:
            raise RecurrenceConfigurationError(
                f"FREQ={rule.frequency.value} requires a date-time start, got date {dtstart}"
            )
        if rule.has_time_parts:
            raise RecurrenceConfigurationError(
                "BYHOUR/BYMINUTE/BYSECOND require a date-time start"
            )
    if rule.until is not None:
        require_same_kind(dtstart, rule.until, "series start and UNTIL")


class RuleCursor:
    """Pull-based iterator over ``(instant, index)`` pairs of a rule.

    ``index`` is the zero-based position of the instant in the full rule
    sequence counted from ``dtstart``; it is None when the cursor was seeded
    past the start of an uncounted rule and the position is unknown.

    Args:
        rule: Rule to expand
        dtstart: Series start; anchors period alignment, defaults and COUNT
        seed: Only instants at or after this value are produced
        seed_index: Rule index of ``seed`` when ``seed`` is a known rule
            instant; lets a COUNT rule resume without recounting from start
        end: Optional inclusive upper bound where iteration stops
    """

    def __init__(
        self,
        rule: RecurrenceRule,
        dtstart: Temporal,
        seed: Optional[Temporal] = None,
        seed_index: Optional[int] = None,
        end: Optional[Temporal] = None,
    ):
        check_rule_against_start(rule, dtstart)
        if seed is not None:
            require_same_kind(dtstart, seed, "series start and seed")
        if end is not None:
            require_same_kind(dtstart, end, "series start and end bound")

        self.rule = rule
        self.dtstart = dtstart
        self.seed = seed
        self.end = end

        self._freq = rule.frequency
        self._start_wall = to_wall_clock(dtstart)
        self._date_only = kind_of(dtstart) is TemporalKind.CALENDAR_DATE
        self._end_wall = _wall_in_zone_of(end, dtstart) if end is not None else None
        until_wall = _wall_in_zone_of(rule.until, dtstart) if rule.until is not None else None
        # periods starting after this wall clock cannot yield anything
        self._stop_wall = min((w for w in (self._end_wall, until_wall) if w is not None), default=None)
        self._buffer: deque[datetime] = deque()
        self._done = False
        self._periods_scanned = 0

        self._resolve_defaults()

        seed_after_start = seed is not None and compare(seed, dtstart) > 0
        self._drop_uncounted = False
        self._index: Optional[int] = 0
        self._period = 0
        if seed_after_start:
            if seed_index is not None:
                self._index = seed_index
                self._drop_uncounted = True
                self._period = self._period_of(_wall_in_zone_of(seed, dtstart))
            elif rule.count is None:
                self._index = None
                self._drop_uncounted = True
                self._period = self._period_of(_wall_in_zone_of(seed, dtstart))
            # COUNT without a known index: walk from the start so the limit holds

        logger.debug(
            "RuleCursor %s from %s seeded at %s (period=%d, index=%s)",
            rule,
            dtstart,
            seed,
            self._period,
            self._index,
        )

    def __iter__(self) -> "RuleCursor":
        return self

    def __next__(self) -> tuple[Temporal, Optional[int]]:
        while not self._done:
            if not self._buffer and not self._fill_buffer():
                break
            wall = self._buffer.popleft()
            if wall < self._start_wall:
                continue
            value = from_wall_clock(wall, self.dtstart)
            before_seed = self.seed is not None and compare(value, self.seed) < 0
            if before_seed and self._drop_uncounted:
                continue
            if self.rule.until is not None and compare(value, self.rule.until) > 0:
                self._finish("UNTIL reached")
                break
            if self.rule.count is not None and self._index is not None and self._index >= self.rule.count:
                self._finish("COUNT reached")
                break
            index = self._index
            if self._index is not None:
                self._index += 1
            if before_seed:
                continue
            if self.end is not None and compare(value, self.end) > 0:
                self._finish("end bound reached")
                break
            return value, index
        raise StopIteration

    @property
    def exhausted(self) -> bool:
        return self._done

    def _finish(self, reason: str) -> None:
        self._done = True
        self._buffer.clear()
        logger.debug(
            "RuleCursor finished after %d periods: %s", self._periods_scanned, reason
        )

    # -- defaults and alignment -------------------------------------------

    def _resolve_defaults(self) -> None:
        rule = self.rule
        ws = self._start_wall
        self._months = set(rule.by_month)
        self._month_days = set(rule.by_month_day)
        self._weekdays = {wd.weekday for wd in rule.by_day if not wd.ordinal}
        self._nth_weekdays = [(wd.weekday, wd.ordinal) for wd in rule.by_day if wd.ordinal]
        self._year_days = set(rule.by_year_day)
        self._week_nos = set(rule.by_week_no)
        # BYWEEKNO periods are week-numbering years, not calendar years
        self._anchor_year = self._year_of(ws)

        day_level = rule.by_week_no or rule.by_year_day or rule.by_month_day or rule.by_day
        if not day_level:
            if self._freq is Frequency.YEARLY:
                if not self._months:
                    self._months = {ws.month}
                self._month_days = {ws.day}
            elif self._freq is Frequency.MONTHLY:
                self._month_days = {ws.day}
            elif self._freq is Frequency.WEEKLY:
                self._weekdays = {ws.weekday()}

        if self._date_only:
            self._times = [(0, 0, 0)]
        else:
            hours = sorted(rule.by_hour) or [ws.hour]
            minutes = sorted(rule.by_minute) or [ws.minute]
            seconds = sorted(rule.by_second) or [ws.second]
            self._times = [(h, m, s) for h in hours for m in minutes for s in seconds]

    def _year_of(self, wall: datetime) -> int:
        if self._week_nos:
            return _week_year(wall.date(), self.rule.week_start)
        return wall.year

    def _period_of(self, wall: datetime) -> int:
        """Index of the interval-aligned period containing ``wall`` (never negative)."""
        ws = self._start_wall
        freq = self._freq
        if freq is Frequency.YEARLY:
            diff = self._year_of(wall) - self._anchor_year
        elif freq is Frequency.MONTHLY:
            diff = (wall.year - ws.year) * 12 + wall.month - ws.month
        elif freq is Frequency.WEEKLY:
            wkst = self.rule.week_start
            diff = (_week_start(wall.date(), wkst) - _week_start(ws.date(), wkst)).days // 7
        elif freq is Frequency.DAILY:
            diff = (wall.date() - ws.date()).days
        else:
            unit = _SUB_DAILY_SECONDS[freq]
            delta = _truncate(wall, freq) - _truncate(ws, freq)
            diff = int(delta.total_seconds()) // unit
        return max(diff // self.rule.interval, 0)

    # -- period expansion -------------------------------------------------

    def _fill_buffer(self) -> bool:
        """Expand periods until one yields candidates; False when the rule is exhausted."""
        while not self._buffer:
            try:
                bounds = self._period_days(self._period * self.rule.interval)
            except (OverflowError, ValueError):
                bounds = None
            if bounds is None:
                self._finish("calendar range exhausted")
                return False
            first_day, days, period_wall = bounds
            if self._stop_wall is not None and datetime.combine(first_day, datetime.min.time()) > self._stop_wall:
                self._finish("period beyond UNTIL or end bound")
                return False
            self._periods_scanned += 1
            if period_wall is not None and not self._day_matches(first_day):
                try:
                    self._skip_to_day(self._next_candidate_day(first_day))
                except (OverflowError, ValueError):
                    self._finish("calendar range exhausted")
                    return False
                continue
            self._period += 1

            candidates = self._expand(days, period_wall)
            if self.rule.by_set_pos:
                candidates = self._apply_set_pos(candidates)
            self._buffer.extend(candidates)
        return True

    def _next_candidate_day(self, day: date) -> date:
        """First day after ``day`` that could pass the month filter."""
        if self._months and day.month not in self._months:
            return date(day.year, day.month, 1) + relativedelta(months=1)
        return day + timedelta(days=1)

    def _skip_to_day(self, day: date) -> None:
        """Move a sub-daily cursor to the first period starting on or after ``day``."""
        step = _SUB_DAILY_SECONDS[self._freq] * self.rule.interval
        delta = datetime.combine(day, datetime.min.time()) - _truncate(self._start_wall, self._freq)
        self._period = max(self._period + 1, -(-int(delta.total_seconds()) // step))

    def _period_days(self, offset: int) -> Optional[tuple[date, list[date], Optional[datetime]]]:
        """Return (first day, days in period, sub-daily period start) for a period offset."""
        ws = self._start_wall
        freq = self._freq
        if freq is Frequency.YEARLY:
            year = self._anchor_year + offset
            if year > MAXYEAR:
                return None
            if self._week_nos:
                first = _week_one_start(year, self.rule.week_start)
                last = _week_one_start(year + 1, self.rule.week_start)
                last = last - timedelta(days=1) if last != date.max else date.max
            else:
                first = date(year, 1, 1)
                last = date(year, 12, 31)
            return first, _days_between(first, last), None
        if freq is Frequency.MONTHLY:
            month_start = date(ws.year, ws.month, 1) + relativedelta(months=offset)
            length = calendar.monthrange(month_start.year, month_start.month)[1]
            days = [month_start.replace(day=d) for d in range(1, length + 1)]
            return month_start, days, None
        if freq is Frequency.WEEKLY:
            first = _week_start(ws.date(), self.rule.week_start) + timedelta(weeks=offset)
            return first, _days_between(first, first + timedelta(days=6)), None
        if freq is Frequency.DAILY:
            day = ws.date() + timedelta(days=offset)
            return day, [day], None
        period_wall = _truncate(ws, freq) + timedelta(seconds=_SUB_DAILY_SECONDS[freq] * offset)
        return period_wall.date(), [period_wall.date()], period_wall

    def _expand(self, days: list[date], period_wall: Optional[datetime]) -> list[datetime]:
        matching = [d for d in days if self._day_matches(d)]
        if not matching:
            return []
        if period_wall is None:
            return [
                datetime(d.year, d.month, d.day, h, m, s)
                for d in matching
                for (h, m, s) in self._times
            ]

        # sub-daily: the period fixes the coarser fields and BYxxx only limit them
        rule = self.rule
        freq = self._freq
        if rule.by_hour and period_wall.hour not in rule.by_hour:
            return []
        if freq in (Frequency.MINUTELY, Frequency.SECONDLY):
            if rule.by_minute and period_wall.minute not in rule.by_minute:
                return []
            minutes = [period_wall.minute]
        else:
            minutes = sorted(rule.by_minute) or [self._start_wall.minute]
        if freq is Frequency.SECONDLY:
            if rule.by_second and period_wall.second not in rule.by_second:
                return []
            seconds = [period_wall.second]
        else:
            seconds = sorted(rule.by_second) or [self._start_wall.second]
        return [period_wall.replace(minute=m, second=s) for m in minutes for s in seconds]

    def _day_matches(self, day: date) -> bool:
        if self._months and day.month not in self._months:
            return False
        if self._week_nos and not self._week_no_matches(day):
            return False
        if self._year_days:
            yday = day.timetuple().tm_yday
            year_len = 366 if calendar.isleap(day.year) else 365
            if yday not in self._year_days and yday - year_len - 1 not in self._year_days:
                return False
        if self._month_days:
            month_len = calendar.monthrange(day.year, day.month)[1]
            if day.day not in self._month_days and day.day - month_len - 1 not in self._month_days:
                return False
        if self._weekdays or self._nth_weekdays:
            if day.weekday() in self._weekdays:
                return True
            return any(
                day.weekday() == weekday and self._nth_matches(day, ordinal)
                for weekday, ordinal in self._nth_weekdays
            )
        return True

    def _nth_matches(self, day: date, ordinal: int) -> bool:
        """Whether ``day`` is the ordinal-th of its weekday in the month or year scope."""
        if self._freq is Frequency.MONTHLY or self._months:
            position = day.day
            length = calendar.monthrange(day.year, day.month)[1]
        else:
            position = day.timetuple().tm_yday
            length = 366 if calendar.isleap(day.year) else 365
        if ordinal > 0:
            return (position - 1) // 7 + 1 == ordinal
        return (length - position) // 7 + 1 == -ordinal

    def _week_no_matches(self, day: date) -> bool:
        wkst = self.rule.week_start
        year = _week_year(day, wkst)
        week_one = _week_one_start(year, wkst)
        weeks_in_year = (_week_one_start(year + 1, wkst) - week_one).days // 7
        week_no = (day - week_one).days // 7 + 1
        return week_no in self._week_nos or week_no - weeks_in_year - 1 in self._week_nos

    def _apply_set_pos(self, candidates: list[datetime]) -> list[datetime]:
        total = len(candidates)
        picked = set()
        for pos in self.rule.by_set_pos:
            idx = pos - 1 if pos > 0 else total + pos
            if 0 <= idx < total:
                picked.add(candidates[idx])
        return sorted(picked)


def _days_between(first: date, last: date) -> list[date]:
    span = (last - first).days
    return [first + timedelta(days=n) for n in range(span + 1)]


def iter_rule(
    rule: RecurrenceRule,
    dtstart: Temporal,
    seed: Optional[Temporal] = None,
    seed_index: Optional[int] = None,
    end: Optional[Temporal] = None,
) -> RuleCursor:
    """Return a RuleCursor over ``(instant, index)`` pairs (see RuleCursor)."""
    return RuleCursor(rule, dtstart, seed=seed, seed_index=seed_index, end=end)


def rule_instants(
    rule: RecurrenceRule,
    dtstart: Temporal,
    seed: Optional[Temporal] = None,
    end: Optional[Temporal] = None,
) -> Iterator[Temporal]:
    """Yield the rule's instants at or after ``seed`` (ascending, lazily)."""
    for value, _index in RuleCursor(rule, dtstart, seed=seed, end=end):
        yield value


def count_instants_before(rule: RecurrenceRule, dtstart: Temporal, boundary: Temporal) -> int:
    """Number of rule instants strictly before ``boundary``."""
    total = 0
    for value, _index in RuleCursor(rule, dtstart, end=boundary):
        if compare(value, boundary) >= 0:
            break
        total += 1
    return total
