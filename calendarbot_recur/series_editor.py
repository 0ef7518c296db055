"""Edit and split operations on recurrence sets.

SeriesEditor implements the edits a calendar UI performs on a recurring
series: collapsing it to a single instance, splitting it into two series at a
boundary ("this and future"), detaching one instance as an override, and the
matching delete operations. New UIDs come from an injected generator so that
no process-wide counter is shared between sessions.
"""

from __future__ import annotations

import itertools
import logging
from datetime import datetime
from typing import Callable, Optional

from .recurrence_set import RecurrenceSet
from .recur_models import RecurrenceRule, SeriesState
from .rrule_iterator import count_instants_before, rule_instants
from .temporal import Temporal, compare, previous_unit, require_same_kind, sort_key, to_utc
from .timezone_utils import now_utc

logger = logging.getLogger(__name__)

UidGenerator = Callable[[], str]

DEFAULT_UID_DOMAIN = "calendarbot.local"


class SessionUidGenerator:
    """Session-scoped UID generator producing ``<timestamp>-<n>@<domain>``.

    Args:
        domain: Domain part appended to every UID
        clock: Callable returning the current time (defaults to now_utc)
    """

    def __init__(self, domain: str = DEFAULT_UID_DOMAIN, clock: Optional[Callable[[], datetime]] = None):
        self.domain = domain
        self._clock = clock or now_utc
        self._counter = itertools.count()

    def __call__(self) -> str:
        stamp = self._clock().strftime("%Y%m%dT%H%M%S")
        return f"{stamp}-{next(self._counter)}@{self.domain}"


def _until_before(boundary: Temporal) -> Temporal:
    """UNTIL value ending a series just before ``boundary``.

    The previous day for date series, one second earlier otherwise; zoned
    values are expressed in UTC as iCalendar requires.
    """
    return to_utc(previous_unit(boundary))


def _bounded_rule(rule: RecurrenceRule, until: Temporal) -> RecurrenceRule:
    """Return ``rule`` terminated no later than ``until`` (COUNT is replaced)."""
    if rule.until is not None and compare(rule.until, until) <= 0:
        return rule
    return rule.copy_with(count=None, until=until)


class SeriesEditor:
    """Applies edit/split operations to RecurrenceSet instances.

    Args:
        uid_generator: Callable returning fresh UIDs for new series
    """

    def __init__(self, uid_generator: Optional[UidGenerator] = None):
        self.uid_generator: UidGenerator = uid_generator or SessionUidGenerator()

    def collapse_to_individual(self, series: RecurrenceSet, start: Optional[Temporal] = None) -> RecurrenceSet:
        """Turn a series into a single non-recurring component.

        Clears rule, additions and exclusions. Overrides are left in place;
        the caller is responsible for the identity of any remaining overrides.
        """
        series.rule = None
        series.additions = None
        series.exclusions = None
        if start is not None:
            series.start = start
        if series.overrides:
            logger.warning(
                "Series %s collapsed to individual with %d overrides still attached",
                series.uid,
                len(series.overrides),
            )
        logger.debug("Series %s collapsed to individual at %s", series.uid, series.start)
        return series

    def split_this_and_future(self, original: RecurrenceSet, boundary: Temporal) -> RecurrenceSet:
        """Split ``original`` into two series at ``boundary``.

        ``original`` is terminated just before the boundary; the returned
        series starts at the boundary with the same constraints and the
        remaining COUNT. RDATE, EXDATE and overrides at or after the boundary
        move to the new series.

        Raises:
            ValueError: If the series has no rule, the boundary is the series
                start, the boundary is not an instant of the rule or is
                excluded, or the rule restarted at the boundary would not
                produce it
            TemporalTypeMismatchError: If the boundary kind differs from the start
        """
        require_same_kind(original.start, boundary, "series start and split boundary")
        rule = original.rule
        if rule is None:
            raise ValueError("Cannot split a non-recurring component")
        if compare(boundary, original.start) <= 0:
            raise ValueError(f"Split boundary {boundary} must be after the series start {original.start}")
        if not self._is_rule_instant(original, boundary):
            raise ValueError(f"Split boundary {boundary} is not an occurrence of the series rule")
        current = next(original.occurrences(boundary), None)
        if current is None or compare(current, boundary) != 0:
            raise ValueError(f"Split boundary {boundary} is excluded from series {original.uid}")

        consumed = count_instants_before(rule, original.start, boundary)
        new_rule = rule
        if rule.count is not None:
            new_rule = rule.copy_with(count=rule.count - consumed)
        restarted = next(rule_instants(new_rule, boundary), None)
        if restarted is None or compare(restarted, boundary) != 0:
            raise ValueError(
                f"Rule {rule} restarted at {boundary} does not produce {boundary} (first is {restarted})"
            )

        def split(values):
            before = {v for v in values or () if compare(v, boundary) < 0}
            after = {v for v in values or () if compare(v, boundary) >= 0}
            return before or None, after or None

        additions_before, additions_after = split(original.additions)
        exclusions_before, exclusions_after = split(original.exclusions)

        new_series = original.copy(
            start=boundary,
            rule=new_rule,
            additions=additions_after,
            exclusions=exclusions_after,
            uid=self.uid_generator(),
            recurrence_id=None,
            related_to=original.related_to or original.uid,
        )

        original.rule = _bounded_rule(rule, _until_before(boundary))
        original.additions = additions_before
        original.exclusions = exclusions_before

        for instant, child in original.overrides:
            if compare(instant, boundary) >= 0:
                original.remove_override(instant)
                new_series.add_override(child)

        logger.info(
            "Split series %s at %s into %s (%d rule occurrences kept, count=%s)",
            original.uid,
            boundary,
            new_series.uid,
            consumed,
            new_rule.count,
        )
        return new_series

    def split_one_instance(
        self,
        original: RecurrenceSet,
        recurrence_instant: Temporal,
        new_start: Optional[Temporal] = None,
    ) -> RecurrenceSet:
        """Detach one occurrence of ``original`` as an override component.

        The instant is added to the original's exclusions and a non-recurring
        component is returned that records the instant as its RECURRENCE-ID and
        points back at ``original``.

        Raises:
            ValueError: If the instant is not a current occurrence of the series
        """
        require_same_kind(original.start, recurrence_instant, "series start and recurrence instant")
        first = next(original.occurrences(recurrence_instant), None)
        if first is None or compare(first, recurrence_instant) != 0:
            raise ValueError(f"{recurrence_instant} is not an occurrence of series {original.uid}")

        start = new_start if new_start is not None else recurrence_instant
        child = RecurrenceSet(
            start=start,
            uid=original.uid,
            summary=original.summary,
            duration=original.duration,
            recurrence_id=recurrence_instant,
        )
        original.add_exclusion(recurrence_instant)
        original.add_override(child)
        logger.debug(
            "Series %s instance %s detached as override starting %s (state=%s)",
            original.uid,
            recurrence_instant,
            start,
            original.state.value,
        )
        return child

    def delete_one(self, series: RecurrenceSet, instant: Temporal) -> bool:
        """Delete a single occurrence.

        A matching RDATE is removed; otherwise the instant is excluded. Any
        override for the instant is discarded.

        Returns:
            True when the series no longer produces any occurrence and should
            be dropped by the caller
        """
        require_same_kind(series.start, instant, "series start and deleted instant")
        if series.override_for(instant) is not None:
            series.remove_override(instant)
            if not series.exclusions or instant not in series.exclusions:
                series.add_exclusion(instant)
        elif not series.remove_addition(instant):
            series.add_exclusion(instant)
        deleted = next(series.occurrences(series.earliest_bound()), None) is None
        logger.debug("Deleted instance %s of %s (series empty: %s)", instant, series.uid, deleted)
        return deleted

    def delete_this_and_future(self, series: RecurrenceSet, instant: Temporal) -> bool:
        """Delete ``instant`` and every later occurrence.

        Returns:
            True when nothing remains (the instant was the first occurrence)
        """
        require_same_kind(series.start, instant, "series start and deleted instant")
        if compare(instant, series.earliest_bound()) <= 0:
            logger.debug("Delete this-and-future at first instance of %s removes the series", series.uid)
            return True

        if series.rule is not None:
            series.rule = _bounded_rule(series.rule, _until_before(instant))
        series.additions = {v for v in series.additions or () if compare(v, instant) < 0}
        series.exclusions = {v for v in series.exclusions or () if compare(v, instant) < 0}
        for override_instant, _child in series.overrides:
            if compare(override_instant, instant) >= 0:
                series.remove_override(override_instant)
        return False

    def remove_override(self, series: RecurrenceSet, instant: Temporal) -> Optional[RecurrenceSet]:
        """Delete the override instance for ``instant``; its exclusion is kept."""
        child = series.remove_override(instant)
        if child is not None and series.state is SeriesState.REPEATING:
            logger.debug("Series %s has no overrides left", series.uid)
        return child

    @staticmethod
    def _is_rule_instant(series: RecurrenceSet, value: Temporal) -> bool:
        rule = series.rule
        if rule is None:
            return False
        key = sort_key(value)
        for candidate in rule_instants(rule, series.start, seed=value):
            return sort_key(candidate) == key
        return False

