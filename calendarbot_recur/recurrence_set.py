"""Recurrence set assembly: rule instants plus RDATE minus EXDATE.

A RecurrenceSet owns a start value, an optional rule, optional addition
(RDATE) and exclusion (EXDATE) sets and the per-instance overrides created by
editing single occurrences. ``occurrences()`` lazily merges the rule sequence
with the additions, drops exact-value exclusions and restricts the result to a
query range, re-entering the rule through the windowed cache.
"""

from __future__ import annotations

import heapq
import itertools
import logging
import weakref
from collections.abc import Iterable, Iterator
from datetime import timedelta
from typing import Optional

from .occurrence_cache import DEFAULT_CACHE_CAPACITY, DEFAULT_CACHE_STRIDE, OccurrenceCache
from .recur_exceptions import (
    EmptyRecurrenceSetError,
    RecurrenceValidationError,
    TemporalTypeMismatchError,
)
from .recur_models import RecurrenceRule, RecurrenceValidationResult, SeriesState, default_duration
from .rrule_iterator import RuleCursor, check_rule_against_start
from .temporal import Temporal, compare, kind_of, previous_unit, require_same_kind, sort_key

logger = logging.getLogger(__name__)


def check_homogeneous(start: Temporal, values: Iterable[Temporal], label: str) -> RecurrenceValidationResult:
    """Check that every value has the same temporal kind as ``start``.

    Returns:
        RecurrenceValidationResult with one error per mismatching value
    """
    result = RecurrenceValidationResult()
    start_kind = kind_of(start)
    for value in values:
        try:
            value_kind = kind_of(value)
        except TemporalTypeMismatchError as e:
            result.add_error(f"{label}: {e}")
            continue
        if value_kind != start_kind:
            result.add_error(
                f"{label} value {value!r} is {value_kind.value}, series start is {start_kind.value}"
            )
    return result


class RecurrenceSet:
    """A recurring (or single) calendar component reduced to its timing data.

    Args:
        start: Series start (DTSTART)
        rule: Optional recurrence rule (RRULE)
        additions: Optional RDATE values
        exclusions: Optional EXDATE values
        uid: Component UID
        summary: Optional display summary carried onto instances
        duration: Length of each occurrence (defaults to a day for dates)
        recurrence_id: Original instant replaced by this component, for overrides
        related_to: UID of the series this one was split from
        cache_capacity: Size of the windowed occurrence cache
        cache_stride: Sampling stride of the windowed occurrence cache

    Raises:
        TemporalTypeMismatchError: If additions, exclusions or UNTIL differ in kind from start
        RecurrenceConfigurationError: If the rule cannot apply to the start
    """

    def __init__(
        self,
        start: Temporal,
        rule: Optional[RecurrenceRule] = None,
        additions: Optional[Iterable[Temporal]] = None,
        exclusions: Optional[Iterable[Temporal]] = None,
        uid: Optional[str] = None,
        summary: Optional[str] = None,
        duration: Optional[timedelta] = None,
        recurrence_id: Optional[Temporal] = None,
        related_to: Optional[str] = None,
        cache_capacity: int = DEFAULT_CACHE_CAPACITY,
        cache_stride: int = DEFAULT_CACHE_STRIDE,
    ):
        kind_of(start)
        self._start = start
        self._rule: Optional[RecurrenceRule] = None
        self._additions: Optional[frozenset[Temporal]] = None
        self._exclusions: Optional[frozenset[Temporal]] = None
        self._overrides: list[RecurrenceSet] = []
        self._parent_ref: Optional[weakref.ReferenceType[RecurrenceSet]] = None
        self._recurrence_id: Optional[Temporal] = None
        self._cache: Optional[OccurrenceCache] = None
        self.cache_capacity = cache_capacity
        self.cache_stride = cache_stride

        self.uid = uid
        self.summary = summary
        self.duration = duration
        self.related_to = related_to

        self.rule = rule
        self.additions = additions
        self.exclusions = exclusions
        self.recurrence_id = recurrence_id

    def __repr__(self) -> str:
        return (
            f"RecurrenceSet(uid={self.uid!r}, start={self._start!r}, "
            f"rule={str(self._rule) if self._rule else None!r}, state={self.state.value})"
        )

    # -- mutators -----------------------------------------------------------

    @property
    def start(self) -> Temporal:
        return self._start

    @start.setter
    def start(self, value: Temporal) -> None:
        kind_of(value)
        if self._rule is not None:
            check_rule_against_start(self._rule, value)
        for label, values in (("RDATE", self._additions), ("EXDATE", self._exclusions)):
            if values:
                self._raise_on_errors(check_homogeneous(value, values, label))
        self._start = value
        self._invalidate_cache()

    @property
    def rule(self) -> Optional[RecurrenceRule]:
        return self._rule

    @rule.setter
    def rule(self, value: Optional[RecurrenceRule]) -> None:
        if value is not None:
            check_rule_against_start(value, self._start)
        self._rule = value
        self._invalidate_cache()

    @property
    def additions(self) -> Optional[frozenset[Temporal]]:
        return self._additions

    @additions.setter
    def additions(self, values: Optional[Iterable[Temporal]]) -> None:
        self._additions = self._checked_set(values, "RDATE")

    @property
    def exclusions(self) -> Optional[frozenset[Temporal]]:
        return self._exclusions

    @exclusions.setter
    def exclusions(self, values: Optional[Iterable[Temporal]]) -> None:
        self._exclusions = self._checked_set(values, "EXDATE")

    @property
    def recurrence_id(self) -> Optional[Temporal]:
        return self._recurrence_id

    @recurrence_id.setter
    def recurrence_id(self, value: Optional[Temporal]) -> None:
        if value is not None:
            require_same_kind(self._start, value, "series start and RECURRENCE-ID")
        self._recurrence_id = value

    @property
    def parent(self) -> Optional[RecurrenceSet]:
        """The series this override belongs to, if it is still alive."""
        return self._parent_ref() if self._parent_ref is not None else None

    @parent.setter
    def parent(self, value: Optional[RecurrenceSet]) -> None:
        self._parent_ref = weakref.ref(value) if value is not None else None

    def add_addition(self, value: Temporal) -> None:
        self.additions = (self._additions or frozenset()) | {value}

    def add_exclusion(self, value: Temporal) -> None:
        self.exclusions = (self._exclusions or frozenset()) | {value}

    def remove_addition(self, value: Temporal) -> bool:
        """Remove an RDATE value; returns True if it was present."""
        if not self._additions or value not in self._additions:
            return False
        self.additions = self._additions - {value}
        return True

    def remove_exclusion(self, value: Temporal) -> bool:
        """Remove an EXDATE value; returns True if it was present."""
        if not self._exclusions or value not in self._exclusions:
            return False
        self.exclusions = self._exclusions - {value}
        return True

    def _checked_set(self, values: Optional[Iterable[Temporal]], label: str) -> Optional[frozenset[Temporal]]:
        if values is None:
            return None
        items = frozenset(values)
        if not items:
            return None
        self._raise_on_errors(check_homogeneous(self._start, items, label))
        return items

    @staticmethod
    def _raise_on_errors(result: RecurrenceValidationResult) -> None:
        if not result.is_valid:
            raise TemporalTypeMismatchError("; ".join(result.errors))

    def _invalidate_cache(self) -> None:
        if self._cache is not None:
            logger.debug("Invalidating occurrence cache for %s", self.uid)
            self._cache.invalidate()
        self._cache = None

    # -- overrides ----------------------------------------------------------

    @property
    def overrides(self) -> list[tuple[Temporal, RecurrenceSet]]:
        """(original instant, replacement component) pairs in instant order."""
        return [(child.recurrence_id, child) for child in self._overrides]  # type: ignore[misc]

    def add_override(self, child: RecurrenceSet) -> None:
        """Register a single-instance replacement keyed by its RECURRENCE-ID.

        An existing override for the same instant is replaced.
        """
        if child.recurrence_id is None:
            raise ValueError("Override component needs a RECURRENCE-ID")
        require_same_kind(self._start, child.recurrence_id, "series start and RECURRENCE-ID")
        key = sort_key(child.recurrence_id)
        self._overrides = [c for c in self._overrides if sort_key(c.recurrence_id) != key]  # type: ignore[arg-type]
        self._overrides.append(child)
        self._overrides.sort(key=lambda c: sort_key(c.recurrence_id))  # type: ignore[arg-type]
        child.parent = self

    def remove_override(self, instant: Temporal) -> Optional[RecurrenceSet]:
        """Remove and return the override for ``instant``, if any."""
        child = self.override_for(instant)
        if child is not None:
            self._overrides.remove(child)
            child.parent = None
        return child

    def override_for(self, instant: Temporal) -> Optional[RecurrenceSet]:
        key = sort_key(instant)
        for child in self._overrides:
            if sort_key(child.recurrence_id) == key:  # type: ignore[arg-type]
                return child
        return None

    @property
    def state(self) -> SeriesState:
        if self._rule is None:
            return SeriesState.INDIVIDUAL
        if self._overrides:
            return SeriesState.REPEATING_WITH_OVERRIDES
        return SeriesState.REPEATING

    @property
    def effective_duration(self) -> timedelta:
        return self.duration if self.duration is not None else default_duration(self._start)

    # -- assembly -----------------------------------------------------------

    def occurrences(self, from_: Optional[Temporal] = None, end: Optional[Temporal] = None) -> Iterator[Temporal]:
        """Lazily produce occurrences at or after ``from_`` (and at or before ``end``).

        Args:
            from_: Lower bound (inclusive); defaults to the series start
            end: Optional upper bound (inclusive)

        Returns:
            Strictly ascending iterator of temporal values

        Raises:
            TemporalTypeMismatchError: If a bound differs in kind from the start
        """
        lower = self._start if from_ is None else from_
        require_same_kind(self._start, lower, "series start and query start")
        if end is not None:
            require_same_kind(self._start, end, "series start and query end")
        return self._assemble(lower, end)

    def take(self, n: int, from_: Optional[Temporal] = None) -> list[Temporal]:
        """Return the first ``n`` occurrences at or after ``from_``."""
        return list(itertools.islice(self.occurrences(from_), n))

    def _assemble(self, lower: Temporal, end: Optional[Temporal]) -> Iterator[Temporal]:
        rule_stream = self._rule_stream(lower, end)
        additions = sorted(
            (
                v
                for v in (self._additions or ())
                if compare(v, lower) >= 0 and (end is None or compare(v, end) <= 0)
            ),
            key=sort_key,
        )
        excluded = {sort_key(v) for v in (self._exclusions or ())}
        try:
            last_key = None
            for value in heapq.merge(rule_stream, additions, key=sort_key):
                key = sort_key(value)
                if key == last_key:
                    continue
                last_key = key
                if key in excluded:
                    continue
                yield value
        finally:
            rule_stream.close()

    def _rule_stream(self, lower: Temporal, end: Optional[Temporal]):
        """Rule instants >= lower, re-entering through the cache and recording into it."""
        if self._rule is None:
            if compare(self._start, lower) >= 0 and (end is None or compare(self._start, end) <= 0):
                yield self._start
            return

        cache = self._get_cache()
        entry = cache.find_reentry_point(lower)
        cursor = RuleCursor(self._rule, self._start, seed=entry.instant, seed_index=entry.index, end=end)
        cache.begin_walk()
        try:
            for value, index in cursor:
                if index is not None:
                    cache.record(value, index)
                if compare(value, lower) >= 0:
                    yield value
        finally:
            cache.end_walk()

    def _get_cache(self) -> OccurrenceCache:
        if self._cache is None:
            self._cache = OccurrenceCache(self.cache_capacity, self.cache_stride)
        self._cache.ensure_bound(self._start, self._rule)
        return self._cache

    @property
    def cache(self) -> Optional[OccurrenceCache]:
        """The windowed cache, once a query has created it."""
        return self._cache

    def reentry_point(self, query: Temporal) -> Temporal:
        """Instant the rule would be resumed from for a query at ``query``."""
        require_same_kind(self._start, query, "series start and query")
        if self._rule is None:
            return self._start
        return self._get_cache().find_reentry_point(query).instant

    # -- lookups ------------------------------------------------------------

    def earliest_bound(self) -> Temporal:
        """The smallest of start and all additions."""
        candidates = [self._start, *(self._additions or ())]
        return min(candidates, key=sort_key)

    def previous_occurrence(self, value: Temporal) -> Optional[Temporal]:
        """Best-effort latest occurrence strictly before ``value``."""
        require_same_kind(self._start, value, "series start and lookup value")
        earliest = self.earliest_bound()
        if compare(value, earliest) <= 0:
            return None
        before = previous_unit(value)
        lower = self.reentry_point(before)
        for scan_from in (lower, earliest):
            found = None
            for occurrence in self._assemble(scan_from, before):
                found = occurrence
            if found is not None:
                return found
        return None

    def next_occurrence(self, value: Temporal) -> Optional[Temporal]:
        """First occurrence strictly after ``value``."""
        for occurrence in self.occurrences(value):
            if compare(occurrence, value) > 0:
                return occurrence
        return None

    # -- validation ---------------------------------------------------------

    def validate(self) -> RecurrenceValidationResult:
        """Check the set's invariants and return a typed result.

        Errors: mixed temporal kinds, an UNTIL of a different kind, empty
        RDATE/EXDATE containers, a start that is not the first occurrence, and
        a set that produces no occurrence at all. Warnings: UNTIL before the
        start, and overrides whose RECURRENCE-ID is not excluded from the set.
        """
        result = RecurrenceValidationResult()
        for label, values in (("RDATE", self._additions), ("EXDATE", self._exclusions)):
            if values is not None:
                if not values:
                    result.add_error(f"{label} set is present but empty")
                sub = check_homogeneous(self._start, values, label)
                for message in sub.errors:
                    result.add_error(message)

        if self._rule is not None and self._rule.until is not None:
            try:
                if compare(self._rule.until, self._start) < 0:
                    result.add_warning(f"UNTIL {self._rule.until} is before start {self._start}")
            except TemporalTypeMismatchError as e:
                result.add_error(str(e))

        for instant, _child in self.overrides:
            if not self._exclusions or sort_key(instant) not in {sort_key(v) for v in self._exclusions}:
                result.add_warning(f"Override for {instant} does not replace an excluded occurrence")

        if result.errors:
            return result

        first = next(self._assemble(self.earliest_bound(), None), None)
        if first is None:
            result.is_empty = True
            result.add_error("Recurrence set produces no occurrences")
        elif compare(first, self._start) != 0:
            result.add_error(f"Start {self._start} is not the first occurrence (first is {first})")
        return result

    def ensure_valid(self) -> RecurrenceValidationResult:
        """Validate and raise on failure.

        Raises:
            EmptyRecurrenceSetError: If the set produces no occurrences
            RecurrenceValidationError: For any other validation error
        """
        result = self.validate()
        if result.is_empty:
            raise EmptyRecurrenceSetError(
                f"Recurrence set {self.uid!r} produces no occurrences",
                result.errors,
            )
        if not result.is_valid:
            raise RecurrenceValidationError("; ".join(result.errors), result.errors)
        return result

    # -- copying ------------------------------------------------------------

    def copy(self, **changes) -> RecurrenceSet:
        """Return a new set with the same fields (no overrides, no cache).

        Keyword arguments replace constructor fields.
        """
        fields = {
            "start": self._start,
            "rule": self._rule,
            "additions": self._additions,
            "exclusions": self._exclusions,
            "uid": self.uid,
            "summary": self.summary,
            "duration": self.duration,
            "recurrence_id": self._recurrence_id,
            "related_to": self.related_to,
            "cache_capacity": self.cache_capacity,
            "cache_stride": self.cache_stride,
        }
        fields.update(changes)
        return RecurrenceSet(**fields)
