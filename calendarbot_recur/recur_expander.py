"""Expansion service materializing occurrence instances for a display range."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from .config_manager import get_config_value
from .occurrence_cache import DEFAULT_CACHE_CAPACITY, DEFAULT_CACHE_STRIDE
from .recur_models import OccurrenceInstance
from .recurrence_set import RecurrenceSet
from .series_editor import DEFAULT_UID_DOMAIN, SeriesEditor, SessionUidGenerator
from .temporal import Temporal, coerce_to_kind, compare, sort_key

logger = logging.getLogger(__name__)


@dataclass
class RecurrenceExpanderConfig:
    """Configuration for occurrence expansion.

    Consolidates all expansion-related settings with explicit defaults.
    """

    cache_capacity: int = DEFAULT_CACHE_CAPACITY
    cache_stride: int = DEFAULT_CACHE_STRIDE
    max_occurrences: int = 250
    uid_domain: str = DEFAULT_UID_DOMAIN

    @classmethod
    def from_settings(cls, settings: Any) -> RecurrenceExpanderConfig:
        """Extract expansion configuration from settings object.

        Args:
            settings: Configuration object or mapping with expansion settings

        Returns:
            RecurrenceExpanderConfig with values from settings or defaults
        """
        return cls(
            cache_capacity=get_config_value(settings, "cache_capacity", DEFAULT_CACHE_CAPACITY),
            cache_stride=get_config_value(settings, "cache_stride", DEFAULT_CACHE_STRIDE),
            max_occurrences=get_config_value(settings, "max_occurrences", 250),
            uid_domain=get_config_value(settings, "uid_domain", DEFAULT_UID_DOMAIN),
        )


class RecurrenceExpander:
    """Produces materialized instances of recurrence sets for a UI date range.

    The display range only bounds which instances are materialized; it never
    changes rule semantics. Overrides replace the instance generated for their
    RECURRENCE-ID.
    """

    def __init__(self, settings: Any = None):
        """Initialize expander with configuration settings.

        Args:
            settings: Optional configuration object (see RecurrenceExpanderConfig)
        """
        self.config = RecurrenceExpanderConfig.from_settings(settings)
        logger.debug(
            "RecurrenceExpander initialized: cache_capacity=%d, cache_stride=%d, max_occurrences=%d",
            self.config.cache_capacity,
            self.config.cache_stride,
            self.config.max_occurrences,
        )

    def new_series(self, start: Temporal, **kwargs: Any) -> RecurrenceSet:
        """Create a RecurrenceSet using this expander's cache settings."""
        kwargs.setdefault("cache_capacity", self.config.cache_capacity)
        kwargs.setdefault("cache_stride", self.config.cache_stride)
        return RecurrenceSet(start, **kwargs)

    def editor(self) -> SeriesEditor:
        """Return a SeriesEditor whose new UIDs use the configured domain."""
        return SeriesEditor(SessionUidGenerator(self.config.uid_domain))

    def produce_occurrences(
        self,
        series: RecurrenceSet,
        range_start: Temporal,
        range_end: Optional[Temporal] = None,
    ) -> list[OccurrenceInstance]:
        """Materialize the occurrences of ``series`` within a display range.

        Args:
            series: Recurrence set to expand
            range_start: First instant of the display range (inclusive)
            range_end: Last instant of the display range (inclusive); when
                omitted only max_occurrences bounds the result

        Returns:
            Instances whose start lies in the range, ordered by start, at
            most max_occurrences

        Raises:
            TemporalTypeMismatchError: If a bound cannot be expressed in the series kind
        """
        lower = coerce_to_kind(range_start, series.start)
        upper = coerce_to_kind(range_end, series.start) if range_end is not None else None
        additions = series.additions or frozenset()
        duration = series.effective_duration

        instances: list[OccurrenceInstance] = []
        overridden = set()
        for instant in series.occurrences(lower, upper):
            if len(instances) >= self.config.max_occurrences:
                logger.warning(
                    "Series %s hit max_occurrences=%d in range %s..%s; truncating",
                    series.uid,
                    self.config.max_occurrences,
                    range_start,
                    range_end,
                )
                break
            instances.append(
                OccurrenceInstance(
                    uid=series.uid or "",
                    start=instant,
                    end=instant + duration,
                    recurrence_id=instant,
                    summary=series.summary,
                    is_addition=instant in additions,
                )
            )

        # overrides are excluded from the generated sequence; their own start
        # decides whether they fall in the range, wherever the RECURRENCE-ID lies
        for instant, child in series.overrides:
            child_start = coerce_to_kind(child.start, series.start)
            if compare(child_start, lower) < 0 or (upper is not None and compare(child_start, upper) > 0):
                continue
            overridden.add(instant)
            instances.append(
                OccurrenceInstance(
                    uid=child.uid or series.uid or "",
                    start=child.start,
                    end=child.start + child.effective_duration,
                    recurrence_id=instant,
                    summary=child.summary if child.summary is not None else series.summary,
                    is_override=True,
                )
            )

        if overridden:
            instances.sort(
                key=lambda inst: (sort_key(coerce_to_kind(inst.start, series.start)), sort_key(inst.recurrence_id))
            )
            instances = instances[: self.config.max_occurrences]

        logger.debug(
            "Expanded series %s: %d instances (%d overrides) in %s..%s",
            series.uid,
            len(instances),
            len(overridden),
            range_start,
            range_end,
        )
        return instances

    def reentry_point(self, series: RecurrenceSet, query: Temporal) -> Temporal:
        """Instant expansion would resume from for ``query``."""
        return series.reentry_point(coerce_to_kind(query, series.start))

    def previous_occurrence(self, series: RecurrenceSet, value: Temporal) -> Optional[Temporal]:
        return series.previous_occurrence(coerce_to_kind(value, series.start))

    def next_occurrence(self, series: RecurrenceSet, value: Temporal) -> Optional[Temporal]:
        return series.next_occurrence(coerce_to_kind(value, series.start))

