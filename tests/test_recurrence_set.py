"""Unit tests for calendarbot_recur.recurrence_set.RecurrenceSet."""

from datetime import date, datetime, timedelta, timezone
from itertools import islice

import pytest

from calendarbot_recur.recur_exceptions import (
    EmptyRecurrenceSetError,
    RecurrenceConfigurationError,
    RecurrenceValidationError,
    TemporalTypeMismatchError,
)
from calendarbot_recur.recur_models import RecurrenceRule, SeriesState
from calendarbot_recur.recurrence_set import RecurrenceSet, check_homogeneous

pytestmark = pytest.mark.unit

START = datetime(2015, 11, 9, 10)


def dt(day: int, month: int = 11, year: int = 2015, hour: int = 10, minute: int = 0) -> datetime:
    return datetime(year, month, day, hour, minute)


class TestConstruction:
    def test_individual_component_yields_only_start(self):
        single = RecurrenceSet(START, uid="one")
        assert list(single.occurrences()) == [START]
        assert single.state is SeriesState.INDIVIDUAL

    def test_mixed_kind_additions_rejected(self):
        with pytest.raises(TemporalTypeMismatchError):
            RecurrenceSet(START, additions=[date(2015, 11, 20)])

    def test_mixed_kind_exclusion_rejected_on_mutation(self, daily_series):
        with pytest.raises(TemporalTypeMismatchError):
            daily_series.add_exclusion(datetime(2015, 11, 10, 10, tzinfo=timezone.utc))

    def test_rule_not_applicable_to_date_start_rejected(self):
        with pytest.raises(RecurrenceConfigurationError):
            RecurrenceSet(date(2015, 11, 9), rule=RecurrenceRule.from_ical("FREQ=HOURLY"))

    def test_empty_containers_become_none(self, daily_series):
        daily_series.additions = []
        daily_series.add_exclusion(dt(10))
        assert daily_series.remove_exclusion(dt(10))
        assert daily_series.additions is None
        assert daily_series.exclusions is None

    def test_check_homogeneous_reports_each_mismatch(self):
        result = check_homogeneous(START, [dt(10), date(2015, 11, 11), "x"], "RDATE")
        assert len(result.errors) == 2


class TestAssembly:
    def test_additions_merge_in_order_and_deduplicate(self, daily_series):
        daily_series.additions = [dt(10, hour=15), dt(11)]
        assert daily_series.take(4) == [dt(9), dt(10), dt(10, hour=15), dt(11)]

    def test_exclusions_remove_exact_values_only(self, daily_series):
        daily_series.exclusions = [dt(10), dt(11, minute=1)]
        assert daily_series.take(3) == [dt(9), dt(11), dt(12)]

    def test_exclusion_also_removes_addition(self):
        series = RecurrenceSet(START, additions=[dt(20)], exclusions=[dt(20)])
        assert list(series.occurrences()) == [START]

    def test_occurrences_from_and_end_bounds_are_inclusive(self, daily_series):
        assert list(daily_series.occurrences(dt(12), dt(14))) == [dt(12), dt(13), dt(14)]

    def test_occurrences_from_between_instants(self, daily_series):
        assert daily_series.take(2, from_=dt(12, hour=11)) == [dt(13), dt(14)]

    def test_occurrences_are_strictly_ascending(self):
        series = RecurrenceSet(
            START,
            rule=RecurrenceRule.from_ical("FREQ=WEEKLY;BYDAY=MO,WE,FR"),
            additions=[dt(10, hour=8), dt(11), dt(30, hour=23)],
            exclusions=[dt(13)],
        )
        values = series.take(40)
        assert all(a < b for a, b in zip(values, values[1:]))
        assert dt(13) not in values
        assert dt(10, hour=8) in values

    def test_occurrences_query_kind_must_match(self, daily_series):
        with pytest.raises(TemporalTypeMismatchError):
            daily_series.occurrences(date(2015, 11, 12))

    def test_infinite_rule_is_lazy(self, daily_series):
        assert len(list(islice(daily_series.occurrences(), 1000))) == 1000

    def test_count_is_not_reset_by_query_start(self):
        series = RecurrenceSet(START, rule=RecurrenceRule.from_ical("FREQ=DAILY;COUNT=5"))
        assert list(series.occurrences(dt(12))) == [dt(12), dt(13)]
        assert list(series.occurrences(dt(12))) == [dt(12), dt(13)]

    def test_date_series(self, weekly_date_series):
        weekly_date_series.add_exclusion(date(2015, 11, 16))
        assert weekly_date_series.take(3) == [date(2015, 11, 9), date(2015, 11, 23), date(2015, 11, 30)]


class TestCachedReentry:
    def test_reentry_matches_full_recomputation(self, daily_series):
        far = dt(9, month=2, year=2016)
        list(islice(daily_series.occurrences(), 120))
        cached = daily_series.take(5, from_=far)
        fresh = RecurrenceSet(START, rule=daily_series.rule).take(5, from_=far)
        assert cached == fresh

    def test_reentry_point_moves_forward_after_walk(self, daily_series):
        assert daily_series.reentry_point(dt(30)) == START
        list(daily_series.occurrences(START, dt(30)))
        point = daily_series.reentry_point(dt(30))
        assert START < point <= dt(30)

    def test_count_rule_resumed_from_cache_keeps_limit(self):
        series = RecurrenceSet(
            START,
            rule=RecurrenceRule.from_ical("FREQ=DAILY;COUNT=10"),
            cache_capacity=4,
            cache_stride=2,
        )
        assert len(list(series.occurrences())) == 10
        assert list(series.occurrences(dt(17))) == [dt(17), dt(18)]
        assert series.cache.hits >= 1

    def test_backward_queries_fill_low_end(self, daily_series):
        list(daily_series.occurrences(dt(1, month=3, year=2016), dt(10, month=3, year=2016)))
        list(daily_series.occurrences(START, dt(20)))
        entries = daily_series.cache.entries()
        assert entries[0].instant == START
        assert [e.instant for e in entries] == sorted(e.instant for e in entries)

    def test_rule_change_invalidates_cache(self, daily_series):
        list(daily_series.occurrences(START, dt(30)))
        assert len(daily_series.cache) > 0
        daily_series.rule = RecurrenceRule.from_ical("FREQ=DAILY;INTERVAL=2")
        assert daily_series.cache is None
        assert daily_series.take(3, from_=dt(20)) == [dt(21), dt(23), dt(25)]

    def test_start_change_invalidates_cache(self, daily_series):
        list(daily_series.occurrences(START, dt(30)))
        daily_series.start = dt(9, hour=12)
        assert daily_series.take(2, from_=dt(20)) == [dt(20, hour=12), dt(21, hour=12)]


class TestLookups:
    def test_next_occurrence_is_strictly_after(self, daily_series):
        assert daily_series.next_occurrence(dt(12)) == dt(13)
        assert daily_series.next_occurrence(dt(12, hour=9)) == dt(12)

    def test_previous_occurrence_is_strictly_before(self, daily_series):
        assert daily_series.previous_occurrence(dt(12)) == dt(11)
        assert daily_series.previous_occurrence(dt(12, hour=11)) == dt(12)
        assert daily_series.previous_occurrence(START) is None

    def test_previous_occurrence_skips_exclusions(self, daily_series):
        daily_series.exclusions = [dt(11)]
        assert daily_series.previous_occurrence(dt(12)) == dt(10)

    def test_next_occurrence_after_last_is_none(self, weekly_date_series):
        assert weekly_date_series.next_occurrence(date(2016, 1, 11)) is None

    def test_earliest_bound_includes_additions(self, daily_series):
        daily_series.additions = [dt(1)]
        assert daily_series.earliest_bound() == dt(1)


class TestOverridesAndState:
    def test_override_changes_state_and_links_parent(self, daily_series):
        child = RecurrenceSet(dt(11, hour=14), uid=daily_series.uid, recurrence_id=dt(11))
        daily_series.add_exclusion(dt(11))
        daily_series.add_override(child)
        assert daily_series.state is SeriesState.REPEATING_WITH_OVERRIDES
        assert child.parent is daily_series
        assert daily_series.override_for(dt(11)) is child

    def test_override_without_recurrence_id_rejected(self, daily_series):
        with pytest.raises(ValueError):
            daily_series.add_override(RecurrenceSet(dt(11, hour=14)))

    def test_override_for_same_instant_replaces_previous(self, daily_series):
        first = RecurrenceSet(dt(11, hour=14), recurrence_id=dt(11))
        second = RecurrenceSet(dt(11, hour=16), recurrence_id=dt(11))
        daily_series.add_override(first)
        daily_series.add_override(second)
        assert daily_series.overrides == [(dt(11), second)]

    def test_remove_override_returns_child(self, daily_series):
        child = RecurrenceSet(dt(11, hour=14), recurrence_id=dt(11))
        daily_series.add_override(child)
        assert daily_series.remove_override(dt(11)) is child
        assert child.parent is None
        assert daily_series.state is SeriesState.REPEATING

    def test_effective_duration_defaults(self, daily_series, weekly_date_series):
        assert daily_series.effective_duration == timedelta(0)
        assert weekly_date_series.effective_duration == timedelta(days=1)


class TestValidation:
    def test_valid_series(self, daily_series):
        result = daily_series.validate()
        assert result.is_valid
        assert result.warnings == []

    def test_start_not_first_occurrence_is_error(self):
        series = RecurrenceSet(START, rule=RecurrenceRule.from_ical("FREQ=MONTHLY;BYMONTHDAY=-2"))
        result = series.validate()
        assert not result.is_valid
        with pytest.raises(RecurrenceValidationError):
            series.ensure_valid()

    def test_empty_set_is_reported(self):
        series = RecurrenceSet(START, rule=RecurrenceRule.from_ical("FREQ=DAILY;COUNT=2"))
        series.exclusions = [dt(9), dt(10)]
        result = series.validate()
        assert result.is_empty
        with pytest.raises(EmptyRecurrenceSetError):
            series.ensure_valid()

    def test_sub_daily_rule_matching_no_day_is_empty(self):
        series = RecurrenceSet(
            dt(1, month=1, hour=0),
            rule=RecurrenceRule.from_ical("FREQ=SECONDLY;BYMONTH=6;UNTIL=20150301T000000"),
        )
        with pytest.raises(EmptyRecurrenceSetError):
            series.ensure_valid()

    def test_impossible_month_day_is_rejected_before_expansion(self):
        with pytest.raises(RecurrenceConfigurationError):
            RecurrenceSet(START, rule=RecurrenceRule.from_ical("FREQ=HOURLY;BYMONTH=2;BYMONTHDAY=30"))

    def test_until_before_start_warns(self):
        series = RecurrenceSet(
            START,
            rule=RecurrenceRule.from_ical("FREQ=DAILY;UNTIL=20151101T000000"),
            additions=[dt(9)],
        )
        result = series.validate()
        assert any("UNTIL" in w for w in result.warnings)

    def test_override_not_excluded_warns(self, daily_series):
        daily_series.add_override(RecurrenceSet(dt(11, hour=14), recurrence_id=dt(11)))
        result = daily_series.validate()
        assert result.is_valid
        assert result.warnings

    def test_copy_has_no_overrides_or_cache(self, daily_series):
        daily_series.add_override(RecurrenceSet(dt(11, hour=14), recurrence_id=dt(11)))
        list(daily_series.occurrences(START, dt(20)))
        clone = daily_series.copy(uid="clone")
        assert clone.uid == "clone"
        assert clone.overrides == []
        assert clone.cache is None
        assert clone.take(3) == daily_series.take(3)
