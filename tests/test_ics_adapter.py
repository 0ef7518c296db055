"""Unit tests for calendarbot_recur.ics_adapter."""

from datetime import date, datetime, timedelta
from textwrap import dedent

import pytest

from calendarbot_recur.ics_adapter import series_from_ics, series_to_ics
from calendarbot_recur.recur_exceptions import RecurrenceParseError
from calendarbot_recur.recur_expander import RecurrenceExpander
from calendarbot_recur.recur_models import Frequency, SeriesState

pytestmark = pytest.mark.unit


def ics(body: str) -> str:
    lines = ["BEGIN:VCALENDAR", "VERSION:2.0", "PRODID:-//calendarbot//test//EN"]
    lines += dedent(body).strip().splitlines()
    lines.append("END:VCALENDAR")
    return "\r\n".join(lines) + "\r\n"


WEEKLY_WITH_OVERRIDE = ics(
    """
    BEGIN:VEVENT
    UID:weekly-1
    SUMMARY:Team Sync
    DTSTART;TZID=Europe/Berlin:20151109T100000
    DTEND;TZID=Europe/Berlin:20151109T110000
    RRULE:FREQ=WEEKLY;COUNT=4
    EXDATE;TZID=Europe/Berlin:20151116T100000
    END:VEVENT
    BEGIN:VEVENT
    UID:weekly-1
    SUMMARY:Team Sync (moved)
    RECURRENCE-ID;TZID=Europe/Berlin:20151123T100000
    DTSTART;TZID=Europe/Berlin:20151123T150000
    DTEND;TZID=Europe/Berlin:20151123T160000
    END:VEVENT
    """
)


def test_master_and_override_are_joined(berlin):
    (series,) = series_from_ics(WEEKLY_WITH_OVERRIDE)
    assert series.uid == "weekly-1"
    assert series.rule.frequency is Frequency.WEEKLY
    assert series.duration == timedelta(hours=1)
    assert series.state is SeriesState.REPEATING_WITH_OVERRIDES
    assert datetime(2015, 11, 23, 10, tzinfo=berlin) in series.exclusions
    assert list(series.occurrences()) == [
        datetime(2015, 11, 9, 10, tzinfo=berlin),
        datetime(2015, 11, 30, 10, tzinfo=berlin),
    ]


def test_expansion_substitutes_override(berlin):
    (series,) = series_from_ics(WEEKLY_WITH_OVERRIDE)
    instances = RecurrenceExpander().produce_occurrences(series, date(2015, 11, 1), date(2015, 12, 31))
    assert [i.start for i in instances] == [
        datetime(2015, 11, 9, 10, tzinfo=berlin),
        datetime(2015, 11, 23, 15, tzinfo=berlin),
        datetime(2015, 11, 30, 10, tzinfo=berlin),
    ]
    assert instances[1].summary == "Team Sync (moved)"
    assert instances[1].end == datetime(2015, 11, 23, 16, tzinfo=berlin)


def test_all_day_series_with_rdate():
    (series,) = series_from_ics(
        ics(
            """
            BEGIN:VEVENT
            UID:bins
            DTSTART;VALUE=DATE:20151109
            RRULE:FREQ=WEEKLY;COUNT=2
            RDATE;VALUE=DATE:20151111,20151112
            END:VEVENT
            """
        )
    )
    assert list(series.occurrences()) == [
        date(2015, 11, 9),
        date(2015, 11, 11),
        date(2015, 11, 12),
        date(2015, 11, 16),
    ]


def test_utc_until_on_floating_series_is_aligned():
    (series,) = series_from_ics(
        ics(
            """
            BEGIN:VEVENT
            UID:floating
            DTSTART:20151109T100000
            RRULE:FREQ=DAILY;UNTIL=20151111T100000Z
            END:VEVENT
            """
        )
    )
    assert series.rule.until == datetime(2015, 11, 11, 10)
    assert len(list(series.occurrences())) == 3


def test_override_without_master_is_kept_individually():
    result = series_from_ics(
        ics(
            """
            BEGIN:VEVENT
            UID:orphan
            RECURRENCE-ID:20151110T100000
            DTSTART:20151110T120000
            END:VEVENT
            """
        )
    )
    assert len(result) == 1
    assert result[0].recurrence_id == datetime(2015, 11, 10, 10)


def test_missing_dtstart_raises():
    with pytest.raises(RecurrenceParseError):
        series_from_ics(ics("BEGIN:VEVENT\nUID:nostart\nEND:VEVENT"))


def test_invalid_text_raises():
    with pytest.raises(RecurrenceParseError):
        series_from_ics("this is not a calendar")


def test_round_trip_preserves_occurrences():
    original = series_from_ics(WEEKLY_WITH_OVERRIDE)
    text = series_to_ics(original)
    assert "RRULE:FREQ=WEEKLY;COUNT=4" in text
    (reparsed,) = series_from_ics(text)
    assert list(reparsed.occurrences()) == list(original[0].occurrences())
    assert len(reparsed.overrides) == 1
