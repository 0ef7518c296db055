"""Shared fixtures for calendarbot_recur tests."""

import logging
from collections.abc import Generator
from datetime import date, datetime
from types import SimpleNamespace
from typing import Any
from zoneinfo import ZoneInfo

import pytest

from calendarbot_recur.recur_expander import RecurrenceExpander
from calendarbot_recur.recur_logging import RECUR_MODULES, THIRD_PARTY_LEVELS
from calendarbot_recur.recur_models import RecurrenceRule
from calendarbot_recur.recurrence_set import RecurrenceSet
from calendarbot_recur.series_editor import SeriesEditor


def pytest_configure(config: Any) -> None:
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Fast unit tests")
    config.addinivalue_line("markers", "smoke: Basic smoke tests")


@pytest.fixture
def simple_settings() -> SimpleNamespace:
    """Lightweight settings object used by expander tests.

    Fields:
      - cache_capacity: ring size of each series' occurrence cache
      - cache_stride: rule positions between cached instants
      - max_occurrences: instances materialized per query
      - uid_domain: domain of generated UIDs
    """
    return SimpleNamespace(
        cache_capacity=8,
        cache_stride=3,
        max_occurrences=50,
        uid_domain="test.calendarbot.local",
    )


@pytest.fixture
def berlin() -> ZoneInfo:
    """Deterministic zone with a DST transition, for zoned series tests."""
    return ZoneInfo("Europe/Berlin")


@pytest.fixture
def daily_series() -> RecurrenceSet:
    """Daily 10:00 local series starting 2015-11-09, unbounded."""
    return RecurrenceSet(
        datetime(2015, 11, 9, 10, 0),
        rule=RecurrenceRule.from_ical("FREQ=DAILY"),
        uid="daily@test",
        summary="Standup",
        cache_capacity=8,
        cache_stride=3,
    )


@pytest.fixture
def weekly_date_series() -> RecurrenceSet:
    """All-day weekly series on Mondays, ten occurrences."""
    return RecurrenceSet(
        date(2015, 11, 9),
        rule=RecurrenceRule.from_ical("FREQ=WEEKLY;COUNT=10"),
        uid="weekly@test",
        summary="Bins",
    )


@pytest.fixture
def uid_counter() -> Any:
    """Deterministic UID generator returning new-1@test, new-2@test, ..."""
    counter = {"n": 0}

    def generate() -> str:
        counter["n"] += 1
        return f"new-{counter['n']}@test"

    return generate


@pytest.fixture
def editor(uid_counter: Any) -> SeriesEditor:
    return SeriesEditor(uid_generator=uid_counter)


@pytest.fixture
def expander(simple_settings: SimpleNamespace) -> RecurrenceExpander:
    return RecurrenceExpander(simple_settings)


@pytest.fixture(autouse=True)
def clean_test_environment(monkeypatch: Any) -> Generator[None, Any, None]:
    """Ensure environment variables that alter behavior are unset for each test."""
    for name in (
        "CALENDARBOT_DEBUG",
        "CALENDARBOT_LOG_LEVEL",
        "CALENDARBOT_TEST_TIME",
        "CALENDARBOT_DEFAULT_TIMEZONE",
        "CALENDARBOT_RECUR_CACHE_CAPACITY",
        "CALENDARBOT_RECUR_CACHE_STRIDE",
        "CALENDARBOT_RECUR_MAX_OCCURRENCES",
        "CALENDARBOT_RECUR_UID_DOMAIN",
    ):
        monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture(autouse=True)
def restore_logging_levels() -> Generator[None, Any, None]:
    """Undo logger level changes made by configure_recur_logging and the CLI."""
    names = ["", *RECUR_MODULES, *THIRD_PARTY_LEVELS]
    saved = {name: logging.getLogger(name).level for name in names}
    yield
    for name, level in saved.items():
        logging.getLogger(name).setLevel(level)
