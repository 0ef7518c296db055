"""Timezone resolution and clock utilities for calendarbot_recur."""

from __future__ import annotations

import datetime
import logging
import os
import zoneinfo
from typing import ClassVar

from dateutil import parser as date_parser

from .recur_exceptions import RecurrenceParseError

logger = logging.getLogger(__name__)

# Zone used when neither config nor input names one
DEFAULT_TIMEZONE = "UTC"


class TimezoneResolver:
    """Resolves IANA and Windows timezone names to ZoneInfo objects."""

    # Windows timezone names to IANA identifier mapping
    # Common Windows timezones used in ICS files from Outlook/Exchange
    WINDOWS_TZ_MAP: ClassVar[dict[str, str]] = {
        "Pacific Standard Time": "America/Los_Angeles",
        "Mountain Standard Time": "America/Denver",
        "Central Standard Time": "America/Chicago",
        "Eastern Standard Time": "America/New_York",
        "Alaskan Standard Time": "America/Anchorage",
        "Hawaiian Standard Time": "Pacific/Honolulu",
        "Arizona Standard Time": "America/Phoenix",
        "GMT Standard Time": "Europe/London",
        "Central European Standard Time": "Europe/Paris",
        "W. Europe Standard Time": "Europe/Berlin",
        "China Standard Time": "Asia/Shanghai",
        "Tokyo Standard Time": "Asia/Tokyo",
        "India Standard Time": "Asia/Kolkata",
        "AUS Eastern Standard Time": "Australia/Sydney",
        "UTC": "UTC",
    }

    def __init__(self) -> None:
        self._cache: dict[str, zoneinfo.ZoneInfo] = {}

    def resolve(self, name: str) -> zoneinfo.ZoneInfo:
        """Return the ZoneInfo for an IANA or Windows timezone name.

        Args:
            name: Timezone identifier, e.g. "Europe/Berlin" or "Pacific Standard Time"

        Returns:
            Matching ZoneInfo instance

        Raises:
            RecurrenceParseError: If the name is empty or not a known timezone
        """
        key = (name or "").strip().strip('"')
        if not key:
            raise RecurrenceParseError("Empty timezone name")
        if key in self._cache:
            return self._cache[key]

        iana = self.WINDOWS_TZ_MAP.get(key, key)
        if iana != key:
            logger.debug("Mapped Windows timezone %r to %s", key, iana)
        try:
            tz = zoneinfo.ZoneInfo(iana)
        except (zoneinfo.ZoneInfoNotFoundError, ValueError) as e:
            raise RecurrenceParseError(f"Unknown timezone: {name!r}") from e

        self._cache[key] = tz
        return tz


class TimeProvider:
    """Provides current time with test time override support."""

    def now_utc(self) -> datetime.datetime:
        """Return current UTC time with tzinfo.

        Can be overridden for testing via CALENDARBOT_TEST_TIME environment variable.
        Format: ISO 8601 datetime string (e.g., "2025-10-27T08:20:00-07:00")

        Returns:
            Current time in UTC with timezone info
        """
        test_time = os.environ.get("CALENDARBOT_TEST_TIME")
        if test_time:
            try:
                dt = date_parser.isoparse(test_time)
            except ValueError as e:
                logger.warning("Failed to parse CALENDARBOT_TEST_TIME=%r: %s", test_time, e)
            else:
                if dt.tzinfo is not None:
                    return dt.astimezone(datetime.timezone.utc)
                # Assume naive datetime is already UTC
                return dt.replace(tzinfo=datetime.timezone.utc)

        return datetime.datetime.now(datetime.timezone.utc)


# Singleton instances for global use
_resolver = TimezoneResolver()
_time_provider = TimeProvider()


def resolve_timezone(name: str) -> zoneinfo.ZoneInfo:
    """Resolve a timezone name (convenience function).

    Returns:
        ZoneInfo for the name
    """
    return _resolver.resolve(name)


def now_utc() -> datetime.datetime:
    """Get current UTC time (convenience function).

    Returns:
        Current time in UTC
    """
    return _time_provider.now_utc()
