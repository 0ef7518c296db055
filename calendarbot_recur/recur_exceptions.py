"""Exception hierarchy for the calendarbot_recur recurrence engine.

Every failure raised by the engine derives from RecurrenceError so callers can
handle engine problems in one place while still distinguishing the cases that
need different treatment (bad input kinds, bad rules, invalid series).
"""


class RecurrenceError(Exception):
    """Base exception for all recurrence engine errors."""


class TemporalTypeMismatchError(RecurrenceError, TypeError):
    """Two temporal values of different kinds were compared or combined.

    Raised when:
    - A date-only value is compared with a date-time value
    - A naive date-time is compared with a zoned date-time
    - A setter receives additions, exclusions or an UNTIL bound whose kind
      differs from the series start

    Never silently coerced; surfaced at the mutating call.
    """


class RecurrenceConfigurationError(RecurrenceError):
    """A recurrence rule was constructed with invalid settings.

    Raised when:
    - INTERVAL is not a positive integer or COUNT is not positive
    - COUNT and UNTIL are both present
    - A BYxxx value is outside its allowed range
    - BYxxx parts are combined in a way the frequency does not allow
      (e.g. BYWEEKNO with anything but YEARLY)
    - A time-of-day rule is applied to a date-only start
    """


class RecurrenceParseError(RecurrenceConfigurationError):
    """RRULE or date text could not be decoded.

    Raised when:
    - The RRULE grammar is malformed or FREQ is missing
    - A date or date-time string has an unknown form
    - A TZID names an unknown timezone
    """


class RecurrenceValidationError(RecurrenceError):
    """A recurrence set failed validation.

    Carries the list of error messages collected during validation.
    """

    def __init__(self, message: str, errors: "list[str] | None" = None):
        super().__init__(message)
        self.errors = list(errors or [])


class EmptyRecurrenceSetError(RecurrenceValidationError):
    """The assembled occurrence sequence yields no occurrence at all.

    Raised when:
    - Every generated instant is excluded
    - UNTIL precedes the first candidate and there are no additions
    """
