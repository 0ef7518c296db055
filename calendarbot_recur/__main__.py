"""Command-line entry for calendarbot_recur.

Expands a recurrence given on the command line (or the recurring events of an
ICS file) and prints one occurrence per line.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import NoReturn, Optional

from . import _init_logging
from .config_manager import ConfigManager
from .ics_adapter import series_from_ics
from .recur_exceptions import RecurrenceError
from .recur_expander import RecurrenceExpander
from .recur_logging import configure_recur_logging
from .recur_models import RecurrenceRule
from .temporal import Temporal, TemporalKind, format_temporal, kind_of, parse_temporal
from .timezone_utils import resolve_timezone


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for calendarbot_recur CLI.

    Returns:
        Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog="calendarbot_recur",
        description="CalendarBot Recur - expand iCalendar recurrences",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m calendarbot_recur --dtstart 20151109T100000 --rrule "FREQ=DAILY;COUNT=5"
  python -m calendarbot_recur --dtstart 20151109T100000 --rrule "FREQ=WEEKLY;INTERVAL=2;BYDAY=MO,WE,FR" \\
      --from 20151220T000000 --limit 3
  python -m calendarbot_recur --ics calendar.ics --from 20250101 --to 20250201
        """,
    )
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--dtstart", metavar="VALUE", help="Series start (YYYYMMDD, YYYYMMDDTHHMMSS[Z] or TZID=Zone:...)")
    source.add_argument("--ics", metavar="FILE", help="Expand every recurring VEVENT of an ICS file")
    parser.add_argument("--rrule", metavar="RULE", help="Recurrence rule, e.g. FREQ=DAILY;COUNT=5")
    parser.add_argument("--rdate", action="append", default=[], metavar="VALUE", help="Additional date (repeatable)")
    parser.add_argument("--exdate", action="append", default=[], metavar="VALUE", help="Excluded date (repeatable)")
    parser.add_argument("--from", dest="range_start", metavar="VALUE", help="First instant to show (default: series start)")
    parser.add_argument("--to", dest="range_end", metavar="VALUE", help="Last instant to show")
    parser.add_argument("--limit", type=int, default=10, metavar="N", help="Maximum occurrences to print (default: 10)")
    parser.add_argument(
        "--zoned",
        action="store_true",
        help="Interpret local date-times in --tz (or the configured default timezone)",
    )
    parser.add_argument("--tz", metavar="ZONE", help="Timezone for local date-times when --zoned is given")
    parser.add_argument("--json", action="store_true", help="Print instances as JSON lines")
    parser.add_argument("--config", metavar="FILE", help="YAML/JSON configuration file")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser


def _print_occurrences(expander: RecurrenceExpander, series, range_start: Optional[Temporal], range_end: Optional[Temporal], limit: int, as_json: bool) -> None:
    lower = range_start if range_start is not None else series.start
    instances = expander.produce_occurrences(series, lower, range_end)[: max(limit, 0)]
    for instance in instances:
        if as_json:
            print(instance.model_dump_json())
        else:
            print(format_temporal(instance.start))


def run(args: argparse.Namespace) -> int:
    """Execute the CLI command described by ``args``; returns the exit status."""
    config = ConfigManager().load_full_config(args.config)
    _init_logging("DEBUG" if args.debug else config.log_level)
    configure_recur_logging(debug_mode=args.debug, log_level=config.log_level)

    tzid = (args.tz or config.default_timezone) if args.zoned else None

    def parse(value: Optional[str]) -> Optional[Temporal]:
        if value is None:
            return None
        parsed = parse_temporal(value)
        if tzid and kind_of(parsed) is TemporalKind.LOCAL_INSTANT:
            parsed = parsed.replace(tzinfo=resolve_timezone(tzid))  # type: ignore[call-arg]
        return parsed

    expander = RecurrenceExpander(config)
    range_start = parse(args.range_start)
    range_end = parse(args.range_end)

    if args.ics:
        text = Path(args.ics).read_text(encoding="utf-8")
        for series in series_from_ics(text, cache_capacity=config.cache_capacity, cache_stride=config.cache_stride):
            if series.rule is None and not series.additions:
                continue
            print(f"# {series.uid} {series.summary or ''}".rstrip())
            _print_occurrences(expander, series, range_start, range_end, args.limit, args.json)
        return 0

    start = parse(args.dtstart)
    series = expander.new_series(
        start,
        rule=RecurrenceRule.from_ical(args.rrule) if args.rrule else None,
        additions=[parse(v) for v in args.rdate] or None,
        exclusions=[parse(v) for v in args.exdate] or None,
        uid="cli",
    )
    series.ensure_valid()
    _print_occurrences(expander, series, range_start, range_end, args.limit, args.json)
    return 0


def main() -> NoReturn:
    """Run the calendarbot_recur CLI."""
    parser = _create_parser()
    args = parser.parse_args()
    try:
        status = run(args)
    except RecurrenceError as exc:
        print(f"error: {exc}", file=sys.stderr)
        sys.exit(2)
    except (OSError, ValueError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        sys.exit(1)
    sys.exit(status)


if __name__ == "__main__":
    main()
