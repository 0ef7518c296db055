"""Bridge between icalendar VEVENT components and RecurrenceSet.

Reads DTSTART, DTEND/DURATION, RRULE, RDATE, EXDATE and RECURRENCE-ID from
components parsed by the icalendar library and builds RecurrenceSet objects,
attaching RECURRENCE-ID components to their master series as overrides.
Writes series back to VEVENT components for re-serialization.
"""

import logging
from collections.abc import Iterable
from datetime import date, datetime, time
from typing import Any, Optional

from icalendar import Calendar, Event
from icalendar.prop import vDDDLists

from .recur_exceptions import RecurrenceParseError
from .recur_models import RecurrenceRule
from .recurrence_set import RecurrenceSet
from .temporal import Temporal, TemporalKind, kind_of, require_same_kind, sort_key

logger = logging.getLogger(__name__)


def _date_values(prop: Any) -> list[Temporal]:
    """Flatten an RDATE/EXDATE property (single or repeated) into temporal values."""
    if prop is None:
        return []
    props = prop if isinstance(prop, list) else [prop]
    values: list[Temporal] = []
    for item in props:
        # list properties carry .dts; a single typed value carries .dt
        entries = item.dts if hasattr(item, "dts") else [item]
        for entry in entries:
            value = getattr(entry, "dt", entry)
            if isinstance(value, (date, datetime)):
                values.append(value)
            else:
                logger.warning("Skipping unsupported RDATE/EXDATE value %r", value)
    return values


def _align_until(rule: RecurrenceRule, start: Temporal) -> RecurrenceRule:
    """Express UNTIL in the kind of the series start.

    Producers commonly write a UTC UNTIL for floating or date-only series; the
    engine requires matching kinds, so the value is converted at this boundary.
    """
    until = rule.until
    if until is None:
        return rule
    start_kind = kind_of(start)
    until_kind = kind_of(until)
    if start_kind == until_kind:
        return rule

    if start_kind is TemporalKind.CALENDAR_DATE:
        aligned: Temporal = until.date()  # type: ignore[union-attr]
    elif until_kind is TemporalKind.CALENDAR_DATE:
        aligned = datetime.combine(until, time(23, 59, 59), tzinfo=getattr(start, "tzinfo", None))
    elif start_kind is TemporalKind.ZONED_INSTANT:
        aligned = until.replace(tzinfo=start.tzinfo)  # type: ignore[union-attr]
    else:
        aligned = until.replace(tzinfo=None)  # type: ignore[union-attr]
    logger.debug("Aligned UNTIL %s to %s for %s start", until, aligned, start_kind.value)
    return rule.copy_with(until=aligned)


def series_from_event(event: Any, **series_kwargs: Any) -> RecurrenceSet:
    """Build a RecurrenceSet from an icalendar VEVENT.

    Args:
        event: icalendar Event (or any component with DTSTART)
        **series_kwargs: Extra RecurrenceSet arguments (cache settings)

    Returns:
        RecurrenceSet for the component

    Raises:
        RecurrenceParseError: If DTSTART is missing
        TemporalTypeMismatchError: If RDATE/EXDATE kinds differ from DTSTART
    """
    dtstart_prop = event.get("DTSTART")
    if dtstart_prop is None:
        raise RecurrenceParseError(f"Component {event.get('UID')!r} has no DTSTART")
    start = dtstart_prop.dt

    rule: Optional[RecurrenceRule] = None
    rrule_prop = event.get("RRULE")
    if rrule_prop is not None:
        if isinstance(rrule_prop, list):
            if len(rrule_prop) > 1:
                logger.warning("Component %s has %d RRULEs; using the first", event.get("UID"), len(rrule_prop))
            rrule_prop = rrule_prop[0]
        rule = _align_until(RecurrenceRule.from_vrecur(rrule_prop), start)

    duration = None
    if event.get("DURATION") is not None:
        duration = event.get("DURATION").dt
    elif event.get("DTEND") is not None:
        end = event.get("DTEND").dt
        require_same_kind(start, end, "DTSTART and DTEND")
        duration = end - start

    recurrence_id_prop = event.get("RECURRENCE-ID")
    summary = event.get("SUMMARY")
    uid = event.get("UID")
    return RecurrenceSet(
        start,
        rule=rule,
        additions=_date_values(event.get("RDATE")) or None,
        exclusions=_date_values(event.get("EXDATE")) or None,
        uid=str(uid) if uid is not None else None,
        summary=str(summary) if summary is not None else None,
        duration=duration,
        recurrence_id=recurrence_id_prop.dt if recurrence_id_prop is not None else None,
        **series_kwargs,
    )


def series_from_components(events: Iterable[Any], **series_kwargs: Any) -> list[RecurrenceSet]:
    """Build master series from VEVENTs, attaching RECURRENCE-ID events as overrides.

    Overridden instants are added to the master's exclusions so the generated
    instance is replaced rather than duplicated. Overrides without a master are
    returned as individual series.
    """
    masters: dict[str, RecurrenceSet] = {}
    orphans: list[RecurrenceSet] = []
    children: list[RecurrenceSet] = []
    for event in events:
        series = series_from_event(event, **series_kwargs)
        if series.recurrence_id is not None:
            children.append(series)
        elif series.uid is not None and series.uid not in masters:
            masters[series.uid] = series
        else:
            orphans.append(series)

    for child in children:
        master = masters.get(child.uid or "")
        if master is None:
            logger.debug("Override %s for %s has no master series", child.recurrence_id, child.uid)
            orphans.append(child)
            continue
        if not master.exclusions or child.recurrence_id not in master.exclusions:
            master.add_exclusion(child.recurrence_id)  # type: ignore[arg-type]
        master.add_override(child)

    return [*masters.values(), *orphans]


def series_from_ics(ics_text: str, **series_kwargs: Any) -> list[RecurrenceSet]:
    """Parse ICS text and return one RecurrenceSet per master VEVENT.

    Raises:
        RecurrenceParseError: If the text is not valid iCalendar
    """
    try:
        calendar = Calendar.from_ical(ics_text)
    except ValueError as e:
        raise RecurrenceParseError(f"Invalid iCalendar data: {e}") from e
    events = calendar.walk("VEVENT")
    logger.debug("Parsed %d VEVENT components", len(events))
    return series_from_components(events, **series_kwargs)


def series_to_event(series: RecurrenceSet) -> Event:
    """Render a RecurrenceSet as an icalendar Event (overrides not included)."""
    event = Event()
    if series.uid is not None:
        event.add("uid", series.uid)
    if series.summary is not None:
        event.add("summary", series.summary)
    event.add("dtstart", series.start)
    if series.duration is not None:
        event.add("duration", series.duration)
    if series.recurrence_id is not None:
        event.add("recurrence-id", series.recurrence_id)
    if series.related_to is not None:
        event.add("related-to", series.related_to)
    if series.rule is not None:
        event.add("rrule", series.rule.to_vrecur())
    if series.additions:
        event.add("rdate", vDDDLists(sorted(series.additions, key=sort_key)))
    if series.exclusions:
        event.add("exdate", vDDDLists(sorted(series.exclusions, key=sort_key)))
    return event


def series_to_ics(series_list: Iterable[RecurrenceSet], prodid: str = "-//calendarbot//recur//EN") -> str:
    """Serialize series and their overrides into a VCALENDAR document."""
    calendar = Calendar()
    calendar.add("prodid", prodid)
    calendar.add("version", "2.0")
    for series in series_list:
        calendar.add_component(series_to_event(series))
        for _instant, child in series.overrides:
            calendar.add_component(series_to_event(child))
    return calendar.to_ical().decode("utf-8")
