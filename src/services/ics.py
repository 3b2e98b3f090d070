"""
Calendar text (iCalendar) parsing and daily/weekly recurrence expansion.
"""

from dataclasses import replace
from datetime import date, datetime, time, timedelta, tzinfo

from icalendar import Calendar, vRecur

from core.config import LOCAL_TIMEZONE, RECURRENCE_ITERATION_CAP
from core.errors import ParseError
from core.trace import PassTrace
from models.events import MeetingEvent

WEEKDAY_CODES = ["MO", "TU", "WE", "TH", "FR", "SA", "SU"]


# =============================================================================
# VALUE CONVERSION
# =============================================================================


def to_local_naive(value: date | datetime, local_tz: tzinfo = LOCAL_TIMEZONE) -> datetime:
    """Naive local wall-clock datetime for a decoded DATE or DATE-TIME value."""
    if not isinstance(value, datetime):
        return datetime.combine(value, time())
    if value.tzinfo is None:
        # Floating time, or a TZID the zone database does not know
        return value
    return value.astimezone(local_tz).replace(tzinfo=None)


def _all(component, name: str) -> list:
    value = component.get(name)
    if value is None:
        return []
    return value if isinstance(value, list) else [value]


def _first(component, name: str):
    values = _all(component, name)
    return values[0] if values else None


def _text(component, name: str) -> str:
    value = _first(component, name)
    return "" if value is None else str(value)


def _moment(component, name: str) -> date | datetime | None:
    prop = _first(component, name)
    if prop is None:
        return None
    value = getattr(prop, "dt", None)
    if not isinstance(value, date):
        raise ParseError(f"{name} is not a date or date-time: {prop!r}")
    return value


def _categories(component) -> tuple[str, ...]:
    names = []
    for prop in _all(component, "CATEGORIES"):
        cats = getattr(prop, "cats", None)
        if cats is None:
            cats = str(prop).split(",")
        names.extend(str(c).strip() for c in cats)
    return tuple(n for n in names if n)


def _attendance(component, self_email: str) -> tuple[int, str | None]:
    """(attendee count, PARTSTAT of the own identity or None)."""
    attendees = _all(component, "ATTENDEE")
    partstat = None
    for attendee in attendees:
        address = str(attendee).strip().lower()
        if address.startswith("mailto:"):
            address = address[len("mailto:"):].strip()
        if self_email and address == self_email:
            value = attendee.params.get("PARTSTAT")
            partstat = str(value).upper() if value else None
    return len(attendees), partstat


def _exdates(component, local_tz: tzinfo) -> tuple[datetime, ...]:
    found = []
    for prop in _all(component, "EXDATE"):
        for value in prop.dts:
            found.append(to_local_naive(value.dt, local_tz))
    return tuple(found)


# =============================================================================
# PARSER
# =============================================================================


def _build_event(component, self_email: str, local_tz: tzinfo) -> MeetingEvent:
    uid = _text(component, "UID")
    if component.errors:
        name, message = component.errors[0]
        raise ParseError(f"VEVENT {uid or '?'} has an unreadable {name or 'line'}: {message}")

    raw_start = _moment(component, "DTSTART")
    if raw_start is None:
        raise ParseError(f"VEVENT {uid or '?'} without DTSTART")
    all_day = not isinstance(raw_start, datetime)
    start = to_local_naive(raw_start, local_tz)

    raw_end = _moment(component, "DTEND")
    duration = _first(component, "DURATION")
    if raw_end is not None:
        end = to_local_naive(raw_end, local_tz)
    elif duration is not None and isinstance(getattr(duration, "dt", None), timedelta):
        end = start + duration.dt
    elif all_day:
        end = start + timedelta(days=1)
    else:
        raise ParseError(f"VEVENT {uid or '?'} without DTEND")

    if end <= start:
        raise ParseError(f"VEVENT ends before it starts: {start} -> {end}")

    busy = _text(component, "X-MICROSOFT-CDO-BUSYSTATUS") or _text(component, "BUSYSTATUS")
    rrule = _first(component, "RRULE")
    recurrence_id = _moment(component, "RECURRENCE-ID")
    attendee_count, self_partstat = _attendance(component, self_email)

    return MeetingEvent(
        start=start,
        end=end,
        title=_text(component, "SUMMARY"),
        all_day=all_day,
        status=_text(component, "STATUS").strip().upper(),
        transparency=_text(component, "TRANSP").strip().upper(),
        busy_status=busy.strip().upper(),
        uid=uid,
        rrule=rrule.to_ical().decode() if rrule is not None else "",
        categories=_categories(component),
        description=_text(component, "DESCRIPTION"),
        attendee_count=attendee_count,
        self_partstat=self_partstat,
        exdates=_exdates(component, local_tz),
        recurrence_id=to_local_naive(recurrence_id, local_tz) if recurrence_id is not None else None,
    )


def parse_ics(
    content: str,
    self_email: str = "",
    trace: PassTrace | None = None,
    local_tz: tzinfo = LOCAL_TIMEZONE,
) -> list[MeetingEvent]:
    """
    Parse calendar text into MeetingEvents.

    Malformed VEVENT blocks are skipped and recorded in the trace; parsing
    continues with the next block. Only the PARTSTAT of the attendee matching
    self_email is kept. Where a property repeats, the first occurrence wins.

    Raises:
        ParseError: If the text is not an iCalendar document at all
    """
    if not content.strip():
        return []
    try:
        calendars = Calendar.from_ical(content, multiple=True)
    except ValueError as e:
        raise ParseError(f"Unreadable calendar text: {e}") from e

    self_email = self_email.strip().lower()
    events: list[MeetingEvent] = []
    for calendar in calendars:
        for component in calendar.walk("VEVENT"):
            try:
                events.append(_build_event(component, self_email, local_tz))
            except ParseError as e:
                if trace is not None:
                    trace.add("parse_error", f"Skipped calendar event: {e}")
    return events


# =============================================================================
# RECURRENCE EXPANSION
# =============================================================================


def parse_rrule(rule: str) -> vRecur:
    """Decode an RRULE value; an unreadable rule decodes as empty."""
    try:
        return vRecur.from_ical(rule)
    except ValueError:
        return vRecur()


def _rule_value(rule: vRecur, key: str, default=None):
    values = rule.get(key)
    if not values:
        return default
    return values[0] if isinstance(values, list) else values


def _until(rule: vRecur, local_tz: tzinfo) -> datetime | None:
    value = _rule_value(rule, "UNTIL")
    if not isinstance(value, date):
        return None
    if not isinstance(value, datetime):
        # A date-only UNTIL includes that whole day
        return datetime.combine(value, time.max)
    return to_local_naive(value, local_tz)


def _positive_int(value, default: int | None) -> int | None:
    if isinstance(value, int) and value > 0:
        return value
    return default


def expand_occurrences(
    event: MeetingEvent,
    window_start: datetime,
    window_end: datetime,
    excluded_days: set[date] | frozenset[date] = frozenset(),
    local_tz: tzinfo = LOCAL_TIMEZONE,
    cap: int = RECURRENCE_ITERATION_CAP,
) -> list[MeetingEvent]:
    """
    Expand one recurring event into concrete occurrences inside [window_start, window_end).

    Only FREQ=DAILY and FREQ=WEEKLY are walked (with INTERVAL, UNTIL, COUNT,
    BYDAY). Other frequencies pass through as the single master event when it
    intersects the window. COUNT counts emitted occurrences from the series
    start, so excluded dates never consume it. Weekly intervals count whole
    weeks from the DTSTART date.
    """
    rule = parse_rrule(event.rrule)
    freq = str(_rule_value(rule, "FREQ", "")).upper()

    if freq not in ("DAILY", "WEEKLY"):
        if event.end > window_start and event.start < window_end:
            return [event]
        return []

    until = _until(rule, local_tz)
    count = _positive_int(_rule_value(rule, "COUNT"), None)
    interval = _positive_int(_rule_value(rule, "INTERVAL"), 1)

    byday = {str(d).strip().upper()[-2:] for d in rule.get("BYDAY", []) if str(d).strip()}
    if freq == "WEEKLY" and not byday:
        byday = {WEEKDAY_CODES[event.start.weekday()]}

    excluded = {d.date() for d in event.exdates} | set(excluded_days)
    length = event.end - event.start
    base_day = event.start.date()

    day = base_day
    if count is None:
        day = max(base_day, (window_start - length).date())

    occurrences = []
    emitted = 0
    for _ in range(cap):
        # Step by calendar day so wall-clock time survives DST changes
        start = datetime.combine(day, event.start.time())
        if start >= window_end:
            break
        if until is not None and start > until:
            break
        if count is not None and emitted >= count:
            break

        delta_days = (day - base_day).days
        if freq == "DAILY":
            occurs = delta_days % interval == 0
        else:
            occurs = WEEKDAY_CODES[day.weekday()] in byday and (delta_days // 7) % interval == 0

        if occurs and day not in excluded:
            emitted += 1
            end = start + length
            if end > window_start:
                occurrences.append(replace(event, start=start, end=end, rrule="", exdates=()))

        day += timedelta(days=1)

    return occurrences


def overridden_days_by_uid(events: list[MeetingEvent]) -> dict[str, set[date]]:
    """Dates on which a RECURRENCE-ID instance replaces the master occurrence."""
    overrides: dict[str, set[date]] = {}
    for event in events:
        if event.recurrence_id is not None and event.uid:
            overrides.setdefault(event.uid, set()).add(event.recurrence_id.date())
    return overrides


def events_in_window(
    events: list[MeetingEvent],
    window_start: datetime,
    window_end: datetime,
    local_tz: tzinfo = LOCAL_TIMEZONE,
) -> list[MeetingEvent]:
    """All simple events and expanded occurrences intersecting the window."""
    overrides = overridden_days_by_uid(events)
    found = []
    for event in events:
        if event.rrule and event.recurrence_id is None:
            found.extend(
                expand_occurrences(
                    event, window_start, window_end, overrides.get(event.uid, set()), local_tz
                )
            )
        elif event.end > window_start and event.start < window_end:
            found.append(event)
    return found
