"""
Meeting filtering, per-day union and the two calendar caches.
"""

from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta, tzinfo

from core.config import (
    ACCEPTED_PARTSTATS,
    CANCELLED_TITLE_MARKERS,
    DAY_OFF_TITLE_MARKERS,
    DEFAULT_NON_MEETING_HINTS,
    LOCAL_TIMEZONE,
    MAX_MEETING_HOURS,
    REJECTED_BUSY_STATUSES,
    WORKING_ELSEWHERE_TITLE_MARKERS,
)
from core.intervals import TimeInterval, clip, merge_overlapping
from models.events import MeetingEvent
from services.ics import events_in_window


# =============================================================================
# FILTER PREDICATES
# =============================================================================


def is_cancelled(event: MeetingEvent) -> bool:
    if "CANCELLED" in event.status.upper():
        return True
    title = event.title.lower()
    return any(marker in title for marker in CANCELLED_TITLE_MARKERS)


def is_day_off(event: MeetingEvent) -> bool:
    """All-day event marking vacation, holiday, sick leave or out-of-office."""
    if not event.all_day:
        return False
    title = event.title.lower()
    if any(marker in title for marker in WORKING_ELSEWHERE_TITLE_MARKERS):
        return False
    if any(marker in title for marker in DAY_OFF_TITLE_MARKERS):
        return True
    return event.busy_status.upper() == "OOF"


def crosses_midnight(event: MeetingEvent) -> bool:
    return event.start.date() != event.end.date()


def passes_meeting_filter(event: MeetingEvent, hints: list[str]) -> bool:
    """Shared meeting predicate used by both the day and the range path."""
    if is_cancelled(event) or event.all_day:
        return False
    if crosses_midnight(event) or event.duration > timedelta(hours=MAX_MEETING_HOURS):
        return False
    if event.transparency.upper() == "TRANSPARENT":
        return False
    if event.busy_status.upper() in REJECTED_BUSY_STATUSES:
        return False
    if event.attendee_count == 0:
        return False
    title = event.title.lower()
    return not any(hint in title for hint in hints)


def passes_participation_filter(event: MeetingEvent) -> bool:
    """Range path only: a retained PARTSTAT must be NEEDS-ACTION or ACCEPTED."""
    if event.self_partstat is None:
        return True
    return event.self_partstat.upper() in ACCEPTED_PARTSTATS


def union_meetings(events: list[MeetingEvent], window: TimeInterval) -> list[MeetingEvent]:
    """
    Clip events to the window and union strictly overlapping ones.

    Titles of unioned events are joined with " + ". Meetings that only touch
    stay separate.
    """
    clipped = []
    for event in events:
        part = clip(event, window)
        if part is not None:
            clipped.append(replace(event, start=part.start, end=part.end))
    clipped.sort(key=lambda e: (e.start, e.end))

    unioned = []
    for block in merge_overlapping(clipped):
        members = [e for e in clipped if block.contains(e)]
        unioned.append(
            replace(
                members[0],
                start=block.start,
                end=block.end,
                title=" + ".join(e.title for e in members),
            )
        )
    return unioned


def _day_window(day: date) -> TimeInterval:
    start = datetime.combine(day, datetime.min.time())
    return TimeInterval(start, start + timedelta(days=1))


# =============================================================================
# CACHES
# =============================================================================


@dataclass
class DayCalendar:
    day: date
    meetings: list[MeetingEvent]
    day_off: bool


@dataclass
class DayCache:
    """Day-keyed results, dropped whenever the hint version moves on."""

    version: int = 0
    entries: dict[date, DayCalendar] = field(default_factory=dict)

    def get(self, day: date, version: int) -> DayCalendar | None:
        if version != self.version:
            self.entries.clear()
            self.version = version
        return self.entries.get(day)

    def put(self, calendar: DayCalendar) -> None:
        self.entries[calendar.day] = calendar

    def clear(self) -> None:
        self.entries.clear()


@dataclass
class RangeCache:
    """Per-day meeting buckets for one (identity, from_day, to_day) triple."""

    identity: str = ""
    from_day: date | None = None
    to_day: date | None = None
    version: int = -1
    buckets: dict[date, list[MeetingEvent]] = field(default_factory=dict)

    def covers(self, day: date, identity: str, version: int) -> bool:
        if version != self.version or self.from_day is None or self.to_day is None:
            return False
        if self.identity != identity.strip().lower():
            return False
        return self.from_day <= day <= self.to_day

    def clear(self) -> None:
        self.identity = ""
        self.from_day = None
        self.to_day = None
        self.version = -1
        self.buckets.clear()


# =============================================================================
# NORMALIZER
# =============================================================================


class CalendarNormalizer:
    """
    Turns parsed calendar events into per-day meeting lists.

    Two query paths exist. day_calendar() serves single days from the day
    cache. meetings_in_range() serves a range built with build_range() for one
    identity and additionally drops events whose own PARTSTAT is neither
    NEEDS-ACTION nor ACCEPTED. Queries outside a built range return [].
    """

    def __init__(
        self,
        events: list[MeetingEvent],
        hints: list[str] | None = None,
        local_tz: tzinfo = LOCAL_TIMEZONE,
    ):
        self._events = list(events)
        self._hints = self._normalize_hints(DEFAULT_NON_MEETING_HINTS if hints is None else hints)
        self._hints_version = 0
        self._local_tz = local_tz
        self._day_cache = DayCache()
        self._range_cache = RangeCache()

    @staticmethod
    def _normalize_hints(hints: list[str]) -> list[str]:
        return [h.strip().lower() for h in hints if h.strip()]

    @property
    def hints(self) -> list[str]:
        return list(self._hints)

    @property
    def hints_version(self) -> int:
        return self._hints_version

    def set_hints(self, hints: list[str]) -> None:
        """Replace the non-meeting hints; both caches notice on next access."""
        self._hints = self._normalize_hints(hints)
        self._hints_version += 1

    def set_events(self, events: list[MeetingEvent]) -> None:
        self._events = list(events)
        self.clear_caches()

    def clear_caches(self) -> None:
        self._day_cache.clear()
        self._range_cache.clear()

    def candidates_for_day(self, day: date) -> list[MeetingEvent]:
        window = _day_window(day)
        return events_in_window(self._events, window.start, window.end, self._local_tz)

    def day_calendar(self, day: date) -> DayCalendar:
        cached = self._day_cache.get(day, self._hints_version)
        if cached is not None:
            return cached

        candidates = self.candidates_for_day(day)
        meetings = [e for e in candidates if passes_meeting_filter(e, self._hints)]
        calendar = DayCalendar(
            day=day,
            meetings=union_meetings(meetings, _day_window(day)),
            day_off=any(is_day_off(e) for e in candidates),
        )
        self._day_cache.put(calendar)
        return calendar

    def build_range(self, identity: str, from_day: date, to_day: date) -> None:
        """Precompute meeting buckets for every day in [from_day, to_day]."""
        cache = self._range_cache
        cache.clear()
        cache.identity = identity.strip().lower()
        cache.from_day = from_day
        cache.to_day = to_day
        cache.version = self._hints_version

        day = from_day
        while day <= to_day:
            meetings = [
                e
                for e in self.candidates_for_day(day)
                if passes_meeting_filter(e, self._hints) and passes_participation_filter(e)
            ]
            if meetings:
                cache.buckets[day] = union_meetings(meetings, _day_window(day))
            day += timedelta(days=1)

    def range_covers(self, day: date, identity: str) -> bool:
        return self._range_cache.covers(day, identity, self._hints_version)

    def meetings_in_range(self, day: date, identity: str) -> list[MeetingEvent]:
        if not self.range_covers(day, identity):
            return []
        return list(self._range_cache.buckets.get(day, []))
