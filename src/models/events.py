"""
Data models for calendar events, commits, attendance rows and drafts.

Events are dataclasses; occurrences and classified drafts are new instances
built with dataclasses.replace, never mutated in place.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum

from core.intervals import PauseInterval, TimeInterval


@dataclass(frozen=True)
class MeetingEvent(TimeInterval):
    """Parsed calendar event (or one occurrence of a recurring event)."""

    title: str = ""
    all_day: bool = False
    status: str = ""
    transparency: str = ""
    busy_status: str = ""
    uid: str = ""
    rrule: str = ""
    categories: tuple[str, ...] = ()
    description: str = ""
    attendee_count: int = 0
    self_partstat: str | None = None
    exdates: tuple[datetime, ...] = ()
    recurrence_id: datetime | None = None


@dataclass
class SourceCommit:
    """Raw commit as returned by the commit-history collaborator."""

    id: str
    project_id: str
    created_at: datetime  # local wall-clock time
    message: str
    author_email: str = ""
    committer_email: str = ""
    author_name: str = ""


@dataclass(frozen=True)
class CommitTicketEvent:
    """A commit reduced to the ticket it references."""

    at: datetime
    ticket: str
    project_id: str
    first_line: str


class DeltaState(Enum):
    NEW = "new"
    DUPLICATE = "duplicate"
    OVERLAP = "overlap"


@dataclass
class DraftSegment:
    """Provisional ticket-labelled interval produced by one pass."""

    start: datetime
    end: datetime
    ticket: str
    label: str = ""
    state: DeltaState = DeltaState.NEW

    def __post_init__(self):
        if self.end <= self.start:
            raise ValueError(f"Draft end {self.end} must be after start {self.start}")

    @property
    def interval(self) -> TimeInterval:
        return TimeInterval(self.start, self.end)

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @property
    def day(self) -> date:
        return self.start.date()


@dataclass(frozen=True)
class MeetingRule:
    """Title substring -> ticket key routing rule."""

    pattern: str
    ticket: str

    def matches(self, title: str) -> bool:
        return self.pattern.lower() in title.lower()


@dataclass(frozen=True)
class TitleReplacementRule:
    """Trigger word in a meeting title -> alternative wordings to book under."""

    trigger: str
    replacements: tuple[str, ...]


@dataclass
class AttendanceRow:
    """One row of the attendance export (ground truth)."""

    description: str
    day: date
    start: datetime | None = None
    end: datetime | None = None
    duration: timedelta = timedelta()
    pause_total: timedelta = timedelta()
    pauses: list[PauseInterval] = field(default_factory=list)
    absence_total: timedelta = timedelta()  # paid non-work, e.g. a doctor's appointment
    sick_days: float = 0.0
    holiday_days: float = 0.0
    vacation: timedelta = timedelta()
    time_compensation: timedelta = timedelta()
