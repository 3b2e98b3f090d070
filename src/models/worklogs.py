"""
Data models for remote worklogs, adjustment plans and day comparisons.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum

from core.intervals import PauseInterval, TimeInterval


@dataclass(frozen=True)
class RemoteWorklogRecord:
    """A worklog already booked in the ticketing system."""

    id: str
    ticket: str
    author_id: str
    started: datetime  # local wall-clock time
    time_spent: int  # seconds

    @property
    def end(self) -> datetime:
        return self.started + timedelta(seconds=self.time_spent)

    @property
    def interval(self) -> TimeInterval:
        return TimeInterval(self.started, self.end)


@dataclass
class IssueSummary:
    key: str
    summary: str


@dataclass
class WorklogResponse:
    """Result of a create/update call against the ticketing system."""

    ok: bool
    status_code: int = 0
    body: str = ""


# =============================================================================
# ADJUSTMENTS
# =============================================================================


class AdjustmentType(Enum):
    MOVE_START = "move_start"
    MOVE_END = "move_end"
    SHORTEN_BEFORE = "shorten_before"
    SHORTEN_AFTER = "shorten_after"
    SPLIT = "split"
    DELETE = "delete"


def _clock(dt: datetime) -> str:
    return dt.strftime("%H:%M")


@dataclass
class AdjustmentOperation:
    """One edit against a remote worklog record."""

    type: AdjustmentType
    record: RemoteWorklogRecord
    new_start: datetime | None = None
    new_duration: int | None = None  # seconds
    split_parts: list[TimeInterval] = field(default_factory=list)  # created after the update
    pause: PauseInterval | None = None
    label: str = ""

    @property
    def new_end(self) -> datetime | None:
        if self.new_start is None or self.new_duration is None:
            return None
        return self.new_start + timedelta(seconds=self.new_duration)

    @property
    def description(self) -> str:
        old = f"{_clock(self.record.started)}-{_clock(self.record.end)}"
        key = self.record.ticket
        if self.type == AdjustmentType.DELETE:
            return f"{key}: {old} -> delete"
        new = f"{_clock(self.new_start)}-{_clock(self.new_end)}"
        for part in self.split_parts:
            new += f" + {_clock(part.start)}-{_clock(part.end)}"
        return f"{key}: {old} -> {new}"


@dataclass
class DayAdjustmentPlan:
    day: date
    operations: list[AdjustmentOperation] = field(default_factory=list)
    pause_total: timedelta = timedelta()
    paid_non_work: timedelta = timedelta()
    remote_gap_total: timedelta = timedelta()

    @property
    def has_changes(self) -> bool:
        return bool(self.operations)

    def grouped(self) -> dict[AdjustmentType, list[AdjustmentOperation]]:
        groups: dict[AdjustmentType, list[AdjustmentOperation]] = {}
        for op in self.operations:
            groups.setdefault(op.type, []).append(op)
        return groups


class ApplyStatus(Enum):
    OK = "ok"
    FAILED = "failed"
    PARTIAL = "partial"  # split: first half updated, second half not created


@dataclass
class ApplyOutcome:
    operation: AdjustmentOperation
    status: ApplyStatus
    message: str = ""


# =============================================================================
# COMPARISON
# =============================================================================


class DifferenceType(Enum):
    START = "start"
    END = "end"
    PAUSE = "pause"
    DURATION = "duration"
    BEFORE_WORK = "before_work"
    AFTER_WORK = "after_work"
    DURING_BREAK = "during_break"


@dataclass
class TimeDifference:
    type: DifferenceType
    message: str
    local_value: str = ""
    remote_value: str = ""
    record: RemoteWorklogRecord | None = None


@dataclass
class DayComparison:
    """Comparison result for one calendar day."""

    day: date
    kind: str  # "compared", "remote_only", "local_only", "absence"
    local_start: datetime | None = None
    local_end: datetime | None = None
    local_pause: timedelta = timedelta()
    local_net: timedelta = timedelta()
    remote_start: datetime | None = None
    remote_end: datetime | None = None
    remote_pause: timedelta = timedelta()
    remote_net: timedelta = timedelta()
    differences: list[TimeDifference] = field(default_factory=list)

    @property
    def matches(self) -> bool:
        return not self.differences
