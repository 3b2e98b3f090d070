"""
Builders for engine values used across the tests.
"""

from datetime import date, datetime, timedelta

from core.intervals import PauseInterval
from models.events import AttendanceRow, SourceCommit
from models.worklogs import RemoteWorklogRecord

DAY = date(2025, 3, 3)  # a Monday


def at(hhmm: str, day: date = DAY) -> datetime:
    """Datetime on `day` from 'HH:MM'."""
    return datetime.combine(day, datetime.strptime(hhmm, "%H:%M").time())


def record(ticket: str, start: str, end: str, record_id: str = "", day: date = DAY) -> RemoteWorklogRecord:
    started = at(start, day)
    return RemoteWorklogRecord(
        id=record_id or f"{ticket}-{start}",
        ticket=ticket,
        author_id="me",
        started=started,
        time_spent=int((at(end, day) - started).total_seconds()),
    )


def attendance_row(
    start: str,
    end: str,
    pauses: list[tuple[str, str]] = (),
    description: str = "Arbeitszeit",
    day: date = DAY,
    **extra,
) -> AttendanceRow:
    pause_intervals = [PauseInterval(at(s, day), at(e, day)) for s, e in pauses]
    return AttendanceRow(
        description=description,
        day=day,
        start=at(start, day),
        end=at(end, day),
        duration=at(end, day) - at(start, day),
        pause_total=sum((p.duration for p in pause_intervals), timedelta()),
        pauses=pause_intervals,
        **extra,
    )


def commit(message: str, hhmm: str, day: date = DAY, email: str = "dev@example.com") -> SourceCommit:
    return SourceCommit(
        id=f"{day}-{hhmm}",
        project_id="42",
        created_at=at(hhmm, day),
        message=message,
        author_email=email,
    )
