"""
Attendance rows: loading, classification and per-day work windows.

Rows come as JSON objects:

    {
        "description": "Arbeitszeit",
        "date": "2025-03-03",
        "start": "08:00",
        "end": "16:30",
        "duration_minutes": 510,
        "pause_total_minutes": 30,
        "pauses": ["12:00-12:30"],
        "absence_total_minutes": 0,
        "sick_days": 0,
        "holiday_days": 0,
        "vacation_minutes": 0,
        "time_compensation_minutes": 0
    }
"""

import json
from datetime import date, datetime, timedelta

from core.config import (
    ATTENDANCE_ABSENCE_MARKERS,
    HOMEOFFICE_MARKER,
    HOMEOFFICE_PLACEHOLDER_MINUTES,
    NON_PRODUCTIVE_ROW_MARKERS,
)
from core.errors import ParseError
from core.intervals import PauseInterval, WorkWindow, subtract, total_duration
from core.trace import PassTrace
from models.events import AttendanceRow


# =============================================================================
# LOADING
# =============================================================================


def _parse_time_on(day: date, value: str) -> datetime:
    text = value.strip()
    if "T" in text or len(text) > 8:
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as e:
            raise ParseError(f"Invalid timestamp {text!r}") from e
        return parsed.replace(tzinfo=None)
    fmt = "%H:%M:%S" if text.count(":") == 2 else "%H:%M"
    try:
        clock = datetime.strptime(text, fmt).time()
    except ValueError as e:
        raise ParseError(f"Invalid time {text!r}, expected HH:MM") from e
    return datetime.combine(day, clock)


def _parse_pause(day: date, raw) -> PauseInterval:
    if isinstance(raw, dict):
        start_raw, end_raw = raw.get("start"), raw.get("end")
    elif isinstance(raw, str) and "-" in raw:
        start_raw, end_raw = raw.split("-", 1)
    else:
        raise ParseError(f"Invalid pause {raw!r}")
    if not start_raw or not end_raw:
        raise ParseError(f"Invalid pause {raw!r}")
    start = _parse_time_on(day, start_raw)
    end = _parse_time_on(day, end_raw)
    try:
        return PauseInterval(start, end)
    except ValueError as e:
        raise ParseError(str(e)) from e


def _minutes(raw: dict, key: str) -> timedelta:
    value = raw.get(key) or 0
    try:
        return timedelta(minutes=float(value))
    except (TypeError, ValueError) as e:
        raise ParseError(f"Invalid {key}: {value!r}") from e


def _days(raw: dict, key: str) -> float:
    value = raw.get(key) or 0
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise ParseError(f"Invalid {key}: {value!r}") from e


def parse_attendance_row(raw: dict) -> AttendanceRow:
    """
    Parse one attendance object.

    Raises:
        ParseError: If the date, times or numeric fields are malformed
    """
    if not isinstance(raw, dict):
        raise ParseError(f"Attendance row must be an object, got {type(raw).__name__}")
    try:
        day = datetime.strptime(str(raw.get("date", "")).strip(), "%Y-%m-%d").date()
    except ValueError as e:
        raise ParseError(f"Invalid date {raw.get('date')!r}") from e

    start = _parse_time_on(day, raw["start"]) if raw.get("start") else None
    end = _parse_time_on(day, raw["end"]) if raw.get("end") else None
    if start is not None and end is not None and end <= start:
        raise ParseError(f"Row on {day} ends before it starts")

    duration = _minutes(raw, "duration_minutes")
    if not duration and start is not None and end is not None:
        duration = end - start

    pauses = [_parse_pause(day, p) for p in raw.get("pauses") or []]
    pause_total = _minutes(raw, "pause_total_minutes")
    if not pause_total and pauses:
        pause_total = total_duration(pauses)

    return AttendanceRow(
        description=str(raw.get("description", "")).strip(),
        day=day,
        start=start,
        end=end,
        duration=duration,
        pause_total=pause_total,
        pauses=pauses,
        absence_total=_minutes(raw, "absence_total_minutes"),
        sick_days=_days(raw, "sick_days"),
        holiday_days=_days(raw, "holiday_days"),
        vacation=_minutes(raw, "vacation_minutes"),
        time_compensation=_minutes(raw, "time_compensation_minutes"),
    )


def load_attendance_rows(payload: str | list, trace: PassTrace | None = None) -> list[AttendanceRow]:
    """
    Load attendance rows from JSON text or an already decoded list.

    Malformed rows are skipped and recorded in the trace.
    """
    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError as e:
            raise ParseError(f"Attendance data is not valid JSON: {e}") from e
    if not isinstance(payload, list):
        raise ParseError("Attendance data must be a list of rows")

    rows = []
    for index, raw in enumerate(payload):
        try:
            rows.append(parse_attendance_row(raw))
        except ParseError as e:
            if trace is not None:
                trace.add("parse_error", f"Skipped attendance row {index}: {e}")
    return rows


# =============================================================================
# CLASSIFICATION
# =============================================================================


def rows_for_day(rows: list[AttendanceRow], day: date) -> list[AttendanceRow]:
    return [r for r in rows if r.day == day]


def attendance_days(rows: list[AttendanceRow]) -> list[date]:
    return sorted({r.day for r in rows})


def has_marker(description: str, markers: tuple[str, ...]) -> bool:
    text = description.lower()
    return any(marker in text for marker in markers)


def is_absence_row(row: AttendanceRow) -> bool:
    return has_marker(row.description, ATTENDANCE_ABSENCE_MARKERS)


def is_non_productive_row(row: AttendanceRow) -> bool:
    return has_marker(row.description, NON_PRODUCTIVE_ROW_MARKERS)


def is_placeholder_homeoffice(row: AttendanceRow) -> bool:
    """A default 7-9 hour homeoffice block rather than recorded attendance."""
    if HOMEOFFICE_MARKER not in row.description.lower():
        return False
    if row.start is None or row.end is None:
        return False
    low, high = HOMEOFFICE_PLACEHOLDER_MINUTES
    return low <= (row.end - row.start).total_seconds() / 60 <= high


def work_windows_for_day(rows: list[AttendanceRow], day: date) -> list[WorkWindow]:
    """Productive attendance of one day with all recorded pauses cut out."""
    day_rows = rows_for_day(rows, day)
    raw = [
        WorkWindow(r.start, r.end)
        for r in day_rows
        if r.start is not None
        and r.end is not None
        and not is_absence_row(r)
        and not is_non_productive_row(r)
        and not is_placeholder_homeoffice(r)
    ]
    pauses = [p for r in day_rows for p in r.pauses]
    if not raw or not pauses:
        return raw
    windows = []
    for window in raw:
        windows.extend(WorkWindow(p.start, p.end) for p in subtract(window, pauses))
    return windows


def ignore_meetings_for_day(rows: list[AttendanceRow], day: date) -> bool:
    """Meetings do not count on absence days or days without productive time."""
    if not work_windows_for_day(rows, day):
        return True
    return any(is_absence_row(r) for r in rows_for_day(rows, day))


def paid_non_work_for_day(rows: list[AttendanceRow], day: date) -> timedelta:
    """
    Recorded away-from-desk time (e.g. a doctor's appointment).

    Only counts when the day carries no sick, holiday, vacation or time
    compensation time.
    """
    day_rows = rows_for_day(rows, day)
    sick = sum(r.sick_days for r in day_rows)
    holiday = sum(r.holiday_days for r in day_rows)
    vacation = sum((r.vacation for r in day_rows), timedelta())
    compensation = sum((r.time_compensation for r in day_rows), timedelta())
    if sick or holiday or vacation or compensation:
        return timedelta()
    return sum((r.absence_total for r in day_rows), timedelta())
