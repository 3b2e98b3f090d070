"""
Aggregate comparison of attendance against remote worklogs, plus outlier detection.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta

from core.config import (
    COMPARE_DURATION_TOLERANCE_MINUTES,
    COMPARE_EDGE_TOLERANCE_MINUTES,
    COMPARE_IGNORED_GAP_MINUTES,
    COMPARISON_ABSENCE_MARKERS,
)
from models.events import AttendanceRow
from models.worklogs import DayComparison, DifferenceType, RemoteWorklogRecord, TimeDifference
from services.attendance import has_marker, rows_for_day

ONE_HOUR = timedelta(minutes=60)


def _minute_of_day(dt: datetime) -> int:
    return dt.hour * 60 + dt.minute


def _minutes(delta: timedelta) -> int:
    return int(delta.total_seconds() // 60)


def _clock(dt: datetime | None) -> str:
    return dt.strftime("%H:%M") if dt else "-"


def format_duration(delta: timedelta) -> str:
    hours, minutes = divmod(_minutes(delta), 60)
    return f"{hours}h {minutes}m" if hours else f"{minutes}m"


def same_time(a: datetime, b: datetime) -> bool:
    return abs(_minute_of_day(a) - _minute_of_day(b)) <= COMPARE_EDGE_TOLERANCE_MINUTES


def same_duration(a: timedelta, b: timedelta) -> bool:
    return abs(_minutes(a) - _minutes(b)) <= COMPARE_DURATION_TOLERANCE_MINUTES


def is_comparison_absence(row: AttendanceRow) -> bool:
    return has_marker(row.description, COMPARISON_ABSENCE_MARKERS)


def is_full_absence_day(day_rows: list[AttendanceRow]) -> bool:
    """Absence recorded and no work row with start and end (half days compare normally)."""
    has_work = any(
        r.start is not None and r.end is not None and not is_comparison_absence(r) for r in day_rows
    )
    has_absence = any(
        r.sick_days > 0
        or r.holiday_days > 0
        or r.vacation > ONE_HOUR
        or r.time_compensation > ONE_HOUR
        or is_comparison_absence(r)
        for r in day_rows
    )
    return has_absence and not has_work


# =============================================================================
# AGGREGATES
# =============================================================================


@dataclass
class LocalAggregate:
    start: datetime | None
    end: datetime | None
    pause: timedelta
    paid_non_work: timedelta
    net: timedelta
    pauses: list


@dataclass
class RemoteAggregate:
    start: datetime
    end: datetime
    pause: timedelta
    ignored_gaps: timedelta
    net: timedelta


def local_aggregate(day_rows: list[AttendanceRow]) -> LocalAggregate:
    start = end = None
    pause = paid = net = timedelta()
    pauses = []
    for row in day_rows:
        if is_comparison_absence(row):
            continue
        if row.start is not None and (start is None or row.start < start):
            start = row.start
        if row.end is not None and (end is None or row.end > end):
            end = row.end
        pause += row.pause_total
        paid += row.absence_total
        # Paid non-work stays in net time; it is booked remotely
        net += row.duration - row.pause_total
        pauses.extend(row.pauses)
    return LocalAggregate(start, end, pause, paid, net, pauses)


def remote_aggregate(records: list[RemoteWorklogRecord]) -> RemoteAggregate:
    """Envelope and gap totals on minute resolution; gaps of a minute or less are not pauses."""
    ordered = sorted(records, key=lambda r: r.started)
    pause = ignored = timedelta()
    for previous, current in zip(ordered, ordered[1:]):
        gap = _minute_of_day(current.started) - _minute_of_day(previous.end)
        if gap > COMPARE_IGNORED_GAP_MINUTES:
            pause += timedelta(minutes=gap)
        elif gap > 0:
            ignored += timedelta(minutes=gap)
    return RemoteAggregate(
        start=min(r.started for r in ordered),
        end=max(r.end for r in ordered),
        pause=pause,
        ignored_gaps=ignored,
        net=sum((timedelta(seconds=r.time_spent) for r in ordered), timedelta()),
    )


# =============================================================================
# COMPARISON
# =============================================================================


def compare_day(local: LocalAggregate, remote: RemoteAggregate) -> list[TimeDifference]:
    differences = []

    if local.start is not None and not same_time(local.start, remote.start):
        differences.append(
            TimeDifference(
                DifferenceType.START,
                f"Start differs: attendance {_clock(local.start)}, worklogs {_clock(remote.start)}",
                _clock(local.start),
                _clock(remote.start),
            )
        )

    if local.end is not None:
        end_matches = same_time(local.end, remote.end)
        if not end_matches and local.paid_non_work > timedelta():
            # Paid non-work at the end of the day is not booked remotely
            end_matches = same_time(local.end, remote.end + local.paid_non_work)
        if not end_matches:
            differences.append(
                TimeDifference(
                    DifferenceType.END,
                    f"End differs: attendance {_clock(local.end)}, worklogs {_clock(remote.end)}",
                    _clock(local.end),
                    _clock(remote.end),
                )
            )

    if not same_duration(local.pause, remote.pause):
        differences.append(
            TimeDifference(
                DifferenceType.PAUSE,
                f"Pause differs: attendance {format_duration(local.pause)}, "
                f"worklogs {format_duration(remote.pause)}",
                format_duration(local.pause),
                format_duration(remote.pause),
            )
        )

    remote_net = remote.net + remote.ignored_gaps
    if not same_duration(local.net, remote_net):
        differences.append(
            TimeDifference(
                DifferenceType.DURATION,
                f"Net time differs: attendance {format_duration(local.net)}, "
                f"worklogs {format_duration(remote_net)}",
                format_duration(local.net),
                format_duration(remote_net),
            )
        )
    return differences


def _during_break(record: RemoteWorklogRecord, reason: str) -> TimeDifference:
    return TimeDifference(
        DifferenceType.DURING_BREAK,
        f"[{record.ticket}] {_clock(record.started)}-{_clock(record.end)}: {reason}",
        remote_value=f"{_clock(record.started)}-{_clock(record.end)}",
        record=record,
    )


def find_outliers(local: LocalAggregate, records: list[RemoteWorklogRecord]) -> list[TimeDifference]:
    """
    Flag records booked before work start, after work end, or inside a pause.

    Each record is reported once. Touching a pause boundary is not an outlier.
    """
    if local.start is None or local.end is None:
        return [_during_break(r, "no attendance time recorded") for r in records]

    tolerance = COMPARE_EDGE_TOLERANCE_MINUTES
    work_start = _minute_of_day(local.start)
    work_end = _minute_of_day(local.end)
    pause_ranges = [(_minute_of_day(p.start), _minute_of_day(p.end)) for p in local.pauses]

    outliers = []
    for record in sorted(records, key=lambda r: r.started):
        rec_start = _minute_of_day(record.started)
        rec_end = _minute_of_day(record.end)

        if rec_start < work_start - tolerance:
            outliers.append(
                TimeDifference(
                    DifferenceType.BEFORE_WORK,
                    f"[{record.ticket}] starts {_clock(record.started)} before work start {_clock(local.start)}",
                    _clock(local.start),
                    _clock(record.started),
                    record,
                )
            )
            continue

        if rec_end > work_end + tolerance:
            outliers.append(
                TimeDifference(
                    DifferenceType.AFTER_WORK,
                    f"[{record.ticket}] ends {_clock(record.end)} after work end {_clock(local.end)}",
                    _clock(local.end),
                    _clock(record.end),
                    record,
                )
            )
            continue

        for pause_start, pause_end in pause_ranges:
            starts_inside = pause_start <= rec_start < pause_end
            ends_inside = pause_start < rec_end <= pause_end
            spans = rec_start < pause_start and rec_end > pause_end
            if starts_inside or ends_inside or spans:
                outliers.append(
                    _during_break(
                        record,
                        f"during pause {pause_start // 60:02d}:{pause_start % 60:02d}"
                        f"-{pause_end // 60:02d}:{pause_end % 60:02d}",
                    )
                )
                break
    return outliers


def compare(
    rows: list[AttendanceRow],
    remote_by_day: dict[date, list[RemoteWorklogRecord]],
    days: list[date],
    outlier_mode: bool = False,
) -> list[DayComparison]:
    """
    Compare attendance with remote worklogs for the given days.

    Full-absence days are skipped, except in outlier mode where every record
    on them is reported. Weekends without records are skipped. Days with only
    one side are reported as remote_only / local_only (local_only is dropped in
    outlier mode).
    """
    results = []
    for day in sorted(set(days)):
        day_rows = rows_for_day(rows, day)
        records = remote_by_day.get(day, [])

        if is_full_absence_day(day_rows):
            if outlier_mode and records:
                reason = f"absence day ({day_rows[0].description})"
                results.append(
                    DayComparison(
                        day=day,
                        kind="absence",
                        differences=[_during_break(r, reason) for r in records],
                    )
                )
            continue

        if day.weekday() >= 5 and not records:
            continue

        has_local = any(r.start is not None and r.end is not None for r in day_rows)
        if not has_local and not records:
            continue

        if not has_local:
            differences = []
            if outlier_mode:
                differences = [_during_break(r, "no attendance entry") for r in records]
            remote = remote_aggregate(records)
            results.append(
                DayComparison(
                    day=day,
                    kind="remote_only",
                    remote_start=remote.start,
                    remote_end=remote.end,
                    remote_pause=remote.pause,
                    remote_net=remote.net,
                    differences=differences,
                )
            )
            continue

        local = local_aggregate(day_rows)
        if not records:
            if not outlier_mode:
                results.append(
                    DayComparison(
                        day=day,
                        kind="local_only",
                        local_start=local.start,
                        local_end=local.end,
                        local_pause=local.pause,
                        local_net=local.net,
                    )
                )
            continue

        remote = remote_aggregate(records)
        if outlier_mode:
            differences = find_outliers(local, records)
            if not differences:
                continue
        else:
            differences = compare_day(local, remote)

        results.append(
            DayComparison(
                day=day,
                kind="compared",
                local_start=local.start,
                local_end=local.end,
                local_pause=local.pause,
                local_net=local.net,
                remote_start=remote.start,
                remote_end=remote.end,
                remote_pause=remote.pause,
                remote_net=remote.net + remote.ignored_gaps,
                differences=differences,
            )
        )
    return results


def group_records_by_day(records: list[RemoteWorklogRecord]) -> dict[date, list[RemoteWorklogRecord]]:
    grouped: dict[date, list[RemoteWorklogRecord]] = {}
    for record in records:
        grouped.setdefault(record.started.date(), []).append(record)
    for day_records in grouped.values():
        day_records.sort(key=lambda r: r.started)
    return grouped
