"""
Edit-script generation that aligns remote worklogs with attendance, and its application.

Plan order for one day:
    1. move the first record's start to the attendance start
    2. move the last record's end to the attendance end
    3. cut every canonical pause out of the records (delete / shorten / split)
    4. close remaining unjustified gaps, largest first, while the remote gap
       total still exceeds pauses plus paid non-work time

Every step works on the record state left by the previous ones, so an
already reconciled day produces no operations.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from core.config import PLANNER_ABSENCE_MARKERS
from core.errors import NetworkError
from core.intervals import PauseInterval, TimeInterval, clip, subtract, total_duration
from core.trace import PassTrace
from models.events import AttendanceRow
from models.worklogs import (
    AdjustmentOperation,
    AdjustmentType,
    ApplyOutcome,
    ApplyStatus,
    DayAdjustmentPlan,
    RemoteWorklogRecord,
)
from services.attendance import has_marker, paid_non_work_for_day, rows_for_day


@dataclass
class GroundTruth:
    start: datetime
    end: datetime
    pauses: list[PauseInterval]
    pause_total: timedelta
    paid_non_work: timedelta


@dataclass
class _Piece:
    """Remote time after an edit: part 0 is the record itself, later parts are pending creations."""

    record: RemoteWorklogRecord
    start: datetime
    end: datetime
    operation: AdjustmentOperation | None = None
    part_index: int = 0


@dataclass
class _RecordState:
    record: RemoteWorklogRecord
    start: datetime
    end: datetime
    pieces: list[_Piece] = field(default_factory=list)


def _same_minute(a: datetime, b: datetime) -> bool:
    return a.replace(second=0, microsecond=0) == b.replace(second=0, microsecond=0)


def _seconds(delta: timedelta) -> int:
    return int(delta.total_seconds())


def _fmt(delta: timedelta) -> str:
    minutes = _seconds(delta) // 60
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes}m" if hours else f"{minutes}m"


def ground_truth_for_day(rows: list[AttendanceRow], day: date) -> GroundTruth | None:
    """Attendance envelope, pauses and paid non-work of one day (None without work rows)."""
    work_rows = [
        r for r in rows_for_day(rows, day) if not has_marker(r.description, PLANNER_ABSENCE_MARKERS)
    ]
    starts = [r.start for r in work_rows if r.start is not None]
    ends = [r.end for r in work_rows if r.end is not None]
    if not starts or not ends:
        return None

    pauses = sorted((p for r in work_rows for p in r.pauses), key=lambda p: p.start)
    pause_total = sum((r.pause_total for r in work_rows), timedelta())
    if not pause_total and pauses:
        pause_total = total_duration(pauses)

    return GroundTruth(
        start=min(starts),
        end=max(ends),
        pauses=pauses,
        pause_total=pause_total,
        paid_non_work=paid_non_work_for_day(rows, day),
    )


# =============================================================================
# PLAN GENERATION
# =============================================================================


def _move_edges(states: list[_RecordState], truth: GroundTruth) -> list[AdjustmentOperation]:
    operations = []
    first, last = states[0], states[-1]

    if not _same_minute(first.start, truth.start) and truth.start < first.end:
        first.start = truth.start
        operations.append(
            AdjustmentOperation(
                type=AdjustmentType.MOVE_START,
                record=first.record,
                new_start=first.start,
                new_duration=_seconds(first.end - first.start),
                label="Move start",
            )
        )

    if not _same_minute(last.end, truth.end) and truth.end > last.start:
        last.end = truth.end
        operations.append(
            AdjustmentOperation(
                type=AdjustmentType.MOVE_END,
                record=last.record,
                new_start=last.start,
                new_duration=_seconds(last.end - last.start),
                label="Move end",
            )
        )
    return operations


def _cut_pauses(states: list[_RecordState], pauses: list[PauseInterval]) -> list[AdjustmentOperation]:
    operations = []
    for state in states:
        current = TimeInterval(state.start, state.end)
        hit = [p for p in pauses if p.overlaps(current)]
        if not hit:
            state.pieces = [_Piece(state.record, state.start, state.end)]
            continue

        remaining = subtract(current, hit)
        pause = hit[0]
        label = f"Pause {pause.start:%H:%M}-{pause.end:%H:%M}"

        if not remaining:
            operations.append(
                AdjustmentOperation(
                    type=AdjustmentType.DELETE, record=state.record, pause=pause, label=label
                )
            )
            state.pieces = []
            continue

        head = remaining[0]
        if len(remaining) > 1:
            op_type = AdjustmentType.SPLIT
        elif head.start == current.start:
            op_type = AdjustmentType.SHORTEN_BEFORE
        else:
            op_type = AdjustmentType.SHORTEN_AFTER

        operation = AdjustmentOperation(
            type=op_type,
            record=state.record,
            new_start=head.start,
            new_duration=_seconds(head.duration),
            split_parts=list(remaining[1:]),
            pause=pause,
            label=label,
        )
        operations.append(operation)
        state.pieces = [
            _Piece(state.record, part.start, part.end, operation, index)
            for index, part in enumerate(remaining)
        ]
    return operations


def _gaps(pieces: list[_Piece]) -> list[tuple[_Piece, TimeInterval]]:
    """Gaps between consecutive remote pieces, each with the piece that precedes it."""
    gaps = []
    previous: _Piece | None = None
    for piece in sorted(pieces, key=lambda p: (p.start, p.end)):
        if previous is not None and piece.start > previous.end:
            gaps.append((previous, TimeInterval(previous.end, piece.start)))
        if previous is None or piece.end > previous.end:
            previous = piece
    return gaps


def _close_gaps(
    pieces: list[_Piece], truth: GroundTruth, plan: DayAdjustmentPlan
) -> list[AdjustmentOperation]:
    gaps = _gaps(pieces)
    plan.remote_gap_total = sum((gap.duration for _, gap in gaps), timedelta())
    excess = plan.remote_gap_total - (truth.pause_total + truth.paid_non_work)
    if excess <= timedelta():
        return []

    candidates = []
    for piece, gap in gaps:
        justified = timedelta()
        for pause in truth.pauses:
            overlap = clip(pause, gap)
            if overlap is not None:
                justified += overlap.duration
        unjustified = gap.duration - justified
        if unjustified > timedelta():
            candidates.append((unjustified, gap, piece))
    candidates.sort(key=lambda c: (-c[0], c[1].start))

    operations = []
    for unjustified, gap, piece in candidates:
        if excess <= timedelta():
            break
        amount = min(unjustified, excess)
        new_end = piece.end + amount
        excess -= amount

        if piece.part_index > 0:
            # Pending creation from a split: grow the part before it is created
            part = piece.operation.split_parts[piece.part_index - 1]
            piece.operation.split_parts[piece.part_index - 1] = TimeInterval(part.start, new_end)
        else:
            operations.append(
                AdjustmentOperation(
                    type=AdjustmentType.MOVE_END,
                    record=piece.record,
                    new_start=piece.start,
                    new_duration=_seconds(new_end - piece.start),
                    label=f"Close gap ({_fmt(amount)})",
                )
            )
        piece.end = new_end
    return operations


def generate_plan(
    day: date,
    rows: list[AttendanceRow],
    records: list[RemoteWorklogRecord],
) -> DayAdjustmentPlan:
    """
    Compute the ordered operations that align a day's remote records with attendance.

    Args:
        day: Day to plan
        rows: Attendance rows (any days; filtered to `day`)
        records: The author's remote records on that day

    Returns:
        DayAdjustmentPlan, empty when there is nothing to align
    """
    truth = ground_truth_for_day(rows, day)
    plan = DayAdjustmentPlan(day=day)
    if truth is None or not records:
        return plan
    plan.pause_total = truth.pause_total
    plan.paid_non_work = truth.paid_non_work

    states = [
        _RecordState(r, r.started, r.end)
        for r in sorted(records, key=lambda r: (r.started, r.end))
    ]
    plan.operations.extend(_move_edges(states, truth))
    plan.operations.extend(_cut_pauses(states, truth.pauses))
    pieces = [piece for state in states for piece in state.pieces]
    plan.operations.extend(_close_gaps(pieces, truth, plan))
    return plan


# =============================================================================
# APPLY
# =============================================================================


async def _apply_one(client, op: AdjustmentOperation) -> ApplyOutcome:
    record = op.record
    if op.type == AdjustmentType.DELETE:
        deleted = await client.delete_worklog(record.ticket, record.id)
        if deleted:
            return ApplyOutcome(op, ApplyStatus.OK)
        return ApplyOutcome(op, ApplyStatus.FAILED, "Delete failed")

    response = await client.update_worklog(record.ticket, record.id, op.new_start, op.new_duration)
    if not response.ok:
        return ApplyOutcome(op, ApplyStatus.FAILED, response.body or f"HTTP {response.status_code}")

    for part in op.split_parts:
        try:
            created = await client.create_worklog(
                record.ticket, part.start, _seconds(part.duration), op.label
            )
        except NetworkError as e:
            return ApplyOutcome(op, ApplyStatus.PARTIAL, f"Original shortened, create failed: {e}")
        if not created.ok:
            return ApplyOutcome(
                op,
                ApplyStatus.PARTIAL,
                f"Original shortened, create failed: {created.body or created.status_code}",
            )
    return ApplyOutcome(op, ApplyStatus.OK)


async def apply_plan(client, plan: DayAdjustmentPlan, trace: PassTrace | None = None) -> list[ApplyOutcome]:
    """
    Apply operations one at a time, in plan order.

    Move and shorten operations are a single update. A split updates the
    original first and then creates the remaining parts; a failed creation is
    reported as PARTIAL because the original has already been shortened.
    """
    outcomes = []
    for op in plan.operations:
        try:
            outcome = await _apply_one(client, op)
        except NetworkError as e:
            outcome = ApplyOutcome(op, ApplyStatus.FAILED, str(e))
        outcomes.append(outcome)
        if trace is not None:
            suffix = f": {outcome.message}" if outcome.message else ""
            trace.add(f"apply_{outcome.status.value}", f"{op.description}{suffix}")
    return outcomes
