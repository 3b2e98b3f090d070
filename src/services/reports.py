"""
Report generation utilities for Excel workbooks.
"""

from datetime import date, timedelta
from pathlib import Path

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter

from core.config import ADJUSTMENT_HEADERS, COMPARISON_HEADERS, DRAFT_HEADERS
from models.events import DraftSegment
from models.worklogs import DayAdjustmentPlan, DayComparison


def format_date_display(d: date) -> str:
    """Format date as M/D/YYYY (platform-safe, no zero-padding)."""
    return f"{d.month}/{d.day}/{d.year}"


def format_date_short(d: date) -> str:
    """Format date as 'Mon D' (platform-safe, e.g., 'Nov 7')."""
    return f"{d.strftime('%b')} {d.day}"


def format_range_for_subject(from_day: date, to_day: date) -> str:
    """'Nov 3rd 2025' for a single day, 'Nov 3 - Nov 7 2025' for a range."""
    if from_day == to_day:
        day = from_day.day
        suffix = "th" if 11 <= day <= 13 else {1: "st", 2: "nd", 3: "rd"}.get(day % 10, "th")
        return from_day.strftime(f"%b {day}{suffix} %Y")
    return f"{format_date_short(from_day)} - {format_date_short(to_day)} {to_day.year}"


def format_hours(delta: timedelta) -> float:
    """Decimal hours rounded to two places."""
    return round(delta.total_seconds() / 3600, 2)


def format_clock(value) -> str:
    return value.strftime("%H:%M") if value else ""


def _write_headers(ws, headers: list[str]):
    for col_idx, header in enumerate(headers, start=1):
        cell = ws.cell(row=1, column=col_idx, value=header)
        cell.font = Font(bold=True)


# =============================================================================
# SHEETS
# =============================================================================


def write_drafts_sheet(ws, drafts: list[DraftSegment], summaries: dict[str, str]):
    """
    Write the draft segments, one row each, with a total hours row.

    Columns: Date, Start, End, Hours, Ticket, Summary, Label, State
    """
    _write_headers(ws, DRAFT_HEADERS)

    for row_idx, draft in enumerate(drafts, start=2):
        row_data = [
            format_date_display(draft.day),
            format_clock(draft.start),
            format_clock(draft.end),
            format_hours(draft.duration),
            draft.ticket,
            summaries.get(draft.ticket, ""),
            draft.label,
            draft.state.value,
        ]
        for col_idx, value in enumerate(row_data, start=1):
            ws.cell(row=row_idx, column=col_idx, value=value)

    if drafts:
        total_row = len(drafts) + 2
        hours_col = get_column_letter(DRAFT_HEADERS.index("Hours") + 1)
        label = ws.cell(row=total_row, column=1, value="Total")
        label.font = Font(bold=True)
        ws.cell(row=total_row, column=4, value=f"=SUM({hours_col}2:{hours_col}{total_row - 1})")


def write_comparison_sheet(ws, comparisons: list[DayComparison]):
    _write_headers(ws, COMPARISON_HEADERS)

    for row_idx, day in enumerate(comparisons, start=2):
        row_data = [
            format_date_display(day.day),
            day.kind,
            format_clock(day.local_start),
            format_clock(day.local_end),
            format_hours(day.local_pause),
            format_hours(day.local_net),
            format_clock(day.remote_start),
            format_clock(day.remote_end),
            format_hours(day.remote_pause),
            format_hours(day.remote_net),
            "; ".join(d.message for d in day.differences) or "OK",
        ]
        for col_idx, value in enumerate(row_data, start=1):
            ws.cell(row=row_idx, column=col_idx, value=value)


def write_adjustments_sheet(ws, plans: list[DayAdjustmentPlan]):
    _write_headers(ws, ADJUSTMENT_HEADERS)

    row_idx = 2
    for plan in plans:
        for op in plan.operations:
            ws.cell(row=row_idx, column=1, value=format_date_display(plan.day))
            ws.cell(row=row_idx, column=2, value=op.record.ticket)
            ws.cell(row=row_idx, column=3, value=op.type.value)
            ws.cell(row=row_idx, column=4, value=op.description)
            ws.cell(row=row_idx, column=5, value=op.label)
            row_idx += 1


def create_excel_report(
    output_path: Path,
    drafts: list[DraftSegment] | None = None,
    summaries: dict[str, str] | None = None,
    comparisons: list[DayComparison] | None = None,
    plans: list[DayAdjustmentPlan] | None = None,
) -> Path:
    """
    Create an Excel workbook with one sheet per provided section.

    Sheet "Drafts": segments with a SUM row
    Sheet "Comparison": per-day attendance vs. worklog aggregates
    Sheet "Adjustments": planned edits per day
    """
    wb = Workbook()
    wb.remove(wb.active)

    if drafts is not None:
        write_drafts_sheet(wb.create_sheet(title="Drafts"), drafts, summaries or {})
    if comparisons is not None:
        write_comparison_sheet(wb.create_sheet(title="Comparison"), comparisons)
    if plans is not None:
        write_adjustments_sheet(wb.create_sheet(title="Adjustments"), plans)
    if not wb.sheetnames:
        wb.create_sheet(title="Drafts")

    output_path.parent.mkdir(parents=True, exist_ok=True)
    wb.save(str(output_path))
    print(f"Saved Excel report to: {output_path}")
    return output_path
