"""
Email delivery of pass summaries and comparison findings.
"""

import traceback
from collections import defaultdict
from datetime import date, timedelta
from pathlib import Path

from msgraph.generated.models.body_type import BodyType
from msgraph.generated.models.email_address import EmailAddress
from msgraph.generated.models.file_attachment import FileAttachment
from msgraph.generated.models.item_body import ItemBody
from msgraph.generated.models.message import Message
from msgraph.generated.models.recipient import Recipient
from msgraph.generated.users.item.send_mail.send_mail_post_request_body import (
    SendMailPostRequestBody,
)

from core.config import ERROR_EMAIL, FROM_EMAIL, TO_EMAIL
from core.graph_client import get_graph_client
from models.events import DeltaState
from models.worklogs import DayComparison
from services.reconcile import ReconcileResult
from services.reports import format_date_short, format_hours, format_range_for_subject

XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def format_pass_summary(result: ReconcileResult, from_day: date, to_day: date) -> str:
    """Plain-text summary of one pass, grouped by day."""
    lines = [f"Worklog Drafts - {format_range_for_subject(from_day, to_day)}", ""]

    by_day = defaultdict(list)
    for draft in result.drafts:
        by_day[draft.day].append(draft)

    if not by_day:
        lines.append("No drafts for this period.")
    for day in sorted(by_day):
        drafts = by_day[day]
        total = sum((d.duration for d in drafts), timedelta())
        lines.append(f"{format_date_short(day)} ({format_hours(total)}h):")
        for draft in drafts:
            summary = result.summaries.get(draft.ticket, "")
            suffix = f" {summary}" if summary else ""
            lines.append(
                f"  {draft.start:%H:%M}-{draft.end:%H:%M} [{draft.ticket}]{suffix} ({draft.state.value})"
            )
        lines.append("")

    lines.append(
        f"New: {result.count(DeltaState.NEW)}, "
        f"Duplicate: {result.count(DeltaState.DUPLICATE)}, "
        f"Overlap: {result.count(DeltaState.OVERLAP)}"
    )

    if result.failed:
        lines.append("")
        lines.append("Failures:")
        for outcome in result.failed:
            lines.append(f"  - {outcome.unit}: {outcome.message}")

    notes = result.trace.of_type("unattributed") + result.trace.of_type("parse_error")
    if notes:
        lines.append("")
        lines.append("Notes:")
        for note in notes:
            lines.append(f"  - {note}")

    return "\n".join(lines)


def format_comparison_summary(comparisons: list[DayComparison], from_day: date, to_day: date) -> str:
    lines = [f"Worklog Comparison - {format_range_for_subject(from_day, to_day)}", ""]
    mismatched = [c for c in comparisons if not c.matches or c.kind != "compared"]
    if not mismatched:
        lines.append("All days match.")
        return "\n".join(lines)

    for day in mismatched:
        lines.append(f"{format_date_short(day.day)} ({day.kind}):")
        for difference in day.differences:
            lines.append(f"  - {difference.message}")
        lines.append("")
    return "\n".join(lines).rstrip()


def build_message(subject: str, body_text: str, recipient: str, file_path: Path | None = None) -> Message:
    """Plain-text Graph message, with the workbook attached when given."""
    attachments = []
    if file_path is not None:
        attachments.append(
            FileAttachment(
                odata_type="#microsoft.graph.fileAttachment",
                name=file_path.name,
                content_type=XLSX_CONTENT_TYPE,
                content_bytes=file_path.read_bytes(),
            )
        )
    return Message(
        subject=subject,
        body=ItemBody(content_type=BodyType.Text, content=body_text),
        to_recipients=[Recipient(email_address=EmailAddress(address=recipient))],
        attachments=attachments,
    )


async def _send(message: Message):
    graph = get_graph_client()
    request_body = SendMailPostRequestBody(message=message, save_to_sent_items=True)
    await graph.users.by_user_id(FROM_EMAIL).send_mail.post(request_body)


async def send_report_email(subject: str, body_text: str, file_path: Path | None = None):
    await _send(build_message(subject, body_text, TO_EMAIL, file_path))
    print(f"Sent report email to {TO_EMAIL}")


async def send_error_email(error: Exception, context: str = ""):
    """
    Notify ERROR_EMAIL that a script failed.

    Sending problems are printed, never raised, so the original error
    stays the one the script exits with.
    """
    subject = f"Worklog Reconcile - {type(error).__name__}"
    header = f"Run: {context}\n" if context else ""
    body_text = f"{header}Error: {error}\n\n{traceback.format_exc()}"
    try:
        await _send(build_message(subject, body_text, ERROR_EMAIL))
        print(f"Sent error email to {ERROR_EMAIL}")
    except Exception as e:
        print(f"Failed to send error email: {e}")
