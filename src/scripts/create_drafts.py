#!/usr/bin/env python3
"""
Create worklog drafts from attendance, calendar and commit history.

Reads an ICS export and an attendance JSON file, fetches commits from GitLab,
partitions each day into ticket-labelled drafts, classifies them against the
worklogs already booked in Jira, stores the run, writes an Excel report and
optionally books the new drafts and emails the summary.

Usage:
    uv run python src/scripts/create_drafts.py --ics calendar.ics --attendance attendance.json \
        --from 2025-11-03 --to 2025-11-07 [--book] [--email]
"""

import argparse
import asyncio
import sqlite3
import sys
import traceback
from datetime import date, datetime
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.config import DB_PATH, OUTPUT_DIR, ReconcileSettings
from core.database import create_run_record, generate_run_name, insert_drafts, insert_run_details
from core.validation import validate_date_range, validate_drafts
from models.events import DeltaState
from services.email import format_pass_summary, send_error_email, send_report_email
from services.gitlab import GitLabClient
from services.jira import JiraClient
from services.reconcile import require_configured, run_reconciliation
from services.reports import create_excel_report, format_range_for_subject


# =============================================================================
# DATE UTILITIES
# =============================================================================


def get_date_range(from_str: str | None, to_str: str | None) -> tuple[date, date]:
    """
    Resolve the pass range.

    Args:
        from_str: Optional first day (YYYY-MM-DD). Defaults to the end day.
        to_str: Optional last day (YYYY-MM-DD). Defaults to today.

    Returns:
        Tuple of (from_day, to_day)
    """
    to_day = datetime.strptime(to_str, "%Y-%m-%d").date() if to_str else date.today()
    from_day = datetime.strptime(from_str, "%Y-%m-%d").date() if from_str else to_day
    validate_date_range(from_day, to_day)
    return from_day, to_day


# =============================================================================
# MAIN
# =============================================================================


async def main(
    ics_path: Path,
    attendance_path: Path,
    from_str: str | None = None,
    to_str: str | None = None,
    book: bool = False,
    email: bool = False,
):
    """Main entry point."""
    try:
        # 1. Resolve range and configuration
        from_day, to_day = get_date_range(from_str, to_str)
        settings = ReconcileSettings.from_env()
        require_configured(settings)
        print(f"Building drafts for {from_day} to {to_day}")

        # 2. Read inputs
        ics_text = ics_path.read_text(encoding="utf-8")
        attendance_text = attendance_path.read_text(encoding="utf-8")

        # 3. Run the pass
        async with JiraClient(settings.jira_base_url, settings.jira_email, settings.jira_api_token) as jira:
            async with GitLabClient(settings.gitlab_base_url, settings.gitlab_token) as gitlab:
                result = await run_reconciliation(
                    ics_text,
                    attendance_text,
                    settings,
                    from_day,
                    to_day,
                    jira=jira,
                    gitlab=gitlab,
                    book=book,
                )

        print(f"\nDrafts: {len(result.drafts)}")
        for state in DeltaState:
            print(f"  {state.value}: {result.count(state)}")
        for outcome in result.failed:
            print(f"  FAILED {outcome.unit}: {outcome.message}")

        # 4. Validate drafts
        errors = validate_drafts(result.drafts)
        for error in errors:
            result.trace.add("validation_error", error)
        print(f"Validation errors: {len(errors)}")

        # 5. Create database records
        conn = sqlite3.connect(DB_PATH)
        run_name = generate_run_name("drafts", to_day, conn)
        run_id = create_run_record(conn, "drafts", run_name, result.trace, from_day, to_day)
        insert_drafts(conn, run_id, result.drafts, result.summaries)
        insert_run_details(conn, run_id, result.trace)
        conn.close()
        print(f"\nCreated run: {run_name} (ID: {run_id})")

        # 6. Generate Excel file
        output_path = OUTPUT_DIR / "drafts" / f"{run_name}.xlsx"
        create_excel_report(output_path, drafts=result.drafts, summaries=result.summaries)

        # 7. Send summary email
        if email:
            subject = f"Worklog Drafts {format_range_for_subject(from_day, to_day)}"
            await send_report_email(subject, format_pass_summary(result, from_day, to_day), output_path)

        print("\nDone!")

    except Exception as e:
        print(f"\nError: {e}")
        traceback.print_exc()
        if email:
            await send_error_email(e, f"drafts {from_str or to_str or 'today'}..{to_str or 'today'}")
        raise


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create worklog drafts")
    parser.add_argument("--ics", required=True, type=Path, help="Calendar export (.ics)")
    parser.add_argument("--attendance", required=True, type=Path, help="Attendance rows (.json)")
    parser.add_argument("--from", dest="from_date", help="First day (YYYY-MM-DD). Defaults to --to.")
    parser.add_argument("--to", dest="to_date", help="Last day (YYYY-MM-DD). Defaults to today.")
    parser.add_argument("--book", action="store_true", help="Create worklogs for new drafts")
    parser.add_argument("--email", action="store_true", help="Email the summary and report")
    args = parser.parse_args()

    asyncio.run(main(args.ics, args.attendance, args.from_date, args.to_date, args.book, args.email))
