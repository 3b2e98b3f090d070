#!/usr/bin/env python3
"""
Compare booked Jira worklogs against attendance and optionally fix them.

Fetches the own worklogs for the period, compares them day by day with the
attendance file (or lists outliers), plans the edits that would align them
and, with --apply, executes those edits. With --delete it instead removes
the own worklogs of the selected days.

Usage:
    uv run python src/scripts/compare_worklogs.py --attendance attendance.json \
        --from 2025-11-01 --to 2025-11-30 [--outliers] [--plan] [--apply] [--email]
    uv run python src/scripts/compare_worklogs.py --delete --from 2025-11-03 --to 2025-11-07 \
        [--days 2025-11-04,2025-11-05] [--confirm]
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
from core.database import create_run_record, generate_run_name, insert_run_details
from core.errors import NetworkError
from core.trace import PassTrace
from core.validation import validate_date_range
from models.worklogs import ApplyStatus, DayAdjustmentPlan
from services.adjustments import apply_plan, generate_plan
from services.attendance import load_attendance_rows
from services.comparison import compare, group_records_by_day
from services.email import format_comparison_summary, send_error_email, send_report_email
from services.jira import JiraClient
from services.reconcile import delete_own_worklogs, fetch_records_for_period, require_configured
from services.reports import create_excel_report, format_range_for_subject


def parse_day(value: str) -> date:
    return datetime.strptime(value, "%Y-%m-%d").date()


# =============================================================================
# MAIN
# =============================================================================


async def main(
    attendance_path: Path,
    from_day: date,
    to_day: date,
    outliers: bool = False,
    plan: bool = False,
    apply: bool = False,
    email: bool = False,
):
    """Main entry point."""
    try:
        # 1. Validate range and configuration
        validate_date_range(from_day, to_day)
        settings = ReconcileSettings.from_env()
        require_configured(settings, need_gitlab=False, need_meeting_key=False)
        print(f"Comparing worklogs for {from_day} to {to_day}")

        trace = PassTrace()
        rows = load_attendance_rows(attendance_path.read_text(encoding="utf-8"), trace)
        print(f"Attendance rows: {len(rows)}")

        plans: list[DayAdjustmentPlan] = []
        async with JiraClient(settings.jira_base_url, settings.jira_email, settings.jira_api_token) as jira:
            # 2. Fetch own worklogs
            account_id = await jira.fetch_my_account_id()
            if not account_id:
                raise NetworkError("Could not resolve the Jira account id")
            outcomes = []
            records = await fetch_records_for_period(jira, account_id, from_day, to_day, outcomes)
            for outcome in outcomes:
                trace.add("fetch_failed", f"{outcome.unit}: {outcome.message}")
            print(f"Worklogs: {len(records)}")

            # 3. Compare
            by_day = group_records_by_day(records)
            days = sorted(
                {r.day for r in rows if from_day <= r.day <= to_day} | set(by_day)
            )
            comparisons = compare(rows, by_day, days, outlier_mode=outliers)
            mismatches = [c for c in comparisons if not c.matches]
            print(f"Days compared: {len(comparisons)}, with differences: {len(mismatches)}")
            for comparison in mismatches:
                for difference in comparison.differences:
                    print(f"  {comparison.day}: {difference.message}")

            # 4. Plan and apply adjustments
            if plan or apply:
                for day in sorted(by_day):
                    day_plan = generate_plan(day, rows, by_day[day])
                    if not day_plan.has_changes:
                        continue
                    plans.append(day_plan)
                    print(f"\n{day}: {len(day_plan.operations)} operation(s)")
                    for op in day_plan.operations:
                        print(f"  {op.type.value}: {op.description} ({op.label})")

                    if apply:
                        results = await apply_plan(jira, day_plan, trace)
                        failed = [r for r in results if r.status != ApplyStatus.OK]
                        print(f"  Applied {len(results) - len(failed)}/{len(results)}")

        # 5. Create database records
        run_type = "adjustments" if apply else "comparison"
        conn = sqlite3.connect(DB_PATH)
        run_name = generate_run_name(run_type, to_day, conn)
        run_id = create_run_record(conn, run_type, run_name, trace, from_day, to_day)
        insert_run_details(conn, run_id, trace)
        conn.close()
        print(f"\nCreated run: {run_name} (ID: {run_id})")

        # 6. Generate Excel file
        output_path = OUTPUT_DIR / "comparisons" / f"{run_name}.xlsx"
        create_excel_report(output_path, comparisons=comparisons, plans=plans if (plan or apply) else None)

        # 7. Send email
        if email:
            subject = f"Worklog Comparison {format_range_for_subject(from_day, to_day)}"
            body = format_comparison_summary(comparisons, from_day, to_day)
            await send_report_email(subject, body, output_path)

        print("\nDone!")

    except Exception as e:
        print(f"\nError: {e}")
        traceback.print_exc()
        if email:
            await send_error_email(e, f"comparison {from_day}..{to_day}")
        raise


async def delete_worklogs(
    from_day: date,
    to_day: date,
    days: set[date] | None = None,
    confirm: bool = False,
    email: bool = False,
):
    """Delete own worklogs of the selected days; lists them only unless confirmed."""
    try:
        validate_date_range(from_day, to_day)
        settings = ReconcileSettings.from_env()
        require_configured(settings, need_gitlab=False, need_meeting_key=False)
        print(f"Own worklogs for {from_day} to {to_day}")

        async with JiraClient(settings.jira_base_url, settings.jira_email, settings.jira_api_token) as jira:
            selected, outcomes, trace = await delete_own_worklogs(
                jira, from_day, to_day, days=days, dry_run=not confirm
            )

        for record in selected:
            print(f"  {record.started:%Y-%m-%d %H:%M} [{record.ticket}] {record.time_spent // 60} min (id {record.id})")
        if not confirm:
            print(f"\n{len(selected)} worklog(s) would be deleted. Re-run with --confirm to delete them.")
            return

        failed = [o for o in outcomes if not o.ok]
        for outcome in failed:
            print(f"  FAILED {outcome.unit}: {outcome.message}")
        deleted = len(trace.of_type("delete_ok"))
        print(f"\nDeleted {deleted}, failed {len(failed)}")

        conn = sqlite3.connect(DB_PATH)
        run_name = generate_run_name("deletion", to_day, conn)
        run_id = create_run_record(conn, "deletion", run_name, trace, from_day, to_day)
        insert_run_details(conn, run_id, trace)
        conn.close()
        print(f"Created run: {run_name} (ID: {run_id})")

    except Exception as e:
        print(f"\nError: {e}")
        traceback.print_exc()
        if email:
            await send_error_email(e, f"deletion {from_day}..{to_day}")
        raise


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Compare Jira worklogs with attendance")
    parser.add_argument("--attendance", type=Path, help="Attendance rows (.json)")
    parser.add_argument("--from", dest="from_date", required=True, type=parse_day, help="First day (YYYY-MM-DD)")
    parser.add_argument("--to", dest="to_date", required=True, type=parse_day, help="Last day (YYYY-MM-DD)")
    parser.add_argument("--outliers", action="store_true", help="Report worklogs outside attendance")
    parser.add_argument("--plan", action="store_true", help="Plan adjustments without applying")
    parser.add_argument("--apply", action="store_true", help="Apply planned adjustments")
    parser.add_argument("--delete", action="store_true", help="Delete own worklogs in the period")
    parser.add_argument("--days", help="Comma-separated days (YYYY-MM-DD) to restrict --delete to")
    parser.add_argument("--confirm", action="store_true", help="Actually delete; without it --delete only lists")
    parser.add_argument("--email", action="store_true", help="Email the findings and report")
    args = parser.parse_args()

    if args.delete:
        selected_days = None
        if args.days:
            selected_days = {parse_day(d.strip()) for d in args.days.split(",") if d.strip()}
        asyncio.run(
            delete_worklogs(
                args.from_date,
                args.to_date,
                days=selected_days,
                confirm=args.confirm,
                email=args.email,
            )
        )
        sys.exit(0)

    if args.attendance is None:
        parser.error("--attendance is required unless --delete is given")

    asyncio.run(
        main(
            args.attendance,
            args.from_date,
            args.to_date,
            outliers=args.outliers,
            plan=args.plan,
            apply=args.apply,
            email=args.email,
        )
    )
