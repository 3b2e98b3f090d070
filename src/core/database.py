"""
SQLite database operations for reconciliation runs.
"""

import sqlite3
from datetime import date

from core.config import DB_PATH
from core.trace import PassTrace
from models.events import DraftSegment


def get_connection() -> sqlite3.Connection:
    """Get a database connection."""
    return sqlite3.connect(DB_PATH)


def generate_run_name(run_type: str, as_of_date: date, conn: sqlite3.Connection) -> str:
    """
    Generate unique run name with auto-incremented suffix.

    Example: worklog_drafts_2025_11_07_a, worklog_comparison_2025_11_07_b
    """
    base_pattern = f"worklog_{run_type}_{as_of_date.strftime('%Y_%m_%d')}_"

    cursor = conn.cursor()
    cursor.execute(
        "SELECT name FROM runs WHERE name LIKE ? ORDER BY name DESC",
        (f"{base_pattern}%",),
    )
    existing = cursor.fetchall()

    if not existing:
        return f"{base_pattern}a"

    highest_suffix = "a"
    for (name,) in existing:
        suffix = name.replace(base_pattern, "")
        if suffix and suffix > highest_suffix:
            highest_suffix = suffix

    next_suffix = chr(ord(highest_suffix) + 1)
    return f"{base_pattern}{next_suffix}"


def create_run_record(
    conn: sqlite3.Connection,
    run_type: str,
    run_name: str,
    trace: PassTrace,
    from_day: date,
    to_day: date,
) -> int:
    """Create run record and return run_id."""
    cursor = conn.cursor()
    cursor.execute(
        """
        INSERT INTO runs (run_uuid, type, name, from_date, to_date, started_at)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        (trace.run_id, run_type, run_name, from_day.isoformat(), to_day.isoformat(), trace.started_at),
    )
    conn.commit()
    return cursor.lastrowid


def insert_drafts(
    conn: sqlite3.Connection,
    run_id: int,
    drafts: list[DraftSegment],
    summaries: dict[str, str] | None = None,
):
    """Insert all draft segments linked to run_id."""
    summaries = summaries or {}
    cursor = conn.cursor()
    for draft in drafts:
        cursor.execute(
            """
            INSERT INTO drafts (
                run_id, ticket, summary, start_timestamp, end_timestamp,
                duration_seconds, label, state
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                run_id,
                draft.ticket,
                summaries.get(draft.ticket),
                draft.start.isoformat(),
                draft.end.isoformat(),
                int(draft.duration.total_seconds()),
                draft.label,
                draft.state.value,
            ),
        )
    conn.commit()


def insert_run_details(conn: sqlite3.Connection, run_id: int, trace: PassTrace):
    """Persist the trace entries of a pass."""
    cursor = conn.cursor()
    for detail_type, message in trace.details:
        cursor.execute(
            "INSERT INTO run_details (run_id, detail_type, message) VALUES (?, ?, ?)",
            (run_id, detail_type, message),
        )
    conn.commit()
