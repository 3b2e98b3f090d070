#!/usr/bin/env python3
"""Create the worklog-reconcile SQLite3 database with runs, drafts and logging tables."""

import sqlite3
import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.config import DB_PATH


def create_schema(conn: sqlite3.Connection):
    """Create tables and indexes if they don't exist."""
    cursor = conn.cursor()

    # One row per reconciliation pass
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS runs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            run_uuid TEXT UNIQUE NOT NULL,
            type TEXT NOT NULL CHECK(type IN ('drafts', 'comparison', 'adjustments', 'deletion')),
            name TEXT UNIQUE NOT NULL,
            from_date TEXT NOT NULL,
            to_date TEXT NOT NULL,
            started_at TEXT NOT NULL,
            create_date TEXT DEFAULT CURRENT_TIMESTAMP
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS drafts (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            run_id INTEGER NOT NULL,
            ticket TEXT NOT NULL,
            summary TEXT,
            start_timestamp TEXT NOT NULL,
            end_timestamp TEXT NOT NULL,
            duration_seconds INTEGER NOT NULL,
            label TEXT,
            state TEXT NOT NULL CHECK(state IN ('new', 'duplicate', 'overlap')),
            FOREIGN KEY (run_id) REFERENCES runs(id)
        )
    """)

    # Trace entries of a pass (fill boundaries, skipped records, apply results)
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS run_details (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            run_id INTEGER NOT NULL,
            detail_type TEXT NOT NULL,
            message TEXT NOT NULL,
            FOREIGN KEY (run_id) REFERENCES runs(id)
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS api_requests (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            request_id TEXT UNIQUE NOT NULL,
            timestamp TEXT NOT NULL,
            endpoint TEXT NOT NULL,
            method TEXT NOT NULL,
            client_ip TEXT,
            payload_size_bytes INTEGER,
            from_date TEXT,
            to_date TEXT,
            status_code INTEGER NOT NULL,
            error_code TEXT,
            error_message TEXT,
            processing_time_ms INTEGER NOT NULL,
            items_returned INTEGER
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS api_request_details (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            request_id TEXT NOT NULL,
            detail_type TEXT NOT NULL,
            message TEXT NOT NULL,
            FOREIGN KEY (request_id) REFERENCES api_requests(request_id)
        )
    """)

    cursor.execute("CREATE INDEX IF NOT EXISTS idx_drafts_run ON drafts(run_id)")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_run_details_run ON run_details(run_id)")
    cursor.execute(
        "CREATE INDEX IF NOT EXISTS idx_api_requests_timestamp ON api_requests(timestamp)"
    )
    cursor.execute(
        "CREATE INDEX IF NOT EXISTS idx_api_requests_status ON api_requests(status_code)"
    )
    cursor.execute(
        "CREATE INDEX IF NOT EXISTS idx_api_request_details_request ON api_request_details(request_id)"
    )
    conn.commit()


def create_database():
    """Create the database and tables if they don't exist."""
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(DB_PATH)
    conn.execute("PRAGMA foreign_keys = ON")
    create_schema(conn)
    conn.close()
    print(f"Database created successfully at: {DB_PATH}")


if __name__ == "__main__":
    create_database()
