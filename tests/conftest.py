"""
Pytest configuration and shared fixtures.
"""

import sqlite3
import sys
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
# Builders and fixture generators live next to the tests
sys.path.insert(0, str(Path(__file__).parent))

from core.config import ReconcileSettings  # noqa: E402
from helpers import DAY, attendance_row  # noqa: E402


@pytest.fixture
def day():
    return DAY


@pytest.fixture
def settings():
    """Engine settings with an identity and one meeting rule."""
    return ReconcileSettings(
        self_email="dev@example.com",
        meeting_issue_key="MEET-1",
        meeting_rules=[("standup", "TEAM-7")],
        author_emails=["dev@example.com"],
        jira_base_url="https://jira.example.com",
        jira_email="dev@example.com",
        jira_api_token="token",
        gitlab_base_url="https://gitlab.example.com",
        gitlab_token="glpat",
        gitlab_project_ids=["42"],
    )


@pytest.fixture
def workday_rows():
    """08:00-16:30 with a 12:00-12:30 lunch."""
    return [attendance_row("08:00", "16:30", [("12:00", "12:30")])]


@pytest.fixture
def tmp_db(tmp_path, monkeypatch):
    """Fresh SQLite database with the full schema, patched in as DB_PATH."""
    import api.logging
    import api.routes.health
    from scripts.init_db import create_schema

    db_path = tmp_path / "test.db"
    conn = sqlite3.connect(db_path)
    create_schema(conn)
    conn.close()

    monkeypatch.setattr(api.logging, "DB_PATH", db_path)
    monkeypatch.setattr(api.routes.health, "DB_PATH", db_path)
    return db_path
