"""Partition properties over randomized weeks."""

import asyncio
from datetime import date, datetime, timedelta

import pytest

from core.validation import validate_drafts
from fixtures.generate_events import random_week
from models.events import SourceCommit
from services.attendance import load_attendance_rows, work_windows_for_day
from services.reconcile import run_reconciliation

MONDAY = date(2025, 3, 3)
FRIDAY = MONDAY + timedelta(days=4)


def to_commits(items: list[dict]) -> list[SourceCommit]:
    return [
        SourceCommit(
            id=c["id"],
            project_id=c["project_id"],
            created_at=datetime.fromisoformat(c["created_at"]),
            message=c["message"],
            author_email=c["author_email"],
        )
        for c in items
    ]


@pytest.mark.parametrize("seed", [1, 7, 42, 1234, 2025])
def test_drafts_partition_work_windows(settings, seed):
    week = random_week(MONDAY, seed=seed)
    result = asyncio.run(
        run_reconciliation(
            week["ics"], week["attendance"], settings, MONDAY, FRIDAY, commits=to_commits(week["commits"])
        )
    )
    rows = load_attendance_rows(week["attendance"])

    assert result.drafts
    assert validate_drafts(result.drafts) == []
    assert [d.start for d in result.drafts] == sorted(d.start for d in result.drafts)

    for previous, current in zip(result.drafts, result.drafts[1:]):
        assert previous.end <= current.start

    for draft in result.drafts:
        assert draft.duration >= timedelta(minutes=1)
        windows = work_windows_for_day(rows, draft.day)
        assert any(w.start <= draft.start and draft.end <= w.end for w in windows)

    for offset in range(5):
        day = MONDAY + timedelta(days=offset)
        covered = sum((d.duration for d in result.drafts if d.day == day), timedelta())
        available = sum((w.duration for w in work_windows_for_day(rows, day)), timedelta())
        assert covered == available
