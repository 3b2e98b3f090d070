"""Tests for the reconciliation pass with fake collaborators."""

import asyncio
from dataclasses import replace
from datetime import date, datetime, timedelta

import pytest

from core.errors import ConfigurationError, NetworkError
from fixtures.generate_events import SELF_EMAIL, build_ics
from helpers import DAY, at, commit, record
from models.events import DeltaState
from models.worklogs import RemoteWorklogRecord, WorklogResponse
from services.reconcile import (
    check_settings,
    is_configured,
    collect_commits,
    delete_own_worklogs,
    fetch_records_for_period,
    require_configured,
    run_reconciliation,
)

ATTENDANCE = [
    {"description": "Arbeitszeit", "date": "2025-03-03", "start": "08:00", "end": "16:30", "pauses": ["12:00-12:30"]},
    {"description": "Arbeitszeit", "date": "2025-03-10", "start": "08:00", "end": "16:30"},
]

CALENDAR = build_ics(
    [
        {"uid": "standup", "start": at("09:00"), "end": at("09:15"), "summary": "Daily Standup",
         "attendees": [SELF_EMAIL, "lead@example.com"]},
        {"uid": "declined", "start": at("14:00"), "end": at("15:00"), "summary": "Vendor Pitch",
         "attendees": [SELF_EMAIL, "sales@example.com"], "self_partstat": "DECLINED"},
    ]
)

COMMITS = [
    commit("ABC-1 start", "17:00", DAY - timedelta(days=3)),
    commit("ABC-2 work", "10:30"),
    commit("ZZZ-9 not mine", "11:00", email="someone@example.com"),
]


def mine(ticket, start, end, record_id, author="acc-1"):
    return replace(record(ticket, start, end, record_id), author_id=author)


class FakeJira:
    def __init__(self, worklogs=None, failing=(), search_keys=(), rejecting=(), unreachable=()):
        self.worklogs = worklogs or {}
        self.failing = set(failing)
        self.search_keys = list(search_keys)
        self.created = []
        self.rejecting = set(rejecting)
        self.unreachable = set(unreachable)
        self.deleted = []

    async def fetch_my_account_id(self):
        return "acc-1"

    async def fetch_worklogs(self, ticket):
        if ticket in self.failing:
            raise NetworkError(f"{ticket} unavailable", 503)
        return list(self.worklogs.get(ticket, []))

    async def fetch_summaries(self, keys):
        return {k: f"Summary {k}" for k in keys}

    async def search_jql(self, jql, max_results=100):
        self.jql = jql
        return self.search_keys

    async def create_worklog(self, ticket, started, seconds, comment=""):
        self.created.append((ticket, started, seconds, comment))
        return WorklogResponse(True, 201, "")

    async def delete_worklog(self, ticket, worklog_id):
        if worklog_id in self.unreachable:
            raise NetworkError("connection reset")
        if worklog_id in self.rejecting:
            return False
        self.deleted.append((ticket, worklog_id))
        return True


class FakeGitLab:
    def __init__(self, commits_by_project, failing=()):
        self.commits_by_project = commits_by_project
        self.failing = set(failing)
        self.windows = []

    async def fetch_commits(self, project_id, since, until):
        self.windows.append((since, until))
        if project_id in self.failing:
            raise NetworkError("project gone", 404)
        return self.commits_by_project.get(project_id, [])


def drafts_summary(result):
    return [(d.start.strftime("%H:%M"), d.end.strftime("%H:%M"), d.ticket) for d in result.drafts]


# =============================================================================
# CONFIGURATION
# =============================================================================


def test_check_settings_lists_missing_names(settings):
    assert check_settings(settings) == (True, [])

    bare = replace(settings, jira_api_token="", gitlab_project_ids=[], meeting_issue_key="")
    ok, missing = check_settings(bare)
    assert not ok
    assert missing == ["JIRA_API_TOKEN", "GITLAB_PROJECT_IDS", "MEETING_ISSUE_KEY"]
    assert check_settings(bare, need_jira=False, need_gitlab=False, need_meeting_key=False) == (True, [])
    assert is_configured(bare, need_jira=False, need_meeting_key=False) is False
    assert is_configured(settings)


def test_require_configured_raises(settings):
    with pytest.raises(ConfigurationError) as excinfo:
        require_configured(replace(settings, gitlab_token=""), need_jira=False)
    assert excinfo.value.missing == ["GITLAB_TOKEN"]


# =============================================================================
# PASS
# =============================================================================


def test_offline_pass_builds_partition(settings):
    result = asyncio.run(run_reconciliation(CALENDAR, ATTENDANCE, settings, DAY, DAY, commits=COMMITS))

    assert drafts_summary(result) == [
        ("08:00", "09:00", "ABC-1"),
        ("09:00", "09:15", "TEAM-7"),
        ("09:15", "10:30", "ABC-1"),
        ("10:30", "12:00", "ABC-2"),
        ("12:30", "16:30", "ABC-2"),
    ]
    assert result.count(DeltaState.NEW) == 5
    assert result.outcomes == []


def test_day_path_without_identity_keeps_declined_meeting(settings):
    anonymous = replace(settings, self_email="")
    result = asyncio.run(run_reconciliation(CALENDAR, ATTENDANCE, anonymous, DAY, DAY, commits=COMMITS))
    assert ("14:00", "15:00", "MEET-1") in drafts_summary(result)


def test_days_outside_range_are_ignored(settings):
    result = asyncio.run(
        run_reconciliation(CALENDAR, ATTENDANCE, settings, DAY, DAY + timedelta(days=6), commits=COMMITS)
    )
    assert {d.day for d in result.drafts} == {DAY}


def test_pass_classifies_and_books_new_drafts(settings):
    jira = FakeJira(
        worklogs={
            "ABC-1": [
                mine("ABC-1", "08:00", "08:30", "1"),
                mine("ABC-1", "09:15", "10:30", "2", author="acc-2"),
            ],
            "ABC-2": [mine("ABC-2", "12:30", "16:30", "3")],
        },
        failing={"TEAM-7"},
    )
    result = asyncio.run(
        run_reconciliation(CALENDAR, ATTENDANCE, settings, DAY, DAY, jira=jira, commits=COMMITS, book=True)
    )

    states = {(d.start.strftime("%H:%M"), d.ticket): d.state for d in result.drafts}
    assert states[("08:00", "ABC-1")] == DeltaState.OVERLAP
    assert states[("09:15", "ABC-1")] == DeltaState.NEW
    assert states[("12:30", "ABC-2")] == DeltaState.DUPLICATE
    assert result.summaries["ABC-2"] == "Summary ABC-2"

    assert [c[0] for c in jira.created] == ["TEAM-7", "ABC-1", "ABC-2"]
    assert jira.created[0][2] == 15 * 60
    assert [o.unit for o in result.failed] == ["jira:TEAM-7"]
    assert len(result.trace.of_type("book_ok")) == 3


def test_commit_collection_survives_failing_project(settings):
    gitlab = FakeGitLab({"42": [commit("ABC-1 a", "07:00")], "43": []}, failing={"43"})
    project_settings = replace(settings, gitlab_project_ids=["42", "43"])
    outcomes = []
    commits = asyncio.run(collect_commits(gitlab, project_settings, DAY, DAY, outcomes, lookback_days=7))

    assert len(commits) == 1
    assert [(o.unit, o.ok) for o in outcomes] == [("gitlab:42", True), ("gitlab:43", False)]
    assert gitlab.windows[0] == (datetime(2025, 2, 24), datetime(2025, 3, 4))


def test_pass_fetches_commits_when_not_given(settings):
    gitlab = FakeGitLab({"42": COMMITS})
    result = asyncio.run(run_reconciliation(CALENDAR, ATTENDANCE, settings, DAY, DAY, gitlab=gitlab))
    assert len(result.drafts) == 5
    assert all(d.ticket != "ZZZ-9" for d in result.drafts)


def test_fetch_records_for_period_filters_and_sorts():
    outside = RemoteWorklogRecord("9", "ABC-1", "acc-1", datetime(2025, 3, 20, 9), 3600)
    jira = FakeJira(
        worklogs={
            "ABC-1": [mine("ABC-1", "13:00", "14:00", "2"), outside, mine("ABC-1", "09:00", "10:00", "1")],
            "ABC-2": [mine("ABC-2", "10:00", "11:00", "3", author="acc-2")],
        },
        search_keys=["ABC-2", "ABC-1"],
    )
    outcomes = []
    records = asyncio.run(fetch_records_for_period(jira, "acc-1", DAY, date(2025, 3, 7), outcomes))

    assert [r.id for r in records] == ["1", "2"]
    assert 'worklogAuthor = "acc-1"' in jira.jql
    assert 'worklogDate <= "2025-03-07"' in jira.jql


# =============================================================================
# TITLE REPLACEMENT
# =============================================================================


def test_meeting_label_uses_reworded_title_but_real_title_routes(settings):
    reworded = replace(settings, title_replacements=[("standup", ["Technical Sync"])])
    result = asyncio.run(run_reconciliation(CALENDAR, ATTENDANCE, reworded, DAY, DAY, commits=COMMITS))

    (meeting,) = [d for d in result.drafts if d.start == at("09:00")]
    assert meeting.ticket == "TEAM-7"
    assert meeting.label == "Meeting 09:00-09:15 - Daily Technical Sync"
    assert result.trace.of_type("title_replaced") == ["2025-03-03 09:00 'Daily Standup' -> 'Daily Technical Sync'"]


# =============================================================================
# DELETE MODE
# =============================================================================


TUESDAY = date(2025, 3, 4)


def own_week_jira(**kwargs):
    return FakeJira(
        worklogs={
            "ABC-1": [
                mine("ABC-1", "09:00", "10:00", "1"),
                replace(record("ABC-1", "09:00", "11:00", "2", day=TUESDAY), author_id="acc-1"),
                mine("ABC-1", "10:00", "11:00", "3", author="acc-2"),
            ],
            "ABC-2": [replace(record("ABC-2", "13:00", "14:00", "4", day=TUESDAY), author_id="acc-1")],
        },
        search_keys=["ABC-1", "ABC-2"],
        **kwargs,
    )


def test_delete_mode_removes_only_own_worklogs_of_selected_days():
    jira = own_week_jira()
    selected, outcomes, trace = asyncio.run(
        delete_own_worklogs(jira, DAY, date(2025, 3, 7), days={TUESDAY})
    )

    assert [r.id for r in selected] == ["2", "4"]
    assert jira.deleted == [("ABC-1", "2"), ("ABC-2", "4")]
    assert all(o.ok for o in outcomes)
    assert len(trace.of_type("delete_ok")) == 2


def test_delete_mode_whole_period_when_no_days_selected():
    jira = own_week_jira()
    selected, _, _ = asyncio.run(delete_own_worklogs(jira, DAY, date(2025, 3, 7)))
    assert sorted(r.id for r in selected) == ["1", "2", "4"]
    assert sorted(worklog_id for _, worklog_id in jira.deleted) == ["1", "2", "4"]


def test_delete_mode_dry_run_deletes_nothing():
    jira = own_week_jira()
    selected, outcomes, _ = asyncio.run(delete_own_worklogs(jira, DAY, date(2025, 3, 7), dry_run=True))
    assert len(selected) == 3
    assert jira.deleted == []
    assert outcomes == []


def test_delete_mode_records_failures_and_continues():
    jira = own_week_jira(rejecting={"2"}, unreachable={"1"})
    _, outcomes, trace = asyncio.run(delete_own_worklogs(jira, DAY, date(2025, 3, 7)))

    assert jira.deleted == [("ABC-2", "4")]
    assert [(o.unit.split()[1], o.ok) for o in outcomes] == [("1", False), ("2", False), ("4", True)]
    assert outcomes[0].message == "connection reset"
    assert len(trace.of_type("delete_failed")) == 2
