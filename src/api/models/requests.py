"""Pydantic request models for API endpoints."""

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, Field


class CommitIn(BaseModel):
    """A commit as exported from the commit history."""

    id: str = ""
    project_id: str = ""
    created_at: datetime
    message: str
    author_email: str = ""
    committer_email: str = ""
    author_name: str = ""


class RemoteWorklogIn(BaseModel):
    """A worklog already booked in the ticketing system."""

    id: str
    ticket: str
    author_id: str = ""
    started: datetime
    time_spent_seconds: int = Field(gt=0)


class MeetingRuleIn(BaseModel):
    pattern: str
    ticket: str


class TitleReplacementIn(BaseModel):
    trigger: str
    replacements: list[str]


class DraftsRequest(BaseModel):
    """Inputs of one offline reconciliation pass."""

    from_date: date
    to_date: date
    ics: str = ""
    attendance: list[dict[str, Any]] = []
    commits: list[CommitIn] = []
    remote_worklogs: list[RemoteWorklogIn] = []
    self_email: str = ""
    meeting_issue_key: str | None = None
    meeting_rules: list[MeetingRuleIn] | None = None
    non_meeting_hints: list[str] | None = None
    title_replacements: list[TitleReplacementIn] | None = None


class ComparisonRequest(BaseModel):
    from_date: date
    to_date: date
    attendance: list[dict[str, Any]] = []
    remote_worklogs: list[RemoteWorklogIn] = []
    outlier_mode: bool = False


class AdjustmentPlanRequest(BaseModel):
    day: date
    attendance: list[dict[str, Any]] = []
    remote_worklogs: list[RemoteWorklogIn] = []
