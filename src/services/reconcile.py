"""
One reconciliation pass: collect inputs, segment each day, classify and book.

External calls are awaited one unit at a time (one project, one issue, one
draft). A failing unit is recorded as a failed UnitOutcome and the pass
continues with the next one.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from core.config import GITLAB_LOOKBACK_DAYS, ReconcileSettings
from core.errors import ConfigurationError, NetworkError
from core.trace import PassTrace
from models.events import DeltaState, DraftSegment, MeetingRule, SourceCommit, TitleReplacementRule
from models.worklogs import RemoteWorklogRecord
from services.attendance import (
    attendance_days,
    ignore_meetings_for_day,
    load_attendance_rows,
    paid_non_work_for_day,
    work_windows_for_day,
)
from services.calendar import CalendarNormalizer
from services.commits import CommitTimeline, filter_commits_by_emails
from services.delta import classify_segments
from services.ics import parse_ics
from services.segmenter import build_day_segments


@dataclass
class UnitOutcome:
    """Result of one external unit of work (a project, an issue or a booking)."""

    unit: str
    ok: bool
    message: str = ""


@dataclass
class ReconcileResult:
    drafts: list[DraftSegment] = field(default_factory=list)
    outcomes: list[UnitOutcome] = field(default_factory=list)
    summaries: dict[str, str] = field(default_factory=dict)
    trace: PassTrace = field(default_factory=PassTrace)

    @property
    def failed(self) -> list[UnitOutcome]:
        return [o for o in self.outcomes if not o.ok]

    def count(self, state: DeltaState) -> int:
        return sum(1 for d in self.drafts if d.state == state)


# =============================================================================
# CONFIGURATION GATE
# =============================================================================


def check_settings(
    settings: ReconcileSettings,
    need_jira: bool = True,
    need_gitlab: bool = True,
    need_meeting_key: bool = True,
) -> tuple[bool, list[str]]:
    """
    Check that the collaborators a pass needs are configured.

    Returns:
        Tuple of (ok, missing setting names)
    """
    missing = []
    if need_jira:
        if not settings.jira_base_url:
            missing.append("JIRA_BASE_URL")
        if not settings.jira_email:
            missing.append("JIRA_EMAIL")
        if not settings.jira_api_token:
            missing.append("JIRA_API_TOKEN")
    if need_gitlab:
        if not settings.gitlab_base_url:
            missing.append("GITLAB_BASE_URL")
        if not settings.gitlab_token:
            missing.append("GITLAB_TOKEN")
        if not settings.gitlab_project_ids:
            missing.append("GITLAB_PROJECT_IDS")
    if need_meeting_key and not settings.meeting_issue_key:
        missing.append("MEETING_ISSUE_KEY")
    return not missing, missing


def is_configured(settings: ReconcileSettings, **needs) -> bool:
    return check_settings(settings, **needs)[0]


def require_configured(settings: ReconcileSettings, **needs) -> None:
    ok, missing = check_settings(settings, **needs)
    if not ok:
        raise ConfigurationError(missing)


def meeting_rules_from(settings: ReconcileSettings) -> list[MeetingRule]:
    return [MeetingRule(pattern, ticket) for pattern, ticket in settings.meeting_rules]


def title_rules_from(settings: ReconcileSettings) -> list[TitleReplacementRule]:
    return [TitleReplacementRule(trigger, tuple(options)) for trigger, options in settings.title_replacements]


# =============================================================================
# COLLECTION
# =============================================================================


async def collect_commits(
    gitlab,
    settings: ReconcileSettings,
    from_day: date,
    to_day: date,
    outcomes: list[UnitOutcome],
    lookback_days: int = GITLAB_LOOKBACK_DAYS,
) -> list[SourceCommit]:
    """
    Fetch commits of every configured project, starting `lookback_days`
    before the range so the first piece of work has a prior commit.
    """
    since = datetime.combine(from_day - timedelta(days=lookback_days), datetime.min.time())
    until = datetime.combine(to_day + timedelta(days=1), datetime.min.time())

    commits = []
    for project_id in settings.gitlab_project_ids:
        try:
            fetched = await gitlab.fetch_commits(project_id, since, until)
        except NetworkError as e:
            outcomes.append(UnitOutcome(f"gitlab:{project_id}", False, str(e)))
            continue
        outcomes.append(UnitOutcome(f"gitlab:{project_id}", True, f"{len(fetched)} commits"))
        commits.extend(fetched)
    return filter_commits_by_emails(commits, set(settings.author_emails))


async def fetch_remote_records(
    jira,
    tickets: set[str],
    outcomes: list[UnitOutcome],
    account_id: str | None = None,
) -> list[RemoteWorklogRecord]:
    """Worklogs of the given tickets, restricted to one author when known."""
    records = []
    for ticket in sorted(tickets):
        try:
            fetched = await jira.fetch_worklogs(ticket)
        except NetworkError as e:
            outcomes.append(UnitOutcome(f"jira:{ticket}", False, str(e)))
            continue
        if account_id:
            fetched = [r for r in fetched if r.author_id == account_id]
        records.extend(fetched)
    return records


async def fetch_records_for_period(
    jira,
    account_id: str,
    from_day: date,
    to_day: date,
    outcomes: list[UnitOutcome],
) -> list[RemoteWorklogRecord]:
    """Own worklogs started within [from_day, to_day] across all issues."""
    jql = (
        f'worklogAuthor = "{account_id}" AND worklogDate >= "{from_day:%Y-%m-%d}" '
        f'AND worklogDate <= "{to_day:%Y-%m-%d}"'
    )
    try:
        keys = await jira.search_jql(jql, max_results=1000)
    except NetworkError as e:
        outcomes.append(UnitOutcome("jira:search", False, str(e)))
        return []

    records = await fetch_remote_records(jira, set(keys), outcomes, account_id)
    return sorted(
        (r for r in records if from_day <= r.started.date() <= to_day),
        key=lambda r: r.started,
    )


async def enrich_with_summaries(jira, drafts: list[DraftSegment], outcomes: list[UnitOutcome]) -> dict[str, str]:
    tickets = {d.ticket for d in drafts}
    if not tickets:
        return {}
    try:
        return await jira.fetch_summaries(tickets)
    except NetworkError as e:
        outcomes.append(UnitOutcome("jira:summaries", False, str(e)))
        return {}


# =============================================================================
# SEGMENTATION
# =============================================================================


def build_drafts(
    rows,
    normalizer: CalendarNormalizer,
    timeline: CommitTimeline,
    settings: ReconcileSettings,
    from_day: date,
    to_day: date,
    trace: PassTrace,
) -> list[DraftSegment]:
    """
    Draft segments for every attendance day inside [from_day, to_day].

    With a configured identity meetings come from the range path (which also
    honours the own PARTSTAT); otherwise from the day path. Meetings are
    ignored on absence days and calendar days off.
    """
    identity = settings.self_email
    if identity:
        normalizer.build_range(identity, from_day, to_day)
    rules = meeting_rules_from(settings)
    title_rules = title_rules_from(settings)

    drafts = []
    for day in attendance_days(rows):
        if not from_day <= day <= to_day:
            continue
        windows = work_windows_for_day(rows, day)
        if not windows:
            continue

        meetings = []
        if not ignore_meetings_for_day(rows, day) and not normalizer.day_calendar(day).day_off:
            if identity:
                meetings = normalizer.meetings_in_range(day, identity)
            else:
                meetings = normalizer.day_calendar(day).meetings

        drafts.extend(
            build_day_segments(
                day,
                windows,
                meetings,
                timeline,
                rules,
                settings.meeting_issue_key,
                paid_non_work=paid_non_work_for_day(rows, day),
                title_rules=title_rules,
                trace=trace,
            )
        )
    return drafts


# =============================================================================
# BOOKING
# =============================================================================


async def book_drafts(jira, drafts: list[DraftSegment], outcomes: list[UnitOutcome], trace: PassTrace) -> int:
    """Create a worklog for every NEW draft; returns how many were booked."""
    booked = 0
    for draft in drafts:
        if draft.state != DeltaState.NEW:
            continue
        unit = f"book:{draft.ticket} {draft.start:%Y-%m-%d %H:%M}-{draft.end:%H:%M}"
        try:
            response = await jira.create_worklog(
                draft.ticket, draft.start, int(draft.duration.total_seconds()), draft.label
            )
        except NetworkError as e:
            outcomes.append(UnitOutcome(unit, False, str(e)))
            trace.add("book_failed", f"{unit}: {e}")
            continue
        if response.ok:
            booked += 1
            outcomes.append(UnitOutcome(unit, True))
            trace.add("book_ok", unit)
        else:
            message = response.body or f"HTTP {response.status_code}"
            outcomes.append(UnitOutcome(unit, False, message))
            trace.add("book_failed", f"{unit}: {message}")
    return booked


async def delete_records(
    jira,
    records: list[RemoteWorklogRecord],
    outcomes: list[UnitOutcome],
    trace: PassTrace,
) -> int:
    """Delete the given worklogs one at a time; returns how many were deleted."""
    deleted = 0
    for record in records:
        unit = f"delete:{record.ticket} {record.id} {record.started:%Y-%m-%d %H:%M}"
        try:
            ok = await jira.delete_worklog(record.ticket, record.id)
        except NetworkError as e:
            outcomes.append(UnitOutcome(unit, False, str(e)))
            trace.add("delete_failed", f"{unit}: {e}")
            continue
        if ok:
            deleted += 1
            outcomes.append(UnitOutcome(unit, True))
            trace.add("delete_ok", unit)
        else:
            outcomes.append(UnitOutcome(unit, False, "rejected"))
            trace.add("delete_failed", f"{unit}: rejected")
    return deleted


async def delete_own_worklogs(
    jira,
    from_day: date,
    to_day: date,
    days: set[date] | None = None,
    dry_run: bool = False,
) -> tuple[list[RemoteWorklogRecord], list[UnitOutcome], PassTrace]:
    """
    Fetch the caller's own worklogs in [from_day, to_day] and delete those
    started on a selected day (every day of the period when `days` is None).

    Returns:
        Tuple of (selected records, unit outcomes, trace)
    """
    outcomes: list[UnitOutcome] = []
    trace = PassTrace()
    account_id = await jira.fetch_my_account_id()
    if not account_id:
        raise NetworkError("Could not resolve the Jira account id")
    records = await fetch_records_for_period(jira, account_id, from_day, to_day, outcomes)
    selected = [r for r in records if days is None or r.started.date() in days]
    if not dry_run:
        await delete_records(jira, selected, outcomes, trace)
    return selected, outcomes, trace


# =============================================================================
# PASS
# =============================================================================


async def run_reconciliation(
    ics_text: str,
    attendance_payload,
    settings: ReconcileSettings,
    from_day: date,
    to_day: date,
    jira=None,
    gitlab=None,
    commits: list[SourceCommit] | None = None,
    book: bool = False,
) -> ReconcileResult:
    """
    Run one pass over [from_day, to_day].

    Args:
        ics_text: Calendar export
        attendance_payload: Attendance JSON text or decoded list
        settings: Identity, meeting rules and hints
        from_day: First day of the range
        to_day: Last day of the range
        jira: Ticketing client; without it drafts stay unclassified (NEW)
        gitlab: Commit client; ignored when `commits` is given
        commits: Pre-fetched commits
        book: Create worklogs for NEW drafts

    Returns:
        ReconcileResult with drafts, unit outcomes, summaries and trace
    """
    result = ReconcileResult()
    trace = result.trace

    rows = load_attendance_rows(attendance_payload, trace)
    events = parse_ics(ics_text, settings.self_email, trace)
    normalizer = CalendarNormalizer(events, settings.non_meeting_hints)

    if commits is None:
        commits = []
        if gitlab is not None:
            commits = await collect_commits(gitlab, settings, from_day, to_day, result.outcomes)
    else:
        commits = filter_commits_by_emails(commits, set(settings.author_emails))
    timeline = CommitTimeline.from_commits(commits)

    drafts = build_drafts(rows, normalizer, timeline, settings, from_day, to_day, trace)

    if jira is not None and drafts:
        account_id = None
        try:
            account_id = await jira.fetch_my_account_id()
        except NetworkError as e:
            result.outcomes.append(UnitOutcome("jira:myself", False, str(e)))
        records = await fetch_remote_records(jira, {d.ticket for d in drafts}, result.outcomes, account_id)
        drafts = classify_segments(drafts, records)
        result.summaries = await enrich_with_summaries(jira, drafts, result.outcomes)
        if book:
            await book_drafts(jira, drafts, result.outcomes, trace)

    result.drafts = drafts
    return result
