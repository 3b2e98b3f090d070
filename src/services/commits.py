"""
Ticket extraction from commit messages and the time-sorted commit timeline.
"""

import bisect
import re
from datetime import date, datetime, timedelta

from models.events import CommitTicketEvent, SourceCommit

_LEADING_NOISE = re.compile(r"^[^\w\[]+")
_TICKET_AT_START = re.compile(r"^\[?([A-Za-z][A-Za-z0-9]+-\d+)\]?:?", re.IGNORECASE)
_TICKET_ANYWHERE = re.compile(r"([A-Za-z][A-Za-z0-9]+-\d+)", re.IGNORECASE)


def first_line(message: str) -> str:
    return message.split("\n", 1)[0].strip()


def extract_ticket(message: str) -> str | None:
    """
    Return the upper-cased ticket key a commit message refers to.

    The key at the start of the first line wins ("[ABC-12]: fix", "ABC-12 fix");
    otherwise the first key anywhere on that line. Merge commits never count.
    """
    if not message or message.lower().startswith("merge"):
        return None
    line = message.split("\n", 1)[0].lstrip()
    match = _TICKET_AT_START.match(_LEADING_NOISE.sub("", line, count=1))
    if match:
        return match.group(1).upper()
    match = _TICKET_ANYWHERE.search(line)
    return match.group(1).upper() if match else None


def filter_commits_by_emails(commits: list[SourceCommit], emails: set[str]) -> list[SourceCommit]:
    """Keep commits authored or committed by one of the emails (all if empty)."""
    if not emails:
        return list(commits)
    wanted = {e.lower() for e in emails}
    return [
        c
        for c in commits
        if c.author_email.lower() in wanted or c.committer_email.lower() in wanted
    ]


def commit_ticket_events(commits: list[SourceCommit]) -> list[CommitTicketEvent]:
    events = []
    for commit in commits:
        ticket = extract_ticket(commit.message)
        if ticket is None:
            continue
        events.append(
            CommitTicketEvent(
                at=commit.created_at,
                ticket=ticket,
                project_id=commit.project_id,
                first_line=first_line(commit.message),
            )
        )
    return events


class CommitTimeline:
    """Ticket-change events kept sorted by time, with point lookups."""

    def __init__(self, events: list[CommitTicketEvent]):
        self._events = sorted(events, key=lambda e: e.at)
        self._times = [e.at for e in self._events]

    @classmethod
    def from_commits(cls, commits: list[SourceCommit]) -> "CommitTimeline":
        return cls(commit_ticket_events(commits))

    def __len__(self) -> int:
        return len(self._events)

    def __bool__(self) -> bool:
        return bool(self._events)

    @property
    def events(self) -> list[CommitTicketEvent]:
        return list(self._events)

    def latest_at_or_before(self, t: datetime) -> CommitTicketEvent | None:
        idx = bisect.bisect_right(self._times, t)
        return self._events[idx - 1] if idx > 0 else None

    def earliest_at_or_after(self, t: datetime) -> CommitTicketEvent | None:
        idx = bisect.bisect_left(self._times, t)
        return self._events[idx] if idx < len(self._events) else None

    def strictly_between(self, start: datetime, end: datetime) -> list[CommitTicketEvent]:
        lo = bisect.bisect_right(self._times, start)
        hi = bisect.bisect_left(self._times, end)
        return self._events[lo:hi]

    def on_day(self, day: date) -> list[CommitTicketEvent]:
        start = datetime.combine(day, datetime.min.time())
        lo = bisect.bisect_left(self._times, start)
        hi = bisect.bisect_left(self._times, start + timedelta(days=1))
        return self._events[lo:hi]
