"""
Partition a day's attendance into ticket-labelled draft segments.

Meetings are cut out of attendance first and booked to meeting tickets. The
leftover time is routed to tickets by commit history: each piece starts with
the ticket of the latest commit at or before it (or, failing that, the next
commit after it) and switches ticket at every later commit inside it.
"""

import random
import re
from datetime import date, datetime, timedelta

from core.errors import ReconciliationInconsistency
from core.intervals import MIN_PIECE, TimeInterval, clip, merge_touching, subtract
from core.trace import PassTrace
from models.events import DraftSegment, MeetingEvent, MeetingRule, TitleReplacementRule
from services.commits import CommitTimeline

WORK_LABEL = "Work"


def _hhmm(t: datetime) -> str:
    return t.strftime("%H:%M")


def resolve_meeting_ticket(title: str, rules: list[MeetingRule], default_ticket: str) -> str:
    """First rule whose pattern occurs in the title wins."""
    for rule in rules:
        if rule.matches(title):
            return rule.ticket
    return default_ticket


def apply_title_replacement(
    title: str,
    rules: list[TitleReplacementRule],
    rng: random.Random | None = None,
) -> tuple[str, str | None]:
    """
    Reword a meeting title with the first rule whose trigger word it contains.

    Every occurrence of the trigger is replaced, ignoring case, by one
    replacement picked at random from the rule.

    Returns:
        Tuple of (new_title, original_title), original_title is None when
        no rule changed the title
    """
    rng = rng or random
    lowered = title.lower()
    for rule in rules:
        if not rule.trigger or not rule.replacements:
            continue
        if rule.trigger.lower() not in lowered:
            continue
        replacement = rng.choice(rule.replacements)
        new_title = re.sub(re.escape(rule.trigger), lambda _: replacement, title, flags=re.IGNORECASE)
        if new_title != title:
            return new_title, title
    return title, None


def merged_meeting_blocks(meetings: list[MeetingEvent]) -> list[tuple[TimeInterval, str]]:
    """
    Merge meetings as cutters (touching ones join) and keep their titles.

    Returns:
        List of (block, joined_titles) sorted by start
    """
    blocks = merge_touching(list(meetings))
    result = []
    for block in blocks:
        titles = [m.title.strip() for m in meetings if block.contains(m) and m.title.strip()]
        result.append((block, " + ".join(titles)))
    return result


def trim_from_end(pieces: list[TimeInterval], cut: timedelta) -> list[TimeInterval]:
    """Remove `cut` worth of time from the end of the pieces, latest first."""
    if cut <= timedelta() or not pieces:
        return list(pieces)
    remaining = cut
    kept = []
    for piece in sorted(pieces, key=lambda p: p.start, reverse=True):
        if remaining <= timedelta():
            kept.append(piece)
        elif remaining >= piece.duration:
            remaining -= piece.duration
        else:
            new_end = piece.end - remaining
            remaining = timedelta()
            if new_end - piece.start >= MIN_PIECE:
                kept.append(TimeInterval(piece.start, new_end))
    return sorted(kept, key=lambda p: p.start)


def _initial_ticket(piece: TimeInterval, timeline: CommitTimeline, trace: PassTrace) -> str:
    prior = timeline.latest_at_or_before(piece.start)
    if prior is not None:
        return prior.ticket

    following = timeline.earliest_at_or_after(piece.start)
    if following is None:
        raise ReconciliationInconsistency(
            f"No commit to attribute work {piece.start:%Y-%m-%d} "
            f"{_hhmm(piece.start)}-{_hhmm(piece.end)}"
        )
    if piece.start < following.at < piece.end:
        trace.add(
            "fill_boundary",
            f"Forward-filled {piece.start:%Y-%m-%d} {_hhmm(piece.start)} "
            f"up to {following.at:%Y-%m-%d %H:%M} with [{following.ticket}]",
        )
    return following.ticket


def assign_pieces(
    pieces: list[TimeInterval],
    timeline: CommitTimeline,
    trace: PassTrace,
    label: str = WORK_LABEL,
) -> list[DraftSegment]:
    """Route each leftover piece to the ticket(s) active during it."""
    drafts = []
    for piece in pieces:
        try:
            ticket = _initial_ticket(piece, timeline, trace)
        except ReconciliationInconsistency as e:
            trace.add("unattributed", f"Dropped: {e}")
            continue

        segment_start = piece.start
        for change in timeline.strictly_between(piece.start, piece.end):
            if change.ticket == ticket:
                continue
            if change.at - segment_start >= MIN_PIECE:
                drafts.append(DraftSegment(segment_start, change.at, ticket, label))
                trace.add(
                    "segment",
                    f"{_hhmm(segment_start)}-{_hhmm(change.at)} -> [{ticket}] (commit {_hhmm(change.at)})",
                )
            ticket = change.ticket
            segment_start = change.at

        if piece.end - segment_start >= MIN_PIECE:
            drafts.append(DraftSegment(segment_start, piece.end, ticket, label))
            trace.add("segment", f"{_hhmm(segment_start)}-{_hhmm(piece.end)} -> [{ticket}]")
    return drafts


def build_day_segments(
    day: date,
    work_windows: list[TimeInterval],
    meetings: list[MeetingEvent],
    timeline: CommitTimeline,
    meeting_rules: list[MeetingRule],
    meeting_ticket: str,
    paid_non_work: timedelta = timedelta(),
    trace: PassTrace | None = None,
    title_rules: list[TitleReplacementRule] = (),
    rng: random.Random | None = None,
) -> list[DraftSegment]:
    """
    Build the sorted, non-overlapping draft segments of one day.

    Args:
        day: The calendar day being partitioned
        work_windows: Attendance windows, already net of breaks
        meetings: Meetings that passed the calendar filter
        timeline: Commit ticket events (all days)
        meeting_rules: Ordered title -> ticket rules
        meeting_ticket: Ticket for meetings no rule matches
        paid_non_work: Time to trim off the end of the leftover work
        trace: Pass trace receiving fill boundaries and dropped pieces
        title_rules: Rewordings applied to meeting titles in labels
        rng: Random source for picking a rewording
    """
    trace = trace if trace is not None else PassTrace()
    windows = merge_touching(list(work_windows))
    blocks = merged_meeting_blocks(meetings)

    drafts: list[DraftSegment] = []
    for block, titles in blocks:
        # Routing uses the real title, the label the reworded one
        ticket = resolve_meeting_ticket(titles, meeting_rules, meeting_ticket)
        titles, original = apply_title_replacement(titles, title_rules, rng)
        if original is not None:
            trace.add("title_replaced", f"{block.start:%Y-%m-%d %H:%M} '{original}' -> '{titles}'")
        for window in windows:
            part = clip(block, window)
            if part is None or part.duration < MIN_PIECE:
                continue
            label = f"Meeting {_hhmm(part.start)}-{_hhmm(part.end)}"
            if titles:
                label += f" - {titles}"
            drafts.append(DraftSegment(part.start, part.end, ticket, label))

    cutters = [block for block, _ in blocks]
    leftover = []
    for window in windows:
        leftover.extend(subtract(window, cutters))
    leftover = trim_from_end(leftover, paid_non_work)

    if leftover and not timeline:
        trace.add("unattributed", f"{day}: no commits loaded, {len(leftover)} work piece(s) left unbooked")
    elif leftover:
        drafts.extend(assign_pieces(leftover, timeline, trace))

    drafts.sort(key=lambda d: d.start)
    return drafts
