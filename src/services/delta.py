"""
Classify draft segments against worklogs already booked remotely.
"""

from dataclasses import replace
from datetime import timedelta

from core.config import DUPLICATE_DURATION_TOLERANCE_SECONDS, DUPLICATE_START_TOLERANCE_SECONDS
from models.events import DeltaState, DraftSegment
from models.worklogs import RemoteWorklogRecord

DURATION_TOLERANCE = timedelta(seconds=DUPLICATE_DURATION_TOLERANCE_SECONDS)
START_TOLERANCE = timedelta(seconds=DUPLICATE_START_TOLERANCE_SECONDS)


def classify_segment(draft: DraftSegment, records: list[RemoteWorklogRecord]) -> DeltaState:
    """
    NEW if no same-ticket record overlaps; DUPLICATE if an overlapping one
    matches within 60s duration and 5min start; otherwise OVERLAP.
    """
    overlapped = False
    for record in records:
        if record.ticket != draft.ticket:
            continue
        if not (draft.end > record.started and record.end > draft.start):
            continue
        overlapped = True
        duration_delta = abs(draft.duration - timedelta(seconds=record.time_spent))
        start_delta = abs(draft.start - record.started)
        if duration_delta <= DURATION_TOLERANCE and start_delta <= START_TOLERANCE:
            return DeltaState.DUPLICATE
    return DeltaState.OVERLAP if overlapped else DeltaState.NEW


def classify_segments(
    drafts: list[DraftSegment], records: list[RemoteWorklogRecord]
) -> list[DraftSegment]:
    """Return copies of the drafts with their state set."""
    by_ticket: dict[str, list[RemoteWorklogRecord]] = {}
    for record in records:
        by_ticket.setdefault(record.ticket, []).append(record)
    return [
        replace(draft, state=classify_segment(draft, by_ticket.get(draft.ticket, [])))
        for draft in drafts
    ]
