"""
Draft validation and request range checks.
"""

import re
from collections import defaultdict
from datetime import date, timedelta

from core.intervals import MIN_PIECE
from models.events import DraftSegment

TICKET_KEY = re.compile(r"^[A-Z][A-Z0-9]+-\d+$")
MAX_RANGE_DAYS = 62


def validate_date_range(from_day: date, to_day: date, max_days: int = MAX_RANGE_DAYS):
    """
    Raises:
        ValueError: If the range is reversed or longer than max_days
    """
    if to_day < from_day:
        raise ValueError(f"Range end {to_day} is before start {from_day}")
    if (to_day - from_day).days + 1 > max_days:
        raise ValueError(f"Range {from_day}..{to_day} exceeds {max_days} days")


def validate_drafts(drafts: list[DraftSegment]) -> list[str]:
    """
    Check a pass's drafts before they are booked.

    Checks:
    1. Ticket is a well-formed issue key
    2. Segment is at least one minute long and stays within its day
    3. Segments of a day do not overlap
    """
    errors = []
    by_day: dict[date, list[DraftSegment]] = defaultdict(list)

    for draft in drafts:
        where = f"{draft.start:%Y-%m-%d %H:%M}-{draft.end:%H:%M}"
        if not TICKET_KEY.match(draft.ticket):
            errors.append(f"{where}: invalid ticket key '{draft.ticket}'")
        if draft.duration < MIN_PIECE:
            errors.append(f"{where}: shorter than one minute")
        if draft.end > draft.start.replace(hour=0, minute=0, second=0, microsecond=0) + timedelta(days=1):
            errors.append(f"{where}: crosses midnight")
        by_day[draft.day].append(draft)

    for day, day_drafts in sorted(by_day.items()):
        ordered = sorted(day_drafts, key=lambda d: d.start)
        for previous, current in zip(ordered, ordered[1:]):
            if current.start < previous.end:
                errors.append(
                    f"{day}: [{previous.ticket}] {previous.start:%H:%M}-{previous.end:%H:%M} overlaps "
                    f"[{current.ticket}] {current.start:%H:%M}-{current.end:%H:%M}"
                )
    return errors
