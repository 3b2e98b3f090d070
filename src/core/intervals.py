"""
Half-open time interval primitives: subtract, merge, clip.

Attendance windows and meeting windows are merged under different policies.
Attendance treats touching endpoints as one block; meetings only merge on a
strict overlap, so two back-to-back meetings stay separate entries.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

from core.config import MIN_SEGMENT_SECONDS

MIN_PIECE = timedelta(seconds=MIN_SEGMENT_SECONDS)


@dataclass(frozen=True)
class TimeInterval:
    """Half-open interval [start, end)."""

    start: datetime
    end: datetime

    def __post_init__(self):
        if self.end <= self.start:
            raise ValueError(f"Interval end {self.end} must be after start {self.start}")

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def overlaps(self, other: "TimeInterval") -> bool:
        """Strict half-open intersection; touching intervals do not overlap."""
        return self.end > other.start and other.end > self.start

    def contains(self, other: "TimeInterval") -> bool:
        return self.start <= other.start and other.end <= self.end


class WorkWindow(TimeInterval):
    """Confirmed attendance, already net of breaks."""


class PauseInterval(TimeInterval):
    """A canonical break."""


def clip(a: TimeInterval, b: TimeInterval) -> TimeInterval | None:
    """Return the intersection of two intervals, or None if they do not overlap."""
    start = max(a.start, b.start)
    end = min(a.end, b.end)
    if end <= start:
        return None
    return TimeInterval(start, end)


def subtract(base: TimeInterval, cutters: list[TimeInterval]) -> list[TimeInterval]:
    """
    Return the parts of base not covered by any cutter.

    Each cutter splits the current remainder set into left/right pieces.
    Pieces shorter than a minute are dropped; result is sorted by start.
    """
    remainder = [TimeInterval(base.start, base.end)]
    for cutter in cutters:
        next_remainder = []
        for piece in remainder:
            if not piece.overlaps(cutter):
                next_remainder.append(piece)
                continue
            if cutter.start > piece.start:
                next_remainder.append(TimeInterval(piece.start, cutter.start))
            if cutter.end < piece.end:
                next_remainder.append(TimeInterval(cutter.end, piece.end))
        remainder = next_remainder
    return sorted(
        (p for p in remainder if p.duration >= MIN_PIECE),
        key=lambda p: p.start,
    )


def merge_touching(intervals: list[TimeInterval]) -> list[TimeInterval]:
    """Merge attendance-style: next.start <= last.end joins the block."""
    merged: list[TimeInterval] = []
    for interval in sorted(intervals, key=lambda i: (i.start, i.end)):
        if merged and interval.start <= merged[-1].end:
            last = merged[-1]
            if interval.end > last.end:
                merged[-1] = TimeInterval(last.start, interval.end)
        else:
            merged.append(TimeInterval(interval.start, interval.end))
    return merged


def merge_overlapping(intervals: list[TimeInterval]) -> list[TimeInterval]:
    """Merge meeting-style: only next.start < last.end joins the block."""
    merged: list[TimeInterval] = []
    for interval in sorted(intervals, key=lambda i: (i.start, i.end)):
        if merged and interval.start < merged[-1].end:
            last = merged[-1]
            if interval.end > last.end:
                merged[-1] = TimeInterval(last.start, interval.end)
        else:
            merged.append(TimeInterval(interval.start, interval.end))
    return merged


def total_duration(intervals: list[TimeInterval]) -> timedelta:
    return sum((i.duration for i in intervals), timedelta())
