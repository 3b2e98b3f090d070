"""Tests for interval subtraction, merging and clipping."""

from datetime import datetime, timedelta

import pytest

from core.intervals import (
    PauseInterval,
    TimeInterval,
    WorkWindow,
    clip,
    merge_overlapping,
    merge_touching,
    subtract,
    total_duration,
)
from helpers import at


def iv(start: str, end: str) -> TimeInterval:
    return TimeInterval(at(start), at(end))


def test_interval_rejects_non_positive_length():
    with pytest.raises(ValueError):
        TimeInterval(at("10:00"), at("10:00"))
    with pytest.raises(ValueError):
        TimeInterval(at("10:00"), at("09:00"))


def test_overlap_is_strict():
    assert iv("09:00", "10:00").overlaps(iv("09:30", "11:00"))
    assert not iv("09:00", "10:00").overlaps(iv("10:00", "11:00"))


def test_subtract_splits_around_cutters():
    pieces = subtract(iv("08:00", "17:00"), [iv("12:00", "13:00"), iv("10:00", "11:00")])
    assert pieces == [iv("08:00", "10:00"), iv("11:00", "12:00"), iv("13:00", "17:00")]


def test_subtract_is_order_independent():
    cutters = [iv("09:00", "09:30"), iv("09:15", "10:00"), iv("14:00", "15:00")]
    forward = subtract(iv("08:00", "16:00"), cutters)
    backward = subtract(iv("08:00", "16:00"), list(reversed(cutters)))
    assert forward == backward


def test_subtract_drops_pieces_under_a_minute():
    base = iv("08:00", "09:00")
    cutter = TimeInterval(at("08:00") + timedelta(seconds=30), at("09:00"))
    assert subtract(base, [cutter]) == []


def test_subtract_full_cover_leaves_nothing():
    assert subtract(iv("10:00", "11:00"), [iv("09:00", "12:00")]) == []


def test_merge_policies_differ_on_touching_intervals():
    touching = [iv("09:00", "10:00"), iv("10:00", "11:00")]
    assert merge_touching(touching) == [iv("09:00", "11:00")]
    assert merge_overlapping(touching) == touching


def test_merge_overlapping_unions_strict_overlaps():
    merged = merge_overlapping([iv("10:30", "12:00"), iv("09:00", "11:00"), iv("13:00", "14:00")])
    assert merged == [iv("09:00", "12:00"), iv("13:00", "14:00")]


def test_merge_returns_plain_intervals():
    merged = merge_touching([WorkWindow(at("08:00"), at("12:00"))])
    assert type(merged[0]) is TimeInterval


def test_clip():
    assert clip(iv("09:00", "11:00"), iv("10:00", "12:00")) == iv("10:00", "11:00")
    assert clip(iv("09:00", "10:00"), iv("10:00", "11:00")) is None


def test_subclasses_are_distinct_values():
    pause = PauseInterval(at("12:00"), at("12:30"))
    assert pause != TimeInterval(at("12:00"), at("12:30"))
    assert pause.duration == timedelta(minutes=30)


def test_total_duration():
    assert total_duration([iv("08:00", "09:00"), iv("10:00", "10:30")]) == timedelta(minutes=90)
    assert total_duration([]) == timedelta()


def test_subtract_result_never_overlaps_cutters():
    base = TimeInterval(datetime(2025, 3, 3, 7), datetime(2025, 3, 3, 19))
    cutters = [
        TimeInterval(datetime(2025, 3, 3, h, m), datetime(2025, 3, 3, h, m) + timedelta(minutes=d))
        for h, m, d in [(8, 15, 45), (9, 0, 30), (11, 50, 20), (16, 0, 90)]
    ]
    for piece in subtract(base, cutters):
        assert base.contains(piece)
        assert not any(piece.overlaps(c) for c in cutters)


def test_subtract_without_cutters_returns_base():
    base = iv("08:00", "16:30")
    assert subtract(base, []) == [base]


def test_pieces_and_covered_parts_rebuild_the_base():
    base = TimeInterval(datetime(2025, 3, 3, 7), datetime(2025, 3, 3, 19))
    cutters = [
        iv("08:15", "09:00"),
        iv("09:00", "09:30"),
        iv("11:50", "12:10"),
        iv("16:00", "17:30"),
        iv("06:00", "06:30"),
    ]
    pieces = subtract(base, cutters)
    covered = [part for part in (clip(base, c) for c in cutters) if part is not None]

    assert merge_touching(pieces + covered) == [base]
    assert total_duration(pieces) + total_duration(merge_touching(covered)) == base.duration
