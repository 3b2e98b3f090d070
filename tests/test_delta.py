"""Tests for classifying drafts against booked worklogs."""

from datetime import timedelta

from helpers import at, record
from models.events import DeltaState, DraftSegment
from services.delta import classify_segment, classify_segments


def draft(ticket: str, start: str, end: str) -> DraftSegment:
    return DraftSegment(at(start), at(end), ticket)


def test_new_when_nothing_overlaps():
    assert classify_segment(draft("ABC-1", "09:00", "10:00"), []) == DeltaState.NEW
    assert classify_segment(draft("ABC-1", "09:00", "10:00"), [record("ABC-1", "10:00", "11:00")]) == DeltaState.NEW


def test_other_ticket_never_counts():
    assert classify_segment(draft("ABC-1", "09:00", "10:00"), [record("ABC-2", "09:00", "10:00")]) == DeltaState.NEW


def test_duplicate_within_tolerances():
    assert classify_segment(draft("ABC-1", "09:00", "10:00"), [record("ABC-1", "09:04", "10:05")]) == DeltaState.DUPLICATE


def test_overlap_outside_tolerances():
    # Start 6 minutes off
    assert classify_segment(draft("ABC-1", "09:00", "10:00"), [record("ABC-1", "09:06", "10:06")]) == DeltaState.OVERLAP
    # Duration 2 minutes off
    assert classify_segment(draft("ABC-1", "09:00", "10:00"), [record("ABC-1", "09:00", "10:02")]) == DeltaState.OVERLAP


def test_any_matching_record_makes_a_duplicate():
    records = [record("ABC-1", "09:30", "10:30"), record("ABC-1", "09:01", "10:01")]
    assert classify_segment(draft("ABC-1", "09:00", "10:00"), records) == DeltaState.DUPLICATE


def test_classify_segments_returns_copies():
    drafts = [draft("ABC-1", "09:00", "10:00"), draft("ABC-2", "10:00", "11:00")]
    classified = classify_segments(drafts, [record("ABC-2", "10:30", "11:30")])

    assert [d.state for d in classified] == [DeltaState.NEW, DeltaState.OVERLAP]
    assert all(d.state == DeltaState.NEW for d in drafts)
    assert classified[1].duration == timedelta(hours=1)
