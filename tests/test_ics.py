"""Tests for calendar text parsing and recurrence expansion."""

from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from core.errors import ParseError
from core.trace import PassTrace
from services.ics import events_in_window, expand_occurrences, parse_ics, parse_rrule

VIENNA = ZoneInfo("Europe/Vienna")


def calendar(*events: str) -> str:
    body = "".join(f"BEGIN:VEVENT\r\n{e.strip()}\r\nEND:VEVENT\r\n" for e in events)
    return f"BEGIN:VCALENDAR\r\nVERSION:2.0\r\n{body}END:VCALENDAR\r\n"


def week_window():
    return datetime(2025, 3, 3), datetime(2025, 3, 10)


def single(lines: str, **kwargs):
    (event,) = parse_ics(calendar(lines), local_tz=VIENNA, **kwargs)
    return event


# =============================================================================
# LINES AND VALUES
# =============================================================================


def test_folded_summary_is_joined():
    event = single("UID:1\r\nSUMMARY:Sprint\r\n  Planning\r\nDTSTART:20250303T100000\r\nDTEND:20250303T110000")
    assert event.title == "Sprint Planning"


def test_escaped_backslash_is_not_read_as_newline():
    event = single("UID:1\nSUMMARY:Share C:\\\\new\nDESCRIPTION:one\\ntwo\nDTSTART:20250303T100000\nDTEND:20250303T110000")
    assert event.title == "Share C:\\new"
    assert event.description == "one\ntwo"


def test_quoted_parameter_with_colon():
    event = single(
        'UID:1\nSUMMARY:Sync\nDTSTART:20250303T100000\nDTEND:20250303T110000\n'
        'ATTENDEE;CN="Doe: Jane";PARTSTAT=TENTATIVE:mailto:dev@example.com',
        self_email="dev@example.com",
    )
    assert event.self_partstat == "TENTATIVE"


def test_utc_value_is_converted_to_local():
    event = single("UID:1\nSUMMARY:Call\nDTSTART:20250303T080000Z\nDTEND:20250303T090000Z")
    assert event.start == datetime(2025, 3, 3, 9, 0)
    assert event.end == datetime(2025, 3, 3, 10, 0)
    assert not event.all_day


def test_tzid_value_is_converted_to_local():
    event = single(
        "UID:1\nSUMMARY:Call\nDTSTART;TZID=Europe/London:20250303T080000\nDTEND;TZID=Europe/London:20250303T083000"
    )
    assert event.start == datetime(2025, 3, 3, 9, 0)
    assert event.end == datetime(2025, 3, 3, 9, 30)


def test_floating_value_stays_wall_clock():
    event = single("UID:1\nSUMMARY:Focus\nDTSTART:20250330T080000\nDTEND:20250330T090000")
    assert event.start == datetime(2025, 3, 30, 8, 0)


def test_date_only_value_is_all_day():
    event = single("UID:1\nSUMMARY:Off\nDTSTART:20250303")
    assert event.all_day
    assert event.start == datetime(2025, 3, 3)
    assert event.end == datetime(2025, 3, 4)


def test_empty_calendar_text():
    assert parse_ics("", local_tz=VIENNA) == []
    assert parse_ics("BEGIN:VCALENDAR\r\nVERSION:2.0\r\nEND:VCALENDAR\r\n", local_tz=VIENNA) == []


def test_text_outside_any_calendar_raises():
    with pytest.raises(ParseError):
        parse_ics("SUMMARY:orphan\r\nDTSTART:20250303T100000\r\n", local_tz=VIENNA)


def test_parse_rrule_tolerates_garbage():
    assert parse_rrule("FREQ=WEEKLY;COUNT=2")["COUNT"] == [2]
    assert dict(parse_rrule("FREQ=DAILY;COUNT=many")) == {}


# =============================================================================
# PARSER
# =============================================================================


def test_parse_event_properties():
    text = calendar(
        """
UID:abc
SUMMARY:Review\\, part 1
DTSTART:20250303T100000
DTEND:20250303T110000
STATUS:CONFIRMED
TRANSP:OPAQUE
X-MICROSOFT-CDO-BUSYSTATUS:BUSY
CATEGORIES:Work,Team
ATTENDEE;PARTSTAT=DECLINED:mailto:Dev@Example.com
ATTENDEE;PARTSTAT=ACCEPTED:mailto:other@example.com
"""
    )
    (event,) = parse_ics(text, self_email="dev@example.com", local_tz=VIENNA)
    assert event.title == "Review, part 1"
    assert event.start == datetime(2025, 3, 3, 10)
    assert event.end == datetime(2025, 3, 3, 11)
    assert event.busy_status == "BUSY"
    assert event.categories == ("Work", "Team")
    assert event.attendee_count == 2
    assert event.self_partstat == "DECLINED"
    assert not event.all_day


def test_partstat_only_kept_for_own_identity():
    text = calendar(
        """
UID:abc
SUMMARY:Sync
DTSTART:20250303T100000
DTEND:20250303T110000
ATTENDEE;PARTSTAT=DECLINED:mailto:other@example.com
"""
    )
    (event,) = parse_ics(text, self_email="dev@example.com", local_tz=VIENNA)
    assert event.self_partstat is None
    assert event.attendee_count == 1


def test_duration_and_all_day_ends():
    text = calendar(
        "UID:a\nSUMMARY:Timed\nDTSTART:20250303T100000\nDURATION:PT45M",
        "UID:b\nSUMMARY:Holiday\nDTSTART;VALUE=DATE:20250304",
        "UID:c\nSUMMARY:Trip\nDTSTART;VALUE=DATE:20250305\nDTEND;VALUE=DATE:20250307",
    )
    timed, holiday, trip = parse_ics(text, local_tz=VIENNA)
    assert timed.end == datetime(2025, 3, 3, 10, 45)
    assert holiday.all_day and holiday.end == datetime(2025, 3, 5)
    assert trip.end == datetime(2025, 3, 7)


def test_broken_event_is_skipped_and_traced():
    trace = PassTrace()
    text = calendar(
        "UID:broken\nSUMMARY:No start\nDTEND:20250303T110000",
        "UID:bad-date\nSUMMARY:Bad\nDTSTART:tomorrow\nDTEND:20250303T110000",
        "UID:ok\nSUMMARY:Fine\nDTSTART:20250303T100000\nDTEND:20250303T110000",
    )
    events = parse_ics(text, trace=trace, local_tz=VIENNA)
    assert [e.uid for e in events] == ["ok"]
    assert len(trace.of_type("parse_error")) == 2


def test_event_ending_before_start_is_rejected():
    trace = PassTrace()
    text = calendar("UID:x\nSUMMARY:Backwards\nDTSTART:20250303T110000\nDTEND:20250303T100000")
    assert parse_ics(text, trace=trace, local_tz=VIENNA) == []
    assert trace.of_type("parse_error")


def test_nested_alarm_does_not_override_event():
    text = calendar(
        """
UID:alarm
SUMMARY:With alarm
DESCRIPTION:Agenda
DTSTART:20250303T100000
DTEND:20250303T110000
BEGIN:VALARM
ACTION:DISPLAY
DESCRIPTION:Reminder
TRIGGER:-PT15M
END:VALARM
"""
    )
    (event,) = parse_ics(text, local_tz=VIENNA)
    assert event.description == "Agenda"


def test_first_property_occurrence_wins():
    text = calendar("UID:x\nSUMMARY:First\nSUMMARY:Second\nDTSTART:20250303T100000\nDTEND:20250303T110000")
    (event,) = parse_ics(text, local_tz=VIENNA)
    assert event.title == "First"


# =============================================================================
# RECURRENCE
# =============================================================================


def test_daily_count_is_not_consumed_by_exdate():
    text = calendar(
        """
UID:daily
SUMMARY:Standup
DTSTART:20250303T091500
DTEND:20250303T093000
RRULE:FREQ=DAILY;COUNT=3
EXDATE:20250304T091500
"""
    )
    events = parse_ics(text, local_tz=VIENNA)
    found = events_in_window(events, *week_window(), local_tz=VIENNA)
    assert [e.start.day for e in found] == [3, 5, 6]
    assert all(e.rrule == "" for e in found)


def test_weekly_byday_with_date_only_until_is_inclusive():
    text = calendar(
        """
UID:weekly
SUMMARY:Sync
DTSTART:20250303T140000
DTEND:20250303T150000
RRULE:FREQ=WEEKLY;BYDAY=MO,WE;UNTIL=20250312
"""
    )
    events = parse_ics(text, local_tz=VIENNA)
    found = events_in_window(events, datetime(2025, 3, 1), datetime(2025, 3, 31), local_tz=VIENNA)
    assert [e.start.day for e in found] == [3, 5, 10, 12]


def test_weekly_interval_counts_whole_weeks():
    text = calendar(
        """
UID:biweekly
SUMMARY:Retro
DTSTART:20250305T100000
DTEND:20250305T110000
RRULE:FREQ=WEEKLY;INTERVAL=2
"""
    )
    events = parse_ics(text, local_tz=VIENNA)
    found = events_in_window(events, datetime(2025, 3, 1), datetime(2025, 4, 1), local_tz=VIENNA)
    assert [e.start.day for e in found] == [5, 19]


def test_recurrence_id_instance_replaces_master_occurrence():
    text = calendar(
        """
UID:series
SUMMARY:Standup
DTSTART:20250303T091500
DTEND:20250303T093000
RRULE:FREQ=DAILY;COUNT=5
""",
        """
UID:series
RECURRENCE-ID:20250304T091500
SUMMARY:Standup (moved)
DTSTART:20250304T113000
DTEND:20250304T114500
""",
    )
    events = parse_ics(text, local_tz=VIENNA)
    found = events_in_window(events, datetime(2025, 3, 4), datetime(2025, 3, 5), local_tz=VIENNA)
    assert len(found) == 1
    assert found[0].title == "Standup (moved)"
    assert found[0].start == datetime(2025, 3, 4, 11, 30)


def test_expansion_without_count_starts_near_window():
    text = calendar(
        "UID:old\nSUMMARY:Old daily\nDTSTART:20200101T080000\nDTEND:20200101T081500\nRRULE:FREQ=DAILY"
    )
    (event,) = parse_ics(text, local_tz=VIENNA)
    found = expand_occurrences(event, datetime(2025, 3, 3), datetime(2025, 3, 4), local_tz=VIENNA)
    assert [e.start for e in found] == [datetime(2025, 3, 3, 8)]


def test_unsupported_frequency_passes_through_when_intersecting():
    text = calendar(
        "UID:m\nSUMMARY:Monthly\nDTSTART:20250303T100000\nDTEND:20250303T110000\nRRULE:FREQ=MONTHLY"
    )
    (event,) = parse_ics(text, local_tz=VIENNA)
    assert expand_occurrences(event, *week_window(), local_tz=VIENNA) == [event]
    assert expand_occurrences(event, datetime(2025, 4, 1), datetime(2025, 4, 2), local_tz=VIENNA) == []


def test_weekly_byday_count_skips_exdate_without_consuming_it():
    text = calendar(
        """
UID:weekly-count
SUMMARY:Sync
DTSTART:20250303T140000
DTEND:20250303T150000
RRULE:FREQ=WEEKLY;BYDAY=MO,WE;COUNT=4
EXDATE:20250305T140000
"""
    )
    events = parse_ics(text, local_tz=VIENNA)
    found = events_in_window(events, datetime(2025, 3, 1), datetime(2025, 3, 31), local_tz=VIENNA)
    assert [e.start.day for e in found] == [3, 10, 12, 17]


def test_weekly_interval_counts_from_series_start_date():
    # Series starts on a Wednesday; weeks are counted in 7-day steps from that date
    text = calendar(
        """
UID:fortnight
SUMMARY:Review
DTSTART:20250305T100000
DTEND:20250305T110000
RRULE:FREQ=WEEKLY;BYDAY=MO,WE;INTERVAL=2
"""
    )
    events = parse_ics(text, local_tz=VIENNA)
    found = events_in_window(events, datetime(2025, 3, 1), datetime(2025, 3, 25), local_tz=VIENNA)
    assert [e.start.day for e in found] == [5, 10, 19, 24]
