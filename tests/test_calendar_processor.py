"""Unit tests for CalendarProcessor."""
from datetime import datetime, timedelta
from unittest.mock import patch
from zoneinfo import ZoneInfo

import pytest

from processor.calendar_processor import CalendarProcessor
from processor.models import DedupeOptions

CHICAGO = ZoneInfo("America/Chicago")

# Monday morning; the default 14-day window ends 2025-10-20 08:00
NOW = datetime(2025, 10, 6, 8, 0, tzinfo=CHICAGO)


def dt(*args) -> datetime:
    return datetime(*args, tzinfo=CHICAGO)


def calendar(*events: str) -> str:
    body = "".join(f"BEGIN:VEVENT\r\n{event}END:VEVENT\r\n" for event in events)
    return f"BEGIN:VCALENDAR\r\nVERSION:2.0\r\nPRODID:-//Cana//Test//EN\r\n{body}END:VCALENDAR\r\n"


WEEKLY_BIBLE_STUDY = (
    "UID:bible-1\r\n"
    "SUMMARY:Bible Study: Romans\r\n"
    "DTSTART;TZID=America/Chicago:20250903T183000\r\n"
    "DTEND;TZID=America/Chicago:20250903T200000\r\n"
    "RRULE:FREQ=WEEKLY\r\n"
    "LOCATION:Room 201\r\n"
)

REGISTRATION_COPY = (
    "UID:reg-bible\r\n"
    "SUMMARY:Bible Study\r\n"
    "DTSTART;TZID=America/Chicago:20251008T183500\r\n"
    "DTEND;TZID=America/Chicago:20251008T193500\r\n"
    "URL:https://cana.churchcenter.com/registrations/events/42\r\n"
)

NO_SUMMARY = (
    "UID:mystery\r\n"
    "DTSTART:20251009T100000\r\n"
)

FALL_FESTIVAL = (
    "SUMMARY:Fall Fes\r\n"
    " tival\r\n"
    "DTSTART:20251018T140000Z\r\n"
    "DTEND:20251018T170000Z\r\n"
)

PAST_EVENT = (
    "UID:past-1\r\n"
    "SUMMARY:Labor Day Picnic\r\n"
    "DTSTART:20250901T100000\r\n"
)

MONTHLY_LUNCH = (
    "UID:lunch-1\r\n"
    "SUMMARY:Staff Lunch\r\n"
    "DTSTART:20251010T120000\r\n"
    "DTEND:20251010T130000\r\n"
    "RRULE:FREQ=MONTHLY;BYMONTHDAY=10\r\n"
)

RDATE_BREAKFAST = (
    "UID:rdate-1\r\n"
    "SUMMARY:Community Breakfast\r\n"
    "DTSTART:20250901T090000\r\n"
    "DTEND:20250901T100000\r\n"
    "RDATE:20251012T090000\r\n"
)

YOUTH_NIGHT = (
    "UID:youth-1\r\n"
    "SUMMARY:Youth Night\r\n"
    "DTSTART:20251016T190000\r\n"
    "DTEND:20251016T210000\r\n"
    "LOCATION:Gym\\, Room 3\r\n"
)

FULL_CALENDAR = calendar(
    WEEKLY_BIBLE_STUDY,
    REGISTRATION_COPY,
    NO_SUMMARY,
    FALL_FESTIVAL,
    PAST_EVENT,
    MONTHLY_LUNCH,
    RDATE_BREAKFAST,
    YOUTH_NIGHT,
)


@pytest.fixture
def processor():
    """Create a processor with the newsletter's defaults."""
    return CalendarProcessor(timezone="America/Chicago", default_location="Cana Campus")


class TestCalendarProcessor:
    """Test cases for CalendarProcessor."""

    def test_init_defaults(self):
        """Test processor defaults."""
        processor = CalendarProcessor()

        assert processor.timezone == "America/Chicago"
        assert processor.days == 14
        assert processor.lookback_days == 0
        assert processor.max_events == 8
        assert processor.dedupe_options == DedupeOptions()

    def test_window(self):
        """Test the window bounds including lookback."""
        processor = CalendarProcessor(days=7, lookback_days=1)
        start, end = processor.window(NOW)

        assert start == dt(2025, 10, 5, 8, 0)
        assert end == dt(2025, 10, 13, 8, 0)

    def test_window_converts_now_to_output_zone(self):
        """Test that a UTC now is expressed in the output zone."""
        processor = CalendarProcessor(days=1)
        start, _ = processor.window(datetime(2025, 10, 6, 13, 0, tzinfo=ZoneInfo("UTC")))

        assert start.tzinfo is CHICAGO
        assert start == NOW

    def test_process_full_calendar(self, processor):
        """Test the whole pipeline on a mixed calendar."""
        events = processor.process_ics(FULL_CALENDAR, NOW)

        assert [(e.title, e.start) for e in events] == [
            ("Bible Study: Romans", dt(2025, 10, 8, 18, 30)),
            ("Staff Lunch", dt(2025, 10, 10, 12, 0)),
            ("Community Breakfast", dt(2025, 10, 12, 9, 0)),
            ("Bible Study: Romans", dt(2025, 10, 15, 18, 30)),
            ("Youth Night", dt(2025, 10, 16, 19, 0)),
            ("Fall Festival", dt(2025, 10, 18, 9, 0)),
        ]

    def test_registration_copy_merges_into_recurring_instance(self, processor):
        """Test that a near-identical single event merges into the weekly instance."""
        events = processor.process_ics(calendar(WEEKLY_BIBLE_STUDY, REGISTRATION_COPY), NOW)

        first = events[0]
        assert len(events) == 2
        assert first.id == "bible-1#2025-10-08T18:30:00-05:00"
        assert first.title == "Bible Study: Romans"
        assert first.location == "Room 201"
        assert first.url == "https://cana.churchcenter.com/registrations/events/42"
        assert first.end == dt(2025, 10, 8, 20, 0)

    def test_recurring_instances_have_synthetic_ids(self, processor):
        """Test that each expanded instance gets uid#start as its id."""
        events = processor.process_ics(calendar(WEEKLY_BIBLE_STUDY), NOW)

        assert [e.id for e in events] == [
            "bible-1#2025-10-08T18:30:00-05:00",
            "bible-1#2025-10-15T18:30:00-05:00",
        ]
        assert all(e.end - e.start == timedelta(minutes=90) for e in events)

    def test_single_event_keeps_uid(self, processor):
        """Test that a non-recurring event keeps its UID as id."""
        events = processor.process_ics(calendar(YOUTH_NIGHT), NOW)

        assert len(events) == 1
        assert events[0].id == "youth-1"
        assert events[0].location == "Gym, Room 3"

    def test_non_weekly_rule_is_single_occurrence(self, processor):
        """Test that a MONTHLY rule yields only the seed occurrence."""
        events = processor.process_ics(calendar(MONTHLY_LUNCH), NOW)

        assert len(events) == 1
        assert events[0].id == "lunch-1"
        assert events[0].start == dt(2025, 10, 10, 12, 0)

    def test_rdate_on_non_recurring_event(self, processor):
        """Test that RDATEs of a single event are emitted inside the window."""
        events = processor.process_ics(calendar(RDATE_BREAKFAST), NOW)

        assert len(events) == 1
        assert events[0].id == "rdate-1#2025-10-12T09:00:00-05:00"
        assert events[0].end == dt(2025, 10, 12, 10, 0)

    def test_utc_value_and_folded_summary(self, processor):
        """Test a folded SUMMARY and a UTC DTSTART."""
        events = processor.process_ics(calendar(FALL_FESTIVAL), NOW)

        assert events[0].title == "Fall Festival"
        assert events[0].start == dt(2025, 10, 18, 9, 0)
        assert events[0].start.tzinfo is CHICAGO
        assert events[0].id is None

    def test_default_location(self, processor):
        """Test that events without LOCATION get the default location."""
        events = processor.process_ics(calendar(FALL_FESTIVAL), NOW)
        assert events[0].location == "Cana Campus"

    def test_missing_summary_and_past_events_are_dropped(self, processor):
        """Test that untitled and out-of-window events are skipped."""
        assert processor.process_ics(calendar(NO_SUMMARY, PAST_EVENT), NOW) == []

    def test_missing_dtstart_is_skipped(self, processor):
        """Test that an event without DTSTART is skipped."""
        assert processor.process_ics(calendar("SUMMARY:Someday\r\n"), NOW) == []

    def test_single_event_without_end(self, processor):
        """Test that a seed without DTEND emits one event with start == end."""
        events = processor.process_ics(calendar(
            "SUMMARY:Morning Prayer\r\n"
            "DTSTART:20251009T070000\r\n"
        ), NOW)

        assert len(events) == 1
        assert events[0].start == events[0].end == dt(2025, 10, 9, 7, 0)

    def test_end_before_start_is_clamped(self, processor):
        """Test that DTEND earlier than DTSTART becomes DTSTART."""
        events = processor.process_ics(calendar(
            "SUMMARY:Backwards\r\n"
            "DTSTART:20251009T100000\r\n"
            "DTEND:20251009T090000\r\n"
        ), NOW)
        assert events[0].end == events[0].start

    def test_truncates_to_max_events(self):
        """Test truncation to max_events after de-duplication."""
        processor = CalendarProcessor(max_events=3)
        events = processor.process_ics(FULL_CALENDAR, NOW)

        assert [e.start for e in events] == [
            dt(2025, 10, 8, 18, 30),
            dt(2025, 10, 10, 12, 0),
            dt(2025, 10, 12, 9, 0),
        ]

    def test_no_truncation(self):
        """Test that max_events=None keeps everything."""
        processor = CalendarProcessor(max_events=None, days=60)
        events = processor.process_ics(calendar(WEEKLY_BIBLE_STUDY), NOW)
        assert len(events) == 9

    @pytest.mark.parametrize("text", ["", None, "BEGIN:VCALENDAR\r\nEND:VCALENDAR\r\n"])
    def test_empty_input(self, processor, text):
        """Test that empty input yields no events."""
        assert processor.process_ics(text, NOW) == []

    def test_failing_block_does_not_stop_others(self, processor):
        """Test that one block raising is skipped and the rest processed."""
        with patch(
            "processor.calendar_processor.parse_rrule",
            side_effect=ValueError("bad rule")
        ):
            events = processor.process_ics(calendar(WEEKLY_BIBLE_STUDY, YOUTH_NIGHT), NOW)

        assert [e.title for e in events] == ["Youth Night"]

    def test_parse_seed(self, processor):
        """Test the fields extracted into an EventSeed."""
        block = (
            WEEKLY_BIBLE_STUDY
            + "EXDATE;TZID=America/Chicago:20251015T183000\r\n"
            + "URL:https://example.com/bible\r\n"
        )
        seed = processor.parse_seed(block)

        assert seed.uid == "bible-1"
        assert seed.title == "Bible Study: Romans"
        assert seed.location == "Room 201"
        assert seed.url == "https://example.com/bible"
        assert seed.rrule.is_weekly
        assert seed.exception_dates == {dt(2025, 10, 15, 18, 30)}
        assert seed.extra_dates == frozenset()

    def test_exdate_removes_instance(self, processor):
        """Test that an EXDATE removes exactly the matching instance."""
        events = processor.process_ics(calendar(
            WEEKLY_BIBLE_STUDY + "EXDATE;TZID=America/Chicago:20251015T183000\r\n"
        ), NOW)
        assert [e.start for e in events] == [dt(2025, 10, 8, 18, 30)]
