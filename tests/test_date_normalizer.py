"""Unit tests for ICS date normalization."""
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from processor.date_normalizer import parse_date_list, parse_ics_date, resolve_zone
from processor.models import RawProperty

CHICAGO = ZoneInfo("America/Chicago")
NEW_YORK = ZoneInfo("America/New_York")
FALLBACK = "America/Chicago"


class TestParseIcsDate:
    """Test cases for parse_ics_date."""

    def test_none_property(self):
        """Test that a missing property yields None."""
        assert parse_ics_date(None, FALLBACK) is None

    def test_date_only_uses_fallback_zone(self):
        """Test that a bare 8-digit date is local midnight in the fallback zone."""
        result = parse_ics_date(RawProperty("20251012"), FALLBACK)

        assert result == datetime(2025, 10, 12, tzinfo=CHICAGO)
        assert result.tzinfo is CHICAGO

    def test_date_only_with_tzid_is_midnight_in_that_zone(self):
        """Test that TZID decides the zone of a date-only value."""
        result = parse_ics_date(
            RawProperty("20251012", {"TZID": "America/New_York"}), FALLBACK
        )

        assert result == datetime(2025, 10, 12, tzinfo=NEW_YORK)
        assert result.astimezone(NEW_YORK).hour == 0
        assert result.tzinfo is CHICAGO
        assert (result.hour, result.day) == (23, 11)

    def test_value_date_parameter(self):
        """Test VALUE=DATE handling."""
        result = parse_ics_date(RawProperty("20251012", {"VALUE": "DATE"}), FALLBACK)
        assert result == datetime(2025, 10, 12, tzinfo=CHICAGO)

    def test_value_date_with_date_time_value_fails(self):
        """Test that VALUE=DATE requires an 8-digit value."""
        prop = RawProperty("20251012T090000", {"VALUE": "DATE"})
        assert parse_ics_date(prop, FALLBACK) is None

    def test_floating_date_time(self):
        """Test YYYYMMDDTHHMMSS in the fallback zone."""
        result = parse_ics_date(RawProperty("20251012T183045"), FALLBACK)
        assert result == datetime(2025, 10, 12, 18, 30, 45, tzinfo=CHICAGO)

    def test_date_time_without_seconds(self):
        """Test YYYYMMDDTHHMM with seconds defaulting to zero."""
        result = parse_ics_date(RawProperty("20251012T1830"), FALLBACK)
        assert result == datetime(2025, 10, 12, 18, 30, 0, tzinfo=CHICAGO)

    def test_date_time_with_tzid_is_converted(self):
        """Test that a TZID value is converted to the output zone."""
        result = parse_ics_date(
            RawProperty("20251012T090000", {"TZID": "America/Los_Angeles"}), FALLBACK
        )

        assert result.tzinfo is CHICAGO
        assert (result.hour, result.minute) == (11, 0)

    def test_utc_value_ignores_tzid(self):
        """Test that a trailing Z overrides any TZID."""
        result = parse_ics_date(
            RawProperty("20251012T150000Z", {"TZID": "America/New_York"}), FALLBACK
        )

        assert result == datetime(2025, 10, 12, 15, 0, tzinfo=timezone.utc)
        assert result.tzinfo is CHICAGO
        assert result.hour == 10

    def test_utc_value_without_seconds(self):
        """Test the 13-character UTC form."""
        result = parse_ics_date(RawProperty("20251012T1500Z"), FALLBACK)
        assert result == datetime(2025, 10, 12, 15, 0, tzinfo=timezone.utc)

    def test_explicit_output_zone(self):
        """Test that output_zone overrides the fallback zone for the result."""
        result = parse_ics_date(RawProperty("20251012T090000"), FALLBACK, "UTC")

        assert result == datetime(2025, 10, 12, 14, 0, tzinfo=timezone.utc)
        assert result.hour == 14

    def test_unknown_tzid_uses_fallback(self):
        """Test that an unknown TZID is interpreted in the fallback zone."""
        result = parse_ics_date(
            RawProperty("20251012T090000", {"TZID": "Central Standard Time"}), FALLBACK
        )
        assert result == datetime(2025, 10, 12, 9, 0, tzinfo=CHICAGO)

    @pytest.mark.parametrize("value", [
        "2025-10-12",
        "20251012T18",
        "20251012T183045Z1",
        "not-a-date",
        "",
    ])
    def test_unrecognized_forms(self, value):
        """Test that values matching no accepted form yield None."""
        assert parse_ics_date(RawProperty(value), FALLBACK) is None

    @pytest.mark.parametrize("value", [
        "20251332",
        "20250230",
        "20251012T250000",
        "20251012T1275",
    ])
    def test_invalid_calendar_values(self, value):
        """Test that impossible dates and times yield None."""
        assert parse_ics_date(RawProperty(value), FALLBACK) is None


class TestParseDateList:
    """Test cases for parse_date_list."""

    def test_multiple_lines_and_commas(self):
        """Test that all lines and comma-separated values are collected."""
        props = [
            RawProperty("20251015T183000"),
            RawProperty("20251022T183000,20251029T183000", {"TZID": "America/Chicago"}),
        ]

        result = parse_date_list(props, FALLBACK)

        assert result == {
            datetime(2025, 10, 15, 18, 30, tzinfo=CHICAGO),
            datetime(2025, 10, 22, 18, 30, tzinfo=CHICAGO),
            datetime(2025, 10, 29, 18, 30, tzinfo=CHICAGO),
        }

    def test_invalid_values_are_skipped(self):
        """Test that one bad value does not drop the others."""
        props = [RawProperty("garbage,20251015T183000")]

        result = parse_date_list(props, FALLBACK)

        assert result == {datetime(2025, 10, 15, 18, 30, tzinfo=CHICAGO)}

    def test_empty(self):
        """Test that no properties yield an empty set."""
        assert parse_date_list([], FALLBACK) == frozenset()


class TestResolveZone:
    """Test cases for resolve_zone."""

    def test_known_zone(self):
        assert resolve_zone("America/New_York", FALLBACK) is NEW_YORK

    def test_missing_zone(self):
        assert resolve_zone(None, FALLBACK) is CHICAGO
