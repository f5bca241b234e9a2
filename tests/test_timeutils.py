"""Tests for minute truncation and day keys."""

from datetime import date, datetime, timedelta, timezone

import pytest

from daybook.calendar.timeutils import (
    day_from_key,
    day_key,
    format_timestamp,
    parse_timestamp,
    truncate_to_minute,
)


class TestTruncateToMinute:
    def test_zeroes_seconds_and_microseconds(self) -> None:
        """Seconds and microseconds are cleared."""
        value = datetime(2024, 1, 1, 9, 30, 45, 123456)
        assert truncate_to_minute(value) == datetime(2024, 1, 1, 9, 30)

    def test_already_whole_minute_unchanged(self) -> None:
        """A whole-minute value is returned unchanged."""
        value = datetime(2024, 1, 1, 9, 30)
        assert truncate_to_minute(value) == value


class TestDayKey:
    def test_format(self) -> None:
        """Keys use the short weekday, month, day and year."""
        assert day_key(datetime(2024, 1, 1, 9, 0)) == "Mon Jan 01 2024"

    def test_same_day_any_time_same_key(self) -> None:
        """Every time of day maps to the same bucket."""
        midnight = datetime(2024, 3, 15)
        keys = {day_key(midnight + timedelta(minutes=m)) for m in range(0, 24 * 60, 37)}
        assert keys == {"Fri Mar 15 2024"}

    def test_accepts_date(self) -> None:
        """A plain date produces the same key format."""
        assert day_key(date(2024, 12, 31)) == "Tue Dec 31 2024"

    def test_adjacent_days_differ(self) -> None:
        """Midnight starts a new key."""
        assert day_key(datetime(2024, 1, 1, 23, 59)) != day_key(datetime(2024, 1, 2, 0, 0))

    def test_round_trip(self) -> None:
        """A key parses back to its date."""
        assert day_from_key(day_key(date(2023, 7, 4))) == date(2023, 7, 4)

    @pytest.mark.parametrize("key", ["", "2024-01-01", "Mon Foo 01 2024"])
    def test_invalid_key_raises(self, key: str) -> None:
        """Malformed keys raise ValueError."""
        with pytest.raises(ValueError):
            day_from_key(key)


class TestParseTimestamp:
    def test_none_and_empty(self) -> None:
        """Missing values parse to None."""
        assert parse_timestamp(None) is None
        assert parse_timestamp("") is None

    def test_naive_iso(self) -> None:
        """Naive ISO strings parse directly."""
        assert parse_timestamp("2024-01-01T09:30:00") == datetime(2024, 1, 1, 9, 30)

    def test_javascript_utc_form_becomes_naive_local(self) -> None:
        """A trailing Z is converted to naive local time."""
        parsed = parse_timestamp("2024-01-01T09:30:00.000Z")
        expected = datetime(2024, 1, 1, 9, 30, tzinfo=timezone.utc).astimezone().replace(tzinfo=None)
        assert parsed.tzinfo is None
        assert parsed == expected

    def test_format_round_trip(self) -> None:
        """Formatted timestamps parse back to the same value."""
        value = datetime(2024, 1, 1, 9, 30)
        assert parse_timestamp(format_timestamp(value)) == value
        assert format_timestamp(None) is None
