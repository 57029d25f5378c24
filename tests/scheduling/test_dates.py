"""Tests for calendar-date arithmetic."""

from datetime import date, datetime, timezone

import pytest

from workout_engine.scheduling.dates import (
    DAY_NAMES,
    day_of_week,
    day_shift,
    enumerate_dates,
    iter_batches,
    same_week,
    shift_by_days,
    start_of_week,
    to_calendar_date,
)


class TestDayOfWeek:
    def test_sunday_is_zero(self):
        """Test Sunday maps to 0 and Saturday to 6."""
        assert day_of_week(date(2025, 1, 5)) == 0
        assert day_of_week(date(2025, 1, 6)) == 1
        assert day_of_week(date(2025, 1, 11)) == 6

    def test_day_names_follow_numbering(self):
        """Test DAY_NAMES is indexed by day_of_week."""
        assert DAY_NAMES[day_of_week(date(2025, 1, 8))] == "Wednesday"


class TestShiftAndEnumerate:
    def test_shift_crosses_month_boundary(self):
        """Test shifting across a month end."""
        assert shift_by_days(date(2025, 1, 30), 3) == date(2025, 2, 2)
        assert shift_by_days(date(2025, 3, 1), -1) == date(2025, 2, 28)

    def test_enumerate_is_inclusive(self):
        """Test both ends of the range are yielded."""
        days = list(enumerate_dates(date(2025, 1, 6), date(2025, 1, 8)))
        assert days == [date(2025, 1, 6), date(2025, 1, 7), date(2025, 1, 8)]

    def test_enumerate_empty_when_reversed(self):
        """Test nothing is yielded when start is after end."""
        assert list(enumerate_dates(date(2025, 1, 8), date(2025, 1, 6))) == []

    def test_batches_cover_range_without_overlap(self):
        """Test batch windows are consecutive and the last one is truncated."""
        batches = list(iter_batches(date(2025, 1, 1), date(2025, 1, 17), 7))
        assert batches == [
            (date(2025, 1, 1), date(2025, 1, 7)),
            (date(2025, 1, 8), date(2025, 1, 14)),
            (date(2025, 1, 15), date(2025, 1, 17)),
        ]

    def test_batches_reject_zero_size(self):
        """Test batch size must be positive."""
        with pytest.raises(ValueError):
            list(iter_batches(date(2025, 1, 1), date(2025, 1, 2), 0))


class TestWeeks:
    def test_start_of_week_sunday(self):
        """Test Sunday-start weeks."""
        assert start_of_week(date(2025, 1, 8), 0) == date(2025, 1, 5)
        assert start_of_week(date(2025, 1, 5), 0) == date(2025, 1, 5)

    def test_start_of_week_monday(self):
        """Test Monday-start weeks put Sunday at the end of the week."""
        assert start_of_week(date(2025, 1, 12), 1) == date(2025, 1, 6)
        assert start_of_week(date(2025, 1, 13), 1) == date(2025, 1, 13)

    def test_start_of_week_rejects_bad_start(self):
        """Test week start outside 0..6 is rejected."""
        with pytest.raises(ValueError):
            start_of_week(date(2025, 1, 8), 7)

    def test_same_week_depends_on_week_start(self):
        """Test the same pair of dates can be in one week or two."""
        sunday = date(2025, 1, 12)
        monday = date(2025, 1, 6)
        assert same_week(monday, sunday, 1) is True
        assert same_week(monday, sunday, 0) is False

    def test_day_shift_is_forward_mod_seven(self):
        """Test shift from Wednesday back to Monday wraps forward."""
        assert day_shift(1, 3) == 2
        assert day_shift(3, 1) == 5
        assert day_shift(4, 4) == 0


class TestToCalendarDate:
    def test_datetime_drops_time(self):
        """Test a datetime collapses to its calendar date."""
        value = datetime(2025, 1, 8, 23, 30, tzinfo=timezone.utc)
        assert to_calendar_date(value) == date(2025, 1, 8)

    def test_iso_strings(self):
        """Test ISO date and datetime strings."""
        assert to_calendar_date("2025-01-08") == date(2025, 1, 8)
        assert to_calendar_date("2025-01-08T10:00:00Z") == date(2025, 1, 8)

    def test_invalid_string(self):
        """Test an unparseable string raises ValueError."""
        with pytest.raises(ValueError):
            to_calendar_date("next tuesday")
