"""Calendar-date arithmetic for weekly schedules.

All values are plain ``datetime.date`` objects; there is no time-of-day or
timezone component, so two values for the same day always compare equal.
Day-of-week numbering is Sunday=0 ... Saturday=6.
"""

from collections.abc import Iterator
from datetime import date, datetime, timedelta

DAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")


def to_calendar_date(value: date | datetime | str) -> date:
    """Normalize a date, datetime or ISO string to a calendar date.

    Raises:
        ValueError: If a string is not an ISO date or datetime
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if "T" in value:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
    return date.fromisoformat(value)


def day_of_week(day: date) -> int:
    """Return the day of week with Sunday=0."""
    return (day.weekday() + 1) % 7


def shift_by_days(day: date, days: int) -> date:
    return day + timedelta(days=days)


def start_of_week(day: date, week_starts_on: int = 0) -> date:
    """Return the first day of the calendar week containing ``day``.

    Args:
        day: Any date in the week
        week_starts_on: Day of week the week starts on (0=Sunday ... 6=Saturday)

    Raises:
        ValueError: If week_starts_on is outside 0..6
    """
    if not 0 <= week_starts_on <= 6:
        raise ValueError(f"week_starts_on must be 0-6, got {week_starts_on}")
    offset = (day_of_week(day) - week_starts_on) % 7
    return day - timedelta(days=offset)


def same_week(first: date, second: date, week_starts_on: int = 0) -> bool:
    return start_of_week(first, week_starts_on) == start_of_week(second, week_starts_on)


def day_shift(source_dow: int, target_dow: int) -> int:
    """Forward distance in days from one weekday to another (0..6)."""
    return (target_dow - source_dow) % 7


def enumerate_dates(start: date, end: date) -> Iterator[date]:
    """Yield every date from start to end, inclusive, ascending.

    Yields nothing when start is after end.
    """
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def iter_batches(start: date, end: date, batch_size: int) -> Iterator[tuple[date, date]]:
    """Split [start, end] into consecutive inclusive windows of at most batch_size days."""
    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1, got {batch_size}")
    current = start
    while current <= end:
        batch_end = min(current + timedelta(days=batch_size - 1), end)
        yield current, batch_end
        current = batch_end + timedelta(days=1)
