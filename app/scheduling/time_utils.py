"""Time-of-day arithmetic for appointment windows.

Appointments store a calendar date plus a start and end time-of-day. All
window arithmetic happens on minute offsets from midnight, and a window
never crosses midnight.
"""

from collections.abc import Iterable
from datetime import date, datetime, time
from typing import NamedTuple

MINUTES_PER_DAY = 24 * 60


class TimeWindow(NamedTuple):
    """Half-open ``[start, end)`` interval on a single day."""

    start: time
    end: time

    @property
    def duration_minutes(self) -> int:
        """Length of the window in minutes."""
        return time_to_minutes(self.end) - time_to_minutes(self.start)

    def overlaps(self, other: "TimeWindow") -> bool:
        """Check if this window intersects another one."""
        return windows_overlap(self.start, self.end, other.start, other.end)

    def __str__(self) -> str:
        return f"{format_time(self.start)}-{format_time(self.end)}"


def parse_time(value: str | time) -> time:
    """
    Parse ``HH:MM`` (or ``HH:MM:SS`` as returned by some drivers) into a time.

    Raises:
        ValueError: If the string is not a valid time of day
    """
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)
    if not isinstance(value, str):
        raise ValueError(f"Invalid time {value!r}, expected an HH:MM string")

    parts = value.strip().split(":")
    if len(parts) not in (2, 3) or not all(p.split(".")[0].isdigit() for p in parts):
        raise ValueError(f"Invalid time '{value}', expected HH:MM")

    hours, minutes = int(parts[0]), int(parts[1])
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        raise ValueError(f"Invalid time '{value}', expected HH:MM")
    return time(hours, minutes)


def parse_date(value: str | date) -> date:
    """Parse a ``YYYY-MM-DD`` string into a date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError as e:
        raise ValueError(f"Invalid date '{value}', expected YYYY-MM-DD") from e


def format_time(value: time) -> str:
    """Format a time as ``HH:MM``."""
    return f"{value.hour:02d}:{value.minute:02d}"


def time_to_minutes(value: time | str) -> int:
    """Convert a time of day to minutes since midnight."""
    parsed = parse_time(value)
    return parsed.hour * 60 + parsed.minute


def minutes_to_time(minutes: int) -> time:
    """
    Convert minutes since midnight to a time of day.

    Raises:
        ValueError: If the offset falls outside the day
    """
    if not 0 <= minutes < MINUTES_PER_DAY:
        raise ValueError(f"Minute offset {minutes} is outside a single day")
    return time(minutes // 60, minutes % 60)


def compute_end_time(start: time | str, duration_minutes: int) -> time:
    """
    Compute the end of a window from its start and duration.

    Raises:
        ValueError: If the duration is not positive or the window would
            run past midnight
    """
    if duration_minutes <= 0:
        raise ValueError("Duration must be a positive number of minutes")

    end_minutes = time_to_minutes(start) + duration_minutes
    if end_minutes >= MINUTES_PER_DAY:
        raise ValueError("Appointment must end before midnight")
    return minutes_to_time(end_minutes)


def make_window(start: time | str, duration_minutes: int) -> TimeWindow:
    """Build a window from a start time and duration."""
    start_time = parse_time(start)
    return TimeWindow(start_time, compute_end_time(start_time, duration_minutes))


def chain_windows(start: time | str, durations: Iterable[int]) -> list[TimeWindow]:
    """
    Lay out back-to-back windows starting at ``start``.

    Each window starts where the previous one ends.
    """
    windows: list[TimeWindow] = []
    current = parse_time(start)
    for duration in durations:
        window = make_window(current, duration)
        windows.append(window)
        current = window.end
    return windows


def windows_overlap(start_a: time, end_a: time, start_b: time, end_b: time) -> bool:
    """Half-open interval intersection: touching windows do not overlap."""
    return start_a < end_b and start_b < end_a
