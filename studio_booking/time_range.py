"""
Time-of-day arithmetic on minutes since midnight.

Times travel through the system as "HH:MM" strings (that is how the
persistence tables store them) and are converted here for comparisons.
All intervals are half-open: [start, end).

Usage:
    start = parse("09:00")
    end = add_hours(start, 1.5)
    format_time(end)  # "10:30"
"""

import math
import re

MINUTES_PER_DAY = 24 * 60

_HHMM = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")


class InvalidTimeFormat(ValueError):
    """Raised when a string is not a valid HH:MM time of day."""


def parse(hhmm: str) -> int:
    """Parse "HH:MM" into minutes since midnight.

    Hours run 00-23 and minutes 00-59. "24:00" is rejected: close times
    are expressed as "23:59" at the latest.
    """
    match = _HHMM.match(hhmm.strip()) if isinstance(hhmm, str) else None
    if not match:
        raise InvalidTimeFormat(f"Invalid time {hhmm!r}, expected HH:MM")
    return int(match.group(1)) * 60 + int(match.group(2))


def is_time(value: str) -> bool:
    try:
        parse(value)
    except InvalidTimeFormat:
        return False
    return True


def format_time(minutes: int) -> str:
    """Render minutes since midnight as "HH:MM" (1440 renders as "24:00")."""
    if not 0 <= minutes <= MINUTES_PER_DAY:
        raise ValueError(f"Time of day out of range: {minutes} minutes")
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def duration_hours(start: int, end: int) -> float:
    """Length of [start, end) in hours. Negative when end precedes start."""
    return (end - start) / 60


def add_hours(start: int, hours: float) -> int:
    """End time for a session of ``hours`` starting at ``start``.

    Fractional minutes round half up, so 0.01h after 09:00 ends at 09:01
    and 0.005h (0.3 min) ends at 09:00.
    """
    return math.floor(start + hours * 60 + 0.5)


def overlaps(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    """True iff [a_start, a_end) and [b_start, b_end) share any minute."""
    return a_start < b_end and b_start < a_end
