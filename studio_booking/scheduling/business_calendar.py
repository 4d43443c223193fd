"""
Business hours resolution: default window plus dated exceptions.

A date with no exception is open with the default hours. An exception
can close the day outright or open it with its own window, each missing
bound inheriting the default.
"""

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterator, Optional

from studio_booking import time_range
from studio_booking.config import settings
from studio_booking.schemas.studio_schema import BusinessCalendarConfig, BusinessHours

logger = logging.getLogger(__name__)


def default_calendar() -> BusinessCalendarConfig:
    return BusinessCalendarConfig(
        default=BusinessHours(
            open=settings.studio.open_time, close=settings.studio.close_time
        )
    )


def is_open(config: Optional[BusinessCalendarConfig], date_key: str) -> bool:
    """Open unless an exception for ``date_key`` says otherwise."""
    calendar = config or default_calendar()
    exception = calendar.exceptions.get(date_key)
    if exception is not None:
        return exception.is_open
    return True


def hours_for(config: Optional[BusinessCalendarConfig], date_key: str) -> BusinessHours:
    """Open/close window for ``date_key``.

    For a closed date the default window is returned; callers check
    is_open first.
    """
    calendar = config or default_calendar()
    exception = calendar.exceptions.get(date_key)
    if exception is not None and exception.is_open:
        return BusinessHours(
            open=exception.open or calendar.default.open,
            close=exception.close or calendar.default.close,
        )
    return calendar.default


def contains(hours: BusinessHours, start: int, end: int) -> bool:
    """True iff [start, end) lies entirely within the window."""
    return time_range.parse(hours.open) <= start and end <= time_range.parse(hours.close)


class TimeSlots:
    """Start times from open (inclusive) to close (exclusive).

    Iterating again starts over; nothing is materialized up front.
    """

    def __init__(self, hours: BusinessHours, interval_minutes: int) -> None:
        if interval_minutes <= 0:
            raise ValueError(f"interval_minutes must be positive, got {interval_minutes}")
        self.open = time_range.parse(hours.open)
        self.close = time_range.parse(hours.close)
        self.interval = interval_minutes

    def __iter__(self) -> Iterator[int]:
        minutes = self.open
        while minutes < self.close:
            yield minutes
            minutes += self.interval

    def __len__(self) -> int:
        return max(0, -(-(self.close - self.open) // self.interval))

    def labels(self) -> list[str]:
        return [time_range.format_time(m) for m in self]


def slots_for(hours: BusinessHours, interval_minutes: Optional[int] = None) -> TimeSlots:
    return TimeSlots(hours, interval_minutes or settings.studio.slot_interval_minutes)


@dataclass(frozen=True)
class DayStatus:
    """Open state and hours of one calendar day."""

    date: str
    is_open: bool
    hours: BusinessHours


def status_for_range(
    config: Optional[BusinessCalendarConfig],
    start_date: date,
    days: Optional[int] = None,
) -> list[DayStatus]:
    """Open state for ``days`` consecutive dates starting at ``start_date``."""
    count = days or settings.studio.booking_window_days
    result = []
    for offset in range(count):
        date_key = (start_date + timedelta(days=offset)).isoformat()
        result.append(
            DayStatus(
                date=date_key,
                is_open=is_open(config, date_key),
                hours=hours_for(config, date_key),
            )
        )
    return result
