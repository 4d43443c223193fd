"""
Revenue and usage figures for the coach's analytics view.

Only confirmed bookings count: a cancelled booking of any length earns
nothing. Revenue is duration in hours times the snapshot's hourly price.
"""

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, Optional

from studio_booking.scheduling import resource_catalog
from studio_booking.schemas.booking_schema import Booking
from studio_booking.schemas.studio_schema import StationStatus, StudioConfig

logger = logging.getLogger(__name__)

# Hour buckets shown on the heat chart
FIRST_HOUR = 6
LAST_HOUR = 22

PERIOD_DAYS = {"7days": 7, "30days": 30, "90days": 90}


@dataclass
class RevenueSummary:
    """Headline figures over a set of bookings."""

    total_bookings: int = 0
    total_revenue: float = 0.0
    total_hours: float = 0.0
    unique_members: int = 0
    avg_order_value: float = 0.0


@dataclass
class Bucket:
    """Bookings, revenue and hours grouped under one key (date, hour, station)."""

    key: str
    bookings: int = 0
    revenue: float = 0.0
    hours: float = 0.0
    bike_model: Optional[str] = None


def _confirmed(bookings: Iterable[Booking]) -> list[Booking]:
    return [b for b in bookings if b.is_confirmed]


def booking_revenue(booking: Booking, price_per_hour: float) -> float:
    if not booking.is_confirmed:
        return 0.0
    return booking.duration_hours * price_per_hour


def total_revenue(bookings: Iterable[Booking], price_per_hour: float) -> float:
    return sum(booking_revenue(b, price_per_hour) for b in bookings)


def summarize(bookings: Iterable[Booking], price_per_hour: float) -> RevenueSummary:
    confirmed = _confirmed(bookings)
    if not confirmed:
        return RevenueSummary()
    revenue = total_revenue(confirmed, price_per_hour)
    return RevenueSummary(
        total_bookings=len(confirmed),
        total_revenue=revenue,
        total_hours=sum(b.duration_hours for b in confirmed),
        unique_members=len({b.member_phone for b in confirmed}),
        avg_order_value=revenue / len(confirmed),
    )


def filter_period(bookings: Iterable[Booking], period: str, today: date) -> list[Booking]:
    """Confirmed bookings inside a named period ending today.

    ``period`` is one of 7days, 30days, 90days, thisYear or all.
    """
    confirmed = _confirmed(bookings)
    if period in PERIOD_DAYS:
        start = today - timedelta(days=PERIOD_DAYS[period])
    elif period == "thisYear":
        start = date(today.year, 1, 1)
    elif period == "all":
        return confirmed
    else:
        raise ValueError(f"Unknown period {period!r}")
    start_key = start.isoformat()
    return [b for b in confirmed if b.date >= start_key]


def by_date(
    bookings: Iterable[Booking],
    price_per_hour: float,
    days: Optional[int] = None,
    today: Optional[date] = None,
) -> list[Bucket]:
    """Daily trend, oldest first. With ``days`` every day of the window appears."""
    buckets: dict[str, Bucket] = {}
    if days and today:
        for offset in range(days - 1, -1, -1):
            key = (today - timedelta(days=offset)).isoformat()
            buckets[key] = Bucket(key=key)
    for booking in _confirmed(bookings):
        bucket = buckets.setdefault(booking.date, Bucket(key=booking.date))
        bucket.bookings += 1
        bucket.revenue += booking_revenue(booking, price_per_hour)
        bucket.hours += booking.duration_hours
    return sorted(buckets.values(), key=lambda b: b.key)


def by_hour(bookings: Iterable[Booking], price_per_hour: float) -> list[Bucket]:
    """Bookings per start hour from FIRST_HOUR to LAST_HOUR inclusive."""
    buckets = {h: Bucket(key=f"{h}:00") for h in range(FIRST_HOUR, LAST_HOUR + 1)}
    for booking in _confirmed(bookings):
        bucket = buckets.get(booking.start_minutes // 60)
        if bucket is None:
            continue
        bucket.bookings += 1
        bucket.revenue += booking_revenue(booking, price_per_hour)
        bucket.hours += booking.duration_hours
    return list(buckets.values())


def by_station(bookings: Iterable[Booking], config: StudioConfig) -> list[Bucket]:
    """Usage per station, busiest first. Disabled stations are left out."""
    confirmed = _confirmed(bookings)
    result = []
    for station in config.stations:
        if station.status == StationStatus.DISABLED:
            continue
        mine = [b for b in confirmed if b.station_id == station.station_id]
        result.append(
            Bucket(
                key=station.name,
                bookings=len(mine),
                revenue=total_revenue(mine, config.price_per_hour),
                hours=sum(b.duration_hours for b in mine),
                bike_model=resource_catalog.model_name(
                    config.stations, config.bike_models, station.station_id
                ),
            )
        )
    result.sort(key=lambda b: b.bookings, reverse=True)
    return result
