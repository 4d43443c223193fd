"""Station roster queries: what can be offered, named, or removed."""

import logging
import re
from typing import Iterable, Optional

from studio_booking.schemas.booking_schema import Booking, BookingStatus
from studio_booking.schemas.studio_schema import BikeModel, Station, StationStatus

logger = logging.getLogger(__name__)

UNKNOWN_MODEL = "未知"


def offerable(stations: Iterable[Station]) -> list[Station]:
    """Stations open for new bookings, in roster order."""
    return [s for s in stations if s.status == StationStatus.AVAILABLE]


def find_station(stations: Iterable[Station], station_id: int) -> Optional[Station]:
    for station in stations:
        if station.station_id == station_id:
            return station
    return None


def model_name(
    stations: Iterable[Station], models: Iterable[BikeModel], station_id: int
) -> str:
    """Display name of the station's bike model, or a placeholder."""
    station = find_station(stations, station_id)
    if station is None:
        return UNKNOWN_MODEL
    for model in models:
        if model.id == station.bike_model_id:
            return model.name
    return UNKNOWN_MODEL


def upcoming_bookings(
    bookings: Iterable[Booking], station_id: int, today: str
) -> list[Booking]:
    """Non-cancelled bookings on the station dated today or later."""
    return [
        b for b in bookings
        if b.station_id == station_id
        and b.date >= today
        and b.status != BookingStatus.CANCELLED
    ]


def can_delete(
    stations: Iterable[Station], bookings: Iterable[Booking], station_id: int, today: str
) -> bool:
    """A station may be removed only when nothing upcoming references it.

    The decision rests on bookings alone, so a station id that is no
    longer in ``stations`` but still has upcoming bookings stays blocked.
    """
    blocking = upcoming_bookings(bookings, station_id, today)
    if blocking:
        logger.debug(
            "Station %s has %d upcoming bookings (roster size %d)",
            station_id, len(blocking), len(list(stations)),
        )
    return not blocking


def can_delete_model(stations: Iterable[Station], model_id: str) -> bool:
    return not any(s.bike_model_id == model_id for s in stations)


def model_slug(name: str) -> str:
    """Bike model id derived from its display name: "Neo Bike" -> "neo-bike"."""
    return re.sub(r"\s+", "-", name.strip().lower())


def next_station_id(stations: Iterable[Station]) -> int:
    return max((s.station_id for s in stations), default=0) + 1
