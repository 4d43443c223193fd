"""
Coach configuration workflow over immutable StudioConfig snapshots.

Each operation takes the current snapshot and returns either a new one
or a BookingError explaining why the change was refused. Nothing here
touches storage; the host saves the returned snapshot whole.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Iterable, Optional, Union

from studio_booking.scheduling import resource_catalog
from studio_booking.scheduling.business_calendar import default_calendar
from studio_booking.schemas.booking_schema import Booking, BookingError, BookingErrorCode
from studio_booking.schemas.studio_schema import (
    BikeModel,
    BusinessCalendarConfig,
    BusinessHours,
    DayException,
    Station,
    StationStatus,
    StudioConfig,
)
from studio_booking.utils import is_date_key

logger = logging.getLogger(__name__)

ConfigOutcome = Union[StudioConfig, BookingError]


def _rejected(message: str) -> BookingError:
    logger.info("Config change rejected: %s", message)
    return BookingError(code=BookingErrorCode.CONFIG_REJECTED, message=message)


def _replace(config: StudioConfig, **changes: Any) -> StudioConfig:
    return config.model_copy(update={**changes, "updated_at": datetime.now(timezone.utc)})


def set_price(config: StudioConfig, price_per_hour: float) -> ConfigOutcome:
    if price_per_hour < 0:
        return _rejected(f"Price must not be negative, got {price_per_hour}.")
    return _replace(config, price_per_hour=price_per_hour)


def add_station(
    config: StudioConfig, bike_model_id: Optional[str] = None, name: str = ""
) -> ConfigOutcome:
    """Append a station with the next free id, on the first model by default."""
    model_id = bike_model_id or (config.bike_models[0].id if config.bike_models else "")
    if not any(m.id == model_id for m in config.bike_models):
        return _rejected(f"Unknown bike model {model_id!r}.")
    station = Station(
        station_id=resource_catalog.next_station_id(config.stations),
        bike_model_id=model_id,
        name=name,
    )
    return _replace(config, stations=[*config.stations, station])


def update_station(
    config: StudioConfig,
    station_id: int,
    status: Optional[StationStatus] = None,
    bike_model_id: Optional[str] = None,
    name: Optional[str] = None,
) -> ConfigOutcome:
    current = resource_catalog.find_station(config.stations, station_id)
    if current is None:
        return _rejected(f"Station {station_id} does not exist.")
    if bike_model_id is not None and not any(m.id == bike_model_id for m in config.bike_models):
        return _rejected(f"Unknown bike model {bike_model_id!r}.")
    changes: dict[str, Any] = {}
    if status is not None:
        changes["status"] = status
    if bike_model_id is not None:
        changes["bike_model_id"] = bike_model_id
    if name:
        changes["name"] = name
    updated = current.model_copy(update=changes)
    stations = [updated if s.station_id == station_id else s for s in config.stations]
    return _replace(config, stations=stations)


def remove_station(
    config: StudioConfig, station_id: int, bookings: Iterable[Booking], today: str
) -> ConfigOutcome:
    """Drop a station that has no upcoming bookings; one must always remain."""
    if resource_catalog.find_station(config.stations, station_id) is None:
        return _rejected(f"Station {station_id} does not exist.")
    bookings = list(bookings)
    if not resource_catalog.can_delete(config.stations, bookings, station_id, today):
        upcoming = resource_catalog.upcoming_bookings(bookings, station_id, today)
        return _rejected(
            f"Station {station_id} has {len(upcoming)} upcoming bookings and cannot be removed."
        )
    if len(config.stations) == 1:
        return _rejected("At least one station is required.")
    stations = [s for s in config.stations if s.station_id != station_id]
    return _replace(config, stations=stations)


def add_bike_model(
    config: StudioConfig, name: str, description: Optional[str] = None
) -> ConfigOutcome:
    if not name.strip():
        return _rejected("Bike model name is required.")
    model_id = resource_catalog.model_slug(name)
    if any(m.id == model_id for m in config.bike_models):
        return _rejected(f"Bike model {model_id!r} already exists.")
    model = BikeModel(
        id=model_id, name=name.strip(), description=(description or "").strip() or None
    )
    return _replace(config, bike_models=[*config.bike_models, model])


def remove_bike_model(config: StudioConfig, model_id: str) -> ConfigOutcome:
    if not resource_catalog.can_delete_model(config.stations, model_id):
        used = sum(1 for s in config.stations if s.bike_model_id == model_id)
        return _rejected(f"Bike model {model_id!r} is used by {used} stations.")
    models = [m for m in config.bike_models if m.id != model_id]
    if len(models) == len(config.bike_models):
        return _rejected(f"Bike model {model_id!r} does not exist.")
    return _replace(config, bike_models=models)


def _calendar(config: StudioConfig) -> BusinessCalendarConfig:
    return config.business_hours or default_calendar()


def set_default_hours(config: StudioConfig, open_time: str, close_time: str) -> ConfigOutcome:
    try:
        hours = BusinessHours(open=open_time, close=close_time)
    except ValueError as e:
        return _rejected(f"Invalid business hours {open_time}-{close_time}: {e}")
    calendar = _calendar(config).model_copy(update={"default": hours})
    return _replace(config, business_hours=calendar)


def set_exception(
    config: StudioConfig,
    date_key: str,
    is_open: bool,
    open_time: Optional[str] = None,
    close_time: Optional[str] = None,
) -> ConfigOutcome:
    """Close a date, or open it with its own hours (missing bounds inherit default)."""
    if not is_date_key(date_key):
        return _rejected(f"Invalid date {date_key!r}, expected YYYY-MM-DD.")
    calendar = _calendar(config)
    try:
        exception = DayException(is_open=is_open, open=open_time, close=close_time)
        if is_open:
            BusinessHours(
                open=open_time or calendar.default.open,
                close=close_time or calendar.default.close,
            )
    except ValueError as e:
        return _rejected(f"Invalid exception for {date_key}: {e}")
    exceptions = {**calendar.exceptions, date_key: exception}
    return _replace(config, business_hours=calendar.model_copy(update={"exceptions": exceptions}))


def clear_exception(config: StudioConfig, date_key: str) -> ConfigOutcome:
    calendar = _calendar(config)
    if date_key not in calendar.exceptions:
        return _rejected(f"No exception configured for {date_key}.")
    exceptions = {k: v for k, v in calendar.exceptions.items() if k != date_key}
    return _replace(config, business_hours=calendar.model_copy(update={"exceptions": exceptions}))
