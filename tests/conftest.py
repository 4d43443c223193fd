"""Shared test fixtures and helpers."""

from datetime import datetime, timezone
from typing import Optional

import pytest

from studio_booking.collaborators.persistence import InMemoryPersistence
from studio_booking.scheduling.booking_service import BookingService
from studio_booking.scheduling.schedule_store import ScheduleStore
from studio_booking.schemas.booking_schema import (
    Booking,
    BookingRequest,
    BookingStatus,
    ReservationCandidate,
)
from studio_booking.schemas.studio_schema import (
    BikeModel,
    BusinessCalendarConfig,
    BusinessHours,
    Station,
    StudioConfig,
)


@pytest.fixture
def persistence():
    return InMemoryPersistence(latency=0)


@pytest.fixture
def store(persistence):
    return ScheduleStore(persistence)


@pytest.fixture
def service(store):
    return BookingService(store)


@pytest.fixture
def studio():
    return make_studio()


def make_studio(
    open_time: str = "06:00",
    close_time: str = "22:00",
    price_per_hour: float = 100.0,
    stations: Optional[list[Station]] = None,
) -> StudioConfig:
    """Four available stations on two models, 06:00-22:00, ¥100/hour."""
    return StudioConfig(
        price_per_hour=price_per_hour,
        stations=stations or [
            Station(station_id=1, bike_model_id="stages-bike"),
            Station(station_id=2, bike_model_id="stages-bike"),
            Station(station_id=3, bike_model_id="neo-bike"),
            Station(station_id=4, bike_model_id="neo-bike"),
        ],
        bike_models=[
            BikeModel(id="stages-bike", name="Stages bike"),
            BikeModel(id="neo-bike", name="Neo bike"),
        ],
        business_hours=BusinessCalendarConfig(
            default=BusinessHours(open=open_time, close=close_time)
        ),
    )


def make_booking(
    booking_id: str = "1",
    date: str = "2024-03-15",
    start_time: str = "09:00",
    end_time: str = "11:00",
    station_id: int = 1,
    member_name: str = "张三",
    member_phone: str = "13800138000",
    status: BookingStatus = BookingStatus.CONFIRMED,
    created_at: Optional[datetime] = None,
) -> Booking:
    return Booking(
        id=booking_id,
        date=date,
        start_time=start_time,
        end_time=end_time,
        station_id=station_id,
        member_name=member_name,
        member_phone=member_phone,
        status=status,
        created_at=created_at or datetime(2024, 3, 10, 10, 0, tzinfo=timezone.utc),
    )


def make_candidate(
    start_time: str = "09:00",
    end_time: str = "11:00",
    station_id: int = 1,
    date: str = "2024-03-15",
    member_phone: str = "13800138000",
    idempotency_key: Optional[str] = None,
) -> ReservationCandidate:
    return ReservationCandidate(
        date=date,
        start_time=start_time,
        end_time=end_time,
        station_id=station_id,
        member_name="张三",
        member_phone=member_phone,
        idempotency_key=idempotency_key,
    )


def make_request(**overrides) -> BookingRequest:
    """A valid submission for 2024-03-15 09:00, 2h on station 1."""
    fields = {
        "date": "2024-03-15",
        "start_time": "09:00",
        "duration_hours": 2,
        "station_id": 1,
        "member_name": "张三",
        "member_phone": "13800138000",
    }
    fields.update(overrides)
    return BookingRequest(**fields)
