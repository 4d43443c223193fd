"""Booking data models, typed failures and notifier events."""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from studio_booking import time_range
from studio_booking.logging_context import get_request_id


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BookingStatus(str, Enum):
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class BookingRequest(BaseModel):
    """Raw member submission as it arrives from the booking form.

    Every field is optional so that missing input is reported as a
    validation result instead of a schema exception.
    """

    date: Optional[str] = None
    start_time: Optional[str] = None
    duration_hours: Optional[float] = None
    station_id: Optional[int] = None
    member_name: Optional[str] = None
    member_phone: Optional[str] = None
    notes: Optional[str] = None
    idempotency_key: Optional[str] = None


class ReservationCandidate(BaseModel):
    """A validated request handed to the schedule store for commit."""

    model_config = ConfigDict(frozen=True)

    date: str
    start_time: str
    end_time: str
    station_id: int
    member_name: str
    member_phone: str
    notes: str = ""
    idempotency_key: Optional[str] = None


class Booking(BaseModel):
    """A committed reservation. Cancelling produces a new copy."""

    model_config = ConfigDict(frozen=True)

    id: str
    date: str
    start_time: str
    end_time: str
    station_id: int
    member_name: str
    member_phone: str
    notes: str = ""
    status: BookingStatus = BookingStatus.CONFIRMED
    created_at: datetime = Field(default_factory=_utcnow)
    idempotency_key: Optional[str] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def check_time(cls, value: str) -> str:
        time_range.parse(value)
        return value

    @model_validator(mode="after")
    def check_start_before_end(self) -> "Booking":
        if self.start_minutes >= self.end_minutes:
            raise ValueError(
                f"start_time {self.start_time} must be earlier than end_time {self.end_time}"
            )
        return self

    @property
    def start_minutes(self) -> int:
        return time_range.parse(self.start_time)

    @property
    def end_minutes(self) -> int:
        return time_range.parse(self.end_time)

    @property
    def duration_hours(self) -> float:
        return time_range.duration_hours(self.start_minutes, self.end_minutes)

    @property
    def is_confirmed(self) -> bool:
        return self.status == BookingStatus.CONFIRMED


class BookingFilter(BaseModel):
    """Read-side query over the schedule. Unset fields do not filter."""

    date: Optional[str] = None
    date_from: Optional[str] = None
    date_to: Optional[str] = None
    station_id: Optional[int] = None
    phone_contains: Optional[str] = None
    status: Optional[BookingStatus] = None
    booking_id: Optional[str] = None
    descending: bool = False

    def matches(self, booking: Booking) -> bool:
        if self.booking_id is not None and booking.id != self.booking_id:
            return False
        if self.date is not None and booking.date != self.date:
            return False
        if self.date_from is not None and booking.date < self.date_from:
            return False
        if self.date_to is not None and booking.date > self.date_to:
            return False
        if self.station_id is not None and booking.station_id != self.station_id:
            return False
        if self.phone_contains and self.phone_contains not in booking.member_phone:
            return False
        if self.status is not None and booking.status != self.status:
            return False
        return True


class BookingErrorCode(str, Enum):
    """Every business or validation outcome that is not a committed booking."""

    VALIDATION_ERROR = "validation_error"
    INVALID_DURATION = "invalid_duration"
    CLOSED_DAY = "closed_day"
    OUTSIDE_HOURS = "outside_hours"
    STATION_UNAVAILABLE = "station_unavailable"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    CONFIG_REJECTED = "config_rejected"


class BookingError(BaseModel):
    """Typed failure returned (never raised) by the engine."""

    model_config = ConfigDict(frozen=True)

    code: BookingErrorCode
    message: str
    invalid_fields: list[str] = Field(default_factory=list)


BookingOutcome = Union[Booking, BookingError]


class BookingCreated(BaseModel):
    """Handed to the notifier after a reservation commits."""

    model_config = ConfigDict(frozen=True)

    booking: Booking
    bike_model: Optional[str] = None
    price: float = 0.0
    occurred_at: datetime = Field(default_factory=_utcnow)
    request_id: str = Field(default_factory=get_request_id)


class BookingCancelled(BaseModel):
    """Handed to the notifier after a confirmed booking is cancelled."""

    model_config = ConfigDict(frozen=True)

    booking: Booking
    occurred_at: datetime = Field(default_factory=_utcnow)
    request_id: str = Field(default_factory=get_request_id)


BookingEvent = Union[BookingCreated, BookingCancelled]
