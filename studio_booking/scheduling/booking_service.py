"""
Booking orchestration: validate a member submission, then reserve it.

Validation steps are pure and never await; only the final reserve goes
to the schedule store. Every rejection comes back as a BookingError.
Notifier events accumulate in an outbox that the host drains and hands
to dispatch_events, so a committed booking never waits on a push.

Usage:
    service = BookingService(ScheduleStore())
    outcome = await service.submit(BookingRequest(...), config=studio)
    await dispatch_events(service.drain_events(), notifier)
"""

import math
from typing import Optional, Union

from studio_booking import time_range
from studio_booking.logging_context import get_request_logger, new_request_id, set_request_id
from studio_booking.scheduling import business_calendar, resource_catalog
from studio_booking.scheduling.schedule_store import ScheduleStore
from studio_booking.schemas.booking_schema import (
    Booking,
    BookingCancelled,
    BookingCreated,
    BookingError,
    BookingErrorCode,
    BookingEvent,
    BookingFilter,
    BookingOutcome,
    BookingRequest,
    ReservationCandidate,
)
from studio_booking.schemas.studio_schema import Station, StationStatus, StudioConfig
from studio_booking.utils import is_date_key, is_mobile_number, normalize_phone

logger = get_request_logger(__name__)

REQUIRED_FIELDS = (
    "date", "start_time", "duration_hours", "station_id", "member_name", "member_phone",
)


def _error(code: BookingErrorCode, message: str, *fields: str) -> BookingError:
    return BookingError(code=code, message=message, invalid_fields=list(fields))


def _correlate(request_id: Optional[str]) -> None:
    if request_id:
        set_request_id(request_id)
    else:
        new_request_id()


def _missing_fields(request: BookingRequest) -> list[str]:
    missing = []
    for name in REQUIRED_FIELDS:
        value = getattr(request, name)
        if value is None or (isinstance(value, str) and not value.strip()):
            missing.append(name)
    return missing


class BookingService:
    """Composes calendar, catalog and schedule into the member booking flow."""

    def __init__(self, store: ScheduleStore) -> None:
        self.store = store
        self._outbox: list[BookingEvent] = []

    def validate(
        self, request: BookingRequest, config: Optional[StudioConfig] = None
    ) -> Union[ReservationCandidate, BookingError]:
        """Run every pre-commit check; returns the candidate to reserve."""
        missing = _missing_fields(request)
        if missing:
            return _error(
                BookingErrorCode.VALIDATION_ERROR,
                f"Missing required fields: {', '.join(missing)}.",
                *missing,
            )
        if not is_date_key(request.date):
            return _error(
                BookingErrorCode.VALIDATION_ERROR,
                f"Invalid date {request.date!r}, expected YYYY-MM-DD.",
                "date",
            )
        if not time_range.is_time(request.start_time):
            return _error(
                BookingErrorCode.VALIDATION_ERROR,
                f"Invalid start time {request.start_time!r}, expected HH:MM.",
                "start_time",
            )
        phone = normalize_phone(request.member_phone)
        if not is_mobile_number(phone):
            return _error(
                BookingErrorCode.VALIDATION_ERROR,
                f"Invalid phone number {request.member_phone!r}.",
                "member_phone",
            )

        start = time_range.parse(request.start_time)
        if not math.isfinite(request.duration_hours):
            return _error(
                BookingErrorCode.INVALID_DURATION,
                f"Duration must be a finite number of hours, got {request.duration_hours}.",
                "duration_hours",
            )
        if request.duration_hours <= 0:
            return _error(
                BookingErrorCode.INVALID_DURATION,
                f"Duration must be positive, got {request.duration_hours}h.",
                "duration_hours",
            )
        end = time_range.add_hours(start, request.duration_hours)
        if end <= start or end >= time_range.MINUTES_PER_DAY:
            return _error(
                BookingErrorCode.INVALID_DURATION,
                f"{request.duration_hours}h from {request.start_time} runs past midnight.",
                "duration_hours",
            )

        if config is not None:
            calendar = config.business_hours
            if not business_calendar.is_open(calendar, request.date):
                return _error(
                    BookingErrorCode.CLOSED_DAY, f"The studio is closed on {request.date}."
                )
            hours = business_calendar.hours_for(calendar, request.date)
            if not business_calendar.contains(hours, start, end):
                return _error(
                    BookingErrorCode.OUTSIDE_HOURS,
                    f"{request.start_time}-{time_range.format_time(end)} is outside "
                    f"business hours {hours.open}-{hours.close}.",
                    "start_time", "duration_hours",
                )
            station = resource_catalog.find_station(config.stations, request.station_id)
            if station is None or station.status != StationStatus.AVAILABLE:
                state = station.status.value if station else "unknown"
                return _error(
                    BookingErrorCode.STATION_UNAVAILABLE,
                    f"Station {request.station_id} is not bookable ({state}).",
                    "station_id",
                )

        return ReservationCandidate(
            date=request.date,
            start_time=time_range.format_time(start),
            end_time=time_range.format_time(end),
            station_id=request.station_id,
            member_name=request.member_name.strip(),
            member_phone=phone,
            notes=(request.notes or "").strip(),
            idempotency_key=request.idempotency_key,
        )

    async def submit(
        self,
        request: BookingRequest,
        config: Optional[StudioConfig] = None,
        request_id: Optional[str] = None,
    ) -> BookingOutcome:
        """Validate and reserve. Without a config, hours and station checks are skipped.

        ``request_id`` tags the logs and the resulting event; a fresh one is
        generated when the host does not pass its own.
        """
        _correlate(request_id)
        checked = self.validate(request, config)
        if isinstance(checked, BookingError):
            logger.info("Submission rejected (%s): %s", checked.code.value, checked.message)
            return checked

        outcome, created = await self.store.try_reserve(checked)
        if not created:
            return outcome

        self._outbox.append(self._created_event(outcome, config))
        return outcome

    @staticmethod
    def _created_event(booking: Booking, config: Optional[StudioConfig]) -> BookingCreated:
        if config is None:
            return BookingCreated(booking=booking)
        return BookingCreated(
            booking=booking,
            bike_model=resource_catalog.model_name(
                config.stations, config.bike_models, booking.station_id
            ),
            price=booking.duration_hours * config.price_per_hour,
        )

    async def cancel(
        self, booking_id: str, request_id: Optional[str] = None
    ) -> BookingOutcome:
        """Cancel a booking; only a real confirmed -> cancelled change emits an event."""
        _correlate(request_id)
        outcome, changed = await self.store.try_cancel(booking_id)
        if changed:
            self._outbox.append(BookingCancelled(booking=outcome))
        return outcome

    async def delete(self, booking_id: str) -> Optional[BookingError]:
        return await self.store.delete(booking_id)

    def drain_events(self) -> list[BookingEvent]:
        """Hand over pending notifier events and clear the outbox."""
        events, self._outbox = self._outbox, []
        return events

    def quote(self, duration_hours: float, config: StudioConfig) -> float:
        return duration_hours * config.price_per_hour

    async def availability(
        self, date: str, start_time: str, duration_hours: float, config: StudioConfig
    ) -> list[Station]:
        """Stations a member could pick right now. Display only, reserve decides."""
        if not business_calendar.is_open(config.business_hours, date):
            return []
        if not math.isfinite(duration_hours) or duration_hours <= 0:
            return []
        start = time_range.parse(start_time)
        end = time_range.add_hours(start, duration_hours)
        if end <= start or end >= time_range.MINUTES_PER_DAY:
            return []
        return await self.store.available_stations(config.stations, date, start, end)

    async def my_bookings(self, member_phone: str) -> list[Booking]:
        """A member's own bookings, most recent first. Separators in the number are ignored."""
        phone = normalize_phone(member_phone)
        found = await self.store.query(
            BookingFilter(phone_contains=phone, descending=True)
        )
        return [b for b in found if b.member_phone == phone]
