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
    BookingStatus,
    ReservationCandidate,
)
from studio_booking.schemas.studio_schema import (
    BikeModel,
    BusinessCalendarConfig,
    BusinessHours,
    DayException,
    Station,
    StationStatus,
    StudioConfig,
    default_studio_config,
)

__all__ = [
    "Booking", "BookingCancelled", "BookingCreated", "BookingError",
    "BookingErrorCode", "BookingEvent", "BookingFilter", "BookingOutcome",
    "BookingRequest", "BookingStatus", "ReservationCandidate",
    "BikeModel", "BusinessCalendarConfig", "BusinessHours", "DayException",
    "Station", "StationStatus", "StudioConfig", "default_studio_config",
]
