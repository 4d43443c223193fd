from studio_booking.scheduling.booking_service import BookingService
from studio_booking.scheduling.business_calendar import (
    DayStatus,
    TimeSlots,
    hours_for,
    is_open,
    slots_for,
    status_for_range,
)
from studio_booking.scheduling.schedule_store import ScheduleStore

__all__ = [
    "BookingService",
    "ScheduleStore",
    "DayStatus",
    "TimeSlots",
    "hours_for",
    "is_open",
    "slots_for",
    "status_for_range",
]
