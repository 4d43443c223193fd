"""
Authoritative reservation schedule with conflict-checked commits.

Each (station_id, date) pair is a partition holding an interval set of
confirmed bookings. ``reserve`` is the only way a booking is created and
the only place a conflict is decided:

1. The partition lock serializes check-then-insert inside this process.
2. After the insert the partition is read back. If another confirmed,
   overlapping booking precedes ours in (created_at, id) order, it was
   written by another process sharing the same storage; ours is removed
   and the caller gets a conflict. created_at is stamped by the storage
   at insert and increases with insertion order, so of any overlapping
   pair the later insert always sees the earlier one and backs out.
3. If the read-back itself fails, our row is removed before the fault
   propagates. A committed row is never left unverified.

Usage:
    store = ScheduleStore(InMemoryPersistence())
    outcome = await store.reserve(candidate)
    if isinstance(outcome, BookingError): ...
"""

import asyncio
import uuid
from datetime import date as calendar_date
from datetime import datetime, timezone
from typing import Iterable, Optional, Union

from studio_booking import time_range
from studio_booking.collaborators.persistence import (
    InMemoryPersistence,
    PersistenceCollaborator,
)
from studio_booking.config import settings
from studio_booking.errors import StorageFault
from studio_booking.logging_context import get_request_logger
from studio_booking.scheduling import resource_catalog
from studio_booking.schemas.booking_schema import (
    Booking,
    BookingError,
    BookingErrorCode,
    BookingFilter,
    BookingOutcome,
    BookingStatus,
    ReservationCandidate,
)
from studio_booking.schemas.studio_schema import Station

logger = get_request_logger(__name__)

TimeLike = Union[int, str]


def _minutes(value: TimeLike) -> int:
    return value if isinstance(value, int) else time_range.parse(value)


def _conflicts(
    bookings: Iterable[Booking],
    start: int,
    end: int,
    exclude_booking_id: Optional[str] = None,
) -> list[Booking]:
    return [
        b for b in bookings
        if b.is_confirmed
        and b.id != exclude_booking_id
        and time_range.overlaps(start, end, b.start_minutes, b.end_minutes)
    ]


def _conflict_error(candidate: ReservationCandidate, rival: Booking) -> BookingError:
    return BookingError(
        code=BookingErrorCode.CONFLICT,
        message=(
            f"Station {candidate.station_id} is already booked on {candidate.date} "
            f"{rival.start_time}-{rival.end_time}"
        ),
    )


def _not_found(booking_id: str) -> BookingError:
    return BookingError(
        code=BookingErrorCode.NOT_FOUND, message=f"Booking {booking_id} not found."
    )


class ScheduleStore:
    """Single source of truth for reservations over a persistence collaborator."""

    def __init__(
        self,
        persistence: Optional[PersistenceCollaborator] = None,
        retries: Optional[int] = None,
    ) -> None:
        self.persistence = persistence or InMemoryPersistence()
        self.retries = settings.engine.reserve_retries if retries is None else retries
        if self.retries < 1:
            raise ValueError(f"retries must be >= 1, got {self.retries}")
        self._locks: dict[tuple[int, str], asyncio.Lock] = {}

    def _lock_for(self, station_id: int, date: str) -> asyncio.Lock:
        key = (station_id, date)
        lock = self._locks.get(key)
        if lock is None:
            self._prune_locks()
            lock = self._locks[key] = asyncio.Lock()
        return lock

    def _prune_locks(self) -> None:
        """Forget idle locks of partitions dated before today."""
        today = calendar_date.today().isoformat()
        stale = [
            key for key, lock in self._locks.items()
            if key[1] < today and not lock.locked()
        ]
        for key in stale:
            del self._locks[key]

    async def _partition(self, station_id: int, date: str) -> list[Booking]:
        return await self.persistence.load_bookings(
            BookingFilter(date=date, station_id=station_id)
        )

    async def get(self, booking_id: str) -> Optional[Booking]:
        found = await self.persistence.load_bookings(BookingFilter(booking_id=booking_id))
        return found[0] if found else None

    async def is_available(
        self,
        station_id: int,
        date: str,
        start: TimeLike,
        end: TimeLike,
        exclude_booking_id: Optional[str] = None,
    ) -> bool:
        """Whether [start, end) is free on the station. A hint only; reserve decides."""
        bookings = await self._partition(station_id, date)
        return not _conflicts(bookings, _minutes(start), _minutes(end), exclude_booking_id)

    async def available_stations(
        self, stations: Iterable[Station], date: str, start: TimeLike, end: TimeLike
    ) -> list[Station]:
        """Offerable stations with [start, end) free on ``date``, in roster order."""
        start_min, end_min = _minutes(start), _minutes(end)
        day = await self.persistence.load_bookings(
            BookingFilter(date=date, status=BookingStatus.CONFIRMED)
        )
        return [
            station for station in resource_catalog.offerable(stations)
            if not _conflicts(
                (b for b in day if b.station_id == station.station_id), start_min, end_min
            )
        ]

    async def reserve(self, candidate: ReservationCandidate) -> BookingOutcome:
        """Commit the candidate unless it overlaps a confirmed booking."""
        outcome, _ = await self.try_reserve(candidate)
        return outcome

    async def try_reserve(
        self, candidate: ReservationCandidate
    ) -> tuple[BookingOutcome, bool]:
        """Like ``reserve``, also telling whether a new booking was created.

        A submission replayed by its idempotency key returns the existing
        booking with ``False``.
        """
        start, end = _minutes(candidate.start_time), _minutes(candidate.end_time)

        async with self._lock_for(candidate.station_id, candidate.date):
            existing = await self._partition(candidate.station_id, candidate.date)

            if candidate.idempotency_key:
                for booking in existing:
                    if booking.idempotency_key == candidate.idempotency_key:
                        logger.info(
                            "Replayed submission %s -> booking %s",
                            candidate.idempotency_key, booking.id,
                        )
                        return booking, False

            rivals = _conflicts(existing, start, end)
            if rivals:
                logger.info(
                    "Conflict on station %s %s %s-%s",
                    candidate.station_id, candidate.date,
                    candidate.start_time, candidate.end_time,
                )
                return _conflict_error(candidate, rivals[0]), False

            booking = Booking(
                id=uuid.uuid4().hex,
                created_at=datetime.now(timezone.utc),
                status=BookingStatus.CONFIRMED,
                **candidate.model_dump(),
            )
            committed = await self._insert(booking)

            try:
                after = await self._partition(candidate.station_id, candidate.date)
            except StorageFault:
                logger.warning("Read-back of booking %s failed, backing out", committed.id)
                await self._back_out(committed.id)
                raise
            earlier = [
                b for b in _conflicts(after, start, end, exclude_booking_id=committed.id)
                if (b.created_at, b.id) < (committed.created_at, committed.id)
            ]
            if earlier:
                logger.warning(
                    "Booking %s lost a concurrent write to %s, backing out",
                    committed.id, earlier[0].id,
                )
                await self._back_out(committed.id)
                return _conflict_error(candidate, earlier[0]), False

        logger.info(
            "Booking %s committed: station %s %s %s-%s",
            committed.id, committed.station_id, committed.date,
            committed.start_time, committed.end_time,
        )
        return committed, True

    async def _still_stored(self, booking_id: str) -> Optional[Booking]:
        try:
            return await self.get(booking_id)
        except StorageFault as e:
            logger.warning("Re-query of %s failed: %s", booking_id, e)
            return None

    async def _insert(self, booking: Booking) -> Booking:
        """Insert with bounded retries.

        A fault may hide a write that landed, so before every retry the
        partition is searched for the booking's id.
        """
        last_fault: Optional[StorageFault] = None
        for attempt in range(1, self.retries + 1):
            if last_fault is not None:
                landed = await self._still_stored(booking.id)
                if landed is not None:
                    logger.info("Booking %s had committed despite fault", booking.id)
                    return landed
            try:
                return await self.persistence.insert_booking(booking)
            except StorageFault as e:
                last_fault = e
                logger.warning(
                    "Insert attempt %d/%d for %s failed: %s",
                    attempt, self.retries, booking.id, e,
                )
        landed = await self.get(booking.id)
        if landed is not None:
            return landed
        raise StorageFault(
            f"Booking {booking.id} not stored after {self.retries} attempts"
        ) from last_fault

    async def _back_out(self, booking_id: str) -> None:
        """Remove a booking that must not stay confirmed.

        Deletion is retried like an insert. If the row still cannot be
        confirmed gone it is cancelled instead; only when that fails too
        does the fault propagate.
        """
        last_fault: Optional[StorageFault] = None
        for attempt in range(1, self.retries + 1):
            try:
                await self.persistence.delete_booking(booking_id)
                return
            except StorageFault as e:
                last_fault = e
                logger.warning(
                    "Back-out attempt %d/%d for %s failed: %s",
                    attempt, self.retries, booking_id, e,
                )
            try:
                if await self.get(booking_id) is None:
                    return
            except StorageFault as e:
                logger.warning("Re-query of %s failed: %s", booking_id, e)
        try:
            await self.persistence.update_booking_status(booking_id, BookingStatus.CANCELLED)
        except StorageFault as e:
            logger.error("Booking %s could not be backed out: %s", booking_id, e)
            raise StorageFault(
                f"Booking {booking_id} overlaps an earlier booking and could not be removed"
            ) from last_fault
        logger.warning("Booking %s cancelled after failed deletes", booking_id)

    async def cancel(self, booking_id: str) -> BookingOutcome:
        """Soft-delete. Cancelling twice returns the cancelled booking unchanged."""
        outcome, _ = await self.try_cancel(booking_id)
        return outcome

    async def try_cancel(self, booking_id: str) -> tuple[BookingOutcome, bool]:
        """Like ``cancel``, also telling whether this call changed the status.

        The decision is made under the partition lock, so of two concurrent
        cancels exactly one reports the change.
        """
        located = await self.get(booking_id)
        if located is None:
            return _not_found(booking_id), False

        async with self._lock_for(located.station_id, located.date):
            current = await self.get(booking_id)
            if current is None:
                return _not_found(booking_id), False
            if current.status == BookingStatus.CANCELLED:
                return current, False
            updated = await self.persistence.update_booking_status(
                booking_id, BookingStatus.CANCELLED
            )
        if updated is None:
            return _not_found(booking_id), False
        logger.info("Booking %s cancelled", booking_id)
        return updated, True

    async def delete(self, booking_id: str) -> Optional[BookingError]:
        """Hard removal for administrative cleanup, independent of cancellation."""
        if not await self.persistence.delete_booking(booking_id):
            return _not_found(booking_id)
        logger.info("Booking %s purged", booking_id)
        return None

    async def query(self, booking_filter: Optional[BookingFilter] = None) -> list[Booking]:
        """Snapshot ordered by (date, start time); ``descending`` puts recent first."""
        booking_filter = booking_filter or BookingFilter()
        found = await self.persistence.load_bookings(booking_filter)
        return sorted(
            found,
            key=lambda b: (b.date, b.start_minutes),
            reverse=booking_filter.descending,
        )
