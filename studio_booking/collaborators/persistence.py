"""
Persistence collaborator interface and the in-process implementation.

The hosted backend (tables for bookings and config) is reached through
this small async interface. InMemoryPersistence keeps everything in
dicts and is what the demo and tests run against; it can add latency and
inject faults so interleavings and outages can be reproduced.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Protocol

from studio_booking.config import settings
from studio_booking.errors import StorageFault
from studio_booking.schemas.booking_schema import Booking, BookingFilter, BookingStatus
from studio_booking.schemas.studio_schema import StudioConfig, default_studio_config

logger = logging.getLogger(__name__)


class PersistenceCollaborator(Protocol):
    """Storage operations the engine needs. Failures raise StorageFault.

    insert_booking stamps created_at itself; stamps must increase with
    insertion order (a database default of now() on a single primary).
    """

    async def load_bookings(self, booking_filter: BookingFilter) -> list[Booking]: ...

    async def insert_booking(self, booking: Booking) -> Booking: ...

    async def update_booking_status(
        self, booking_id: str, status: BookingStatus
    ) -> Optional[Booking]: ...

    async def delete_booking(self, booking_id: str) -> bool: ...

    async def load_config(self) -> StudioConfig: ...

    async def save_config(self, partial: dict[str, Any]) -> StudioConfig: ...


class InMemoryPersistence:
    """Dict-backed store, one per studio process.

    ``latency`` (seconds) is awaited before every operation. Faults queued
    with ``inject_fault`` fire on the next call of that operation; with
    ``after_commit=True`` the write is applied before the fault is raised,
    which is what a timeout on a successful remote write looks like.
    """

    def __init__(
        self,
        bookings: Optional[list[Booking]] = None,
        config: Optional[StudioConfig] = None,
        latency: Optional[float] = None,
    ) -> None:
        self._bookings: dict[str, Booking] = {b.id: b for b in bookings or []}
        self._config = config
        self.latency = (
            settings.engine.storage_latency_ms / 1000 if latency is None else latency
        )
        self._faults: dict[str, list[bool]] = {}
        self._last_stamp: Optional[datetime] = None
        self.calls: dict[str, int] = {}

    def inject_fault(self, operation: str, after_commit: bool = False) -> None:
        self._faults.setdefault(operation, []).append(after_commit)

    async def _enter(self, operation: str) -> Optional[bool]:
        self.calls[operation] = self.calls.get(operation, 0) + 1
        await asyncio.sleep(self.latency)
        pending = self._faults.get(operation)
        if pending:
            return pending.pop(0)
        return None

    @staticmethod
    def _fail(operation: str) -> StorageFault:
        logger.warning("Injected storage fault on %s", operation)
        return StorageFault(f"{operation} failed: storage unavailable")

    async def load_bookings(self, booking_filter: BookingFilter) -> list[Booking]:
        if await self._enter("load_bookings") is not None:
            raise self._fail("load_bookings")
        return [b for b in self._bookings.values() if booking_filter.matches(b)]

    async def insert_booking(self, booking: Booking) -> Booking:
        fault = await self._enter("insert_booking")
        if fault is False:
            raise self._fail("insert_booking")
        if booking.id in self._bookings:
            raise StorageFault(f"Duplicate booking id {booking.id}")
        stored = booking.model_copy(update={"created_at": self._stamp()})
        self._bookings[booking.id] = stored
        if fault:
            raise self._fail("insert_booking")
        return stored

    def _stamp(self) -> datetime:
        """Insert timestamp, strictly increasing like a database default."""
        now = datetime.now(timezone.utc)
        if self._last_stamp is not None and now <= self._last_stamp:
            now = self._last_stamp + timedelta(microseconds=1)
        self._last_stamp = now
        return now

    async def update_booking_status(
        self, booking_id: str, status: BookingStatus
    ) -> Optional[Booking]:
        if await self._enter("update_booking_status") is not None:
            raise self._fail("update_booking_status")
        current = self._bookings.get(booking_id)
        if current is None:
            return None
        updated = current.model_copy(update={"status": status})
        self._bookings[booking_id] = updated
        return updated

    async def delete_booking(self, booking_id: str) -> bool:
        if await self._enter("delete_booking") is not None:
            raise self._fail("delete_booking")
        return self._bookings.pop(booking_id, None) is not None

    async def load_config(self) -> StudioConfig:
        if await self._enter("load_config") is not None:
            raise self._fail("load_config")
        if self._config is None:
            return default_studio_config()
        return self._config

    async def save_config(self, partial: dict[str, Any]) -> StudioConfig:
        """Merge ``partial`` into the stored snapshot and replace it whole."""
        if await self._enter("save_config") is not None:
            raise self._fail("save_config")
        current = self._config or default_studio_config()
        merged = {
            **{name: getattr(current, name) for name in StudioConfig.model_fields},
            **partial,
            "updated_at": datetime.now(timezone.utc),
        }
        self._config = StudioConfig.model_validate(merged)
        logger.info("Studio config saved (%s)", ", ".join(sorted(partial)) or "no changes")
        return self._config
