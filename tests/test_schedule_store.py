"""Tests for the schedule store: conflict checks, races, retries and queries."""

import asyncio
from typing import Optional

import pytest

from studio_booking.collaborators.persistence import InMemoryPersistence
from studio_booking.errors import StorageFault
from studio_booking.scheduling.schedule_store import ScheduleStore
from studio_booking.schemas.booking_schema import (
    Booking,
    BookingError,
    BookingErrorCode,
    BookingFilter,
    BookingStatus,
)
from studio_booking.schemas.studio_schema import Station, StationStatus
from tests.conftest import make_booking, make_candidate


async def _confirmed(persistence: InMemoryPersistence, **filters) -> list[Booking]:
    return await persistence.load_bookings(
        BookingFilter(status=BookingStatus.CONFIRMED, **filters)
    )


class TestReserve:
    @pytest.mark.asyncio
    async def test_commits_free_slot(self, store):
        outcome = await store.reserve(make_candidate())
        assert isinstance(outcome, Booking)
        assert outcome.status == BookingStatus.CONFIRMED
        assert (outcome.start_time, outcome.end_time) == ("09:00", "11:00")
        assert outcome.id

    @pytest.mark.asyncio
    async def test_overlap_is_conflict(self, store):
        await store.reserve(make_candidate("09:00", "11:00"))
        outcome = await store.reserve(make_candidate("10:00", "12:00"))
        assert isinstance(outcome, BookingError)
        assert outcome.code == BookingErrorCode.CONFLICT

    @pytest.mark.asyncio
    async def test_touching_slots_both_commit(self, store):
        first = await store.reserve(make_candidate("09:00", "11:00"))
        second = await store.reserve(make_candidate("11:00", "12:00"))
        assert isinstance(first, Booking)
        assert isinstance(second, Booking)

    @pytest.mark.asyncio
    async def test_other_station_is_independent(self, store):
        await store.reserve(make_candidate(station_id=1))
        outcome = await store.reserve(make_candidate(station_id=2))
        assert isinstance(outcome, Booking)

    @pytest.mark.asyncio
    async def test_other_date_is_independent(self, store):
        await store.reserve(make_candidate(date="2024-03-15"))
        outcome = await store.reserve(make_candidate(date="2024-03-16"))
        assert isinstance(outcome, Booking)

    @pytest.mark.asyncio
    async def test_cancelled_booking_does_not_block(self):
        persistence = InMemoryPersistence(
            bookings=[make_booking(status=BookingStatus.CANCELLED)], latency=0
        )
        outcome = await ScheduleStore(persistence).reserve(make_candidate())
        assert isinstance(outcome, Booking)

    @pytest.mark.asyncio
    async def test_created_at_stamped_by_storage(self, store):
        first = await store.reserve(make_candidate("09:00", "10:00"))
        second = await store.reserve(make_candidate("10:00", "11:00"))
        assert first.created_at < second.created_at


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_concurrent_same_slot_single_winner(self):
        persistence = InMemoryPersistence(latency=0.001)
        store = ScheduleStore(persistence)
        outcomes = await asyncio.gather(
            *(store.reserve(make_candidate(station_id=4)) for _ in range(8))
        )
        winners = [o for o in outcomes if isinstance(o, Booking)]
        losers = [o for o in outcomes if isinstance(o, BookingError)]
        assert len(winners) == 1
        assert all(o.code == BookingErrorCode.CONFLICT for o in losers)
        assert len(await _confirmed(persistence, station_id=4)) == 1

    @pytest.mark.asyncio
    async def test_two_stores_sharing_storage_single_winner(self):
        persistence = InMemoryPersistence(latency=0.001)
        stores = [ScheduleStore(persistence), ScheduleStore(persistence)]
        outcomes = await asyncio.gather(
            *(
                stores[i % 2].reserve(make_candidate("18:00", "19:30", station_id=4))
                for i in range(8)
            )
        )
        assert sum(isinstance(o, Booking) for o in outcomes) == 1
        stored = await _confirmed(persistence, station_id=4, date="2024-03-15")
        assert len(stored) == 1

    @pytest.mark.asyncio
    async def test_concurrent_disjoint_slots_all_commit(self, store):
        slots = [("09:00", "10:00"), ("10:00", "11:00"), ("11:00", "12:00")]
        outcomes = await asyncio.gather(
            *(store.reserve(make_candidate(s, e)) for s, e in slots)
        )
        assert all(isinstance(o, Booking) for o in outcomes)

    @pytest.mark.asyncio
    async def test_concurrent_different_stations_all_commit(self, store):
        outcomes = await asyncio.gather(
            *(store.reserve(make_candidate(station_id=i)) for i in range(1, 5))
        )
        assert all(isinstance(o, Booking) for o in outcomes)


class TestStorageFaults:
    @pytest.mark.asyncio
    async def test_retry_after_failed_insert(self, persistence, store):
        persistence.inject_fault("insert_booking")
        outcome = await store.reserve(make_candidate())
        assert isinstance(outcome, Booking)
        assert persistence.calls["insert_booking"] == 2
        assert len(await _confirmed(persistence)) == 1

    @pytest.mark.asyncio
    async def test_fault_after_commit_is_not_duplicated(self, persistence, store):
        persistence.inject_fault("insert_booking", after_commit=True)
        outcome = await store.reserve(make_candidate())
        assert isinstance(outcome, Booking)
        assert persistence.calls["insert_booking"] == 1
        assert len(await _confirmed(persistence)) == 1

    @pytest.mark.asyncio
    async def test_retries_exhausted_raises(self, persistence):
        store = ScheduleStore(persistence, retries=3)
        for _ in range(3):
            persistence.inject_fault("insert_booking")
        with pytest.raises(StorageFault):
            await store.reserve(make_candidate())
        assert await _confirmed(persistence) == []

    @pytest.mark.asyncio
    async def test_load_fault_propagates(self, persistence, store):
        persistence.inject_fault("load_bookings")
        with pytest.raises(StorageFault):
            await store.reserve(make_candidate())

    @pytest.mark.asyncio
    async def test_idempotency_key_replays_booking(self, persistence, store):
        first = await store.reserve(make_candidate(idempotency_key="form-1"))
        second = await store.reserve(make_candidate(idempotency_key="form-1"))
        assert isinstance(second, Booking)
        assert second.id == first.id
        assert len(await _confirmed(persistence)) == 1


class TestAvailability:
    @pytest.mark.asyncio
    async def test_free_slot(self, store):
        assert await store.is_available(1, "2024-03-15", "09:00", "11:00")

    @pytest.mark.asyncio
    async def test_booked_slot(self, store):
        await store.reserve(make_candidate())
        assert not await store.is_available(1, "2024-03-15", "10:00", "10:30")

    @pytest.mark.asyncio
    async def test_accepts_minutes(self, store):
        await store.reserve(make_candidate())
        assert await store.is_available(1, "2024-03-15", 660, 720)

    @pytest.mark.asyncio
    async def test_exclude_own_booking(self, store):
        booking = await store.reserve(make_candidate())
        assert await store.is_available(
            1, "2024-03-15", "09:00", "11:00", exclude_booking_id=booking.id
        )

    @pytest.mark.asyncio
    async def test_available_stations(self, store):
        stations = [
            Station(station_id=1, bike_model_id="stages-bike"),
            Station(station_id=2, bike_model_id="stages-bike"),
            Station(station_id=3, bike_model_id="neo-bike", status=StationStatus.MAINTENANCE),
        ]
        await store.reserve(make_candidate(station_id=1))
        free = await store.available_stations(stations, "2024-03-15", "10:00", "11:00")
        assert [s.station_id for s in free] == [2]


class TestCancelAndDelete:
    @pytest.mark.asyncio
    async def test_cancel_frees_slot(self, store):
        booking = await store.reserve(make_candidate())
        cancelled = await store.cancel(booking.id)
        assert cancelled.status == BookingStatus.CANCELLED
        assert isinstance(await store.reserve(make_candidate()), Booking)

    @pytest.mark.asyncio
    async def test_cancel_twice_is_idempotent(self, persistence, store):
        booking = await store.reserve(make_candidate())
        await store.cancel(booking.id)
        again = await store.cancel(booking.id)
        assert again.status == BookingStatus.CANCELLED
        assert persistence.calls["update_booking_status"] == 1

    @pytest.mark.asyncio
    async def test_cancel_missing(self, store):
        outcome = await store.cancel("nope")
        assert isinstance(outcome, BookingError)
        assert outcome.code == BookingErrorCode.NOT_FOUND

    @pytest.mark.asyncio
    async def test_delete(self, store):
        booking = await store.reserve(make_candidate())
        assert await store.delete(booking.id) is None
        assert await store.get(booking.id) is None

    @pytest.mark.asyncio
    async def test_delete_missing(self, store):
        outcome = await store.delete("nope")
        assert outcome.code == BookingErrorCode.NOT_FOUND


class TestQuery:
    @pytest.fixture
    def seeded(self):
        persistence = InMemoryPersistence(
            bookings=[
                make_booking("c", date="2024-03-16", start_time="08:00", end_time="09:00"),
                make_booking("a", date="2024-03-15", start_time="14:00", end_time="15:00"),
                make_booking("b", date="2024-03-15", start_time="09:00", end_time="10:00",
                             station_id=2, member_phone="13900139000"),
                make_booking("d", date="2024-03-17", status=BookingStatus.CANCELLED),
            ],
            latency=0,
        )
        return ScheduleStore(persistence)

    @pytest.mark.asyncio
    async def test_ordered_by_date_then_start(self, seeded):
        assert [b.id for b in await seeded.query()] == ["b", "a", "c", "d"]

    @pytest.mark.asyncio
    async def test_descending(self, seeded):
        found = await seeded.query(BookingFilter(descending=True))
        assert [b.id for b in found] == ["d", "c", "a", "b"]

    @pytest.mark.asyncio
    async def test_filters(self, seeded):
        assert [b.id for b in await seeded.query(BookingFilter(station_id=2))] == ["b"]
        assert [b.id for b in await seeded.query(BookingFilter(phone_contains="139"))] == ["b"]
        found = await seeded.query(BookingFilter(date_from="2024-03-16", date_to="2024-03-16"))
        assert [b.id for b in found] == ["c"]
        found = await seeded.query(BookingFilter(status=BookingStatus.CANCELLED))
        assert [b.id for b in found] == ["d"]


class _RivalWriter(InMemoryPersistence):
    """Storage where another writer lands an overlapping booking just before ours."""

    def __init__(self, rival: Booking) -> None:
        super().__init__(latency=0)
        self.rival: Optional[Booking] = rival

    async def insert_booking(self, booking: Booking) -> Booking:
        if self.rival is not None:
            rival, self.rival = self.rival, None
            await super().insert_booking(rival)
        return await super().insert_booking(booking)


class _FailingReadBack(InMemoryPersistence):
    """Storage whose first read after an insert fails."""

    async def insert_booking(self, booking: Booking) -> Booking:
        stored = await super().insert_booking(booking)
        self.inject_fault("load_bookings")
        return stored


def _rival() -> Booking:
    return make_booking("other", start_time="09:00", end_time="10:00")


class TestBackOut:
    @pytest.mark.asyncio
    async def test_later_write_backs_out(self):
        persistence = _RivalWriter(_rival())
        outcome = await ScheduleStore(persistence).reserve(make_candidate())
        assert outcome.code == BookingErrorCode.CONFLICT
        assert [b.id for b in await _confirmed(persistence)] == ["other"]

    @pytest.mark.asyncio
    async def test_failed_delete_is_retried(self):
        persistence = _RivalWriter(_rival())
        persistence.inject_fault("delete_booking")
        outcome = await ScheduleStore(persistence).reserve(make_candidate())
        assert outcome.code == BookingErrorCode.CONFLICT
        assert persistence.calls["delete_booking"] == 2
        assert [b.id for b in await _confirmed(persistence)] == ["other"]

    @pytest.mark.asyncio
    async def test_undeletable_row_is_cancelled(self):
        persistence = _RivalWriter(_rival())
        for _ in range(2):
            persistence.inject_fault("delete_booking")
        outcome = await ScheduleStore(persistence, retries=2).reserve(make_candidate())
        assert outcome.code == BookingErrorCode.CONFLICT
        assert [b.id for b in await _confirmed(persistence)] == ["other"]
        cancelled = await persistence.load_bookings(
            BookingFilter(status=BookingStatus.CANCELLED)
        )
        assert len(cancelled) == 1

    @pytest.mark.asyncio
    async def test_fault_when_row_cannot_be_removed(self):
        persistence = _RivalWriter(_rival())
        for _ in range(2):
            persistence.inject_fault("delete_booking")
        persistence.inject_fault("update_booking_status")
        with pytest.raises(StorageFault):
            await ScheduleStore(persistence, retries=2).reserve(make_candidate())

    @pytest.mark.asyncio
    async def test_failed_read_back_removes_row(self):
        persistence = _FailingReadBack(latency=0)
        with pytest.raises(StorageFault):
            await ScheduleStore(persistence).reserve(make_candidate())
        assert await persistence.load_bookings(BookingFilter()) == []


class TestReportedChanges:
    @pytest.mark.asyncio
    async def test_try_reserve_flags_new_booking(self, store):
        outcome, created = await store.try_reserve(make_candidate(idempotency_key="k"))
        assert isinstance(outcome, Booking)
        assert created

    @pytest.mark.asyncio
    async def test_try_reserve_flags_replay(self, store):
        first, _ = await store.try_reserve(make_candidate(idempotency_key="k"))
        again, created = await store.try_reserve(make_candidate(idempotency_key="k"))
        assert again.id == first.id
        assert not created

    @pytest.mark.asyncio
    async def test_try_reserve_conflict_not_created(self, store):
        await store.reserve(make_candidate())
        outcome, created = await store.try_reserve(make_candidate())
        assert outcome.code == BookingErrorCode.CONFLICT
        assert not created

    @pytest.mark.asyncio
    async def test_concurrent_cancels_change_once(self):
        persistence = InMemoryPersistence(latency=0.001)
        store = ScheduleStore(persistence)
        booking = await store.reserve(make_candidate())
        results = await asyncio.gather(store.try_cancel(booking.id), store.try_cancel(booking.id))
        assert sorted(changed for _, changed in results) == [False, True]
        assert all(o.status == BookingStatus.CANCELLED for o, _ in results)
        assert persistence.calls["update_booking_status"] == 1


class TestStoreSettings:
    def test_explicit_retries_kept(self, persistence):
        assert ScheduleStore(persistence, retries=1).retries == 1

    def test_zero_retries_rejected(self, persistence):
        with pytest.raises(ValueError):
            ScheduleStore(persistence, retries=0)

    @pytest.mark.asyncio
    async def test_single_attempt_gives_up_after_one_fault(self, persistence):
        persistence.inject_fault("insert_booking")
        with pytest.raises(StorageFault):
            await ScheduleStore(persistence, retries=1).reserve(make_candidate())
        assert persistence.calls["insert_booking"] == 1

    @pytest.mark.asyncio
    async def test_same_partition_shares_lock(self, store):
        assert store._lock_for(1, "2999-01-01") is store._lock_for(1, "2999-01-01")

    @pytest.mark.asyncio
    async def test_past_partition_locks_pruned(self, store):
        store._lock_for(1, "2000-01-01")
        store._lock_for(2, "2999-01-01")
        assert list(store._locks) == [(2, "2999-01-01")]
