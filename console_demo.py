"""
Offline console demo: runs the booking engine end to end in the terminal.

Uses the real calendar, catalog, schedule store and booking service over
the in-memory store. No backend, no push key, no network calls.

Usage:
    python console_demo.py
    python console_demo.py --scenario race
    python console_demo.py --scenario admin
"""

import argparse
import asyncio
import sys

from studio_booking.collaborators.persistence import InMemoryPersistence
from studio_booking.errors import user_message
from studio_booking.reporting import summarize
from studio_booking.scheduling import admin
from studio_booking.scheduling.booking_service import BookingService
from studio_booking.scheduling.schedule_store import ScheduleStore
from studio_booking.schemas.booking_schema import BookingError, BookingRequest
from studio_booking.schemas.studio_schema import StationStatus, StudioConfig, default_studio_config

GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
DIM = "\033[2m"
RESET = "\033[0m"
BOLD = "\033[1m"

DEMO_DATE = "2024-03-15"


def _request(start_time: str, duration: float, station_id: int, name: str, phone: str) -> BookingRequest:
    return BookingRequest(
        date=DEMO_DATE,
        start_time=start_time,
        duration_hours=duration,
        station_id=station_id,
        member_name=name,
        member_phone=phone,
    )


class ConsoleDemo:
    """Drives scripted submissions through the engine and prints each outcome."""

    def __init__(self, latency: float = 0.0) -> None:
        self.persistence = InMemoryPersistence(latency=latency)
        self.store = ScheduleStore(self.persistence)
        self.service = BookingService(self.store)
        self.config: StudioConfig = default_studio_config()

    def show(self, label: str, outcome) -> None:
        if isinstance(outcome, BookingError):
            print(f"{RED}{BOLD}[{label}]{RESET} {RED}{outcome.code.value}: "
                  f"{user_message(outcome)}{RESET}")
            print(f"{DIM}  >> {outcome.message}{RESET}")
        else:
            print(f"{GREEN}{BOLD}[{label}]{RESET} {GREEN}station {outcome.station_id} "
                  f"{outcome.date} {outcome.start_time}-{outcome.end_time} "
                  f"({outcome.status.value}){RESET}")

    async def run_booking(self) -> None:
        print(f"{BOLD}Booking scenario on {DEMO_DATE}{RESET}")
        first = await self.service.submit(_request("09:00", 2, 1, "张三", "13800138000"), self.config)
        self.show("9:00 x2h station 1", first)
        second = await self.service.submit(_request("10:00", 1, 1, "李四", "13900139000"), self.config)
        self.show("10:00 x1h station 1", second)
        third = await self.service.submit(_request("10:00", 1, 2, "李四", "13900139000"), self.config)
        self.show("10:00 x1h station 2", third)
        early = await self.service.submit(_request("05:00", 1, 3, "王五", "13700137000"), self.config)
        self.show("05:00 x1h station 3", early)

        if not isinstance(first, BookingError):
            cancelled = await self.service.cancel(first.id)
            self.show("cancel first", cancelled)

        bookings = await self.store.query()
        summary = summarize(bookings, self.config.price_per_hour)
        print(f"{YELLOW}Revenue ¥{summary.total_revenue:g} over "
              f"{summary.total_bookings} confirmed bookings{RESET}")
        print(f"{DIM}  >> {len(self.service.drain_events())} notifier events queued{RESET}")

    async def run_race(self, contenders: int = 8) -> None:
        print(f"{BOLD}{contenders} members submit 18:00 on station 4 at once{RESET}")
        requests = [
            _request("18:00", 1, 4, f"会员{i}", f"1380013{i:04d}") for i in range(contenders)
        ]
        outcomes = await asyncio.gather(
            *(
                self.service.submit(r, self.config, request_id=f"RACE-{i}")
                for i, r in enumerate(requests)
            )
        )
        for i, outcome in enumerate(outcomes):
            self.show(f"member {i}", outcome)
        winners = [o for o in outcomes if not isinstance(o, BookingError)]
        print(f"{YELLOW}{len(winners)} booking committed{RESET}")

    async def run_admin(self) -> None:
        print(f"{BOLD}Admin changes{RESET}")
        config = admin.update_station(self.config, 2, status=StationStatus.MAINTENANCE)
        if isinstance(config, BookingError):
            self.show("maintenance", config)
            return
        self.config = config
        blocked = await self.service.submit(_request("12:00", 1, 2, "赵六", "13600136000"), self.config)
        self.show("station 2 in maintenance", blocked)
        closed = admin.set_exception(self.config, DEMO_DATE, is_open=False)
        if not isinstance(closed, BookingError):
            self.config = closed
        shut = await self.service.submit(_request("12:00", 1, 1, "赵六", "13600136000"), self.config)
        self.show("closed day", shut)


SCENARIOS = {
    "booking": ConsoleDemo.run_booking,
    "race": ConsoleDemo.run_race,
    "admin": ConsoleDemo.run_admin,
}


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the studio booking engine offline.")
    parser.add_argument("--scenario", choices=sorted(SCENARIOS), default="booking")
    parser.add_argument(
        "--latency-ms", type=int, default=5,
        help="Artificial storage latency, to make concurrent submissions interleave.",
    )
    args = parser.parse_args()

    demo = ConsoleDemo(latency=args.latency_ms / 1000)
    try:
        asyncio.run(SCENARIOS[args.scenario](demo))
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    main()
