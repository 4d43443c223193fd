"""
Command line entry point for the studio booking engine.

Usage:
    python main.py slots --date 2024-03-15
    python main.py days
    python main.py demo --scenario race
"""

import argparse
import logging
import sys
from datetime import date

from studio_booking.config import settings
from studio_booking.scheduling.business_calendar import hours_for, is_open, slots_for, status_for_range
from studio_booking.schemas.studio_schema import default_studio_config
from studio_booking.utils import is_date_key

logger = logging.getLogger(__name__)


def _print_slots(date_key: str) -> int:
    if not is_date_key(date_key):
        logger.error("Invalid date %r, expected YYYY-MM-DD", date_key)
        return 1
    calendar = default_studio_config().business_hours
    if not is_open(calendar, date_key):
        sys.stdout.write(f"{date_key}: closed\n")
        return 0
    hours = hours_for(calendar, date_key)
    labels = slots_for(hours).labels()
    sys.stdout.write(f"{date_key} {hours.open}-{hours.close}: {' '.join(labels)}\n")
    return 0


def _print_days() -> int:
    calendar = default_studio_config().business_hours
    for day in status_for_range(calendar, date.today()):
        state = f"{day.hours.open}-{day.hours.close}" if day.is_open else "closed"
        sys.stdout.write(f"{day.date} {state}\n")
    return 0


def _run_demo(scenario: str) -> int:
    """Start the offline console demo (no backend or push key required)."""
    import asyncio

    from console_demo import SCENARIOS, ConsoleDemo

    asyncio.run(SCENARIOS[scenario](ConsoleDemo(latency=0.005)))
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description=f"{settings.studio.name} booking engine.")
    sub = parser.add_subparsers(dest="command", required=True)

    slots = sub.add_parser("slots", help="List bookable start times for a date.")
    slots.add_argument("--date", default=date.today().isoformat())

    sub.add_parser("days", help="Show open days in the booking window.")

    demo = sub.add_parser("demo", help="Run a scripted scenario offline.")
    demo.add_argument("--scenario", choices=["booking", "race", "admin"], default="booking")

    args = parser.parse_args()
    if args.command == "slots":
        sys.exit(_print_slots(args.date))
    if args.command == "days":
        sys.exit(_print_days())
    sys.exit(_run_demo(args.scenario))


if __name__ == "__main__":
    main()
