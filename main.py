"""
Command-line entry point for the booking engine.

Queries availability and the admin day grid, or starts the offline chat
console against an in-memory engine.

Usage:
    Availability: python main.py availability 2026-10-21 --service corte-feminino
    Day grid:     python main.py grid 2026-10-21
    Services:     python main.py services
    Chat console: python main.py console
"""

import argparse
import logging
import sys
from typing import Optional

from booking_engine.config import settings
from booking_engine.engine import BookingEngine
from booking_engine.exceptions import BookingError

logger = logging.getLogger(__name__)


def _print_availability(engine: BookingEngine, day: str, service_id: str) -> None:
    plan = engine.day_plan(day)
    slots = engine.query_availability(day, service_id)
    if not slots:
        reason = plan.closed_reason.value if plan.closed_reason else "fully booked"
        print(f"{day}: no availability ({reason})")
        return
    print(f"{day}: {', '.join(slots)}")


def _print_grid(engine: BookingEngine, day: str) -> None:
    for cell in engine.day_grid(day):
        suffix = f"  {cell.booking_id}" if cell.booking_id else ""
        print(f"{cell.time}  {cell.status}{suffix}")


def _print_services(engine: BookingEngine) -> None:
    for service in engine.catalog.all():
        print(f"{service.id:<18} {service.name:<24} {service.duration:>4} min  R$ {service.price:.2f}")


def _run_console_mode(scenario: Optional[str] = None) -> None:
    """Start the offline chat console."""
    from console_demo import ConsoleSession

    session = ConsoleSession()
    if scenario:
        session.run_scenario(scenario)
    else:
        session.run()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=f"{settings.business.name} booking engine")
    sub = parser.add_subparsers(dest="command", required=True)

    availability = sub.add_parser("availability", help="List bookable start times")
    availability.add_argument("date", help="YYYY-MM-DD")
    availability.add_argument("--service", default=None, help="Service id")

    grid = sub.add_parser("grid", help="Show the per-cell admin grid of a date")
    grid.add_argument("date", help="YYYY-MM-DD")

    sub.add_parser("services", help="List the service catalog")

    console = sub.add_parser("console", help="Chat with the booking assistant")
    console.add_argument("--scenario", default=None, help="Auto-play a scripted scenario")

    args = parser.parse_args(argv)
    engine = BookingEngine()
    try:
        if args.command == "availability":
            _print_availability(engine, args.date, args.service)
        elif args.command == "grid":
            _print_grid(engine, args.date)
        elif args.command == "services":
            _print_services(engine)
        else:
            _run_console_mode(args.scenario)
    except BookingError as exc:
        logger.error("%s", exc.message)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
