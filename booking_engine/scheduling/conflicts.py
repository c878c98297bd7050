"""Authoritative pre-commit check of a candidate booking."""

import logging
from datetime import date
from typing import Optional

from booking_engine.exceptions import (
    DayClosed,
    HolidayBlocked,
    OutOfBusinessHours,
    SlotConflict,
    StaleAvailability,
)
from booking_engine.scheduling.availability import AvailabilityCache, AvailabilityResolver
from booking_engine.scheduling.grid import ClosedReason
from booking_engine.scheduling.occupancy import OccupancyCalculator, cells_for
from booking_engine.utils import time_to_minutes

logger = logging.getLogger(__name__)


class ConflictValidator:
    """
    Re-checks occupancy from a fresh read right before a write.

    This is check-then-act; the booking store's cell claims are what
    finally arbitrate between two writers that both pass this check.
    """

    def __init__(
        self,
        resolver: AvailabilityResolver,
        occupancy: OccupancyCalculator,
        cache: Optional[AvailabilityCache] = None,
    ) -> None:
        self.resolver = resolver
        self.occupancy = occupancy
        self.cache = cache

    def check_business_hours(self, day: date, start: str, duration: int) -> None:
        """Raise if ``start`` is not a bookable start on the day's plan."""
        plan = self.resolver.day_plan(day)
        if start not in plan.base:
            if plan.closed_reason in (ClosedReason.OVERRIDE_CLOSED, ClosedReason.WEEKDAY_CLOSED):
                raise DayClosed(f"{day.isoformat()} is closed.")
            if plan.closed_reason == ClosedReason.HOLIDAY:
                name = self.resolver.grid.holidays.holiday_name(day)
                raise HolidayBlocked(f"{day.isoformat()} is a holiday ({name}).")
            raise OutOfBusinessHours(f"{start} is outside business hours on {day.isoformat()}.")

        end = time_to_minutes(start) + duration
        outside = [cell for cell in cells_for(start, duration) if cell not in plan.base]
        if plan.closing_boundary is None or end > plan.closing_boundary or outside:
            raise OutOfBusinessHours(
                f"A {duration}-minute service starting at {start} would end after closing."
            )

    def validate(
        self,
        day: date,
        start: str,
        duration: int,
        service_id: Optional[str] = None,
        exclude_booking_id: Optional[str] = None,
        enforce_hours: bool = True,
    ) -> list[str]:
        """Return the candidate's cells, or raise if they cannot be booked."""
        if enforce_hours:
            self.check_business_hours(day, start, duration)

        occupied = self.occupancy.occupied(day, exclude_booking_id)
        cells = cells_for(start, duration)
        clash = sorted(occupied.intersection(cells))
        if not clash:
            return cells

        logger.info("Slot conflict on %s at %s: cells %s taken", day, start, clash)
        message = f"{start} on {day.isoformat()} is no longer available."
        if self.cache is not None:
            cached = self.cache.get(day, service_id)
            if cached is not None and start in cached:
                self.cache.invalidate(day)
                raise StaleAvailability(message)
        raise SlotConflict(message)
