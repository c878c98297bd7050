"""
Occupancy: which grid cells of a date are taken.

A booking starting at S with duration D occupies the half-open interval
[S, S+D). Its cells are the 30-minute cells that intersect that interval,
so a 45-minute service at 14:00 occupies 14:00 and 14:30 but not 15:00.
"""

from datetime import date
from typing import Optional

from booking_engine.schemas.booking_schema import Booking
from booking_engine.tools.booking import BookingStore
from booking_engine.tools.overrides import DayOverrideStore
from booking_engine.tools.services import ServiceCatalog
from booking_engine.utils import SLOT_MINUTES, minutes_to_time, time_to_minutes

MINUTES_PER_DAY = 24 * 60


def cells_for(start: str, duration: int) -> list[str]:
    """Cells covered by ``[start, start + duration)``.

    An off-grid start is floored to the cell that contains it.
    """
    start_min = time_to_minutes(start)
    end_min = min(start_min + duration, MINUTES_PER_DAY)
    cell = start_min - start_min % SLOT_MINUTES
    cells = []
    while cell < end_min:
        cells.append(minutes_to_time(cell))
        cell += SLOT_MINUTES
    return cells


class OccupancyCalculator:
    """Maps active bookings and manual blocks onto grid cells."""

    def __init__(
        self,
        bookings: BookingStore,
        catalog: ServiceCatalog,
        overrides: DayOverrideStore,
    ) -> None:
        self.bookings = bookings
        self.catalog = catalog
        self.overrides = overrides

    def booking_duration(self, booking: Booking) -> int:
        """Duration of a stored booking; the catalog logs a default-duration fallback."""
        return self.catalog.resolve(booking.service_id, booking.service_name).duration

    def booking_cells(self, booking: Booking) -> list[str]:
        return cells_for(booking.time, self.booking_duration(booking))

    def occupancy_by_booking(
        self, day: date, exclude_booking_id: Optional[str] = None
    ) -> dict[str, list[str]]:
        """Return ``{booking_id: cells}`` for active bookings on a date."""
        return {
            booking.id: self.booking_cells(booking)
            for booking in self.bookings.list_for_date(day)
            if booking.id != exclude_booking_id
        }

    def occupied(self, day: date, exclude_booking_id: Optional[str] = None) -> set[str]:
        """All occupied cells of a date, manual blocks included."""
        occupied: set[str] = set()
        for cells in self.occupancy_by_booking(day, exclude_booking_id).values():
            occupied.update(cells)
        override = self.overrides.get(day)
        if override is not None:
            occupied.update(override.blocked_slots)
        return occupied
