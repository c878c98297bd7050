"""
In-memory booking store.

Besides the booking rows, the store keeps a uniqueness index on
(date, cell): every active booking claims the 30-minute cells it occupies,
and a write that would claim an already-claimed cell fails with
``DuplicateSlotError``. This is the storage-level constraint that closes the
check-then-act race between concurrent writers.
"""

import logging
import threading
import uuid
from datetime import date, datetime, timezone
from typing import Iterable, Optional

from booking_engine.exceptions import BookingNotFound, DuplicateSlotError
from booking_engine.schemas.booking_schema import Booking, BookingStatus, INACTIVE_STATUSES
from booking_engine.utils import normalize_phone

logger = logging.getLogger(__name__)

ClaimKey = tuple[date, str]


def new_booking_id() -> str:
    return f"BK-{uuid.uuid4().hex[:6].upper()}"


class BookingStore:
    """Booking rows plus the (date, cell) claim index."""

    def __init__(self) -> None:
        self._bookings: dict[str, Booking] = {}
        self._claims: dict[ClaimKey, str] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    def get(self, booking_id: str) -> Optional[Booking]:
        """Retrieve a booking by reference number."""
        return self._bookings.get(booking_id)

    def require(self, booking_id: str) -> Booking:
        booking = self._bookings.get(booking_id)
        if booking is None:
            raise BookingNotFound(f"Booking {booking_id} not found.")
        return booking

    def list_for_date(self, day: date, include_inactive: bool = False) -> list[Booking]:
        with self._lock:
            rows = [b for b in self._bookings.values() if b.date == day]
        if not include_inactive:
            rows = [b for b in rows if b.status not in INACTIVE_STATUSES]
        return sorted(rows, key=lambda b: b.time)

    def list_for_phone(self, phone: str) -> list[Booking]:
        cleaned = normalize_phone(phone)
        with self._lock:
            rows = [b for b in self._bookings.values() if b.client_phone == cleaned]
        return sorted(rows, key=lambda b: (b.date, b.time))

    def claimed_cells(self, day: date) -> dict[str, str]:
        """Return ``{cell: booking_id}`` claims for a date."""
        with self._lock:
            return {cell: bid for (d, cell), bid in self._claims.items() if d == day}

    # ------------------------------------------------------------------ #
    # Writes
    # ------------------------------------------------------------------ #

    def insert(self, booking: Booking, cells: Iterable[str]) -> Booking:
        """Insert a booking, atomically claiming its cells."""
        cells = list(cells)
        with self._lock:
            self._claim(booking.id, booking.date, cells)
            self._bookings[booking.id] = booking
        logger.info(
            "Booking stored: %s on %s at %s (%d cells)",
            booking.id, booking.date, booking.time, len(cells),
        )
        return booking

    def set_status(self, booking_id: str, status: BookingStatus) -> Booking:
        with self._lock:
            booking = self._bookings.get(booking_id)
            if booking is None:
                raise BookingNotFound(f"Booking {booking_id} not found.")
            updated = booking.model_copy(
                update={"status": status, "updated_at": datetime.now(timezone.utc)}
            )
            if status in INACTIVE_STATUSES:
                self._release(booking_id)
            self._bookings[booking_id] = updated
        return updated

    def move(self, updated: Booking, cells: Iterable[str]) -> Booking:
        """Replace a booking in place and swap its claims atomically.

        On conflict the previous claims are restored and the row is left
        untouched.
        """
        cells = list(cells)
        with self._lock:
            if updated.id not in self._bookings:
                raise BookingNotFound(f"Booking {updated.id} not found.")
            previous = self._release(updated.id)
            try:
                self._claim(updated.id, updated.date, cells)
            except DuplicateSlotError:
                for key in previous:
                    self._claims[key] = updated.id
                raise
            self._bookings[updated.id] = updated
        return updated

    def delete(self, booking_id: str) -> Booking:
        """Physically remove a row."""
        with self._lock:
            booking = self._bookings.pop(booking_id, None)
            if booking is None:
                raise BookingNotFound(f"Booking {booking_id} not found.")
            self._release(booking_id)
        logger.info("Booking deleted: %s", booking_id)
        return booking

    # ------------------------------------------------------------------ #
    # Claim index (caller holds the lock)
    # ------------------------------------------------------------------ #

    def _claim(self, booking_id: str, day: date, cells: list[str]) -> None:
        taken = [
            cell for cell in cells
            if self._claims.get((day, cell)) not in (None, booking_id)
        ]
        if taken:
            raise DuplicateSlotError(
                f"Cells already claimed on {day}: {', '.join(taken)}", taken
            )
        for cell in cells:
            self._claims[(day, cell)] = booking_id

    def _release(self, booking_id: str) -> list[ClaimKey]:
        keys = [key for key, bid in self._claims.items() if bid == booking_id]
        for key in keys:
            del self._claims[key]
        return keys
