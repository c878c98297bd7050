"""Error taxonomy for the booking engine.

Everything except ``StorageError`` is user-recoverable: callers surface the
message together with the attached suggestions instead of a raw rejection.
"""

from typing import Optional, Sequence


class BookingError(Exception):
    """Base class for all booking engine errors."""

    recoverable = True

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(BookingError):
    """Raised when a required field is missing or malformed."""


class ServiceNotFound(BookingError):
    """Raised when a service id does not exist in the catalog."""


class BookingNotFound(BookingError):
    """Raised when a booking reference does not exist."""


class DayClosed(BookingError):
    """Raised when the requested day is closed (weekday table or override)."""


class HolidayBlocked(BookingError):
    """Raised when the requested day is a holiday without extra slots."""


class OutOfBusinessHours(BookingError):
    """Raised when the requested start or end falls outside the bookable window."""


class SlotConflict(BookingError):
    """Raised when the requested cells intersect existing occupancy."""

    def __init__(
        self,
        message: str,
        suggestions: Optional[Sequence] = None,
    ) -> None:
        super().__init__(message)
        self.suggestions = list(suggestions or [])


class StaleAvailability(SlotConflict):
    """Raised when a cached availability read advertised a start that is taken."""


class OverrideConflict(BookingError):
    """Raised when an override would orphan existing confirmed bookings."""

    def __init__(self, message: str, booking_ids: Sequence[str]) -> None:
        super().__init__(message)
        self.booking_ids = list(booking_ids)


class StorageError(BookingError):
    """Raised on infrastructure failures. Not user-recoverable."""

    recoverable = False


class DuplicateSlotError(StorageError):
    """Raised by the booking store when a uniqueness claim on a cell fails."""

    def __init__(self, message: str, cells: Sequence[str]) -> None:
        super().__init__(message)
        self.cells = list(cells)
