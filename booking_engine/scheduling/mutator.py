"""
Booking mutations: create, cancel, reschedule, complete, delete.

Every successful mutation invalidates cached availability for each date it
touched before returning. Reschedule is always an in-place update of the same
booking id; where the booking sat before is kept in ``previous_slot``.
"""

import logging
from datetime import date, datetime, timezone
from typing import Callable, Optional, Union

from booking_engine.exceptions import (
    DuplicateSlotError,
    SlotConflict,
    StaleAvailability,
    ValidationError,
)
from booking_engine.scheduling.availability import AvailabilityCache, AvailabilityResolver
from booking_engine.scheduling.conflicts import ConflictValidator
from booking_engine.schemas.booking_schema import (
    Booking,
    BookingOrigin,
    BookingStatus,
    ClientInfo,
    PreviousSlot,
)
from booking_engine.tools.booking import BookingStore, new_booking_id
from booking_engine.tools.customer import ClientStore
from booking_engine.tools.services import ServiceCatalog
from booking_engine.utils import is_on_grid, normalize_phone, normalize_time, parse_date

logger = logging.getLogger(__name__)


def _clean_time(value: Optional[str]) -> str:
    if not value:
        raise ValidationError("A start time is required.")
    try:
        cleaned = normalize_time(value)
    except ValueError:
        raise ValidationError(f"'{value}' is not a valid HH:MM time.") from None
    if not is_on_grid(cleaned):
        raise ValidationError(f"{cleaned} is not on the 30-minute grid.")
    return cleaned


def _clean_date(value: Union[date, str, None]) -> date:
    if value is None or value == "":
        raise ValidationError("A date is required.")
    try:
        return parse_date(value)
    except ValueError:
        raise ValidationError(f"'{value}' is not a valid YYYY-MM-DD date.") from None


class BookingMutator:
    """Create / cancel / reschedule with invariant enforcement."""

    def __init__(
        self,
        catalog: ServiceCatalog,
        bookings: BookingStore,
        clients: ClientStore,
        resolver: AvailabilityResolver,
        validator: ConflictValidator,
        cache: Optional[AvailabilityCache] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.catalog = catalog
        self.bookings = bookings
        self.clients = clients
        self.resolver = resolver
        self.validator = validator
        self.cache = cache
        self._clock = clock

    def _invalidate(self, *days: date) -> None:
        if self.cache is None:
            return
        for day in set(days):
            self.cache.invalidate(day)

    def _attach_suggestions(
        self,
        exc: SlotConflict,
        day: date,
        start: str,
        service_id: Optional[str],
        exclude_booking_id: Optional[str] = None,
    ) -> SlotConflict:
        exc.suggestions = self.resolver.suggest(
            day,
            service_id,
            near_time=start,
            not_before=self._clock().date(),
            exclude_booking_id=exclude_booking_id,
        )
        return exc

    def _reject_past(self, day: date, start: str) -> None:
        now = self._clock()
        if day < now.date():
            raise ValidationError(f"{day.isoformat()} is in the past.")
        if day == now.date() and start <= now.strftime("%H:%M"):
            raise ValidationError(f"{start} today has already passed.")

    # ------------------------------------------------------------------ #
    # Create
    # ------------------------------------------------------------------ #

    def create(
        self,
        day: Union[date, str],
        start: str,
        service_id: str,
        client: ClientInfo,
        origin: BookingOrigin = BookingOrigin.MANUAL,
        professional_id: Optional[str] = None,
        professional_name: Optional[str] = None,
        discount_percent: Optional[float] = None,
        discount_reason: Optional[str] = None,
        notes: str = "",
        enforce_hours: bool = True,
    ) -> Booking:
        """Validate and insert a Confirmed booking.

        Raises:
            ValidationError: Missing or malformed fields, or a start that has
                already passed (non-staff origins only).
            ServiceNotFound: Unknown service id.
            DayClosed, HolidayBlocked, OutOfBusinessHours: Start not bookable.
            SlotConflict: Cells already taken; carries suggestions.
            StaleAvailability: Another writer claimed the cells first.
        """
        day = _clean_date(day)
        start = _clean_time(start)
        if not client.name or not client.name.strip():
            raise ValidationError("Client name is required.")
        if not client.phone or not normalize_phone(client.phone).lstrip("+"):
            raise ValidationError("Client phone is required.")
        client_name, client_phone = self.clients.check(client.name, client.phone)
        if origin != BookingOrigin.MANUAL:
            self._reject_past(day, start)
        service = self.catalog.require(service_id)

        try:
            cells = self.validator.validate(
                day, start, service.duration, service.id, enforce_hours=enforce_hours
            )
        except SlotConflict as exc:
            raise self._attach_suggestions(exc, day, start, service.id)

        booking = Booking(
            id=new_booking_id(),
            date=day,
            time=start,
            service_id=service.id,
            service_name=service.name,
            client_name=client_name,
            client_phone=client_phone,
            professional_id=professional_id,
            professional_name=professional_name,
            origin=origin,
            discount_percent=discount_percent,
            discount_reason=discount_reason,
            notes=notes,
        )
        try:
            self.bookings.insert(booking, cells)
        except DuplicateSlotError as exc:
            logger.info("Concurrent write won %s %s: %s", day, start, exc.message)
            self._invalidate(day)
            conflict = StaleAvailability(f"{start} on {day.isoformat()} was just taken.")
            raise self._attach_suggestions(conflict, day, start, service.id) from exc

        self.clients.upsert(client_name, client_phone, client.birthdate)
        self.clients.record_booking(client_phone)
        self._invalidate(day)
        logger.info(
            "Booking created: %s for %s on %s at %s (%s, origin=%s)",
            booking.id, booking.client_name, day, start, service.name, origin.value,
        )
        return booking

    # ------------------------------------------------------------------ #
    # Status changes
    # ------------------------------------------------------------------ #

    def cancel(self, booking_id: str) -> Booking:
        """Mark a booking Cancelled. The row is kept; its cells are freed."""
        booking = self.bookings.require(booking_id)
        if booking.status == BookingStatus.CANCELLED:
            return booking
        if booking.status == BookingStatus.DELETED:
            raise ValidationError(f"Booking {booking_id} was deleted.")
        updated = self.bookings.set_status(booking_id, BookingStatus.CANCELLED)
        self._invalidate(booking.date)
        logger.info("Booking cancelled: %s", booking_id)
        return updated

    def complete(self, booking_id: str) -> Booking:
        booking = self.bookings.require(booking_id)
        if booking.status != BookingStatus.CONFIRMED:
            raise ValidationError(
                f"Only confirmed bookings can be completed ({booking_id} is {booking.status.value})."
            )
        return self.bookings.set_status(booking_id, BookingStatus.COMPLETED)

    def delete(self, booking_id: str) -> Booking:
        """Physically remove a cancelled, deleted or past booking."""
        booking = self.bookings.require(booking_id)
        removable = booking.status in (BookingStatus.CANCELLED, BookingStatus.DELETED) or (
            booking.date < self._clock().date()
        )
        if not removable:
            raise ValidationError(
                f"Booking {booking_id} is upcoming and active; cancel it before deleting."
            )
        removed = self.bookings.delete(booking_id)
        self._invalidate(booking.date)
        return removed

    # ------------------------------------------------------------------ #
    # Reschedule
    # ------------------------------------------------------------------ #

    def reschedule(
        self,
        booking_id: str,
        new_date: Union[date, str, None] = None,
        new_time: Optional[str] = None,
        new_service_id: Optional[str] = None,
        enforce_hours: bool = True,
    ) -> Booking:
        """Move a confirmed booking in place, recording where it was."""
        booking = self.bookings.require(booking_id)
        if booking.status != BookingStatus.CONFIRMED:
            raise ValidationError(
                f"Only confirmed bookings can be rescheduled ({booking_id} is {booking.status.value})."
            )

        day = booking.date if new_date is None else _clean_date(new_date)
        start = booking.time if new_time is None else _clean_time(new_time)
        self._reject_past(day, start)

        if new_service_id is not None:
            service = self.catalog.require(new_service_id)
            service_id, service_name, duration = service.id, service.name, service.duration
        else:
            resolution = self.catalog.resolve(booking.service_id, booking.service_name)
            service_id = booking.service_id
            service_name = booking.service_name
            duration = resolution.duration

        if day == booking.date and start == booking.time and service_id == booking.service_id:
            return booking

        try:
            cells = self.validator.validate(
                day, start, duration, service_id,
                exclude_booking_id=booking.id,
                enforce_hours=enforce_hours,
            )
        except SlotConflict as exc:
            raise self._attach_suggestions(exc, day, start, service_id, booking.id)

        updated = booking.model_copy(update={
            "date": day,
            "time": start,
            "service_id": service_id,
            "service_name": service_name,
            "previous_slot": PreviousSlot(
                date=booking.date, time=booking.time, service_id=booking.service_id
            ),
            "updated_at": datetime.now(timezone.utc),
        })
        try:
            self.bookings.move(updated, cells)
        except DuplicateSlotError as exc:
            self._invalidate(day)
            conflict = StaleAvailability(f"{start} on {day.isoformat()} was just taken.")
            raise self._attach_suggestions(conflict, day, start, service_id, booking.id) from exc

        self._invalidate(booking.date, day)
        logger.info(
            "Booking rescheduled: %s from %s %s to %s %s",
            booking.id, booking.date, booking.time, day, start,
        )
        return updated
