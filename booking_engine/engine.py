"""
BookingEngine: the in-process facade over scheduling, stores and chat.

Wires the catalog, stores, grid, occupancy, availability, conflict
validator, mutator and conversation sessions together and exposes the
operations used by the web form, the staff console and the chat agent.

Usage:
    engine = BookingEngine()
    engine.query_availability("2026-10-21", "corte-feminino")
    engine.advance_conversation("whatsapp:5511999990000", "I'd like a manicure tomorrow")
"""

import logging
import threading
from datetime import date, datetime
from typing import Callable, Optional, Union

from booking_engine.conversation.context_store import ContextStore
from booking_engine.conversation.guardrails import ReplyGuard
from booking_engine.conversation.intents import parse_intent
from booking_engine.conversation.session import ConversationalBookingSession
from booking_engine.exceptions import OverrideConflict, ValidationError
from booking_engine.scheduling.availability import (
    AvailabilityCache,
    AvailabilityResolver,
    DayPlan,
)
from booking_engine.scheduling.conflicts import ConflictValidator
from booking_engine.scheduling.grid import SlotGridGenerator
from booking_engine.scheduling.holidays import HolidayCalendar
from booking_engine.scheduling.hours import WeekdayHoursTable
from booking_engine.scheduling.mutator import BookingMutator
from booking_engine.scheduling.occupancy import OccupancyCalculator
from booking_engine.schemas.booking_schema import (
    Booking,
    BookingOrigin,
    BookingStatus,
    ClientInfo,
    DayCell,
)
from booking_engine.schemas.conversation_schema import ConversationReply, Intent
from booking_engine.schemas.schedule_schema import DayOverride, OverridePatch
from booking_engine.tools.booking import BookingStore
from booking_engine.tools.customer import ClientStore
from booking_engine.tools.overrides import DayOverrideStore
from booking_engine.tools.services import ServiceCatalog
from booking_engine.utils import parse_date

logger = logging.getLogger(__name__)

DateLike = Union[date, str]


def _as_date(value: DateLike) -> date:
    try:
        return parse_date(value)
    except ValueError:
        raise ValidationError(f"'{value}' is not a valid YYYY-MM-DD date.") from None


class BookingEngine:
    """Facade exposing availability, booking mutations, overrides and chat."""

    def __init__(
        self,
        catalog: Optional[ServiceCatalog] = None,
        hours: Optional[WeekdayHoursTable] = None,
        holidays: Optional[HolidayCalendar] = None,
        bookings: Optional[BookingStore] = None,
        overrides: Optional[DayOverrideStore] = None,
        clients: Optional[ClientStore] = None,
        contexts: Optional[ContextStore] = None,
        cache: Optional[AvailabilityCache] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.catalog = catalog or ServiceCatalog()
        self.hours = hours or WeekdayHoursTable.from_config()
        self.holidays = holidays or HolidayCalendar()
        self.bookings = bookings or BookingStore()
        self.overrides = overrides or DayOverrideStore()
        self.clients = clients or ClientStore()
        self.contexts = contexts or ContextStore()
        self.cache = cache or AvailabilityCache()
        self.clock = clock

        self.grid = SlotGridGenerator(self.hours, self.overrides, self.holidays)
        self.occupancy = OccupancyCalculator(self.bookings, self.catalog, self.overrides)
        self.resolver = AvailabilityResolver(
            self.grid,
            self.occupancy,
            self.catalog,
            self.overrides,
            self.hours,
            self.cache,
            clock=clock,
        )
        self.validator = ConflictValidator(self.resolver, self.occupancy, self.cache)
        self.mutator = BookingMutator(
            self.catalog,
            self.bookings,
            self.clients,
            self.resolver,
            self.validator,
            self.cache,
            clock=clock,
        )
        self.guard = ReplyGuard()
        self._sessions: dict[str, ConversationalBookingSession] = {}
        self._sessions_lock = threading.Lock()

    # ------------------------------------------------------------------ #
    # Availability
    # ------------------------------------------------------------------ #

    def query_availability(self, day: DateLike, service_id: Optional[str] = None) -> list[str]:
        """Valid start times for a service on a date (browse path, cached)."""
        return self.resolver.resolve(_as_date(day), service_id, use_cache=True)

    def day_plan(self, day: DateLike) -> DayPlan:
        return self.resolver.day_plan(_as_date(day))

    def day_grid(self, day: DateLike) -> list[DayCell]:
        """Per-cell admin view: available, booked, occupied or blocked."""
        day = _as_date(day)
        plan = self.resolver.day_plan(day)
        override = self.overrides.get(day)
        blocked = set(override.blocked_slots) if override is not None else set()

        starts: dict[str, str] = {}
        covered: dict[str, str] = {}
        for booking_id, cells in self.occupancy.occupancy_by_booking(day).items():
            if cells:
                starts[cells[0]] = booking_id
            for cell in cells[1:]:
                covered.setdefault(cell, booking_id)

        grid = []
        for cell in sorted(set(plan.base) | blocked | set(starts) | set(covered)):
            if cell in starts:
                grid.append(DayCell(time=cell, status="booked", booking_id=starts[cell]))
            elif cell in covered:
                grid.append(DayCell(time=cell, status="occupied", booking_id=covered[cell]))
            elif cell in blocked:
                grid.append(DayCell(time=cell, status="blocked"))
            else:
                grid.append(DayCell(time=cell, status="available"))
        return grid

    # ------------------------------------------------------------------ #
    # Bookings
    # ------------------------------------------------------------------ #

    def create_booking(
        self,
        day: DateLike,
        time: str,
        service_id: str,
        client: ClientInfo,
        origin: BookingOrigin = BookingOrigin.MANUAL,
        **kwargs,
    ) -> Booking:
        return self.mutator.create(day, time, service_id, client, origin=origin, **kwargs)

    def cancel_booking(self, booking_id: str) -> Booking:
        return self.mutator.cancel(booking_id)

    def reschedule_booking(
        self,
        booking_id: str,
        new_date: Optional[DateLike] = None,
        new_time: Optional[str] = None,
        new_service_id: Optional[str] = None,
    ) -> Booking:
        return self.mutator.reschedule(booking_id, new_date, new_time, new_service_id)

    def complete_booking(self, booking_id: str) -> Booking:
        return self.mutator.complete(booking_id)

    def delete_booking(self, booking_id: str) -> Booking:
        return self.mutator.delete(booking_id)

    def get_booking(self, booking_id: str) -> Booking:
        return self.bookings.require(booking_id)

    def list_bookings(self, day: DateLike, include_inactive: bool = False) -> list[Booking]:
        return self.bookings.list_for_date(_as_date(day), include_inactive)

    # ------------------------------------------------------------------ #
    # Day overrides
    # ------------------------------------------------------------------ #

    def set_day_override(
        self, day: DateLike, patch: OverridePatch, force: bool = False
    ) -> DayOverride:
        """Apply a staff override to a date.

        Closing a day, or blocking cells that hold confirmed bookings,
        raises ``OverrideConflict`` unless ``force`` is set. Forcing leaves
        those bookings in place for staff to contact and move.
        """
        day = _as_date(day)
        proposed = self.overrides.apply(day, patch)
        conflicting = self._override_conflicts(day, proposed)
        if conflicting and not force:
            raise OverrideConflict(
                f"The change to {day.isoformat()} affects confirmed bookings: "
                f"{', '.join(conflicting)}.",
                conflicting,
            )
        if conflicting:
            logger.warning(
                "Override for %s forced over confirmed bookings: %s", day, conflicting
            )
        saved = self.overrides.save(proposed)
        self.cache.invalidate(day)
        return saved

    def clear_day_override(self, day: DateLike) -> None:
        day = _as_date(day)
        self.overrides.clear(day)
        self.cache.invalidate(day)

    def _override_conflicts(self, day: date, proposed: DayOverride) -> list[str]:
        """Confirmed bookings that fit the current plan but not the proposed one."""
        current = self.overrides.get(day)
        current_blocked = current.blocked_slots if current is not None else set()
        current_plan = self.resolver.day_plan(day)
        proposed_plan = self.resolver.day_plan(day, proposed)

        conflicting = []
        for booking in self.bookings.list_for_date(day):
            if booking.status != BookingStatus.CONFIRMED:
                continue
            duration = self.occupancy.booking_duration(booking)
            fits_now = self.resolver.admits(current_plan, booking.time, duration, current_blocked)
            fits_after = self.resolver.admits(
                proposed_plan, booking.time, duration, proposed.blocked_slots
            )
            if fits_now and not fits_after:
                conflicting.append(booking.id)
        return conflicting

    # ------------------------------------------------------------------ #
    # Chat
    # ------------------------------------------------------------------ #

    def session(self, session_id: str) -> ConversationalBookingSession:
        with self._sessions_lock:
            session = self._sessions.get(session_id)
            if session is None:
                session = ConversationalBookingSession(
                    session_id,
                    self.catalog,
                    self.resolver,
                    self.mutator,
                    self.bookings,
                    self.clients,
                    self.contexts,
                    guard=self.guard,
                    clock=self.clock,
                )
                self._sessions[session_id] = session
            return session

    def advance_conversation(
        self, session_id: str, intent: Union[Intent, str]
    ) -> ConversationReply:
        """Run one chat turn. Free text goes through the keyword extractor."""
        session = self.session(session_id)
        if isinstance(intent, str):
            intent = parse_intent(intent, self.catalog, expecting=session.expecting)
        return session.advance(intent)
