"""
Conversational booking session: one chat client's path to a booking.

Each turn takes a structured ``Intent``, writes its slots into the stored
``ConversationContext`` and walks the state machine forward over every
field that is already known, so nothing is asked twice. Availability is
checked (browse path, cacheable) before client details are requested; the
authoritative conflict check only happens inside the mutator at commit.

Replies come from ``prompts.reply_templates`` and pass through the reply
guard, which strips success wording from any turn that did not commit.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Callable, Optional

from booking_engine.config import settings
from booking_engine.conversation.context_store import (
    ContextStore,
    parse_session_id,
    session_phone,
)
from booking_engine.conversation.date_table import CalendarTable
from booking_engine.conversation.guardrails import ReplyGuard
from booking_engine.conversation.slot_manager import SlotManager
from booking_engine.conversation.state_machine import (
    BookingState,
    BookingStateMachine,
    BookingTrigger,
)
from booking_engine.exceptions import BookingError, SlotConflict, StorageError
from booking_engine.logging_context import get_session_logger, set_session_id
from booking_engine.prompts import reply_templates as templates
from booking_engine.scheduling.availability import AvailabilityResolver
from booking_engine.scheduling.grid import ClosedReason
from booking_engine.scheduling.mutator import BookingMutator
from booking_engine.schemas.booking_schema import (
    Booking,
    BookingOrigin,
    BookingStatus,
    ClientInfo,
)
from booking_engine.schemas.conversation_schema import (
    BookingAction,
    ConversationContext,
    ConversationReply,
    Intent,
    IntentKind,
)
from booking_engine.tools.booking import BookingStore
from booking_engine.tools.customer import ClientStore
from booking_engine.tools.services import ServiceCatalog

logger = get_session_logger(__name__)

CLOSED_REASON_TEXT = {
    ClosedReason.OVERRIDE_CLOSED: "the salon is closed that day",
    ClosedReason.WEEKDAY_CLOSED: "we don't open on that weekday",
}


@dataclass
class _Turn:
    reply: str
    committed: bool = False
    booking_id: Optional[str] = None


class ConversationalBookingSession:
    """Drives one chat session from first message to committed booking."""

    def __init__(
        self,
        session_id: str,
        catalog: ServiceCatalog,
        resolver: AvailabilityResolver,
        mutator: BookingMutator,
        bookings: BookingStore,
        clients: ClientStore,
        contexts: ContextStore,
        guard: Optional[ReplyGuard] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.session_id = session_id
        self.key = parse_session_id(session_id)
        self.catalog = catalog
        self.resolver = resolver
        self.mutator = mutator
        self.bookings = bookings
        self.clients = clients
        self.contexts = contexts
        self.guard = guard or ReplyGuard()
        self._clock = clock
        self.sm = BookingStateMachine()
        self.slots = SlotManager(catalog)
        # The field the last reply asked for; lets a free-text parser read
        # a bare "Maria Souza" as a name.
        self.expecting: Optional[str] = None

    # ------------------------------------------------------------------ #
    # Turn entry point
    # ------------------------------------------------------------------ #

    def advance(self, intent: Intent) -> ConversationReply:
        set_session_id(self.session_id)
        now = self._clock()
        context = self._load_context(now)
        context.last_contact = now
        calendar = CalendarTable(now.date())

        try:
            turn = self._handle(context, intent, calendar, now)
        except StorageError:
            logger.exception("Storage failure while handling turn")
            turn = _Turn(templates.storage_apology())

        reply = self.guard.apply(turn.reply, turn.committed)
        self.contexts.save(self.key, context)
        logger.info(
            "Turn handled: intent=%s state=%s committed=%s",
            intent.kind.value, self.sm.current_state.value, turn.committed,
        )
        return ConversationReply(
            reply=reply,
            committed=turn.committed,
            state=self.sm.current_state.value,
            booking_id=turn.booking_id,
        )

    def _load_context(self, now: datetime) -> ConversationContext:
        context = self.contexts.load(self.key)
        ttl = settings.conversation.context_ttl_hours
        if context is not None and context.is_expired(now, ttl):
            logger.info("Conversation context expired; starting over")
            context = None
        if context is not None:
            return context

        self._restart()
        context = ConversationContext()
        phone = session_phone(self.key[1])
        if phone is not None:
            context.client_phone = phone
            known = self.clients.lookup(phone)
            if known is not None:
                context.client_name = known.name
                context.client_birthdate = known.birthdate
        return context

    def _restart(self) -> None:
        self.sm = BookingStateMachine()
        self.slots.reset()
        self.expecting = None

    def _finish(self, context: ConversationContext) -> None:
        """Forget the booking fields; keep what we know about the client."""
        context.service_id = None
        context.service_name = None
        context.date = None
        context.time = None
        context.availability_confirmed = False
        context.awaiting_confirmation = False
        context.action = BookingAction.BOOK
        context.reschedule_booking_id = None
        self.slots.reset()
        self.expecting = None

    # ------------------------------------------------------------------ #
    # Intent routing
    # ------------------------------------------------------------------ #

    def _handle(
        self,
        context: ConversationContext,
        intent: Intent,
        calendar: CalendarTable,
        now: datetime,
    ) -> _Turn:
        if intent.kind == IntentKind.STOP:
            return self._stop(context)
        if intent.kind == IntentKind.CANCEL_BOOKING:
            return self._cancel_booking(context, calendar.today)
        if intent.kind == IntentKind.RESCHEDULE_BOOKING:
            return self._start_reschedule(context, intent, calendar, now)

        if self.sm.is_terminal():
            if not self._is_new_request(intent):
                return _Turn(templates.small_talk())
            self.sm.transition(BookingTrigger.NEW_REQUEST)

        update = self.slots.apply_intent(context, intent, calendar)
        self._after_update(context, update.changed)

        if update.failed:
            name, message = next(iter(update.failed.items()))
            if self.slots.has_exceeded_retries(name):
                logger.warning("Slot '%s' exceeded retries", name)
                display = self.slots.get_definition(name).display_name
                return _Turn(templates.handoff(display))
            return _Turn(templates.invalid_input(message))

        return self._walk(context, intent, calendar, now)

    def _after_update(self, context: ConversationContext, changed: list[str]) -> None:
        if any(name in SlotManager.BOOKING_SLOTS for name in changed):
            context.availability_confirmed = False
            context.awaiting_confirmation = False
            if self.sm.can(BookingTrigger.DETAILS_CHANGED):
                self.sm.transition(BookingTrigger.DETAILS_CHANGED)
        elif changed and context.awaiting_confirmation:
            # Client details changed after the read-back; read back again.
            context.awaiting_confirmation = False

    @staticmethod
    def _is_new_request(intent: Intent) -> bool:
        return intent.kind == IntentKind.BOOK or any(
            [intent.service, intent.date, intent.date_text, intent.time]
        )

    def _stop(self, context: ConversationContext) -> _Turn:
        if self.sm.can(BookingTrigger.USER_STOPPED):
            self.sm.transition(BookingTrigger.USER_STOPPED)
        self._finish(context)
        return _Turn(templates.flow_cancelled())

    # ------------------------------------------------------------------ #
    # Forward walk over the state machine
    # ------------------------------------------------------------------ #

    def _walk(
        self,
        context: ConversationContext,
        intent: Intent,
        calendar: CalendarTable,
        now: datetime,
    ) -> _Turn:
        S, T = BookingState, BookingTrigger
        for _ in range(2 * len(BookingState)):
            state = self.sm.current_state

            if state == S.COLLECTING_SERVICE:
                if context.service_id is None:
                    self.expecting = "service"
                    return _Turn(templates.ask_service(self.catalog.all()))
                self.sm.transition(T.SERVICE_PROVIDED)

            elif state == S.COLLECTING_DATE:
                if context.date is None:
                    self.expecting = "date"
                    return _Turn(templates.ask_date(context.service_name))
                if not self._available_starts(context, now):
                    return self._date_unavailable(context, calendar)
                self.sm.transition(T.DATE_PROVIDED)

            elif state == S.COLLECTING_TIME:
                if context.time is None:
                    starts = self._available_starts(context, now)
                    if not starts:
                        return self._date_unavailable(context, calendar)
                    self.expecting = "time"
                    return _Turn(templates.ask_time(context.date, starts))
                self.sm.transition(T.TIME_PROVIDED)

            elif state == S.VERIFYING_AVAILABILITY:
                if context.time in self._available_starts(context, now):
                    context.availability_confirmed = True
                    self.sm.transition(T.SLOT_AVAILABLE)
                else:
                    return self._time_unavailable(context, calendar)

            elif state == S.COLLECTING_CLIENT_INFO:
                if context.client_name is None:
                    self.expecting = "client_name"
                    return _Turn(templates.ask_client_name())
                if context.client_phone is None:
                    self.expecting = "client_phone"
                    return _Turn(templates.ask_client_phone(context.client_name))
                if not context.awaiting_confirmation:
                    context.awaiting_confirmation = True
                    self.expecting = "confirmation"
                    return _Turn(templates.confirm_details(context))
                if intent.kind == IntentKind.CONFIRM:
                    self.sm.transition(T.CLIENT_INFO_COMPLETE)
                elif intent.kind == IntentKind.DENY:
                    context.awaiting_confirmation = False
                    self.expecting = None
                    return _Turn(templates.ask_what_to_change())
                else:
                    return _Turn(templates.confirm_details(context))

            elif state == S.COMMITTING:
                return self._commit(context)

            else:
                return _Turn(templates.small_talk())

        raise RuntimeError(f"Conversation walk did not settle in {self.sm.current_state.value}")

    def _available_starts(self, context: ConversationContext, now: datetime) -> list[str]:
        if context.reschedule_booking_id:
            starts = self.resolver.compute(
                context.date,
                self.resolver.duration_for(context.service_id),
                exclude_booking_id=context.reschedule_booking_id,
            )
        else:
            starts = self.resolver.resolve(context.date, context.service_id, use_cache=True)
        return self.resolver.upcoming(context.date, starts, now)

    def _date_unavailable(self, context: ConversationContext, calendar: CalendarTable) -> _Turn:
        day = context.date
        plan = self.resolver.day_plan(day)
        if plan.closed_reason == ClosedReason.HOLIDAY:
            reason = f"holiday: {self.resolver.grid.holidays.holiday_name(day)}"
        elif plan.closed_reason is not None and not plan.bookable:
            reason = CLOSED_REASON_TEXT[plan.closed_reason]
        else:
            reason = "fully booked"

        context.date = None
        context.time = None
        context.availability_confirmed = False
        if self.sm.current_state != BookingState.COLLECTING_DATE:
            self.sm.transition(BookingTrigger.DETAILS_CHANGED)
            self.sm.transition(BookingTrigger.SERVICE_PROVIDED)
        self.sm.transition(BookingTrigger.DATE_UNAVAILABLE)

        remaining = (calendar.last_day - day).days
        found = None
        if remaining > 0:
            found = self.resolver.next_available(
                day + timedelta(days=1), context.service_id, remaining - 1
            )
        self.expecting = "date"
        return _Turn(templates.date_unavailable(day, reason, found[0] if found else None))

    def _time_unavailable(self, context: ConversationContext, calendar: CalendarTable) -> _Turn:
        rejected = context.time
        suggestions = self.resolver.suggest(
            context.date,
            context.service_id,
            near_time=rejected,
            not_before=calendar.today,
            exclude_booking_id=context.reschedule_booking_id,
        )
        context.time = None
        context.availability_confirmed = False
        self.sm.transition(BookingTrigger.SLOT_UNAVAILABLE)
        self.expecting = "time"
        return _Turn(templates.slot_unavailable(context.date, rejected, suggestions))

    # ------------------------------------------------------------------ #
    # Commit
    # ------------------------------------------------------------------ #

    def _commit(self, context: ConversationContext) -> _Turn:
        try:
            if context.reschedule_booking_id:
                booking = self.mutator.reschedule(
                    context.reschedule_booking_id,
                    new_date=context.date,
                    new_time=context.time,
                    new_service_id=context.service_id,
                )
                reply = templates.reschedule_success(booking)
            else:
                booking = self.mutator.create(
                    context.date,
                    context.time,
                    context.service_id,
                    ClientInfo(
                        name=context.client_name,
                        phone=context.client_phone,
                        birthdate=context.client_birthdate,
                    ),
                    origin=BookingOrigin.BOT,
                )
                reply = templates.booking_success(booking)
        except SlotConflict as exc:
            logger.info("Commit lost the slot: %s", exc.message)
            day, rejected = context.date, context.time
            self._reset_time(context)
            self.sm.transition(BookingTrigger.BOOKING_CONFLICT)
            self.expecting = "time"
            return _Turn(templates.slot_unavailable(day, rejected, exc.suggestions))
        except StorageError:
            logger.exception("Storage failure while committing booking")
            context.awaiting_confirmation = False
            self.sm.transition(BookingTrigger.BOOKING_FAILED)
            return _Turn(templates.storage_apology())
        except BookingError as exc:
            logger.info("Commit rejected: %s", exc.message)
            self._reset_time(context)
            self.sm.transition(BookingTrigger.BOOKING_CONFLICT)
            self.expecting = "time"
            return _Turn(templates.booking_rejected(exc.message))

        self.sm.transition(BookingTrigger.BOOKING_SUCCESS)
        self._finish(context)
        return _Turn(reply, committed=True, booking_id=booking.id)

    @staticmethod
    def _reset_time(context: ConversationContext) -> None:
        context.time = None
        context.availability_confirmed = False
        context.awaiting_confirmation = False

    # ------------------------------------------------------------------ #
    # Existing bookings: cancel / reschedule
    # ------------------------------------------------------------------ #

    def _next_active_booking(self, phone: Optional[str], today: date) -> Optional[Booking]:
        if not phone:
            return None
        upcoming = [
            b for b in self.bookings.list_for_phone(phone)
            if b.status == BookingStatus.CONFIRMED and b.date >= today
        ]
        return upcoming[0] if upcoming else None

    def _cancel_booking(self, context: ConversationContext, today: date) -> _Turn:
        booking = self._next_active_booking(context.client_phone, today)
        if booking is None:
            return _Turn(templates.no_upcoming_booking())

        days_until = (booking.date - today).days
        min_days = settings.conversation.cancel_min_days_notice
        if days_until < min_days:
            logger.info("Cancellation refused: %s is %d day(s) away", booking.id, days_until)
            return _Turn(templates.cancel_too_late(booking, days_until, min_days))

        cancelled = self.mutator.cancel(booking.id)
        self._finish(context)
        self.sm = BookingStateMachine()
        return _Turn(templates.cancel_success(cancelled), committed=True, booking_id=cancelled.id)

    def _start_reschedule(
        self,
        context: ConversationContext,
        intent: Intent,
        calendar: CalendarTable,
        now: datetime,
    ) -> _Turn:
        booking = self._next_active_booking(context.client_phone, calendar.today)
        if booking is None:
            return _Turn(templates.no_upcoming_booking())

        days_until = (booking.date - calendar.today).days
        min_days = settings.conversation.reschedule_min_days_notice
        if days_until < min_days:
            logger.info("Reschedule refused: %s is %d day(s) away", booking.id, days_until)
            return _Turn(templates.reschedule_too_late(booking, days_until, min_days))

        self._finish(context)
        self.sm = BookingStateMachine()
        context.action = BookingAction.RESCHEDULE
        context.reschedule_booking_id = booking.id
        context.service_id = booking.service_id
        context.service_name = booking.service_name
        context.client_name = context.client_name or booking.client_name

        update = self.slots.apply_intent(
            context, intent.model_copy(update={"service": None}), calendar
        )
        if context.date is None:
            if context.service_id is not None:
                self.sm.transition(BookingTrigger.SERVICE_PROVIDED)
            self.expecting = "date"
            if update.failed:
                return _Turn(templates.invalid_input(next(iter(update.failed.values()))))
            return _Turn(templates.reschedule_started(booking))
        return self._walk(context, intent, calendar, now)

