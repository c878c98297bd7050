from booking_engine.conversation.context_store import ContextStore, parse_session_id
from booking_engine.conversation.date_table import CalendarTable
from booking_engine.conversation.guardrails import ReplyGuard
from booking_engine.conversation.intents import parse_intent
from booking_engine.conversation.session import ConversationalBookingSession
from booking_engine.conversation.slot_manager import SlotManager, SlotStatus
from booking_engine.conversation.state_machine import (
    BookingState,
    BookingStateMachine,
    BookingTrigger,
)

__all__ = [
    "BookingStateMachine",
    "BookingState",
    "BookingTrigger",
    "CalendarTable",
    "ContextStore",
    "ConversationalBookingSession",
    "ReplyGuard",
    "SlotManager",
    "SlotStatus",
    "parse_intent",
    "parse_session_id",
]
