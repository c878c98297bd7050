"""Reply templates for the booking chat.

Every reply the session sends is built here from real results. The
success templates take the committed ``Booking`` itself, so they cannot be
rendered without one.
"""

from datetime import date
from typing import Optional, Sequence

from booking_engine.config import settings
from booking_engine.schemas.booking_schema import Booking, Service, SlotSuggestion
from booking_engine.schemas.conversation_schema import ConversationContext

WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


def format_day(day: date) -> str:
    """``Wednesday 21/10``"""
    return f"{WEEKDAYS[day.weekday()]} {day.strftime('%d/%m')}"


def _format_suggestions(suggestions: Sequence[SlotSuggestion]) -> str:
    return " or ".join(f"{format_day(s.date)} at {s.time}" for s in suggestions)


def _require_booking(booking: Booking) -> Booking:
    if not isinstance(booking, Booking):
        raise TypeError("Success replies need the committed Booking")
    return booking


# --------------------------------------------------------------------- #
# Slot filling
# --------------------------------------------------------------------- #

def greeting() -> str:
    return f"Hi! Welcome to {settings.business.name}. Which service would you like?"


def ask_service(services: Sequence[Service]) -> str:
    names = ", ".join(s.name for s in services)
    return f"Which service would you like? We offer: {names}."


def ask_date(service_name: Optional[str]) -> str:
    return f"{service_name or 'Great'}, noted. Which day works for you?"


def ask_time(day: date, starts: Sequence[str], max_listed: Optional[int] = None) -> str:
    max_listed = settings.conversation.max_times_listed if max_listed is None else max_listed
    shown = list(starts)[:max_listed]
    more = " (and a few more)" if len(starts) > len(shown) else ""
    return f"On {format_day(day)} I have {', '.join(shown)}{more}. Which time suits you?"


def date_unavailable(
    day: date,
    reason: str,
    next_available: Optional[date] = None,
) -> str:
    text = f"Sorry, {format_day(day)} is not available ({reason})."
    if next_available is not None:
        text += f" The next day with openings is {format_day(next_available)}. Would that work?"
    else:
        text += " Could you pick another day?"
    return text


def slot_unavailable(day: date, start: str, suggestions: Sequence[SlotSuggestion]) -> str:
    text = f"{start} on {format_day(day)} isn't available."
    if suggestions:
        text += f" I can offer {_format_suggestions(suggestions)}. Which do you prefer?"
    else:
        text += " Could you choose another day?"
    return text


def ask_client_name() -> str:
    return "That time is free. What's your full name?"


def ask_client_phone(name: Optional[str] = None) -> str:
    greeting_name = f"Thanks, {name.split()[0]}. " if name else ""
    return f"{greeting_name}What's the best phone number to reach you?"


def confirm_details(context: ConversationContext) -> str:
    """Read-back before committing. Uses no success wording."""
    verb = "move your appointment to" if context.reschedule_booking_id else "book"
    day = format_day(context.date) if context.date else "?"
    return (
        f"Here's what I have: {context.service_name} on {day} at {context.time}, "
        f"for {context.client_name} ({context.client_phone}). "
        f"Shall I {verb} that?"
    )


def ask_what_to_change() -> str:
    return "No problem. What would you like to change: the service, the day or the time?"


def invalid_input(message: str) -> str:
    return f"Sorry, {message[0].lower()}{message[1:]} Could you try again?"


def handoff(display_name: str) -> str:
    return (
        f"I'm having trouble with the {display_name}. "
        "Someone from our team will message you shortly."
    )


def small_talk() -> str:
    return "I can help you book, move or cancel an appointment. What would you like to do?"


# --------------------------------------------------------------------- #
# Outcomes
# --------------------------------------------------------------------- #

def booking_success(booking: Booking) -> str:
    booking = _require_booking(booking)
    return (
        f"Booked! {booking.service_name} on {format_day(booking.date)} at {booking.time}. "
        f"Your reference number is {booking.id}. See you then!"
    )


def reschedule_success(booking: Booking) -> str:
    booking = _require_booking(booking)
    return (
        f"Done! Your {booking.service_name} is now booked for "
        f"{format_day(booking.date)} at {booking.time} (reference {booking.id})."
    )


def cancel_success(booking: Booking) -> str:
    booking = _require_booking(booking)
    return (
        f"Your {booking.service_name} on {format_day(booking.date)} at {booking.time} "
        "has been cancelled. Message us any time to book again."
    )


def booking_rejected(message: str) -> str:
    return f"{message} Could you choose another time?"


def cancel_too_late(booking: Booking, days_until: int, min_days: int) -> str:
    return (
        f"Our policy allows cancellations up to {min_days} days ahead. "
        f"Your {booking.service_name} on {format_day(booking.date)} is in {days_until} day(s), "
        "so please contact the salon directly."
    )


def reschedule_too_late(booking: Booking, days_until: int, min_days: int) -> str:
    return (
        f"Our policy allows changes up to {min_days} days ahead. "
        f"Your {booking.service_name} on {format_day(booking.date)} is in {days_until} day(s), "
        "so I can't move it from here."
    )


def reschedule_started(booking: Booking) -> str:
    return (
        f"Sure. Your {booking.service_name} is currently on {format_day(booking.date)} "
        f"at {booking.time}. Which new day would you prefer?"
    )


def no_upcoming_booking() -> str:
    return "I couldn't find an upcoming appointment under your phone number."


def flow_cancelled() -> str:
    return "No problem, I've stopped here. Message us whenever you'd like to book."


def storage_apology() -> str:
    return "Sorry, something went wrong on our side and nothing was saved. Could you try again in a moment?"
