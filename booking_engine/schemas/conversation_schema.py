"""Chat session models: structured intents, per-session context, replies."""

import datetime as dt
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class IntentKind(str, Enum):
    """What the upstream classifier thinks the client wants this turn."""

    BOOK = "book"
    PROVIDE = "provide"
    CONFIRM = "confirm"
    DENY = "deny"
    CANCEL_BOOKING = "cancel_booking"
    RESCHEDULE_BOOKING = "reschedule_booking"
    STOP = "stop"
    SMALL_TALK = "small_talk"


class Intent(BaseModel):
    """Structured intent + slots emitted by the upstream classifier.

    ``date_text`` carries a relative or partial date reference ("tomorrow",
    "next wednesday", "25/10") that the session resolves through its
    forward calendar table. ``date`` is used when the classifier already
    produced an absolute date.
    """

    kind: IntentKind = IntentKind.PROVIDE
    service: Optional[str] = None
    date: Optional[dt.date] = None
    date_text: Optional[str] = None
    time: Optional[str] = None
    client_name: Optional[str] = None
    client_phone: Optional[str] = None
    client_birthdate: Optional[dt.date] = None
    text: str = ""


class BookingAction(str, Enum):
    BOOK = "book"
    RESCHEDULE = "reschedule"


@dataclass
class ConversationContext:
    """
    Partially-filled booking fields for one chat session.

    Persisted by the context store between turns. Every field is named;
    session logic reads and writes these instead of parsing chat history.
    """
    service_id: Optional[str] = None
    service_name: Optional[str] = None
    date: Optional[dt.date] = None
    time: Optional[str] = None
    availability_confirmed: bool = False
    client_name: Optional[str] = None
    client_phone: Optional[str] = None
    client_birthdate: Optional[dt.date] = None
    action: BookingAction = BookingAction.BOOK
    reschedule_booking_id: Optional[str] = None
    awaiting_confirmation: bool = False
    last_contact: Optional[dt.datetime] = None

    def is_expired(self, now: dt.datetime, ttl_hours: int = 24) -> bool:
        """True once the remembered date is in the past or the client went quiet."""
        if self.date is not None and self.date < now.date():
            return True
        if self.last_contact is not None and now - self.last_contact > dt.timedelta(hours=ttl_hours):
            return True
        return False

    def is_empty(self) -> bool:
        return self.service_id is None and self.date is None and self.time is None


class ConversationReply(BaseModel):
    """Result of one conversation turn."""

    reply: str
    committed: bool = False
    state: str = ""
    booking_id: Optional[str] = None
