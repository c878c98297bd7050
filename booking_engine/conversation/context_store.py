"""Per-session conversation context, keyed by (channel, phone)."""

import copy
import logging
import re
import threading
from datetime import datetime
from typing import Optional

from booking_engine.config import settings
from booking_engine.schemas.conversation_schema import ConversationContext
from booking_engine.utils import normalize_phone

logger = logging.getLogger(__name__)

ContextKey = tuple[str, str]

DEFAULT_CHANNEL = "chat"
MIN_PHONE_DIGITS = 8
MAX_PHONE_DIGITS = 15


def parse_session_id(session_id: str) -> ContextKey:
    """Split ``"<channel>:<phone>"`` into a context key.

    A session id without a channel prefix is filed under ``"chat"``.
    The identifier is normalized when it looks like a phone number.

    Examples:
        >>> parse_session_id("whatsapp:+55 11 99999-0000")
        ('whatsapp', '+5511999990000')
    """
    channel, sep, ident = session_id.partition(":")
    if not sep:
        channel, ident = DEFAULT_CHANNEL, session_id
    ident = ident.strip()
    if session_phone(ident) is not None:
        ident = normalize_phone(ident)
    return channel.strip() or DEFAULT_CHANNEL, ident


def session_phone(ident: str) -> Optional[str]:
    """The identifier as a phone number, or None when it isn't one."""
    if not re.fullmatch(r"\+?[\d\s().-]+", ident or ""):
        return None
    digits = re.sub(r"[^\d]", "", ident)
    if MIN_PHONE_DIGITS <= len(digits) <= MAX_PHONE_DIGITS:
        return normalize_phone(ident)
    return None


class ContextStore:
    """In-memory store of conversation contexts."""

    def __init__(self) -> None:
        self._contexts: dict[ContextKey, ConversationContext] = {}
        self._lock = threading.Lock()

    def load(self, key: ContextKey) -> Optional[ConversationContext]:
        with self._lock:
            context = self._contexts.get(key)
            return copy.deepcopy(context) if context is not None else None

    def save(self, key: ContextKey, context: ConversationContext) -> None:
        with self._lock:
            self._contexts[key] = copy.deepcopy(context)

    def clear(self, key: ContextKey) -> None:
        with self._lock:
            self._contexts.pop(key, None)

    def purge_expired(self, now: datetime, ttl_hours: Optional[int] = None) -> int:
        """Drop every expired context. Returns the number dropped."""
        ttl_hours = settings.conversation.context_ttl_hours if ttl_hours is None else ttl_hours
        with self._lock:
            expired = [
                key for key, context in self._contexts.items()
                if context.is_expired(now, ttl_hours)
            ]
            for key in expired:
                del self._contexts[key]
        if expired:
            logger.info("Purged %d expired conversation contexts", len(expired))
        return len(expired)
