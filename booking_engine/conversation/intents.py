"""
Keyword and regex intent extraction for free-text chat turns.

The booking session consumes structured ``Intent`` objects produced by an
upstream classifier. This module is a small stand-in that fills the same
structure from plain text so the console demo and tests can drive the
session without a language model. It only recognises the phrasing below.
"""

import logging
import re
from datetime import date
from typing import Optional

from booking_engine.conversation.date_table import find_date_reference
from booking_engine.schemas.conversation_schema import Intent, IntentKind
from booking_engine.tools.services import ServiceCatalog
from booking_engine.utils import normalize_phone, normalize_text

logger = logging.getLogger(__name__)

STOP_SIGNALS = [
    "stop", "never mind", "nevermind", "forget it", "forget about it",
    "desisto", "deixa pra la", "esquece",
]
CANCEL_SIGNALS = ["cancel", "cancelar", "desmarcar", "nao vou conseguir ir"]
RESCHEDULE_SIGNALS = [
    "reschedule", "move my", "change my appointment", "change my booking",
    "remarcar", "reagendar", "mudar meu horario", "trocar meu horario",
]
BOOK_SIGNALS = [
    "book", "appointment", "schedule", "reserve",
    "agendar", "marcar", "horario para",
]
CONFIRM_WORDS = {
    "yes", "yeah", "yep", "sure", "ok", "okay", "correct", "confirm",
    "sounds good", "looks good", "perfect",
    "sim", "isso", "confirmo", "pode", "pode ser", "claro", "certo", "perfeito",
}
DENY_WORDS = {"no", "nope", "not really", "wrong", "nao", "errado"}

# Words that rule out a bare reply being a person's name.
NON_NAME_WORDS = CONFIRM_WORDS | DENY_WORDS | {
    "thanks", "thank you", "hello", "hi", "obrigado", "obrigada", "valeu",
    "bom dia", "boa tarde", "boa noite", "tudo bem", "beleza", "ola", "oi",
}

_NAME_RE = re.compile(
    r"(?:my name is|this is|meu nome [eé]|me chamo)\s+([A-Za-zÀ-ÿ' ]{2,60})",
    re.IGNORECASE,
)
_BARE_NAME_RE = re.compile(r"^[A-Za-zÀ-ÿ' ]{2,60}$")
_BIRTHDATE_RE = re.compile(
    r"(?:born(?: on)?|birthday|birthdate|nasci(?: em)?|nascimento)\D{0,5}"
    r"(\d{1,2})/(\d{1,2})/(\d{4})",
    re.IGNORECASE,
)
_TIME_PATTERNS = [
    re.compile(r"\b([01]?\d|2[0-3]):([0-5]\d)\b"),
    re.compile(r"\b([01]?\d|2[0-3])h([0-5]\d)?\b"),
    re.compile(r"\b(1[0-2]|0?[1-9])\s*(am|pm)\b", re.IGNORECASE),
    re.compile(r"\b(?:at|às|as|a partir das|por volta das)\s+([01]?\d|2[0-3])\b", re.IGNORECASE),
]
_NOON_RE = re.compile(r"\b(noon|midday|meio dia|meio-dia)\b", re.IGNORECASE)
_PHONE_RE = re.compile(r"\+?\d[\d\s().-]{6,}\d")

MIN_PHONE_DIGITS = 8
MAX_PHONE_DIGITS = 15
# Without am/pm, hours below this are read as afternoon ("at 3" -> 15:00).
AFTERNOON_CUTOFF_HOUR = 8


def _has_signal(text: str, signals: list[str]) -> bool:
    return any(re.search(rf"\b{re.escape(s)}\b", text) for s in signals)


def extract_time(text: str) -> Optional[str]:
    """Pull a clock time out of free text as ``HH:MM``."""
    if _NOON_RE.search(text):
        return "12:00"
    for pattern in _TIME_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue
        hour = int(match.group(1))
        minute = 0
        marker = None
        if match.lastindex and match.lastindex >= 2 and match.group(2):
            second = match.group(2).lower()
            if second in ("am", "pm"):
                marker = second
            else:
                minute = int(second)
        if marker == "pm" and hour != 12:
            hour += 12
        elif marker == "am" and hour == 12:
            hour = 0
        elif marker is None and 0 < hour < AFTERNOON_CUTOFF_HOUR:
            hour += 12
        return f"{hour:02d}:{minute:02d}"
    return None


def extract_phone(text: str) -> Optional[str]:
    for match in _PHONE_RE.finditer(text):
        candidate = normalize_phone(match.group(0))
        digits = candidate.lstrip("+")
        if MIN_PHONE_DIGITS <= len(digits) <= MAX_PHONE_DIGITS:
            return candidate
    return None


def looks_like_name(text: str) -> bool:
    """Two or more alphabetic words that are not small talk."""
    candidate = text.strip()
    if not _BARE_NAME_RE.match(candidate):
        return False
    normalized = normalize_text(candidate)
    if normalized in NON_NAME_WORDS:
        return False
    words = normalized.split(" ")
    return len(words) >= 2 and all(
        len(word) >= 2 and word not in NON_NAME_WORDS for word in words
    )


def parse_intent(
    text: str,
    catalog: ServiceCatalog,
    expecting: Optional[str] = None,
) -> Intent:
    """
    Build an ``Intent`` from a free-text message.

    Args:
        text: The client's message.
        catalog: Used to recognise service names and synonyms.
        expecting: The field the session asked for last (e.g.
            ``"client_name"``). A bare two-word reply is only taken as a
            name when the session was asking for one.
    """
    normalized = normalize_text(text)
    remaining = text
    intent = Intent(text=text)

    birth = _BIRTHDATE_RE.search(remaining)
    if birth:
        try:
            intent.client_birthdate = date(
                int(birth.group(3)), int(birth.group(2)), int(birth.group(1))
            )
        except ValueError:
            logger.debug("Ignoring invalid birthdate in %r", text)
        remaining = remaining.replace(birth.group(0), " ")

    date_text = find_date_reference(remaining)
    if date_text:
        intent.date_text = date_text
        remaining = remaining.replace(date_text, " ")

    intent.time = extract_time(remaining)
    for pattern in _TIME_PATTERNS[:2]:
        remaining = pattern.sub(" ", remaining)
    intent.client_phone = extract_phone(remaining)

    service = catalog.match(text)
    if service is not None:
        intent.service = service.id

    name = _NAME_RE.search(text)
    if name:
        intent.client_name = name.group(1).strip().title()
    elif expecting == "client_name" and looks_like_name(text):
        intent.client_name = text.strip().title()

    if _has_signal(normalized, STOP_SIGNALS):
        intent.kind = IntentKind.STOP
    elif _has_signal(normalized, RESCHEDULE_SIGNALS):
        intent.kind = IntentKind.RESCHEDULE_BOOKING
    elif _has_signal(normalized, CANCEL_SIGNALS):
        intent.kind = IntentKind.CANCEL_BOOKING
    elif normalized in CONFIRM_WORDS or normalized.split(" ")[0] in ("yes", "sim"):
        intent.kind = IntentKind.CONFIRM
    elif normalized in DENY_WORDS or normalized.split(" ")[0] in ("no", "nao"):
        intent.kind = IntentKind.DENY
    elif _has_signal(normalized, BOOK_SIGNALS):
        intent.kind = IntentKind.BOOK
    elif any([intent.service, intent.date_text, intent.time, intent.client_name,
              intent.client_phone, intent.client_birthdate]):
        intent.kind = IntentKind.PROVIDE
    else:
        intent.kind = IntentKind.SMALL_TALK

    logger.debug("Parsed intent: %s", intent.model_dump(exclude_none=True))
    return intent
