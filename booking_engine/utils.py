"""Shared utilities used across the booking engine."""

import re
import unicodedata
from datetime import date, datetime
from typing import Union

SLOT_MINUTES = 30

_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::\d{2}(?:\.\d+)?)?$")


def normalize_phone(value: str) -> str:
    """Normalize a phone number by stripping everything except digits and a leading +.

    Examples:
        >>> normalize_phone("(31) 99876-5432")
        '31998765432'
        >>> normalize_phone("+55 31 99876 5432")
        '+5531998765432'
    """
    value = value.strip()
    if value.startswith("+"):
        return "+" + re.sub(r"[^\d]", "", value[1:])
    return re.sub(r"[^\d]", "", value)


def normalize_text(value: str) -> str:
    """Lowercase, strip accents and punctuation, collapse whitespace.

    Examples:
        >>> normalize_text("  Hidratação, Escova! ")
        'hidratacao escova'
    """
    decomposed = unicodedata.normalize("NFD", value.lower())
    stripped = "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")
    stripped = re.sub(r"[^\w\s]", " ", stripped)
    return re.sub(r"\s+", " ", stripped).strip()


def normalize_time(value: str) -> str:
    """Return ``HH:MM`` for ``H:MM``, ``HH:MM`` or ``HH:MM:SS`` input.

    Raises:
        ValueError: If the value is not a clock time.
    """
    match = _TIME_RE.match(value.strip())
    if not match:
        raise ValueError(f"Invalid time: {value!r}")
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ValueError(f"Invalid time: {value!r}")
    return f"{hour:02d}:{minute:02d}"


def time_to_minutes(value: str) -> int:
    """Convert ``HH:MM`` (seconds tolerated) to minute-of-day."""
    hour, minute = normalize_time(value).split(":")
    return int(hour) * 60 + int(minute)


def minutes_to_time(minutes: int) -> str:
    """Convert minute-of-day to ``HH:MM``."""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def is_on_grid(value: str) -> bool:
    """Check that a time falls on a 30-minute boundary."""
    return time_to_minutes(value) % SLOT_MINUTES == 0


def parse_date(value: Union[date, str]) -> date:
    """Accept a ``date`` or an ISO ``YYYY-MM-DD`` string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.strptime(value.strip(), "%Y-%m-%d").date()
