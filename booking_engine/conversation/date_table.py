"""
Forward-looking calendar table for relative date references.

Relative expressions ("tomorrow", "next wednesday", "sexta") are resolved
by looking them up in an explicit table of the next N days, never by
date arithmetic inside the conversation logic. The same table can be
rendered for an upstream classifier so it sees the exact dates.

Usage:
    table = CalendarTable(date(2026, 10, 19))
    table.resolve("next wednesday")  # date(2026, 10, 21)
"""

import re
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from booking_engine.config import settings
from booking_engine.utils import normalize_text

WEEKDAY_NAMES_EN = (
    "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday",
)
WEEKDAY_NAMES_PT = ("segunda", "terca", "quarta", "quinta", "sexta", "sabado", "domingo")

# Longest phrases first so "day after tomorrow" wins over "tomorrow".
RELATIVE_OFFSETS: list[tuple[str, int]] = [
    ("day after tomorrow", 2),
    ("depois de amanha", 2),
    ("tomorrow", 1),
    ("amanha", 1),
    ("today", 0),
    ("hoje", 0),
]

_ISO_RE = re.compile(r"\b(\d{4})-(\d{1,2})-(\d{1,2})\b")
_DAY_MONTH_RE = re.compile(r"\b(\d{1,2})/(\d{1,2})(?:/(\d{4}))?\b")
_WEEKDAY_RE = re.compile(
    r"\b(?:(?:next|this|on|proxima|proximo|na|no)\s+)?("
    + "|".join(WEEKDAY_NAMES_EN + WEEKDAY_NAMES_PT)
    + r")(?:\s+feira)?\b"
)


@dataclass(frozen=True)
class CalendarEntry:
    day: date
    weekday: str
    label: str


def find_date_reference(text: str) -> Optional[str]:
    """Return the fragment of ``text`` that names a date, if any.

    ISO dates and ``dd/mm[/yyyy]`` are returned as written; relative
    words are returned accent-stripped.
    """
    match = _ISO_RE.search(text) or _DAY_MONTH_RE.search(text)
    if match:
        return match.group(0)
    normalized = normalize_text(text)
    for phrase, _ in RELATIVE_OFFSETS:
        if re.search(rf"\b{phrase}\b", normalized):
            return phrase
    match = _WEEKDAY_RE.search(normalized)
    if match:
        return match.group(0)
    return None


class CalendarTable:
    """The next ``days`` dates starting today, with weekday names."""

    def __init__(self, today: date, days: Optional[int] = None) -> None:
        days = settings.conversation.calendar_lookahead_days if days is None else days
        self.today = today
        self.entries: list[CalendarEntry] = []
        for offset in range(days):
            day = today + timedelta(days=offset)
            if offset == 0:
                label = "today"
            elif offset == 1:
                label = "tomorrow"
            else:
                label = WEEKDAY_NAMES_EN[day.weekday()]
            self.entries.append(
                CalendarEntry(day=day, weekday=WEEKDAY_NAMES_EN[day.weekday()], label=label)
            )

    @property
    def last_day(self) -> date:
        return self.entries[-1].day

    def offset(self, days: int) -> Optional[date]:
        if 0 <= days < len(self.entries):
            return self.entries[days].day
        return None

    def next_weekday(self, weekday: int) -> Optional[date]:
        """First date strictly after today falling on ``weekday`` (0=Monday)."""
        for entry in self.entries[1:]:
            if entry.day.weekday() == weekday:
                return entry.day
        return None

    def resolve(self, text: str) -> Optional[date]:
        """Map a date reference to a concrete date, or ``None``.

        Absolute dates are accepted as long as they are not in the past;
        relative references must fall inside the table.
        """
        match = _ISO_RE.search(text)
        if match:
            return self._absolute(int(match.group(1)), int(match.group(2)), int(match.group(3)))

        match = _DAY_MONTH_RE.search(text)
        if match:
            day, month = int(match.group(1)), int(match.group(2))
            if match.group(3):
                return self._absolute(int(match.group(3)), month, day)
            resolved = self._absolute(self.today.year, month, day)
            if resolved is None:
                resolved = self._absolute(self.today.year + 1, month, day)
            return resolved

        normalized = normalize_text(text)
        for phrase, days in RELATIVE_OFFSETS:
            if re.search(rf"\b{phrase}\b", normalized):
                return self.offset(days)

        match = _WEEKDAY_RE.search(normalized)
        if match:
            name = match.group(1)
            if name in WEEKDAY_NAMES_EN:
                return self.next_weekday(WEEKDAY_NAMES_EN.index(name))
            return self.next_weekday(WEEKDAY_NAMES_PT.index(name))
        return None

    def _absolute(self, year: int, month: int, day: int) -> Optional[date]:
        try:
            resolved = date(year, month, day)
        except ValueError:
            return None
        if resolved < self.today:
            return None
        return resolved

    def render(self) -> str:
        """One line per day, e.g. ``2026-10-21 wednesday``."""
        return "\n".join(
            f"{entry.day.isoformat()} {entry.weekday}"
            + (f" ({entry.label})" if entry.label != entry.weekday else "")
            for entry in self.entries
        )
