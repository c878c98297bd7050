"""Weekday business hours table."""

from datetime import date
from typing import Mapping, Optional, Sequence

from booking_engine.config import WEEKDAY_KEYS, settings
from booking_engine.schemas.schedule_schema import ClosedDay, OpenHours, WeekdayHours


class WeekdayHoursTable:
    """Pure lookup of weekday -> ``OpenHours`` | ``ClosedDay``.

    Weekdays follow ``date.weekday()``: 0 = Monday, 6 = Sunday.
    """

    def __init__(self, table: Mapping[int, WeekdayHours]) -> None:
        self._table = {day: table.get(day, ClosedDay()) for day in range(7)}

    @classmethod
    def from_config(
        cls, raw: Optional[Mapping[str, Optional[Sequence[int]]]] = None
    ) -> "WeekdayHoursTable":
        """Build from ``{"mon": [start, end] | None, ...}``."""
        raw = settings.schedule.weekday_hours if raw is None else raw
        table: dict[int, WeekdayHours] = {}
        for index, key in enumerate(WEEKDAY_KEYS):
            hours = raw.get(key)
            if hours is None:
                table[index] = ClosedDay()
            else:
                table[index] = OpenHours(start_hour=hours[0], end_hour=hours[1])
        return cls(table)

    def lookup(self, day: date) -> WeekdayHours:
        return self._table[day.weekday()]

    def open_hours(self, day: date) -> Optional[OpenHours]:
        """The opening hours of a weekday, or None when it is closed."""
        hours = self.lookup(day)
        return hours if isinstance(hours, OpenHours) else None

    def is_open(self, day: date) -> bool:
        return self.open_hours(day) is not None

    def close_minutes(self, day: date) -> Optional[int]:
        """Closing time as minute-of-day, or None on a closed weekday."""
        hours = self.open_hours(day)
        return None if hours is None else hours.end_hour * 60
