"""30-minute candidate grid for a date."""

import logging
from datetime import date
from enum import Enum
from typing import Optional

from booking_engine.scheduling.holidays import HolidayCalendar
from booking_engine.scheduling.hours import WeekdayHoursTable
from booking_engine.schemas.schedule_schema import DayOverride
from booking_engine.tools.overrides import DayOverrideStore
from booking_engine.utils import SLOT_MINUTES, minutes_to_time

logger = logging.getLogger(__name__)


class ClosedReason(str, Enum):
    """Why the default grid of a date is empty."""

    OVERRIDE_CLOSED = "override_closed"
    WEEKDAY_CLOSED = "weekday_closed"
    HOLIDAY = "holiday"


class SlotGridGenerator:
    """Produces the default grid from weekday hours, overrides and holidays.

    The grid runs from ``start_hour:00`` to ``end_hour:00`` inclusive in
    30-minute steps; ``end_hour:30`` is never produced.
    """

    def __init__(
        self,
        hours: WeekdayHoursTable,
        overrides: DayOverrideStore,
        holidays: HolidayCalendar,
    ) -> None:
        self.hours = hours
        self.overrides = overrides
        self.holidays = holidays

    def closed_reason(
        self, day: date, override: Optional[DayOverride] = None
    ) -> Optional[ClosedReason]:
        """Why the default grid is empty. ``override`` replaces the stored one."""
        if override is None:
            override = self.overrides.get(day)
        if override is not None and override.closed:
            return ClosedReason.OVERRIDE_CLOSED
        if not self.hours.is_open(day):
            return ClosedReason.WEEKDAY_CLOSED
        if self.holidays.is_holiday(day):
            return ClosedReason.HOLIDAY
        return None

    def generate(self, day: date, override: Optional[DayOverride] = None) -> list[str]:
        hours = self.hours.open_hours(day)
        if hours is None or self.closed_reason(day, override) is not None:
            return []
        start = hours.start_hour * 60
        end = hours.end_hour * 60
        return [minutes_to_time(m) for m in range(start, end + 1, SLOT_MINUTES)]
