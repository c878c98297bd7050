from booking_engine.scheduling.availability import (
    AvailabilityCache,
    AvailabilityResolver,
    DayPlan,
)
from booking_engine.scheduling.conflicts import ConflictValidator
from booking_engine.scheduling.grid import ClosedReason, SlotGridGenerator
from booking_engine.scheduling.holidays import HolidayCalendar
from booking_engine.scheduling.hours import WeekdayHoursTable
from booking_engine.scheduling.mutator import BookingMutator
from booking_engine.scheduling.occupancy import OccupancyCalculator, cells_for

__all__ = [
    "AvailabilityCache",
    "AvailabilityResolver",
    "BookingMutator",
    "ClosedReason",
    "ConflictValidator",
    "DayPlan",
    "HolidayCalendar",
    "OccupancyCalculator",
    "SlotGridGenerator",
    "WeekdayHoursTable",
    "cells_for",
]
