"""
Availability: candidate start times for a service on a date.

Read path only. Browsing callers may go through the short-lived
``AvailabilityCache``; the conflict validator always re-derives fresh.
"""

import logging
import math
import threading
import time
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Callable, Iterable, Optional

from booking_engine.config import settings
from booking_engine.scheduling.grid import ClosedReason, SlotGridGenerator
from booking_engine.scheduling.hours import WeekdayHoursTable
from booking_engine.scheduling.occupancy import OccupancyCalculator, cells_for
from booking_engine.schemas.booking_schema import SlotSuggestion
from booking_engine.schemas.schedule_schema import DayOverride
from booking_engine.tools.overrides import DayOverrideStore
from booking_engine.tools.services import ServiceCatalog
from booking_engine.utils import SLOT_MINUTES, minutes_to_time, time_to_minutes

logger = logging.getLogger(__name__)

CacheKey = tuple[date, Optional[str]]


class AvailabilityCache:
    """Per-(date, service) cache of resolved start times with a short TTL."""

    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = (
            settings.schedule.availability_cache_ttl_sec if ttl_seconds is None else ttl_seconds
        )
        self._clock = clock
        self._entries: dict[CacheKey, tuple[float, list[str]]] = {}
        self._lock = threading.Lock()

    def get(self, day: date, service_id: Optional[str]) -> Optional[list[str]]:
        with self._lock:
            entry = self._entries.get((day, service_id))
            if entry is None:
                return None
            stored_at, slots = entry
            if self._clock() - stored_at > self.ttl_seconds:
                del self._entries[(day, service_id)]
                return None
            return list(slots)

    def put(self, day: date, service_id: Optional[str], slots: list[str]) -> None:
        if self.ttl_seconds <= 0:
            return
        with self._lock:
            self._entries[(day, service_id)] = (self._clock(), list(slots))

    def invalidate(self, day: date) -> int:
        """Drop every cached entry for a date. Returns the number dropped."""
        with self._lock:
            keys = [key for key in self._entries if key[0] == day]
            for key in keys:
                del self._entries[key]
        if keys:
            logger.debug("Availability cache invalidated for %s (%d entries)", day, len(keys))
        return len(keys)


@dataclass
class DayPlan:
    """The bookable shape of a date before occupancy is applied."""

    day: date
    base: list[str]
    extra_slots: list[str] = field(default_factory=list)
    closed_reason: Optional[ClosedReason] = None
    closing_boundary: Optional[int] = None

    @property
    def bookable(self) -> bool:
        return bool(self.base) and self.closing_boundary is not None


class AvailabilityResolver:
    """Combines grid, overrides and occupancy into valid start times."""

    def __init__(
        self,
        grid: SlotGridGenerator,
        occupancy: OccupancyCalculator,
        catalog: ServiceCatalog,
        overrides: DayOverrideStore,
        hours: WeekdayHoursTable,
        cache: Optional[AvailabilityCache] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.grid = grid
        self.occupancy = occupancy
        self.catalog = catalog
        self.overrides = overrides
        self.hours = hours
        self.cache = cache
        self._clock = clock

    def day_plan(self, day: date, override: Optional[DayOverride] = None) -> DayPlan:
        """Base candidates and closing boundary for a date.

        On a closed-by-override day only the extra slots are candidates.
        With extra slots present the boundary is the last extra slot plus
        one cell, never earlier than the weekday close on an open day, so
        an extra slot before opening adds a start without shortening the
        day. Pass ``override`` to plan a proposed override instead of the
        stored one.
        """
        if override is None:
            override = self.overrides.get(day)
        extras = override.sorted_extra_slots() if override is not None else []
        reason = self.grid.closed_reason(day, override)

        if reason == ClosedReason.OVERRIDE_CLOSED:
            base = list(extras)
        else:
            base = sorted(set(self.grid.generate(day, override)) | set(extras))

        weekday_close = self.hours.close_minutes(day) if reason is None else None
        if extras:
            boundary = time_to_minutes(extras[-1]) + SLOT_MINUTES
            if weekday_close is not None:
                boundary = max(boundary, weekday_close)
        else:
            boundary = weekday_close

        return DayPlan(
            day=day,
            base=base,
            extra_slots=extras,
            closed_reason=reason,
            closing_boundary=boundary,
        )

    def duration_for(self, service_id: Optional[str]) -> int:
        if service_id is None:
            return SLOT_MINUTES
        return self.catalog.require(service_id).duration

    def compute(
        self,
        day: date,
        duration: int,
        exclude_booking_id: Optional[str] = None,
    ) -> list[str]:
        """Fresh resolution for an explicit duration."""
        plan = self.day_plan(day)
        if not plan.bookable:
            return []
        occupied = self.occupancy.occupied(day, exclude_booking_id)
        free = set(plan.base) - occupied
        steps = math.ceil(duration / SLOT_MINUTES)

        accepted = []
        for start in sorted(free):
            start_min = time_to_minutes(start)
            if start_min + duration > plan.closing_boundary:
                continue
            needed = [minutes_to_time(start_min + k * SLOT_MINUTES) for k in range(steps)]
            if all(cell in free for cell in needed):
                accepted.append(start)
        return accepted

    @staticmethod
    def admits(plan: DayPlan, start: str, duration: int, blocked: Iterable[str] = ()) -> bool:
        """Whether ``plan`` has room for ``[start, start + duration)``, ignoring bookings."""
        if not plan.bookable:
            return False
        if time_to_minutes(start) + duration > plan.closing_boundary:
            return False
        base, blocked = set(plan.base), set(blocked)
        return all(cell in base and cell not in blocked for cell in cells_for(start, duration))

    def upcoming(self, day: date, starts: list[str], now: Optional[datetime] = None) -> list[str]:
        """Drop starts at or before the current time when ``day`` is today."""
        now = self._clock() if now is None else now
        if day != now.date():
            return starts
        current = now.strftime("%H:%M")
        return [s for s in starts if s > current]

    def resolve(
        self,
        day: date,
        service_id: Optional[str] = None,
        use_cache: bool = False,
    ) -> list[str]:
        """Valid start times for ``service_id`` on ``day``, ascending.

        Without a service the minimal 30-minute cell is used. Starts that
        have already passed today are left out; the cache keeps the full
        list so entries don't depend on the time they were stored.
        """
        if use_cache and self.cache is not None:
            cached = self.cache.get(day, service_id)
            if cached is not None:
                return self.upcoming(day, cached)
        slots = self.compute(day, self.duration_for(service_id))
        if use_cache and self.cache is not None:
            self.cache.put(day, service_id, slots)
        return self.upcoming(day, slots)

    def suggest(
        self,
        day: date,
        service_id: Optional[str],
        near_time: Optional[str] = None,
        limit: Optional[int] = None,
        search_days: Optional[int] = None,
        not_before: Optional[date] = None,
        exclude_booking_id: Optional[str] = None,
    ) -> list[SlotSuggestion]:
        """Alternatives closest to ``near_time`` on ``day``, then on following days."""
        limit = settings.schedule.max_suggestions if limit is None else limit
        search_days = (
            settings.schedule.suggestion_search_days if search_days is None else search_days
        )
        duration = self.duration_for(service_id)

        suggestions: list[SlotSuggestion] = []
        for offset in range(search_days + 1):
            current = day + timedelta(days=offset)
            if not_before is not None and current < not_before:
                continue
            starts = self.upcoming(current, self.compute(current, duration, exclude_booking_id))
            if offset == 0 and near_time is not None:
                target = time_to_minutes(near_time)
                starts = [s for s in starts if s != near_time]
                starts = sorted(starts, key=lambda s: abs(time_to_minutes(s) - target))
                starts = sorted(starts[: limit - len(suggestions)])
            for start in starts:
                if len(suggestions) >= limit:
                    break
                suggestions.append(SlotSuggestion(date=current, time=start))
            if len(suggestions) >= limit:
                break
        return suggestions

    def next_available(
        self,
        day: date,
        service_id: Optional[str] = None,
        days: Optional[int] = None,
    ) -> Optional[tuple[date, list[str]]]:
        """First date from ``day`` onward with any valid start, and its starts."""
        days = settings.schedule.suggestion_search_days if days is None else days
        duration = self.duration_for(service_id)
        for offset in range(days + 1):
            current = day + timedelta(days=offset)
            starts = self.upcoming(current, self.compute(current, duration))
            if starts:
                return current, starts
        return None
