"""Per-date override store (closures, blocked times, extra times)."""

import logging
import threading
from datetime import date
from typing import Iterable, Optional

from booking_engine.exceptions import ValidationError
from booking_engine.schemas.schedule_schema import DayOverride, OverridePatch
from booking_engine.utils import is_on_grid, normalize_time

logger = logging.getLogger(__name__)


def _clean_slots(values: Iterable[str]) -> set[str]:
    cleaned = set()
    for value in values:
        try:
            slot = normalize_time(value)
        except ValueError:
            raise ValidationError(f"'{value}' is not a valid HH:MM time.") from None
        if not is_on_grid(slot):
            raise ValidationError(f"'{slot}' is not on the 30-minute grid.")
        cleaned.add(slot)
    return cleaned


class DayOverrideStore:
    """Overrides keyed by date. Written only by staff actions."""

    def __init__(self) -> None:
        self._overrides: dict[date, DayOverride] = {}
        self._lock = threading.Lock()

    def get(self, day: date) -> Optional[DayOverride]:
        return self._overrides.get(day)

    def apply(self, day: date, patch: OverridePatch) -> DayOverride:
        """Return the override that ``patch`` would produce, without saving it."""
        current = self._overrides.get(day) or DayOverride(date=day)
        blocked = (set(current.blocked_slots) | _clean_slots(patch.add_blocked)) - _clean_slots(
            patch.remove_blocked
        )
        extra = (set(current.extra_slots) | _clean_slots(patch.add_extra)) - _clean_slots(
            patch.remove_extra
        )
        return DayOverride(
            date=day,
            closed=current.closed if patch.closed is None else patch.closed,
            blocked_slots=blocked,
            extra_slots=extra,
            notes=current.notes if patch.notes is None else patch.notes,
        )

    def save(self, override: DayOverride) -> DayOverride:
        with self._lock:
            self._overrides[override.date] = override
        logger.info(
            "Override saved for %s: closed=%s blocked=%d extra=%d",
            override.date, override.closed,
            len(override.blocked_slots), len(override.extra_slots),
        )
        return override

    def set(self, day: date, patch: OverridePatch) -> DayOverride:
        return self.save(self.apply(day, patch))

    def clear(self, day: date) -> None:
        with self._lock:
            self._overrides.pop(day, None)

    def list_range(self, start: date, end: date) -> list[DayOverride]:
        return sorted(
            (o for d, o in self._overrides.items() if start <= d <= end),
            key=lambda o: o.date,
        )
