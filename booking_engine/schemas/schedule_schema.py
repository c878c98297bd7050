"""Business hours and per-date override models."""

from datetime import date
from typing import Literal, Optional, Union

from pydantic import BaseModel, Field, model_validator


class OpenHours(BaseModel):
    """A weekday the business opens, from ``start_hour:00`` to ``end_hour:00``."""

    kind: Literal["open"] = "open"
    start_hour: int = Field(ge=0, le=23)
    end_hour: int = Field(ge=1, le=23)

    @model_validator(mode="after")
    def _check_order(self) -> "OpenHours":
        if self.start_hour >= self.end_hour:
            raise ValueError("start_hour must be before end_hour")
        return self


class ClosedDay(BaseModel):
    kind: Literal["closed"] = "closed"


WeekdayHours = Union[OpenHours, ClosedDay]


class DayOverride(BaseModel):
    """Manual exception to the weekday hours for one date."""

    date: date
    closed: bool = False
    blocked_slots: set[str] = Field(default_factory=set)
    extra_slots: set[str] = Field(default_factory=set)
    notes: Optional[str] = None

    def sorted_extra_slots(self) -> list[str]:
        return sorted(self.extra_slots)


class OverridePatch(BaseModel):
    """Partial update applied by ``DayOverrideStore.set``."""

    closed: Optional[bool] = None
    add_blocked: list[str] = Field(default_factory=list)
    remove_blocked: list[str] = Field(default_factory=list)
    add_extra: list[str] = Field(default_factory=list)
    remove_extra: list[str] = Field(default_factory=list)
    notes: Optional[str] = None
