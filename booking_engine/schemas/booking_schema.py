"""Service, booking and availability data models."""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from booking_engine.utils import normalize_time


class BookingStatus(str, Enum):
    CONFIRMED = "Confirmed"
    CANCELLED = "Cancelled"
    DELETED = "Deleted"
    COMPLETED = "Completed"


class BookingOrigin(str, Enum):
    """Channel a booking was created through."""

    MANUAL = "manual"
    EXTERNAL_LINK = "external-link"
    BOT = "bot"


# Statuses that never hold grid cells.
INACTIVE_STATUSES = frozenset({BookingStatus.CANCELLED, BookingStatus.DELETED})


class Service(BaseModel):
    """A bookable service from the catalog."""

    id: str
    name: str
    duration: int = Field(gt=0, description="Duration in minutes")
    price: float = Field(ge=0)


class ClientInfo(BaseModel):
    """Client details supplied with a booking request."""

    name: str
    phone: str
    birthdate: Optional[date] = None


class PreviousSlot(BaseModel):
    """Audit record of where a booking sat before its last reschedule."""

    date: date
    time: str
    service_id: Optional[str] = None
    changed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Booking(BaseModel):
    """A booking row as stored by the booking store."""

    id: str
    date: date
    time: str
    service_id: Optional[str] = None
    service_name: str = ""
    client_name: str
    client_phone: str
    professional_id: Optional[str] = None
    professional_name: Optional[str] = None
    status: BookingStatus = BookingStatus.CONFIRMED
    origin: BookingOrigin = BookingOrigin.MANUAL
    discount_percent: Optional[float] = Field(default=None, ge=0, le=100)
    discount_reason: Optional[str] = None
    notes: str = ""
    previous_slot: Optional[PreviousSlot] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: Optional[datetime] = None

    @field_validator("time")
    @classmethod
    def _strip_seconds(cls, value: str) -> str:
        return normalize_time(value)

    @property
    def is_active(self) -> bool:
        return self.status not in INACTIVE_STATUSES


class SlotSuggestion(BaseModel):
    """An alternative start offered after a conflict."""

    date: date
    time: str


class DayCell(BaseModel):
    """One cell of the admin day grid."""

    time: str
    status: str  # "available" | "booked" | "occupied" | "blocked"
    booking_id: Optional[str] = None
