"""Client data model."""

from datetime import date
from typing import Optional

from pydantic import BaseModel


class Client(BaseModel):
    """Client record, keyed naturally by normalized phone."""
    id: str
    name: str
    phone: str
    birthdate: Optional[date] = None
    booking_count: int = 0
