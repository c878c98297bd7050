"""
In-memory client store.

Clients are upserted by normalized phone on every booking attempt; the
phone is the natural key shared by the web form, the admin console and the
chat channel.
"""

import logging
import threading
import uuid
from datetime import date
from typing import Optional

from booking_engine.exceptions import ValidationError
from booking_engine.schemas.customer_schema import Client
from booking_engine.utils import normalize_phone

logger = logging.getLogger(__name__)

MIN_PHONE_DIGITS = 8
MAX_PHONE_DIGITS = 15


class ClientStore:
    """Clients keyed by normalized phone."""

    def __init__(self) -> None:
        self._clients: dict[str, Client] = {}
        self._lock = threading.Lock()

    def lookup(self, phone: str) -> Optional[Client]:
        """Look up a client by phone number. Returns None if not found."""
        result = self._clients.get(normalize_phone(phone))
        if result:
            logger.debug("Returning client found: %s", result.name)
        return result

    def check(self, name: str, phone: str) -> tuple[str, str]:
        """Validate client details without storing them.

        Returns the stripped name and the normalized phone.
        """
        cleaned = normalize_phone(phone)
        digits = cleaned.lstrip("+")
        if not MIN_PHONE_DIGITS <= len(digits) <= MAX_PHONE_DIGITS:
            raise ValidationError(f"Phone number '{phone}' doesn't look right.")
        if len(name.strip()) < 2:
            raise ValidationError(f"Client name '{name}' doesn't look right.")
        return name.strip(), cleaned

    def upsert(
        self, name: str, phone: str, birthdate: Optional[date] = None
    ) -> Client:
        """Create the client or refresh name/birthdate of the existing record."""
        name, cleaned = self.check(name, phone)

        with self._lock:
            existing = self._clients.get(cleaned)
            if existing is None:
                client = Client(
                    id=f"CL-{uuid.uuid4().hex[:8].upper()}",
                    name=name,
                    phone=cleaned,
                    birthdate=birthdate,
                )
                logger.info("New client created: %s (%s)", client.name, cleaned)
            else:
                client = existing.model_copy(update={
                    "name": name,
                    "birthdate": birthdate or existing.birthdate,
                })
            self._clients[cleaned] = client
        return client

    def record_booking(self, phone: str) -> None:
        cleaned = normalize_phone(phone)
        with self._lock:
            client = self._clients.get(cleaned)
            if client is not None:
                self._clients[cleaned] = client.model_copy(
                    update={"booking_count": client.booking_count + 1}
                )
