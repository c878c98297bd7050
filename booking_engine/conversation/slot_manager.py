"""
Slot filling for the booking conversation: Collect -> Validate -> Write.

Slots are written straight into the session's ``ConversationContext`` so
nothing already known is ever asked for again. Attempts and corrections
are tracked per slot for retry limits and session statistics.

Usage:
    manager = SlotManager(catalog)
    ok, msg = manager.set_slot(context, "client_phone", "(11) 99999-0000")
    missing = manager.get_next_missing(context)
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Callable, Optional, Union

from booking_engine.config import settings
from booking_engine.conversation.date_table import CalendarTable
from booking_engine.schemas.conversation_schema import ConversationContext, Intent
from booking_engine.tools.services import ServiceCatalog
from booking_engine.utils import is_on_grid, normalize_phone, normalize_time

logger = logging.getLogger(__name__)

MIN_NAME_LENGTH = 2
MIN_PHONE_DIGITS = 8
MAX_PHONE_DIGITS = 15


class SlotStatus(str, Enum):
    """Lifecycle status of a slot value."""

    EMPTY = "empty"
    COLLECTED = "collected"
    VALIDATED = "validated"
    CORRECTED = "corrected"


@dataclass(frozen=True)
class SlotDefinition:
    """Schema for a single slot to collect."""

    name: str
    display_name: str
    context_field: str
    required: bool = True
    max_retries: int = settings.conversation.max_slot_retries


@dataclass
class SlotValue:
    """Attempts and history of a slot."""

    status: SlotStatus = SlotStatus.EMPTY
    attempts: int = 0
    failures: int = 0
    correction_history: list[str] = field(default_factory=list)


@dataclass
class SlotUpdate:
    """What one intent changed in the context."""

    changed: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)


class SlotManager:
    """Validates slot values and writes them into a conversation context."""

    SLOT_DEFINITIONS: list[SlotDefinition] = [
        SlotDefinition("service", "service", "service_id"),
        SlotDefinition("date", "date", "date"),
        SlotDefinition("time", "time", "time"),
        SlotDefinition("client_name", "name", "client_name"),
        SlotDefinition("client_phone", "phone number", "client_phone"),
        SlotDefinition("client_birthdate", "birthdate", "client_birthdate", required=False),
    ]
    BOOKING_SLOTS = ("service", "date", "time")

    def __init__(self, catalog: ServiceCatalog) -> None:
        self.catalog = catalog
        self.slots: dict[str, SlotValue] = {
            defn.name: SlotValue() for defn in self.SLOT_DEFINITIONS
        }
        self._validators: dict[str, Callable[..., tuple[bool, str]]] = {
            "service": self._set_service,
            "date": self._set_date,
            "time": self._set_time,
            "client_name": self._set_name,
            "client_phone": self._set_phone,
            "client_birthdate": self._set_birthdate,
        }

    def get_definition(self, name: str) -> SlotDefinition:
        for defn in self.SLOT_DEFINITIONS:
            if defn.name == name:
                return defn
        raise ValueError(f"Unknown slot: {name}")

    # ------------------------------------------------------------------ #
    # Per-slot validation
    # ------------------------------------------------------------------ #

    def _set_service(self, context: ConversationContext, raw: Any, **_: Any) -> tuple[bool, str]:
        service = self.catalog.get(str(raw)) or self.catalog.match(str(raw))
        if service is None:
            return False, f"I couldn't find '{raw}' among our services."
        context.service_id = service.id
        context.service_name = service.name
        return True, service.name

    def _set_date(
        self,
        context: ConversationContext,
        raw: Any,
        calendar: Optional[CalendarTable] = None,
        **_: Any,
    ) -> tuple[bool, str]:
        if isinstance(raw, date):
            resolved: Optional[date] = raw
            if calendar is not None and raw < calendar.today:
                resolved = None
        elif calendar is not None:
            resolved = calendar.resolve(str(raw))
        else:
            resolved = None
        if resolved is None:
            return False, f"I couldn't work out the date from '{raw}'."
        context.date = resolved
        return True, resolved.isoformat()

    def _set_time(self, context: ConversationContext, raw: Any, **_: Any) -> tuple[bool, str]:
        try:
            value = normalize_time(str(raw))
        except ValueError:
            return False, f"'{raw}' doesn't look like a time."
        if not is_on_grid(value):
            return False, "We book on the hour or half hour."
        context.time = value
        return True, value

    def _set_name(self, context: ConversationContext, raw: Any, **_: Any) -> tuple[bool, str]:
        value = " ".join(str(raw).split())
        if len(value) < MIN_NAME_LENGTH:
            return False, "That name looks too short."
        context.client_name = value.title()
        return True, context.client_name

    def _set_phone(self, context: ConversationContext, raw: Any, **_: Any) -> tuple[bool, str]:
        digits = re.sub(r"[^\d]", "", str(raw))
        if not MIN_PHONE_DIGITS <= len(digits) <= MAX_PHONE_DIGITS:
            return False, f"The phone number '{raw}' doesn't look right."
        context.client_phone = normalize_phone(str(raw))
        return True, context.client_phone

    def _set_birthdate(self, context: ConversationContext, raw: Any, **_: Any) -> tuple[bool, str]:
        if not isinstance(raw, date) or raw > date.today():
            return False, "That birthdate doesn't look right."
        context.client_birthdate = raw
        return True, raw.isoformat()

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def set_slot(
        self,
        context: ConversationContext,
        name: str,
        raw: Union[str, date],
        calendar: Optional[CalendarTable] = None,
    ) -> tuple[bool, str]:
        """
        Validate ``raw`` and write it into the context.

        Returns:
            (success, message). On failure the context is left unchanged.
        """
        defn = self.get_definition(name)
        slot = self.slots[name]
        previous = getattr(context, defn.context_field)
        slot.attempts += 1

        ok, message = self._validators[name](context, raw, calendar=calendar)
        if not ok:
            slot.failures += 1
            if slot.status == SlotStatus.EMPTY:
                slot.status = SlotStatus.COLLECTED
            logger.debug("Slot '%s' validation failed: %r", name, raw)
            return False, message

        current = getattr(context, defn.context_field)
        if previous is not None and previous != current:
            slot.correction_history.append(str(previous))
            slot.status = SlotStatus.CORRECTED
        else:
            slot.status = SlotStatus.VALIDATED
        slot.failures = 0
        logger.debug("Slot '%s' set to %r", name, current)
        return True, message

    def apply_intent(
        self,
        context: ConversationContext,
        intent: Intent,
        calendar: Optional[CalendarTable] = None,
    ) -> SlotUpdate:
        """Write every slot the intent carries; report what changed or failed."""
        values: dict[str, Any] = {
            "service": intent.service,
            "date": intent.date or intent.date_text,
            "time": intent.time,
            "client_name": intent.client_name,
            "client_phone": intent.client_phone,
            "client_birthdate": intent.client_birthdate,
        }
        update = SlotUpdate()
        for name, raw in values.items():
            if raw is None or raw == "":
                continue
            defn = self.get_definition(name)
            before = getattr(context, defn.context_field)
            ok, message = self.set_slot(context, name, raw, calendar)
            if not ok:
                update.failed[name] = message
            elif getattr(context, defn.context_field) != before:
                update.changed.append(name)
        return update

    def get_next_missing(self, context: ConversationContext) -> Optional[SlotDefinition]:
        """Next required slot the context does not hold yet."""
        for defn in self.SLOT_DEFINITIONS:
            if defn.required and getattr(context, defn.context_field) is None:
                return defn
        return None

    def has_exceeded_retries(self, name: str) -> bool:
        defn = self.get_definition(name)
        return self.slots[name].failures >= defn.max_retries

    def reset(self) -> None:
        for name in self.slots:
            self.slots[name] = SlotValue()

    def get_stats(self) -> dict[str, Any]:
        """Slot collection statistics for the session trace."""
        return {
            "total_attempts": sum(s.attempts for s in self.slots.values()),
            "total_corrections": sum(len(s.correction_history) for s in self.slots.values()),
            "slots_with_failures": [n for n, s in self.slots.items() if s.failures],
        }
