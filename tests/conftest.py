"""Shared test fixtures and helpers."""

from datetime import date, datetime, timedelta
from typing import Optional

import pytest

from booking_engine.config import DEFAULT_FIXED_HOLIDAYS, DEFAULT_WEEKDAY_HOURS
from booking_engine.conversation.context_store import ContextStore
from booking_engine.conversation.guardrails import ReplyGuard
from booking_engine.conversation.slot_manager import SlotManager
from booking_engine.conversation.state_machine import BookingStateMachine
from booking_engine.engine import BookingEngine
from booking_engine.scheduling.availability import AvailabilityCache
from booking_engine.scheduling.holidays import HolidayCalendar
from booking_engine.scheduling.hours import WeekdayHoursTable
from booking_engine.schemas.booking_schema import ClientInfo
from booking_engine.tools.services import ServiceCatalog

# Monday. Tue 9-19, Wed/Thu 13-19, Fri 9-19, Sat 8-14, Mon/Sun closed.
TODAY = date(2026, 10, 19)
NOW = datetime(2026, 10, 19, 9, 0)
TUESDAY = date(2026, 10, 20)
WEDNESDAY = date(2026, 10, 21)
FRIDAY = date(2026, 10, 23)
SATURDAY = date(2026, 10, 24)
SUNDAY = date(2026, 10, 25)
NEXT_MONDAY = date(2026, 10, 26)
NEXT_WEDNESDAY = date(2026, 10, 28)
NEXT_FRIDAY = date(2026, 10, 30)
HOLIDAY_FRIDAY = date(2026, 11, 20)

CLIENT_PHONE = "5511988887777"
SESSION_ID = f"whatsapp:{CLIENT_PHONE}"


class FakeClock:
    """Wall clock the tests can move forward."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeMonotonic:
    """Monotonic seconds counter for cache expiry."""

    def __init__(self) -> None:
        self.value = 1000.0

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


def make_client(name: str = "Maria Souza", phone: str = CLIENT_PHONE) -> ClientInfo:
    """Helper to create booking client details."""
    return ClientInfo(name=name, phone=phone)


def make_engine(
    clock: Optional[FakeClock] = None,
    monotonic: Optional[FakeMonotonic] = None,
    ttl_seconds: float = 30,
) -> BookingEngine:
    """Engine with the default weekday table and fixed holidays only."""
    return BookingEngine(
        hours=WeekdayHoursTable.from_config(DEFAULT_WEEKDAY_HOURS),
        holidays=HolidayCalendar(fixed=DEFAULT_FIXED_HOLIDAYS.split(","), dated=[]),
        cache=AvailabilityCache(ttl_seconds=ttl_seconds, clock=monotonic or FakeMonotonic()),
        clock=clock or FakeClock(NOW),
    )


@pytest.fixture
def clock():
    return FakeClock(NOW)


@pytest.fixture
def monotonic():
    return FakeMonotonic()


@pytest.fixture
def engine(clock, monotonic):
    return make_engine(clock, monotonic)


@pytest.fixture
def catalog():
    return ServiceCatalog()


@pytest.fixture
def state_machine():
    return BookingStateMachine()


@pytest.fixture
def slot_manager(catalog):
    return SlotManager(catalog)


@pytest.fixture
def reply_guard():
    return ReplyGuard()


@pytest.fixture
def context_store():
    return ContextStore()


def chat(engine: BookingEngine, *messages: str, session_id: str = SESSION_ID):
    """Send messages in order; return the list of replies."""
    return [engine.advance_conversation(session_id, message) for message in messages]
