"""
Finite state machine for the conversational booking flow.

The booking conversation walks a fixed path:

    CollectingService -> CollectingDate -> CollectingTime
        -> VerifyingAvailability -> CollectingClientInfo -> Committing
        -> Done | Cancelled

Every move is an explicit entry in the transition table. Availability is
always verified before client details are requested, and the only way
into ``Done`` is a successful commit.

Usage:
    sm = BookingStateMachine()
    sm.transition(BookingTrigger.SERVICE_PROVIDED)
    assert sm.current_state == BookingState.COLLECTING_DATE
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class BookingState(str, Enum):
    """All states of a booking conversation."""
    COLLECTING_SERVICE = "collecting_service"
    COLLECTING_DATE = "collecting_date"
    COLLECTING_TIME = "collecting_time"
    VERIFYING_AVAILABILITY = "verifying_availability"
    COLLECTING_CLIENT_INFO = "collecting_client_info"
    COMMITTING = "committing"
    DONE = "done"
    CANCELLED = "cancelled"


class BookingTrigger(str, Enum):
    """Events that cause state transitions."""
    SERVICE_PROVIDED = "service_provided"
    DATE_PROVIDED = "date_provided"
    DATE_UNAVAILABLE = "date_unavailable"
    TIME_PROVIDED = "time_provided"
    SLOT_AVAILABLE = "slot_available"
    SLOT_UNAVAILABLE = "slot_unavailable"
    CLIENT_INFO_COMPLETE = "client_info_complete"
    BOOKING_SUCCESS = "booking_success"
    BOOKING_CONFLICT = "booking_conflict"
    BOOKING_FAILED = "booking_failed"
    DETAILS_CHANGED = "details_changed"
    USER_STOPPED = "user_stopped"
    NEW_REQUEST = "new_request"


ACTIVE_STATES = (
    BookingState.COLLECTING_SERVICE,
    BookingState.COLLECTING_DATE,
    BookingState.COLLECTING_TIME,
    BookingState.VERIFYING_AVAILABILITY,
    BookingState.COLLECTING_CLIENT_INFO,
    BookingState.COMMITTING,
)
TERMINAL_STATES = (BookingState.DONE, BookingState.CANCELLED)


@dataclass
class Transition:
    """A single valid state transition."""
    from_state: BookingState
    to_state: BookingState
    trigger: BookingTrigger
    guard: Optional[Callable[[], bool]] = None


@dataclass
class StateEntry:
    """Recorded history entry for a state visit."""
    state: BookingState
    entered_at: datetime
    trigger: Optional[BookingTrigger] = None


class InvalidTransitionError(Exception):
    """Raised when a transition is not valid from the current state."""


def _build_transitions() -> list[Transition]:
    S, T = BookingState, BookingTrigger
    table = [
        # --- Slot filling, in order ---
        Transition(S.COLLECTING_SERVICE, S.COLLECTING_DATE, T.SERVICE_PROVIDED),
        Transition(S.COLLECTING_DATE, S.COLLECTING_TIME, T.DATE_PROVIDED),
        Transition(S.COLLECTING_DATE, S.COLLECTING_DATE, T.DATE_UNAVAILABLE),
        Transition(S.COLLECTING_TIME, S.VERIFYING_AVAILABILITY, T.TIME_PROVIDED),

        # --- Availability gate ---
        Transition(S.VERIFYING_AVAILABILITY, S.COLLECTING_CLIENT_INFO, T.SLOT_AVAILABLE),
        Transition(S.VERIFYING_AVAILABILITY, S.COLLECTING_TIME, T.SLOT_UNAVAILABLE),

        # --- Commit ---
        Transition(S.COLLECTING_CLIENT_INFO, S.COMMITTING, T.CLIENT_INFO_COMPLETE),
        Transition(S.COMMITTING, S.DONE, T.BOOKING_SUCCESS),
        Transition(S.COMMITTING, S.COLLECTING_TIME, T.BOOKING_CONFLICT),
        Transition(S.COMMITTING, S.COLLECTING_CLIENT_INFO, T.BOOKING_FAILED),

        # --- Restart ---
        Transition(S.DONE, S.COLLECTING_SERVICE, T.NEW_REQUEST),
        Transition(S.CANCELLED, S.COLLECTING_SERVICE, T.NEW_REQUEST),
    ]
    # A change to service, date or time sends the walk back to the start;
    # fields already present are skipped again on the way forward.
    for state in ACTIVE_STATES[1:]:
        table.append(Transition(state, S.COLLECTING_SERVICE, T.DETAILS_CHANGED))
    for state in ACTIVE_STATES:
        table.append(Transition(state, S.CANCELLED, T.USER_STOPPED))
    return table


class BookingStateMachine:
    """
    Deterministic state machine controlling the booking conversation.

    Every transition must be explicitly defined; anything else raises
    ``InvalidTransitionError`` listing the triggers that are allowed.
    """

    TRANSITIONS: list[Transition] = _build_transitions()

    def __init__(self, initial: BookingState = BookingState.COLLECTING_SERVICE) -> None:
        self._current_state = initial
        self._history: list[StateEntry] = [
            StateEntry(state=initial, entered_at=datetime.now(timezone.utc))
        ]
        self._error_count: int = 0

    @property
    def current_state(self) -> BookingState:
        return self._current_state

    @property
    def error_count(self) -> int:
        return self._error_count

    def transition(self, trigger: BookingTrigger) -> BookingState:
        """
        Execute a state transition.

        Raises:
            InvalidTransitionError: If no valid transition exists.
        """
        for t in self.TRANSITIONS:
            if t.from_state == self._current_state and t.trigger == trigger:
                if t.guard is not None and not t.guard():
                    continue

                old_state = self._current_state
                self._current_state = t.to_state
                self._history.append(StateEntry(
                    state=self._current_state,
                    entered_at=datetime.now(timezone.utc),
                    trigger=trigger,
                ))
                if trigger in (BookingTrigger.BOOKING_CONFLICT, BookingTrigger.BOOKING_FAILED):
                    self._error_count += 1

                logger.debug(
                    "State transition: %s -> %s (trigger: %s)",
                    old_state.value, self._current_state.value, trigger.value,
                )
                return self._current_state

        valid = [t.value for t in self.get_valid_triggers()]
        raise InvalidTransitionError(
            f"No valid transition from '{self._current_state.value}' "
            f"with trigger '{trigger.value}'. Valid triggers: {valid}"
        )

    def can(self, trigger: BookingTrigger) -> bool:
        return trigger in self.get_valid_triggers()

    def get_valid_triggers(self) -> list[BookingTrigger]:
        """Return all triggers valid from the current state."""
        return [t.trigger for t in self.TRANSITIONS if t.from_state == self._current_state]

    def get_history(self) -> list[StateEntry]:
        return list(self._history)

    def get_state_trace(self) -> list[str]:
        """Return ordered list of state names visited."""
        return [entry.state.value for entry in self._history]

    def is_terminal(self) -> bool:
        return self._current_state in TERMINAL_STATES
