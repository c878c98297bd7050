"""
Offline chat console: runs booking conversations against an in-memory engine.

Uses the real availability resolver, conflict validator, mutator, state
machine, slot manager and reply guard. Messages are turned into intents
by the keyword extractor; no language model and no network calls.

Usage:
    python console_demo.py
    python console_demo.py --scenario conflict
    python console_demo.py --scenario reschedule
"""

import argparse
from datetime import date, timedelta
from typing import Optional

from booking_engine.config import settings
from booking_engine.conversation.date_table import CalendarTable
from booking_engine.engine import BookingEngine
from booking_engine.exceptions import BookingError
from booking_engine.schemas.booking_schema import BookingOrigin, ClientInfo

BLUE = "\033[94m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
DIM = "\033[2m"
RESET = "\033[0m"
BOLD = "\033[1m"

DEMO_PHONE = "5511988887777"
OTHER_CLIENT = ClientInfo(name="Ana Lima", phone="5511911112222")


class ConsoleSession:
    """Plays one chat session in the terminal."""

    # Pre-scripted scenarios for --scenario flag
    SCENARIOS: dict[str, list[str]] = {
        "booking": [
            "Hi! I'd like to book a manicure",
            "next friday",
            "14:00",
            "Maria Souza",
            "yes",
        ],
        "conflict": [
            "I want a manicure next friday at 14:00",
            "15:00",
            "Maria Souza",
            "yes",
        ],
        "reschedule": [
            "I need to reschedule my appointment",
            "next saturday",
            "10:00",
            "yes",
        ],
        "cancel": [
            "I want to cancel my appointment",
        ],
    }

    MAX_INPUT_LENGTH = 500

    def __init__(self, engine: Optional[BookingEngine] = None, phone: str = DEMO_PHONE) -> None:
        self.engine = engine or BookingEngine()
        self.session_id = f"console:{phone}"
        self.phone = phone

    def agent_say(self, text: str) -> None:
        print(f"{GREEN}{BOLD}[Assistant]{RESET} {GREEN}{text}{RESET}")

    def system_log(self, text: str) -> None:
        print(f"{DIM}  >> {text}{RESET}")

    def _next_weekday(self, weekday: int) -> date:
        table = CalendarTable(self.engine.clock().date())
        day = table.next_weekday(weekday)
        return day if day is not None else table.last_day

    def _seed(self, scenario: str) -> None:
        """Put the bookings a scenario depends on in place."""
        if scenario == "conflict":
            friday = self._next_weekday(4)
            booking = self.engine.create_booking(
                friday, "14:00", "manicure", OTHER_CLIENT, origin=BookingOrigin.MANUAL
            )
            self.system_log(f"Seeded {booking.id}: {booking.service_name} {friday} 14:00")
        elif scenario in ("reschedule", "cancel"):
            day = self.engine.clock().date() + timedelta(days=8)
            for _ in range(7):
                if self.engine.query_availability(day, "escova"):
                    break
                day += timedelta(days=1)
            slots = self.engine.query_availability(day, "escova")
            if not slots:
                self.system_log("No free slot found to seed the demo booking")
                return
            booking = self.engine.create_booking(
                day, slots[0], "escova",
                ClientInfo(name="Maria Souza", phone=self.phone),
            )
            self.system_log(f"Seeded {booking.id}: {booking.service_name} {day} {slots[0]}")

    def _process_input(self, text: str) -> None:
        try:
            result = self.engine.advance_conversation(self.session_id, text)
        except BookingError as exc:
            print(f"{RED}  !! {exc.message}{RESET}")
            return
        self.agent_say(result.reply)
        status = f"State: {result.state}"
        if result.committed:
            status += f" | committed {result.booking_id}"
        self.system_log(status)

    def _banner(self, title: str) -> None:
        print()
        print(f"{BOLD}{'=' * 60}{RESET}")
        print(f"{BOLD}  BOOKING ASSISTANT - {title}{RESET}")
        print(f"{BOLD}  Business: {settings.business.name}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")
        print()

    def _summary(self) -> None:
        session = self.engine.session(self.session_id)
        print(f"\n{BOLD}{'=' * 60}{RESET}")
        print(f"{DIM}  State trace: {' -> '.join(session.sm.get_state_trace())}{RESET}")
        print(f"{DIM}  Slot stats: {session.slots.get_stats()}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")

    def run_scenario(self, scenario: str) -> None:
        """Auto-play a pre-scripted scenario."""
        steps = self.SCENARIOS.get(scenario)
        if not steps:
            print(f"{RED}Unknown scenario: {scenario}{RESET}")
            return

        self._banner(f"Scenario: {scenario}")
        self._seed(scenario)
        for step in steps:
            print(f"\n{BLUE}[Client] {RESET}{step}")
            self._process_input(step)
        self._summary()

    def run(self) -> None:
        self._banner("Console")
        print(f"{BOLD}  Type 'quit' to exit{RESET}\n")
        self.agent_say(f"Hi! Welcome to {settings.business.name}. How can I help?")

        while True:
            user_input = input(f"\n{BLUE}[Client] {RESET}").strip()
            if not user_input:
                continue
            if user_input.lower() in ("quit", "exit", "q"):
                print(f"\n{DIM}Session ended.{RESET}")
                break
            if len(user_input) > self.MAX_INPUT_LENGTH:
                self.agent_say("That was quite long. Could you keep it brief for me?")
                continue
            self._process_input(user_input)
        self._summary()


def main() -> None:
    parser = argparse.ArgumentParser(description="Offline chat console")
    parser.add_argument(
        "--scenario",
        choices=sorted(ConsoleSession.SCENARIOS),
        default=None,
        help="Auto-play a pre-scripted scenario instead of interactive mode",
    )
    args = parser.parse_args()

    session = ConsoleSession()
    if args.scenario:
        session.run_scenario(args.scenario)
    else:
        session.run()


if __name__ == "__main__":
    main()
