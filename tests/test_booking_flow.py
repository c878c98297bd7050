"""End-to-end tests for the conversational booking flow."""

from datetime import date

import pytest

from booking_engine.exceptions import StorageError
from booking_engine.logging_context import get_session_id
from booking_engine.schemas.booking_schema import BookingOrigin, BookingStatus, ClientInfo
from booking_engine.schemas.conversation_schema import Intent, IntentKind
from tests.conftest import (
    CLIENT_PHONE,
    NEXT_FRIDAY,
    NEXT_WEDNESDAY,
    SESSION_ID,
    TUESDAY,
    WEDNESDAY,
    chat,
    make_client,
)

OTHER = ClientInfo(name="Ana Lima", phone="5511911112222")

SUCCESS_WORDS = ("booked", "confirmed", "see you", "reference")


def _no_success_claim(reply: str) -> bool:
    lowered = reply.lower()
    return not any(word in lowered for word in SUCCESS_WORDS)


class TestHappyPath:
    def test_step_by_step_booking(self, engine):
        replies = chat(
            engine,
            "Hi, I'd like to book a manicure",
            "next wednesday",
            "14:00",
            "Maria Souza",
            "yes",
        )
        states = [r.state for r in replies]
        assert states == [
            "collecting_date",
            "collecting_time",
            "collecting_client_info",
            "collecting_client_info",
            "done",
        ]
        assert "Which day" in replies[0].reply
        assert "13:00" in replies[1].reply
        assert "full name" in replies[2].reply
        assert "Shall I book" in replies[3].reply
        for reply in replies[:-1]:
            assert not reply.committed
            assert _no_success_claim(reply.reply)

        final = replies[-1]
        assert final.committed
        assert final.booking_id in final.reply
        booking = engine.get_booking(final.booking_id)
        assert booking.origin == BookingOrigin.BOT
        assert (booking.date, booking.time) == (WEDNESDAY, "14:00")
        assert booking.client_name == "Maria Souza"
        assert booking.client_phone == CLIENT_PHONE

    def test_known_details_are_not_asked_again(self, engine):
        reply = engine.advance_conversation(
            SESSION_ID, "I'd like to book a manicure next wednesday at 14:00"
        )
        assert reply.state == "collecting_client_info"
        assert "full name" in reply.reply
        assert engine.session(SESSION_ID).expecting == "client_name"

    def test_returning_client_skips_name(self, engine):
        engine.create_booking(NEXT_FRIDAY, "10:00", "escova", make_client())
        reply = engine.advance_conversation(
            SESSION_ID, "I'd like to book a manicure next wednesday at 14:00"
        )
        assert "Maria Souza" in reply.reply
        assert "Shall I book" in reply.reply

    def test_structured_intents(self, engine):
        engine.advance_conversation(
            SESSION_ID,
            Intent(kind=IntentKind.BOOK, service="escova", date=WEDNESDAY, time="15:00"),
        )
        engine.advance_conversation(SESSION_ID, Intent(client_name="Maria Souza"))
        reply = engine.advance_conversation(SESSION_ID, Intent(kind=IntentKind.CONFIRM))
        assert reply.committed
        assert engine.get_booking(reply.booking_id).time == "15:00"

    def test_session_id_attached_to_logs(self, engine):
        engine.advance_conversation(SESSION_ID, "hello")
        assert get_session_id() == SESSION_ID


class TestAvailabilityBeforeDetails:
    def test_taken_time_offers_alternatives(self, engine):
        engine.create_booking(WEDNESDAY, "14:00", "manicure", OTHER)
        reply = engine.advance_conversation(
            SESSION_ID, "I'd like to book a manicure next wednesday at 14:00"
        )
        assert reply.state == "collecting_time"
        assert "isn't available" in reply.reply
        assert "13:00" in reply.reply
        assert "full name" not in reply.reply

    def test_new_time_after_rejection(self, engine):
        engine.create_booking(WEDNESDAY, "14:00", "manicure", OTHER)
        replies = chat(
            engine,
            "I'd like to book a manicure next wednesday at 14:00",
            "15:00",
        )
        assert replies[-1].state == "collecting_client_info"

    def test_closed_day_suggests_next_open_day(self, engine):
        reply = engine.advance_conversation(SESSION_ID, "I'd like to book a manicure on monday")
        assert reply.state == "collecting_date"
        assert "Monday 26/10" in reply.reply
        assert "Tuesday 27/10" in reply.reply
        assert engine.contexts.load(("whatsapp", CLIENT_PHONE)).date is None

    def test_past_time_today_not_offered(self, engine, clock):
        clock.now = clock.now.replace(day=20, hour=15, minute=10)
        reply = engine.advance_conversation(
            SESSION_ID, "I'd like to book a manicure today"
        )
        assert reply.state == "collecting_time"
        assert "15:00" not in reply.reply
        assert "15:30" in reply.reply


class TestCommitRace:
    def test_slot_taken_between_check_and_commit(self, engine):
        chat(
            engine,
            "I'd like to book a manicure next wednesday at 14:00",
            "Maria Souza",
        )
        engine.create_booking(WEDNESDAY, "14:00", "manicure", OTHER)
        reply = engine.advance_conversation(SESSION_ID, "yes")
        assert not reply.committed
        assert reply.state == "collecting_time"
        assert "isn't available" in reply.reply
        assert _no_success_claim(reply.reply)
        assert len(engine.list_bookings(WEDNESDAY)) == 1

    def test_storage_failure_apologises(self, engine, monkeypatch):
        chat(
            engine,
            "I'd like to book a manicure next wednesday at 14:00",
            "Maria Souza",
        )

        def broken_insert(booking, cells):
            raise StorageError("disk full")

        monkeypatch.setattr(engine.bookings, "insert", broken_insert)
        reply = engine.advance_conversation(SESSION_ID, "yes")
        assert not reply.committed
        assert reply.state == "collecting_client_info"
        assert "nothing was saved" in reply.reply


class TestCorrectionsAndStops:
    def test_deny_at_read_back(self, engine):
        replies = chat(
            engine,
            "I'd like to book a manicure next wednesday at 14:00",
            "Maria Souza",
            "no",
        )
        assert "What would you like to change" in replies[-1].reply
        assert replies[-1].state == "collecting_client_info"

    def test_changing_time_rechecks_availability(self, engine):
        replies = chat(
            engine,
            "I'd like to book a manicure next wednesday at 14:00",
            "Maria Souza",
            "actually at 16:00",
            "yes",
        )
        assert "16:00" in replies[2].reply
        assert replies[-1].committed
        assert engine.get_booking(replies[-1].booking_id).time == "16:00"

    def test_stop_then_new_request(self, engine):
        replies = chat(
            engine,
            "I'd like to book a manicure",
            "stop",
            "I'd like to book an escova",
        )
        assert replies[1].state == "cancelled"
        assert replies[2].state == "collecting_date"
        assert "Escova" in replies[2].reply

    def test_invalid_time_retries_then_handoff(self, engine):
        engine.advance_conversation(
            SESSION_ID, Intent(kind=IntentKind.BOOK, service="manicure", date=WEDNESDAY)
        )
        replies = [
            engine.advance_conversation(SESSION_ID, Intent(time="14:15")) for _ in range(3)
        ]
        assert "try again" in replies[0].reply
        assert "try again" in replies[1].reply
        assert "Someone from our team" in replies[2].reply

    def test_expired_context_starts_over(self, engine, clock):
        engine.advance_conversation(SESSION_ID, "I'd like to book a manicure")
        clock.advance(hours=25)
        reply = engine.advance_conversation(SESSION_ID, "next wednesday")
        assert reply.state == "collecting_service"
        assert "Which service" in reply.reply

    def test_new_booking_after_done(self, engine):
        chat(engine, "I'd like to book a manicure next wednesday at 14:00", "Maria Souza", "yes")
        reply = engine.advance_conversation(SESSION_ID, "I'd like to book an escova next friday")
        assert reply.state == "collecting_time"

    def test_small_talk_after_done(self, engine):
        chat(engine, "I'd like to book a manicure next wednesday at 14:00", "Maria Souza", "yes")
        reply = engine.advance_conversation(SESSION_ID, "thanks!")
        assert reply.state == "done"
        assert "What would you like to do" in reply.reply


class TestExistingBookings:
    def test_cancel_with_enough_notice(self, engine):
        booking = engine.create_booking(NEXT_FRIDAY, "14:00", "escova", make_client())
        reply = engine.advance_conversation(SESSION_ID, "I want to cancel my appointment")
        assert reply.committed
        assert "cancelled" in reply.reply
        assert engine.get_booking(booking.id).status == BookingStatus.CANCELLED

    def test_cancel_too_close_refused(self, engine):
        booking = engine.create_booking(WEDNESDAY, "14:00", "escova", make_client())
        reply = engine.advance_conversation(SESSION_ID, "I want to cancel my appointment")
        assert not reply.committed
        assert "5 days" in reply.reply
        assert engine.get_booking(booking.id).status == BookingStatus.CONFIRMED

    def test_cancel_without_booking(self, engine):
        reply = engine.advance_conversation(SESSION_ID, "I want to cancel my appointment")
        assert "couldn't find" in reply.reply

    def test_reschedule_in_place(self, engine):
        booking = engine.create_booking(NEXT_WEDNESDAY, "14:00", "escova", make_client())
        replies = chat(
            engine,
            "I need to reschedule my appointment",
            "next friday",
            "10:00",
            "yes",
        )
        assert replies[0].state == "collecting_date"
        assert replies[1].state == "collecting_time"
        assert "move your appointment" in replies[2].reply
        assert replies[-1].committed
        assert replies[-1].booking_id == booking.id

        moved = engine.get_booking(booking.id)
        assert (moved.date, moved.time) == (date(2026, 10, 23), "10:00")
        assert moved.previous_slot.date == NEXT_WEDNESDAY
        assert len(engine.bookings.list_for_phone(CLIENT_PHONE)) == 1

    def test_reschedule_can_keep_own_cells(self, engine):
        booking = engine.create_booking(NEXT_WEDNESDAY, "14:00", "corte-feminino", make_client())
        replies = chat(
            engine,
            "I need to reschedule my appointment",
            "28/10",
            "14:30",
            "yes",
        )
        assert replies[-1].committed
        assert engine.get_booking(booking.id).time == "14:30"

    def test_reschedule_too_close_refused(self, engine):
        booking = engine.create_booking(TUESDAY, "10:00", "escova", make_client())
        reply = engine.advance_conversation(SESSION_ID, "I need to reschedule my appointment")
        assert not reply.committed
        assert "2 days" in reply.reply
        assert engine.get_booking(booking.id).date == TUESDAY


@pytest.mark.parametrize("session_id", ["whatsapp:5511988887777", "web:5511988887777"])
def test_channels_keep_separate_contexts(engine, session_id):
    engine.advance_conversation("whatsapp:5511988887777", "I'd like to book a manicure")
    reply = engine.advance_conversation(session_id, "next wednesday")
    expected = "collecting_time" if session_id.startswith("whatsapp") else "collecting_service"
    assert reply.state == expected
