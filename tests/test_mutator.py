"""Tests for booking mutations and the no-double-booking guarantee."""

import threading
from datetime import date, datetime
from itertools import combinations

import pytest

from booking_engine.exceptions import (
    BookingNotFound,
    DayClosed,
    OutOfBusinessHours,
    ServiceNotFound,
    SlotConflict,
    StaleAvailability,
    StorageError,
    ValidationError,
)
from booking_engine.schemas.booking_schema import (
    BookingOrigin,
    BookingStatus,
    ClientInfo,
)
from tests.conftest import (
    CLIENT_PHONE,
    FRIDAY,
    NEXT_MONDAY,
    NEXT_WEDNESDAY,
    SATURDAY,
    TUESDAY,
    WEDNESDAY,
    make_client,
)

OTHER = ClientInfo(name="Ana Lima", phone="(11) 91111-2222")


class TestCreate:
    def test_creates_confirmed_booking(self, engine):
        booking = engine.create_booking(WEDNESDAY, "14:00", "escova", make_client())
        assert booking.id.startswith("BK-")
        assert booking.status == BookingStatus.CONFIRMED
        assert booking.service_name == "Escova"
        assert booking.origin == BookingOrigin.MANUAL
        assert engine.get_booking(booking.id) == booking

    def test_accepts_iso_string_and_seconds(self, engine):
        booking = engine.create_booking("2026-10-21", "14:00:00", "escova", make_client())
        assert booking.date == WEDNESDAY
        assert booking.time == "14:00"

    def test_upserts_client(self, engine):
        engine.create_booking(WEDNESDAY, "14:00", "escova", OTHER)
        client = engine.clients.lookup("11911112222")
        assert client.name == "Ana Lima"
        assert client.booking_count == 1

    def test_optional_fields_stored(self, engine):
        booking = engine.create_booking(
            WEDNESDAY, "14:00", "escova", make_client(),
            professional_id="P1", professional_name="Bia",
            discount_percent=10, discount_reason="Aniversário", notes="Primeira vez",
        )
        assert booking.professional_name == "Bia"
        assert booking.discount_percent == 10
        assert booking.notes == "Primeira vez"

    def test_overlap_rejected_with_suggestions(self, engine):
        engine.create_booking(WEDNESDAY, "14:00", "corte-feminino", make_client())
        with pytest.raises(SlotConflict) as exc_info:
            engine.create_booking(WEDNESDAY, "14:30", "corte-masculino", OTHER)
        suggestions = exc_info.value.suggestions
        assert 1 <= len(suggestions) <= 2
        assert all(s.time not in ("14:00", "14:30") for s in suggestions)

    def test_failed_create_does_not_touch_client(self, engine):
        engine.create_booking(WEDNESDAY, "14:00", "corte-feminino", make_client())
        with pytest.raises(SlotConflict):
            engine.create_booking(WEDNESDAY, "14:00", "corte-masculino", OTHER)
        assert engine.clients.lookup(OTHER.phone) is None

    @pytest.mark.parametrize("time", ["14:15", "25:00", "", "two pm"])
    def test_bad_time(self, engine, time):
        with pytest.raises(ValidationError):
            engine.create_booking(WEDNESDAY, time, "escova", make_client())

    def test_bad_date(self, engine):
        with pytest.raises(ValidationError):
            engine.create_booking("21/10/2026", "14:00", "escova", make_client())

    def test_missing_client_name(self, engine):
        with pytest.raises(ValidationError):
            engine.create_booking(WEDNESDAY, "14:00", "escova", ClientInfo(name=" ", phone=CLIENT_PHONE))

    def test_bad_phone(self, engine):
        with pytest.raises(ValidationError):
            engine.create_booking(WEDNESDAY, "14:00", "escova", ClientInfo(name="Ana", phone="123"))

    def test_unknown_service(self, engine):
        with pytest.raises(ServiceNotFound):
            engine.create_booking(WEDNESDAY, "14:00", "massagem", make_client())

    def test_closed_day(self, engine):
        with pytest.raises(DayClosed):
            engine.create_booking(NEXT_MONDAY, "10:00", "escova", make_client())

    def test_runs_past_close(self, engine):
        with pytest.raises(OutOfBusinessHours):
            engine.create_booking(SATURDAY, "13:30", "corte-feminino", make_client())

    def test_past_date_rejected_for_bot(self, engine):
        with pytest.raises(ValidationError, match="past"):
            engine.create_booking(
                date(2026, 10, 16), "10:00", "escova", make_client(), origin=BookingOrigin.BOT
            )

    def test_past_date_allowed_for_staff(self, engine):
        booking = engine.create_booking(date(2026, 10, 16), "10:00", "escova", make_client())
        assert booking.date == date(2026, 10, 16)

    @pytest.mark.parametrize("origin", [BookingOrigin.EXTERNAL_LINK, BookingOrigin.BOT])
    def test_past_time_today_rejected_for_clients(self, engine, clock, origin):
        clock.now = datetime(2026, 10, 20, 15, 0)
        for start in ("09:00", "15:00"):
            with pytest.raises(ValidationError, match="already passed"):
                engine.create_booking(TUESDAY, start, "escova", make_client(), origin=origin)
        assert engine.list_bookings(TUESDAY) == []
        booking = engine.create_booking(TUESDAY, "15:30", "escova", make_client(), origin=origin)
        assert booking.time == "15:30"

    def test_past_time_today_allowed_for_staff(self, engine, clock):
        clock.now = datetime(2026, 10, 20, 15, 0)
        booking = engine.create_booking(TUESDAY, "09:00", "escova", make_client())
        assert booking.time == "09:00"

    def test_staff_can_skip_hours(self, engine):
        booking = engine.create_booking(
            NEXT_MONDAY, "10:00", "escova", make_client(), enforce_hours=False
        )
        assert booking.date == NEXT_MONDAY

    def test_storage_failure_propagates(self, engine, monkeypatch):
        def broken_insert(booking, cells):
            raise StorageError("disk full")

        monkeypatch.setattr(engine.bookings, "insert", broken_insert)
        with pytest.raises(StorageError):
            engine.create_booking(WEDNESDAY, "14:00", "escova", make_client())


class TestConcurrentCreate:
    def test_lost_race_is_stale_and_leaves_client_alone(self, engine, monkeypatch):
        engine.create_booking(FRIDAY, "10:00", "corte-feminino", make_client())
        # Validation passes as if it ran before the first write landed.
        monkeypatch.setattr(
            engine.validator, "validate", lambda *args, **kwargs: ["10:00", "10:30"]
        )
        with pytest.raises(StaleAvailability) as exc_info:
            engine.create_booking(FRIDAY, "10:00", "corte-feminino", OTHER)
        assert exc_info.value.suggestions
        assert engine.clients.lookup(OTHER.phone) is None
        assert len(engine.list_bookings(FRIDAY)) == 1

    def test_exactly_one_writer_wins(self, engine):
        barrier = threading.Barrier(4)
        results, errors = [], []

        def attempt(index):
            client = ClientInfo(name=f"Cliente {index}", phone=f"551190000000{index}")
            barrier.wait()
            try:
                results.append(engine.create_booking(FRIDAY, "10:00", "corte-feminino", client))
            except SlotConflict as exc:
                errors.append(exc)

        threads = [threading.Thread(target=attempt, args=(i,)) for i in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(results) == 1
        assert len(errors) == 3
        assert len(engine.list_bookings(FRIDAY)) == 1

    def test_overlapping_services_race(self, engine):
        barrier = threading.Barrier(2)
        outcomes = []

        def attempt(time, service_id, client):
            barrier.wait()
            try:
                engine.create_booking(FRIDAY, time, service_id, client)
                outcomes.append("ok")
            except SlotConflict:
                outcomes.append("conflict")

        threads = [
            threading.Thread(target=attempt, args=("10:00", "corte-feminino", make_client())),
            threading.Thread(target=attempt, args=("10:30", "corte-masculino", OTHER)),
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sorted(outcomes) == ["conflict", "ok"]

    def test_active_bookings_never_share_a_cell(self, engine):
        services = ["escova", "corte-masculino", "coloracao", "manicure"]
        for time in ["09:00", "09:30", "10:00", "10:30", "11:00", "13:00"]:
            for service_id in services:
                try:
                    engine.create_booking(FRIDAY, time, service_id, make_client())
                except SlotConflict:
                    pass
        cells = engine.occupancy.occupancy_by_booking(FRIDAY)
        for (_, a), (_, b) in combinations(cells.items(), 2):
            assert not set(a) & set(b)


class TestCancelCompleteDelete:
    def test_cancel_frees_cells(self, engine):
        booking = engine.create_booking(WEDNESDAY, "14:00", "escova", make_client())
        cancelled = engine.cancel_booking(booking.id)
        assert cancelled.status == BookingStatus.CANCELLED
        assert "14:00" in engine.query_availability(WEDNESDAY, "escova")
        engine.create_booking(WEDNESDAY, "14:00", "escova", OTHER)

    def test_cancel_is_idempotent(self, engine):
        booking = engine.create_booking(WEDNESDAY, "14:00", "escova", make_client())
        engine.cancel_booking(booking.id)
        assert engine.cancel_booking(booking.id).status == BookingStatus.CANCELLED

    def test_cancel_unknown(self, engine):
        with pytest.raises(BookingNotFound):
            engine.cancel_booking("BK-FFFFFF")

    def test_complete(self, engine):
        booking = engine.create_booking(WEDNESDAY, "14:00", "escova", make_client())
        assert engine.complete_booking(booking.id).status == BookingStatus.COMPLETED

    def test_complete_requires_confirmed(self, engine):
        booking = engine.create_booking(WEDNESDAY, "14:00", "escova", make_client())
        engine.cancel_booking(booking.id)
        with pytest.raises(ValidationError):
            engine.complete_booking(booking.id)

    def test_completed_booking_still_occupies(self, engine):
        booking = engine.create_booking(WEDNESDAY, "14:00", "escova", make_client())
        engine.complete_booking(booking.id)
        assert "14:00" not in engine.query_availability(WEDNESDAY, "escova")

    def test_delete_cancelled(self, engine):
        booking = engine.create_booking(WEDNESDAY, "14:00", "escova", make_client())
        engine.cancel_booking(booking.id)
        engine.delete_booking(booking.id)
        with pytest.raises(BookingNotFound):
            engine.get_booking(booking.id)

    def test_delete_past(self, engine):
        booking = engine.create_booking(date(2026, 10, 16), "10:00", "escova", make_client())
        engine.delete_booking(booking.id)
        assert engine.bookings.get(booking.id) is None

    def test_delete_upcoming_active_refused(self, engine):
        booking = engine.create_booking(WEDNESDAY, "14:00", "escova", make_client())
        with pytest.raises(ValidationError):
            engine.delete_booking(booking.id)

    def test_list_bookings(self, engine):
        first = engine.create_booking(WEDNESDAY, "15:00", "escova", make_client())
        second = engine.create_booking(WEDNESDAY, "13:00", "escova", OTHER)
        engine.cancel_booking(first.id)
        assert [b.id for b in engine.list_bookings(WEDNESDAY)] == [second.id]
        assert [b.id for b in engine.list_bookings(WEDNESDAY, include_inactive=True)] == [
            second.id, first.id,
        ]


class TestReschedule:
    def test_moves_in_place(self, engine):
        booking = engine.create_booking(WEDNESDAY, "14:00", "escova", make_client())
        moved = engine.reschedule_booking(booking.id, FRIDAY, "10:00")
        assert moved.id == booking.id
        assert (moved.date, moved.time) == (FRIDAY, "10:00")
        assert moved.previous_slot.date == WEDNESDAY
        assert moved.previous_slot.time == "14:00"
        assert moved.updated_at is not None
        assert "14:00" in engine.query_availability(WEDNESDAY, "escova")
        assert "10:00" not in engine.query_availability(FRIDAY, "escova")

    def test_overlap_with_itself_allowed(self, engine):
        booking = engine.create_booking(WEDNESDAY, "14:00", "corte-feminino", make_client())
        moved = engine.reschedule_booking(booking.id, new_time="14:30")
        assert moved.time == "14:30"
        assert engine.occupancy.occupied(WEDNESDAY) == {"14:30", "15:00"}

    def test_change_service(self, engine):
        booking = engine.create_booking(WEDNESDAY, "14:00", "corte-masculino", make_client())
        moved = engine.reschedule_booking(booking.id, new_service_id="coloracao")
        assert moved.service_name == "Coloração"
        assert engine.occupancy.occupied(WEDNESDAY) == {"14:00", "14:30", "15:00", "15:30"}

    def test_conflict_keeps_original(self, engine):
        booking = engine.create_booking(WEDNESDAY, "14:00", "escova", make_client())
        engine.create_booking(WEDNESDAY, "16:00", "escova", OTHER)
        with pytest.raises(SlotConflict) as exc_info:
            engine.reschedule_booking(booking.id, new_time="16:00")
        assert exc_info.value.suggestions
        current = engine.get_booking(booking.id)
        assert current.time == "14:00"
        assert current.previous_slot is None
        assert engine.occupancy.occupied(WEDNESDAY) == {"14:00", "14:30", "16:00", "16:30"}

    def test_noop(self, engine):
        booking = engine.create_booking(WEDNESDAY, "14:00", "escova", make_client())
        assert engine.reschedule_booking(booking.id, WEDNESDAY, "14:00") == booking

    def test_cancelled_cannot_move(self, engine):
        booking = engine.create_booking(WEDNESDAY, "14:00", "escova", make_client())
        engine.cancel_booking(booking.id)
        with pytest.raises(ValidationError):
            engine.reschedule_booking(booking.id, new_time="15:00")

    def test_into_the_past(self, engine):
        booking = engine.create_booking(NEXT_WEDNESDAY, "14:00", "escova", make_client())
        with pytest.raises(ValidationError, match="past"):
            engine.reschedule_booking(booking.id, date(2026, 10, 16), "10:00")

    def test_into_an_earlier_hour_today(self, engine, clock):
        clock.now = datetime(2026, 10, 20, 15, 0)
        booking = engine.create_booking(NEXT_WEDNESDAY, "14:00", "escova", make_client())
        with pytest.raises(ValidationError, match="already passed"):
            engine.reschedule_booking(booking.id, TUESDAY, "10:00")
        assert engine.reschedule_booking(booking.id, TUESDAY, "16:00").date == TUESDAY

    def test_outside_hours(self, engine):
        booking = engine.create_booking(TUESDAY, "09:00", "escova", make_client())
        with pytest.raises(DayClosed):
            engine.reschedule_booking(booking.id, NEXT_MONDAY)
