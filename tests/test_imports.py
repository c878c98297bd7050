"""Tests for import chains and module integrity.

Ensures all public modules can be imported without errors and
that re-exports from __init__.py files work correctly.
"""


class TestSchemaImports:
    def test_import_booking_schema(self):
        from booking_engine.schemas.booking_schema import (
            Booking, BookingOrigin, BookingStatus, ClientInfo, Service,
        )
        assert BookingStatus.CONFIRMED == "Confirmed"
        assert BookingOrigin.BOT == "bot"

    def test_import_schedule_schema(self):
        from booking_engine.schemas.schedule_schema import DayOverride, OverridePatch
        patch = OverridePatch()
        assert patch.closed is None
        assert patch.add_blocked == []

    def test_import_conversation_schema(self):
        from booking_engine.schemas.conversation_schema import ConversationContext, IntentKind
        assert ConversationContext().is_empty()
        assert IntentKind.BOOK == "book"


class TestSchedulingImports:
    def test_package_reexports(self):
        from booking_engine.scheduling import (
            AvailabilityCache,
            AvailabilityResolver,
            BookingMutator,
            ConflictValidator,
            SlotGridGenerator,
            cells_for,
        )
        assert cells_for("10:00", 30) == ["10:00"]


class TestConversationImports:
    def test_package_reexports(self):
        from booking_engine.conversation import (
            BookingState,
            BookingStateMachine,
            CalendarTable,
            ConversationalBookingSession,
            ReplyGuard,
            SlotManager,
            parse_intent,
            parse_session_id,
        )
        assert BookingStateMachine().current_state == BookingState.COLLECTING_SERVICE


class TestExceptionHierarchy:
    def test_everything_is_a_booking_error(self):
        from booking_engine.exceptions import (
            BookingError,
            DuplicateSlotError,
            OverrideConflict,
            SlotConflict,
            StaleAvailability,
            StorageError,
        )
        assert issubclass(StaleAvailability, SlotConflict)
        assert issubclass(DuplicateSlotError, StorageError)
        assert issubclass(OverrideConflict, BookingError)

    def test_only_storage_errors_are_unrecoverable(self):
        from booking_engine.exceptions import SlotConflict, StorageError

        assert SlotConflict("x").recoverable
        assert not StorageError("x").recoverable


class TestLoggingContext:
    def test_filter_adds_session_id(self):
        import logging

        from booking_engine.logging_context import (
            SessionIdFilter,
            get_session_logger,
            set_session_id,
        )

        set_session_id("web:abc")
        record = logging.LogRecord("t", logging.INFO, __file__, 1, "msg", None, None)
        SessionIdFilter().filter(record)
        assert record.session_id == "web:abc"

        logger = get_session_logger("booking_engine.test")
        get_session_logger("booking_engine.test")
        assert sum(isinstance(f, SessionIdFilter) for f in logger.filters) == 1
