"""Tests for session keys, context expiry and the context store."""

from datetime import date, datetime

from booking_engine.conversation.context_store import parse_session_id, session_phone
from booking_engine.schemas.conversation_schema import ConversationContext
from tests.conftest import NOW


class TestSessionKeys:
    def test_channel_and_phone(self):
        assert parse_session_id("whatsapp:+55 11 98888-7777") == ("whatsapp", "+5511988887777")

    def test_default_channel(self):
        assert parse_session_id("5511988887777") == ("chat", "5511988887777")

    def test_non_phone_identifier_kept(self):
        assert parse_session_id("web:abc-123") == ("web", "abc-123")

    def test_same_phone_different_channels(self):
        assert parse_session_id("web:11988887777") != parse_session_id("whatsapp:11988887777")

    def test_session_phone(self):
        assert session_phone("(11) 98888-7777") == "11988887777"
        assert session_phone("abc") is None
        assert session_phone("123") is None


class TestContextExpiry:
    def test_fresh(self):
        context = ConversationContext(date=date(2026, 10, 21), last_contact=NOW)
        assert not context.is_expired(datetime(2026, 10, 20, 8, 0))

    def test_date_in_past(self):
        context = ConversationContext(date=date(2026, 10, 18), last_contact=NOW)
        assert context.is_expired(NOW)

    def test_quiet_too_long(self):
        context = ConversationContext(last_contact=datetime(2026, 10, 18, 8, 0))
        assert context.is_expired(NOW, ttl_hours=24)

    def test_quiet_within_ttl(self):
        context = ConversationContext(last_contact=datetime(2026, 10, 18, 10, 0))
        assert not context.is_expired(NOW, ttl_hours=24)


class TestContextStore:
    def test_load_missing(self, context_store):
        assert context_store.load(("chat", "1")) is None

    def test_save_and_load_copy(self, context_store):
        key = ("whatsapp", "5511988887777")
        context = ConversationContext(service_id="escova")
        context_store.save(key, context)
        context.service_id = "manicure"
        loaded = context_store.load(key)
        assert loaded.service_id == "escova"
        loaded.time = "14:00"
        assert context_store.load(key).time is None

    def test_clear(self, context_store):
        key = ("chat", "1")
        context_store.save(key, ConversationContext())
        context_store.clear(key)
        assert context_store.load(key) is None

    def test_purge_expired(self, context_store):
        context_store.save(("chat", "old"), ConversationContext(last_contact=datetime(2026, 10, 17, 9, 0)))
        context_store.save(("chat", "new"), ConversationContext(last_contact=NOW))
        assert context_store.purge_expired(NOW, ttl_hours=24) == 1
        assert context_store.load(("chat", "new")) is not None
        assert context_store.load(("chat", "old")) is None
