"""Session correlation ID logging context.

Attaches the chat session id to every log record emitted by the
conversation layer, so a single client's turns can be followed across
the session, the context store and the booking mutator.

Usage:
    from booking_engine.logging_context import get_session_logger, set_session_id

    set_session_id("whatsapp:5511999990000")
    logger = get_session_logger(__name__)
    logger.info("Turn received")  # record.session_id == "whatsapp:5511999990000"
"""

import logging
from contextvars import ContextVar

_session_id: ContextVar[str] = ContextVar("session_id", default="-")


def set_session_id(session_id: str) -> None:
    """Set the correlation ID for the current context."""
    _session_id.set(session_id)


def get_session_id() -> str:
    return _session_id.get()


class SessionIdFilter(logging.Filter):
    """Injects session_id into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.session_id = _session_id.get()  # type: ignore[attr-defined]
        return True


def get_session_logger(name: str) -> logging.Logger:
    """Return a logger with the SessionIdFilter attached.

    Formatters may then include ``%(session_id)s``.
    """
    logger = logging.getLogger(name)
    if not any(isinstance(f, SessionIdFilter) for f in logger.filters):
        logger.addFilter(SessionIdFilter())
    return logger
