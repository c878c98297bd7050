"""
Centralized configuration with environment variable overrides.

Business hours, holidays, cache lifetimes and conversation policies are
configurable here. Nothing is hardcoded in scheduling or session logic.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

WEEKDAY_KEYS = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")

# Provisional table. The public booking page and the staff console of the
# previous system disagreed on Wednesday/Thursday and on closed days; the
# business owner has to confirm the real table through WEEKDAY_HOURS.
DEFAULT_WEEKDAY_HOURS: dict[str, Optional[list[int]]] = {
    "mon": None,
    "tue": [9, 19],
    "wed": [13, 19],
    "thu": [13, 19],
    "fri": [9, 19],
    "sat": [8, 14],
    "sun": None,
}

DEFAULT_FIXED_HOLIDAYS = (
    "01-01,04-21,05-01,09-07,10-12,11-02,11-15,11-20,12-04,12-25"
)
DEFAULT_DATED_HOLIDAYS = "2025-03-03,2025-03-04,2025-04-18,2025-06-19"


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


def _split_list(env_var: str, default: str) -> tuple[str, ...]:
    raw = os.getenv(env_var, default)
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def _parse_weekday_hours(raw: Optional[str]) -> dict[str, Optional[list[int]]]:
    """Parse the WEEKDAY_HOURS JSON object.

    Each key is a weekday (``mon`` .. ``sun``); each value is either
    ``null`` (closed) or ``[start_hour, end_hour]``. Missing weekdays
    are treated as closed.
    """
    if not raw:
        return dict(DEFAULT_WEEKDAY_HOURS)
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        raise ValueError(f"Invalid JSON for WEEKDAY_HOURS: {raw!r}") from None
    if not isinstance(data, dict):
        raise ValueError("WEEKDAY_HOURS must be a JSON object keyed by weekday")

    table: dict[str, Optional[list[int]]] = {}
    for key in WEEKDAY_KEYS:
        value = data.get(key)
        if value is None:
            table[key] = None
            continue
        if not isinstance(value, list) or len(value) != 2:
            raise ValueError(f"WEEKDAY_HOURS[{key!r}] must be null or [start, end]")
        table[key] = [int(value[0]), int(value[1])]
    unknown = set(data) - set(WEEKDAY_KEYS)
    if unknown:
        raise ValueError(f"Unknown weekday keys in WEEKDAY_HOURS: {sorted(unknown)}")
    return table


@dataclass(frozen=True)
class BusinessConfig:
    """Business-specific settings loaded from environment or defaults."""

    name: str = os.getenv("BUSINESS_NAME", "Studio Santa Bárbara")
    timezone: str = os.getenv("BUSINESS_TIMEZONE", "America/Sao_Paulo")


@dataclass(frozen=True)
class ScheduleConfig:
    """Grid, business hours, holidays and availability cache settings."""

    slot_step_minutes: int = _safe_int("SLOT_STEP_MINUTES", "30")
    default_service_duration: int = _safe_int("DEFAULT_SERVICE_DURATION", "60")
    availability_cache_ttl_sec: int = _safe_int("AVAILABILITY_CACHE_TTL", "30")
    max_suggestions: int = _safe_int("MAX_SUGGESTIONS", "2")
    suggestion_search_days: int = _safe_int("SUGGESTION_SEARCH_DAYS", "7")
    weekday_hours: dict[str, Optional[list[int]]] = field(
        default_factory=lambda: _parse_weekday_hours(os.getenv("WEEKDAY_HOURS"))
    )
    weekday_hours_provisional: bool = os.getenv("WEEKDAY_HOURS") is None
    fixed_holidays: tuple[str, ...] = _split_list("HOLIDAYS_FIXED", DEFAULT_FIXED_HOLIDAYS)
    dated_holidays: tuple[str, ...] = _split_list("HOLIDAYS_DATED", DEFAULT_DATED_HOLIDAYS)


@dataclass(frozen=True)
class ConversationConfig:
    """Chat session policies."""

    context_ttl_hours: int = _safe_int("CONTEXT_TTL_HOURS", "24")
    calendar_lookahead_days: int = _safe_int("CALENDAR_LOOKAHEAD_DAYS", "15")
    max_times_listed: int = _safe_int("MAX_TIMES_LISTED", "8")
    cancel_min_days_notice: int = _safe_int("CANCEL_MIN_DAYS_NOTICE", "5")
    reschedule_min_days_notice: int = _safe_int("RESCHEDULE_MIN_DAYS_NOTICE", "2")
    max_slot_retries: int = _safe_int("MAX_SLOT_RETRIES", "3")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    business: BusinessConfig = field(default_factory=BusinessConfig)
    schedule: ScheduleConfig = field(default_factory=ScheduleConfig)
    conversation: ConversationConfig = field(default_factory=ConversationConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    schedule = config.schedule
    if schedule.slot_step_minutes != 30:
        raise ValueError(
            f"SLOT_STEP_MINUTES must be 30, got {schedule.slot_step_minutes}"
        )
    if schedule.default_service_duration < 1:
        raise ValueError(
            "DEFAULT_SERVICE_DURATION must be >= 1, "
            f"got {schedule.default_service_duration}"
        )
    if not 0 <= schedule.availability_cache_ttl_sec <= 30:
        raise ValueError(
            "AVAILABILITY_CACHE_TTL must be between 0 and 30 seconds, "
            f"got {schedule.availability_cache_ttl_sec}"
        )
    if not 1 <= schedule.max_suggestions <= 2:
        raise ValueError(
            f"MAX_SUGGESTIONS must be 1 or 2, got {schedule.max_suggestions}"
        )
    if schedule.suggestion_search_days < 0:
        raise ValueError(
            f"SUGGESTION_SEARCH_DAYS must be >= 0, got {schedule.suggestion_search_days}"
        )

    for key, hours in schedule.weekday_hours.items():
        if hours is None:
            continue
        start, end = hours
        if not 0 <= start < end <= 23:
            raise ValueError(
                f"WEEKDAY_HOURS[{key!r}] must satisfy 0 <= start < end <= 23, got {hours}"
            )

    conversation = config.conversation
    if conversation.context_ttl_hours < 1:
        raise ValueError(
            f"CONTEXT_TTL_HOURS must be >= 1, got {conversation.context_ttl_hours}"
        )
    if conversation.calendar_lookahead_days < 7:
        raise ValueError(
            "CALENDAR_LOOKAHEAD_DAYS must be >= 7, "
            f"got {conversation.calendar_lookahead_days}"
        )
    for name, value in [
        ("MAX_TIMES_LISTED", conversation.max_times_listed),
        ("MAX_SLOT_RETRIES", conversation.max_slot_retries),
    ]:
        if value < 1:
            raise ValueError(f"{name} must be >= 1, got {value}")
    for name, value in [
        ("CANCEL_MIN_DAYS_NOTICE", conversation.cancel_min_days_notice),
        ("RESCHEDULE_MIN_DAYS_NOTICE", conversation.reschedule_min_days_notice),
    ]:
        if value < 0:
            raise ValueError(f"{name} must be >= 0, got {value}")


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    if config.schedule.weekday_hours_provisional:
        logger.warning(
            "WEEKDAY_HOURS not set; using the provisional default weekday table. "
            "Confirm business hours with the owner."
        )
    logger.info("Configuration loaded for '%s'", config.business.name)
    return config


# Singleton instance
settings = load_config()
