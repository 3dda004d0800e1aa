"""
Centralized configuration with environment variable overrides.

Scheduling bounds, lock timeouts, and lifecycle windows are configurable
here. Nothing is hardcoded in the scheduling or reservation logic.
"""

import logging
import os
from dataclasses import dataclass, field
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


def _safe_float(env_var: str, default: str) -> float:
    """Parse a float from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return float(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid float for {env_var}: {raw!r}"
        ) from None


@dataclass(frozen=True)
class AvailabilityConfig:
    """Bounds applied when validating an artist's availability."""

    default_timezone: str = os.getenv("DEFAULT_TIMEZONE", "America/New_York")
    min_slot_minutes: int = _safe_int("MIN_SLOT_MINUTES", "5")
    max_slot_minutes: int = _safe_int("MAX_SLOT_MINUTES", "240")
    max_buffer_minutes: int = _safe_int("MAX_BUFFER_MINUTES", "240")
    next_available_horizon_days: int = _safe_int("NEXT_AVAILABLE_HORIZON_DAYS", "14")


@dataclass(frozen=True)
class ReservationConfig:
    """Reservation locking and rebooking windows."""

    lock_timeout_sec: float = _safe_float("RESERVATION_LOCK_TIMEOUT_SEC", "5.0")
    cooldown_hours: int = _safe_int("BOOKING_COOLDOWN_HOURS", "24")
    reschedule_notice_hours: int = _safe_int("RESCHEDULE_NOTICE_HOURS", "48")


@dataclass(frozen=True)
class LifecycleConfig:
    """Appointment lifecycle windows used by the state machine."""

    no_show_grace_minutes: int = _safe_int("NO_SHOW_GRACE_MINUTES", "15")
    check_in_window_minutes: int = _safe_int("CHECK_IN_WINDOW_MINUTES", "30")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    availability: AvailabilityConfig = field(default_factory=AvailabilityConfig)
    reservation: ReservationConfig = field(default_factory=ReservationConfig)
    lifecycle: LifecycleConfig = field(default_factory=LifecycleConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    service_name: str = os.getenv("SERVICE_NAME", "inkbook-scheduler")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    avail = config.availability
    try:
        ZoneInfo(avail.default_timezone)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(
            f"DEFAULT_TIMEZONE must be a valid IANA zone, got {avail.default_timezone!r}"
        ) from None
    if avail.min_slot_minutes < 1:
        raise ValueError(
            f"MIN_SLOT_MINUTES must be >= 1, got {avail.min_slot_minutes}"
        )
    if avail.max_slot_minutes < avail.min_slot_minutes:
        raise ValueError(
            "MAX_SLOT_MINUTES must be >= MIN_SLOT_MINUTES, "
            f"got {avail.max_slot_minutes} < {avail.min_slot_minutes}"
        )
    if avail.max_buffer_minutes < 0:
        raise ValueError(
            f"MAX_BUFFER_MINUTES must be >= 0, got {avail.max_buffer_minutes}"
        )
    if avail.next_available_horizon_days < 1:
        raise ValueError(
            "NEXT_AVAILABLE_HORIZON_DAYS must be >= 1, "
            f"got {avail.next_available_horizon_days}"
        )

    if config.reservation.lock_timeout_sec <= 0:
        raise ValueError(
            "RESERVATION_LOCK_TIMEOUT_SEC must be > 0, "
            f"got {config.reservation.lock_timeout_sec}"
        )

    for name, value in [
        ("BOOKING_COOLDOWN_HOURS", config.reservation.cooldown_hours),
        ("RESCHEDULE_NOTICE_HOURS", config.reservation.reschedule_notice_hours),
        ("NO_SHOW_GRACE_MINUTES", config.lifecycle.no_show_grace_minutes),
        ("CHECK_IN_WINDOW_MINUTES", config.lifecycle.check_in_window_minutes),
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
    logger.info("Configuration loaded for '%s'", config.service_name)
    return config


# Singleton instance
settings = load_config()
