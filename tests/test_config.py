"""Tests for configuration loading and validation."""

from dataclasses import replace

import pytest

from inkbook.config import (
    AppConfig,
    AvailabilityConfig,
    LifecycleConfig,
    ReservationConfig,
    _safe_float,
    _safe_int,
    _validate_config,
    load_config,
)


class TestConfigValidation:
    def test_default_config_passes_validation(self):
        config = AppConfig()
        _validate_config(config)  # should not raise

    def test_unknown_timezone(self):
        config = replace(AppConfig(), availability=AvailabilityConfig(default_timezone="Mars/Olympus"))
        with pytest.raises(ValueError, match="DEFAULT_TIMEZONE"):
            _validate_config(config)

    def test_slot_bounds_inverted(self):
        config = replace(
            AppConfig(),
            availability=AvailabilityConfig(min_slot_minutes=60, max_slot_minutes=30),
        )
        with pytest.raises(ValueError, match="MAX_SLOT_MINUTES"):
            _validate_config(config)

    def test_zero_min_slot(self):
        config = replace(AppConfig(), availability=AvailabilityConfig(min_slot_minutes=0))
        with pytest.raises(ValueError, match="MIN_SLOT_MINUTES"):
            _validate_config(config)

    def test_zero_horizon(self):
        config = replace(
            AppConfig(), availability=AvailabilityConfig(next_available_horizon_days=0)
        )
        with pytest.raises(ValueError, match="NEXT_AVAILABLE_HORIZON_DAYS"):
            _validate_config(config)

    def test_lock_timeout_must_be_positive(self):
        config = replace(AppConfig(), reservation=ReservationConfig(lock_timeout_sec=0))
        with pytest.raises(ValueError, match="RESERVATION_LOCK_TIMEOUT_SEC"):
            _validate_config(config)

    def test_negative_cooldown(self):
        config = replace(AppConfig(), reservation=ReservationConfig(cooldown_hours=-1))
        with pytest.raises(ValueError, match="BOOKING_COOLDOWN_HOURS"):
            _validate_config(config)

    def test_negative_grace(self):
        config = replace(AppConfig(), lifecycle=LifecycleConfig(no_show_grace_minutes=-5))
        with pytest.raises(ValueError, match="NO_SHOW_GRACE_MINUTES"):
            _validate_config(config)


class TestEnvParsing:
    def test_safe_int_reads_env(self, monkeypatch):
        monkeypatch.setenv("TEST_INKBOOK_INT", "42")
        assert _safe_int("TEST_INKBOOK_INT", "1") == 42

    def test_safe_int_uses_default(self, monkeypatch):
        monkeypatch.delenv("TEST_INKBOOK_INT", raising=False)
        assert _safe_int("TEST_INKBOOK_INT", "7") == 7

    def test_safe_int_bad_value(self, monkeypatch):
        monkeypatch.setenv("TEST_INKBOOK_INT", "forty")
        with pytest.raises(ValueError, match="TEST_INKBOOK_INT"):
            _safe_int("TEST_INKBOOK_INT", "1")

    def test_safe_float_bad_value(self, monkeypatch):
        monkeypatch.setenv("TEST_INKBOOK_FLOAT", "fast")
        with pytest.raises(ValueError, match="TEST_INKBOOK_FLOAT"):
            _safe_float("TEST_INKBOOK_FLOAT", "1.0")


class TestDefaults:
    def test_load_config_returns_app_config(self):
        config = load_config()
        assert isinstance(config, AppConfig)
        assert config.service_name

    def test_lifecycle_defaults(self):
        lifecycle = LifecycleConfig()
        assert lifecycle.no_show_grace_minutes >= 0
        assert lifecycle.check_in_window_minutes >= 0
