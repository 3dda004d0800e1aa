"""Shared test fixtures and helpers."""

from datetime import date, datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

import pytest

from inkbook.clock import FixedClock
from inkbook.config import LifecycleConfig
from inkbook.engine import BookingEngine
from inkbook.scheduling.state_machine import AppointmentStateMachine
from inkbook.schemas.availability_schema import Availability
from inkbook.schemas.booking_schema import (
    Actor,
    ActorRole,
    AppointmentType,
    Booking,
    BookingStatus,
    Slot,
)
from inkbook.utils import hhmm_to_minutes, local_instant

ARTIST_ID = "artist-1"
CLIENT_ID = "client-1"
NEW_YORK = ZoneInfo("America/New_York")

# Monday 2025-03-10, 09:00 in New York (EDT, UTC-4).
NOW = datetime(2025, 3, 10, 13, 0, tzinfo=timezone.utc)

# Friday of the same week: comfortably outside a 48h cutoff.
FRIDAY = date(2025, 3, 14)

WORKDAY = [{"start": "09:00", "end": "17:00"}]

DEFAULT_POLICY = {
    "mode": "percent",
    "percent": 0.2,
    "min_cents": 2000,
    "max_cents": 5000,
    "non_refundable": True,
    "cutoff_hours": 48,
}


def local(year: int, month: int, day: int, hour: int, minute: int = 0) -> datetime:
    """New York wall-clock time as a UTC instant."""
    return datetime(year, month, day, hour, minute, tzinfo=NEW_YORK).astimezone(timezone.utc)


def make_availability(artist_id: str = ARTIST_ID, **overrides) -> Availability:
    """Helper to create an Availability: Mon-Sat 09:00-17:00 in New York."""
    data = {
        "artist_id": artist_id,
        "timezone": "America/New_York",
        "slot_minutes": 60,
        "buffer_minutes": 0,
        "weekly": {day: WORKDAY for day in ("mon", "tue", "wed", "thu", "fri", "sat")},
        "exceptions": {},
    }
    data.update(overrides)
    return Availability.model_validate(data)


def make_slot(day: date, start: str, minutes: int = 60) -> Slot:
    """Helper to build a Slot from a New York wall-clock start time."""
    start_at = local_instant(day, hhmm_to_minutes(start), NEW_YORK)
    end_at = start_at + timedelta(minutes=minutes)
    return Slot(
        date=day.isoformat(),
        start_at=start_at,
        end_at=end_at,
        local_start=start_at.astimezone(NEW_YORK).strftime("%H:%M"),
        local_end=end_at.astimezone(NEW_YORK).strftime("%H:%M"),
        duration_minutes=minutes,
    )


def make_booking(
    start_at: Optional[datetime] = None,
    minutes: int = 60,
    status: BookingStatus = BookingStatus.PENDING,
    artist_id: str = ARTIST_ID,
    client_id: str = CLIENT_ID,
    **overrides,
) -> Booking:
    """Helper to create a Booking with sensible defaults (Friday 10:00 local)."""
    start_at = start_at or local(2025, 3, 14, 10)
    return Booking(
        artist_id=artist_id,
        client_id=client_id,
        start_at=start_at,
        end_at=start_at + timedelta(minutes=minutes),
        appointment_type=overrides.pop("appointment_type", AppointmentType.TATTOO_SESSION),
        status=status,
        **overrides,
    )


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def machine():
    return AppointmentStateMachine(LifecycleConfig())


@pytest.fixture
def artist():
    return Actor(id=ARTIST_ID, role=ActorRole.ARTIST)


@pytest.fixture
def client_actor():
    return Actor(id=CLIENT_ID, role=ActorRole.CLIENT)


@pytest.fixture
def engine(clock):
    """Engine with a fixed clock and no data."""
    eng = BookingEngine(clock=clock)
    yield eng
    eng.reset()


@pytest.fixture
def seeded_engine(engine):
    """Engine with the default artist's hours and deposit policy on file."""
    engine.upsert_availability(ARTIST_ID, make_availability())
    engine.set_deposit_policy(ARTIST_ID, DEFAULT_POLICY)
    return engine


@pytest.fixture
def processor(engine):
    return engine.processor
