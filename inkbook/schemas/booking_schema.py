"""Booking, slot, and actor data models."""

import uuid
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from inkbook.utils import ensure_utc


class AppointmentType(str, Enum):
    CONSULTATION = "consultation"
    TATTOO_SESSION = "tattoo_session"


class BookingStatus(str, Enum):
    """Closed appointment lifecycle states."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    DENIED = "denied"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"

    @classmethod
    def parse(cls, value: str) -> "BookingStatus":
        """Parse a status, folding the legacy UI labels into the closed set."""
        normalized = value.strip().lower()
        normalized = LEGACY_STATUS_ALIASES.get(normalized, normalized)
        return cls(normalized)


LEGACY_STATUS_ALIASES: dict[str, str] = {
    "booked": "accepted",
    "matched": "accepted",
    "confirmed": "accepted",
    "in-progress": "accepted",
    "in_progress": "accepted",
    "no-show": "no_show",
}

OCCUPYING_STATUSES: frozenset[BookingStatus] = frozenset(
    {BookingStatus.PENDING, BookingStatus.ACCEPTED}
)

TERMINAL_STATUSES: frozenset[BookingStatus] = frozenset(
    {
        BookingStatus.DENIED,
        BookingStatus.COMPLETED,
        BookingStatus.CANCELLED,
        BookingStatus.NO_SHOW,
    }
)


class ActorRole(str, Enum):
    CLIENT = "client"
    ARTIST = "artist"
    SYSTEM = "system"


class Actor(BaseModel):
    """Authenticated caller as supplied by the identity collaborator."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    role: ActorRole

    @classmethod
    def system(cls) -> "Actor":
        return cls(id="system", role=ActorRole.SYSTEM)


class Slot(BaseModel):
    """A bookable window; instants are UTC, local times are the artist's wall clock."""

    model_config = ConfigDict(frozen=True)

    date: str
    start_at: datetime
    end_at: datetime
    local_start: str
    local_end: str
    duration_minutes: int

    @field_validator("start_at", "end_at")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @model_validator(mode="after")
    def _check_order(self) -> "Slot":
        if self.end_at <= self.start_at:
            raise ValueError("slot end_at must be after start_at")
        return self


class SlotListing(BaseModel):
    """Slot listing result; failures degrade to an empty list plus an error code."""

    available: bool
    slots: list[Slot] = Field(default_factory=list)
    next_available: Optional[Slot] = None
    error_code: Optional[str] = None
    message: str = ""


def _new_booking_id() -> str:
    return f"BK-{uuid.uuid4().hex[:10].upper()}"


class Booking(BaseModel):
    """A reserved appointment. Mutated only through the state machine."""

    id: str = Field(default_factory=_new_booking_id)
    artist_id: str
    client_id: str
    start_at: datetime
    end_at: datetime
    appointment_type: AppointmentType = AppointmentType.TATTOO_SESSION
    status: BookingStatus = BookingStatus.PENDING
    price_cents: int = Field(default=0, ge=0)
    deposit_required_cents: int = Field(default=0, ge=0)
    deposit_paid_cents: int = Field(default=0, ge=0)
    deposit_non_refundable: bool = False
    deposit_cutoff_hours: int = Field(default=0, ge=0)
    note: str = ""

    created_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    denied_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[ActorRole] = None
    cancellation_reason: str = ""
    completed_at: Optional[datetime] = None
    no_show_marked_at: Optional[datetime] = None
    no_show_marked_by: Optional[ActorRole] = None
    checked_in_at: Optional[datetime] = None

    payment_reference: Optional[str] = None
    deposit_forfeited: bool = False
    refund_eligible: bool = False
    refunded_cents: int = Field(default=0, ge=0)

    rescheduled_from: Optional[datetime] = None
    rescheduled_at: Optional[datetime] = None
    rescheduled_by: Optional[ActorRole] = None
    reschedule_reason: str = ""

    @field_validator("start_at", "end_at")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @model_validator(mode="after")
    def _check_interval(self) -> "Booking":
        if self.end_at <= self.start_at:
            raise ValueError("booking end_at must be after start_at")
        return self

    @property
    def occupies_calendar(self) -> bool:
        return self.status in OCCUPYING_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def deposit_outstanding_cents(self) -> int:
        return max(0, self.deposit_required_cents - self.deposit_paid_cents)

    def blocked_interval(self, buffer_minutes: int) -> tuple[datetime, datetime]:
        """Calendar time this booking blocks once the buffer is applied on both sides."""
        pad = timedelta(minutes=buffer_minutes)
        return self.start_at - pad, self.end_at + pad

    def involves(self, actor: Actor) -> bool:
        if actor.role == ActorRole.SYSTEM:
            return True
        if actor.role == ActorRole.ARTIST:
            return actor.id == self.artist_id
        return actor.id == self.client_id


class CooldownRecord(BaseModel):
    """Blocks a client from rebooking an artist after they cancel or deny."""

    model_config = ConfigDict(frozen=True)

    client_id: str
    artist_id: str
    booking_id: str
    started_at: datetime
    expires_at: datetime
