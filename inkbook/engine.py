"""
BookingEngine: the single entry point for the marketplace API layer.

Composes the stores, the reservation coordinator, the appointment service,
and the deposit service. Each public call is tagged with a fresh request id
so its log lines can be followed across modules.

Usage:
    engine = BookingEngine()
    engine.upsert_availability("artist-1", {...})
    listing = engine.list_slots("artist-1", "2025-03-17", duration_minutes=120)
    booking = engine.reserve("artist-1", "client-9", listing.slots[0], "tattoo_session",
                             price_cents=40000)
"""

from datetime import date, timedelta
from typing import Any, Optional, Union

from inkbook.clock import Clock, SystemClock
from inkbook.config import AppConfig, settings
from inkbook.errors import BookingEngineError, Forbidden, ValidationError
from inkbook.logging_context import get_request_logger, new_request_id
from inkbook.scheduling.slot_generator import day_bounds, generate_slots, resolve_duration
from inkbook.schemas.availability_schema import Availability
from inkbook.schemas.booking_schema import (
    Actor,
    ActorRole,
    AppointmentType,
    Booking,
    BookingStatus,
    Slot,
    SlotListing,
)
from inkbook.services.appointments import AppointmentService
from inkbook.services.payments import DepositService, MockPaymentProcessor, PaymentProcessor
from inkbook.services.reservation import ArtistLockRegistry, ReservationCoordinator
from inkbook.stores.availability_store import AvailabilityStore
from inkbook.stores.booking_store import BookingStore
from inkbook.stores.policy_store import PolicyRecord, PolicyStore

logger = get_request_logger(__name__)

DateLike = Union[date, str]


def _parse_day(value: DateLike) -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValidationError(
            f"date must be YYYY-MM-DD, got {value!r}", {"date": str(value)}
        ) from None


def _require_owner(actor: Optional[Actor], artist_id: str, what: str) -> None:
    if actor is None:
        return
    if actor.role != ActorRole.ARTIST or actor.id != artist_id:
        raise Forbidden(
            f"Only artist '{artist_id}' may change their {what}",
            {"artist_id": artist_id, "actor_id": actor.id, "actor_role": actor.role.value},
        )


class BookingEngine:
    """Availability and booking scheduling for the tattoo marketplace."""

    def __init__(
        self,
        clock: Optional[Clock] = None,
        processor: Optional[PaymentProcessor] = None,
        config: Optional[AppConfig] = None,
        availability_store: Optional[AvailabilityStore] = None,
        policy_store: Optional[PolicyStore] = None,
        booking_store: Optional[BookingStore] = None,
    ) -> None:
        self.config = config or settings
        self.clock = clock or SystemClock()
        self.processor = processor or MockPaymentProcessor()
        self.availability = availability_store or AvailabilityStore()
        self.policies = policy_store or PolicyStore()
        self.bookings = booking_store or BookingStore()

        locks = ArtistLockRegistry()
        self.reservations = ReservationCoordinator(
            self.availability, self.policies, self.bookings, self.clock,
            locks=locks, config=self.config.reservation,
        )
        self.appointments = AppointmentService(
            self.bookings, self.clock, locks,
            reservation_config=self.config.reservation,
            lifecycle_config=self.config.lifecycle,
        )
        self.deposits = DepositService(
            self.bookings, self.processor, locks, config=self.config.reservation,
        )

    # ------------------------------------------------------------------ #
    # Availability & policy
    # ------------------------------------------------------------------ #

    def get_availability(self, artist_id: str) -> Availability:
        new_request_id()
        return self.availability.get(artist_id)

    def upsert_availability(
        self,
        artist_id: str,
        availability: Union[Availability, dict[str, Any]],
        actor: Optional[Actor] = None,
    ) -> Availability:
        """Validate and store an artist's hours. ``actor``, when given, must be that artist."""
        new_request_id()
        _require_owner(actor, artist_id, "availability")
        return self.availability.upsert(artist_id, availability)

    def get_deposit_policy(self, artist_id: str) -> PolicyRecord:
        new_request_id()
        return self.policies.get(artist_id)

    def set_deposit_policy(
        self,
        artist_id: str,
        policy: Union[PolicyRecord, dict[str, Any]],
        actor: Optional[Actor] = None,
    ) -> PolicyRecord:
        new_request_id()
        _require_owner(actor, artist_id, "deposit policy")
        return self.policies.set(artist_id, policy)

    # ------------------------------------------------------------------ #
    # Slots
    # ------------------------------------------------------------------ #

    def _slots_for_day(
        self, availability: Availability, day: date, duration_minutes: Optional[int]
    ) -> list[Slot]:
        policy = self.policies.find(availability.artist_id)
        start, end = day_bounds(availability, day, availability.buffer_minutes)
        existing = self.bookings.list_for_artist(
            availability.artist_id, start, end, occupying_only=True
        )
        return generate_slots(
            availability, day, existing, self.clock.now(),
            duration_minutes=duration_minutes,
            cutoff_hours=policy.cutoff_hours if policy is not None else 0,
        )

    def find_next_available(
        self,
        artist_id: str,
        from_date: DateLike,
        duration_minutes: Optional[int] = None,
        horizon_days: Optional[int] = None,
    ) -> Optional[Slot]:
        """
        Earliest bookable slot on or after ``from_date`` within the horizon.

        Raises:
            NotFound: Artist has no availability.
            ValidationError: Bad date or duration.
        """
        day = _parse_day(from_date)
        horizon = horizon_days or self.config.availability.next_available_horizon_days
        availability = self.availability.get(artist_id)
        resolve_duration(availability, duration_minutes)
        for offset in range(horizon):
            slots = self._slots_for_day(availability, day + timedelta(days=offset), duration_minutes)
            if slots:
                return slots[0]
        return None

    def list_slots(
        self,
        artist_id: str,
        day: DateLike,
        duration_minutes: Optional[int] = None,
    ) -> SlotListing:
        """
        Bookable slots for ``day`` in the artist's timezone.

        Never raises: failures come back as an empty listing with ``error_code``.
        When the day has nothing free, ``next_available`` points at the
        earliest slot on a later day.
        """
        request_id = new_request_id()
        try:
            target = _parse_day(day)
            availability = self.availability.get(artist_id)
            slots = self._slots_for_day(availability, target, duration_minutes)
            if slots:
                return SlotListing(
                    available=True,
                    slots=slots,
                    message=f"{len(slots)} slot(s) available",
                )
            next_slot = self.find_next_available(
                artist_id, target + timedelta(days=1), duration_minutes
            )
        except BookingEngineError as exc:
            logger.warning("[%s] list_slots for %s failed: %s", request_id, artist_id, exc.message)
            return SlotListing(available=False, error_code=exc.code, message=exc.message)
        except ValueError as exc:
            logger.warning("[%s] list_slots for %s failed: %s", request_id, artist_id, exc)
            return SlotListing(
                available=False, error_code=ValidationError.code, message=str(exc)
            )

        message = "No slots available on this date"
        if availability.is_closed(target):
            message = "Artist is not working on this date"
        return SlotListing(available=False, next_available=next_slot, message=message)

    # ------------------------------------------------------------------ #
    # Booking lifecycle
    # ------------------------------------------------------------------ #

    def reserve(
        self,
        artist_id: str,
        client_id: str,
        slot: Union[Slot, dict[str, Any]],
        appointment_type: Union[AppointmentType, str],
        note: str = "",
        price_cents: Optional[int] = None,
    ) -> Booking:
        request_id = new_request_id()
        logger.debug("[%s] reserve artist=%s client=%s", request_id, artist_id, client_id)
        return self.reservations.reserve(
            artist_id, client_id, slot, appointment_type, note=note, price_cents=price_cents
        )

    def transition(
        self,
        booking_id: str,
        actor: Actor,
        target_state: Union[BookingStatus, str],
        reason: str = "",
    ) -> Booking:
        new_request_id()
        return self.appointments.transition(booking_id, actor, target_state, reason)

    def check_in(self, booking_id: str, actor: Actor) -> Booking:
        new_request_id()
        return self.appointments.check_in(booking_id, actor)

    def sweep_no_shows(self) -> list[Booking]:
        new_request_id()
        return self.appointments.sweep_no_shows()

    def reschedule(
        self,
        booking_id: str,
        actor: Actor,
        new_slot: Union[Slot, dict[str, Any]],
        reason: str = "",
    ) -> Booking:
        new_request_id()
        return self.reservations.reschedule(booking_id, actor, new_slot, reason)

    async def pay_deposit(self, booking_id: str, actor: Actor) -> Booking:
        new_request_id()
        return await self.deposits.pay_deposit(booking_id, actor)

    async def refund_deposit(self, booking_id: str) -> Booking:
        new_request_id()
        return await self.deposits.refund_deposit(booking_id)

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    def get_booking(self, booking_id: str) -> Booking:
        return self.bookings.get(booking_id)

    def list_bookings_for_day(self, artist_id: str, day: DateLike) -> list[Booking]:
        """All of the artist's bookings overlapping their local ``day``, any status."""
        availability = self.availability.get(artist_id)
        start, end = day_bounds(availability, _parse_day(day))
        return self.bookings.list_for_artist(artist_id, start, end)

    def list_client_bookings(self, client_id: str) -> list[Booking]:
        return self.bookings.list_for_client(client_id)

    def list_artist_bookings(self, artist_id: str) -> list[Booking]:
        return self.bookings.list_for_artist(artist_id)

    def reset(self) -> None:
        """Clear every store. Used by test fixtures and the demo."""
        self.availability.reset()
        self.policies.reset()
        self.bookings.reset()
