"""
Reservation coordinator: the only path that puts time on an artist's calendar.

Every reserve or reschedule for an artist runs inside that artist's
critical section, so the re-fetch, overlap check, cutoff check, and insert
happen as one unit. Reservations for different artists never contend.

Usage:
    coordinator = ReservationCoordinator(availability, policies, bookings, clock)
    booking = coordinator.reserve("artist-1", "client-9", slot,
                                  AppointmentType.TATTOO_SESSION, price_cents=40000)
"""

import threading
import weakref
from contextlib import contextmanager
from datetime import timedelta
from typing import Any, Iterator, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from inkbook.clock import Clock
from inkbook.config import ReservationConfig, settings
from inkbook.errors import (
    Conflict,
    CooldownActive,
    Forbidden,
    InvalidTransition,
    ReservationTimeout,
    ValidationError,
)
from inkbook.logging_context import get_request_logger
from inkbook.scheduling.deposit_policy import compute_deposit, is_refund_eligible
from inkbook.scheduling.slot_generator import (
    blocked_intervals,
    find_conflict,
    slot_fits_availability,
)
from inkbook.schemas.booking_schema import (
    Actor,
    ActorRole,
    AppointmentType,
    Booking,
    BookingStatus,
    Slot,
)
from inkbook.stores.availability_store import AvailabilityStore
from inkbook.stores.booking_store import BookingStore
from inkbook.stores.policy_store import PolicyStore
from inkbook.utils import hours_between

logger = get_request_logger(__name__)


class ArtistLockRegistry:
    """One lock per artist, created on first use and dropped once unreferenced."""

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary = weakref.WeakValueDictionary()
        self._guard = threading.Lock()

    def __contains__(self, artist_id: str) -> bool:
        with self._guard:
            return artist_id in self._locks

    def lock_for(self, artist_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(artist_id)
            if lock is None:
                lock = self._locks[artist_id] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, artist_id: str, timeout_sec: float) -> Iterator[None]:
        """Hold the artist's lock, or raise ReservationTimeout after ``timeout_sec``."""
        lock = self.lock_for(artist_id)
        if not lock.acquire(timeout=timeout_sec):
            logger.warning("Lock wait for artist %s exceeded %.2fs", artist_id, timeout_sec)
            raise ReservationTimeout(artist_id, timeout_sec)
        try:
            yield
        finally:
            lock.release()


def _coerce_slot(slot: Union[Slot, dict[str, Any]]) -> Slot:
    if isinstance(slot, Slot):
        return slot
    try:
        return Slot.model_validate(slot)
    except PydanticValidationError as exc:
        raise ValidationError.from_pydantic("Invalid slot", exc) from exc


def _coerce_appointment_type(value: Union[AppointmentType, str]) -> AppointmentType:
    try:
        return AppointmentType(value)
    except ValueError:
        allowed = [t.value for t in AppointmentType]
        raise ValidationError(
            f"appointment_type must be one of {allowed}, got {value!r}",
            {"appointment_type": str(value)},
        ) from None


class ReservationCoordinator:
    """Serialises calendar writes per artist."""

    def __init__(
        self,
        availability_store: AvailabilityStore,
        policy_store: PolicyStore,
        booking_store: BookingStore,
        clock: Clock,
        locks: Optional[ArtistLockRegistry] = None,
        config: Optional[ReservationConfig] = None,
    ) -> None:
        self._availability = availability_store
        self._policies = policy_store
        self._bookings = booking_store
        self._clock = clock
        self._locks = locks or ArtistLockRegistry()
        self._config = config or settings.reservation

    @property
    def locks(self) -> ArtistLockRegistry:
        return self._locks

    def reserve(
        self,
        artist_id: str,
        client_id: str,
        slot: Union[Slot, dict[str, Any]],
        appointment_type: Union[AppointmentType, str],
        note: str = "",
        price_cents: Optional[int] = None,
    ) -> Booking:
        """
        Atomically create a ``pending`` booking for ``slot``.

        Raises:
            ValidationError: Malformed request, or slot outside availability.
            NotFound: Artist has no availability on file.
            CooldownActive: Client is in a rebooking cooldown with this artist.
            Conflict: Slot taken or now inside the cutoff window; re-query slots.
            ReservationTimeout: Critical section not acquired in time.
            PolicyNotConfigured: Paid appointment without a usable deposit policy.
        """
        slot = _coerce_slot(slot)
        kind = _coerce_appointment_type(appointment_type)
        if not client_id:
            raise ValidationError("client_id is required")
        if price_cents is not None and price_cents < 0:
            raise ValidationError(
                f"price_cents must be >= 0, got {price_cents}", {"price_cents": price_cents}
            )
        if kind == AppointmentType.CONSULTATION:
            price_cents = 0
        elif price_cents is None:
            raise ValidationError(
                "price_cents is required for a tattoo_session",
                {"appointment_type": kind.value},
            )

        # Unknown artists fail here, before a lock is created for them.
        self._availability.get(artist_id)
        with self._locks.hold(artist_id, self._config.lock_timeout_sec):
            availability = self._availability.get(artist_id)
            if not slot_fits_availability(availability, slot):
                raise ValidationError(
                    "Slot does not match the artist's availability",
                    {"artist_id": artist_id, "start_at": slot.start_at.isoformat()},
                )

            now = self._clock.now()
            cooldown = self._bookings.active_cooldown(client_id, artist_id, now)
            if cooldown is not None:
                raise CooldownActive(client_id, artist_id, cooldown.expires_at)

            buffer = timedelta(minutes=availability.buffer_minutes)
            live = self._bookings.list_for_artist(
                artist_id, slot.start_at - buffer, slot.end_at + buffer, occupying_only=True
            )
            clash = find_conflict(
                slot.start_at, slot.end_at,
                blocked_intervals(live, availability.buffer_minutes),
            )
            if clash is not None:
                logger.info("Reserve conflict for artist %s at %s", artist_id, slot.start_at)
                raise Conflict(
                    "Slot is no longer available; refresh the slot list",
                    clash[0], clash[1], {"artist_id": artist_id},
                )

            policy = self._policies.find(artist_id)
            cutoff_hours = policy.cutoff_hours if policy is not None else 0
            if slot.start_at < now + timedelta(hours=cutoff_hours):
                raise Conflict(
                    f"Slot starts within the artist's {cutoff_hours}h booking cutoff",
                    details={
                        "artist_id": artist_id,
                        "start_at": slot.start_at.isoformat(),
                        "cutoff_hours": cutoff_hours,
                    },
                )

            quote = compute_deposit(policy, price_cents, artist_id)
            booking = Booking(
                artist_id=artist_id,
                client_id=client_id,
                start_at=slot.start_at,
                end_at=slot.end_at,
                appointment_type=kind,
                status=BookingStatus.PENDING,
                price_cents=price_cents,
                deposit_required_cents=quote.amount_cents,
                deposit_non_refundable=quote.non_refundable,
                deposit_cutoff_hours=cutoff_hours,
                note=note,
                created_at=now,
            )
            stored = self._bookings.insert_if_free(booking, availability.buffer_minutes)

        logger.info(
            "Reserved %s: artist=%s client=%s %s deposit=%d",
            stored.id, artist_id, client_id, kind.value, stored.deposit_required_cents,
        )
        return stored

    def reschedule(
        self,
        booking_id: str,
        actor: Actor,
        new_slot: Union[Slot, dict[str, Any]],
        reason: str = "",
    ) -> Booking:
        """
        Move an open booking to ``new_slot`` under the artist's critical section.

        Raises:
            Forbidden: Actor is not the booking's artist or client.
            InvalidTransition: Booking is no longer pending or accepted.
            ValidationError: Insufficient notice or slot outside availability.
            Conflict: New slot overlaps another booking.
        """
        slot = _coerce_slot(new_slot)
        booking = self._bookings.get(booking_id)
        if actor.role == ActorRole.SYSTEM or not booking.involves(actor):
            raise Forbidden(
                f"{actor.role.value} '{actor.id}' cannot reschedule booking '{booking_id}'",
                {"booking_id": booking_id, "actor_id": actor.id},
            )
        if not booking.occupies_calendar:
            raise InvalidTransition(
                booking_id, booking.status.value, booking.status.value, actor.role.value,
                "only pending or accepted bookings can be rescheduled",
            )

        with self._locks.hold(booking.artist_id, self._config.lock_timeout_sec):
            booking = self._bookings.get(booking_id)
            availability = self._availability.get(booking.artist_id)
            if not slot_fits_availability(availability, slot):
                raise ValidationError(
                    "Slot does not match the artist's availability",
                    {"booking_id": booking_id, "start_at": slot.start_at.isoformat()},
                )

            now = self._clock.now()
            notice = self._config.reschedule_notice_hours
            if slot.start_at < now + timedelta(hours=notice):
                raise ValidationError(
                    f"Rescheduling requires at least {notice} hours notice",
                    {
                        "booking_id": booking_id,
                        "hours_until_appointment": round(hours_between(now, slot.start_at), 1),
                    },
                )

            late = not is_refund_eligible(
                booking.deposit_non_refundable,
                booking.start_at,
                booking.deposit_cutoff_hours,
                now,
            )
            forfeit = booking.deposit_paid_cents > 0 and late
            moved = booking.model_copy(update={
                "start_at": slot.start_at,
                "end_at": slot.end_at,
                "rescheduled_from": booking.start_at,
                "rescheduled_at": now,
                "rescheduled_by": actor.role,
                "deposit_forfeited": booking.deposit_forfeited or forfeit,
                "reschedule_reason": reason,
            })
            stored = self._bookings.move_if_free(
                moved, booking.status, availability.buffer_minutes
            )

        logger.info(
            "Rescheduled %s from %s to %s by %s%s",
            booking_id, booking.start_at.isoformat(), slot.start_at.isoformat(),
            actor.role.value, " (deposit forfeited)" if forfeit else "",
        )
        return stored
