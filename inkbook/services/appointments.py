"""
Appointment lifecycle service.

Wraps the state machine with persistence: re-read the booking, validate the
change, and commit it with a compare-and-set on status. Also owns the
client cooldown, check-in, and the periodic no-show sweep.
"""

from datetime import datetime, timedelta
from typing import Optional, Union

from inkbook.clock import Clock
from inkbook.config import LifecycleConfig, ReservationConfig, settings
from inkbook.errors import Conflict, Forbidden, InvalidTransition, ValidationError
from inkbook.logging_context import get_request_logger
from inkbook.scheduling.state_machine import AppointmentStateMachine
from inkbook.schemas.booking_schema import (
    Actor,
    ActorRole,
    Booking,
    BookingStatus,
    CooldownRecord,
)
from inkbook.services.reservation import ArtistLockRegistry
from inkbook.stores.booking_store import BookingStore

logger = get_request_logger(__name__)

_COOLDOWN_TRIGGERS = frozenset({BookingStatus.DENIED, BookingStatus.CANCELLED})


def _parse_target(value: Union[BookingStatus, str]) -> BookingStatus:
    if isinstance(value, BookingStatus):
        return value
    try:
        return BookingStatus.parse(value)
    except (ValueError, AttributeError):
        allowed = [s.value for s in BookingStatus]
        raise ValidationError(
            f"target_state must be one of {allowed}, got {value!r}",
            {"target_state": str(value)},
        ) from None


class AppointmentService:
    """Applies lifecycle transitions to stored bookings."""

    def __init__(
        self,
        booking_store: BookingStore,
        clock: Clock,
        locks: ArtistLockRegistry,
        machine: Optional[AppointmentStateMachine] = None,
        reservation_config: Optional[ReservationConfig] = None,
        lifecycle_config: Optional[LifecycleConfig] = None,
    ) -> None:
        self._bookings = booking_store
        self._clock = clock
        self._locks = locks
        self._lifecycle = lifecycle_config or settings.lifecycle
        self._machine = machine or AppointmentStateMachine(self._lifecycle)
        self._reservation = reservation_config or settings.reservation

    @property
    def machine(self) -> AppointmentStateMachine:
        return self._machine

    def transition(
        self,
        booking_id: str,
        actor: Actor,
        target_state: Union[BookingStatus, str],
        reason: str = "",
    ) -> Booking:
        """
        Move a booking to ``target_state`` on behalf of ``actor``.

        Raises:
            ValidationError: Unknown target state.
            NotFound: Unknown booking.
            InvalidTransition: The state machine rejects the change.
            Forbidden: Actor is not a party to the booking.
            Conflict: A concurrent writer changed the booking first.
        """
        target = _parse_target(target_state)
        artist_id = self._bookings.get(booking_id).artist_id

        with self._locks.hold(artist_id, self._reservation.lock_timeout_sec):
            booking = self._bookings.get(booking_id)
            now = self._clock.now()
            updated = self._machine.apply(booking, actor, target, now, reason)
            stored = self._bookings.update_if_status(updated, booking.status)

        logger.info(
            "Booking %s: %s -> %s by %s %s",
            booking_id, booking.status.value, target.value, actor.role.value, actor.id,
        )
        if actor.role == ActorRole.CLIENT and target in _COOLDOWN_TRIGGERS:
            self._start_cooldown(stored, now)
        return stored

    def _start_cooldown(self, booking: Booking, now: datetime) -> None:
        hours = self._reservation.cooldown_hours
        if hours <= 0:
            return
        self._bookings.set_cooldown(CooldownRecord(
            client_id=booking.client_id,
            artist_id=booking.artist_id,
            booking_id=booking.id,
            started_at=now,
            expires_at=now + timedelta(hours=hours),
        ))

    def check_in(self, booking_id: str, actor: Actor) -> Booking:
        """
        Record that the client arrived. Checked-in bookings are never marked no-show.

        Repeating a check-in is a no-op that returns the stored booking.
        """
        booking = self._bookings.get(booking_id)
        with self._locks.hold(booking.artist_id, self._reservation.lock_timeout_sec):
            booking = self._bookings.get(booking_id)
            if not booking.involves(actor):
                raise Forbidden(
                    f"{actor.role.value} '{actor.id}' is not a party to booking '{booking_id}'",
                    {"booking_id": booking_id, "actor_id": actor.id, "actor_role": actor.role.value},
                )
            if booking.status != BookingStatus.ACCEPTED:
                raise InvalidTransition(
                    booking_id, booking.status.value, "checked_in", actor.role.value,
                    "only accepted bookings can be checked in",
                )
            if booking.checked_in_at is not None:
                return booking

            now = self._clock.now()
            opens = booking.start_at - timedelta(minutes=self._lifecycle.check_in_window_minutes)
            if now < opens:
                raise InvalidTransition(
                    booking_id, booking.status.value, "checked_in", actor.role.value,
                    f"check-in opens at {opens.isoformat()}",
                )
            if now >= booking.end_at:
                raise InvalidTransition(
                    booking_id, booking.status.value, "checked_in", actor.role.value,
                    "appointment has already ended",
                )
            updated = booking.model_copy(update={"checked_in_at": now})
            stored = self._bookings.update_if_status(updated, BookingStatus.ACCEPTED)

        logger.info("Booking %s checked in by %s", booking_id, actor.role.value)
        return stored

    def sweep_no_shows(self) -> list[Booking]:
        """Mark every overdue, un-checked-in accepted booking as ``no_show``."""
        now = self._clock.now()
        grace = timedelta(minutes=self._lifecycle.no_show_grace_minutes)
        system = Actor.system()
        marked = []
        for booking in self._bookings.list_by_status(BookingStatus.ACCEPTED):
            if booking.checked_in_at is not None or now < booking.start_at + grace:
                continue
            try:
                marked.append(self.transition(booking.id, system, BookingStatus.NO_SHOW))
            except (InvalidTransition, Conflict) as exc:
                logger.warning("No-show sweep skipped %s: %s", booking.id, exc.message)
        if marked:
            logger.info("No-show sweep marked %d booking(s)", len(marked))
        return marked
