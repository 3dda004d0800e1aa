"""
Finite state machine for the appointment lifecycle.

Defines who may move a booking between states and when. Every transition
is listed explicitly; anything not in the table is rejected with an
InvalidTransition naming the current state, requested state, and actor.

    pending  -> accepted   (artist, before start)
    pending  -> denied     (artist or client, before start)
    accepted -> cancelled  (artist or client, before end)
    accepted -> completed  (artist, after end)
    accepted -> no_show    (system after start + grace; artist after start)

Usage:
    machine = AppointmentStateMachine()
    updated = machine.apply(booking, artist, BookingStatus.ACCEPTED, now)
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from inkbook.config import LifecycleConfig, settings
from inkbook.errors import Forbidden, InvalidTransition
from inkbook.scheduling.deposit_policy import is_refund_eligible
from inkbook.schemas.booking_schema import Actor, ActorRole, Booking, BookingStatus
from inkbook.utils import ensure_utc

logger = logging.getLogger(__name__)

# A guard returns None when the transition may proceed, else the reason it may not.
Guard = Callable[[Booking, datetime, LifecycleConfig], Optional[str]]


def _before_start(booking: Booking, now: datetime, _: LifecycleConfig) -> Optional[str]:
    if now >= booking.start_at:
        return "appointment has already started"
    return None


def _before_end(booking: Booking, now: datetime, _: LifecycleConfig) -> Optional[str]:
    if now >= booking.end_at:
        return "appointment has already ended"
    return None


def _after_end(booking: Booking, now: datetime, _: LifecycleConfig) -> Optional[str]:
    if now < booking.end_at:
        return "appointment has not ended yet"
    return None


def _no_show_by_system(
    booking: Booking, now: datetime, lifecycle: LifecycleConfig
) -> Optional[str]:
    if booking.checked_in_at is not None:
        return "client has checked in"
    if now < booking.start_at + timedelta(minutes=lifecycle.no_show_grace_minutes):
        return "no-show grace period has not elapsed"
    return None


def _no_show_by_artist(booking: Booking, now: datetime, _: LifecycleConfig) -> Optional[str]:
    if booking.checked_in_at is not None:
        return "client has checked in"
    if now < booking.start_at:
        return "cannot mark a future appointment as no-show"
    return None


@dataclass(frozen=True)
class Transition:
    """A single permitted state change."""

    from_state: BookingStatus
    to_state: BookingStatus
    roles: frozenset[ActorRole]
    guard: Optional[Guard] = None


class AppointmentStateMachine:
    """
    Table-driven appointment lifecycle.

    The machine is stateless: it validates a requested change against a
    booking snapshot and returns the updated copy. Persistence, and the
    compare-and-set that guards against concurrent transitions, belong to
    the caller.
    """

    TRANSITIONS: list[Transition] = [
        # --- Artist decision on a request ---
        Transition(BookingStatus.PENDING, BookingStatus.ACCEPTED,
                   frozenset({ActorRole.ARTIST}), _before_start),
        Transition(BookingStatus.PENDING, BookingStatus.DENIED,
                   frozenset({ActorRole.ARTIST, ActorRole.CLIENT}), _before_start),

        # --- Accepted appointment outcomes ---
        Transition(BookingStatus.ACCEPTED, BookingStatus.CANCELLED,
                   frozenset({ActorRole.ARTIST, ActorRole.CLIENT}), _before_end),
        Transition(BookingStatus.ACCEPTED, BookingStatus.COMPLETED,
                   frozenset({ActorRole.ARTIST}), _after_end),
        Transition(BookingStatus.ACCEPTED, BookingStatus.NO_SHOW,
                   frozenset({ActorRole.SYSTEM}), _no_show_by_system),
        Transition(BookingStatus.ACCEPTED, BookingStatus.NO_SHOW,
                   frozenset({ActorRole.ARTIST}), _no_show_by_artist),
    ]

    def __init__(self, lifecycle: Optional[LifecycleConfig] = None) -> None:
        self._lifecycle = lifecycle or settings.lifecycle

    def check(
        self, booking: Booking, actor: Actor, target: BookingStatus, now: datetime
    ) -> Transition:
        """
        Find the transition that permits ``actor`` to move ``booking`` to ``target``.

        Raises:
            InvalidTransition: If no transition allows the change right now.
            Forbidden: If the role may transition but this actor is not a party.
        """
        now = ensure_utc(now)
        candidates = [
            t for t in self.TRANSITIONS
            if t.from_state == booking.status and t.to_state == target
        ]
        if not candidates:
            valid = [s.value for s in self.get_valid_targets(booking.status)]
            raise InvalidTransition(
                booking.id, booking.status.value, target.value, actor.role.value,
                f"allowed targets from '{booking.status.value}': {valid}",
            )

        permitted = [t for t in candidates if actor.role in t.roles]
        if not permitted:
            raise InvalidTransition(
                booking.id, booking.status.value, target.value, actor.role.value,
                f"{actor.role.value} may not perform this transition",
            )

        if not booking.involves(actor):
            raise Forbidden(
                f"{actor.role.value} '{actor.id}' is not a party to booking '{booking.id}'",
                {"booking_id": booking.id, "actor_id": actor.id, "actor_role": actor.role.value},
            )

        reasons = []
        for t in permitted:
            reason = t.guard(booking, now, self._lifecycle) if t.guard else None
            if reason is None:
                return t
            reasons.append(reason)
        raise InvalidTransition(
            booking.id, booking.status.value, target.value, actor.role.value, "; ".join(reasons)
        )

    def apply(
        self,
        booking: Booking,
        actor: Actor,
        target: BookingStatus,
        now: datetime,
        reason: str = "",
    ) -> Booking:
        """Validate and return the booking as it looks after the transition."""
        self.check(booking, actor, target, now)
        now = ensure_utc(now)
        update: dict = {"status": target}

        if target == BookingStatus.ACCEPTED:
            update["accepted_at"] = now
        elif target == BookingStatus.DENIED:
            update.update(
                denied_at=now, cancelled_by=actor.role, cancellation_reason=reason
            )
        elif target == BookingStatus.CANCELLED:
            paid = booking.deposit_paid_cents > 0
            # A forfeiture recorded by a late reschedule is final.
            eligible = not booking.deposit_forfeited and is_refund_eligible(
                booking.deposit_non_refundable,
                booking.start_at,
                booking.deposit_cutoff_hours,
                now,
            )
            update.update(
                cancelled_at=now,
                cancelled_by=actor.role,
                cancellation_reason=reason,
                refund_eligible=paid and eligible,
                deposit_forfeited=booking.deposit_forfeited or (paid and not eligible),
            )
        elif target == BookingStatus.COMPLETED:
            update["completed_at"] = now
        elif target == BookingStatus.NO_SHOW:
            update.update(
                no_show_marked_at=now,
                no_show_marked_by=actor.role,
                refund_eligible=False,
                deposit_forfeited=booking.deposit_paid_cents > 0,
            )

        logger.debug(
            "Booking %s: %s -> %s by %s",
            booking.id, booking.status.value, target.value, actor.role.value,
        )
        return booking.model_copy(update=update)

    def get_valid_targets(self, status: BookingStatus) -> list[BookingStatus]:
        """Return all states reachable from ``status`` by some actor."""
        targets: list[BookingStatus] = []
        for t in self.TRANSITIONS:
            if t.from_state == status and t.to_state not in targets:
                targets.append(t.to_state)
        return targets

    def is_terminal(self, status: BookingStatus) -> bool:
        return not self.get_valid_targets(status)
