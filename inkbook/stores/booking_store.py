"""
In-memory booking store with conditional writes.

In production, this would be a database table with an exclusion
constraint on ``(artist_id, tstzrange(start_at, end_at))`` for occupying
statuses. Here the same guarantee comes from re-checking overlaps under
the store lock on every insert or move.
"""

import logging
import threading
from datetime import datetime, timedelta
from typing import Optional

from inkbook.errors import Conflict, NotFound
from inkbook.schemas.booking_schema import Booking, BookingStatus, CooldownRecord
from inkbook.utils import overlaps

logger = logging.getLogger(__name__)


class BookingStore:
    """Bookings indexed by id and artist, plus client cooldowns."""

    def __init__(self) -> None:
        self._bookings: dict[str, Booking] = {}
        self._by_artist: dict[str, set[str]] = {}
        self._cooldowns: dict[tuple[str, str], CooldownRecord] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    def get(self, booking_id: str) -> Booking:
        with self._lock:
            booking = self._bookings.get(booking_id)
            if booking is None:
                raise NotFound("Booking", booking_id)
            return booking.model_copy()

    def list_for_artist(
        self,
        artist_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        occupying_only: bool = False,
    ) -> list[Booking]:
        """Bookings for an artist, optionally restricted to those overlapping ``[start, end)``."""
        with self._lock:
            ids = self._by_artist.get(artist_id, set())
            result = []
            for booking_id in ids:
                booking = self._bookings[booking_id]
                if occupying_only and not booking.occupies_calendar:
                    continue
                if start is not None and end is not None:
                    if not overlaps(booking.start_at, booking.end_at, start, end):
                        continue
                result.append(booking.model_copy())
        result.sort(key=lambda b: b.start_at)
        return result

    def list_for_client(self, client_id: str) -> list[Booking]:
        with self._lock:
            result = [b.model_copy() for b in self._bookings.values() if b.client_id == client_id]
        result.sort(key=lambda b: b.start_at)
        return result

    def list_by_status(self, status: BookingStatus) -> list[Booking]:
        with self._lock:
            result = [b.model_copy() for b in self._bookings.values() if b.status == status]
        result.sort(key=lambda b: b.start_at)
        return result

    # ------------------------------------------------------------------ #
    # Conditional writes
    # ------------------------------------------------------------------ #

    def _find_overlap(
        self, candidate: Booking, buffer_minutes: int
    ) -> Optional[tuple[datetime, datetime]]:
        pad = timedelta(minutes=buffer_minutes)
        for booking_id in self._by_artist.get(candidate.artist_id, set()):
            if booking_id == candidate.id:
                continue
            existing = self._bookings[booking_id]
            if not existing.occupies_calendar:
                continue
            blocked_start, blocked_end = existing.start_at - pad, existing.end_at + pad
            if overlaps(candidate.start_at, candidate.end_at, blocked_start, blocked_end):
                return blocked_start, blocked_end
        return None

    def insert_if_free(self, booking: Booking, buffer_minutes: int) -> Booking:
        """
        Insert ``booking`` unless it overlaps an occupying booking for the same artist.

        Raises:
            Conflict: If an overlapping occupying booking exists or the id is taken.
        """
        with self._lock:
            if booking.id in self._bookings:
                raise Conflict(f"Booking id '{booking.id}' already exists")
            clash = self._find_overlap(booking, buffer_minutes)
            if clash is not None:
                raise Conflict(
                    "Slot is no longer available; refresh the slot list",
                    clash[0], clash[1],
                    {"artist_id": booking.artist_id},
                )
            self._bookings[booking.id] = booking.model_copy()
            self._by_artist.setdefault(booking.artist_id, set()).add(booking.id)
        logger.info(
            "Booking stored: %s for artist %s at %s",
            booking.id, booking.artist_id, booking.start_at.isoformat(),
        )
        return booking.model_copy()

    def update_if_status(self, booking: Booking, expected: BookingStatus) -> Booking:
        """
        Replace the stored booking only if its status is still ``expected``.

        Raises:
            Conflict: If another writer changed the status first.
        """
        with self._lock:
            current = self._bookings.get(booking.id)
            if current is None:
                raise NotFound("Booking", booking.id)
            if current.status != expected:
                raise Conflict(
                    f"Booking '{booking.id}' changed concurrently "
                    f"(expected '{expected.value}', found '{current.status.value}')",
                    details={
                        "booking_id": booking.id,
                        "expected_state": expected.value,
                        "actual_state": current.status.value,
                    },
                )
            self._bookings[booking.id] = booking.model_copy()
        return booking.model_copy()

    def move_if_free(
        self, booking: Booking, expected: BookingStatus, buffer_minutes: int
    ) -> Booking:
        """Compare-and-set a new interval, re-checking overlaps against other bookings."""
        with self._lock:
            clash = self._find_overlap(booking, buffer_minutes)
            if clash is not None:
                raise Conflict(
                    "Requested time overlaps another booking",
                    clash[0], clash[1],
                    {"booking_id": booking.id},
                )
            return self.update_if_status(booking, expected)

    def record_payment(
        self,
        booking_id: str,
        amount_cents: int,
        reference: Optional[str],
        refundable: bool = False,
    ) -> Booking:
        """
        Add a settled charge to the booking.

        ``refundable`` is set when the charge settled after the booking left
        the calendar; the money is then owed back regardless of cutoff.
        """
        with self._lock:
            current = self.get(booking_id)
            update: dict = {
                "deposit_paid_cents": current.deposit_paid_cents + amount_cents,
                "payment_reference": reference,
            }
            if refundable:
                update.update(refund_eligible=True, deposit_forfeited=False)
            updated = current.model_copy(update=update)
            self._bookings[booking_id] = updated
            return updated.model_copy()

    def record_refund(self, booking_id: str, amount_cents: int) -> Booking:
        with self._lock:
            current = self.get(booking_id)
            updated = current.model_copy(update={
                "refunded_cents": current.refunded_cents + amount_cents,
            })
            self._bookings[booking_id] = updated
            return updated.model_copy()

    # ------------------------------------------------------------------ #
    # Cooldowns
    # ------------------------------------------------------------------ #

    def set_cooldown(self, record: CooldownRecord) -> None:
        with self._lock:
            self._cooldowns[(record.client_id, record.artist_id)] = record
        logger.info(
            "Cooldown set for client %s with artist %s until %s",
            record.client_id, record.artist_id, record.expires_at.isoformat(),
        )

    def active_cooldown(
        self, client_id: str, artist_id: str, now: datetime
    ) -> Optional[CooldownRecord]:
        with self._lock:
            record = self._cooldowns.get((client_id, artist_id))
        if record is not None and record.expires_at > now:
            return record
        return None

    def reset(self) -> None:
        """Clear all bookings and cooldowns. Used by test fixtures for isolation."""
        with self._lock:
            self._bookings.clear()
            self._by_artist.clear()
            self._cooldowns.clear()
