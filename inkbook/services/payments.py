"""
Deposit payments against an external processor.

In production, ``PaymentProcessor`` would wrap Stripe or a similar gateway.
A failed charge never advances or cancels the booking: it stays pending
and the caller may retry.
"""

import threading
import uuid
from typing import Optional, Protocol

from pydantic import BaseModel

from inkbook.config import ReservationConfig, settings
from inkbook.errors import Conflict, Forbidden, InvalidTransition, UpstreamFailure, ValidationError
from inkbook.logging_context import get_request_logger
from inkbook.schemas.booking_schema import Actor, ActorRole, Booking
from inkbook.services.reservation import ArtistLockRegistry
from inkbook.stores.booking_store import BookingStore

logger = get_request_logger(__name__)


class PaymentResult(BaseModel):
    success: bool
    reference: Optional[str] = None
    message: str = ""


class PaymentProcessor(Protocol):
    async def charge_deposit(self, booking_id: str, amount_cents: int) -> PaymentResult: ...

    async def refund(self, booking_id: str, amount_cents: int) -> PaymentResult: ...


class MockPaymentProcessor:
    """In-memory processor. Set ``decline`` or ``error`` to simulate failures."""

    def __init__(self) -> None:
        self.decline = False
        self.error: Optional[Exception] = None
        self.charges: list[tuple[str, int]] = []
        self.refunds: list[tuple[str, int]] = []

    async def charge_deposit(self, booking_id: str, amount_cents: int) -> PaymentResult:
        if self.error is not None:
            raise self.error
        if self.decline:
            return PaymentResult(success=False, message="Card declined")
        self.charges.append((booking_id, amount_cents))
        return PaymentResult(success=True, reference=f"PAY-{uuid.uuid4().hex[:8].upper()}")

    async def refund(self, booking_id: str, amount_cents: int) -> PaymentResult:
        if self.error is not None:
            raise self.error
        if self.decline:
            return PaymentResult(success=False, message="Refund rejected")
        self.refunds.append((booking_id, amount_cents))
        return PaymentResult(success=True, reference=f"RFD-{uuid.uuid4().hex[:8].upper()}")

    def reset(self) -> None:
        self.decline = False
        self.error = None
        self.charges.clear()
        self.refunds.clear()


class DepositService:
    """Collects and refunds deposits, recording the outcome on the booking."""

    def __init__(
        self,
        booking_store: BookingStore,
        processor: PaymentProcessor,
        locks: Optional[ArtistLockRegistry] = None,
        config: Optional[ReservationConfig] = None,
    ) -> None:
        self._bookings = booking_store
        self._processor = processor
        self._locks = locks or ArtistLockRegistry()
        self._config = config or settings.reservation
        self._in_flight: set[str] = set()
        self._guard = threading.Lock()

    def _claim(self, booking_id: str) -> None:
        with self._guard:
            if booking_id in self._in_flight:
                raise Conflict(
                    f"A payment for booking '{booking_id}' is already in progress",
                    details={"booking_id": booking_id},
                )
            self._in_flight.add(booking_id)

    def _release(self, booking_id: str) -> None:
        with self._guard:
            self._in_flight.discard(booking_id)

    def _payable(self, booking_id: str, actor: Actor) -> Booking:
        booking = self._bookings.get(booking_id)
        if actor.role != ActorRole.CLIENT or not booking.involves(actor):
            raise Forbidden(
                f"Only the booking's client can pay the deposit for '{booking_id}'",
                {"booking_id": booking_id, "actor_id": actor.id},
            )
        if not booking.occupies_calendar:
            raise InvalidTransition(
                booking_id, booking.status.value, "deposit_paid", actor.role.value,
                "deposits can only be paid on pending or accepted bookings",
            )
        if booking.deposit_outstanding_cents <= 0:
            raise ValidationError(
                f"No deposit is outstanding for booking '{booking_id}'",
                {"booking_id": booking_id},
            )
        return booking

    async def pay_deposit(self, booking_id: str, actor: Actor) -> Booking:
        """
        Charge the outstanding deposit for an open booking.

        The charge is committed under the artist's lock. If the booking was
        cancelled or denied while the processor was working, the payment is
        still recorded, flagged for refund, and refunded straight away.

        Raises:
            Forbidden: Actor is not the booking's client.
            InvalidTransition: Booking is no longer pending or accepted.
            ValidationError: Nothing is owed.
            Conflict: Another payment is in flight, or the booking closed mid-charge.
            UpstreamFailure: The processor declined or errored; booking unchanged.
        """
        self._payable(booking_id, actor)

        self._claim(booking_id)
        try:
            booking = self._payable(booking_id, actor)
            amount = booking.deposit_outstanding_cents
            try:
                result = await self._processor.charge_deposit(booking_id, amount)
            except Exception as exc:
                logger.error("Deposit charge for %s raised: %s", booking_id, exc)
                raise UpstreamFailure(
                    "Payment processor error; the booking was not changed",
                    {"booking_id": booking_id, "amount_cents": amount},
                ) from exc
            if not result.success:
                logger.warning("Deposit charge for %s declined: %s", booking_id, result.message)
                raise UpstreamFailure(
                    f"Deposit payment failed: {result.message or 'declined'}",
                    {"booking_id": booking_id, "amount_cents": amount},
                )

            with self._locks.hold(booking.artist_id, self._config.lock_timeout_sec):
                current = self._bookings.get(booking_id)
                closed = not current.occupies_calendar
                updated = self._bookings.record_payment(
                    booking_id, amount, result.reference, refundable=closed
                )
            if closed:
                logger.warning(
                    "Deposit for %s settled after the booking became %s; refunding",
                    booking_id, current.status.value,
                )
                refunded = await self._refund(
                    booking_id, updated.deposit_paid_cents - updated.refunded_cents
                )
                raise Conflict(
                    f"Booking '{booking_id}' was {current.status.value} while the deposit "
                    "was processing; the charge has been "
                    + ("refunded" if refunded else "marked for refund"),
                    details={
                        "booking_id": booking_id,
                        "actual_state": current.status.value,
                        "refunded": refunded,
                    },
                )
        finally:
            self._release(booking_id)

        logger.info("Deposit of %d paid for %s (ref=%s)", amount, booking_id, result.reference)
        return updated

    async def _refund(self, booking_id: str, amount: int) -> bool:
        """Best-effort refund while the booking is claimed. Returns True when settled."""
        try:
            result = await self._processor.refund(booking_id, amount)
        except Exception as exc:
            logger.error("Refund for %s raised: %s", booking_id, exc)
            return False
        if not result.success:
            logger.warning("Refund for %s rejected: %s", booking_id, result.message)
            return False
        self._bookings.record_refund(booking_id, amount)
        return True

    async def refund_deposit(self, booking_id: str) -> Booking:
        """
        Refund the paid deposit of a booking whose cancellation made it eligible.

        Raises:
            ValidationError: Booking is not eligible or nothing remains to refund.
            Conflict: Another payment or refund for the booking is in flight.
            UpstreamFailure: The processor rejected or errored.
        """
        self._refundable(booking_id)

        self._claim(booking_id)
        try:
            amount = self._refundable(booking_id)
            try:
                result = await self._processor.refund(booking_id, amount)
            except Exception as exc:
                logger.error("Refund for %s raised: %s", booking_id, exc)
                raise UpstreamFailure(
                    "Payment processor error during refund",
                    {"booking_id": booking_id, "amount_cents": amount},
                ) from exc
            if not result.success:
                raise UpstreamFailure(
                    f"Refund failed: {result.message or 'rejected'}",
                    {"booking_id": booking_id, "amount_cents": amount},
                )
            updated = self._bookings.record_refund(booking_id, amount)
        finally:
            self._release(booking_id)

        logger.info("Refunded %d for %s", amount, booking_id)
        return updated

    def _refundable(self, booking_id: str) -> int:
        booking = self._bookings.get(booking_id)
        amount = booking.deposit_paid_cents - booking.refunded_cents
        if not booking.refund_eligible:
            raise ValidationError(
                f"Booking '{booking_id}' is not eligible for a deposit refund",
                {"booking_id": booking_id, "status": booking.status.value},
            )
        if amount <= 0:
            raise ValidationError(
                f"Nothing left to refund for booking '{booking_id}'",
                {"booking_id": booking_id},
            )
        return amount
