from inkbook.services.reservation import ArtistLockRegistry, ReservationCoordinator
from inkbook.services.appointments import AppointmentService
from inkbook.services.payments import (
    DepositService,
    MockPaymentProcessor,
    PaymentProcessor,
    PaymentResult,
)

__all__ = [
    "ArtistLockRegistry", "ReservationCoordinator", "AppointmentService",
    "DepositService", "MockPaymentProcessor", "PaymentProcessor", "PaymentResult",
]
