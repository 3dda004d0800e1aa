from inkbook.scheduling.deposit_policy import compute_deposit, is_refund_eligible
from inkbook.scheduling.slot_generator import generate_slots, slot_fits_availability
from inkbook.scheduling.state_machine import AppointmentStateMachine, Transition

__all__ = [
    "AppointmentStateMachine",
    "Transition",
    "generate_slots",
    "slot_fits_availability",
    "compute_deposit",
    "is_refund_eligible",
]
