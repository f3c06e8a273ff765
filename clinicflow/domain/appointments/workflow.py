"""
Appointment state machine.

    PENDING         → SCHEDULED | CANCELLED
    SCHEDULED       → CONFIRMED | CHECKED_IN | CANCELLED
    CONFIRMED       → CHECKED_IN | CANCELLED
    CHECKED_IN      → IN_CONSULTATION | CANCELLED
    IN_CONSULTATION → COMPLETED | CANCELLED

SCHEDULED → CHECKED_IN lets the front desk check a patient in without an
explicit confirmation. COMPLETED is only reachable through consultation
completion, which co-transacts with billing.
"""

from typing import Optional

from ...enums import AppointmentStatus as Status
from ...errors import ConflictError

VALID_TRANSITIONS: dict[Status, set[Status]] = {
    Status.PENDING: {Status.SCHEDULED, Status.CANCELLED},
    Status.SCHEDULED: {Status.CONFIRMED, Status.CHECKED_IN, Status.CANCELLED},
    Status.CONFIRMED: {Status.CHECKED_IN, Status.CANCELLED},
    Status.CHECKED_IN: {Status.IN_CONSULTATION, Status.CANCELLED},
    Status.IN_CONSULTATION: {Status.COMPLETED, Status.CANCELLED},
    Status.COMPLETED: set(),
    Status.CANCELLED: set(),
}

TERMINAL_STATUSES = {Status.COMPLETED, Status.CANCELLED}

# Statuses in which date/time may still be moved
RESCHEDULABLE_STATUSES = {Status.PENDING, Status.SCHEDULED, Status.CONFIRMED}


def can_transition(current: Status, target: Status) -> bool:
    return target in VALID_TRANSITIONS.get(current, set())


def ensure_transition(
    current: Status, target: Status, appointment_id: int, action: Optional[str] = None
) -> None:
    """Raise ConflictError naming the violated precondition"""
    if can_transition(current, target):
        return
    label = current.value.lower().replace("_", " ")
    if action:
        message = f"cannot {action} an appointment that is {label}"
    elif current in TERMINAL_STATUSES:
        message = f"appointment is already {label}"
    else:
        message = f"appointment cannot move from {current.value} to {target.value}"
    raise ConflictError(
        message,
        {
            "appointment_id": appointment_id,
            "current_status": current.value,
            "target_status": target.value,
        },
    )
