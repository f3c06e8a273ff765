"""
Consultation request state machine.

    SUBMITTED       → PENDING_REVIEW
    PENDING_REVIEW  → NEEDS_MORE_INFO | APPROVED | CANCELLED   (staff only)
    NEEDS_MORE_INFO → PENDING_REVIEW                           (patient response)
    APPROVED        → SCHEDULED                                (staff proposes a slot)
    SCHEDULED       → CONFIRMED | CANCELLED                    (patient)
    CONFIRMED       → COMPLETED                                (consultation completion only)

COMPLETED and CANCELLED are terminal.
"""

from ...enums import ConsultationRequestStatus as Status
from ...errors import ConflictError

VALID_TRANSITIONS: dict[Status, set[Status]] = {
    Status.SUBMITTED: {Status.PENDING_REVIEW},
    Status.PENDING_REVIEW: {Status.NEEDS_MORE_INFO, Status.APPROVED, Status.CANCELLED},
    Status.NEEDS_MORE_INFO: {Status.PENDING_REVIEW},
    Status.APPROVED: {Status.SCHEDULED},
    Status.SCHEDULED: {Status.CONFIRMED, Status.CANCELLED},
    Status.CONFIRMED: {Status.COMPLETED},
    Status.COMPLETED: set(),
    Status.CANCELLED: set(),
}

# Target statuses the patient must hear about
PATIENT_FACING_STATUSES = {Status.NEEDS_MORE_INFO, Status.APPROVED, Status.SCHEDULED}

TERMINAL_STATUSES = {Status.COMPLETED, Status.CANCELLED}


def can_transition(current: Status, target: Status) -> bool:
    return target in VALID_TRANSITIONS.get(current, set())


def ensure_transition(current: Status, target: Status, request_id: int) -> None:
    """Raise ConflictError naming the guard when current → target is not allowed"""
    if can_transition(current, target):
        return
    if current in TERMINAL_STATUSES:
        message = f"consultation request is already {current.value.lower()}"
    else:
        message = (
            f"consultation request cannot move from {current.value} to {target.value}"
        )
    raise ConflictError(
        message,
        {"request_id": request_id, "current_status": current.value, "target_status": target.value},
    )
