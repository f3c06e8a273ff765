"""
Appointment service - booking and the day-of-visit lifecycle.

Status changes go through the guarded operations below; COMPLETED is only
produced by consultation completion in the billing domain.
"""

import logging
from contextlib import contextmanager
from datetime import date
from typing import Any, Optional

from sqlalchemy.orm import Session

from ...auth import (
    Actor,
    require_assigned_doctor,
    require_patient_or_staff,
    require_role,
    require_staff,
)
from ...database import store_access, transaction
from ...enums import AppointmentStatus as Status, Role
from ...errors import (
    AuthorizationError,
    ConcurrentModificationError,
    ConflictError,
    NotFoundError,
)
from ...models import Appointment
from ...services.audit_service import AuditEvent
from ...services.notification_service import NotificationEvent
from ...services.time_service import TimeService
from ...shared.retry import retry_on_dependency_error
from ...shared.side_effects import SideEffects
from ...shared.validators import parse_request, require_reason
from ..availability.service import AvailabilityService
from .repository import AppointmentRepository
from .schemas import AppointmentCreateRequest, StatusUpdateRequest
from .workflow import ensure_transition

logger = logging.getLogger(__name__)

ENTITY = "Appointment"
SLOT_TAKEN = "time slot is already booked"

# Statuses a patient may still cancel without the front desk
PATIENT_CANCELLABLE = {Status.PENDING, Status.SCHEDULED, Status.CONFIRMED}


@contextmanager
def locked_appointment(db: Session, appointment_id: int, integrity_message: Optional[str] = None):
    """
    Load an appointment FOR UPDATE inside a transaction.

    At most one mutation per appointment commits; the loser of a race gets a
    ConflictError naming the status it lost to.
    """
    kwargs = {"integrity_message": integrity_message} if integrity_message else {}
    try:
        with transaction(db, **kwargs):
            appointment = AppointmentRepository.find_by_id(db, appointment_id, for_update=True)
            if not appointment:
                raise NotFoundError(
                    f"Appointment {appointment_id} not found", {"appointment_id": appointment_id}
                )
            yield appointment
    except ConcurrentModificationError:
        current = AppointmentRepository.find_fresh(db, appointment_id)
        status = current.status.value if current else "deleted"
        logger.warning(f"⚠️ Appointment {appointment_id} changed underneath us, now {status}")
        raise ConflictError(
            f"appointment was modified concurrently and is now {status}",
            {"appointment_id": appointment_id, "current_status": status},
        ) from None


def audit_event(
    appointment: Appointment,
    actor: Actor,
    action: str,
    occurred_at,
    from_status: Optional[Status],
    reason: Optional[str] = None,
    **details,
) -> AuditEvent:
    return AuditEvent(
        actor=actor.label,
        entity_type=ENTITY,
        entity_id=appointment.id,
        action=action,
        occurred_at=occurred_at,
        from_status=from_status.value if from_status else None,
        to_status=appointment.status.value,
        reason=reason,
        details=details,
    )


class AppointmentService:
    """Service layer for appointment operations"""

    def __init__(self, db: Session, time_service: TimeService, side_effects: SideEffects):
        self.db = db
        self.time_service = time_service
        self.side_effects = side_effects
        self.repo = AppointmentRepository()
        self.availability = AvailabilityService(db, time_service)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, appointment_id: int, actor: Actor) -> Appointment:
        with store_access(self.db):
            appointment = self.repo.find_by_id(self.db, appointment_id)
        if not appointment:
            raise NotFoundError(
                f"Appointment {appointment_id} not found", {"appointment_id": appointment_id}
            )
        if actor.role == Role.DOCTOR:
            require_assigned_doctor(actor, appointment.doctor_id)
        else:
            require_patient_or_staff(actor, appointment.patient_id, "appointment")
        return appointment

    def list_for_doctor(
        self, doctor_id: int, start: date, end: date, actor: Actor, include_cancelled: bool = False
    ) -> list[Appointment]:
        """A clinician's appointments in [start, end], ordered by date and time"""
        if not actor.is_staff:
            require_assigned_doctor(actor, doctor_id)
        self.availability.validate_range(start, end)
        with store_access(self.db):
            return self.repo.list_by_doctor_and_date_range(
                self.db, doctor_id, start, end, include_cancelled=include_cancelled
            )

    def list_for_patient(self, patient_id: int, actor: Actor) -> list[Appointment]:
        require_patient_or_staff(actor, patient_id, "appointment")
        with store_access(self.db):
            return self.repo.list_by_patient(self.db, patient_id)

    # ------------------------------------------------------------------
    # Booking
    # ------------------------------------------------------------------

    @retry_on_dependency_error()
    def schedule_appointment(self, payload: Any, actor: Actor) -> int:
        """Staff book a slot directly; the appointment starts SCHEDULED"""
        data = parse_request(AppointmentCreateRequest, payload)
        require_staff(actor, "schedule appointments")
        return self._create(data, Status.SCHEDULED, actor, "schedule")

    @retry_on_dependency_error()
    def book(self, payload: Any, actor: Actor) -> int:
        """Patient self-booking; the appointment waits in PENDING for the front desk"""
        data = parse_request(AppointmentCreateRequest, payload)
        require_patient_or_staff(actor, data.patient_id, "appointment")
        return self._create(data, Status.PENDING, actor, "book")

    def _create(
        self, data: AppointmentCreateRequest, status: Status, actor: Actor, action: str
    ) -> int:
        # Availability is re-checked inside the same transaction that claims the slot
        with transaction(self.db, integrity_message=SLOT_TAKEN):
            if not self.repo.get_patient(self.db, data.patient_id):
                raise NotFoundError(
                    f"Patient {data.patient_id} not found", {"patient_id": data.patient_id}
                )
            duration = self.availability.ensure_slot_available(
                data.doctor_id, data.appointment_date, data.time
            )
            appointment = self.repo.create(
                self.db,
                patient_id=data.patient_id,
                doctor_id=data.doctor_id,
                appointment_date=data.appointment_date,
                time=data.time,
                duration_minutes=duration,
                status=status,
                type=data.type,
                reason=data.reason,
            )
            event = audit_event(
                appointment,
                actor,
                action,
                self.time_service.local_now(),
                None,
                slot=f"{data.appointment_date.isoformat()} {data.time}",
            )
            appointment_id = appointment.id

        logger.info(
            f"✅ Appointment {appointment_id} {status.value} for patient {data.patient_id} "
            f"with doctor {data.doctor_id} at {data.appointment_date} {data.time}"
        )
        self.side_effects.audit(event)
        if status == Status.PENDING:
            self.side_effects.notify(
                NotificationEvent(
                    event_type="appointment_requested",
                    recipient_role=Role.FRONTDESK,
                    recipient_id=None,
                    title="Appointment Awaiting Approval",
                    message=(
                        f"A patient booked {data.appointment_date.isoformat()} at {data.time}. "
                        "Please accept or cancel it."
                    ),
                    resource_type=ENTITY,
                    resource_id=appointment_id,
                )
            )
        else:
            self.side_effects.notify(
                self._patient_notice(
                    data.patient_id,
                    appointment_id,
                    "appointment_scheduled",
                    "Appointment Scheduled",
                    f"Your appointment is scheduled for {data.appointment_date.isoformat()} "
                    f"at {data.time}.",
                )
            )
        return appointment_id

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    @retry_on_dependency_error()
    def accept_pending(self, appointment_id: int, actor: Actor) -> Status:
        require_staff(actor, "accept appointment bookings")
        with locked_appointment(self.db, appointment_id) as appointment:
            event = self._apply(appointment, Status.SCHEDULED, actor, "accept")
            notice = self._patient_notice(
                appointment.patient_id,
                appointment.id,
                "appointment_scheduled",
                "Appointment Accepted",
                f"Your booking for {appointment.appointment_date.isoformat()} at "
                f"{appointment.time} has been accepted.",
            )
        self._after_commit(event, notice)
        return Status.SCHEDULED

    @retry_on_dependency_error()
    def confirm_appointment(self, appointment_id: int, actor: Actor) -> Status:
        with locked_appointment(self.db, appointment_id) as appointment:
            require_patient_or_staff(actor, appointment.patient_id, "appointment")
            event = self._apply(appointment, Status.CONFIRMED, actor, "confirm")
        self._after_commit(event)
        return Status.CONFIRMED

    @retry_on_dependency_error()
    def check_in(self, appointment_id: int, actor: Actor) -> Status:
        """
        Front desk marks the patient as arrived.

        Allowed from SCHEDULED or CONFIRMED, and only on the appointment day
        (clinic-local date).
        """
        require_staff(actor, "check patients in")
        with locked_appointment(self.db, appointment_id) as appointment:
            ensure_transition(appointment.status, Status.CHECKED_IN, appointment.id, "check in")
            today = self.time_service.today()
            if appointment.appointment_date != today:
                raise ConflictError(
                    "appointment is not scheduled for today",
                    {
                        "appointment_id": appointment.id,
                        "appointment_date": appointment.appointment_date.isoformat(),
                        "today": today.isoformat(),
                    },
                )
            event = self._apply(appointment, Status.CHECKED_IN, actor, "check_in")
            appointment.checked_in_at = self.time_service.local_now()
            appointment.checked_in_by = actor.label
            notice = NotificationEvent(
                event_type="patient_checked_in",
                recipient_role=Role.DOCTOR,
                recipient_id=appointment.doctor_id,
                title="Patient Checked In",
                message=f"Your {appointment.time} patient has arrived.",
                resource_type=ENTITY,
                resource_id=appointment.id,
            )
        self._after_commit(event, notice)
        return Status.CHECKED_IN

    @retry_on_dependency_error()
    def start_consultation(self, appointment_id: int, actor: Actor) -> Status:
        """Assigned doctor begins the encounter; records consultation_started_at"""
        require_role(actor, {Role.DOCTOR, Role.ADMIN}, "start a consultation")
        with locked_appointment(self.db, appointment_id) as appointment:
            require_assigned_doctor(actor, appointment.doctor_id)
            ensure_transition(
                appointment.status, Status.IN_CONSULTATION, appointment.id, "start a consultation for"
            )
            event = self._apply(appointment, Status.IN_CONSULTATION, actor, "start_consultation")
            appointment.consultation_started_at = self.time_service.local_now()
        self._after_commit(event)
        return Status.IN_CONSULTATION

    @retry_on_dependency_error()
    def cancel(self, appointment_id: int, reason: Optional[str], actor: Actor) -> Status:
        reason = require_reason(reason, "cancel an appointment")
        with locked_appointment(self.db, appointment_id) as appointment:
            require_patient_or_staff(actor, appointment.patient_id, "appointment")
            ensure_transition(appointment.status, Status.CANCELLED, appointment.id, "cancel")
            if not actor.is_staff and appointment.status not in PATIENT_CANCELLABLE:
                raise AuthorizationError(
                    "only front desk staff may cancel an appointment that is under way",
                    {"appointment_id": appointment.id, "current_status": appointment.status.value},
                )
            event = self._apply(appointment, Status.CANCELLED, actor, "cancel", reason=reason)
            appointment.cancellation_reason = reason
            slot = f"{appointment.appointment_date.isoformat()} {appointment.time}"
            notices = [
                self._patient_notice(
                    appointment.patient_id,
                    appointment.id,
                    "appointment_cancelled",
                    "Appointment Cancelled",
                    f"Your appointment on {slot} has been cancelled: {reason}",
                ),
                NotificationEvent(
                    event_type="appointment_cancelled",
                    recipient_role=Role.DOCTOR,
                    recipient_id=appointment.doctor_id,
                    title="Appointment Cancelled",
                    message=f"The appointment on {slot} has been cancelled.",
                    resource_type=ENTITY,
                    resource_id=appointment.id,
                ),
            ]
        self._after_commit(event, *notices)
        return Status.CANCELLED

    def update_status(self, appointment_id: int, payload: Any, actor: Actor) -> Status:
        """Generic status entry point, routed to the guarded operation for the target"""
        data = parse_request(StatusUpdateRequest, payload)
        target = data.status
        if target == Status.SCHEDULED:
            return self.accept_pending(appointment_id, actor)
        if target == Status.CONFIRMED:
            return self.confirm_appointment(appointment_id, actor)
        if target == Status.CHECKED_IN:
            return self.check_in(appointment_id, actor)
        if target == Status.CANCELLED:
            return self.cancel(appointment_id, data.reason, actor)
        if target == Status.IN_CONSULTATION:
            raise ConflictError(
                "a consultation must be started by the assigned doctor",
                {"appointment_id": appointment_id, "target_status": target.value},
            )
        if target == Status.COMPLETED:
            raise ConflictError(
                "an appointment can only be completed through consultation completion",
                {"appointment_id": appointment_id, "target_status": target.value},
            )
        appointment = self.get(appointment_id, actor)
        ensure_transition(appointment.status, target, appointment_id)
        return appointment.status

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _apply(
        self,
        appointment: Appointment,
        target: Status,
        actor: Actor,
        action: str,
        reason: Optional[str] = None,
    ) -> AuditEvent:
        current = appointment.status
        ensure_transition(current, target, appointment.id)
        appointment.status = target
        logger.info(
            f"✅ Appointment {appointment.id}: {current.value} → {target.value} by {actor.label}"
        )
        return audit_event(
            appointment, actor, action, self.time_service.local_now(), current, reason=reason
        )

    def _after_commit(self, event: AuditEvent, *notices: NotificationEvent) -> None:
        self.side_effects.audit(event)
        for notice in notices:
            self.side_effects.notify(notice)

    @staticmethod
    def _patient_notice(
        patient_id: int, appointment_id: int, event_type: str, title: str, message: str
    ) -> NotificationEvent:
        return NotificationEvent(
            event_type=event_type,
            recipient_role=Role.PATIENT,
            recipient_id=patient_id,
            title=title,
            message=message,
            resource_type=ENTITY,
            resource_id=appointment_id,
        )
