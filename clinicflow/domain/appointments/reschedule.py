"""
Reschedule coordinator.

Moves an appointment to a new date/time without touching its status. The
appointment row is locked and version-checked for the whole read-modify-write,
and the target slot is re-resolved inside the same transaction, ignoring the
appointment's own current booking.
"""

import logging
from typing import Any

from sqlalchemy.orm import Session

from ...auth import Actor, require_patient_or_staff
from ...enums import Role
from ...errors import ConflictError, ValidationError
from ...services.notification_service import NotificationEvent
from ...services.time_service import TimeService
from ...shared.retry import retry_on_dependency_error
from ...shared.side_effects import SideEffects
from ...shared.validators import parse_request
from ..availability.service import AvailabilityService
from .repository import AppointmentRepository
from .schemas import RescheduleRequest
from .service import ENTITY, SLOT_TAKEN, audit_event, locked_appointment
from .workflow import RESCHEDULABLE_STATUSES, TERMINAL_STATUSES

logger = logging.getLogger(__name__)


class RescheduleCoordinator:
    def __init__(self, db: Session, time_service: TimeService, side_effects: SideEffects):
        self.db = db
        self.time_service = time_service
        self.side_effects = side_effects
        self.availability = AvailabilityService(db, time_service)

    @retry_on_dependency_error()
    def reschedule(self, appointment_id: int, payload: Any, actor: Actor) -> None:
        data = parse_request(RescheduleRequest, payload)

        with locked_appointment(self.db, appointment_id, integrity_message=SLOT_TAKEN) as appointment:
            require_patient_or_staff(actor, appointment.patient_id, "appointment")

            status = appointment.status
            if status in TERMINAL_STATUSES:
                raise ConflictError(
                    f"cannot reschedule an appointment that is {status.value.lower()}",
                    {"appointment_id": appointment.id, "current_status": status.value},
                )
            if status not in RESCHEDULABLE_STATUSES:
                raise ConflictError(
                    "cannot reschedule an appointment once the patient has checked in",
                    {"appointment_id": appointment.id, "current_status": status.value},
                )
            if appointment.appointment_date == data.new_date and appointment.time == data.new_time:
                raise ValidationError(
                    "new date and time are the same as the current ones",
                    {"appointment_id": appointment.id},
                )

            duration = self.availability.ensure_slot_available(
                appointment.doctor_id,
                data.new_date,
                data.new_time,
                exclude_appointment_id=appointment.id,
            )
            old_slot = f"{appointment.appointment_date.isoformat()} {appointment.time}"
            new_slot = f"{data.new_date.isoformat()} {data.new_time}"

            AppointmentRepository.update(
                self.db,
                appointment,
                appointment_date=data.new_date,
                time=data.new_time,
                duration_minutes=duration,
            )
            request = appointment.consultation_request
            if request is not None:
                # The originating request tracks the slot actually booked
                request.proposed_date = data.new_date
                request.proposed_time = data.new_time

            event = audit_event(
                appointment,
                actor,
                "reschedule",
                self.time_service.local_now(),
                status,
                reason=data.reason,
                old_slot=old_slot,
                new_slot=new_slot,
            )
            notices = [
                NotificationEvent(
                    event_type="appointment_rescheduled",
                    recipient_role=Role.PATIENT,
                    recipient_id=appointment.patient_id,
                    title="Appointment Rescheduled",
                    message=f"Your appointment has moved from {old_slot} to {new_slot}.",
                    resource_type=ENTITY,
                    resource_id=appointment.id,
                )
            ]
            if actor.is_staff:
                notices.append(
                    NotificationEvent(
                        event_type="appointment_rescheduled",
                        recipient_role=Role.DOCTOR,
                        recipient_id=appointment.doctor_id,
                        title="Appointment Rescheduled",
                        message=f"An appointment has moved from {old_slot} to {new_slot}.",
                        resource_type=ENTITY,
                        resource_id=appointment.id,
                    )
                )

        logger.info(
            f"✅ Appointment {appointment_id} rescheduled by {actor.label}: {old_slot} → {new_slot}"
        )
        self.side_effects.audit(event)
        for notice in notices:
            self.side_effects.notify(notice)
