"""
Consultation request service - triage of inbound consultation inquiries.

Every mutation runs as one locked read-modify-write; audit events and
notifications are emitted only after the commit succeeds.
"""

import logging
from contextlib import contextmanager
from datetime import date, datetime
from typing import Any, Optional

from sqlalchemy.orm import Session

from ...auth import Actor, require_patient_or_staff, require_staff
from ...database import store_access, transaction
from ...enums import (
    AppointmentStatus,
    ConsultationRequestStatus as Status,
    ReviewDecision,
    Role,
)
from ...errors import (
    ConcurrentModificationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from ...models import ConsultationRequest
from ...services.audit_service import AuditEvent
from ...services.notification_service import NotificationEvent
from ...services.time_service import TimeService
from ...shared.retry import retry_on_dependency_error
from ...shared.side_effects import SideEffects
from ...shared.validators import parse_request, parse_time
from ..appointments.repository import AppointmentRepository
from ..availability.service import AvailabilityService
from .repository import ConsultationRequestRepository
from .schemas import (
    DeclineProposalRequest,
    InfoResponseRequest,
    ProposeTimeRequest,
    ReviewConsultationRequest,
    SubmitConsultationRequest,
)
from .workflow import PATIENT_FACING_STATUSES, ensure_transition

logger = logging.getLogger(__name__)

ENTITY = "ConsultationRequest"
SLOT_TAKEN = "time slot is already booked"


class ConsultationRequestService:
    """Service layer for consultation request triage"""

    def __init__(self, db: Session, time_service: TimeService, side_effects: SideEffects):
        self.db = db
        self.time_service = time_service
        self.side_effects = side_effects
        self.repo = ConsultationRequestRepository()
        self.appointments = AppointmentRepository()
        self.availability = AvailabilityService(db, time_service)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, request_id: int, actor: Actor) -> ConsultationRequest:
        with store_access(self.db):
            request = self.repo.find_by_id(self.db, request_id)
        if not request:
            raise NotFoundError(
                f"Consultation request {request_id} not found", {"request_id": request_id}
            )
        require_patient_or_staff(actor, request.patient_id, "consultation request")
        return request

    def list_for_patient(self, patient_id: int, actor: Actor) -> list[ConsultationRequest]:
        require_patient_or_staff(actor, patient_id, "consultation request")
        with store_access(self.db):
            return self.repo.list_by_patient(self.db, patient_id)

    def list_awaiting_review(self, actor: Actor) -> list[ConsultationRequest]:
        require_staff(actor, "view the review queue")
        with store_access(self.db):
            return self.repo.list_by_status(self.db, [Status.SUBMITTED, Status.PENDING_REVIEW])

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    @retry_on_dependency_error()
    def submit(self, payload: Any, actor: Actor) -> int:
        """Create a SUBMITTED request for a patient (the patient or front desk)"""
        data = parse_request(SubmitConsultationRequest, payload)
        require_patient_or_staff(actor, data.patient_id, "consultation request")

        now = self.time_service.local_now()
        with transaction(self.db):
            if not self.repo.get_patient(self.db, data.patient_id):
                raise NotFoundError(
                    f"Patient {data.patient_id} not found", {"patient_id": data.patient_id}
                )
            if data.doctor_id is not None:
                self._require_doctor(data.doctor_id)
            request = self.repo.create(
                self.db,
                patient_id=data.patient_id,
                doctor_id=data.doctor_id,
                submitted_by=actor.label,
                submitted_at=now,
                status=Status.SUBMITTED,
                concern=data.concern,
                details=data.details,
                preferred_date=data.preferred_date,
            )
            request_id = request.id

        logger.info(f"✅ Consultation request {request_id} submitted by {actor.label}")
        self.side_effects.audit(
            AuditEvent(
                actor=actor.label,
                entity_type=ENTITY,
                entity_id=request_id,
                action="submit",
                occurred_at=now,
                to_status=Status.SUBMITTED.value,
            )
        )
        self.side_effects.notify(
            NotificationEvent(
                event_type="consultation_request_submitted",
                recipient_role=Role.FRONTDESK,
                recipient_id=None,
                title="New Consultation Request",
                message=f"A new consultation request ({data.concern}) is waiting for review.",
                resource_type=ENTITY,
                resource_id=request_id,
            )
        )
        return request_id

    # ------------------------------------------------------------------
    # Staff triage
    # ------------------------------------------------------------------

    @retry_on_dependency_error()
    def start_review(self, request_id: int, actor: Actor) -> Status:
        require_staff(actor, "review consultation requests")
        with self._locked(request_id) as request:
            transitions = [self._transition(request, Status.PENDING_REVIEW, actor, "start_review")]
            notices = self._patient_notices(request, transitions)
        self._after_commit(transitions, notices)
        return Status.PENDING_REVIEW

    @retry_on_dependency_error()
    def review(self, request_id: int, payload: Any, actor: Actor) -> Status:
        """
        Apply a staff triage decision.

        A SUBMITTED request passes through PENDING_REVIEW first. Approval with
        a proposed date/time also schedules the request, provided the slot
        currently resolves as available.
        """
        data = parse_request(ReviewConsultationRequest, payload)
        require_staff(actor, "review consultation requests")

        with self._locked(request_id) as request:
            transitions = []
            if request.status == Status.SUBMITTED:
                transitions.append(
                    self._transition(request, Status.PENDING_REVIEW, actor, "start_review")
                )

            if data.decision == ReviewDecision.NEEDS_MORE_INFO:
                transitions.append(
                    self._transition(
                        request, Status.NEEDS_MORE_INFO, actor, "request_info", reason=data.notes
                    )
                )
                request.review_notes = data.notes
            elif data.decision == ReviewDecision.REJECT:
                transitions.append(
                    self._transition(request, Status.CANCELLED, actor, "reject", reason=data.notes)
                )
                request.review_notes = data.notes
                request.cancellation_reason = data.notes
            else:
                ensure_transition(request.status, Status.APPROVED, request.id)
                doctor_id = data.doctor_id or request.doctor_id
                if doctor_id is None:
                    raise ValidationError(
                        "a doctor must be assigned to approve a consultation request",
                        {"request_id": request.id},
                    )
                self._require_doctor(doctor_id)
                request.doctor_id = doctor_id
                transitions.append(
                    self._transition(request, Status.APPROVED, actor, "approve", reason=data.notes)
                )
                if data.notes:
                    request.review_notes = data.notes
                if data.proposed_date is not None:
                    transitions.append(
                        self._schedule(request, data.proposed_date, data.proposed_time, actor)
                    )

            request.reviewed_by = actor.label
            request.reviewed_at = self.time_service.local_now()
            final_status = request.status
            notices = self._patient_notices(request, transitions)

        logger.info(
            f"✅ Consultation request {request_id} reviewed by {actor.label}: "
            f"{data.decision.value} → {final_status.value}"
        )
        self._after_commit(transitions, notices)
        return final_status

    @retry_on_dependency_error()
    def propose_time(self, request_id: int, payload: Any, actor: Actor) -> Status:
        """Schedule an APPROVED request that was approved without a time"""
        data = parse_request(ProposeTimeRequest, payload)
        require_staff(actor, "propose consultation times")

        with self._locked(request_id) as request:
            ensure_transition(request.status, Status.SCHEDULED, request.id)
            if data.doctor_id is not None:
                self._require_doctor(data.doctor_id)
                request.doctor_id = data.doctor_id
            if request.doctor_id is None:
                raise ValidationError(
                    "a doctor must be assigned before proposing a time", {"request_id": request.id}
                )
            transitions = [self._schedule(request, data.proposed_date, data.proposed_time, actor)]
            notices = self._patient_notices(request, transitions)

        self._after_commit(transitions, notices)
        return Status.SCHEDULED

    # ------------------------------------------------------------------
    # Patient actions
    # ------------------------------------------------------------------

    @retry_on_dependency_error()
    def respond_to_info_request(self, request_id: int, payload: Any, actor: Actor) -> Status:
        """Patient answers a NEEDS_MORE_INFO review; the request returns to the queue"""
        data = parse_request(InfoResponseRequest, payload)

        with self._locked(request_id) as request:
            require_patient_or_staff(actor, request.patient_id, "consultation request")
            transitions = [
                self._transition(request, Status.PENDING_REVIEW, actor, "respond_to_info_request")
            ]
            stamp = self.time_service.local_now().strftime("%Y-%m-%d %H:%M")
            response = f"[Patient response {stamp}] {data.response}"
            request.details = f"{request.details}\n\n{response}" if request.details else response
            notices = self._patient_notices(request, transitions)

        self._after_commit(transitions, notices)
        self.side_effects.notify(
            NotificationEvent(
                event_type="consultation_request_info_provided",
                recipient_role=Role.FRONTDESK,
                recipient_id=None,
                title="Patient Responded",
                message=f"Consultation request #{request_id} has new information from the patient.",
                resource_type=ENTITY,
                resource_id=request_id,
            )
        )
        return Status.PENDING_REVIEW

    @retry_on_dependency_error()
    def confirm(self, request_id: int, actor: Actor) -> int:
        """
        Patient accepts the proposed slot (SCHEDULED → CONFIRMED).

        The slot is re-validated and claimed by a new CONFIRMED appointment in
        the same transaction as the status change.
        """
        with self._locked(request_id, integrity_message=SLOT_TAKEN) as request:
            require_patient_or_staff(actor, request.patient_id, "consultation request")
            ensure_transition(request.status, Status.CONFIRMED, request.id)

            proposed_at = datetime.combine(request.proposed_date, parse_time(request.proposed_time))
            if proposed_at <= self.time_service.local_now():
                raise ConflictError(
                    "proposed time has passed",
                    {
                        "request_id": request.id,
                        "proposed_date": request.proposed_date.isoformat(),
                        "proposed_time": request.proposed_time,
                    },
                )

            duration = self.availability.ensure_slot_available(
                request.doctor_id, request.proposed_date, request.proposed_time
            )
            appointment = self.appointments.create(
                self.db,
                patient_id=request.patient_id,
                doctor_id=request.doctor_id,
                consultation_request_id=request.id,
                appointment_date=request.proposed_date,
                time=request.proposed_time,
                duration_minutes=duration,
                status=AppointmentStatus.CONFIRMED,
                type="CONSULTATION",
                reason=request.concern,
            )
            transitions = [self._transition(request, Status.CONFIRMED, actor, "confirm")]
            request.confirmed_at = self.time_service.local_now()
            appointment_id = appointment.id
            doctor_id = request.doctor_id
            slot = f"{request.proposed_date.isoformat()} {request.proposed_time}"
            notices = self._patient_notices(request, transitions)

        logger.info(
            f"✅ Consultation request {request_id} confirmed by {actor.label}, "
            f"appointment {appointment_id} at {slot}"
        )
        self._after_commit(transitions, notices)
        self.side_effects.audit(
            AuditEvent(
                actor=actor.label,
                entity_type="Appointment",
                entity_id=appointment_id,
                action="create",
                occurred_at=self.time_service.local_now(),
                to_status=AppointmentStatus.CONFIRMED.value,
                details={"consultation_request_id": request_id, "slot": slot},
            )
        )
        self.side_effects.notify(
            NotificationEvent(
                event_type="appointment_confirmed",
                recipient_role=Role.DOCTOR,
                recipient_id=doctor_id,
                title="New Appointment",
                message=f"A consultation has been confirmed for {slot}.",
                resource_type="Appointment",
                resource_id=appointment_id,
            )
        )
        return appointment_id

    @retry_on_dependency_error()
    def decline(self, request_id: int, payload: Any, actor: Actor) -> Status:
        """Patient turns down the proposed slot (SCHEDULED → CANCELLED)"""
        data = parse_request(DeclineProposalRequest, payload)

        with self._locked(request_id) as request:
            require_patient_or_staff(actor, request.patient_id, "consultation request")
            if request.status != Status.SCHEDULED:
                raise ConflictError(
                    "only a scheduled consultation request can be declined",
                    {"request_id": request.id, "current_status": request.status.value},
                )
            transitions = [
                self._transition(request, Status.CANCELLED, actor, "decline", reason=data.reason)
            ]
            request.cancellation_reason = data.reason
            notices = self._patient_notices(request, transitions)

        self._after_commit(transitions, notices)
        return Status.CANCELLED

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @contextmanager
    def _locked(self, request_id: int, integrity_message: Optional[str] = None):
        """Load the request FOR UPDATE inside a transaction; a lost race reports current state"""
        kwargs = {"integrity_message": integrity_message} if integrity_message else {}
        try:
            with transaction(self.db, **kwargs):
                request = self.repo.find_by_id(self.db, request_id, for_update=True)
                if not request:
                    raise NotFoundError(
                        f"Consultation request {request_id} not found", {"request_id": request_id}
                    )
                yield request
        except ConcurrentModificationError:
            current = self.repo.find_fresh(self.db, request_id)
            status = current.status.value if current else "deleted"
            logger.warning(f"⚠️ Consultation request {request_id} changed underneath us, now {status}")
            raise ConflictError(
                f"consultation request was modified concurrently and is now {status}",
                {"request_id": request_id, "current_status": status},
            ) from None

    def _transition(
        self,
        request: ConsultationRequest,
        target: Status,
        actor: Actor,
        action: str,
        reason: Optional[str] = None,
    ) -> AuditEvent:
        """Apply one guarded status change in memory and describe it for the audit log"""
        current = request.status
        ensure_transition(current, target, request.id)
        request.status = target
        return AuditEvent(
            actor=actor.label,
            entity_type=ENTITY,
            entity_id=request.id,
            action=action,
            occurred_at=self.time_service.local_now(),
            from_status=current.value,
            to_status=target.value,
            reason=reason,
        )

    def _schedule(
        self, request: ConsultationRequest, proposed_date: date, proposed_time: str, actor: Actor
    ) -> AuditEvent:
        self.availability.ensure_slot_available(request.doctor_id, proposed_date, proposed_time)
        event = self._transition(request, Status.SCHEDULED, actor, "propose_time")
        event.details = {
            "doctor_id": request.doctor_id,
            "proposed_date": proposed_date.isoformat(),
            "proposed_time": proposed_time,
        }
        self.repo.update(self.db, request, proposed_date=proposed_date, proposed_time=proposed_time)
        return event

    def _require_doctor(self, doctor_id: int):
        doctor = self.repo.get_doctor(self.db, doctor_id)
        if not doctor:
            raise NotFoundError(f"Doctor {doctor_id} not found", {"doctor_id": doctor_id})
        return doctor

    def _patient_notices(
        self, request: ConsultationRequest, transitions: list[AuditEvent]
    ) -> list[NotificationEvent]:
        """Built before commit, while the request is still loaded"""
        return [
            self._patient_notice(request, Status(event.to_status))
            for event in transitions
            if Status(event.to_status) in PATIENT_FACING_STATUSES
        ]

    def _after_commit(
        self, transitions: list[AuditEvent], notices: list[NotificationEvent]
    ) -> None:
        for event in transitions:
            self.side_effects.audit(event)
        for notice in notices:
            self.side_effects.notify(notice)

    @staticmethod
    def _patient_notice(request: ConsultationRequest, target: Status) -> NotificationEvent:
        if target == Status.NEEDS_MORE_INFO:
            title = "More Information Needed"
            message = f"Your consultation request needs more information: {request.review_notes}"
        elif target == Status.APPROVED:
            title = "Consultation Request Approved"
            message = "Your consultation request has been approved. We will propose a time shortly."
        else:
            title = "Consultation Time Proposed"
            message = (
                f"A consultation has been proposed for {request.proposed_date.isoformat()} "
                f"at {request.proposed_time}. Please confirm or decline."
            )
        return NotificationEvent(
            event_type=f"consultation_request_{target.value.lower()}",
            recipient_role=Role.PATIENT,
            recipient_id=request.patient_id,
            title=title,
            message=message,
            resource_type=ENTITY,
            resource_id=request.id,
        )
