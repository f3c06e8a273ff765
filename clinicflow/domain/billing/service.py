"""
Consultation completion and billing reconciliation.

Completing a consultation and (re)building its bill commit together: the
appointment never ends up COMPLETED without its bill. A draft bill may be
written while the consultation is under way; completion replaces its items.
A PAID bill is frozen, and a bill whose total is already covered (including a
zero total) is settled as soon as its appointment is COMPLETED.
"""

import logging
from datetime import timedelta
from typing import Any, Optional

from sqlalchemy.orm import Session

from ...auth import Actor, require_assigned_doctor, require_patient_or_staff, require_staff
from ...config import (
    CONSULTATION_FEE_SERVICE_CODE,
    DEFAULT_CONSULTATION_FEE,
    FOLLOW_UP_SEARCH_DAYS,
)
from ...database import store_access, transaction
from ...enums import (
    AppointmentStatus,
    ConsultationOutcomeType,
    ConsultationRequestStatus,
    PatientDecision,
    PaymentStatus,
    Role,
)
from ...errors import AuthorizationError, ClinicError, ConflictError, NotFoundError, ValidationError
from ...models import Appointment, Payment
from ...services.audit_service import AuditEvent
from ...services.notification_service import NotificationEvent
from ...services.time_service import TimeService
from ...shared.retry import retry_on_dependency_error
from ...shared.side_effects import SideEffects
from ...shared.validators import parse_request
from ..appointments.service import audit_event, locked_appointment
from ..appointments.workflow import ensure_transition
from ..availability.service import AvailabilityService
from ..consultations import workflow as request_workflow
from .repository import PaymentRepository
from .schemas import (
    BillInput,
    BillItemResponse,
    BillResponse,
    CompleteConsultationRequest,
    CompletionResult,
    FollowUpSuggestion,
    RecordPaymentRequest,
    UpsertBillRequest,
)

logger = logging.getLogger(__name__)

MAX_SUGGESTED_DATES = 5
BILLABLE_STATUSES = {AppointmentStatus.IN_CONSULTATION, AppointmentStatus.COMPLETED}


def calculate_total(
    items: list[tuple[int, float]], discount: float, custom_total: Optional[float] = None
) -> tuple[float, float]:
    """(subtotal, final total) for (quantity, unit_cost) lines"""
    subtotal = round(sum(quantity * unit_cost for quantity, unit_cost in items), 2)
    base = custom_total if custom_total is not None else subtotal
    return subtotal, round(max(0.0, base - discount), 2)


def bill_summary(payment: Payment) -> BillResponse:
    items = [
        BillItemResponse(
            id=item.id,
            service_id=item.service_id,
            service_name=item.service.name if item.service else None,
            quantity=item.quantity,
            unit_cost=item.unit_cost,
            total_cost=item.total_cost,
            service_date=item.service_date,
        )
        for item in payment.bill_items
    ]
    return BillResponse(
        payment_id=payment.id,
        appointment_id=payment.appointment_id,
        patient_id=payment.patient_id,
        bill_date=payment.bill_date,
        subtotal=round(sum(item.total_cost for item in items), 2),
        discount=payment.discount,
        total_amount=payment.total_amount,
        amount_paid=payment.amount_paid,
        balance=payment.balance,
        status=payment.status,
        payment_method=payment.payment_method,
        payment_date=payment.payment_date,
        receipt_number=payment.receipt_number,
        items=items,
    )


def settle_if_covered(payment: Payment, now) -> bool:
    """Mark the bill PAID and issue a receipt once payments cover its total"""
    if (payment.amount_paid or 0) < payment.total_amount:
        return False
    payment.status = PaymentStatus.PAID
    payment.payment_date = now
    payment.receipt_number = f"RCT-{now:%Y%m%d}-{payment.id:06d}"
    return True


class CompletionService:
    """Service layer for consultation completion, payments and bills"""

    def __init__(self, db: Session, time_service: TimeService, side_effects: SideEffects):
        self.db = db
        self.time_service = time_service
        self.side_effects = side_effects
        self.repo = PaymentRepository()
        self.availability = AvailabilityService(db, time_service)

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    @retry_on_dependency_error()
    def complete_consultation(self, appointment_id: int, payload: Any, actor: Actor) -> CompletionResult:
        """
        Finalize an IN_CONSULTATION appointment and build its bill atomically.

        Raises:
            ValidationError: outcome or billing input is malformed
            ConflictError: appointment is not in consultation, or its bill is PAID
            NotFoundError: appointment or a billed service does not exist
        """
        data = parse_request(CompleteConsultationRequest, payload)
        now = self.time_service.local_now()
        events: list[AuditEvent] = []

        with locked_appointment(self.db, appointment_id) as appointment:
            require_assigned_doctor(actor, appointment.doctor_id)
            if data.doctor_id != appointment.doctor_id:
                raise AuthorizationError(
                    "not your appointment",
                    {"appointment_id": appointment.id, "doctor_id": data.doctor_id},
                )
            ensure_transition(
                appointment.status,
                AppointmentStatus.COMPLETED,
                appointment.id,
                "complete a consultation for",
            )

            payment, revised, subtotal, total = self._write_bill(appointment, data, now)

            previous = appointment.status
            appointment.status = AppointmentStatus.COMPLETED
            appointment.consultation_ended_at = now
            if appointment.consultation_started_at is not None:
                elapsed = now - appointment.consultation_started_at
                appointment.consultation_duration = round(elapsed.total_seconds() / 60)
            outcome_note = f"[Consultation Completed] {data.summary}"
            appointment.note = f"{appointment.note}\n\n{outcome_note}" if appointment.note else outcome_note

            events.append(
                audit_event(
                    appointment,
                    actor,
                    "complete_consultation",
                    now,
                    previous,
                    outcome_type=data.outcome_type.value,
                    duration_minutes=appointment.consultation_duration,
                )
            )

            if (
                data.outcome_type == ConsultationOutcomeType.PROCEDURE_RECOMMENDED
                and data.patient_decision == PatientDecision.YES
            ):
                appointment.awaiting_surgical_planning = True
                request_event = self._complete_linked_request(appointment, actor, now)
                if request_event is not None:
                    events.append(request_event)

            settle_if_covered(payment, now)
            self.db.flush()
            events.append(self._bill_event(payment, revised, subtotal, data.discount, total, actor, now))
            summary = bill_summary(payment)
            awaiting_surgical_planning = appointment.awaiting_surgical_planning
            doctor_id = appointment.doctor_id
            patient_id = appointment.patient_id

        logger.info(
            f"✅ Consultation completed for appointment {appointment_id}: "
            f"{data.outcome_type.value}, bill {summary.payment_id} total {summary.total_amount:.2f}"
        )
        for event in events:
            self.side_effects.audit(event)
        if summary.status != PaymentStatus.PAID:
            self.side_effects.notify(
                NotificationEvent(
                    event_type="payment_ready",
                    recipient_role=Role.FRONTDESK,
                    recipient_id=None,
                    title="Payment Ready for Collection",
                    message=(
                        f"Consultation for appointment #{appointment_id} is complete. "
                        f"Amount due: {summary.balance:.2f}"
                    ),
                    resource_type="Payment",
                    resource_id=summary.payment_id,
                )
            )

        follow_up = None
        if data.outcome_type == ConsultationOutcomeType.FOLLOW_UP_CONSULTATION_NEEDED:
            follow_up = self._suggest_follow_up(doctor_id, patient_id)

        return CompletionResult(
            appointment_id=appointment_id,
            status=AppointmentStatus.COMPLETED,
            billing_summary=summary,
            awaiting_surgical_planning=awaiting_surgical_planning,
            follow_up_suggestion=follow_up,
        )

    @retry_on_dependency_error()
    def upsert_bill(self, appointment_id: int, payload: Any, actor: Actor) -> BillResponse:
        """
        Draft or revise the bill while the visit is in consultation, or after it
        completed but before settlement. Items are replaced wholesale.

        Raises:
            ConflictError: the visit is not under way or done, or the bill is PAID
        """
        data = parse_request(UpsertBillRequest, payload)
        if actor.role != Role.DOCTOR:
            require_staff(actor, "edit bills")
        now = self.time_service.local_now()

        with locked_appointment(self.db, appointment_id) as appointment:
            if actor.role == Role.DOCTOR:
                require_assigned_doctor(actor, appointment.doctor_id)
            if appointment.status not in BILLABLE_STATUSES:
                raise ConflictError(
                    f"cannot bill an appointment that is {appointment.status.value.lower()}",
                    {"appointment_id": appointment.id, "current_status": appointment.status.value},
                )
            payment, revised, subtotal, total = self._write_bill(appointment, data, now)
            if appointment.status == AppointmentStatus.COMPLETED:
                settle_if_covered(payment, now)
            self.db.flush()
            event = self._bill_event(payment, revised, subtotal, data.discount, total, actor, now)
            summary = bill_summary(payment)

        logger.info(
            f"🧾 Bill {summary.payment_id} for appointment {appointment_id} "
            f"{'revised' if revised else 'drafted'} by {actor.label}: total {summary.total_amount:.2f}"
        )
        self.side_effects.audit(event)
        return summary

    def _write_bill(
        self, appointment: Appointment, data: BillInput, now
    ) -> tuple[Payment, bool, float, float]:
        """(payment, revised, subtotal, total) after replacing the bill's items"""
        existing = self.repo.find_by_appointment_id(self.db, appointment.id, for_update=True)
        if existing is not None and existing.status == PaymentStatus.PAID:
            raise ConflictError(
                "payment already completed",
                {"appointment_id": appointment.id, "payment_id": existing.id},
            )

        lines = self._bill_lines(appointment, data, now)
        subtotal, total = calculate_total(
            [(line["quantity"], line["unit_cost"]) for line in lines],
            data.discount,
            data.custom_total_amount,
        )
        already_paid = existing.amount_paid if existing is not None else 0
        if (already_paid or 0) > total:
            raise ValidationError(
                "bill total cannot fall below the amount already paid",
                {"total": total, "amount_paid": already_paid},
            )
        payment = self.repo.upsert_with_items(
            self.db,
            existing,
            patient_id=appointment.patient_id,
            appointment_id=appointment.id,
            bill_date=now,
            discount=data.discount,
            total_amount=total,
            items=lines,
        )
        return payment, existing is not None, subtotal, total

    @staticmethod
    def _bill_event(
        payment: Payment, revised: bool, subtotal: float, discount: float, total: float, actor: Actor, now
    ) -> AuditEvent:
        return AuditEvent(
            actor=actor.label,
            entity_type="Payment",
            entity_id=payment.id,
            action="bill_revised" if revised else "bill_created",
            occurred_at=now,
            to_status=payment.status.value,
            details={"subtotal": subtotal, "discount": discount, "total": total},
        )

    def _bill_lines(self, appointment: Appointment, data: BillInput, now) -> list[dict]:
        lines = []
        for item in data.billing_items:
            service = self.repo.get_service(self.db, item.service_id)
            if not service:
                raise NotFoundError(
                    f"Billable service {item.service_id} not found", {"service_id": item.service_id}
                )
            lines.append(
                {
                    "service_id": service.id,
                    "quantity": item.quantity,
                    "unit_cost": item.unit_cost,
                    "total_cost": round(item.quantity * item.unit_cost, 2),
                    "service_date": now,
                }
            )

        if not lines and data.custom_total_amount is None:
            # Nothing itemised: bill the doctor's consultation fee
            doctor = self.repo.get_doctor(self.db, appointment.doctor_id)
            fee = (doctor.consultation_fee if doctor else None) or DEFAULT_CONSULTATION_FEE
            service = self.repo.get_or_create_service_by_code(
                self.db, CONSULTATION_FEE_SERVICE_CODE, "Consultation Fee", DEFAULT_CONSULTATION_FEE
            )
            lines.append(
                {
                    "service_id": service.id,
                    "quantity": 1,
                    "unit_cost": fee,
                    "total_cost": round(fee, 2),
                    "service_date": now,
                }
            )
        return lines

    def _complete_linked_request(
        self, appointment: Appointment, actor: Actor, now
    ) -> Optional[AuditEvent]:
        """Hand a procedure-bound request over to surgical planning"""
        request = appointment.consultation_request
        if request is None:
            return None
        current = request.status
        request_workflow.ensure_transition(
            current, ConsultationRequestStatus.COMPLETED, request.id
        )
        request.status = ConsultationRequestStatus.COMPLETED
        request.completed_at = now
        return AuditEvent(
            actor=actor.label,
            entity_type="ConsultationRequest",
            entity_id=request.id,
            action="complete",
            occurred_at=now,
            from_status=current.value,
            to_status=ConsultationRequestStatus.COMPLETED.value,
            details={"appointment_id": appointment.id, "awaiting_surgical_planning": True},
        )

    def _suggest_follow_up(self, doctor_id: int, patient_id: int) -> FollowUpSuggestion:
        """Next open dates for the same doctor; a lookup failure only empties the list"""
        start = self.time_service.today() + timedelta(days=1)
        end = start + timedelta(days=FOLLOW_UP_SEARCH_DAYS - 1)
        try:
            dates = self.availability.available_dates(doctor_id, start, end)[:MAX_SUGGESTED_DATES]
        except ClinicError as e:
            logger.warning(f"⚠️ Could not look up follow-up dates for doctor {doctor_id}: {e.message}")
            dates = []
        return FollowUpSuggestion(
            doctor_id=doctor_id,
            patient_id=patient_id,
            suggested_dates=dates,
            message=(
                "A follow-up consultation is recommended. Please book one of the suggested dates."
                if dates
                else "A follow-up consultation is recommended. No open dates were found in the next "
                f"{FOLLOW_UP_SEARCH_DAYS} days."
            ),
        )

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    @retry_on_dependency_error()
    def record_payment(self, appointment_id: int, payload: Any, actor: Actor) -> BillResponse:
        """Collect money against a bill: UNPAID → PARTIAL → PAID"""
        data = parse_request(RecordPaymentRequest, payload)
        require_staff(actor, "record payments")
        now = self.time_service.local_now()

        with transaction(self.db):
            payment = self.repo.find_by_appointment_id(self.db, appointment_id, for_update=True)
            if not payment:
                raise NotFoundError(
                    f"No bill for appointment {appointment_id}", {"appointment_id": appointment_id}
                )
            if payment.status == PaymentStatus.PAID:
                raise ConflictError(
                    "payment already completed",
                    {"appointment_id": appointment_id, "payment_id": payment.id},
                )
            balance = payment.balance
            if data.amount > balance:
                raise ValidationError(
                    "amount exceeds the outstanding balance",
                    {"amount": data.amount, "balance": balance},
                )

            previous = payment.status
            payment.amount_paid = round((payment.amount_paid or 0) + data.amount, 2)
            payment.payment_method = data.payment_method
            if not settle_if_covered(payment, now):
                payment.status = PaymentStatus.PARTIAL
            self.db.flush()
            summary = bill_summary(payment)

        logger.info(
            f"💰 Payment of {data.amount:.2f} recorded on bill {summary.payment_id} "
            f"({previous.value} → {summary.status.value}) by {actor.label}"
        )
        self.side_effects.audit(
            AuditEvent(
                actor=actor.label,
                entity_type="Payment",
                entity_id=summary.payment_id,
                action="record_payment",
                occurred_at=now,
                from_status=previous.value,
                to_status=summary.status.value,
                details={"amount": data.amount, "method": data.payment_method.value},
            )
        )
        if summary.status == PaymentStatus.PAID:
            self.side_effects.notify(
                NotificationEvent(
                    event_type="payment_completed",
                    recipient_role=Role.PATIENT,
                    recipient_id=summary.patient_id,
                    title="Payment Received",
                    message=f"Thank you. Receipt {summary.receipt_number} has been issued.",
                    resource_type="Payment",
                    resource_id=summary.payment_id,
                )
            )
        return summary

    def get_bill(self, appointment_id: int, actor: Actor) -> BillResponse:
        with store_access(self.db):
            payment = self.repo.find_by_appointment_id(self.db, appointment_id)
            if not payment:
                raise NotFoundError(
                    f"No bill for appointment {appointment_id}", {"appointment_id": appointment_id}
                )
            if actor.role == Role.DOCTOR:
                require_assigned_doctor(actor, payment.appointment.doctor_id)
            else:
                require_patient_or_staff(actor, payment.patient_id, "bill")
            return bill_summary(payment)
