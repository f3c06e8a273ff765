"""
Persistence models for the engagement lifecycle.

All DateTime columns hold naive clinic-local wall-clock values (see
services/time_service.py); dates and "HH:MM" times are likewise clinic-local.
"""

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Enum as SAEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base
from .enums import (
    AppointmentStatus,
    ConsultationRequestStatus,
    PaymentMethod,
    PaymentStatus,
)


def _enum(enum_cls):
    return SAEnum(enum_cls, native_enum=False, length=30, validate_strings=True)


class Patient(Base):
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=True, index=True)
    phone = Column(String(30), nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class Doctor(Base):
    __tablename__ = "doctors"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    specialization = Column(String(255), nullable=True)
    consultation_fee = Column(Float, nullable=True)  # null -> DEFAULT_CONSULTATION_FEE
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    working_days = relationship("DoctorWorkingDay", back_populates="doctor")
    slot_configuration = relationship("SlotConfiguration", uselist=False, back_populates="doctor")


# ============================================================================
# AVAILABILITY TEMPLATE
# ============================================================================


class DoctorWorkingDay(Base):
    """One working range on a weekday; several rows per weekday are allowed"""

    __tablename__ = "doctor_working_days"

    id = Column(Integer, primary_key=True, index=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False, index=True)
    day_of_week = Column(Integer, nullable=False)  # 0 = Monday ... 6 = Sunday
    start_time = Column(String(5), nullable=False)  # HH:MM
    end_time = Column(String(5), nullable=False)  # HH:MM
    is_available = Column(Boolean, default=True, nullable=False)

    doctor = relationship("Doctor", back_populates="working_days")


class AvailabilityBreak(Base):
    """Recurring weekly break, e.g. lunch"""

    __tablename__ = "availability_breaks"

    id = Column(Integer, primary_key=True, index=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False, index=True)
    day_of_week = Column(Integer, nullable=False)
    start_time = Column(String(5), nullable=False)
    end_time = Column(String(5), nullable=False)


class AvailabilityOverride(Base):
    """Date range exception to the weekly template (leave, conference...)"""

    __tablename__ = "availability_overrides"

    id = Column(Integer, primary_key=True, index=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False, index=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    is_blocked = Column(Boolean, default=True, nullable=False)
    start_time = Column(String(5), nullable=True)  # HH:MM, custom hours when not blocked
    end_time = Column(String(5), nullable=True)
    reason = Column(String(500), nullable=True)


class SlotConfiguration(Base):
    __tablename__ = "slot_configurations"

    id = Column(Integer, primary_key=True, index=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False, unique=True)
    default_duration = Column(Integer, nullable=False, default=30)  # minutes
    slot_interval = Column(Integer, nullable=True)  # minutes between slot starts; null -> duration
    buffer_time = Column(Integer, nullable=False, default=0)  # minutes after each slot

    doctor = relationship("Doctor", back_populates="slot_configuration")


# ============================================================================
# CONSULTATION REQUESTS & APPOINTMENTS
# ============================================================================


class ConsultationRequest(Base):
    __tablename__ = "consultation_requests"

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=True)  # set at approval at the latest
    submitted_by = Column(String(100), nullable=False)  # "ROLE:id"
    submitted_at = Column(DateTime, nullable=False)

    # Workflow: SUBMITTED → PENDING_REVIEW → NEEDS_MORE_INFO ⇄ PENDING_REVIEW
    #           PENDING_REVIEW → APPROVED → SCHEDULED → CONFIRMED → COMPLETED
    #           PENDING_REVIEW / SCHEDULED → CANCELLED
    status = Column(_enum(ConsultationRequestStatus), nullable=False, index=True)

    concern = Column(String(255), nullable=False)
    details = Column(Text, nullable=True)
    preferred_date = Column(Date, nullable=True)

    review_notes = Column(Text, nullable=True)
    reviewed_by = Column(String(100), nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    proposed_date = Column(Date, nullable=True)
    proposed_time = Column(String(5), nullable=True)
    confirmed_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    version_id = Column(Integer, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    appointment = relationship("Appointment", uselist=False, back_populates="consultation_request")

    __mapper_args__ = {"version_id_col": version_id}


class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False, index=True)
    consultation_request_id = Column(
        Integer, ForeignKey("consultation_requests.id"), nullable=True, unique=True
    )

    appointment_date = Column(Date, nullable=False)
    time = Column(String(5), nullable=False)  # HH:MM
    duration_minutes = Column(Integer, nullable=False)

    # PENDING → SCHEDULED → CONFIRMED → CHECKED_IN → IN_CONSULTATION → COMPLETED
    # any non-terminal → CANCELLED
    status = Column(_enum(AppointmentStatus), nullable=False, index=True)
    type = Column(String(50), nullable=False)
    reason = Column(Text, nullable=True)
    note = Column(Text, nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    checked_in_at = Column(DateTime, nullable=True)
    checked_in_by = Column(String(100), nullable=True)
    consultation_started_at = Column(DateTime, nullable=True)
    consultation_ended_at = Column(DateTime, nullable=True)
    consultation_duration = Column(Integer, nullable=True)  # minutes
    awaiting_surgical_planning = Column(Boolean, default=False, nullable=False)

    version_id = Column(Integer, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    consultation_request = relationship("ConsultationRequest", back_populates="appointment")
    payment = relationship("Payment", uselist=False, back_populates="appointment")

    __mapper_args__ = {"version_id_col": version_id}
    __table_args__ = (
        # No two live appointments may hold the same doctor slot
        Index(
            "uq_appointments_active_slot",
            "doctor_id",
            "appointment_date",
            "time",
            unique=True,
            postgresql_where=text("status <> 'CANCELLED'"),
            sqlite_where=text("status <> 'CANCELLED'"),
        ),
    )


# ============================================================================
# BILLING
# ============================================================================


class BillableService(Base):
    __tablename__ = "billable_services"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(50), unique=True, nullable=False)
    name = Column(String(255), nullable=False)
    category = Column(String(100), nullable=True)
    price = Column(Float, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)


class Payment(Base):
    """Bill for one appointment; contents are frozen once status is PAID"""

    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False, unique=True)
    bill_date = Column(DateTime, nullable=False)
    discount = Column(Float, nullable=False, default=0)
    total_amount = Column(Float, nullable=False, default=0)
    amount_paid = Column(Float, nullable=False, default=0)
    status = Column(_enum(PaymentStatus), nullable=False, default=PaymentStatus.UNPAID)
    payment_method = Column(_enum(PaymentMethod), nullable=True)
    payment_date = Column(DateTime, nullable=True)
    receipt_number = Column(String(50), nullable=True, unique=True)

    version_id = Column(Integer, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    appointment = relationship("Appointment", back_populates="payment")
    bill_items = relationship(
        "BillItem",
        back_populates="payment",
        cascade="all, delete-orphan",
        order_by="BillItem.id",
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def balance(self) -> float:
        return round(max(0.0, (self.total_amount or 0) - (self.amount_paid or 0)), 2)


class BillItem(Base):
    __tablename__ = "bill_items"

    id = Column(Integer, primary_key=True, index=True)
    payment_id = Column(Integer, ForeignKey("payments.id"), nullable=False, index=True)
    service_id = Column(Integer, ForeignKey("billable_services.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_cost = Column(Float, nullable=False)
    total_cost = Column(Float, nullable=False)
    service_date = Column(DateTime, nullable=False)

    payment = relationship("Payment", back_populates="bill_items")
    service = relationship("BillableService")


# ============================================================================
# AUDIT & NOTIFICATIONS
# ============================================================================


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    actor = Column(String(100), nullable=False)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(Integer, nullable=False, index=True)
    action = Column(String(50), nullable=False)
    from_status = Column(String(30), nullable=True)
    to_status = Column(String(30), nullable=True)
    reason = Column(Text, nullable=True)
    details = Column(Text, nullable=True)
    occurred_at = Column(DateTime, nullable=False)


class Notification(Base):
    """In-app notification; delivery to email/SMS happens outside this service"""

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    recipient_role = Column(String(20), nullable=False)
    recipient_id = Column(Integer, nullable=True, index=True)  # null -> everyone in the role
    event_type = Column(String(100), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    resource_type = Column(String(50), nullable=True)
    resource_id = Column(Integer, nullable=True)
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, nullable=False)
