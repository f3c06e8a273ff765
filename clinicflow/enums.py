from enum import Enum


class Role(str, Enum):
    PATIENT = "PATIENT"
    FRONTDESK = "FRONTDESK"
    DOCTOR = "DOCTOR"
    ADMIN = "ADMIN"


STAFF_ROLES = {Role.FRONTDESK, Role.ADMIN}


class ConsultationRequestStatus(str, Enum):
    SUBMITTED = "SUBMITTED"
    PENDING_REVIEW = "PENDING_REVIEW"
    NEEDS_MORE_INFO = "NEEDS_MORE_INFO"
    APPROVED = "APPROVED"
    SCHEDULED = "SCHEDULED"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class ReviewDecision(str, Enum):
    APPROVE = "APPROVE"
    NEEDS_MORE_INFO = "NEEDS_MORE_INFO"
    REJECT = "REJECT"


class AppointmentStatus(str, Enum):
    PENDING = "PENDING"
    SCHEDULED = "SCHEDULED"
    CONFIRMED = "CONFIRMED"
    CHECKED_IN = "CHECKED_IN"
    IN_CONSULTATION = "IN_CONSULTATION"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, Enum):
    UNPAID = "UNPAID"
    PARTIAL = "PARTIAL"
    PAID = "PAID"


class PaymentMethod(str, Enum):
    CASH = "CASH"
    CARD = "CARD"
    MOBILE_MONEY = "MOBILE_MONEY"
    INSURANCE = "INSURANCE"
    BANK_TRANSFER = "BANK_TRANSFER"


class ConsultationOutcomeType(str, Enum):
    PROCEDURE_RECOMMENDED = "PROCEDURE_RECOMMENDED"
    CONSULTATION_ONLY = "CONSULTATION_ONLY"
    FOLLOW_UP_CONSULTATION_NEEDED = "FOLLOW_UP_CONSULTATION_NEEDED"
    PATIENT_DECIDING = "PATIENT_DECIDING"
    REFERRAL_NEEDED = "REFERRAL_NEEDED"


class PatientDecision(str, Enum):
    YES = "YES"
    NO = "NO"
    PENDING = "PENDING"
