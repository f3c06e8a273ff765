"""Billing domain schemas - Pydantic models for validation"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from ...enums import (
    AppointmentStatus,
    ConsultationOutcomeType,
    PatientDecision,
    PaymentMethod,
    PaymentStatus,
)


class BillingItemInput(BaseModel):
    """One charge line supplied at completion"""

    model_config = ConfigDict(extra="forbid")

    service_id: int
    quantity: int
    unit_cost: float

    @field_validator("quantity")
    @classmethod
    def validate_quantity(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("quantity must be positive")
        return v

    @field_validator("unit_cost")
    @classmethod
    def validate_unit_cost(cls, v: float) -> float:
        if v < 0:
            raise ValueError("unit_cost cannot be negative")
        return v


class BillInput(BaseModel):
    """Charge lines, discount and optional override total"""

    model_config = ConfigDict(extra="forbid")

    billing_items: list[BillingItemInput] = []
    discount: float = 0
    custom_total_amount: Optional[float] = None

    @field_validator("discount")
    @classmethod
    def validate_discount(cls, v: float) -> float:
        if v < 0:
            raise ValueError("discount cannot be negative")
        return v

    @field_validator("custom_total_amount")
    @classmethod
    def validate_custom_total(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v < 0:
            raise ValueError("custom_total_amount cannot be negative")
        return v


class UpsertBillRequest(BillInput):
    """Draft or revise a bill before settlement"""

    billing_items: list[BillingItemInput]

    @field_validator("billing_items")
    @classmethod
    def validate_items(cls, v: list[BillingItemInput]) -> list[BillingItemInput]:
        if not v:
            raise ValueError("at least one billing item is required")
        return v


class CompleteConsultationRequest(BillInput):
    """Schema for completing a consultation and building its bill"""

    doctor_id: int
    outcome_type: ConsultationOutcomeType
    summary: str
    patient_decision: Optional[PatientDecision] = None

    @field_validator("summary")
    @classmethod
    def validate_summary(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("an outcome summary is required")
        return v

    @model_validator(mode="after")
    def validate_patient_decision(self):
        if (
            self.outcome_type == ConsultationOutcomeType.PROCEDURE_RECOMMENDED
            and self.patient_decision is None
        ):
            raise ValueError("patient_decision is required when a procedure is recommended")
        return self


class RecordPaymentRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    amount: float
    payment_method: PaymentMethod

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("amount must be positive")
        return round(v, 2)


class BillItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    service_id: int
    service_name: Optional[str] = None
    quantity: int
    unit_cost: float
    total_cost: float
    service_date: datetime


class BillResponse(BaseModel):
    """Billing summary for one appointment"""

    payment_id: int
    appointment_id: int
    patient_id: int
    bill_date: datetime
    subtotal: float
    discount: float
    total_amount: float
    amount_paid: float
    balance: float
    status: PaymentStatus
    payment_method: Optional[PaymentMethod] = None
    payment_date: Optional[datetime] = None
    receipt_number: Optional[str] = None
    items: list[BillItemResponse] = []


class FollowUpSuggestion(BaseModel):
    """Surfaced, never auto-booked"""

    doctor_id: int
    patient_id: int
    suggested_dates: list[date]
    message: str


class CompletionResult(BaseModel):
    appointment_id: int
    status: AppointmentStatus
    billing_summary: BillResponse
    awaiting_surgical_planning: bool = False
    follow_up_suggestion: Optional[FollowUpSuggestion] = None
