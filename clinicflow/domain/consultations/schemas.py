"""Consultation request schemas - Pydantic models for validation"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from ...enums import ConsultationRequestStatus, ReviewDecision
from ...shared.validators import MIN_REASON_LENGTH, validate_time_string


class SubmitConsultationRequest(BaseModel):
    """Inbound consultation inquiry"""

    model_config = ConfigDict(extra="forbid")

    patient_id: int
    concern: str
    details: Optional[str] = None
    doctor_id: Optional[int] = None  # preferred doctor, may be assigned at approval
    preferred_date: Optional[date] = None

    @field_validator("concern")
    @classmethod
    def validate_concern(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 3:
            raise ValueError("concern must be at least 3 characters")
        if len(v) > 255:
            raise ValueError("concern must be at most 255 characters")
        return v


class ReviewConsultationRequest(BaseModel):
    """Staff triage decision"""

    model_config = ConfigDict(extra="forbid")

    decision: ReviewDecision
    notes: Optional[str] = None
    doctor_id: Optional[int] = None
    proposed_date: Optional[date] = None
    proposed_time: Optional[str] = None

    @field_validator("proposed_time")
    @classmethod
    def validate_time(cls, v: Optional[str]) -> Optional[str]:
        return validate_time_string(v) if v is not None else v

    @model_validator(mode="after")
    def validate_decision(self):
        if (self.proposed_date is None) != (self.proposed_time is None):
            raise ValueError("proposed_date and proposed_time must be given together")
        if self.decision != ReviewDecision.APPROVE and self.proposed_date is not None:
            raise ValueError("a proposed time can only accompany an approval")
        if self.decision in (ReviewDecision.NEEDS_MORE_INFO, ReviewDecision.REJECT):
            notes = (self.notes or "").strip()
            if not notes:
                raise ValueError("a reason is required to request more information or reject")
            if len(notes) < MIN_REASON_LENGTH:
                raise ValueError(f"reason must be at least {MIN_REASON_LENGTH} characters")
            self.notes = notes
        return self


class ProposeTimeRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    proposed_date: date
    proposed_time: str
    doctor_id: Optional[int] = None

    @field_validator("proposed_time")
    @classmethod
    def validate_time(cls, v: str) -> str:
        return validate_time_string(v)


class InfoResponseRequest(BaseModel):
    """Patient's answer to a NEEDS_MORE_INFO review"""

    model_config = ConfigDict(extra="forbid")

    response: str

    @field_validator("response")
    @classmethod
    def validate_response(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("response cannot be empty")
        return v


class DeclineProposalRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    reason: str

    @field_validator("reason")
    @classmethod
    def validate_reason(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("a reason is required to decline")
        return v


class ConsultationRequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    patient_id: int
    doctor_id: Optional[int] = None
    status: ConsultationRequestStatus
    concern: str
    details: Optional[str] = None
    preferred_date: Optional[date] = None
    submitted_at: datetime
    review_notes: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    proposed_date: Optional[date] = None
    proposed_time: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class ReviewResult(BaseModel):
    request_id: int
    status: ConsultationRequestStatus


class ConfirmResult(BaseModel):
    request_id: int
    appointment_id: int
    status: ConsultationRequestStatus
