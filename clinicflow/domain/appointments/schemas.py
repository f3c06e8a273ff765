"""Appointment schemas - Pydantic models for validation"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator

from ...enums import AppointmentStatus
from ...shared.validators import validate_time_string


class AppointmentCreateRequest(BaseModel):
    """Direct booking: staff schedule it, a patient books it as PENDING"""

    model_config = ConfigDict(extra="forbid")

    doctor_id: int
    patient_id: int
    appointment_date: date
    time: str
    type: str = "CONSULTATION"
    reason: Optional[str] = None

    @field_validator("time")
    @classmethod
    def validate_time(cls, v: str) -> str:
        return validate_time_string(v)

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: str) -> str:
        v = v.strip().upper()
        if not v:
            raise ValueError("appointment type cannot be empty")
        if len(v) > 50:
            raise ValueError("appointment type must be at most 50 characters")
        return v


class RescheduleRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    new_date: date
    new_time: str
    reason: str

    @field_validator("new_time")
    @classmethod
    def validate_time(cls, v: str) -> str:
        return validate_time_string(v)

    @field_validator("reason")
    @classmethod
    def validate_reason(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("a reason is required to reschedule")
        return v


class CancelRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    reason: str

    @field_validator("reason")
    @classmethod
    def validate_reason(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("a reason is required to cancel")
        return v


class StatusUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: AppointmentStatus
    reason: Optional[str] = None


class AppointmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    patient_id: int
    doctor_id: int
    consultation_request_id: Optional[int] = None
    appointment_date: date
    time: str
    duration_minutes: int
    status: AppointmentStatus
    type: str
    reason: Optional[str] = None
    note: Optional[str] = None
    cancellation_reason: Optional[str] = None
    checked_in_at: Optional[datetime] = None
    checked_in_by: Optional[str] = None
    consultation_started_at: Optional[datetime] = None
    consultation_ended_at: Optional[datetime] = None
    consultation_duration: Optional[int] = None
    awaiting_surgical_planning: bool = False


class AppointmentStatusResult(BaseModel):
    appointment_id: int
    status: AppointmentStatus
