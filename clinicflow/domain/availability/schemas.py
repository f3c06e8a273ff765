"""Availability domain schemas - Pydantic models for validation"""

from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from ...shared.validators import validate_time_string


class AvailabilitySlot(BaseModel):
    """Derived bookable interval; recomputed on every query, never persisted"""

    doctor_id: int
    date: date
    start_time: str  # HH:MM
    end_time: str  # HH:MM
    duration: int  # minutes
    is_available: bool


class DaySlotsResponse(BaseModel):
    doctor_id: int
    date: date
    slots: list[AvailabilitySlot]
    available_count: int


class RangeSlotsResponse(BaseModel):
    doctor_id: int
    start_date: date
    end_date: date
    days: list[DaySlotsResponse]


class AvailableDatesResponse(BaseModel):
    doctor_id: int
    start_date: date
    end_date: date
    dates: list[date]


class SlotCheckResponse(BaseModel):
    doctor_id: int
    date: date
    time: str
    is_available: bool
    reason: Optional[str] = None


class WorkingDayInput(BaseModel):
    """One weekly template range, e.g. Monday 09:00-13:00"""

    model_config = ConfigDict(extra="forbid")

    day_of_week: int  # 0 = Monday
    start_time: str
    end_time: str
    is_available: bool = True

    @field_validator("day_of_week")
    @classmethod
    def validate_day(cls, v: int) -> int:
        if v < 0 or v > 6:
            raise ValueError("day_of_week must be between 0 (Monday) and 6 (Sunday)")
        return v

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_times(cls, v: str) -> str:
        return validate_time_string(v)

    @model_validator(mode="after")
    def validate_range(self):
        if self.start_time >= self.end_time:
            raise ValueError("start_time must be before end_time")
        return self


class SlotConfigurationInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    default_duration: int = 30
    slot_interval: Optional[int] = None
    buffer_time: int = 0

    @field_validator("default_duration")
    @classmethod
    def validate_duration(cls, v: int) -> int:
        if v < 5 or v > 480:
            raise ValueError("default_duration must be between 5 and 480 minutes")
        return v

    @field_validator("slot_interval")
    @classmethod
    def validate_interval(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 5:
            raise ValueError("slot_interval must be at least 5 minutes")
        return v

    @field_validator("buffer_time")
    @classmethod
    def validate_buffer(cls, v: int) -> int:
        if v < 0:
            raise ValueError("buffer_time cannot be negative")
        return v


class WeeklyTemplateRequest(BaseModel):
    """Replace a doctor's weekly template wholesale"""

    model_config = ConfigDict(extra="forbid")

    working_days: list[WorkingDayInput]
    breaks: list[WorkingDayInput] = []
    slot_configuration: Optional[SlotConfigurationInput] = None


class OverrideRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    start_date: date
    end_date: date
    reason: Optional[str] = None
    is_blocked: bool = True
    start_time: Optional[str] = None
    end_time: Optional[str] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_times(cls, v: Optional[str]) -> Optional[str]:
        return validate_time_string(v) if v is not None else v

    @model_validator(mode="after")
    def validate_range(self):
        if self.start_date > self.end_date:
            raise ValueError("start_date cannot be after end_date")
        if self.is_blocked:
            if self.start_time or self.end_time:
                raise ValueError("a blocked override cannot carry working hours")
        elif not (self.start_time and self.end_time):
            raise ValueError("an unblocked override needs start_time and end_time")
        elif self.start_time >= self.end_time:
            raise ValueError("start_time must be before end_time")
        return self
