"""Availability router - FastAPI endpoints for slot resolution and templates"""

import logging
from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import Actor, get_current_actor
from ...database import get_db
from ...dependencies import get_time_service
from ...errors import ValidationError
from ...services.time_service import TimeService
from ...shared.validators import validate_time_string
from .schemas import (
    AvailableDatesResponse,
    DaySlotsResponse,
    OverrideRequest,
    RangeSlotsResponse,
    SlotCheckResponse,
    WeeklyTemplateRequest,
)
from .service import AvailabilityService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/doctors", tags=["Availability"])


def get_availability_service(
    db: Session = Depends(get_db), time_service: TimeService = Depends(get_time_service)
) -> AvailabilityService:
    """Dependency injection for AvailabilityService"""
    return AvailabilityService(db, time_service)


@router.get("/{doctor_id}/slots", response_model=DaySlotsResponse)
def get_slots_for_date(
    doctor_id: int,
    date: date,
    service: AvailabilityService = Depends(get_availability_service),
):
    """Bookable slots for one date (empty list when the doctor does not work that day)"""
    slots = service.resolve_day(doctor_id, date)
    return DaySlotsResponse(
        doctor_id=doctor_id,
        date=date,
        slots=slots,
        available_count=sum(1 for s in slots if s.is_available),
    )


@router.get("/{doctor_id}/availability", response_model=RangeSlotsResponse)
def get_slots_for_range(
    doctor_id: int,
    start_date: date,
    end_date: date,
    service: AvailabilityService = Depends(get_availability_service),
):
    """Slots for every date in a range"""
    days = service.resolve_range(doctor_id, start_date, end_date)
    return RangeSlotsResponse(doctor_id=doctor_id, start_date=start_date, end_date=end_date, days=days)


@router.get("/{doctor_id}/available-dates", response_model=AvailableDatesResponse)
def get_available_dates(
    doctor_id: int,
    start_date: date,
    end_date: date,
    service: AvailabilityService = Depends(get_availability_service),
):
    """Dates with at least one open slot"""
    dates = service.available_dates(doctor_id, start_date, end_date)
    return AvailableDatesResponse(doctor_id=doctor_id, start_date=start_date, end_date=end_date, dates=dates)


@router.get("/{doctor_id}/slots/check", response_model=SlotCheckResponse)
def check_slot(
    doctor_id: int,
    date: date,
    time: str = Query(..., description="HH:MM"),
    service: AvailabilityService = Depends(get_availability_service),
):
    """Explain whether one start time is bookable"""
    try:
        at = validate_time_string(time)
    except ValueError as e:
        raise ValidationError(str(e), {"time": time}) from None
    return service.check_slot(doctor_id, date, at)


@router.put("/{doctor_id}/availability/template", status_code=204)
def replace_weekly_template(
    doctor_id: int,
    body: WeeklyTemplateRequest,
    actor: Actor = Depends(get_current_actor),
    service: AvailabilityService = Depends(get_availability_service),
):
    """Replace the weekly template"""
    service.set_weekly_template(doctor_id, body, actor)


@router.post("/{doctor_id}/availability/overrides", status_code=201)
def add_override(
    doctor_id: int,
    body: OverrideRequest,
    actor: Actor = Depends(get_current_actor),
    service: AvailabilityService = Depends(get_availability_service),
):
    """Block out a date range, or give it custom working hours"""
    override_id = service.add_override(doctor_id, body, actor)
    return {"id": override_id}
