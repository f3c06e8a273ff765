"""Appointment router - FastAPI endpoints for booking and visit lifecycle"""

import logging
from datetime import date

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import Actor, get_current_actor
from ...database import get_db
from ...dependencies import get_side_effects, get_time_service
from ...services.time_service import TimeService
from ...shared.side_effects import SideEffects
from .reschedule import RescheduleCoordinator
from .schemas import (
    AppointmentCreateRequest,
    AppointmentResponse,
    AppointmentStatusResult,
    CancelRequest,
    RescheduleRequest,
    StatusUpdateRequest,
)
from .service import AppointmentService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/appointments", tags=["Appointments"])


def get_appointment_service(
    db: Session = Depends(get_db),
    time_service: TimeService = Depends(get_time_service),
    side_effects: SideEffects = Depends(get_side_effects),
) -> AppointmentService:
    """Dependency injection for AppointmentService"""
    return AppointmentService(db, time_service, side_effects)


def get_reschedule_coordinator(
    db: Session = Depends(get_db),
    time_service: TimeService = Depends(get_time_service),
    side_effects: SideEffects = Depends(get_side_effects),
) -> RescheduleCoordinator:
    return RescheduleCoordinator(db, time_service, side_effects)


@router.post("", status_code=201)
def schedule_appointment(
    body: AppointmentCreateRequest,
    actor: Actor = Depends(get_current_actor),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Front desk books a slot directly (SCHEDULED)"""
    appointment_id = service.schedule_appointment(body, actor)
    return {"id": appointment_id}


@router.post("/book", status_code=201)
def book_appointment(
    body: AppointmentCreateRequest,
    actor: Actor = Depends(get_current_actor),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Patient self-booking (PENDING until the front desk accepts it)"""
    appointment_id = service.book(body, actor)
    return {"id": appointment_id}


@router.get("/doctor/{doctor_id}", response_model=list[AppointmentResponse])
def list_doctor_appointments(
    doctor_id: int,
    start_date: date,
    end_date: date,
    include_cancelled: bool = False,
    actor: Actor = Depends(get_current_actor),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.list_for_doctor(
        doctor_id, start_date, end_date, actor, include_cancelled=include_cancelled
    )


@router.get("/patient/{patient_id}", response_model=list[AppointmentResponse])
def list_patient_appointments(
    patient_id: int,
    actor: Actor = Depends(get_current_actor),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.list_for_patient(patient_id, actor)


@router.get("/{appointment_id}", response_model=AppointmentResponse)
def get_appointment(
    appointment_id: int,
    actor: Actor = Depends(get_current_actor),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.get(appointment_id, actor)


@router.post("/{appointment_id}/accept", response_model=AppointmentStatusResult)
def accept_pending(
    appointment_id: int,
    actor: Actor = Depends(get_current_actor),
    service: AppointmentService = Depends(get_appointment_service),
):
    status = service.accept_pending(appointment_id, actor)
    return AppointmentStatusResult(appointment_id=appointment_id, status=status)


@router.post("/{appointment_id}/confirm", response_model=AppointmentStatusResult)
def confirm_appointment(
    appointment_id: int,
    actor: Actor = Depends(get_current_actor),
    service: AppointmentService = Depends(get_appointment_service),
):
    status = service.confirm_appointment(appointment_id, actor)
    return AppointmentStatusResult(appointment_id=appointment_id, status=status)


@router.post("/{appointment_id}/check-in", response_model=AppointmentStatusResult)
def check_in(
    appointment_id: int,
    actor: Actor = Depends(get_current_actor),
    service: AppointmentService = Depends(get_appointment_service),
):
    status = service.check_in(appointment_id, actor)
    return AppointmentStatusResult(appointment_id=appointment_id, status=status)


@router.post("/{appointment_id}/start", response_model=AppointmentStatusResult)
def start_consultation(
    appointment_id: int,
    actor: Actor = Depends(get_current_actor),
    service: AppointmentService = Depends(get_appointment_service),
):
    status = service.start_consultation(appointment_id, actor)
    return AppointmentStatusResult(appointment_id=appointment_id, status=status)


@router.post("/{appointment_id}/cancel", response_model=AppointmentStatusResult)
def cancel_appointment(
    appointment_id: int,
    body: CancelRequest,
    actor: Actor = Depends(get_current_actor),
    service: AppointmentService = Depends(get_appointment_service),
):
    status = service.cancel(appointment_id, body.reason, actor)
    return AppointmentStatusResult(appointment_id=appointment_id, status=status)


@router.post("/{appointment_id}/reschedule", response_model=AppointmentResponse)
def reschedule_appointment(
    appointment_id: int,
    body: RescheduleRequest,
    actor: Actor = Depends(get_current_actor),
    coordinator: RescheduleCoordinator = Depends(get_reschedule_coordinator),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Move to a new date/time; status is unchanged"""
    coordinator.reschedule(appointment_id, body, actor)
    return service.get(appointment_id, actor)


@router.patch("/{appointment_id}/status", response_model=AppointmentStatusResult)
def update_status(
    appointment_id: int,
    body: StatusUpdateRequest,
    actor: Actor = Depends(get_current_actor),
    service: AppointmentService = Depends(get_appointment_service),
):
    status = service.update_status(appointment_id, body, actor)
    return AppointmentStatusResult(appointment_id=appointment_id, status=status)
