"""Consultation request router - FastAPI endpoints for intake and triage"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import Actor, get_current_actor
from ...database import get_db
from ...dependencies import get_side_effects, get_time_service
from ...enums import ConsultationRequestStatus
from ...services.time_service import TimeService
from ...shared.side_effects import SideEffects
from .schemas import (
    ConfirmResult,
    ConsultationRequestResponse,
    DeclineProposalRequest,
    InfoResponseRequest,
    ProposeTimeRequest,
    ReviewConsultationRequest,
    ReviewResult,
    SubmitConsultationRequest,
)
from .service import ConsultationRequestService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/consultation-requests", tags=["Consultation Requests"])


def get_consultation_request_service(
    db: Session = Depends(get_db),
    time_service: TimeService = Depends(get_time_service),
    side_effects: SideEffects = Depends(get_side_effects),
) -> ConsultationRequestService:
    """Dependency injection for ConsultationRequestService"""
    return ConsultationRequestService(db, time_service, side_effects)


@router.post("", status_code=201)
def submit_consultation_request(
    body: SubmitConsultationRequest,
    actor: Actor = Depends(get_current_actor),
    service: ConsultationRequestService = Depends(get_consultation_request_service),
):
    request_id = service.submit(body, actor)
    return {"id": request_id}


@router.get("", response_model=list[ConsultationRequestResponse])
def list_patient_requests(
    patient_id: int,
    actor: Actor = Depends(get_current_actor),
    service: ConsultationRequestService = Depends(get_consultation_request_service),
):
    return service.list_for_patient(patient_id, actor)


@router.get("/review-queue", response_model=list[ConsultationRequestResponse])
def list_review_queue(
    actor: Actor = Depends(get_current_actor),
    service: ConsultationRequestService = Depends(get_consultation_request_service),
):
    """Requests waiting for staff triage, oldest first"""
    return service.list_awaiting_review(actor)


@router.get("/{request_id}", response_model=ConsultationRequestResponse)
def get_consultation_request(
    request_id: int,
    actor: Actor = Depends(get_current_actor),
    service: ConsultationRequestService = Depends(get_consultation_request_service),
):
    return service.get(request_id, actor)


@router.post("/{request_id}/start-review", response_model=ReviewResult)
def start_review(
    request_id: int,
    actor: Actor = Depends(get_current_actor),
    service: ConsultationRequestService = Depends(get_consultation_request_service),
):
    status = service.start_review(request_id, actor)
    return ReviewResult(request_id=request_id, status=status)


@router.post("/{request_id}/review", response_model=ReviewResult)
def review_consultation_request(
    request_id: int,
    body: ReviewConsultationRequest,
    actor: Actor = Depends(get_current_actor),
    service: ConsultationRequestService = Depends(get_consultation_request_service),
):
    status = service.review(request_id, body, actor)
    return ReviewResult(request_id=request_id, status=status)


@router.post("/{request_id}/propose-time", response_model=ReviewResult)
def propose_time(
    request_id: int,
    body: ProposeTimeRequest,
    actor: Actor = Depends(get_current_actor),
    service: ConsultationRequestService = Depends(get_consultation_request_service),
):
    status = service.propose_time(request_id, body, actor)
    return ReviewResult(request_id=request_id, status=status)


@router.post("/{request_id}/respond", response_model=ReviewResult)
def respond_to_info_request(
    request_id: int,
    body: InfoResponseRequest,
    actor: Actor = Depends(get_current_actor),
    service: ConsultationRequestService = Depends(get_consultation_request_service),
):
    status = service.respond_to_info_request(request_id, body, actor)
    return ReviewResult(request_id=request_id, status=status)


@router.post("/{request_id}/confirm", response_model=ConfirmResult)
def confirm_consultation_request(
    request_id: int,
    actor: Actor = Depends(get_current_actor),
    service: ConsultationRequestService = Depends(get_consultation_request_service),
):
    """Patient accepts the proposed time; creates the linked appointment"""
    appointment_id = service.confirm(request_id, actor)
    return ConfirmResult(
        request_id=request_id,
        appointment_id=appointment_id,
        status=ConsultationRequestStatus.CONFIRMED,
    )


@router.post("/{request_id}/decline", response_model=ReviewResult)
def decline_proposal(
    request_id: int,
    body: DeclineProposalRequest,
    actor: Actor = Depends(get_current_actor),
    service: ConsultationRequestService = Depends(get_consultation_request_service),
):
    status = service.decline(request_id, body, actor)
    return ReviewResult(request_id=request_id, status=status)
