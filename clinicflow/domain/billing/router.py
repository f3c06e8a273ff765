"""Billing router - consultation completion, bills and payments"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import Actor, get_current_actor
from ...database import get_db
from ...dependencies import get_side_effects, get_time_service
from ...services.time_service import TimeService
from ...shared.side_effects import SideEffects
from .schemas import (
    BillResponse,
    CompleteConsultationRequest,
    CompletionResult,
    RecordPaymentRequest,
    UpsertBillRequest,
)
from .service import CompletionService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Billing"])


def get_completion_service(
    db: Session = Depends(get_db),
    time_service: TimeService = Depends(get_time_service),
    side_effects: SideEffects = Depends(get_side_effects),
) -> CompletionService:
    """Dependency injection for CompletionService"""
    return CompletionService(db, time_service, side_effects)


@router.post("/consultations/{appointment_id}/complete", response_model=CompletionResult)
def complete_consultation(
    appointment_id: int,
    body: CompleteConsultationRequest,
    actor: Actor = Depends(get_current_actor),
    service: CompletionService = Depends(get_completion_service),
):
    """
    Complete the consultation and build its bill in one transaction.

    Without billing items or a custom total, the doctor's consultation fee is billed.
    """
    return service.complete_consultation(appointment_id, body, actor)


@router.get("/billing/appointments/{appointment_id}", response_model=BillResponse)
def get_bill(
    appointment_id: int,
    actor: Actor = Depends(get_current_actor),
    service: CompletionService = Depends(get_completion_service),
):
    return service.get_bill(appointment_id, actor)


@router.put("/billing/appointments/{appointment_id}", response_model=BillResponse)
def upsert_bill(
    appointment_id: int,
    body: UpsertBillRequest,
    actor: Actor = Depends(get_current_actor),
    service: CompletionService = Depends(get_completion_service),
):
    """Draft or revise the bill before it is settled; items are replaced wholesale"""
    return service.upsert_bill(appointment_id, body, actor)


@router.post("/billing/appointments/{appointment_id}/payments", response_model=BillResponse)
def record_payment(
    appointment_id: int,
    body: RecordPaymentRequest,
    actor: Actor = Depends(get_current_actor),
    service: CompletionService = Depends(get_completion_service),
):
    """Record a (partial) payment against the bill"""
    return service.record_payment(appointment_id, body, actor)
