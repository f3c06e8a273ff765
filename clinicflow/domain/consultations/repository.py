"""Consultation request repository - Database operations for consultation requests"""

from typing import Optional

from sqlalchemy.orm import Session

from ...enums import ConsultationRequestStatus
from ...models import ConsultationRequest, Doctor, Patient


class ConsultationRequestRepository:
    """Repository for consultation request database operations"""

    @staticmethod
    def find_by_id(
        db: Session, request_id: int, for_update: bool = False
    ) -> Optional[ConsultationRequest]:
        query = db.query(ConsultationRequest).filter(ConsultationRequest.id == request_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    @staticmethod
    def find_fresh(db: Session, request_id: int) -> Optional[ConsultationRequest]:
        return (
            db.query(ConsultationRequest)
            .filter(ConsultationRequest.id == request_id)
            .populate_existing()
            .first()
        )

    @staticmethod
    def create(db: Session, **request_data) -> ConsultationRequest:
        request = ConsultationRequest(**request_data)
        db.add(request)
        db.flush()
        return request

    @staticmethod
    def update(db: Session, request: ConsultationRequest, **updates) -> ConsultationRequest:
        for key, value in updates.items():
            if hasattr(request, key):
                setattr(request, key, value)
        db.flush()
        return request

    @staticmethod
    def list_by_patient(db: Session, patient_id: int) -> list[ConsultationRequest]:
        return (
            db.query(ConsultationRequest)
            .filter(ConsultationRequest.patient_id == patient_id)
            .order_by(ConsultationRequest.submitted_at.desc())
            .all()
        )

    @staticmethod
    def list_by_status(
        db: Session, statuses: list[ConsultationRequestStatus]
    ) -> list[ConsultationRequest]:
        return (
            db.query(ConsultationRequest)
            .filter(ConsultationRequest.status.in_(statuses))
            .order_by(ConsultationRequest.submitted_at.asc())
            .all()
        )

    @staticmethod
    def get_patient(db: Session, patient_id: int) -> Optional[Patient]:
        return db.query(Patient).filter(Patient.id == patient_id).first()

    @staticmethod
    def get_doctor(db: Session, doctor_id: int) -> Optional[Doctor]:
        return db.query(Doctor).filter(Doctor.id == doctor_id).first()
