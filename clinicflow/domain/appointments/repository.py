"""Appointment repository - Database operations for appointments"""

from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from ...enums import AppointmentStatus
from ...models import Appointment, Patient


class AppointmentRepository:
    """Repository for appointment database operations.

    Writes only flush; the calling service owns the transaction boundary.
    """

    @staticmethod
    def find_by_id(db: Session, appointment_id: int, for_update: bool = False) -> Optional[Appointment]:
        query = db.query(Appointment).filter(Appointment.id == appointment_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    @staticmethod
    def find_fresh(db: Session, appointment_id: int) -> Optional[Appointment]:
        """Re-read bypassing the identity map, used after losing a race"""
        return (
            db.query(Appointment)
            .filter(Appointment.id == appointment_id)
            .populate_existing()
            .first()
        )

    @staticmethod
    def create(db: Session, **appointment_data) -> Appointment:
        appointment = Appointment(**appointment_data)
        db.add(appointment)
        db.flush()
        return appointment

    @staticmethod
    def update(db: Session, appointment: Appointment, **updates) -> Appointment:
        for key, value in updates.items():
            if hasattr(appointment, key):
                setattr(appointment, key, value)
        db.flush()
        return appointment

    @staticmethod
    def list_by_doctor_and_date_range(
        db: Session,
        doctor_id: int,
        start: date,
        end: date,
        include_cancelled: bool = False,
    ) -> list[Appointment]:
        query = db.query(Appointment).filter(
            Appointment.doctor_id == doctor_id,
            Appointment.appointment_date >= start,
            Appointment.appointment_date <= end,
        )
        if not include_cancelled:
            query = query.filter(Appointment.status != AppointmentStatus.CANCELLED)
        return query.order_by(Appointment.appointment_date, Appointment.time).all()

    @staticmethod
    def list_by_patient(db: Session, patient_id: int) -> list[Appointment]:
        return (
            db.query(Appointment)
            .filter(Appointment.patient_id == patient_id)
            .order_by(Appointment.appointment_date.desc(), Appointment.time.desc())
            .all()
        )

    @staticmethod
    def get_patient(db: Session, patient_id: int) -> Optional[Patient]:
        return db.query(Patient).filter(Patient.id == patient_id).first()
