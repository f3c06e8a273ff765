"""Availability repository - Database operations for doctor availability"""

from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from ...enums import AppointmentStatus
from ...models import (
    Appointment,
    AvailabilityBreak,
    AvailabilityOverride,
    Doctor,
    DoctorWorkingDay,
    SlotConfiguration,
)


@dataclass
class AvailabilityTemplate:
    """A doctor's weekly template plus the date overrides touching a window"""

    doctor_id: int
    working_days: list[DoctorWorkingDay] = field(default_factory=list)
    breaks: list[AvailabilityBreak] = field(default_factory=list)
    overrides: list[AvailabilityOverride] = field(default_factory=list)
    slot_configuration: Optional[SlotConfiguration] = None


@dataclass(frozen=True)
class BookedSlot:
    appointment_id: int
    date: date
    time: str
    duration: int


class AvailabilityRepository:
    """Repository for availability database operations"""

    @staticmethod
    def get_doctor(db: Session, doctor_id: int) -> Optional[Doctor]:
        return db.query(Doctor).filter(Doctor.id == doctor_id).first()

    @staticmethod
    def lock_doctor(db: Session, doctor_id: int) -> Optional[Doctor]:
        """Row-lock the doctor so slot-claiming writes for one doctor serialize"""
        return db.query(Doctor).filter(Doctor.id == doctor_id).with_for_update().first()

    @staticmethod
    def template_for_doctor(
        db: Session, doctor_id: int, start: date, end: date
    ) -> AvailabilityTemplate:
        """Get the active weekly template and the overrides overlapping [start, end]"""
        working_days = (
            db.query(DoctorWorkingDay)
            .filter(DoctorWorkingDay.doctor_id == doctor_id, DoctorWorkingDay.is_available.is_(True))
            .order_by(DoctorWorkingDay.day_of_week, DoctorWorkingDay.start_time)
            .all()
        )
        breaks = db.query(AvailabilityBreak).filter(AvailabilityBreak.doctor_id == doctor_id).all()
        overrides = (
            db.query(AvailabilityOverride)
            .filter(
                AvailabilityOverride.doctor_id == doctor_id,
                AvailabilityOverride.start_date <= end,
                AvailabilityOverride.end_date >= start,
            )
            .all()
        )
        slot_configuration = (
            db.query(SlotConfiguration).filter(SlotConfiguration.doctor_id == doctor_id).first()
        )
        return AvailabilityTemplate(
            doctor_id=doctor_id,
            working_days=working_days,
            breaks=breaks,
            overrides=overrides,
            slot_configuration=slot_configuration,
        )

    @staticmethod
    def booked_slots_for_doctor(
        db: Session,
        doctor_id: int,
        start: date,
        end: date,
        exclude_appointment_id: Optional[int] = None,
    ) -> list[BookedSlot]:
        """Time consumed by non-cancelled appointments in [start, end]"""
        query = db.query(Appointment).filter(
            Appointment.doctor_id == doctor_id,
            Appointment.appointment_date >= start,
            Appointment.appointment_date <= end,
            Appointment.status != AppointmentStatus.CANCELLED,
        )
        if exclude_appointment_id is not None:
            query = query.filter(Appointment.id != exclude_appointment_id)

        return [
            BookedSlot(
                appointment_id=apt.id,
                date=apt.appointment_date,
                time=apt.time,
                duration=apt.duration_minutes,
            )
            for apt in query.all()
        ]

    @staticmethod
    def replace_template(
        db: Session,
        doctor_id: int,
        working_days: list[dict],
        breaks: list[dict],
        slot_configuration: Optional[dict],
    ) -> None:
        """Delete-then-recreate the weekly template (caller commits)"""
        db.query(DoctorWorkingDay).filter(DoctorWorkingDay.doctor_id == doctor_id).delete(
            synchronize_session=False
        )
        db.query(AvailabilityBreak).filter(AvailabilityBreak.doctor_id == doctor_id).delete(
            synchronize_session=False
        )
        for row in working_days:
            db.add(DoctorWorkingDay(doctor_id=doctor_id, **row))
        for row in breaks:
            db.add(AvailabilityBreak(doctor_id=doctor_id, **row))

        if slot_configuration is not None:
            config = (
                db.query(SlotConfiguration).filter(SlotConfiguration.doctor_id == doctor_id).first()
            )
            if config is None:
                config = SlotConfiguration(doctor_id=doctor_id)
                db.add(config)
            for key, value in slot_configuration.items():
                setattr(config, key, value)
        db.flush()

    @staticmethod
    def add_override(db: Session, doctor_id: int, **override_data) -> AvailabilityOverride:
        override = AvailabilityOverride(doctor_id=doctor_id, **override_data)
        db.add(override)
        db.flush()
        return override
