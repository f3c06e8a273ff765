"""
Shared fixtures.

Every test gets its own file-backed SQLite database, a fixed clinic clock
(Monday 2025-03-03 08:00, Africa/Nairobi) and recording audit/notification
doubles. The seeded doctor works Monday, Wednesday, Thursday and Friday
09:00-17:00 with a 13:00-14:00 lunch break, and never on Tuesday.
"""

from datetime import date, datetime
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from clinicflow import models
from clinicflow.auth import Actor
from clinicflow.database import Base, create_db_engine, get_db
from clinicflow.dependencies import get_session_factory, get_time_service
from clinicflow.domain.appointments.repository import AppointmentRepository
from clinicflow.domain.appointments.reschedule import RescheduleCoordinator
from clinicflow.domain.appointments.service import AppointmentService
from clinicflow.domain.availability.service import AvailabilityService
from clinicflow.domain.billing.service import CompletionService
from clinicflow.domain.consultations.service import ConsultationRequestService
from clinicflow.enums import AppointmentStatus, Role
from clinicflow.services.time_service import FixedTimeService
from clinicflow.shared.side_effects import SideEffects

MONDAY = date(2025, 3, 3)


class RecordingAuditService:
    def __init__(self):
        self.events = []

    def record(self, event):
        self.events.append(event)
        return True

    def for_entity(self, entity_type, entity_id):
        return [e for e in self.events if e.entity_type == entity_type and e.entity_id == entity_id]


class RecordingNotificationService:
    def __init__(self):
        self.events = []

    def notify(self, event):
        self.events.append(event)
        return True

    def for_role(self, role):
        return [e for e in self.events if e.recipient_role == role]


@pytest.fixture
def engine(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'clinic.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FixedTimeService(datetime(2025, 3, 3, 8, 0))


@pytest.fixture
def audit():
    return RecordingAuditService()


@pytest.fixture
def notifier():
    return RecordingNotificationService()


@pytest.fixture
def side_effects(audit, notifier):
    return SideEffects(audit, notifier)


@pytest.fixture
def actors():
    return SimpleNamespace(
        patient=Actor(id=1, role=Role.PATIENT),
        other_patient=Actor(id=2, role=Role.PATIENT),
        frontdesk=Actor(id=100, role=Role.FRONTDESK),
        admin=Actor(id=200, role=Role.ADMIN),
        doctor=Actor(id=1, role=Role.DOCTOR),
        other_doctor=Actor(id=2, role=Role.DOCTOR),
    )


@pytest.fixture
def seed(db):
    """Two doctors, two patients and the billable service catalogue"""
    doctor = models.Doctor(id=1, name="Dr. Amina Otieno", specialization="Dermatology")
    other_doctor = models.Doctor(id=2, name="Dr. Peter Kamau", consultation_fee=3500)
    db.add_all([doctor, other_doctor])
    for weekday in (0, 2, 3, 4):
        db.add(
            models.DoctorWorkingDay(
                doctor_id=1, day_of_week=weekday, start_time="09:00", end_time="17:00"
            )
        )
        db.add(
            models.AvailabilityBreak(
                doctor_id=1, day_of_week=weekday, start_time="13:00", end_time="14:00"
            )
        )
    db.add(models.DoctorWorkingDay(doctor_id=2, day_of_week=0, start_time="09:00", end_time="12:00"))

    db.add_all(
        [
            models.Patient(id=1, first_name="Grace", last_name="Wanjiru", email="grace@example.com"),
            models.Patient(id=2, first_name="Brian", last_name="Mutua"),
        ]
    )
    consultation = models.BillableService(
        id=1, code="CONSULTATION", name="Consultation Fee", category="CONSULTATION", price=5000
    )
    lab = models.BillableService(id=2, code="LAB-CBC", name="Full Blood Count", price=500)
    dressing = models.BillableService(id=3, code="PROC-DRESS", name="Wound Dressing", price=1000)
    db.add_all([consultation, lab, dressing])
    db.commit()
    return SimpleNamespace(doctor_id=1, other_doctor_id=2, patient_id=1, other_patient_id=2)


@pytest.fixture
def services(db, clock, side_effects, seed):
    return SimpleNamespace(
        availability=AvailabilityService(db, clock),
        requests=ConsultationRequestService(db, clock, side_effects),
        appointments=AppointmentService(db, clock, side_effects),
        reschedule=RescheduleCoordinator(db, clock, side_effects),
        billing=CompletionService(db, clock, side_effects),
    )


@pytest.fixture
def make_appointment(db, seed):
    """Insert an appointment in any status, bypassing the state machine"""

    def _make(status=AppointmentStatus.SCHEDULED, day=MONDAY, at="10:00", doctor_id=1, patient_id=1, **extra):
        appointment = AppointmentRepository.create(
            db,
            patient_id=patient_id,
            doctor_id=doctor_id,
            appointment_date=day,
            time=at,
            duration_minutes=30,
            status=status,
            type="CONSULTATION",
            **extra,
        )
        db.commit()
        return appointment.id

    return _make


@pytest.fixture
def in_consultation(services, actors, clock):
    """Schedule for today 10:00, check in at 09:55 and start at 10:00"""

    def _run(at="10:00"):
        appointment_id = services.appointments.schedule_appointment(
            {"doctor_id": 1, "patient_id": 1, "appointment_date": MONDAY, "time": at},
            actors.frontdesk,
        )
        clock.set(datetime(2025, 3, 3, 9, 55))
        services.appointments.check_in(appointment_id, actors.frontdesk)
        clock.set(datetime(2025, 3, 3, 10, 0))
        services.appointments.start_consultation(appointment_id, actors.doctor)
        return appointment_id

    return _run


@pytest.fixture
def client(session_factory, clock, seed):
    from clinicflow.main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_time_service] = lambda: clock
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    def _headers(actor: Actor) -> dict:
        return {"X-Actor-Id": str(actor.id), "X-Actor-Role": actor.role.value}

    return _headers
