from datetime import date

import pytest

from clinicflow import models
from clinicflow.domain.appointments.reschedule import RescheduleCoordinator
from clinicflow.enums import AppointmentStatus as Status, Role
from clinicflow.errors import AuthorizationError, ConflictError, ValidationError

MONDAY = date(2025, 3, 3)
WEDNESDAY = date(2025, 3, 5)
THURSDAY = date(2025, 3, 6)


def move(day=THURSDAY, at="11:00", reason="Clashes with work"):
    return {"new_date": day, "new_time": at, "reason": reason}


def test_reschedule_moves_slot_and_keeps_status(services, actors, db, audit, notifier, make_appointment):
    appointment_id = make_appointment(Status.CONFIRMED, WEDNESDAY, "10:00")

    services.reschedule.reschedule(appointment_id, move(), actors.frontdesk)

    appointment = db.get(models.Appointment, appointment_id)
    assert appointment.appointment_date == THURSDAY
    assert appointment.time == "11:00"
    assert appointment.status == Status.CONFIRMED

    event = audit.for_entity("Appointment", appointment_id)[-1]
    assert event.action == "reschedule"
    assert event.from_status == event.to_status == "CONFIRMED"
    assert event.details == {"old_slot": "2025-03-05 10:00", "new_slot": "2025-03-06 11:00"}
    assert event.reason == "Clashes with work"

    assert [e.recipient_role for e in notifier.events] == [Role.PATIENT, Role.DOCTOR]


def test_patient_reschedule_notifies_only_the_patient(services, actors, notifier, make_appointment):
    appointment_id = make_appointment(Status.SCHEDULED, WEDNESDAY, "10:00")

    services.reschedule.reschedule(appointment_id, move(), actors.patient)

    assert [e.recipient_role for e in notifier.events] == [Role.PATIENT]


def test_old_slot_is_released(services, actors, make_appointment):
    appointment_id = make_appointment(Status.SCHEDULED, WEDNESDAY, "10:00")

    services.reschedule.reschedule(appointment_id, move(), actors.patient)

    assert services.availability.check_slot(1, WEDNESDAY, "10:00").is_available is True
    assert services.availability.check_slot(1, THURSDAY, "11:00").is_available is False


def test_moving_within_the_same_day(services, actors, db, make_appointment):
    appointment_id = make_appointment(Status.SCHEDULED, WEDNESDAY, "10:00")

    services.reschedule.reschedule(appointment_id, move(day=WEDNESDAY, at="10:30"), actors.frontdesk)

    assert db.get(models.Appointment, appointment_id).time == "10:30"


@pytest.mark.parametrize("status", [Status.COMPLETED, Status.CANCELLED])
def test_terminal_appointments_cannot_be_rescheduled(services, actors, db, make_appointment, status):
    appointment_id = make_appointment(status, WEDNESDAY, "10:00")

    with pytest.raises(ConflictError, match=f"cannot reschedule an appointment that is {status.value.lower()}"):
        services.reschedule.reschedule(appointment_id, move(), actors.frontdesk)
    assert db.get(models.Appointment, appointment_id).appointment_date == WEDNESDAY


@pytest.mark.parametrize("status", [Status.CHECKED_IN, Status.IN_CONSULTATION])
def test_visit_under_way_cannot_be_rescheduled(services, actors, make_appointment, status):
    appointment_id = make_appointment(status, MONDAY, "10:00")

    with pytest.raises(ConflictError, match="checked in"):
        services.reschedule.reschedule(appointment_id, move(), actors.frontdesk)


def test_target_slot_must_be_available(services, actors, db, make_appointment):
    appointment_id = make_appointment(Status.SCHEDULED, WEDNESDAY, "10:00")
    make_appointment(Status.SCHEDULED, THURSDAY, "11:00", patient_id=2)

    with pytest.raises(ConflictError, match="already booked"):
        services.reschedule.reschedule(appointment_id, move(), actors.frontdesk)
    with pytest.raises(ConflictError, match="in the past"):
        services.reschedule.reschedule(appointment_id, move(day=MONDAY, at="07:30"), actors.frontdesk)
    with pytest.raises(ConflictError, match="does not work"):
        services.reschedule.reschedule(appointment_id, move(day=date(2025, 3, 4)), actors.frontdesk)

    db.expire_all()
    appointment = db.get(models.Appointment, appointment_id)
    assert (appointment.appointment_date, appointment.time) == (WEDNESDAY, "10:00")


def test_same_slot_and_missing_reason_are_invalid(services, actors, make_appointment):
    appointment_id = make_appointment(Status.SCHEDULED, WEDNESDAY, "10:00")

    with pytest.raises(ValidationError, match="same as the current"):
        services.reschedule.reschedule(appointment_id, move(day=WEDNESDAY, at="10:00"), actors.frontdesk)
    with pytest.raises(ValidationError):
        services.reschedule.reschedule(appointment_id, move(reason=" "), actors.frontdesk)


def test_other_patient_cannot_reschedule(services, actors, make_appointment):
    appointment_id = make_appointment(Status.SCHEDULED, WEDNESDAY, "10:00")

    with pytest.raises(AuthorizationError):
        services.reschedule.reschedule(appointment_id, move(), actors.other_patient)


def test_lost_race_reports_current_status(services, actors, session_factory, clock, side_effects, make_appointment):
    appointment_id = make_appointment(Status.SCHEDULED, WEDNESDAY, "10:00")
    rival_session = session_factory()
    try:
        rival = RescheduleCoordinator(rival_session, clock, side_effects)
        stale = rival_session.get(models.Appointment, appointment_id)
        assert stale.status == Status.SCHEDULED

        services.appointments.cancel(appointment_id, "Patient travelling", actors.frontdesk)

        with pytest.raises(ConflictError, match="now CANCELLED"):
            rival.reschedule(appointment_id, move(), actors.frontdesk)
    finally:
        rival_session.close()


def test_linked_request_follows_the_new_slot(services, actors, db):
    request_id = services.requests.submit(
        {"patient_id": 1, "concern": "Persistent skin rash", "doctor_id": 1}, actors.patient
    )
    services.requests.review(
        request_id,
        {"decision": "APPROVE", "proposed_date": WEDNESDAY.isoformat(), "proposed_time": "10:00"},
        actors.frontdesk,
    )
    appointment_id = services.requests.confirm(request_id, actors.patient)

    services.reschedule.reschedule(appointment_id, move(), actors.frontdesk)

    db.expire_all()
    request = db.get(models.ConsultationRequest, request_id)
    assert (request.proposed_date, request.proposed_time) == (THURSDAY, "11:00")
    assert request.appointment.id == appointment_id
