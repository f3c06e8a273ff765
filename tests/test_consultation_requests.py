from datetime import date, datetime

import pytest

from clinicflow import models
from clinicflow.enums import AppointmentStatus, ConsultationRequestStatus as Status, Role
from clinicflow.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError

NEXT_MONDAY = date(2025, 3, 10)


@pytest.fixture
def submitted(services, actors):
    return services.requests.submit(
        {"patient_id": 1, "concern": "Persistent skin rash", "details": "Three weeks, itchy", "doctor_id": 1},
        actors.patient,
    )


def status_of(db, request_id):
    db.expire_all()
    return db.get(models.ConsultationRequest, request_id).status


def test_scenario_b_full_triage_to_linked_appointment(services, actors, db, audit, submitted):
    status = services.requests.review(
        submitted, {"decision": "NEEDS_MORE_INFO", "notes": "missing photos"}, actors.frontdesk
    )
    assert status == Status.NEEDS_MORE_INFO

    status = services.requests.respond_to_info_request(
        submitted, {"response": "Photos uploaded to the portal"}, actors.patient
    )
    assert status == Status.PENDING_REVIEW

    status = services.requests.review(
        submitted,
        {"decision": "APPROVE", "proposed_date": "2025-03-10", "proposed_time": "10:00"},
        actors.frontdesk,
    )
    assert status == Status.SCHEDULED

    appointment_id = services.requests.confirm(submitted, actors.patient)

    request = db.get(models.ConsultationRequest, submitted)
    appointment = db.get(models.Appointment, appointment_id)
    assert request.status == Status.CONFIRMED
    assert request.confirmed_at is not None
    assert appointment.consultation_request_id == submitted
    assert appointment.appointment_date == NEXT_MONDAY
    assert appointment.time == "10:00"
    assert appointment.status == AppointmentStatus.CONFIRMED
    assert "Photos uploaded to the portal" in request.details

    trail = [(e.from_status, e.to_status) for e in audit.for_entity("ConsultationRequest", submitted)]
    assert trail == [
        (None, "SUBMITTED"),
        ("SUBMITTED", "PENDING_REVIEW"),
        ("PENDING_REVIEW", "NEEDS_MORE_INFO"),
        ("NEEDS_MORE_INFO", "PENDING_REVIEW"),
        ("PENDING_REVIEW", "APPROVED"),
        ("APPROVED", "SCHEDULED"),
        ("SCHEDULED", "CONFIRMED"),
    ]


def test_patient_facing_transitions_notify_the_patient(services, actors, notifier, submitted):
    services.requests.review(submitted, {"decision": "NEEDS_MORE_INFO", "notes": "missing photos"}, actors.frontdesk)
    services.requests.respond_to_info_request(submitted, {"response": "Attached"}, actors.patient)
    services.requests.review(submitted, {"decision": "APPROVE"}, actors.admin)
    services.requests.propose_time(
        submitted, {"proposed_date": "2025-03-10", "proposed_time": "11:00"}, actors.frontdesk
    )

    patient_events = [e.event_type for e in notifier.for_role(Role.PATIENT)]
    assert patient_events == [
        "consultation_request_needs_more_info",
        "consultation_request_approved",
        "consultation_request_scheduled",
    ]
    assert all(e.recipient_id == 1 for e in notifier.for_role(Role.PATIENT))


def test_start_review_moves_submitted_to_pending_review(services, actors, db, submitted):
    assert services.requests.start_review(submitted, actors.frontdesk) == Status.PENDING_REVIEW
    with pytest.raises(ConflictError):
        services.requests.start_review(submitted, actors.frontdesk)


def test_only_staff_review(services, actors, db, submitted):
    with pytest.raises(AuthorizationError):
        services.requests.review(submitted, {"decision": "APPROVE"}, actors.patient)
    with pytest.raises(AuthorizationError):
        services.requests.review(submitted, {"decision": "APPROVE"}, actors.doctor)
    assert status_of(db, submitted) == Status.SUBMITTED


@pytest.mark.parametrize("decision", ["NEEDS_MORE_INFO", "REJECT"])
@pytest.mark.parametrize("notes", [None, "", "too short"])
def test_needs_more_info_and_reject_require_a_reason(services, actors, db, submitted, decision, notes):
    with pytest.raises(ValidationError):
        services.requests.review(submitted, {"decision": decision, "notes": notes}, actors.frontdesk)
    assert status_of(db, submitted) == Status.SUBMITTED


def test_reject_cancels_with_recorded_reason(services, actors, db, submitted):
    status = services.requests.review(
        submitted, {"decision": "REJECT", "notes": "Not a dermatology case"}, actors.frontdesk
    )

    request = db.get(models.ConsultationRequest, submitted)
    assert status == Status.CANCELLED
    assert request.cancellation_reason == "Not a dermatology case"

    with pytest.raises(ConflictError, match="already cancelled"):
        services.requests.review(submitted, {"decision": "APPROVE"}, actors.frontdesk)


def test_approval_requires_an_assigned_doctor(services, actors, db):
    request_id = services.requests.submit({"patient_id": 1, "concern": "Back pain"}, actors.frontdesk)

    with pytest.raises(ValidationError, match="doctor must be assigned"):
        services.requests.review(request_id, {"decision": "APPROVE"}, actors.frontdesk)

    status = services.requests.review(request_id, {"decision": "APPROVE", "doctor_id": 2}, actors.frontdesk)
    assert status == Status.APPROVED
    assert db.get(models.ConsultationRequest, request_id).doctor_id == 2


def test_approval_with_unavailable_slot_changes_nothing(services, actors, db, submitted):
    with pytest.raises(ConflictError, match="does not work on this day"):
        services.requests.review(
            submitted,
            {"decision": "APPROVE", "proposed_date": "2025-03-11", "proposed_time": "10:00"},
            actors.frontdesk,
        )
    assert status_of(db, submitted) == Status.SUBMITTED


def test_proposed_time_needs_date_and_time_together(services, actors, submitted):
    with pytest.raises(ValidationError):
        services.requests.review(
            submitted, {"decision": "APPROVE", "proposed_date": "2025-03-10"}, actors.frontdesk
        )


def test_patient_can_submit_only_for_themselves(services, actors):
    with pytest.raises(AuthorizationError, match="not your consultation request"):
        services.requests.submit({"patient_id": 2, "concern": "Headache"}, actors.patient)
    with pytest.raises(NotFoundError):
        services.requests.submit({"patient_id": 42, "concern": "Headache"}, actors.frontdesk)


def schedule(services, actors, request_id, at="10:00", day="2025-03-10"):
    return services.requests.review(
        request_id, {"decision": "APPROVE", "proposed_date": day, "proposed_time": at}, actors.frontdesk
    )


def test_other_patient_cannot_confirm(services, actors, submitted):
    schedule(services, actors, submitted)

    with pytest.raises(AuthorizationError, match="not your consultation request"):
        services.requests.confirm(submitted, actors.other_patient)


def test_staff_may_confirm_on_patients_behalf(services, actors, submitted):
    schedule(services, actors, submitted)

    assert services.requests.confirm(submitted, actors.frontdesk)


def test_confirm_after_proposed_time_elapsed(services, actors, db, clock, submitted):
    schedule(services, actors, submitted, at="09:00", day="2025-03-03")
    clock.set(datetime(2025, 3, 3, 9, 1))

    with pytest.raises(ConflictError, match="proposed time has passed"):
        services.requests.confirm(submitted, actors.patient)
    assert status_of(db, submitted) == Status.SCHEDULED
    assert db.query(models.Appointment).count() == 0


def test_confirm_rechecks_the_slot(services, actors, db, make_appointment, submitted):
    schedule(services, actors, submitted)
    make_appointment(AppointmentStatus.SCHEDULED, NEXT_MONDAY, "10:00", patient_id=2)

    with pytest.raises(ConflictError, match="already booked"):
        services.requests.confirm(submitted, actors.patient)
    assert status_of(db, submitted) == Status.SCHEDULED


def test_confirm_twice_conflicts(services, actors, submitted):
    schedule(services, actors, submitted)
    services.requests.confirm(submitted, actors.patient)

    with pytest.raises(ConflictError):
        services.requests.confirm(submitted, actors.patient)


def test_patient_declines_proposed_time(services, actors, db, submitted):
    with pytest.raises(ConflictError, match="only a scheduled"):
        services.requests.decline(submitted, {"reason": "Cannot make it"}, actors.patient)

    schedule(services, actors, submitted)
    status = services.requests.decline(submitted, {"reason": "Cannot make it"}, actors.patient)

    assert status == Status.CANCELLED
    assert db.get(models.ConsultationRequest, submitted).cancellation_reason == "Cannot make it"


def test_decline_requires_reason(services, actors, submitted):
    schedule(services, actors, submitted)

    with pytest.raises(ValidationError):
        services.requests.decline(submitted, {"reason": "  "}, actors.patient)


def test_propose_time_only_after_approval(services, actors, submitted):
    with pytest.raises(ConflictError):
        services.requests.propose_time(
            submitted, {"proposed_date": "2025-03-10", "proposed_time": "10:00"}, actors.frontdesk
        )


def test_review_queue_and_patient_listing(services, actors, submitted):
    other = services.requests.submit({"patient_id": 2, "concern": "Follow-up on mole"}, actors.other_patient)
    services.requests.review(other, {"decision": "REJECT", "notes": "Duplicate of earlier request"}, actors.frontdesk)

    queue = services.requests.list_awaiting_review(actors.frontdesk)
    assert [r.id for r in queue] == [submitted]

    with pytest.raises(AuthorizationError):
        services.requests.list_awaiting_review(actors.patient)
    with pytest.raises(AuthorizationError):
        services.requests.list_for_patient(1, actors.other_patient)
    assert [r.id for r in services.requests.list_for_patient(1, actors.patient)] == [submitted]


def test_lost_race_reports_current_status(services, actors, session_factory, clock, side_effects, submitted):
    from clinicflow.domain.consultations.service import ConsultationRequestService

    rival_session = session_factory()
    try:
        rival = ConsultationRequestService(rival_session, clock, side_effects)
        # The rival holds the request before the first reviewer commits
        stale = rival.repo.find_by_id(rival_session, submitted)
        assert stale.status == Status.SUBMITTED

        services.requests.review(
            submitted, {"decision": "REJECT", "notes": "Not a dermatology case"}, actors.frontdesk
        )

        with pytest.raises(ConflictError, match="now CANCELLED"):
            rival.review(submitted, {"decision": "APPROVE"}, actors.admin)
    finally:
        rival_session.close()
