import inspect
from datetime import datetime

from fastapi.routing import APIRoute

from clinicflow import models


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_slots_endpoint(client):
    response = client.get("/doctors/1/slots", params={"date": "2025-03-03"})

    assert response.status_code == 200
    body = response.json()
    assert body["available_count"] == 14
    first = body["slots"][0]
    assert (first["start_time"], first["end_time"], first["duration"]) == ("09:00", "09:30", 30)
    assert first["is_available"] is True

    assert client.get("/doctors/1/slots", params={"date": "2025-03-04"}).json()["slots"] == []


def test_slot_check_endpoint(client):
    response = client.get("/doctors/1/slots/check", params={"date": "2025-03-05", "time": "13:00"})

    assert response.status_code == 200
    assert response.json()["is_available"] is False
    assert response.json()["reason"] == "time conflicts with break period"


def test_missing_actor_headers_are_forbidden(client):
    response = client.post("/consultation-requests", json={"patient_id": 1, "concern": "Persistent skin rash"})

    assert response.status_code == 403
    assert response.json()["error"]["code"] == "forbidden"


def test_unknown_role_is_rejected(client):
    response = client.get("/appointments/1", headers={"X-Actor-Id": "1", "X-Actor-Role": "JANITOR"})

    assert response.status_code == 422
    assert response.json()["error"]["code"] == "validation_error"


def test_request_validation_error_shape(client, actors, auth_headers):
    response = client.post(
        "/consultation-requests", json={"patient_id": 1}, headers=auth_headers(actors.patient)
    )

    assert response.status_code == 422
    error = response.json()["error"]
    assert error["code"] == "validation_error"
    assert error["details"]["errors"][0]["field"] == "concern"


def test_not_found_and_forbidden_mapping(client, actors, auth_headers, make_appointment):
    assert client.get("/appointments/999", headers=auth_headers(actors.frontdesk)).status_code == 404

    appointment_id = make_appointment()
    response = client.get(f"/appointments/{appointment_id}", headers=auth_headers(actors.other_patient))
    assert response.status_code == 403
    assert response.json()["error"]["message"] == "not your appointment"


def test_triage_to_appointment_over_http(client, actors, auth_headers, db):
    patient = auth_headers(actors.patient)
    frontdesk = auth_headers(actors.frontdesk)

    created = client.post(
        "/consultation-requests",
        json={"patient_id": 1, "concern": "Persistent skin rash", "doctor_id": 1},
        headers=patient,
    )
    assert created.status_code == 201
    request_id = created.json()["id"]

    steps = [
        (
            f"/consultation-requests/{request_id}/review",
            {"decision": "NEEDS_MORE_INFO", "notes": "missing photos"},
            frontdesk,
            "NEEDS_MORE_INFO",
        ),
        (f"/consultation-requests/{request_id}/respond", {"response": "Photos uploaded"}, patient, "PENDING_REVIEW"),
        (
            f"/consultation-requests/{request_id}/review",
            {"decision": "APPROVE", "proposed_date": "2025-03-10", "proposed_time": "10:00"},
            frontdesk,
            "SCHEDULED",
        ),
    ]
    for url, body, headers, expected in steps:
        response = client.post(url, json=body, headers=headers)
        assert response.status_code == 200, response.text
        assert response.json()["status"] == expected

    confirmed = client.post(f"/consultation-requests/{request_id}/confirm", headers=patient)
    assert confirmed.status_code == 200
    appointment_id = confirmed.json()["appointment_id"]

    appointment = client.get(f"/appointments/{appointment_id}", headers=patient).json()
    assert appointment["status"] == "CONFIRMED"
    assert appointment["appointment_date"] == "2025-03-10"
    assert appointment["consultation_request_id"] == request_id

    again = client.post(f"/consultation-requests/{request_id}/confirm", headers=patient)
    assert again.status_code == 409
    assert again.json()["error"]["code"] == "conflict"

    audit_rows = (
        db.query(models.AuditLog)
        .filter(models.AuditLog.entity_type == "ConsultationRequest", models.AuditLog.entity_id == request_id)
        .count()
    )
    assert audit_rows == 7
    assert db.query(models.Notification).filter(models.Notification.recipient_role == "PATIENT").count() == 3


def test_visit_day_over_http(client, actors, auth_headers, clock):
    frontdesk = auth_headers(actors.frontdesk)
    doctor = auth_headers(actors.doctor)

    created = client.post(
        "/appointments",
        json={"doctor_id": 1, "patient_id": 1, "appointment_date": "2025-03-03", "time": "10:00"},
        headers=frontdesk,
    )
    assert created.status_code == 201
    appointment_id = created.json()["id"]

    clock.set(datetime(2025, 3, 3, 9, 55))
    assert client.post(f"/appointments/{appointment_id}/check-in", headers=frontdesk).json()["status"] == "CHECKED_IN"
    clock.set(datetime(2025, 3, 3, 10, 0))
    assert client.post(f"/appointments/{appointment_id}/start", headers=doctor).json()["status"] == "IN_CONSULTATION"

    clock.advance(minutes=20)
    completed = client.post(
        f"/consultations/{appointment_id}/complete",
        json={
            "doctor_id": 1,
            "outcome_type": "CONSULTATION_ONLY",
            "summary": "Mild eczema",
            "billing_items": [{"service_id": 2, "quantity": 1, "unit_cost": 500}],
        },
        headers=doctor,
    )
    assert completed.status_code == 200, completed.text
    assert completed.json()["billing_summary"]["total_amount"] == 500

    paid = client.post(
        f"/billing/appointments/{appointment_id}/payments",
        json={"amount": 500, "payment_method": "CARD"},
        headers=frontdesk,
    )
    assert paid.json()["status"] == "PAID"

    status = client.patch(
        f"/appointments/{appointment_id}/status",
        json={"status": "CANCELLED", "reason": "Too late"},
        headers=frontdesk,
    )
    assert status.status_code == 409


def test_cancel_requires_reason_over_http(client, actors, auth_headers, make_appointment):
    appointment_id = make_appointment()

    response = client.post(f"/appointments/{appointment_id}/cancel", json={}, headers=auth_headers(actors.patient))

    assert response.status_code == 422


def test_store_bound_endpoints_run_in_the_threadpool():
    from clinicflow.main import app

    domain_routes = [
        route
        for route in app.routes
        if isinstance(route, APIRoute) and route.endpoint.__module__.startswith("clinicflow.domain")
    ]

    assert domain_routes
    assert [route.path for route in domain_routes if inspect.iscoroutinefunction(route.endpoint)] == []


def test_bill_draft_over_http(client, actors, auth_headers, in_consultation):
    appointment_id = in_consultation()
    doctor = auth_headers(actors.doctor)

    drafted = client.put(
        f"/billing/appointments/{appointment_id}",
        json={"billing_items": [{"service_id": 2, "quantity": 2, "unit_cost": 500}], "discount": 100},
        headers=doctor,
    )
    assert drafted.status_code == 200, drafted.text
    assert drafted.json()["total_amount"] == 900
    assert drafted.json()["status"] == "UNPAID"

    empty = client.put(f"/billing/appointments/{appointment_id}", json={"billing_items": []}, headers=doctor)
    assert empty.status_code == 422

    forbidden = client.put(
        f"/billing/appointments/{appointment_id}",
        json={"billing_items": [{"service_id": 2, "quantity": 1, "unit_cost": 500}]},
        headers=auth_headers(actors.patient),
    )
    assert forbidden.status_code == 403
