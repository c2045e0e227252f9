# tests/test_prescriptions.py
from opticlinic import models
from opticlinic.config import get_settings
from opticlinic.enums import AppointmentStatus, UserRole

LENS = {
    "right_sphere": "-1.25", "right_cylinder": "-0.50", "right_axis": "180",
    "left_sphere": "-1.00", "left_cylinder": "-0.25", "left_axis": "175",
    "correction_type": "Monofocal", "usage_type": "Permanent",
}


def _attend(client, appointment, headers):
    assert client.post(f"/api/v1/appointments/{appointment.id}/take", headers=headers).status_code == 200


def test_gate_discourages_prescription_without_evolution(client, specialist, make_appointment, headers_for):
    appointment = make_appointment(specialist)
    headers = headers_for(specialist)
    _attend(client, appointment, headers)

    response = client.get(f"/api/v1/appointments/{appointment.id}/prescription-gate", headers=headers)

    assert response.status_code == 200
    body = response.json()
    assert body["has_evolutions"] is False
    assert body["discouraged"] is True
    assert body["label"].endswith("*")
    assert body["message"]


def test_gate_clears_after_evolution(client, specialist, make_appointment, headers_for, soap):
    appointment = make_appointment(specialist)
    headers = headers_for(specialist)
    _attend(client, appointment, headers)
    client.post(f"/api/v1/appointments/{appointment.id}/evolution", json=soap, headers=headers)

    body = client.get(f"/api/v1/appointments/{appointment.id}/prescription-gate", headers=headers).json()

    assert body["has_evolutions"] is True
    assert body["discouraged"] is False
    assert body["label"] == "Create prescription"


def test_prescription_without_evolution_is_allowed(client, db, specialist, patient, make_appointment, headers_for):
    appointment = make_appointment(specialist)
    headers = headers_for(specialist)
    _attend(client, appointment, headers)

    response = client.post("/api/v1/prescriptions", json={"appointment_id": appointment.id, **LENS}, headers=headers)

    assert response.status_code == 201
    body = response.json()
    assert body["appointment_id"] == appointment.id
    assert body["patient_name"] == patient.full_name
    assert body["document"] == patient.identification
    assert body["professional"] == specialist.name
    assert body["date"]
    db.expire_all()
    assert db.get(models.Appointment, appointment.id).status == AppointmentStatus.in_progress


def test_prescription_can_require_evolution(client, specialist, make_appointment, headers_for, monkeypatch):
    monkeypatch.setenv("REQUIRE_EVOLUTION_FOR_PRESCRIPTION", "true")
    get_settings.cache_clear()
    appointment = make_appointment(specialist)
    headers = headers_for(specialist)
    _attend(client, appointment, headers)

    response = client.post("/api/v1/prescriptions", json={"appointment_id": appointment.id, **LENS}, headers=headers)

    assert response.status_code == 422
    assert "appointment_id" in response.json()["errors"]


def test_prescription_auto_completes_when_configured(client, db, specialist, make_appointment, headers_for,
                                                     soap, monkeypatch):
    monkeypatch.setenv("AUTO_COMPLETE_ON_PRESCRIPTION", "true")
    get_settings.cache_clear()
    appointment = make_appointment(specialist)
    headers = headers_for(specialist)
    _attend(client, appointment, headers)
    client.post(f"/api/v1/appointments/{appointment.id}/evolution", json=soap, headers=headers)

    response = client.post("/api/v1/prescriptions", json={"appointment_id": appointment.id, **LENS}, headers=headers)

    assert response.status_code == 201
    db.expire_all()
    assert db.get(models.Appointment, appointment.id).status == AppointmentStatus.completed
    completion = db.query(models.AuditLog).filter(
        models.AuditLog.resource_type == "appointment",
        models.AuditLog.resource_id == appointment.id,
    ).order_by(models.AuditLog.id.desc()).first()
    assert completion.action == models.AuditAction.TRANSITION
    assert completion.old_values == {"status": "in_progress"}
    assert completion.new_values["status"] == "completed"


def test_only_one_prescription_per_appointment(client, specialist, make_appointment, headers_for):
    appointment = make_appointment(specialist)
    headers = headers_for(specialist)
    _attend(client, appointment, headers)
    payload = {"appointment_id": appointment.id, **LENS}

    assert client.post("/api/v1/prescriptions", json=payload, headers=headers).status_code == 201
    response = client.post("/api/v1/prescriptions", json=payload, headers=headers)

    assert response.status_code == 409
    assert response.json()["error_type"] == "invalid_state"


def test_prescription_requires_in_progress(client, specialist, make_appointment, headers_for):
    appointment = make_appointment(specialist)
    headers = headers_for(specialist)
    _attend(client, appointment, headers)
    client.post(f"/api/v1/appointments/{appointment.id}/pause", headers=headers)

    response = client.post("/api/v1/prescriptions", json={"appointment_id": appointment.id}, headers=headers)

    assert response.status_code == 409
    assert response.json()["current_status"] == "paused"


def test_prescription_requires_holder(client, specialist, make_user, make_appointment, headers_for):
    assigned = make_user(UserRole.specialist, "assigned@example.com")
    appointment = make_appointment(assigned, status=AppointmentStatus.in_progress, taken_by=specialist)

    response = client.post("/api/v1/prescriptions", json={"appointment_id": appointment.id},
                           headers=headers_for(assigned))

    assert response.status_code == 403


def test_admin_cannot_issue_prescription(client, admin, specialist, make_appointment, headers_for):
    appointment = make_appointment(specialist, status=AppointmentStatus.in_progress, taken_by=specialist)

    response = client.post("/api/v1/prescriptions", json={"appointment_id": appointment.id},
                           headers=headers_for(admin))

    assert response.status_code == 403


def test_workflow_reports_checklist_and_next_step(client, specialist, make_appointment, headers_for, soap):
    appointment = make_appointment(specialist)
    headers = headers_for(specialist)

    before = client.get(f"/api/v1/appointments/{appointment.id}/workflow", headers=headers).json()
    assert before["guidance"]["ui_state"] == "available"
    assert before["next_step"] == "take"
    assert before["actions"]["can_take"] is True

    _attend(client, appointment, headers)
    client.post(f"/api/v1/appointments/{appointment.id}/evolution", json=soap, headers=headers)
    during = client.get(f"/api/v1/appointments/{appointment.id}/workflow", headers=headers).json()

    assert during["guidance"]["ui_state"] == "active_mine"
    assert during["actions"]["can_complete"] is True
    assert during["actions"]["can_create_prescription"] is True
    assert {item["key"]: item["done"] for item in during["checklist"]} == {"evolution": True, "prescription": False}
    assert during["next_step"] == "create_prescription"


def test_prescription_list_is_scoped_to_specialist(client, specialist, other_specialist, make_appointment,
                                                   headers_for):
    appointment = make_appointment(specialist)
    headers = headers_for(specialist)
    _attend(client, appointment, headers)
    client.post("/api/v1/prescriptions", json={"appointment_id": appointment.id, **LENS}, headers=headers)

    mine = client.get("/api/v1/prescriptions", headers=headers).json()
    theirs = client.get("/api/v1/prescriptions", headers=headers_for(other_specialist)).json()

    assert mine["meta"]["total"] == 1
    assert theirs["meta"]["total"] == 0
