# tests/test_lifecycle.py
from opticlinic import models
from opticlinic.enums import AppointmentStatus, UserRole


def _status(db, appointment_id):
    db.expire_all()
    return db.get(models.Appointment, appointment_id).status


def test_take_scheduled_appointment(client, db, specialist, make_appointment, headers_for):
    appointment = make_appointment(specialist)

    response = client.post(f"/api/v1/appointments/{appointment.id}/take", headers=headers_for(specialist))

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "in_progress"
    assert body["taken_by_id"] == specialist.id
    assert body["taken_by"]["id"] == specialist.id
    assert body["taken_at"] is not None


def test_take_requires_specialist_role(client, db, specialist, receptionist, make_appointment, headers_for):
    appointment = make_appointment(specialist)

    response = client.post(f"/api/v1/appointments/{appointment.id}/take", headers=headers_for(receptionist))

    assert response.status_code == 403
    assert response.json()["error_type"] == "forbidden"
    assert _status(db, appointment.id) == AppointmentStatus.scheduled


def test_second_take_is_rejected_with_current_appointment(client, db, specialist, make_appointment, headers_for):
    first = make_appointment(specialist)
    second = make_appointment(specialist, days_ahead=2)
    headers = headers_for(specialist)

    assert client.post(f"/api/v1/appointments/{first.id}/take", headers=headers).status_code == 200
    response = client.post(f"/api/v1/appointments/{second.id}/take", headers=headers)

    assert response.status_code == 409
    body = response.json()
    assert body["error_type"] == "appointment_in_progress"
    assert body["current_appointment_id"] == first.id
    assert body["message"]
    assert _status(db, second.id) == AppointmentStatus.scheduled


def test_take_non_scheduled_is_invalid_state(client, specialist, make_appointment, headers_for):
    appointment = make_appointment(specialist, status=AppointmentStatus.completed, taken_by=specialist)

    response = client.post(f"/api/v1/appointments/{appointment.id}/take", headers=headers_for(specialist))

    assert response.status_code == 409
    assert response.json()["error_type"] == "invalid_state"
    assert response.json()["current_status"] == "completed"


def test_pause_and_resume_round_trip(client, db, specialist, make_appointment, headers_for):
    appointment = make_appointment(specialist)
    headers = headers_for(specialist)
    client.post(f"/api/v1/appointments/{appointment.id}/take", headers=headers)

    paused = client.post(f"/api/v1/appointments/{appointment.id}/pause", headers=headers)
    assert paused.status_code == 200
    assert paused.json()["status"] == "paused"
    assert paused.json()["taken_by_id"] == specialist.id
    assert paused.json()["paused_at"] is not None

    resumed = client.post(f"/api/v1/appointments/{appointment.id}/resume", headers=headers)
    assert resumed.status_code == 200
    assert resumed.json()["status"] == "in_progress"
    assert resumed.json()["resumed_at"] is not None


def test_pause_frees_specialist_to_take_another(client, specialist, make_appointment, headers_for):
    first = make_appointment(specialist)
    second = make_appointment(specialist, days_ahead=2)
    headers = headers_for(specialist)
    client.post(f"/api/v1/appointments/{first.id}/take", headers=headers)
    client.post(f"/api/v1/appointments/{first.id}/pause", headers=headers)

    response = client.post(f"/api/v1/appointments/{second.id}/take", headers=headers)

    assert response.status_code == 200
    assert response.json()["status"] == "in_progress"


def test_resume_blocked_while_another_is_in_progress(client, specialist, make_appointment, headers_for):
    first = make_appointment(specialist)
    second = make_appointment(specialist, days_ahead=2)
    headers = headers_for(specialist)
    client.post(f"/api/v1/appointments/{first.id}/take", headers=headers)
    client.post(f"/api/v1/appointments/{first.id}/pause", headers=headers)
    client.post(f"/api/v1/appointments/{second.id}/take", headers=headers)

    response = client.post(f"/api/v1/appointments/{first.id}/resume", headers=headers)

    assert response.status_code == 409
    assert response.json()["error_type"] == "appointment_in_progress"
    assert response.json()["current_appointment_id"] == second.id


def test_pause_from_scheduled_is_invalid_state(client, specialist, make_appointment, headers_for):
    appointment = make_appointment(specialist)

    response = client.post(f"/api/v1/appointments/{appointment.id}/pause", headers=headers_for(specialist))

    assert response.status_code == 409
    assert response.json()["error_type"] == "invalid_state"


def test_only_holder_can_pause_or_complete(client, db, specialist, make_appointment, headers_for, make_user):
    # Both specialists can see the appointment only if it is assigned to them,
    # so hand it to the second specialist while the first one holds it.
    intruder = make_user(UserRole.specialist, "intruder@example.com")
    appointment = make_appointment(intruder, status=AppointmentStatus.in_progress, taken_by=specialist)

    pause = client.post(f"/api/v1/appointments/{appointment.id}/pause", headers=headers_for(intruder))
    complete = client.patch(f"/api/v1/appointments/{appointment.id}", json={"status": "completed"},
                            headers=headers_for(intruder))

    assert pause.status_code == 403
    assert complete.status_code == 403
    assert _status(db, appointment.id) == AppointmentStatus.in_progress


def test_complete_via_patch(client, db, specialist, make_appointment, headers_for):
    appointment = make_appointment(specialist)
    headers = headers_for(specialist)
    client.post(f"/api/v1/appointments/{appointment.id}/take", headers=headers)

    response = client.patch(f"/api/v1/appointments/{appointment.id}", json={"status": "completed"}, headers=headers)

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "completed"
    assert body["completed_at"] is not None
    assert body["taken_by_id"] == specialist.id


def test_patch_saves_notes_together_with_completion(client, db, specialist, make_appointment, headers_for):
    appointment = make_appointment(specialist)
    headers = headers_for(specialist)
    client.post(f"/api/v1/appointments/{appointment.id}/take", headers=headers)

    response = client.patch(f"/api/v1/appointments/{appointment.id}",
                            json={"notes": "Follow-up in six months", "status": "completed"}, headers=headers)

    assert response.status_code == 200
    assert response.json()["notes"] == "Follow-up in six months"
    assert response.json()["status"] == "completed"


def test_refused_completion_does_not_save_notes(client, db, specialist, make_appointment, headers_for):
    appointment = make_appointment(specialist)

    response = client.patch(f"/api/v1/appointments/{appointment.id}",
                            json={"notes": "Should not be stored", "status": "completed"},
                            headers=headers_for(specialist))

    assert response.status_code == 409
    assert response.json()["error_type"] == "invalid_state"
    db.expire_all()
    stored = db.get(models.Appointment, appointment.id)
    assert stored.notes is None
    assert stored.status == AppointmentStatus.scheduled
    assert db.query(models.AuditLog).filter(models.AuditLog.resource_id == appointment.id).count() == 0


def test_complete_from_paused_is_invalid_state(client, specialist, make_appointment, headers_for):
    appointment = make_appointment(specialist)
    headers = headers_for(specialist)
    client.post(f"/api/v1/appointments/{appointment.id}/take", headers=headers)
    client.post(f"/api/v1/appointments/{appointment.id}/pause", headers=headers)

    response = client.put(f"/api/v1/appointments/{appointment.id}", json={"status": "completed"}, headers=headers)

    assert response.status_code == 409
    assert response.json()["error_type"] == "invalid_state"


def test_completed_is_terminal(client, specialist, make_appointment, headers_for):
    appointment = make_appointment(specialist, status=AppointmentStatus.completed, taken_by=specialist)
    headers = headers_for(specialist)

    for action in ("take", "pause", "resume"):
        response = client.post(f"/api/v1/appointments/{appointment.id}/{action}", headers=headers)
        assert response.status_code == 409, action

    response = client.post(
        f"/api/v1/appointments/{appointment.id}/reschedule",
        json={"scheduled_at": "2030-01-01T10:00:00Z"},
        headers=headers,
    )
    assert response.status_code == 409


def test_patch_rejects_other_status_values(client, specialist, make_appointment, headers_for):
    appointment = make_appointment(specialist)

    response = client.patch(f"/api/v1/appointments/{appointment.id}", json={"status": "in_progress"},
                            headers=headers_for(specialist))

    assert response.status_code == 422
    assert response.json()["error_type"] == "validation_error"
    assert "status" in response.json()["errors"]


def test_specialist_cannot_see_foreign_appointment(client, specialist, other_specialist, make_appointment, headers_for):
    appointment = make_appointment(other_specialist)

    response = client.get(f"/api/v1/appointments/{appointment.id}", headers=headers_for(specialist))

    assert response.status_code == 404
    assert response.json()["error_type"] == "not_found"


def test_reschedule_releases_held_appointment(client, specialist, admin, make_appointment, headers_for):
    appointment = make_appointment(specialist)
    client.post(f"/api/v1/appointments/{appointment.id}/take", headers=headers_for(specialist))

    response = client.post(
        f"/api/v1/appointments/{appointment.id}/reschedule",
        json={"scheduled_at": "2030-05-04T09:30:00Z", "notes": "Patient asked to move it"},
        headers=headers_for(admin),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "scheduled"
    assert body["taken_by_id"] is None
    assert body["notes"] == "Patient asked to move it"


def test_delete_scheduled_appointment(client, db, specialist, receptionist, make_appointment, headers_for):
    appointment = make_appointment(specialist)

    response = client.delete(f"/api/v1/appointments/{appointment.id}", headers=headers_for(receptionist))

    assert response.status_code == 204
    assert client.get(f"/api/v1/appointments/{appointment.id}", headers=headers_for(receptionist)).status_code == 404
    db.expire_all()
    assert db.get(models.Appointment, appointment.id).deleted_at is not None


def test_delete_in_progress_appointment_is_refused(client, specialist, receptionist, make_appointment, headers_for):
    appointment = make_appointment(specialist, status=AppointmentStatus.in_progress, taken_by=specialist)

    response = client.delete(f"/api/v1/appointments/{appointment.id}", headers=headers_for(receptionist))

    assert response.status_code == 409


def test_transitions_are_audited(client, db, specialist, make_appointment, headers_for):
    appointment = make_appointment(specialist)
    client.post(f"/api/v1/appointments/{appointment.id}/take", headers=headers_for(specialist))

    db.expire_all()
    log = db.query(models.AuditLog).filter(
        models.AuditLog.resource_type == "appointment",
        models.AuditLog.resource_id == appointment.id,
    ).one()
    assert log.action == models.AuditAction.TRANSITION
    assert log.new_values["status"] == "in_progress"
    assert log.username == specialist.email
