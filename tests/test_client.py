# tests/test_client.py
import pytest

from opticlinic.client import ClinicAPIError, ClinicClient, LifecycleView, SessionStore
from opticlinic.enums import AppointmentStatus
from opticlinic.services.workflow import UIState


@pytest.fixture
def api(client):
    return ClinicClient(http=client)


def test_session_store_notifies_subscribers():
    store = SessionStore()
    seen = []
    unsubscribe = store.subscribe(lambda s: seen.append(s.is_authenticated))

    store.set_session("token", {"id": 1, "role": "specialist"})
    store.clear()
    unsubscribe()
    store.set_session("token", {"id": 1})

    assert seen == [True, False]
    assert store.user_id == 1


def test_login_populates_session(api, specialist, password):
    user = api.login(specialist.email, password)

    assert user["id"] == specialist.id
    assert api.session.is_authenticated
    assert api.me()["email"] == specialist.email


def test_logout_clears_session(api, specialist, password):
    api.login(specialist.email, password)

    api.logout()

    assert not api.session.is_authenticated
    with pytest.raises(ClinicAPIError) as exc_info:
        api.me()
    assert exc_info.value.status_code == 401


def test_evolution_is_validated_before_submission(api, specialist, make_appointment, password, soap):
    appointment = make_appointment(specialist, status=AppointmentStatus.in_progress, taken_by=specialist)
    api.login(specialist.email, password)

    with pytest.raises(ClinicAPIError) as exc_info:
        api.create_evolution(appointment.id, **{**soap, "subjective": ""})

    assert exc_info.value.status_code == 422
    assert exc_info.value.error_type == "validation_error"
    assert "subjective" in exc_info.value.errors


def test_lifecycle_view_walks_through_attention(api, specialist, make_appointment, password, soap):
    appointment = make_appointment(specialist)
    api.login(specialist.email, password)
    view = LifecycleView(api, appointment.id)

    view.refresh()
    assert view.ui_state == UIState.available
    assert view.actions.can_take

    assert view.perform("take")
    assert view.appointment["status"] == "in_progress"
    assert view.ui_state == UIState.active_mine
    assert view.actions.can_pause and view.actions.can_complete

    api.create_evolution(appointment.id, **soap)
    assert api.prescription_gate(appointment.id)["discouraged"] is False
    api.create_prescription(appointment.id, right_sphere="-0.75", left_sphere="-0.50")
    view.refresh()
    assert [item.done for item in view.checklist] == [True, True]

    assert view.perform("complete")
    assert view.ui_state == UIState.completed
    assert not any([view.actions.can_take, view.actions.can_pause, view.actions.can_resume, view.actions.can_complete])
    assert [toast.level for toast in view.toasts] == ["success", "success"]


def test_lifecycle_view_refuses_unavailable_action(api, specialist, make_appointment, password):
    appointment = make_appointment(specialist)
    api.login(specialist.email, password)
    view = LifecycleView(api, appointment.id)
    view.refresh()

    assert view.perform("pause") is False
    assert view.toasts[-1].level == "warning"
    assert view.appointment["status"] == "scheduled"


def test_lifecycle_view_navigates_to_held_appointment(api, specialist, make_appointment, password):
    held = make_appointment(specialist)
    other = make_appointment(specialist, days_ahead=2)
    api.login(specialist.email, password)
    api.take(held.id)
    navigated = []
    view = LifecycleView(api, other.id, on_navigate=navigated.append)
    view.refresh()

    assert view.perform("take") is False

    assert view.navigate_to == held.id
    assert navigated == [held.id]
    toast = view.toasts[-1]
    assert toast.level == "error"
    assert toast.error_type == "appointment_in_progress"
    assert view.appointment["status"] == "scheduled"


def test_client_saves_annotations(api, specialist, make_appointment, password):
    appointment = make_appointment(specialist)
    api.login(specialist.email, password)

    saved = api.save_annotations(appointment.id, left_eye_paths="[[0,0],[5,5]]")

    assert saved["left_eye_annotation_paths"] == "[[0,0],[5,5]]"
    assert saved["right_eye_annotation_paths"] is None
