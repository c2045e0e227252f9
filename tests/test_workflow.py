# tests/test_workflow.py
import pytest

from opticlinic.enums import AppointmentStatus
from opticlinic.services import workflow
from opticlinic.services.workflow import UIState

ME = 7
OTHER = 9


@pytest.mark.parametrize("status, taken_by, expected", [
    (AppointmentStatus.scheduled, None, (True, False, False, False)),
    (AppointmentStatus.in_progress, ME, (False, True, False, True)),
    (AppointmentStatus.in_progress, OTHER, (False, False, False, False)),
    (AppointmentStatus.paused, ME, (False, False, True, False)),
    (AppointmentStatus.paused, OTHER, (False, False, False, False)),
    (AppointmentStatus.completed, ME, (False, False, False, False)),
])
def test_derive_actions_mirrors_transitions(status, taken_by, expected):
    actions = workflow.derive_actions(status, taken_by, ME)

    assert (actions.can_take, actions.can_pause, actions.can_resume, actions.can_complete) == expected


def test_derive_actions_accepts_raw_status_strings():
    actions = workflow.derive_actions("in_progress", ME, ME)

    assert actions.can_pause and actions.can_complete


def test_prescription_action_disappears_once_issued():
    assert workflow.derive_actions("in_progress", ME, ME).can_create_prescription
    assert not workflow.derive_actions("in_progress", ME, ME, has_prescription=True).can_create_prescription
    assert not workflow.derive_actions("paused", ME, ME).can_create_prescription
    assert workflow.derive_actions("paused", ME, ME).can_create_evolution


@pytest.mark.parametrize("status, taken_by, expected", [
    ("scheduled", None, UIState.available),
    ("in_progress", ME, UIState.active_mine),
    ("paused", ME, UIState.active_mine),
    ("in_progress", OTHER, UIState.held_by_other),
    ("completed", ME, UIState.completed),
])
def test_ui_state(status, taken_by, expected):
    assert workflow.derive_ui_state(status, taken_by, ME) == expected


def test_next_step_follows_attention_order():
    assert workflow.next_step("scheduled", None, ME, False, False) == "take"
    assert workflow.next_step("paused", ME, ME, False, False) == "resume"
    assert workflow.next_step("in_progress", ME, ME, False, False) == "create_evolution"
    assert workflow.next_step("in_progress", ME, ME, True, False) == "create_prescription"
    assert workflow.next_step("in_progress", ME, ME, True, True) == "complete"
    assert workflow.next_step("in_progress", OTHER, ME, True, True) is None
    assert workflow.next_step("completed", ME, ME, True, True) is None


def test_prescription_gate_is_advisory():
    discouraged = workflow.prescription_gate(3, has_evolutions=False)
    clear = workflow.prescription_gate(3, has_evolutions=True)

    assert discouraged.discouraged and discouraged.label == workflow.PRESCRIPTION_LABEL_DISCOURAGED
    assert not clear.discouraged and clear.label == workflow.PRESCRIPTION_LABEL
    assert clear.message is None


def test_build_workflow():
    view = workflow.build_workflow(5, "in_progress", ME, ME, has_evolutions=True, has_prescription=True)

    assert view.appointment_id == 5
    assert view.guidance.ui_state == "active_mine"
    assert [item.done for item in view.checklist] == [True, True]
    assert view.next_step == "complete"
    assert view.prescription_gate.discouraged is False
