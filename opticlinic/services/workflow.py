# opticlinic/services/workflow.py
"""Action flags and guidance for an appointment, derived from fetched state.

Everything here is a pure function of the appointment's status, its holder
and the viewing user, so the API and the HTTP client compute the same view.
No database access.
"""
from enum import Enum
from typing import List, Optional

from ..enums import AppointmentStatus, HELD_STATUSES
from ..schemas import (
    ChecklistItem, Guidance, LifecycleActions, PrescriptionGate, WorkflowResponse,
)

PRESCRIPTION_LABEL = "Create prescription"
PRESCRIPTION_LABEL_DISCOURAGED = "Create prescription*"


class UIState(str, Enum):
    available = "available"
    active_mine = "active_mine"
    held_by_other = "held_by_other"
    completed = "completed"


def _status(status) -> AppointmentStatus:
    return AppointmentStatus(status)


def derive_actions(status, taken_by_id: Optional[int], current_user_id: Optional[int],
                   has_prescription: bool = False) -> LifecycleActions:
    """Mirror of the server's transition preconditions."""
    status = _status(status)
    is_holder = current_user_id is not None and taken_by_id == current_user_id
    return LifecycleActions(
        can_take=status == AppointmentStatus.scheduled,
        can_pause=status == AppointmentStatus.in_progress and is_holder,
        can_resume=status == AppointmentStatus.paused and is_holder,
        can_complete=status == AppointmentStatus.in_progress and is_holder,
        can_create_evolution=status in HELD_STATUSES and is_holder,
        can_create_prescription=status == AppointmentStatus.in_progress and is_holder and not has_prescription,
    )


def derive_ui_state(status, taken_by_id: Optional[int], current_user_id: Optional[int]) -> UIState:
    status = _status(status)
    if status == AppointmentStatus.completed:
        return UIState.completed
    if status == AppointmentStatus.scheduled:
        return UIState.available
    if taken_by_id is not None and taken_by_id == current_user_id:
        return UIState.active_mine
    return UIState.held_by_other


_GUIDANCE = {
    UIState.available: ("Appointment available", "Take the appointment to start attending the patient."),
    UIState.active_mine: ("You are attending this appointment",
                          "Record the clinical evolution and the prescription before completing it."),
    UIState.held_by_other: ("Appointment in progress",
                            "Another specialist is attending this appointment."),
    UIState.completed: ("Appointment completed", "This appointment has been completed."),
}


def guidance(ui_state: UIState) -> Guidance:
    title, message = _GUIDANCE[ui_state]
    return Guidance(ui_state=ui_state.value, title=title, message=message)


def checklist(has_evolutions: bool, has_prescription: bool) -> List[ChecklistItem]:
    return [
        ChecklistItem(key="evolution", label="Clinical evolution recorded", done=has_evolutions),
        ChecklistItem(key="prescription", label="Prescription created", done=has_prescription),
    ]


def next_step(status, taken_by_id: Optional[int], current_user_id: Optional[int],
              has_evolutions: bool, has_prescription: bool) -> Optional[str]:
    status = _status(status)
    is_holder = taken_by_id is not None and taken_by_id == current_user_id
    if status == AppointmentStatus.scheduled:
        return "take"
    if status == AppointmentStatus.completed or not is_holder:
        return None
    if status == AppointmentStatus.paused:
        return "resume"
    if not has_evolutions:
        return "create_evolution"
    if not has_prescription:
        return "create_prescription"
    return "complete"


def prescription_gate(appointment_id: int, has_evolutions: bool) -> PrescriptionGate:
    """Advisory only: a missing evolution changes the label, never the permission."""
    if has_evolutions:
        return PrescriptionGate(
            appointment_id=appointment_id, has_evolutions=True,
            discouraged=False, label=PRESCRIPTION_LABEL,
        )
    return PrescriptionGate(
        appointment_id=appointment_id, has_evolutions=False, discouraged=True,
        label=PRESCRIPTION_LABEL_DISCOURAGED,
        message="No clinical evolution has been recorded for this appointment yet.",
    )


def build_workflow(appointment_id: int, status, taken_by_id: Optional[int],
                   current_user_id: Optional[int], has_evolutions: bool,
                   has_prescription: bool) -> WorkflowResponse:
    ui_state = derive_ui_state(status, taken_by_id, current_user_id)
    return WorkflowResponse(
        appointment_id=appointment_id,
        status=_status(status),
        taken_by_id=taken_by_id,
        actions=derive_actions(status, taken_by_id, current_user_id, has_prescription),
        checklist=checklist(has_evolutions, has_prescription),
        guidance=guidance(ui_state),
        next_step=next_step(status, taken_by_id, current_user_id, has_evolutions, has_prescription),
        prescription_gate=prescription_gate(appointment_id, has_evolutions),
    )
