# opticlinic/routers/appointments.py
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from sqlalchemy.orm import Session

from .. import crud, schemas, security
from ..database import get_db
from ..enums import AppointmentStatus
from ..pagination import DEFAULT_PER_PAGE, paginate
from ..services import evolution_service, lifecycle_service, prescription_service

router = APIRouter(
    tags=["Appointments"],
    dependencies=[Depends(security.get_current_user)],
    responses={404: {"description": "Not found"}},
)


@router.get("/appointments", response_model=schemas.Paginated[schemas.AppointmentResponse])
def read_appointments(
    request: Request,
    status_filter: Optional[AppointmentStatus] = Query(None, alias="status"),
    view: Optional[str] = Query(None, pattern="^(in_progress)$"),
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    patient_id: Optional[int] = None,
    specialist_id: Optional[int] = None,
    search: Optional[str] = None,
    page: int = 1,
    per_page: int = DEFAULT_PER_PAGE,
    db: Session = Depends(get_db),
    current_user: security.CurrentUser = Depends(security.get_current_user),
):
    """
    List appointments visible to the caller.

    Specialists only see appointments assigned to them; ``view=in_progress``
    narrows the list to the ones the caller currently holds.
    """
    query = crud.appointments_query(
        db, current_user,
        status=status_filter, view=view,
        start_date=start_date, end_date=end_date,
        patient_id=patient_id, specialist_id=specialist_id,
        search=search,
    )
    return paginate(query, request, page, per_page, schemas.AppointmentResponse)


@router.post("/appointments", response_model=schemas.AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_new_appointment(
    appointment: schemas.AppointmentCreate,
    db: Session = Depends(get_db),
    current_user: security.CurrentUser = Depends(security.require_front_desk),
):
    try:
        new_appointment = crud.create_appointment(db, appointment, created_by=current_user)
    except crud.CRUDError as e:
        raise HTTPException(status_code=400, detail=str(e))
    crud.create_audit_log(
        db, user_id=current_user.id, action="CREATE", category="APPOINTMENT",
        resource_type="appointment", resource_id=new_appointment.id,
        details=f"Booked appointment {new_appointment.id} for patient {new_appointment.patient_id}",
    )
    return new_appointment


@router.get("/appointments/{appointment_id}", response_model=schemas.AppointmentResponse)
def read_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    current_user: security.CurrentUser = Depends(security.get_current_user),
):
    return lifecycle_service.get_appointment_for_user(db, appointment_id, current_user)


@router.patch("/appointments/{appointment_id}", response_model=schemas.AppointmentResponse)
@router.put("/appointments/{appointment_id}", response_model=schemas.AppointmentResponse)
def update_appointment(
    appointment_id: int,
    appointment_update: schemas.AppointmentUpdate,
    db: Session = Depends(get_db),
    current_user: security.CurrentUser = Depends(security.get_current_user),
):
    """Edit notes or reason. Sending ``status: completed`` completes the appointment."""
    return lifecycle_service.update(
        db, appointment_id, current_user, appointment_update.model_dump(exclude_unset=True)
    )


@router.delete("/appointments/{appointment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    current_user: security.CurrentUser = Depends(security.require_front_desk),
):
    lifecycle_service.delete(db, appointment_id, current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- Lifecycle transitions ---

@router.post("/appointments/{appointment_id}/take", response_model=schemas.AppointmentResponse)
def take_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    current_user: security.CurrentUser = Depends(security.get_current_user),
):
    return lifecycle_service.take(db, appointment_id, current_user)


@router.post("/appointments/{appointment_id}/pause", response_model=schemas.AppointmentResponse)
def pause_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    current_user: security.CurrentUser = Depends(security.get_current_user),
):
    return lifecycle_service.pause(db, appointment_id, current_user)


@router.post("/appointments/{appointment_id}/resume", response_model=schemas.AppointmentResponse)
def resume_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    current_user: security.CurrentUser = Depends(security.get_current_user),
):
    return lifecycle_service.resume(db, appointment_id, current_user)


@router.post("/appointments/{appointment_id}/reschedule", response_model=schemas.AppointmentResponse)
def reschedule_appointment(
    appointment_id: int,
    payload: schemas.AppointmentReschedule,
    db: Session = Depends(get_db),
    current_user: security.CurrentUser = Depends(security.get_current_user),
):
    return lifecycle_service.reschedule(db, appointment_id, current_user, payload.scheduled_at, payload.notes)


@router.post("/appointments/{appointment_id}/annotations", response_model=schemas.AppointmentResponse)
def save_appointment_annotations(
    appointment_id: int,
    annotations: schemas.AppointmentAnnotations,
    db: Session = Depends(get_db),
    current_user: security.CurrentUser = Depends(security.get_current_user),
):
    return lifecycle_service.save_annotations(db, appointment_id, current_user, annotations)


# --- Attention workflow ---

@router.get("/appointments/{appointment_id}/workflow", response_model=schemas.WorkflowResponse)
def read_appointment_workflow(
    appointment_id: int,
    db: Session = Depends(get_db),
    current_user: security.CurrentUser = Depends(security.get_current_user),
):
    return prescription_service.workflow_for_appointment(db, appointment_id, current_user)


@router.get("/appointments/{appointment_id}/prescription-gate", response_model=schemas.PrescriptionGate)
def read_prescription_gate(
    appointment_id: int,
    db: Session = Depends(get_db),
    current_user: security.CurrentUser = Depends(security.get_current_user),
):
    return prescription_service.gate_for_appointment(db, appointment_id, current_user)


@router.post(
    "/appointments/{appointment_id}/evolution",
    response_model=schemas.ClinicalEvolutionResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_evolution_from_appointment(
    appointment_id: int,
    evolution: schemas.ClinicalEvolutionFromAppointment,
    db: Session = Depends(get_db),
    current_user: security.CurrentUser = Depends(security.require_clinical_staff),
):
    """Record the SOAP evolution of the appointment being attended."""
    return evolution_service.create_from_appointment(db, appointment_id, evolution, current_user)
