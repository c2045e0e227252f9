# opticlinic/services/prescription_service.py
from datetime import date

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import crud, models, schemas
from ..config import get_settings
from ..core.logging import get_logger
from ..enums import AppointmentStatus
from ..exceptions import Forbidden, InvalidState, NotFound, ValidationError
from ..security import CurrentUser
from . import lifecycle_service, workflow

logger = get_logger(__name__)


def has_evolutions(db: Session, appointment: models.Appointment) -> bool:
    """Whether any evolution exists for this (patient, appointment) pair."""
    return crud.count_evolutions_for_appointment(db, appointment) > 0


def gate_for_appointment(db: Session, appointment_id: int, user: CurrentUser) -> schemas.PrescriptionGate:
    appointment = lifecycle_service.get_appointment_for_user(db, appointment_id, user)
    return workflow.prescription_gate(appointment.id, has_evolutions(db, appointment))


def workflow_for_appointment(db: Session, appointment_id: int, user: CurrentUser) -> schemas.WorkflowResponse:
    appointment = lifecycle_service.get_appointment_for_user(db, appointment_id, user)
    return workflow.build_workflow(
        appointment_id=appointment.id,
        status=appointment.status,
        taken_by_id=appointment.taken_by_id,
        current_user_id=user.id,
        has_evolutions=has_evolutions(db, appointment),
        has_prescription=crud.get_prescription_by_appointment(db, appointment.id) is not None,
    )


def create(db: Session, data: schemas.PrescriptionCreate, user: CurrentUser) -> models.Prescription:
    """Issue the appointment's prescription.

    Only the attending specialist may do this, while the appointment is in
    progress and has no prescription yet. A missing evolution is only a warning
    unless REQUIRE_EVOLUTION_FOR_PRESCRIPTION is set.
    """
    settings = get_settings()
    if not user.is_specialist:
        raise Forbidden("Only specialists can create prescriptions.")
    appointment = crud.get_appointment(db, data.appointment_id)
    if appointment is None or appointment.specialist_id != user.id:
        raise ValidationError.for_field("appointment_id", "The selected appointment does not exist.")
    if appointment.status != AppointmentStatus.in_progress:
        raise InvalidState("Prescriptions can only be created while the appointment is in progress.",
                           appointment.status.value)
    if appointment.taken_by_id != user.id:
        raise Forbidden("Only the specialist attending this appointment can create its prescription.")
    if crud.get_prescription_by_appointment(db, appointment.id) is not None:
        raise InvalidState("This appointment already has a prescription.", appointment.status.value)

    evolutions_recorded = has_evolutions(db, appointment)
    if not evolutions_recorded:
        if settings.require_evolution_for_prescription:
            raise ValidationError.for_field(
                "appointment_id",
                "A clinical evolution must be recorded for this appointment before creating the prescription.",
            )
        logger.warning("prescription_without_evolution", appointment_id=appointment.id, user_id=user.id)

    fields = data.model_dump(exclude_unset=True, exclude={"appointment_id", "date"})
    if not fields.get("patient_name") and appointment.patient is not None:
        fields["patient_name"] = appointment.patient.full_name
    if not fields.get("document") and appointment.patient is not None:
        fields["document"] = appointment.patient.identification
    if not fields.get("professional"):
        fields["professional"] = user.name

    prescription = models.Prescription(
        appointment_id=appointment.id,
        date=data.date or date.today(),
        created_by=user.id,
        **fields
    )
    db.add(prescription)
    previous_status = appointment.status
    if settings.auto_complete_on_prescription:
        lifecycle_service.mark_completed(appointment)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise InvalidState("This appointment already has a prescription.", appointment.status.value)
    db.refresh(prescription)

    logger.info("prescription_created", prescription_id=prescription.id, appointment_id=appointment.id,
                user_id=user.id, had_evolution=evolutions_recorded,
                auto_completed=settings.auto_complete_on_prescription)
    crud.create_audit_log(
        db, user_id=user.id, action="CREATE", category="PRESCRIPTION",
        resource_type="prescription", resource_id=prescription.id,
        details=f"Created prescription {prescription.id} for appointment {appointment.id}",
    )
    if settings.auto_complete_on_prescription:
        db.refresh(appointment)
        lifecycle_service.record_transition(db, appointment, user, "complete", previous_status)
    return prescription


def get_for_user(db: Session, prescription_id: int, user: CurrentUser) -> models.Prescription:
    prescription = crud.get_prescription(db, prescription_id)
    if prescription is None or prescription.appointment is None or prescription.appointment.deleted_at is not None:
        raise NotFound("Prescription not found.")
    if user.is_specialist and prescription.appointment.specialist_id != user.id:
        raise NotFound("Prescription not found.")
    return prescription


def _require_author(prescription: models.Prescription, user: CurrentUser) -> None:
    if not user.is_admin and prescription.created_by != user.id:
        raise Forbidden("Only the specialist who issued this prescription can change it.")


def update(db: Session, prescription_id: int, data: schemas.PrescriptionUpdate, user: CurrentUser) -> models.Prescription:
    prescription = get_for_user(db, prescription_id, user)
    _require_author(prescription, user)
    changes = data.model_dump(exclude_unset=True)
    if "date" in changes and changes["date"] is None:
        raise ValidationError.for_field("date", "The date field cannot be empty.")
    for key, value in changes.items():
        setattr(prescription, key, value)
    db.commit()
    db.refresh(prescription)
    crud.create_audit_log(
        db, user_id=user.id, action="UPDATE", category="PRESCRIPTION",
        resource_type="prescription", resource_id=prescription.id,
        details=f"Updated prescription {prescription.id}",
    )
    return prescription


def delete(db: Session, prescription_id: int, user: CurrentUser) -> None:
    prescription = get_for_user(db, prescription_id, user)
    _require_author(prescription, user)
    db.delete(prescription)
    db.commit()
    crud.create_audit_log(
        db, user_id=user.id, action="DELETE", category="PRESCRIPTION",
        resource_type="prescription", resource_id=prescription_id,
        details=f"Deleted prescription {prescription_id}",
    )
