# opticlinic/services/evolution_service.py
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from .. import crud, models, schemas
from ..core.logging import get_logger
from ..enums import HELD_STATUSES
from ..exceptions import Forbidden, InvalidState, NotFound, ValidationError
from ..security import CurrentUser
from . import lifecycle_service

logger = get_logger(__name__)


def _audit(db: Session, user: CurrentUser, action: str, evolution: models.ClinicalEvolution, details: str) -> None:
    crud.create_audit_log(
        db, user_id=user.id, action=action, category="CLINICAL",
        resource_type="clinical_evolution", resource_id=evolution.id, details=details,
    )


def _insert(db: Session, history: models.ClinicalHistory, appointment_id: Optional[int],
            fields: dict, user: CurrentUser) -> models.ClinicalEvolution:
    evolution = models.ClinicalEvolution(
        clinical_history_id=history.id,
        appointment_id=appointment_id,
        created_by=user.id,
        updated_by=user.id,
        **fields
    )
    db.add(evolution)
    db.commit()
    db.refresh(evolution)
    return evolution


def create_from_appointment(db: Session, appointment_id: int,
                            data: schemas.ClinicalEvolutionFromAppointment,
                            user: CurrentUser) -> models.ClinicalEvolution:
    """Record an evolution during an attended appointment.

    The patient's clinical history is looked up and created when missing, so
    repeated calls reuse the same history.
    """
    if not (user.is_specialist or user.is_admin):
        raise Forbidden("Only specialists can record clinical evolutions.")
    appointment = lifecycle_service.get_appointment_for_user(db, appointment_id, user)
    if user.is_specialist:
        if appointment.status not in HELD_STATUSES:
            raise InvalidState(
                "Evolutions can only be recorded while the appointment is in progress or paused.",
                appointment.status.value,
            )
        if appointment.taken_by_id != user.id:
            raise Forbidden("Only the specialist attending this appointment can record its evolution.")

    fields = data.model_dump(exclude_unset=True)
    fields["evolution_date"] = fields.get("evolution_date") or date.today()
    history = crud.get_or_create_clinical_history(db, appointment.patient_id, user.id)
    evolution = _insert(db, history, appointment.id, fields, user)

    logger.info("evolution_created", evolution_id=evolution.id, appointment_id=appointment.id,
                clinical_history_id=history.id, user_id=user.id)
    _audit(db, user, "CREATE", evolution,
           f"Created evolution {evolution.id} from appointment {appointment.id}")
    return evolution


def create(db: Session, data: schemas.ClinicalEvolutionCreate, user: CurrentUser) -> models.ClinicalEvolution:
    """Record an evolution directly against an existing clinical history."""
    if not (user.is_specialist or user.is_admin):
        raise Forbidden("Only specialists can record clinical evolutions.")
    history = crud.get_clinical_history(db, data.clinical_history_id)
    if history is None:
        raise ValidationError.for_field("clinical_history_id", "The selected clinical history does not exist.")

    if data.appointment_id is not None:
        appointment = crud.get_appointment(db, data.appointment_id)
        if appointment is None:
            raise ValidationError.for_field("appointment_id", "The selected appointment does not exist.")
        if appointment.patient_id != history.patient_id:
            raise ValidationError.for_field("appointment_id", "The appointment does not belong to this patient.")

    if user.is_specialist:
        treated = db.query(models.Appointment.id).filter(
            models.Appointment.patient_id == history.patient_id,
            models.Appointment.specialist_id == user.id,
            models.Appointment.deleted_at.is_(None),
        ).first()
        if treated is None:
            raise Forbidden("You have no appointments with this patient.")

    fields = data.model_dump(exclude_unset=True, exclude={"clinical_history_id", "appointment_id"})
    evolution = _insert(db, history, data.appointment_id, fields, user)
    logger.info("evolution_created", evolution_id=evolution.id, clinical_history_id=history.id, user_id=user.id)
    _audit(db, user, "CREATE", evolution, f"Created evolution {evolution.id} for history {history.id}")
    return evolution


def get_for_user(db: Session, evolution_id: int, user: CurrentUser) -> models.ClinicalEvolution:
    evolution = crud.get_evolution(db, evolution_id)
    if evolution is None or (not user.is_admin and evolution.created_by != user.id):
        raise NotFound("Clinical evolution not found.")
    return evolution


def update(db: Session, evolution_id: int, data: schemas.ClinicalEvolutionUpdate,
           user: CurrentUser) -> models.ClinicalEvolution:
    """Edit an evolution. The clinical history it belongs to never changes."""
    evolution = get_for_user(db, evolution_id, user)
    changes = data.model_dump(exclude_unset=True, exclude={"clinical_history_id"})
    for field in ("subjective", "objective", "assessment", "plan", "evolution_date"):
        if field in changes and changes[field] is None:
            raise ValidationError.for_field(field, f"The {field} field cannot be empty.")
    for key, value in changes.items():
        setattr(evolution, key, value)
    evolution.updated_by = user.id
    db.commit()
    db.refresh(evolution)
    _audit(db, user, "UPDATE", evolution, f"Updated evolution {evolution.id}")
    return evolution


def delete(db: Session, evolution_id: int, user: CurrentUser) -> None:
    evolution = get_for_user(db, evolution_id, user)
    db.delete(evolution)
    db.commit()
    crud.create_audit_log(
        db, user_id=user.id, action="DELETE", category="CLINICAL",
        resource_type="clinical_evolution", resource_id=evolution_id,
        details=f"Deleted evolution {evolution_id}",
    )
