# opticlinic/services/lifecycle_service.py
"""Appointment lifecycle: take, pause, resume and complete.

States run scheduled -> in_progress <-> paused -> completed. A specialist may
hold at most one ``in_progress`` appointment. The check runs after locking the
specialist's user row, and the partial unique index on
``appointments.taken_by_id`` backs it up when two requests still interleave.
"""
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import crud, models, schemas
from ..core.logging import get_logger
from ..enums import AppointmentStatus, HELD_STATUSES
from ..exceptions import (
    AppointmentInProgress, ClinicError, Forbidden, InvalidState, NotFound,
)
from ..security import CurrentUser

logger = get_logger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def get_appointment_for_user(db: Session, appointment_id: int, user: CurrentUser) -> models.Appointment:
    """Fetch an appointment the caller may see. Specialists only see their own."""
    appointment = crud.get_appointment(db, appointment_id)
    if appointment is None:
        raise NotFound("Appointment not found.")
    if user.is_specialist and appointment.specialist_id != user.id:
        raise NotFound("Appointment not found.")
    return appointment


def _require_specialist(user: CurrentUser) -> None:
    if not user.is_specialist:
        raise Forbidden("Only specialists can attend appointments.")


def _require_holder(appointment: models.Appointment, user: CurrentUser) -> None:
    if appointment.taken_by_id != user.id:
        raise Forbidden("Only the specialist attending this appointment can do that.")


def _lock_specialist(db: Session, user: CurrentUser) -> None:
    # Serializes this specialist's take/resume requests on databases with row locks
    db.query(models.User.id).filter(models.User.id == user.id).with_for_update().first()


def _ensure_no_other_active(db: Session, appointment: models.Appointment, user: CurrentUser) -> None:
    active = crud.find_active_appointment(db, user.id, exclude_id=appointment.id)
    if active is not None:
        raise AppointmentInProgress(active.id)


def _apply(
    db: Session,
    appointment_id: int,
    user: CurrentUser,
    action: str,
    mutate: Callable[[Session, models.Appointment], None],
    lock: bool = False,
) -> models.Appointment:
    """Run one transition inside a transaction and audit it on success."""
    try:
        if lock:
            _lock_specialist(db, user)
        appointment = get_appointment_for_user(db, appointment_id, user)
        previous = appointment.status
        mutate(db, appointment)
        db.commit()
    except IntegrityError:
        db.rollback()
        # Lost the race for the specialist's single active slot
        active = crud.find_active_appointment(db, user.id, exclude_id=appointment_id)
        logger.warning("appointment_transition_conflict", appointment_id=appointment_id,
                       action=action, user_id=user.id)
        raise AppointmentInProgress(active.id if active else None)
    except ClinicError:
        db.rollback()
        raise

    db.refresh(appointment)
    record_transition(db, appointment, user, action, previous)
    return appointment


def record_transition(db: Session, appointment: models.Appointment, user: CurrentUser, action: str,
                      previous: AppointmentStatus) -> None:
    """Log and audit a committed status change."""
    logger.info("appointment_transition", appointment_id=appointment.id, action=action,
                user_id=user.id, from_status=previous.value, to_status=appointment.status.value)
    crud.create_audit_log(
        db, user_id=user.id, action=action.upper(), category="APPOINTMENT",
        resource_type="appointment", resource_id=appointment.id,
        details=f"Appointment {appointment.id}: {previous.value} -> {appointment.status.value}",
        old_values={"status": previous.value},
        new_values={"status": appointment.status.value, "taken_by_id": appointment.taken_by_id},
    )


def take(db: Session, appointment_id: int, user: CurrentUser) -> models.Appointment:
    """scheduled -> in_progress; the caller becomes the holder."""
    _require_specialist(user)

    def mutate(db: Session, appointment: models.Appointment) -> None:
        if appointment.status != AppointmentStatus.scheduled:
            raise InvalidState("Only scheduled appointments can be taken.", appointment.status.value)
        _ensure_no_other_active(db, appointment, user)
        appointment.status = AppointmentStatus.in_progress
        appointment.taken_by_id = user.id
        appointment.taken_at = _now()
        appointment.paused_at = None
        appointment.resumed_at = None

    return _apply(db, appointment_id, user, "take", mutate, lock=True)


def pause(db: Session, appointment_id: int, user: CurrentUser) -> models.Appointment:
    """in_progress -> paused; holder only."""
    _require_specialist(user)

    def mutate(db: Session, appointment: models.Appointment) -> None:
        if appointment.status != AppointmentStatus.in_progress:
            raise InvalidState("Only appointments in progress can be paused.", appointment.status.value)
        _require_holder(appointment, user)
        appointment.status = AppointmentStatus.paused
        appointment.paused_at = _now()

    return _apply(db, appointment_id, user, "pause", mutate)


def resume(db: Session, appointment_id: int, user: CurrentUser) -> models.Appointment:
    """paused -> in_progress; holder only, and only with no other active appointment."""
    _require_specialist(user)

    def mutate(db: Session, appointment: models.Appointment) -> None:
        if appointment.status != AppointmentStatus.paused:
            raise InvalidState("Only paused appointments can be resumed.", appointment.status.value)
        _require_holder(appointment, user)
        _ensure_no_other_active(db, appointment, user)
        appointment.status = AppointmentStatus.in_progress
        appointment.resumed_at = _now()

    return _apply(db, appointment_id, user, "resume", mutate, lock=True)


def complete(db: Session, appointment_id: int, user: CurrentUser,
             fields: Optional[dict] = None) -> models.Appointment:
    """in_progress -> completed; holder only. taken_by_id stays as a record of who attended.

    ``fields`` (notes, reason) are written in the same transaction, so a
    refused completion leaves them untouched.
    """
    _require_specialist(user)

    def mutate(db: Session, appointment: models.Appointment) -> None:
        if appointment.status != AppointmentStatus.in_progress:
            raise InvalidState("Only appointments in progress can be completed.", appointment.status.value)
        _require_holder(appointment, user)
        for key, value in (fields or {}).items():
            setattr(appointment, key, value)
        mark_completed(appointment)

    return _apply(db, appointment_id, user, "complete", mutate)


def mark_completed(appointment: models.Appointment) -> None:
    appointment.status = AppointmentStatus.completed
    appointment.completed_at = _now()


def reschedule(db: Session, appointment_id: int, user: CurrentUser, scheduled_at: datetime,
               notes: Optional[str] = None) -> models.Appointment:
    """Move a not-yet-completed appointment; it goes back to scheduled and is released."""

    def mutate(db: Session, appointment: models.Appointment) -> None:
        if appointment.status == AppointmentStatus.completed:
            raise InvalidState("Completed appointments cannot be rescheduled.", appointment.status.value)
        if appointment.status in HELD_STATUSES and not user.is_admin:
            _require_holder(appointment, user)
        appointment.scheduled_at = scheduled_at
        appointment.status = AppointmentStatus.scheduled
        appointment.taken_by_id = None
        appointment.taken_at = None
        appointment.paused_at = None
        appointment.resumed_at = None
        if notes is not None:
            appointment.notes = notes

    return _apply(db, appointment_id, user, "reschedule", mutate)


def delete(db: Session, appointment_id: int, user: CurrentUser) -> None:
    """Soft-delete an appointment that has not been attended."""
    appointment = get_appointment_for_user(db, appointment_id, user)
    if appointment.status in (AppointmentStatus.completed, AppointmentStatus.in_progress):
        raise InvalidState(
            f"Appointments that are {appointment.status.value} cannot be deleted.",
            appointment.status.value,
        )
    appointment.deleted_at = _now()
    db.commit()
    logger.info("appointment_deleted", appointment_id=appointment_id, user_id=user.id)
    crud.create_audit_log(
        db, user_id=user.id, action="DELETE", category="APPOINTMENT",
        resource_type="appointment", resource_id=appointment_id,
        details=f"Deleted appointment {appointment_id}",
    )


def update(db: Session, appointment_id: int, user: CurrentUser, changes: dict) -> models.Appointment:
    """Apply a partial update; ``status: completed`` runs the complete transition."""
    status = changes.pop("status", None)
    fields = {k: v for k, v in changes.items() if k in ("notes", "reason")}
    if status == AppointmentStatus.completed:
        return complete(db, appointment_id, user, fields)
    if fields:
        appointment = get_appointment_for_user(db, appointment_id, user)
        if appointment.status == AppointmentStatus.completed and not user.is_admin:
            raise InvalidState("Completed appointments cannot be edited.", appointment.status.value)
        for key, value in fields.items():
            setattr(appointment, key, value)
        db.commit()
        crud.create_audit_log(
            db, user_id=user.id, action="UPDATE", category="APPOINTMENT",
            resource_type="appointment", resource_id=appointment_id,
            details=f"Updated appointment {appointment_id}", new_values=fields,
        )
    return get_appointment_for_user(db, appointment_id, user)


def save_annotations(db: Session, appointment_id: int, user: CurrentUser,
                     annotations: schemas.AppointmentAnnotations) -> models.Appointment:
    """Store the eye drawings made during the attention. Both sides are replaced."""
    appointment = get_appointment_for_user(db, appointment_id, user)
    appointment.left_eye_annotation_paths = annotations.left_eye_paths
    appointment.left_eye_annotation_image = annotations.left_eye_image
    appointment.right_eye_annotation_paths = annotations.right_eye_paths
    appointment.right_eye_annotation_image = annotations.right_eye_image
    db.commit()
    logger.info("appointment_annotations_saved", appointment_id=appointment_id, user_id=user.id,
                left=annotations.left_eye_paths is not None, right=annotations.right_eye_paths is not None)
    crud.create_audit_log(
        db, user_id=user.id, action="UPDATE", category="APPOINTMENT",
        resource_type="appointment", resource_id=appointment_id,
        details=f"Saved eye annotations for appointment {appointment_id}",
    )
    return get_appointment_for_user(db, appointment_id, user)
