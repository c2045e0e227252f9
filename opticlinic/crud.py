# opticlinic/crud.py - data access helpers shared by the routers and services
import logging
from datetime import datetime, timedelta, date, timezone
from typing import Optional, List, Dict, Any

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError, IntegrityError
from sqlalchemy.orm import Session, Query, joinedload

from . import models, schemas
from .compliance_logger import compliance_logger
from .enums import AppointmentStatus, AuditAction, UserRole, HELD_STATUSES
from .exceptions import ValidationError
from .security import CurrentUser, get_password_hash

logger = logging.getLogger(__name__)


class CRUDError(Exception):
    pass


def _now() -> datetime:
    return datetime.now(timezone.utc)

# ==================== USER CRUD OPERATIONS ====================

def get_user(db: Session, user_id: int) -> Optional[models.User]:
    return db.query(models.User).filter(models.User.id == user_id).first()

def get_user_by_email(db: Session, email: str) -> Optional[models.User]:
    return db.query(models.User).filter(models.User.email == email.lower()).first()

def get_users(db: Session, skip: int = 0, limit: int = 100, role: Optional[UserRole] = None) -> List[models.User]:
    try:
        query = db.query(models.User)
        if role:
            query = query.filter(models.User.role == role)
        return query.order_by(models.User.id).offset(skip).limit(limit).all()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching users: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")

def create_user(db: Session, user: schemas.UserCreate) -> models.User:
    """Create a staff account. Emails are stored lower-cased."""
    if get_user_by_email(db, user.email):
        raise CRUDError("Email already exists")
    try:
        db_user = models.User(
            name=user.name.strip(),
            email=user.email.lower(),
            password_hash=get_password_hash(user.password),
            role=user.role,
            is_active=True,
        )
        db.add(db_user)
        db.commit()
        db.refresh(db_user)
        logger.info(f"Created new user: {db_user.email} (ID: {db_user.id})")
        return db_user
    except IntegrityError:
        db.rollback()
        raise CRUDError("User creation failed due to data constraints")

def update_user(db: Session, db_user: models.User, user_update: schemas.UserUpdate) -> models.User:
    update_data = user_update.model_dump(exclude_unset=True)
    if "password" in update_data:
        password = update_data.pop("password")
        if password:
            db_user.password_hash = get_password_hash(password)
    for key, value in update_data.items():
        if value is not None:
            setattr(db_user, key, value)
    db.commit()
    db.refresh(db_user)
    return db_user

def record_login(db: Session, db_user: models.User) -> None:
    db_user.last_login = _now()
    db.commit()

# ==================== PATIENT CRUD OPERATIONS ====================

def get_patient(db: Session, patient_id: int) -> Optional[models.Patient]:
    return db.query(models.Patient).filter(
        models.Patient.id == patient_id,
        models.Patient.deleted_at.is_(None),
    ).first()

def get_patient_by_identification(db: Session, identification: str) -> Optional[models.Patient]:
    return db.query(models.Patient).filter(models.Patient.identification == identification).first()

def patients_query(db: Session, search: Optional[str] = None) -> Query:
    query = db.query(models.Patient).filter(models.Patient.deleted_at.is_(None))
    if search:
        term = f"%{search.strip()}%"
        query = query.filter(or_(
            models.Patient.first_name.ilike(term),
            models.Patient.last_name.ilike(term),
            models.Patient.identification.ilike(term),
        ))
    return query.order_by(models.Patient.last_name, models.Patient.first_name)

def create_patient(db: Session, patient: schemas.PatientCreate, created_by: int) -> models.Patient:
    if get_patient_by_identification(db, patient.identification):
        raise CRUDError("A patient with this identification already exists")
    db_patient = models.Patient(**patient.model_dump(), created_by=created_by)
    db.add(db_patient)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise CRUDError("A patient with this identification already exists")
    db.refresh(db_patient)
    return db_patient

def update_patient(db: Session, db_patient: models.Patient, patient_update: schemas.PatientUpdate) -> models.Patient:
    update_data = patient_update.model_dump(exclude_unset=True)
    identification = update_data.get("identification")
    if identification and identification != db_patient.identification:
        if get_patient_by_identification(db, identification):
            raise CRUDError("A patient with this identification already exists")
    for key, value in update_data.items():
        setattr(db_patient, key, value)
    db.commit()
    db.refresh(db_patient)
    return db_patient

def delete_patient(db: Session, db_patient: models.Patient) -> None:
    # Soft delete
    db_patient.deleted_at = _now()
    db.commit()

# ==================== APPOINTMENT CRUD OPERATIONS ====================

def get_appointment(db: Session, appointment_id: int) -> Optional[models.Appointment]:
    return db.query(models.Appointment).options(
        joinedload(models.Appointment.patient),
        joinedload(models.Appointment.specialist),
        joinedload(models.Appointment.taken_by),
    ).filter(
        models.Appointment.id == appointment_id,
        models.Appointment.deleted_at.is_(None),
    ).first()

def find_active_appointment(db: Session, specialist_id: int, exclude_id: Optional[int] = None) -> Optional[models.Appointment]:
    """The specialist's in-progress appointment, if any, other than ``exclude_id``."""
    query = db.query(models.Appointment).filter(
        models.Appointment.taken_by_id == specialist_id,
        models.Appointment.status == AppointmentStatus.in_progress,
        models.Appointment.deleted_at.is_(None),
    )
    if exclude_id is not None:
        query = query.filter(models.Appointment.id != exclude_id)
    return query.first()

def appointments_query(
    db: Session,
    user: CurrentUser,
    status: Optional[AppointmentStatus] = None,
    view: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    patient_id: Optional[int] = None,
    specialist_id: Optional[int] = None,
    search: Optional[str] = None,
) -> Query:
    """Appointments visible to ``user`` with the list filters applied.

    Specialists only see appointments assigned to them. Without an explicit
    status their default view hides appointments held by someone else.
    """
    query = db.query(models.Appointment).options(
        joinedload(models.Appointment.patient),
        joinedload(models.Appointment.specialist),
        joinedload(models.Appointment.taken_by),
    ).filter(models.Appointment.deleted_at.is_(None))

    if user.is_specialist:
        query = query.filter(models.Appointment.specialist_id == user.id)
    elif specialist_id:
        query = query.filter(models.Appointment.specialist_id == specialist_id)

    if view == "in_progress":
        query = query.filter(
            models.Appointment.status.in_(HELD_STATUSES),
            models.Appointment.taken_by_id == user.id,
        )
    elif status:
        query = query.filter(models.Appointment.status == status)
    elif user.is_specialist:
        query = query.filter(or_(
            models.Appointment.status.in_([AppointmentStatus.scheduled, AppointmentStatus.completed]),
            (models.Appointment.status.in_(HELD_STATUSES)) & (models.Appointment.taken_by_id == user.id),
        ))

    if start_date:
        query = query.filter(models.Appointment.scheduled_at >= datetime.combine(start_date, datetime.min.time()))
    if end_date:
        query = query.filter(models.Appointment.scheduled_at < datetime.combine(end_date + timedelta(days=1), datetime.min.time()))
    if patient_id:
        query = query.filter(models.Appointment.patient_id == patient_id)
    if search:
        term = f"%{search.strip()}%"
        query = query.join(models.Appointment.patient).filter(or_(
            models.Patient.first_name.ilike(term),
            models.Patient.last_name.ilike(term),
            models.Patient.identification.ilike(term),
        ))

    return query.order_by(models.Appointment.scheduled_at.desc(), models.Appointment.id.desc())

def create_appointment(db: Session, appointment: schemas.AppointmentCreate, created_by: CurrentUser) -> models.Appointment:
    errors: Dict[str, List[str]] = {}
    if not get_patient(db, appointment.patient_id):
        errors["patient_id"] = ["The selected patient does not exist."]
    specialist = get_user(db, appointment.specialist_id)
    if not specialist or specialist.role != UserRole.specialist or not specialist.is_active:
        errors["specialist_id"] = ["The selected specialist does not exist."]
    receptionist_id = appointment.receptionist_id
    if receptionist_id is None and created_by.is_receptionist:
        receptionist_id = created_by.id
    if errors:
        raise ValidationError(errors)

    db_appointment = models.Appointment(
        patient_id=appointment.patient_id,
        specialist_id=appointment.specialist_id,
        receptionist_id=receptionist_id,
        scheduled_at=appointment.scheduled_at,
        reason=appointment.reason,
        notes=appointment.notes,
        status=AppointmentStatus.scheduled,
    )
    db.add(db_appointment)
    db.commit()
    db.refresh(db_appointment)
    return db_appointment

# ==================== CLINICAL HISTORY OPERATIONS ====================

def get_clinical_history(db: Session, history_id: int) -> Optional[models.ClinicalHistory]:
    return db.query(models.ClinicalHistory).options(
        joinedload(models.ClinicalHistory.patient)
    ).filter(models.ClinicalHistory.id == history_id).first()

def get_clinical_history_by_patient(db: Session, patient_id: int) -> Optional[models.ClinicalHistory]:
    return db.query(models.ClinicalHistory).filter(models.ClinicalHistory.patient_id == patient_id).first()

def clinical_histories_query(db: Session, patient_id: Optional[int] = None) -> Query:
    query = db.query(models.ClinicalHistory).options(joinedload(models.ClinicalHistory.patient))
    if patient_id:
        query = query.filter(models.ClinicalHistory.patient_id == patient_id)
    return query.order_by(models.ClinicalHistory.id.desc())

def create_clinical_history(db: Session, history: schemas.ClinicalHistoryCreate, user_id: int) -> models.ClinicalHistory:
    data = history.model_dump(exclude_unset=True)
    if data.get("uses_optical_correction") is None:
        data["uses_optical_correction"] = False
    db_history = models.ClinicalHistory(**data, created_by=user_id, updated_by=user_id)
    db.add(db_history)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise CRUDError("The patient already has a clinical history")
    db.refresh(db_history)
    return db_history

def get_or_create_clinical_history(db: Session, patient_id: int, user_id: int) -> models.ClinicalHistory:
    """History for the patient, created empty when missing. Flushed, not committed."""
    history = get_clinical_history_by_patient(db, patient_id)
    if history:
        return history
    history = models.ClinicalHistory(
        patient_id=patient_id,
        uses_optical_correction=False,
        created_by=user_id,
        updated_by=user_id,
    )
    db.add(history)
    try:
        db.flush()
    except IntegrityError:
        # Created concurrently by another request
        db.rollback()
        history = get_clinical_history_by_patient(db, patient_id)
        if history is None:
            raise CRUDError("Could not resolve the clinical history for this patient")
    else:
        logger.info(f"Created clinical history {history.id} for patient {patient_id}")
    return history

def update_clinical_history(db: Session, db_history: models.ClinicalHistory, history_update: schemas.ClinicalHistoryUpdate, user_id: int) -> models.ClinicalHistory:
    for key, value in history_update.model_dump(exclude_unset=True).items():
        if key == "uses_optical_correction" and value is None:
            continue
        setattr(db_history, key, value)
    db_history.updated_by = user_id
    db.commit()
    db.refresh(db_history)
    return db_history

# ==================== CLINICAL EVOLUTION OPERATIONS ====================

def get_evolution(db: Session, evolution_id: int) -> Optional[models.ClinicalEvolution]:
    return db.query(models.ClinicalEvolution).filter(models.ClinicalEvolution.id == evolution_id).first()

def evolutions_query(db: Session, history_id: int, user: CurrentUser) -> Query:
    query = db.query(models.ClinicalEvolution).filter(models.ClinicalEvolution.clinical_history_id == history_id)
    if not user.is_admin:
        query = query.filter(models.ClinicalEvolution.created_by == user.id)
    return query.order_by(models.ClinicalEvolution.evolution_date.desc(), models.ClinicalEvolution.id.desc())

def count_evolutions_for_appointment(db: Session, appointment: models.Appointment) -> int:
    return db.query(models.ClinicalEvolution).join(models.ClinicalEvolution.clinical_history).filter(
        models.ClinicalEvolution.appointment_id == appointment.id,
        models.ClinicalHistory.patient_id == appointment.patient_id,
    ).count()

# ==================== PRESCRIPTION OPERATIONS ====================

def get_prescription(db: Session, prescription_id: int) -> Optional[models.Prescription]:
    return db.query(models.Prescription).options(
        joinedload(models.Prescription.appointment)
    ).filter(models.Prescription.id == prescription_id).first()

def get_prescription_by_appointment(db: Session, appointment_id: int) -> Optional[models.Prescription]:
    return db.query(models.Prescription).filter(models.Prescription.appointment_id == appointment_id).first()

def prescriptions_query(db: Session, user: CurrentUser, appointment_id: Optional[int] = None, patient_id: Optional[int] = None) -> Query:
    query = db.query(models.Prescription).join(models.Prescription.appointment).filter(
        models.Appointment.deleted_at.is_(None)
    )
    if user.is_specialist:
        query = query.filter(models.Appointment.specialist_id == user.id)
    if appointment_id:
        query = query.filter(models.Prescription.appointment_id == appointment_id)
    if patient_id:
        query = query.filter(models.Appointment.patient_id == patient_id)
    return query.order_by(models.Prescription.date.desc(), models.Prescription.id.desc())

# ==================== AUDIT LOG OPERATIONS ====================

def create_audit_log(db: Session, user_id=None, action=None, category=None, details=None, **kwargs):
    """Write an audit row through the compliance logger."""
    return compliance_logger.log_event(
        db,
        user_id=user_id,
        action=action or 'READ',
        category=category or 'GENERAL',
        details=details,
        **kwargs
    )

def get_audit_logs(
    db: Session,
    skip: int = 0,
    limit: int = 100,
    user_id: Optional[int] = None,
    category: Optional[str] = None,
    action: Optional[AuditAction] = None,
    resource_type: Optional[str] = None,
    resource_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None
) -> List[models.AuditLog]:
    """Retrieve audit logs with filtering."""
    try:
        query = db.query(models.AuditLog)
        if user_id:
            query = query.filter(models.AuditLog.user_id == user_id)
        if category:
            query = query.filter(models.AuditLog.category == category)
        if action:
            query = query.filter(models.AuditLog.action == action)
        if resource_type:
            query = query.filter(models.AuditLog.resource_type == resource_type)
        if resource_id:
            query = query.filter(models.AuditLog.resource_id == resource_id)
        if start_date:
            query = query.filter(models.AuditLog.timestamp >= datetime.combine(start_date, datetime.min.time()))
        if end_date:
            # Include the entire end day
            query = query.filter(models.AuditLog.timestamp < datetime.combine(end_date + timedelta(days=1), datetime.min.time()))
        return query.order_by(models.AuditLog.timestamp.desc(), models.AuditLog.id.desc()).offset(skip).limit(limit).all()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching audit logs: {e}")
        raise CRUDError("A database error occurred while fetching audit logs.")
