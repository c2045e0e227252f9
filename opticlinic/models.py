# opticlinic/models.py
from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey, Text, Date,
    Enum as SQLAlchemyEnum, Boolean, JSON, Index, text
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from .database import Base
from .enums import UserRole, AppointmentStatus, AuditAction, HELD_STATUSES

__all__ = [
    "UserRole", "AppointmentStatus", "AuditAction", "HELD_STATUSES",
    "User", "Patient", "Appointment", "ClinicalHistory", "ClinicalEvolution",
    "Prescription", "AuditLog",
]

_ACTIVE_APPOINTMENT = text("status = 'in_progress'")


# User Management Models
class User(Base):
    """Clinic staff account"""
    __tablename__ = "users"
    __table_args__ = (
        Index('idx_users_email', 'email'),
        Index('idx_users_role_active', 'role', 'is_active'),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(120), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(SQLAlchemyEnum(UserRole, name='user_role'), default=UserRole.receptionist, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    last_login = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    audit_logs = relationship("AuditLog", back_populates="user")


class Patient(Base):
    """Patient demographics. Soft-deleted through deleted_at."""
    __tablename__ = "patients"
    __table_args__ = (
        Index('idx_patients_name', 'last_name', 'first_name'),
        Index('idx_patients_created', 'created_at'),
    )

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    identification = Column(String(50), unique=True, nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(30), nullable=True)
    birth_date = Column(Date, nullable=True)
    gender = Column(String(20), nullable=True)

    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    appointments = relationship("Appointment", back_populates="patient")
    clinical_history = relationship("ClinicalHistory", back_populates="patient", uselist=False)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class Appointment(Base):
    """Scheduled clinical encounter.

    ``taken_by_id`` names the specialist holding the encounter. The partial
    unique index keeps a specialist to a single ``in_progress`` row.
    """
    __tablename__ = "appointments"
    __table_args__ = (
        Index('idx_appointments_patient_date', 'patient_id', 'scheduled_at'),
        Index('idx_appointments_specialist_date', 'specialist_id', 'scheduled_at'),
        Index('idx_appointments_status_date', 'status', 'scheduled_at'),
        Index(
            'uq_appointments_active_specialist', 'taken_by_id',
            unique=True,
            postgresql_where=_ACTIVE_APPOINTMENT,
            sqlite_where=_ACTIVE_APPOINTMENT,
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False)
    specialist_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    receptionist_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    scheduled_at = Column(DateTime(timezone=True), nullable=False)
    status = Column(SQLAlchemyEnum(AppointmentStatus, name='appointment_status'), default=AppointmentStatus.scheduled, nullable=False)
    reason = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)

    taken_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    taken_at = Column(DateTime(timezone=True), nullable=True)
    paused_at = Column(DateTime(timezone=True), nullable=True)
    resumed_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    # Eye drawings from the attention screen: serialized strokes and a rendered image
    left_eye_annotation_paths = Column(Text, nullable=True)
    left_eye_annotation_image = Column(Text, nullable=True)
    right_eye_annotation_paths = Column(Text, nullable=True)
    right_eye_annotation_image = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    patient = relationship("Patient", back_populates="appointments")
    specialist = relationship("User", foreign_keys=[specialist_id])
    receptionist = relationship("User", foreign_keys=[receptionist_id])
    taken_by = relationship("User", foreign_keys=[taken_by_id])
    evolutions = relationship("ClinicalEvolution", back_populates="appointment")
    prescription = relationship("Prescription", back_populates="appointment", uselist=False)

    @property
    def has_prescription(self) -> bool:
        return self.prescription is not None

    @property
    def has_evolutions(self) -> bool:
        return len(self.evolutions) > 0


class ClinicalHistory(Base):
    """One-per-patient master clinical record"""
    __tablename__ = "clinical_histories"

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), unique=True, nullable=False)

    reason_for_consultation = Column(Text, nullable=True)
    current_illness = Column(Text, nullable=True)
    personal_history = Column(Text, nullable=True)
    family_history = Column(Text, nullable=True)
    occupational_history = Column(Text, nullable=True)
    uses_optical_correction = Column(Boolean, default=False, nullable=False)
    optical_correction_type = Column(String(100), nullable=True)
    systemic_diseases = Column(Text, nullable=True)
    medications = Column(Text, nullable=True)
    allergies = Column(Text, nullable=True)
    diagnostic = Column(Text, nullable=True)
    treatment_plan = Column(Text, nullable=True)
    observations = Column(Text, nullable=True)

    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    updated_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    patient = relationship("Patient", back_populates="clinical_history")
    evolutions = relationship(
        "ClinicalEvolution",
        back_populates="clinical_history",
        order_by="desc(ClinicalEvolution.evolution_date), desc(ClinicalEvolution.id)",
    )


class ClinicalEvolution(Base):
    """SOAP follow-up note attached to a clinical history"""
    __tablename__ = "clinical_evolutions"
    __table_args__ = (
        Index('idx_evolutions_history_date', 'clinical_history_id', 'evolution_date'),
        Index('idx_evolutions_appointment', 'appointment_id'),
        Index('idx_evolutions_creator', 'created_by'),
    )

    id = Column(Integer, primary_key=True, index=True)
    clinical_history_id = Column(Integer, ForeignKey("clinical_histories.id"), nullable=False)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=True)
    evolution_date = Column(Date, nullable=False)

    # SOAP
    subjective = Column(Text, nullable=False)
    objective = Column(Text, nullable=False)
    assessment = Column(Text, nullable=False)
    plan = Column(Text, nullable=False)
    recommendations = Column(Text, nullable=True)

    # Vision and refraction, free text
    right_far_vision = Column(String(50), nullable=True)
    left_far_vision = Column(String(50), nullable=True)
    right_near_vision = Column(String(50), nullable=True)
    left_near_vision = Column(String(50), nullable=True)
    right_eye_sphere = Column(String(50), nullable=True)
    right_eye_cylinder = Column(String(50), nullable=True)
    right_eye_axis = Column(String(50), nullable=True)
    right_eye_visual_acuity = Column(String(50), nullable=True)
    left_eye_sphere = Column(String(50), nullable=True)
    left_eye_cylinder = Column(String(50), nullable=True)
    left_eye_axis = Column(String(50), nullable=True)
    left_eye_visual_acuity = Column(String(50), nullable=True)

    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    updated_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    clinical_history = relationship("ClinicalHistory", back_populates="evolutions")
    appointment = relationship("Appointment", back_populates="evolutions")
    creator = relationship("User", foreign_keys=[created_by])


class Prescription(Base):
    """Optical prescription issued during an appointment"""
    __tablename__ = "prescriptions"
    __table_args__ = (
        Index('idx_prescriptions_date', 'date'),
        Index('idx_prescriptions_creator', 'created_by'),
    )

    id = Column(Integer, primary_key=True, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), unique=True, nullable=False)
    date = Column(Date, nullable=False)
    document = Column(String(50), nullable=True)
    patient_name = Column(String(200), nullable=True)

    right_sphere = Column(String(20), nullable=True)
    right_cylinder = Column(String(20), nullable=True)
    right_axis = Column(String(20), nullable=True)
    right_addition = Column(String(20), nullable=True)
    right_height = Column(String(20), nullable=True)
    right_distance_p = Column(String(20), nullable=True)
    right_visual_acuity_far = Column(String(20), nullable=True)
    right_visual_acuity_near = Column(String(20), nullable=True)
    left_sphere = Column(String(20), nullable=True)
    left_cylinder = Column(String(20), nullable=True)
    left_axis = Column(String(20), nullable=True)
    left_addition = Column(String(20), nullable=True)
    left_height = Column(String(20), nullable=True)
    left_distance_p = Column(String(20), nullable=True)
    left_visual_acuity_far = Column(String(20), nullable=True)
    left_visual_acuity_near = Column(String(20), nullable=True)

    correction_type = Column(String(100), nullable=True)
    usage_type = Column(String(100), nullable=True)
    recommendation = Column(Text, nullable=True)
    professional = Column(String(200), nullable=True)
    observation = Column(Text, nullable=True)

    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    appointment = relationship("Appointment", back_populates="prescription")


class AuditLog(Base):
    """Audit trail of authentication and clinical actions"""
    __tablename__ = "audit_logs"
    __table_args__ = (
        Index('idx_audit_user_date', 'user_id', 'timestamp'),
        Index('idx_audit_action_date', 'action', 'timestamp'),
        Index('idx_audit_resource', 'resource_type', 'resource_id'),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    username = Column(String(255), nullable=True)  # Denormalized for audit integrity
    action = Column(SQLAlchemyEnum(AuditAction, name='audit_action'), nullable=False)
    category = Column(String(50), nullable=False, default="GENERAL", index=True)
    severity = Column(String(20), default="INFO", index=True)
    resource_type = Column(String(50), nullable=True)
    resource_id = Column(Integer, nullable=True)
    details = Column(Text, nullable=True)
    old_values = Column(JSON, nullable=True)
    new_values = Column(JSON, nullable=True)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(Text, nullable=True)
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    user = relationship("User", back_populates="audit_logs")
