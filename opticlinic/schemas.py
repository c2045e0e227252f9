# opticlinic/schemas.py
# Request and response models. These are also the client's form schemas:
# opticlinic.client validates payloads with them before submitting.
from datetime import datetime, date
from datetime import date as DateType
from typing import Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field, EmailStr, ValidationInfo, field_validator

from .enums import UserRole, AppointmentStatus, AuditAction

SOAP_MAX_LENGTH = 2000

T = TypeVar("T")


# --- Base Schemas ---
class BaseSchema(BaseModel):
    class Config:
        from_attributes = True


class ErrorResponse(BaseModel):
    error_type: str
    message: str
    errors: Optional[Dict[str, List[str]]] = None
    current_appointment_id: Optional[int] = None
    current_status: Optional[str] = None


# --- Pagination ---
class PageLink(BaseModel):
    url: Optional[str] = None
    label: str
    active: bool = False


class PaginationLinks(BaseModel):
    first: Optional[str] = None
    last: Optional[str] = None
    prev: Optional[str] = None
    next: Optional[str] = None


class PaginationMeta(BaseModel):
    current_page: int
    from_: Optional[int] = Field(default=None, alias="from", serialization_alias="from")
    last_page: int
    links: List[PageLink] = []
    path: str
    per_page: int
    to: Optional[int] = None
    total: int

    model_config = {"populate_by_name": True}


class Paginated(BaseModel, Generic[T]):
    data: List[T]
    links: PaginationLinks
    meta: PaginationMeta


# --- Auth & Users ---
class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class UserSummary(BaseSchema):
    id: int
    name: str
    role: UserRole


class UserResponse(BaseSchema):
    id: int
    name: str
    email: EmailStr
    role: UserRole
    is_active: bool
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None


class UserCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    role: UserRole = UserRole.receptionist


class UserUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=120)
    role: Optional[UserRole] = None
    is_active: Optional[bool] = None
    password: Optional[str] = Field(None, min_length=8, max_length=128)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse


# --- Patients ---
class PatientBase(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    identification: str = Field(..., min_length=1, max_length=50)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=30)
    birth_date: Optional[date] = None
    gender: Optional[str] = Field(None, max_length=20)


class PatientCreate(PatientBase):
    pass


class PatientUpdate(BaseModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    identification: Optional[str] = Field(None, min_length=1, max_length=50)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=30)
    birth_date: Optional[date] = None
    gender: Optional[str] = Field(None, max_length=20)


class PatientSummary(BaseSchema):
    id: int
    first_name: str
    last_name: str
    identification: str


class PatientResponse(BaseSchema):
    id: int
    first_name: str
    last_name: str
    identification: str
    email: Optional[str] = None
    phone: Optional[str] = None
    birth_date: Optional[date] = None
    gender: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# --- Appointments ---
class AppointmentCreate(BaseModel):
    patient_id: int
    specialist_id: int
    scheduled_at: datetime
    receptionist_id: Optional[int] = None
    reason: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = None


class AppointmentUpdate(BaseModel):
    """Partial update. The only status accepted here is ``completed``."""
    status: Optional[AppointmentStatus] = None
    reason: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = None

    @field_validator("status")
    @classmethod
    def only_completion(cls, v):
        if v is not None and v != AppointmentStatus.completed:
            raise ValueError("Only 'completed' can be set directly; use the take, pause and resume actions.")
        return v


class AppointmentReschedule(BaseModel):
    scheduled_at: datetime
    notes: Optional[str] = None


class AppointmentAnnotations(BaseModel):
    """Both eye drawings, saved together; an omitted side is cleared."""
    left_eye_paths: Optional[str] = None
    left_eye_image: Optional[str] = None
    right_eye_paths: Optional[str] = None
    right_eye_image: Optional[str] = None


class AppointmentResponse(BaseSchema):
    id: int
    patient_id: int
    specialist_id: int
    receptionist_id: Optional[int] = None
    scheduled_at: datetime
    status: AppointmentStatus
    reason: Optional[str] = None
    notes: Optional[str] = None
    taken_by_id: Optional[int] = None
    taken_at: Optional[datetime] = None
    paused_at: Optional[datetime] = None
    resumed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    left_eye_annotation_paths: Optional[str] = None
    left_eye_annotation_image: Optional[str] = None
    right_eye_annotation_paths: Optional[str] = None
    right_eye_annotation_image: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    patient: Optional[PatientSummary] = None
    specialist: Optional[UserSummary] = None
    taken_by: Optional[UserSummary] = None
    has_evolutions: bool = False
    has_prescription: bool = False


# --- Clinical histories ---
class ClinicalHistoryFields(BaseModel):
    reason_for_consultation: Optional[str] = None
    current_illness: Optional[str] = None
    personal_history: Optional[str] = None
    family_history: Optional[str] = None
    occupational_history: Optional[str] = None
    uses_optical_correction: Optional[bool] = None
    optical_correction_type: Optional[str] = Field(None, max_length=100)
    systemic_diseases: Optional[str] = None
    medications: Optional[str] = None
    allergies: Optional[str] = None
    diagnostic: Optional[str] = None
    treatment_plan: Optional[str] = None
    observations: Optional[str] = None


class ClinicalHistoryCreate(ClinicalHistoryFields):
    patient_id: int
    reason_for_consultation: str = Field(..., min_length=1)


class ClinicalHistoryUpdate(ClinicalHistoryFields):
    pass


class ClinicalHistoryResponse(BaseSchema):
    id: int
    patient_id: int
    reason_for_consultation: Optional[str] = None
    current_illness: Optional[str] = None
    personal_history: Optional[str] = None
    family_history: Optional[str] = None
    occupational_history: Optional[str] = None
    uses_optical_correction: bool = False
    optical_correction_type: Optional[str] = None
    systemic_diseases: Optional[str] = None
    medications: Optional[str] = None
    allergies: Optional[str] = None
    diagnostic: Optional[str] = None
    treatment_plan: Optional[str] = None
    observations: Optional[str] = None
    created_by: Optional[int] = None
    updated_by: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    patient: Optional[PatientSummary] = None
    pdf_token: Optional[str] = None
    guest_pdf_url: Optional[str] = None


# --- Clinical evolutions ---
class VisionFields(BaseModel):
    right_far_vision: Optional[str] = Field(None, max_length=50)
    left_far_vision: Optional[str] = Field(None, max_length=50)
    right_near_vision: Optional[str] = Field(None, max_length=50)
    left_near_vision: Optional[str] = Field(None, max_length=50)
    right_eye_sphere: Optional[str] = Field(None, max_length=50)
    right_eye_cylinder: Optional[str] = Field(None, max_length=50)
    right_eye_axis: Optional[str] = Field(None, max_length=50)
    right_eye_visual_acuity: Optional[str] = Field(None, max_length=50)
    left_eye_sphere: Optional[str] = Field(None, max_length=50)
    left_eye_cylinder: Optional[str] = Field(None, max_length=50)
    left_eye_axis: Optional[str] = Field(None, max_length=50)
    left_eye_visual_acuity: Optional[str] = Field(None, max_length=50)


def _require_text(value, field_name: str):
    if value is not None and not value.strip():
        raise ValueError(f"The {field_name} section is required.")
    return value


class SOAPFields(VisionFields):
    subjective: str = Field(..., max_length=SOAP_MAX_LENGTH)
    objective: str = Field(..., max_length=SOAP_MAX_LENGTH)
    assessment: str = Field(..., max_length=SOAP_MAX_LENGTH)
    plan: str = Field(..., max_length=SOAP_MAX_LENGTH)
    recommendations: Optional[str] = Field(None, max_length=SOAP_MAX_LENGTH)

    @field_validator("subjective", "objective", "assessment", "plan")
    @classmethod
    def soap_not_blank(cls, v, info: ValidationInfo):
        return _require_text(v, info.field_name)


class ClinicalEvolutionFromAppointment(SOAPFields):
    """Evolution recorded through an appointment; the history is resolved server-side."""
    evolution_date: Optional[date] = None


class ClinicalEvolutionCreate(SOAPFields):
    clinical_history_id: int
    appointment_id: Optional[int] = None
    evolution_date: date


class ClinicalEvolutionUpdate(VisionFields):
    evolution_date: Optional[date] = None
    subjective: Optional[str] = Field(None, max_length=SOAP_MAX_LENGTH)
    objective: Optional[str] = Field(None, max_length=SOAP_MAX_LENGTH)
    assessment: Optional[str] = Field(None, max_length=SOAP_MAX_LENGTH)
    plan: Optional[str] = Field(None, max_length=SOAP_MAX_LENGTH)
    recommendations: Optional[str] = Field(None, max_length=SOAP_MAX_LENGTH)
    clinical_history_id: Optional[int] = None

    @field_validator("subjective", "objective", "assessment", "plan")
    @classmethod
    def soap_not_blank(cls, v, info: ValidationInfo):
        return _require_text(v, info.field_name)

    @field_validator("clinical_history_id")
    @classmethod
    def history_is_fixed(cls, v):
        if v is not None:
            raise ValueError("An evolution cannot be moved to another clinical history.")
        return v


class ClinicalEvolutionResponse(BaseSchema):
    id: int
    clinical_history_id: int
    appointment_id: Optional[int] = None
    evolution_date: date
    subjective: str
    objective: str
    assessment: str
    plan: str
    recommendations: Optional[str] = None
    right_far_vision: Optional[str] = None
    left_far_vision: Optional[str] = None
    right_near_vision: Optional[str] = None
    left_near_vision: Optional[str] = None
    right_eye_sphere: Optional[str] = None
    right_eye_cylinder: Optional[str] = None
    right_eye_axis: Optional[str] = None
    right_eye_visual_acuity: Optional[str] = None
    left_eye_sphere: Optional[str] = None
    left_eye_cylinder: Optional[str] = None
    left_eye_axis: Optional[str] = None
    left_eye_visual_acuity: Optional[str] = None
    created_by: Optional[int] = None
    updated_by: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# --- Prescriptions ---
class PrescriptionFields(BaseModel):
    document: Optional[str] = Field(None, max_length=50)
    patient_name: Optional[str] = Field(None, max_length=200)
    right_sphere: Optional[str] = Field(None, max_length=20)
    right_cylinder: Optional[str] = Field(None, max_length=20)
    right_axis: Optional[str] = Field(None, max_length=20)
    right_addition: Optional[str] = Field(None, max_length=20)
    right_height: Optional[str] = Field(None, max_length=20)
    right_distance_p: Optional[str] = Field(None, max_length=20)
    right_visual_acuity_far: Optional[str] = Field(None, max_length=20)
    right_visual_acuity_near: Optional[str] = Field(None, max_length=20)
    left_sphere: Optional[str] = Field(None, max_length=20)
    left_cylinder: Optional[str] = Field(None, max_length=20)
    left_axis: Optional[str] = Field(None, max_length=20)
    left_addition: Optional[str] = Field(None, max_length=20)
    left_height: Optional[str] = Field(None, max_length=20)
    left_distance_p: Optional[str] = Field(None, max_length=20)
    left_visual_acuity_far: Optional[str] = Field(None, max_length=20)
    left_visual_acuity_near: Optional[str] = Field(None, max_length=20)
    correction_type: Optional[str] = Field(None, max_length=100)
    usage_type: Optional[str] = Field(None, max_length=100)
    recommendation: Optional[str] = None
    professional: Optional[str] = Field(None, max_length=200)
    observation: Optional[str] = None


class PrescriptionCreate(PrescriptionFields):
    appointment_id: int
    date: Optional[DateType] = None


class PrescriptionUpdate(PrescriptionFields):
    date: Optional[DateType] = None


class PrescriptionResponse(PrescriptionFields, BaseSchema):
    id: int
    appointment_id: int
    date: DateType
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# --- Lifecycle view ---
class LifecycleActions(BaseModel):
    can_take: bool
    can_pause: bool
    can_resume: bool
    can_complete: bool
    can_create_evolution: bool = False
    can_create_prescription: bool = False


class ChecklistItem(BaseModel):
    key: str
    label: str
    done: bool


class Guidance(BaseModel):
    ui_state: str
    title: str
    message: str


class PrescriptionGate(BaseModel):
    appointment_id: int
    has_evolutions: bool
    discouraged: bool
    label: str
    message: Optional[str] = None


class WorkflowResponse(BaseModel):
    appointment_id: int
    status: AppointmentStatus
    taken_by_id: Optional[int] = None
    actions: LifecycleActions
    checklist: List[ChecklistItem]
    guidance: Guidance
    next_step: Optional[str] = None
    prescription_gate: PrescriptionGate


# --- Audit logs ---
class AuditLogResponse(BaseSchema):
    id: int
    user_id: Optional[int] = None
    username: Optional[str] = None
    action: AuditAction
    category: str
    severity: Optional[str] = None
    resource_type: Optional[str] = None
    resource_id: Optional[int] = None
    details: Optional[str] = None
    old_values: Optional[dict] = None
    new_values: Optional[dict] = None
    ip_address: Optional[str] = None
    timestamp: Optional[datetime] = None


class HealthResponse(BaseModel):
    status: str
    database: str
    version: str
    timestamp: datetime
