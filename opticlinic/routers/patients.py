# opticlinic/routers/patients.py
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session
from typing import Optional

from .. import crud, schemas, security
from ..compliance_logger import compliance_logger
from ..database import get_db
from ..exceptions import NotFound
from ..pagination import DEFAULT_PER_PAGE, paginate
from .clinical_histories import serialize_history

router = APIRouter(
    tags=["Patients"],
    dependencies=[Depends(security.get_current_user)],
    responses={404: {"description": "Not found"}},
)


def _get_patient_or_404(db: Session, patient_id: int):
    db_patient = crud.get_patient(db, patient_id=patient_id)
    if db_patient is None:
        raise NotFound("Patient not found.")
    return db_patient


@router.post("/patients", response_model=schemas.PatientResponse, status_code=status.HTTP_201_CREATED)
def create_new_patient(
    patient: schemas.PatientCreate,
    db: Session = Depends(get_db),
    current_user: security.CurrentUser = Depends(security.get_current_user)
):
    """
    Create a new patient record.
    """
    try:
        new_patient = crud.create_patient(db=db, patient=patient, created_by=current_user.id)
    except crud.CRUDError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    crud.create_audit_log(
        db, user_id=current_user.id, action="CREATE", category="PATIENT",
        resource_type="patient", resource_id=new_patient.id,
        details=f"Created new patient: {new_patient.full_name}",
    )
    return new_patient


@router.get("/patients", response_model=schemas.Paginated[schemas.PatientResponse])
def read_all_patients(
    request: Request,
    search: Optional[str] = None,
    page: int = 1,
    per_page: int = DEFAULT_PER_PAGE,
    db: Session = Depends(get_db),
):
    return paginate(crud.patients_query(db, search=search), request, page, per_page, schemas.PatientResponse)


@router.get("/patients/{patient_id}", response_model=schemas.PatientResponse)
def read_patient_details(patient_id: int, db: Session = Depends(get_db)):
    return _get_patient_or_404(db, patient_id)


@router.put("/patients/{patient_id}", response_model=schemas.PatientResponse)
def update_existing_patient(
    patient_id: int,
    patient_update: schemas.PatientUpdate,
    db: Session = Depends(get_db),
    current_user: security.CurrentUser = Depends(security.get_current_user)
):
    db_patient = _get_patient_or_404(db, patient_id)
    try:
        updated = crud.update_patient(db, db_patient, patient_update)
    except crud.CRUDError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    crud.create_audit_log(
        db, user_id=current_user.id, action="UPDATE", category="PATIENT",
        resource_type="patient", resource_id=patient_id, details=f"Updated patient {patient_id}",
        new_values=patient_update.model_dump(exclude_unset=True, mode="json"),
    )
    return updated


@router.delete("/patients/{patient_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_existing_patient(
    patient_id: int,
    db: Session = Depends(get_db),
    current_admin: security.CurrentUser = Depends(security.require_admin)
):
    db_patient = _get_patient_or_404(db, patient_id)
    crud.delete_patient(db, db_patient)
    crud.create_audit_log(
        db, user_id=current_admin.id, action="DELETE", category="PATIENT",
        resource_type="patient", resource_id=patient_id, details=f"Deleted patient {patient_id}",
    )


@router.get("/patients/{patient_id}/clinical-history", response_model=schemas.ClinicalHistoryResponse)
def read_patient_clinical_history(
    patient_id: int,
    db: Session = Depends(get_db),
    current_user: security.CurrentUser = Depends(security.require_clinical_staff)
):
    _get_patient_or_404(db, patient_id)
    history = crud.get_clinical_history_by_patient(db, patient_id)
    if history is None:
        raise NotFound("This patient has no clinical history yet.")
    compliance_logger.log_access(
        db, user_id=current_user.id, resource_type="clinical_history", resource_id=history.id,
        purpose=f"lookup by patient {patient_id}",
    )
    return serialize_history(history)
