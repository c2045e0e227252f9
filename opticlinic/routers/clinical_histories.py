# opticlinic/routers/clinical_histories.py
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from .. import crud, models, schemas, security
from ..compliance_logger import compliance_logger
from ..config import get_settings
from ..database import get_db
from ..exceptions import NotFound, ValidationError
from ..pagination import DEFAULT_PER_PAGE, paginate

router = APIRouter(
    tags=["Clinical Histories"],
    dependencies=[Depends(security.require_clinical_staff)],
    responses={404: {"description": "Not found"}},
)


def serialize_history(history: models.ClinicalHistory) -> schemas.ClinicalHistoryResponse:
    """Clinical history with a short-lived guest link to its PDF."""
    token = security.create_guest_pdf_token(history.id)
    base_url = get_settings().public_base_url.rstrip("/")
    response = schemas.ClinicalHistoryResponse.model_validate(history)
    response.pdf_token = token
    response.guest_pdf_url = f"{base_url}/api/v1/guest/clinical-histories/{history.id}/pdf?token={token}"
    return response


def _get_history_or_404(db: Session, history_id: int) -> models.ClinicalHistory:
    history = crud.get_clinical_history(db, history_id)
    if history is None:
        raise NotFound("Clinical history not found.")
    return history


@router.get("/clinical-histories", response_model=schemas.Paginated[schemas.ClinicalHistoryResponse])
def read_clinical_histories(
    request: Request,
    patient_id: Optional[int] = None,
    page: int = 1,
    per_page: int = DEFAULT_PER_PAGE,
    db: Session = Depends(get_db),
):
    return paginate(crud.clinical_histories_query(db, patient_id=patient_id), request, page, per_page,
                    schemas.ClinicalHistoryResponse)


@router.post("/clinical-histories", response_model=schemas.ClinicalHistoryResponse, status_code=status.HTTP_201_CREATED)
def create_clinical_history(
    history: schemas.ClinicalHistoryCreate,
    db: Session = Depends(get_db),
    current_user: security.CurrentUser = Depends(security.require_clinical_staff),
):
    if crud.get_patient(db, history.patient_id) is None:
        raise ValidationError.for_field("patient_id", "The selected patient does not exist.")
    try:
        db_history = crud.create_clinical_history(db, history, current_user.id)
    except crud.CRUDError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    crud.create_audit_log(
        db, user_id=current_user.id, action="CREATE", category="CLINICAL",
        resource_type="clinical_history", resource_id=db_history.id,
        details=f"Created clinical history for patient {history.patient_id}",
    )
    return serialize_history(db_history)


@router.get("/clinical-histories/{history_id}", response_model=schemas.ClinicalHistoryResponse)
def read_clinical_history(
    history_id: int,
    db: Session = Depends(get_db),
    current_user: security.CurrentUser = Depends(security.require_clinical_staff),
):
    history = _get_history_or_404(db, history_id)
    compliance_logger.log_access(
        db, user_id=current_user.id, resource_type="clinical_history", resource_id=history_id,
        purpose="clinical review",
    )
    return serialize_history(history)


@router.put("/clinical-histories/{history_id}", response_model=schemas.ClinicalHistoryResponse)
def update_clinical_history(
    history_id: int,
    history_update: schemas.ClinicalHistoryUpdate,
    db: Session = Depends(get_db),
    current_user: security.CurrentUser = Depends(security.require_clinical_staff),
):
    history = _get_history_or_404(db, history_id)
    updated = crud.update_clinical_history(db, history, history_update, current_user.id)
    crud.create_audit_log(
        db, user_id=current_user.id, action="UPDATE", category="CLINICAL",
        resource_type="clinical_history", resource_id=history_id,
        details=f"Updated clinical history {history_id}",
        new_values=history_update.model_dump(exclude_unset=True, mode="json"),
    )
    return serialize_history(updated)


@router.get(
    "/clinical-histories/{history_id}/evolutions",
    response_model=schemas.Paginated[schemas.ClinicalEvolutionResponse],
)
def read_history_evolutions(
    history_id: int,
    request: Request,
    page: int = 1,
    per_page: int = DEFAULT_PER_PAGE,
    db: Session = Depends(get_db),
    current_user: security.CurrentUser = Depends(security.require_clinical_staff),
):
    """Evolutions of a history, newest first. Specialists only see their own."""
    _get_history_or_404(db, history_id)
    return paginate(crud.evolutions_query(db, history_id, current_user), request, page, per_page,
                    schemas.ClinicalEvolutionResponse)
