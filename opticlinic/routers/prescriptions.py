# opticlinic/routers/prescriptions.py
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.orm import Session

from .. import crud, schemas, security
from ..database import get_db
from ..pagination import DEFAULT_PER_PAGE, paginate
from ..services import prescription_service

router = APIRouter(
    tags=["Prescriptions"],
    dependencies=[Depends(security.require_clinical_staff)],
    responses={404: {"description": "Not found"}},
)


@router.get("/prescriptions", response_model=schemas.Paginated[schemas.PrescriptionResponse])
def read_prescriptions(
    request: Request,
    appointment_id: Optional[int] = None,
    patient_id: Optional[int] = None,
    page: int = 1,
    per_page: int = DEFAULT_PER_PAGE,
    db: Session = Depends(get_db),
    current_user: security.CurrentUser = Depends(security.require_clinical_staff),
):
    query = crud.prescriptions_query(db, current_user, appointment_id=appointment_id, patient_id=patient_id)
    return paginate(query, request, page, per_page, schemas.PrescriptionResponse)


@router.post("/prescriptions", response_model=schemas.PrescriptionResponse, status_code=status.HTTP_201_CREATED)
def create_prescription(
    prescription: schemas.PrescriptionCreate,
    db: Session = Depends(get_db),
    current_user: security.CurrentUser = Depends(security.require_specialist),
):
    """
    Issue the prescription of an appointment being attended.

    Creating one before any evolution is recorded is allowed but discouraged;
    see the appointment's prescription-gate endpoint.
    """
    return prescription_service.create(db, prescription, current_user)


@router.get("/prescriptions/{prescription_id}", response_model=schemas.PrescriptionResponse)
def read_prescription(
    prescription_id: int,
    db: Session = Depends(get_db),
    current_user: security.CurrentUser = Depends(security.require_clinical_staff),
):
    return prescription_service.get_for_user(db, prescription_id, current_user)


@router.put("/prescriptions/{prescription_id}", response_model=schemas.PrescriptionResponse)
def update_prescription(
    prescription_id: int,
    prescription_update: schemas.PrescriptionUpdate,
    db: Session = Depends(get_db),
    current_user: security.CurrentUser = Depends(security.require_clinical_staff),
):
    return prescription_service.update(db, prescription_id, prescription_update, current_user)


@router.delete("/prescriptions/{prescription_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_prescription(
    prescription_id: int,
    db: Session = Depends(get_db),
    current_user: security.CurrentUser = Depends(security.require_clinical_staff),
):
    prescription_service.delete(db, prescription_id, current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
