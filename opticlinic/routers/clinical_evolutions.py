# opticlinic/routers/clinical_evolutions.py
from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from .. import schemas, security
from ..database import get_db
from ..services import evolution_service

router = APIRouter(
    tags=["Clinical Evolutions"],
    dependencies=[Depends(security.require_clinical_staff)],
    responses={404: {"description": "Not found"}},
)


@router.post("/clinical-evolutions", response_model=schemas.ClinicalEvolutionResponse, status_code=status.HTTP_201_CREATED)
def create_evolution(
    evolution: schemas.ClinicalEvolutionCreate,
    db: Session = Depends(get_db),
    current_user: security.CurrentUser = Depends(security.require_clinical_staff),
):
    return evolution_service.create(db, evolution, current_user)


@router.get("/clinical-evolutions/{evolution_id}", response_model=schemas.ClinicalEvolutionResponse)
def read_evolution(
    evolution_id: int,
    db: Session = Depends(get_db),
    current_user: security.CurrentUser = Depends(security.require_clinical_staff),
):
    return evolution_service.get_for_user(db, evolution_id, current_user)


@router.put("/clinical-evolutions/{evolution_id}", response_model=schemas.ClinicalEvolutionResponse)
def update_evolution(
    evolution_id: int,
    evolution_update: schemas.ClinicalEvolutionUpdate,
    db: Session = Depends(get_db),
    current_user: security.CurrentUser = Depends(security.require_clinical_staff),
):
    return evolution_service.update(db, evolution_id, evolution_update, current_user)


@router.delete("/clinical-evolutions/{evolution_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_evolution(
    evolution_id: int,
    db: Session = Depends(get_db),
    current_user: security.CurrentUser = Depends(security.require_clinical_staff),
):
    evolution_service.delete(db, evolution_id, current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
