# opticlinic/routers/form_schemas.py
from typing import Dict, Type

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from .. import schemas, security
from ..exceptions import NotFound

router = APIRouter(
    tags=["Form Schemas"],
    dependencies=[Depends(security.get_current_user)],
    responses={404: {"description": "Not found"}},
)

# Request models whose field rules front ends mirror
FORM_SCHEMAS: Dict[str, Type[BaseModel]] = {
    "appointment": schemas.AppointmentCreate,
    "appointment-update": schemas.AppointmentUpdate,
    "appointment-reschedule": schemas.AppointmentReschedule,
    "appointment-annotations": schemas.AppointmentAnnotations,
    "patient": schemas.PatientCreate,
    "clinical-history": schemas.ClinicalHistoryCreate,
    "clinical-evolution": schemas.ClinicalEvolutionCreate,
    "appointment-evolution": schemas.ClinicalEvolutionFromAppointment,
    "prescription": schemas.PrescriptionCreate,
}


@router.get("/schemas")
def list_form_schemas():
    return {"schemas": sorted(FORM_SCHEMAS)}


@router.get("/schemas/{name}")
def read_form_schema(name: str):
    """JSON Schema of a request body, as validated by the API."""
    model = FORM_SCHEMAS.get(name)
    if model is None:
        raise NotFound(f"Unknown form schema '{name}'.")
    return model.model_json_schema()
