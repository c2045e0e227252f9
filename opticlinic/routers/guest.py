# opticlinic/routers/guest.py
import logging
from io import BytesIO

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from .. import crud, models, security
from ..database import get_db
from ..exceptions import NotFound
from ..services import pdf_service

logger = logging.getLogger(__name__)

# No bearer dependency here; access is granted by the encrypted ?token= instead.
router = APIRouter(
    prefix="/guest",
    tags=["Guest Access"],
    responses={404: {"description": "Not found"}},
)


@router.get("/clinical-histories/{history_id}/pdf")
def download_clinical_history_pdf(
    history_id: int,
    token: str = Query(""),
    preview: bool = False,
    db: Session = Depends(get_db),
):
    """
    Render a clinical history with all its evolutions as a PDF.

    ``preview=true`` displays it inline instead of as a download.
    """
    security.verify_guest_pdf_token(token, history_id)
    history = crud.get_clinical_history(db, history_id)
    if history is None:
        raise NotFound("Clinical history not found.")

    evolutions = db.query(models.ClinicalEvolution).filter(
        models.ClinicalEvolution.clinical_history_id == history.id
    ).order_by(models.ClinicalEvolution.evolution_date.asc(), models.ClinicalEvolution.id.asc()).all()

    try:
        pdf_bytes = pdf_service.render_clinical_history_pdf(history, evolutions)
    except pdf_service.PDFRenderError as e:
        raise HTTPException(status_code=500, detail=str(e))

    crud.create_audit_log(
        db, user_id=None, username="guest", action="EXPORT", category="CLINICAL",
        resource_type="clinical_history", resource_id=history.id,
        details=f"Guest PDF {'preview' if preview else 'download'} of clinical history {history.id}",
    )
    logger.info(f"Served guest PDF for clinical history {history.id}")

    disposition = "inline" if preview else "attachment"
    return StreamingResponse(BytesIO(pdf_bytes), media_type="application/pdf", headers={
        "Content-Disposition": f"{disposition}; filename=clinical_history_{history.id}.pdf"
    })
