# opticlinic/routers/health.py
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import schemas
from ..config import get_settings
from ..database import get_db

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/health",
    tags=["Health Checks"],
)

@router.get("", response_model=schemas.HealthResponse)
def health_check(db: Session = Depends(get_db)):
    """Liveness plus a trivial database round trip."""
    body = {
        "status": "ok",
        "database": "ok",
        "version": get_settings().app_version,
        "timestamp": datetime.now(timezone.utc),
    }
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Health check database failure: {e}")
        body.update(status="degraded", database="unavailable")
        return JSONResponse(status_code=503, content=schemas.HealthResponse(**body).model_dump(mode="json"))
    return body
