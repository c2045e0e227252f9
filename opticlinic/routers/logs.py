# opticlinic/routers/logs.py
from datetime import date
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from .. import crud, schemas
from ..database import get_db
from ..enums import AuditAction
from ..security import require_admin

router = APIRouter(
    tags=["Logs"],
    dependencies=[Depends(require_admin)],
    responses={404: {"description": "Not found"}},
)

@router.get("/logs", response_model=List[schemas.AuditLogResponse])
def read_audit_logs(
    skip: int = 0,
    limit: int = Query(100, le=500),
    user_id: Optional[int] = None,
    category: Optional[str] = None,
    action: Optional[AuditAction] = None,
    resource_type: Optional[str] = None,
    resource_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    db: Session = Depends(get_db)
):
    """
    Audit trail, newest first.

    ``action=TRANSITION`` with ``resource_type=appointment&resource_id=…``
    gives the status history of one appointment.
    """
    try:
        return crud.get_audit_logs(
            db, skip=skip, limit=limit, user_id=user_id, category=category, action=action,
            resource_type=resource_type, resource_id=resource_id,
            start_date=start_date, end_date=end_date,
        )
    except crud.CRUDError as e:
        raise HTTPException(status_code=400, detail=str(e))
