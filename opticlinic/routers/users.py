# opticlinic/routers/users.py
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List, Optional

from .. import crud, schemas, security
from ..database import get_db
from ..enums import UserRole

router = APIRouter(
    tags=["Users"],
    dependencies=[Depends(security.require_admin)],
    responses={404: {"description": "Not found"}},
)

@router.post("/users", response_model=schemas.UserResponse, status_code=status.HTTP_201_CREATED)
def create_new_user(
    user: schemas.UserCreate,
    db: Session = Depends(get_db),
    current_admin: security.CurrentUser = Depends(security.require_admin)
):
    try:
        new_user = crud.create_user(db=db, user=user)
    except crud.CRUDError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    crud.create_audit_log(
        db, user_id=current_admin.id, action="CREATE", category="USER",
        resource_type="user", resource_id=new_user.id,
        details=f"Created new user: {new_user.email} with role {new_user.role.value}",
        new_values=user.model_dump(exclude={"password"}, mode="json"),
    )
    return new_user

@router.get("/users", response_model=List[schemas.UserResponse])
def read_all_users(skip: int = 0, limit: int = 100, role: Optional[UserRole] = None, db: Session = Depends(get_db)):
    return crud.get_users(db, skip=skip, limit=limit, role=role)

@router.get("/users/{user_id}", response_model=schemas.UserResponse)
def read_user(user_id: int, db: Session = Depends(get_db)):
    db_user = crud.get_user(db, user_id=user_id)
    if not db_user:
        raise HTTPException(status_code=404, detail="User not found")
    return db_user

@router.put("/users/{user_id}", response_model=schemas.UserResponse)
def update_existing_user(
    user_id: int,
    user_update: schemas.UserUpdate,
    db: Session = Depends(get_db),
    current_admin: security.CurrentUser = Depends(security.require_admin)
):
    db_user = crud.get_user(db, user_id=user_id)
    if not db_user:
        raise HTTPException(status_code=404, detail="User not found")
    if db_user.id == current_admin.id and (user_update.is_active is False or
                                           user_update.role not in (None, UserRole.admin)):
        raise HTTPException(status_code=400, detail="You cannot deactivate or demote your own account.")

    updated_user = crud.update_user(db, db_user, user_update)
    crud.create_audit_log(
        db, user_id=current_admin.id, action="UPDATE", category="USER",
        resource_type="user", resource_id=user_id, details=f"Updated user: {updated_user.email}",
        new_values=user_update.model_dump(exclude_unset=True, exclude={"password"}, mode="json"),
    )
    return updated_user
