# opticlinic/routers/auth.py
import logging
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from .. import crud, schemas, security, models
from ..config import get_settings
from ..database import get_db
from ..limiter import limiter, login_rate_limit

logger = logging.getLogger(__name__)


router = APIRouter(
    prefix="/auth",
    tags=["Authentication"]
)


def _authenticate(db: Session, request: Request, email: str, password: str) -> models.User:
    user = crud.get_user_by_email(db, email)
    if not user or not security.verify_password(password, user.password_hash):
        logger.warning(f"Failed login attempt for: {email}")
        crud.create_audit_log(
            db, user_id=user.id if user else None, username=email, action="LOGIN_FAILED",
            category="AUTHENTICATION", severity="WARN", details="Invalid credentials",
            ip_address=request.client.host if request.client else None,
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User account is inactive")
    return user


def _issue_token(db: Session, request: Request, user: models.User) -> Dict[str, Any]:
    crud.record_login(db, user)
    crud.create_audit_log(
        db, user_id=user.id, action="LOGIN", category="AUTHENTICATION",
        details=f"User {user.email} logged in successfully.",
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("User-Agent"),
    )
    logger.info(f"User '{user.email}' successfully authenticated.")
    return {
        "access_token": security.create_token_for_user(user),
        "token_type": "bearer",
        "expires_in": get_settings().access_token_expire_minutes * 60,
        "user": schemas.UserResponse.model_validate(user),
    }


@router.post("/login", response_model=schemas.TokenResponse)
@limiter.limit(login_rate_limit)
def login(request: Request, credentials: schemas.LoginRequest, db: Session = Depends(get_db)):
    user = _authenticate(db, request, credentials.email, credentials.password)
    return _issue_token(db, request, user)


@router.post("/token", response_model=schemas.TokenResponse)
@limiter.limit(login_rate_limit)
def login_for_access_token(request: Request, db: Session = Depends(get_db), form_data: OAuth2PasswordRequestForm = Depends()):
    """OAuth2 password flow; ``username`` carries the email."""
    user = _authenticate(db, request, form_data.username, form_data.password)
    return _issue_token(db, request, user)


@router.get("/me", response_model=schemas.UserResponse)
def read_me(db: Session = Depends(get_db), current_user: security.CurrentUser = Depends(security.get_current_user)):
    """
    Get the current logged in user's details.
    """
    return crud.get_user(db, current_user.id)


@router.post("/refresh", response_model=schemas.TokenResponse)
def refresh_token(
    request: Request,
    payload: Dict[str, Any] = Depends(security.get_token_payload),
    db: Session = Depends(get_db),
    current_user: security.CurrentUser = Depends(security.get_current_user),
):
    """Exchange a valid token for a fresh one; the old token is revoked."""
    security.get_token_denylist().revoke(payload["jti"], payload["exp"])
    user = crud.get_user(db, current_user.id)
    return {
        "access_token": security.create_token_for_user(user),
        "token_type": "bearer",
        "expires_in": get_settings().access_token_expire_minutes * 60,
        "user": schemas.UserResponse.model_validate(user),
    }


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(
    payload: Dict[str, Any] = Depends(security.get_token_payload),
    db: Session = Depends(get_db),
    current_user: security.CurrentUser = Depends(security.get_current_user),
):
    security.get_token_denylist().revoke(payload["jti"], payload["exp"])
    crud.create_audit_log(
        db, user_id=current_user.id, action="LOGOUT", category="AUTHENTICATION",
        details=f"User {current_user.email} logged out at {datetime.now(timezone.utc).isoformat()}",
    )
