# Initializes the admin account on startup.
import logging
from typing import Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from . import crud, models, schemas
from .config import get_settings
from .database import SessionLocal
from .enums import UserRole
from .security import get_password_hash

logger = logging.getLogger(__name__)


def upsert_admin(db: Session, name: str, email: str, password: Optional[str],
                 reset_password: bool = False) -> Optional[models.User]:
    """
    Make sure an active admin with ``email`` exists.

    An existing account is promoted and reactivated; its password is only
    replaced when ``reset_password`` is set.
    """
    user = crud.get_user_by_email(db, email)
    if user is None:
        if not password:
            logger.warning("ADMIN_DEFAULT_PASSWORD not set; skipping admin bootstrap.")
            return None
        user = crud.create_user(db, schemas.UserCreate(
            name=name, email=email, password=password, role=UserRole.admin,
        ))
        logger.info(f"Admin user '{email}' created.")
        return user

    user.role = UserRole.admin
    user.is_active = True
    if reset_password and password:
        user.password_hash = get_password_hash(password)
    db.commit()
    db.refresh(user)
    logger.info(f"Admin user '{email}' verified.")
    return user


def create_or_update_admin(reset_password: bool = False) -> None:
    settings = get_settings()
    if not settings.admin_default_email:
        logger.info("ADMIN_DEFAULT_EMAIL not set; skipping admin bootstrap.")
        return
    db = SessionLocal()
    try:
        upsert_admin(
            db,
            name=settings.admin_default_name,
            email=settings.admin_default_email,
            password=settings.admin_default_password,
            reset_password=reset_password,
        )
    except (crud.CRUDError, PydanticValidationError) as e:
        logger.error(f"Admin bootstrap failed: {e}")
    finally:
        db.close()
