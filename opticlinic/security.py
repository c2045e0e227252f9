import base64
import json
import logging
import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Dict, Optional

import redis
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from . import models
from .config import get_settings
from .database import get_db
from .enums import UserRole
from .exceptions import Forbidden

security_logger = logging.getLogger("security")

pwd_context = CryptContext(
    schemes=["argon2"],
    deprecated="auto",
    argon2__rounds=4,
    argon2__memory_cost=65536,
    argon2__parallelism=1,
)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="api/v1/auth/token")

GUEST_PDF_TOKEN_TYPE = "clinical_history_pdf"


@dataclass(frozen=True)
class CurrentUser:
    """Caller identity resolved once per request from the bearer token."""
    id: int
    name: str
    email: str
    role: UserRole

    @classmethod
    def from_model(cls, user: models.User) -> "CurrentUser":
        return cls(id=user.id, name=user.name, email=user.email, role=user.role)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.admin

    @property
    def is_specialist(self) -> bool:
        return self.role == UserRole.specialist

    @property
    def is_receptionist(self) -> bool:
        return self.role == UserRole.receptionist


class EncryptionService:
    """Fernet encryption for time-limited guest links"""

    def __init__(self, key: Optional[str] = None, secret: Optional[str] = None):
        if key:
            fernet_key = key.encode()
        else:
            fernet_key = self._derive_key(secret or get_settings().secret_key)
        self.fernet = Fernet(fernet_key)

    @staticmethod
    def _derive_key(secret: str) -> bytes:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=b"opticlinic-guest-links",
            iterations=100_000,
        )
        return base64.urlsafe_b64encode(kdf.derive(secret.encode()))

    def encrypt(self, data: str) -> str:
        return self.fernet.encrypt(data.encode()).decode()

    def decrypt(self, token: str) -> str:
        return self.fernet.decrypt(token.encode()).decode()

    def encrypt_json(self, payload: Dict[str, Any]) -> str:
        return self.encrypt(json.dumps(payload, separators=(",", ":")))

    def decrypt_json(self, token: str) -> Dict[str, Any]:
        return json.loads(self.decrypt(token))


@lru_cache()
def get_encryption_service() -> EncryptionService:
    settings = get_settings()
    if not settings.encryption_key:
        security_logger.warning("ENCRYPTION_KEY not set, deriving guest link key from SECRET_KEY")
    return EncryptionService(key=settings.encryption_key, secret=settings.secret_key)


def create_guest_pdf_token(clinical_history_id: int, expires_minutes: Optional[int] = None) -> str:
    """Encrypted, time-limited token granting PDF access to one clinical history."""
    minutes = expires_minutes if expires_minutes is not None else get_settings().guest_token_expire_minutes
    payload = {
        "type": GUEST_PDF_TOKEN_TYPE,
        "id": clinical_history_id,
        "expires": int(time.time()) + minutes * 60,
    }
    return get_encryption_service().encrypt_json(payload)


def verify_guest_pdf_token(token: str, clinical_history_id: int) -> None:
    """Raise Forbidden unless ``token`` grants access to ``clinical_history_id``."""
    if not token:
        raise Forbidden("A guest access token is required.")
    try:
        payload = get_encryption_service().decrypt_json(token)
    except (InvalidToken, ValueError):
        raise Forbidden("The guest access token is invalid.")
    if payload.get("type") != GUEST_PDF_TOKEN_TYPE or payload.get("id") != clinical_history_id:
        raise Forbidden("The guest access token does not grant access to this document.")
    if int(payload.get("expires", 0)) < int(time.time()):
        raise Forbidden("The guest access token has expired.")


class TokenDenylist:
    """Revoked JWT ids. Redis-backed when REDIS_URL is set, in-memory otherwise."""

    def __init__(self, redis_client: Optional[redis.Redis] = None):
        self.redis_client = redis_client
        self._revoked: Dict[str, float] = {}

    def revoke(self, jti: str, expires_at: float) -> None:
        ttl = max(int(expires_at - time.time()), 1)
        if self.redis_client is not None:
            self.redis_client.setex(f"revoked_jti:{jti}", ttl, "1")
        else:
            self._revoked[jti] = expires_at

    def is_revoked(self, jti: Optional[str]) -> bool:
        if not jti:
            return False
        if self.redis_client is not None:
            return bool(self.redis_client.exists(f"revoked_jti:{jti}"))
        expires_at = self._revoked.get(jti)
        if expires_at is None:
            return False
        if expires_at < time.time():
            self._revoked.pop(jti, None)
            return False
        return True

    def clear(self) -> None:
        self._revoked.clear()


@lru_cache()
def get_token_denylist() -> TokenDenylist:
    settings = get_settings()
    if settings.redis_enabled:
        try:
            client = redis.Redis.from_url(settings.redis_url, decode_responses=True)
            client.ping()
            return TokenDenylist(client)
        except redis.RedisError as e:
            security_logger.warning(f"Redis not available ({e}), using in-memory token denylist")
    return TokenDenylist()


# Password utilities
def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash"""
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        # Unknown hash formats are treated as a non-match
        return False


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


# JWT utilities
def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token"""
    settings = get_settings()
    to_encode = data.copy()
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))

    to_encode.update({
        "exp": expire,
        "type": "access",
        "iat": now,
        "jti": secrets.token_urlsafe(16),  # JWT ID for revocation
    })
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def create_token_for_user(user: models.User) -> str:
    return create_access_token({"sub": user.email, "user_id": user.id, "role": user.role.value})


def verify_token(token: str, token_type: str = "access") -> Optional[Dict[str, Any]]:
    """Decode a JWT; None when invalid, expired, revoked or of another type."""
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None
    if payload.get("type") != token_type:
        return None
    if get_token_denylist().is_revoked(payload.get("jti")):
        return None
    return payload


def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_token_payload(token: str = Depends(oauth2_scheme)) -> Dict[str, Any]:
    payload = verify_token(token, "access")
    if not payload:
        raise _credentials_exception()
    return payload


# Dependencies for FastAPI
def get_current_user(
    request: Request,
    payload: Dict[str, Any] = Depends(get_token_payload),
    db: Session = Depends(get_db),
) -> CurrentUser:
    """Resolve the authenticated caller into an immutable session value."""
    user_id = payload.get("user_id")
    if not user_id:
        raise _credentials_exception()

    user = db.query(models.User).filter(models.User.id == user_id).first()
    if not user:
        raise _credentials_exception()
    if not user.is_active:
        security_logger.warning(f"Inactive user {user_id} denied on {request.url.path}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User account is inactive")

    return CurrentUser.from_model(user)


def require_role(*allowed_roles: UserRole):
    """Dependency factory for role-based access control"""
    allowed = {UserRole(role) for role in allowed_roles}

    def role_dependency(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if current_user.role not in allowed:
            raise Forbidden(f"Access denied. Required roles: {', '.join(sorted(r.value for r in allowed))}")
        return current_user

    return role_dependency


# Specific role dependencies
require_admin = require_role(UserRole.admin)
require_specialist = require_role(UserRole.specialist)
require_clinical_staff = require_role(UserRole.admin, UserRole.specialist)
require_front_desk = require_role(UserRole.admin, UserRole.receptionist)


def add_security_headers(response):
    """Add security headers to response"""
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    return response
