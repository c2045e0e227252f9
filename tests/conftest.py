# tests/conftest.py
import os
from datetime import datetime, timedelta, timezone

# Settings are read at import time; configure an isolated in-memory database first.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "opticlinic-test-secret-key-0123456789abcdef"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["ENVIRONMENT"] = "testing"
os.environ["PUBLIC_BASE_URL"] = "http://testserver"
for _name in ("REDIS_URL", "ENCRYPTION_KEY", "ADMIN_DEFAULT_EMAIL", "ADMIN_DEFAULT_PASSWORD",
              "AUTO_COMPLETE_ON_PRESCRIPTION", "REQUIRE_EVOLUTION_FOR_PRESCRIPTION"):
    os.environ.pop(_name, None)

import pytest
from fastapi.testclient import TestClient

from opticlinic import models, security
from opticlinic.config import get_settings
from opticlinic.database import SessionLocal, create_tables, drop_tables
from opticlinic.enums import AppointmentStatus, UserRole
from opticlinic.main import app

PASSWORD = "correct-horse-battery"


@pytest.fixture
def password():
    return PASSWORD


@pytest.fixture(scope="session")
def password_hash():
    return security.get_password_hash(PASSWORD)


@pytest.fixture(autouse=True)
def reset_state():
    drop_tables()
    create_tables()
    security.get_token_denylist().clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def make_user(db, password_hash):
    def _make_user(role: UserRole, email: str, name: str = None, is_active: bool = True) -> models.User:
        user = models.User(
            name=name or email.split("@")[0].title(),
            email=email,
            password_hash=password_hash,
            role=role,
            is_active=is_active,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make_user


@pytest.fixture
def admin(make_user):
    return make_user(UserRole.admin, "admin@example.com", "Admin")


@pytest.fixture
def specialist(make_user):
    return make_user(UserRole.specialist, "specialist@example.com", "Dr. Rivera")


@pytest.fixture
def other_specialist(make_user):
    return make_user(UserRole.specialist, "other.specialist@example.com", "Dr. Gomez")


@pytest.fixture
def receptionist(make_user):
    return make_user(UserRole.receptionist, "frontdesk@example.com", "Front Desk")


def auth_headers(user: models.User) -> dict:
    return {"Authorization": f"Bearer {security.create_token_for_user(user)}"}


@pytest.fixture
def headers_for():
    return auth_headers


@pytest.fixture
def patient(db):
    db_patient = models.Patient(
        first_name="Ana", last_name="Torres", identification="100200300",
        email="ana.torres@example.com", phone="3001234567",
    )
    db.add(db_patient)
    db.commit()
    db.refresh(db_patient)
    return db_patient


@pytest.fixture
def make_appointment(db, patient):
    def _make_appointment(specialist: models.User, status: AppointmentStatus = AppointmentStatus.scheduled,
                          taken_by: models.User = None, for_patient: models.Patient = None,
                          days_ahead: int = 1) -> models.Appointment:
        appointment = models.Appointment(
            patient_id=(for_patient or patient).id,
            specialist_id=specialist.id,
            scheduled_at=datetime.now(timezone.utc) + timedelta(days=days_ahead),
            status=status,
            taken_by_id=taken_by.id if taken_by else None,
        )
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
        return appointment
    return _make_appointment


SOAP = {
    "subjective": "dolor ocular",
    "objective": "Conjunctival hyperemia in the right eye",
    "assessment": "Allergic conjunctivitis",
    "plan": "Topical antihistamine for two weeks",
}


@pytest.fixture
def soap():
    return dict(SOAP)
