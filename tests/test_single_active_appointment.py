# tests/test_single_active_appointment.py
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from opticlinic import models
from opticlinic.enums import AppointmentStatus
from opticlinic.exceptions import AppointmentInProgress
from opticlinic.security import CurrentUser
from opticlinic.services import lifecycle_service


def _appointment(patient, specialist, status, taken_by=None):
    return models.Appointment(
        patient_id=patient.id,
        specialist_id=specialist.id,
        scheduled_at=datetime.now(timezone.utc) + timedelta(hours=1),
        status=status,
        taken_by_id=taken_by.id if taken_by else None,
    )


def test_index_rejects_second_in_progress_row(db, patient, specialist):
    db.add(_appointment(patient, specialist, AppointmentStatus.in_progress, specialist))
    db.commit()

    db.add(_appointment(patient, specialist, AppointmentStatus.in_progress, specialist))
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()


def test_index_allows_paused_and_completed_rows(db, patient, specialist):
    db.add_all([
        _appointment(patient, specialist, AppointmentStatus.in_progress, specialist),
        _appointment(patient, specialist, AppointmentStatus.paused, specialist),
        _appointment(patient, specialist, AppointmentStatus.paused, specialist),
        _appointment(patient, specialist, AppointmentStatus.completed, specialist),
        _appointment(patient, specialist, AppointmentStatus.completed, specialist),
    ])
    db.commit()

    assert db.query(models.Appointment).count() == 5


def test_index_allows_one_active_row_per_specialist(db, patient, specialist, other_specialist):
    db.add_all([
        _appointment(patient, specialist, AppointmentStatus.in_progress, specialist),
        _appointment(patient, other_specialist, AppointmentStatus.in_progress, other_specialist),
    ])
    db.commit()

    assert db.query(models.Appointment).filter(
        models.Appointment.status == AppointmentStatus.in_progress
    ).count() == 2


def test_interleaved_take_loses_to_the_index(db, patient, specialist, monkeypatch):
    """Two takes that both pass the application check still end with one in_progress row."""
    first = _appointment(patient, specialist, AppointmentStatus.scheduled)
    second = _appointment(patient, specialist, AppointmentStatus.scheduled)
    db.add_all([first, second])
    db.commit()
    user = CurrentUser.from_model(specialist)

    lifecycle_service.take(db, first.id, user)
    # Simulate the second request having checked before the first committed
    monkeypatch.setattr(lifecycle_service, "_ensure_no_other_active", lambda *args: None)

    with pytest.raises(AppointmentInProgress) as exc_info:
        lifecycle_service.take(db, second.id, user)

    assert exc_info.value.current_appointment_id == first.id
    db.expire_all()
    assert db.get(models.Appointment, second.id).status == AppointmentStatus.scheduled
    assert db.get(models.Appointment, first.id).status == AppointmentStatus.in_progress
