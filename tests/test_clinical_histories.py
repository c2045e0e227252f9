# tests/test_clinical_histories.py
from urllib.parse import parse_qs, urlparse

from opticlinic import models, security
from opticlinic.services import pdf_service


def _create_history(client, patient, headers):
    response = client.post("/api/v1/clinical-histories", headers=headers, json={
        "patient_id": patient.id,
        "reason_for_consultation": "Blurred vision <script>alert(1)</script>",
        "allergies": "Penicillin",
    })
    assert response.status_code == 201
    return response.json()


def test_create_history_carries_guest_pdf_link(client, admin, patient, headers_for):
    history = _create_history(client, patient, headers_for(admin))

    assert history["patient_id"] == patient.id
    assert history["uses_optical_correction"] is False
    assert history["pdf_token"]
    url = urlparse(history["guest_pdf_url"])
    assert url.path == f"/api/v1/guest/clinical-histories/{history['id']}/pdf"
    assert parse_qs(url.query)["token"] == [history["pdf_token"]]


def test_one_history_per_patient(client, admin, patient, headers_for):
    headers = headers_for(admin)
    _create_history(client, patient, headers)

    response = client.post("/api/v1/clinical-histories", headers=headers, json={
        "patient_id": patient.id, "reason_for_consultation": "Second attempt",
    })

    assert response.status_code == 409


def test_history_for_unknown_patient(client, admin, headers_for):
    response = client.post("/api/v1/clinical-histories", headers=headers_for(admin), json={
        "patient_id": 404, "reason_for_consultation": "Headache",
    })

    assert response.status_code == 422
    assert "patient_id" in response.json()["errors"]


def test_receptionist_cannot_read_histories(client, receptionist, headers_for):
    assert client.get("/api/v1/clinical-histories", headers=headers_for(receptionist)).status_code == 403


def test_patient_history_lookup(client, admin, patient, headers_for):
    headers = headers_for(admin)
    assert client.get(f"/api/v1/patients/{patient.id}/clinical-history", headers=headers).status_code == 404

    history = _create_history(client, patient, headers)
    response = client.get(f"/api/v1/patients/{patient.id}/clinical-history", headers=headers)

    assert response.status_code == 200
    assert response.json()["id"] == history["id"]


def test_guest_pdf_download(client, admin, patient, headers_for):
    history = _create_history(client, patient, headers_for(admin))

    response = client.get(f"/api/v1/guest/clinical-histories/{history['id']}/pdf",
                          params={"token": history["pdf_token"]})

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/pdf"
    assert response.headers["content-disposition"].startswith("attachment;")
    assert response.content.startswith(b"%PDF")


def test_guest_pdf_preview_is_inline(client, admin, patient, headers_for):
    history = _create_history(client, patient, headers_for(admin))

    response = client.get(f"/api/v1/guest/clinical-histories/{history['id']}/pdf",
                          params={"token": history["pdf_token"], "preview": "true"})

    assert response.headers["content-disposition"].startswith("inline;")


def test_guest_pdf_rejects_token_for_other_history(client, admin, patient, headers_for):
    history = _create_history(client, patient, headers_for(admin))
    token = security.create_guest_pdf_token(history["id"] + 1)

    response = client.get(f"/api/v1/guest/clinical-histories/{history['id']}/pdf", params={"token": token})

    assert response.status_code == 403
    assert response.json()["error_type"] == "forbidden"


def test_guest_pdf_rejects_expired_or_missing_token(client, admin, patient, headers_for):
    history = _create_history(client, patient, headers_for(admin))
    expired = security.create_guest_pdf_token(history["id"], expires_minutes=-1)
    url = f"/api/v1/guest/clinical-histories/{history['id']}/pdf"

    assert client.get(url, params={"token": expired}).status_code == 403
    assert client.get(url).status_code == 403
    assert client.get(url, params={"token": "not-a-token"}).status_code == 403


def test_pdf_html_escapes_free_text(db, admin, patient):
    history = models.ClinicalHistory(patient_id=patient.id, reason_for_consultation="<b>bold</b> & <script>x</script>",
                                     uses_optical_correction=False, created_by=admin.id)
    db.add(history)
    db.commit()
    db.refresh(history)

    html = pdf_service.render_clinical_history_html(history, [])

    assert "<script>" not in html
    assert "<b>bold</b>" not in html
    assert "No evolutions recorded." in html


def test_reading_a_history_records_data_access(client, db, admin, patient, headers_for):
    headers = headers_for(admin)
    history = _create_history(client, patient, headers)

    client.get(f"/api/v1/clinical-histories/{history['id']}", headers=headers)
    client.get(f"/api/v1/patients/{patient.id}/clinical-history", headers=headers)

    reads = db.query(models.AuditLog).filter(models.AuditLog.category == "DATA_ACCESS").all()
    assert len(reads) == 2
    assert {log.action for log in reads} == {models.AuditAction.READ}
    assert all(log.resource_id == history["id"] for log in reads)
    assert all(log.details.startswith(f"Accessed clinical_history:{history['id']} for ") for log in reads)
