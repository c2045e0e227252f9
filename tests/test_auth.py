# tests/test_auth.py
from opticlinic import models
from opticlinic.enums import UserRole


def test_login_returns_token_and_user(client, db, specialist, password):
    response = client.post("/api/v1/auth/login", json={"email": specialist.email, "password": password})

    assert response.status_code == 200
    body = response.json()
    assert body["token_type"] == "bearer"
    assert body["expires_in"] == 60 * 60
    assert body["access_token"]
    assert body["user"]["id"] == specialist.id
    assert body["user"]["role"] == "specialist"
    db.expire_all()
    assert db.get(models.User, specialist.id).last_login is not None


def test_login_is_case_insensitive_on_email(client, specialist, password):
    response = client.post("/api/v1/auth/login", json={"email": specialist.email.upper(), "password": password})

    assert response.status_code == 200


def test_login_with_wrong_password(client, db, specialist):
    response = client.post("/api/v1/auth/login", json={"email": specialist.email, "password": "nope"})

    assert response.status_code == 401
    assert response.json()["error_type"] == "unauthenticated"
    assert db.query(models.AuditLog).filter(models.AuditLog.severity == "WARN").count() == 1


def test_login_inactive_user(client, make_user, password):
    user = make_user(UserRole.receptionist, "gone@example.com", is_active=False)

    response = client.post("/api/v1/auth/login", json={"email": user.email, "password": password})

    assert response.status_code == 403


def test_oauth2_token_form(client, admin, password):
    response = client.post("/api/v1/auth/token", data={"username": admin.email, "password": password})

    assert response.status_code == 200
    assert response.json()["user"]["role"] == "admin"


def test_me_requires_token(client):
    response = client.get("/api/v1/auth/me")

    assert response.status_code == 401
    assert response.json()["error_type"] == "unauthenticated"


def test_me(client, receptionist, headers_for):
    response = client.get("/api/v1/auth/me", headers=headers_for(receptionist))

    assert response.status_code == 200
    assert response.json()["email"] == receptionist.email


def test_logout_revokes_token(client, specialist, headers_for):
    headers = headers_for(specialist)

    assert client.post("/api/v1/auth/logout", headers=headers).status_code == 204
    assert client.get("/api/v1/auth/me", headers=headers).status_code == 401


def test_refresh_issues_new_token_and_revokes_old(client, specialist, headers_for):
    headers = headers_for(specialist)

    response = client.post("/api/v1/auth/refresh", headers=headers)

    assert response.status_code == 200
    new_headers = {"Authorization": f"Bearer {response.json()['access_token']}"}
    assert client.get("/api/v1/auth/me", headers=new_headers).status_code == 200
    assert client.get("/api/v1/auth/me", headers=headers).status_code == 401


def test_users_are_admin_only(client, admin, receptionist, headers_for):
    assert client.get("/api/v1/users", headers=headers_for(receptionist)).status_code == 403

    created = client.post("/api/v1/users", headers=headers_for(admin), json={
        "name": "Dr. Lopez", "email": "lopez@example.com", "password": "a-long-password", "role": "specialist",
    })
    assert created.status_code == 201
    assert created.json()["role"] == "specialist"

    duplicate = client.post("/api/v1/users", headers=headers_for(admin), json={
        "name": "Dr. Lopez", "email": "lopez@example.com", "password": "a-long-password", "role": "specialist",
    })
    assert duplicate.status_code == 409
    assert duplicate.json()["error_type"] == "conflict"


def test_admin_cannot_demote_self(client, admin, headers_for):
    response = client.put(f"/api/v1/users/{admin.id}", headers=headers_for(admin), json={"role": "receptionist"})

    assert response.status_code == 400
    assert response.json()["error_type"] == "bad_request"


def test_security_headers_present(client):
    response = client.get("/api/v1/health")

    assert response.status_code == 200
    assert response.json()["database"] == "ok"
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"
