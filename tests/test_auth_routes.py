from jose import jwt

from app.db import mongo
from app.routers import auth as auth_router
from tests.helpers import STRONG_PASSWORD, bearer, register


def test_register_returns_session(client):
    session = register(client, email="Ana@Example.com")
    assert session["token"]
    assert "." in session["refresh_token"]
    assert session["user"]["email"] == "ana@example.com"
    assert session["user"]["provider"] == "password"
    assert session["user"]["roles"] == ["user"]


def test_register_weak_password(client):
    response = client.post("/api/auth/register", json={"email": "bo@example.com", "password": "short"})
    assert response.status_code == 400
    assert response.json() == {"error": "weak_password", "reason": "min_8_chars"}


def test_register_invalid_email(client):
    response = client.post("/api/auth/register", json={"email": "nope", "password": STRONG_PASSWORD})
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_payload"


def test_register_duplicate_email(client, session):
    response = client.post("/api/auth/register", json={"email": "ANA@example.com", "password": STRONG_PASSWORD})
    assert response.status_code == 409
    assert response.json() == {"error": "email_already_exists"}


def test_password_session(client, session):
    response = client.post("/api/auth/session", json={"email": "ana@example.com", "password": STRONG_PASSWORD})
    assert response.status_code == 200
    assert response.json()["user"]["id"] == session["user"]["id"]


def test_password_session_errors(client, session):
    wrong = client.post("/api/auth/session", json={"email": "ana@example.com", "password": "Wr0ng!pass"})
    assert wrong.status_code == 401
    assert wrong.json() == {"error": "invalid_credentials"}

    unknown = client.post("/api/auth/session", json={"email": "zed@example.com", "password": STRONG_PASSWORD})
    assert unknown.status_code == 404
    assert unknown.json() == {"error": "user_not_found"}

    empty = client.post("/api/auth/session")
    assert empty.status_code == 400
    assert empty.json() == {"error": "no_auth_supplied"}


def test_session_rejects_unknown_issuer(client):
    token = jwt.encode({"iss": "https://issuer.invalid", "sub": "1"}, "secret", algorithm="HS256")
    response = client.post("/api/auth/session", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 400
    assert response.json() == {"error": "unsupported_issuer"}


def test_session_rejects_garbage_id_token(client):
    response = client.post("/api/auth/session", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
    assert response.json() == {"error": "invalid_token_or_credentials"}


def test_provider_session_links_existing_email(client, session, monkeypatch, db):
    monkeypatch.setattr(auth_router, "verify_id_token", lambda token: {
        "provider": "apple", "sub": "apple-sub-1", "email": "ana@example.com", "name": None,
    })
    response = client.post("/api/auth/session", headers={"Authorization": "Bearer id-token"})
    assert response.status_code == 200
    body = response.json()
    assert body["user"]["id"] == session["user"]["id"]
    assert body["user"]["provider"] == "apple"

    # the same identity signs in again without creating a second account
    again = client.post("/api/auth/session", headers={"Authorization": "Bearer id-token"})
    assert again.json()["user"]["id"] == session["user"]["id"]
    assert db[mongo.USERS].count_documents({}) == 1


def test_provider_session_creates_user(client, monkeypatch, db):
    monkeypatch.setattr(auth_router, "verify_id_token", lambda token: {
        "provider": "google", "sub": "g-42", "email": "new@example.com", "name": "New Person",
    })
    response = client.post("/api/auth/session", headers={"Authorization": "Bearer id-token"})
    assert response.status_code == 200
    assert response.json()["user"]["name"] == "New Person"
    assert db[mongo.USERS].find_one({"provider_sub": "g-42"})["provider"] == "google"


def test_refresh_rotates_token(client, session):
    first = client.post("/api/auth/refresh", json={"refresh_token": session["refresh_token"]})
    assert first.status_code == 200
    rotated = first.json()
    assert rotated["refresh_token"] != session["refresh_token"]

    # the old token is single use
    reused = client.post("/api/auth/refresh", json={"refresh_token": session["refresh_token"]})
    assert reused.status_code == 401
    assert reused.json() == {"error": "invalid_refresh_token"}

    me = client.get("/api/me", headers=bearer(rotated))
    assert me.status_code == 200


def test_refresh_token_errors(client, session):
    missing = client.post("/api/auth/refresh", json={})
    assert missing.status_code == 400
    assert missing.json() == {"error": "missing_refresh_token"}

    malformed = client.post("/api/auth/refresh", json={"refresh_token": "abc"})
    assert malformed.status_code == 400
    assert malformed.json() == {"error": "invalid_refresh_token_format"}

    selector = session["refresh_token"].split(".")[0]
    forged = client.post("/api/auth/refresh", json={"refresh_token": f"{selector}.forged"})
    assert forged.status_code == 401


def test_logout_revokes_refresh_token(client, session):
    response = client.post("/api/auth/logout", json={"refresh_token": session["refresh_token"]})
    assert response.status_code == 200
    assert response.json() == {"success": True}

    refreshed = client.post("/api/auth/refresh", json={"refresh_token": session["refresh_token"]})
    assert refreshed.status_code == 401


def test_protected_route_requires_bearer(client):
    response = client.get("/api/me")
    assert response.status_code == 401
    assert response.json() == {"error": "missing_bearer"}

    response = client.get("/api/me", headers={"Authorization": "Bearer garbage"})
    assert response.status_code == 401
    assert response.json() == {"error": "invalid_token"}
