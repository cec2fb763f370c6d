# Accounts: sign-up and login, the per-request auth context, profiles, rooms and the notification inbox.
from __future__ import annotations

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

from boardinghouse import models
from boardinghouse.routes.auth import AuthContext, SessionState

from helpers import PASSWORD, admin_login, auth_headers, create_room, login, signup


def test_signup_login_me(client: TestClient):
    token, user = signup(client, "Guest@Example.com ", "Guest User")
    assert user["email"] == "guest@example.com"
    assert user["role"] == "user"

    token, _ = login(client, "guest@example.com")
    r = client.get("/auth/me", headers=auth_headers(token))
    assert r.status_code == 200, r.text
    assert r.json()["full_name"] == "Guest User"


# Self sign-up can never grant the admin role
def test_signup_ignores_requested_role(client: TestClient):
    r = client.post("/auth/signup", json={"email": "sneaky@example.com", "password": PASSWORD, "role": "admin"})
    assert r.status_code == 201, r.text
    assert r.json()["user"]["role"] == "user"


def test_duplicate_email_and_bad_credentials(client: TestClient):
    signup(client, "guest@example.com")
    r = client.post("/auth/signup", json={"email": "guest@example.com", "password": PASSWORD})
    assert r.status_code == 409, r.text

    r = client.post("/auth/login", json={"email": "guest@example.com", "password": "wrong-password"})
    assert r.status_code == 401, r.text


def test_bad_tokens_are_rejected(client: TestClient):
    assert client.get("/auth/me").status_code == 401
    r = client.get("/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401
    assert r.json()["detail"] == "Invalid token"


def test_auth_context_lifecycle():
    ctx = AuthContext()
    assert ctx.state is SessionState.SIGNED_OUT
    with pytest.raises(HTTPException):
        _ = ctx.user_id

    profile = models.Profile(id=7, email="a@example.com", password_hash="x", role=models.Role.ADMIN)
    ctx.begin_check()
    assert ctx.state is SessionState.CHECKING
    ctx.sign_in(profile)
    assert ctx.signed_in and ctx.is_admin and ctx.user_id == 7

    ctx.sign_out("expired")
    assert ctx.state is SessionState.SIGNED_OUT
    assert ctx.failure == "expired"
    with pytest.raises(RuntimeError):
        ctx.sign_in(profile)


def test_update_profile(client: TestClient):
    token, _ = signup(client, "guest@example.com")
    r = client.put(
        "/api/v1/profiles/me",
        headers=auth_headers(token),
        json={"full_name": " Andres Bonifacio ", "city": "Manila", "avatar_url": "https://cdn.example.com/a.png"},
    )
    assert r.status_code == 200, r.text
    assert r.json()["full_name"] == "Andres Bonifacio"

    r = client.get("/api/v1/profiles/me", headers=auth_headers(token))
    assert r.json()["city"] == "Manila"
    assert r.json()["role"] == "user"


def test_room_inventory(client: TestClient):
    admin_token, _ = admin_login(client)
    room = create_room(client, admin_token, "101", "5000")
    assert room["status"] == "Available"

    r = client.post("/api/v1/rooms", headers=auth_headers(admin_token), json={"room_number": "101", "price_monthly": "100"})
    assert r.status_code == 409, r.text

    user_token, _ = signup(client, "guest@example.com")
    r = client.post("/api/v1/rooms", headers=auth_headers(user_token), json={"room_number": "102", "price_monthly": "100"})
    assert r.status_code == 403, r.text

    r = client.patch(f"/api/v1/rooms/{room['id']}", headers=auth_headers(admin_token), json={"status": "Occupied"})
    assert r.json()["status"] == "Occupied"
    assert client.get("/api/v1/rooms", params={"status": "Available"}).json() == []

    r = client.delete(f"/api/v1/rooms/{room['id']}", headers=auth_headers(admin_token))
    assert r.status_code == 409, r.text

    client.patch(f"/api/v1/rooms/{room['id']}", headers=auth_headers(admin_token), json={"status": "Available"})
    r = client.delete(f"/api/v1/rooms/{room['id']}", headers=auth_headers(admin_token))
    assert r.status_code == 204, r.text
    assert client.get(f"/api/v1/rooms/{room['id']}").status_code == 404


def _notify(client: TestClient, admin_token: str, tenant_token: str) -> list:
    # A decision notification is the simplest way to get something into the inbox
    room = create_room(client, admin_token)
    r = client.post("/api/v1/bookings", headers=auth_headers(tenant_token), json={"room_id": room["id"]})
    booking = r.json()
    client.post(
        f"/api/v1/admin/bookings/{booking['id']}/decision",
        headers=auth_headers(admin_token),
        json={"decision": "decline"},
    )
    return client.get("/api/v1/notifications", headers=auth_headers(tenant_token)).json()


def test_notification_inbox(client: TestClient):
    admin_token, _ = admin_login(client)
    token, _ = signup(client, "guest@example.com")
    notes = _notify(client, admin_token, token)
    assert len(notes) == 1
    assert notes[0]["is_read"] is False

    # Other users cannot touch it
    other_token, _ = signup(client, "other@example.com")
    r = client.post(f"/api/v1/notifications/{notes[0]['id']}/read", headers=auth_headers(other_token))
    assert r.status_code == 404, r.text

    r = client.post(f"/api/v1/notifications/{notes[0]['id']}/read", headers=auth_headers(token))
    assert r.status_code == 200, r.text
    assert r.json()["is_read"] is True
    r = client.get("/api/v1/notifications", params={"unread_only": True}, headers=auth_headers(token))
    assert r.json() == []

    r = client.post("/api/v1/notifications/read-all", headers=auth_headers(token))
    assert r.json() == {"updated": 0}

    r = client.delete(f"/api/v1/notifications/{notes[0]['id']}", headers=auth_headers(token))
    assert r.status_code == 204, r.text
    assert client.get("/api/v1/notifications", headers=auth_headers(token)).json() == []


def test_healthz(client: TestClient):
    assert client.get("/healthz").json() == {"status": "ok"}
