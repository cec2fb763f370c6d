# Shared helpers for the API tests: accounts, rooms and booking requests created over HTTP.
from __future__ import annotations

from typing import Tuple

from fastapi.testclient import TestClient

from boardinghouse.db import SessionLocal
from boardinghouse.manage import create_admin

PASSWORD = "changeme123"


# Convenience header for authenticated requests
def auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


# Create a regular user and return (access_token, user JSON)
def signup(client: TestClient, email: str, full_name: str | None = None) -> Tuple[str, dict]:
    payload = {"email": email, "password": PASSWORD}
    if full_name:
        payload["full_name"] = full_name
    r = client.post("/auth/signup", json=payload)
    assert r.status_code == 201, r.text
    data = r.json()
    return data["access_token"], data["user"]


def login(client: TestClient, email: str, password: str = PASSWORD) -> Tuple[str, dict]:
    r = client.post("/auth/login", json={"email": email, "password": password})
    assert r.status_code == 200, r.text
    data = r.json()
    return data["access_token"], data["user"]


# Seed an admin the way operators do, then log in over HTTP
def admin_login(client: TestClient, email: str = "landlord@example.com") -> Tuple[str, dict]:
    with SessionLocal() as db:
        create_admin(db, email, PASSWORD, full_name="Landlord")
    return login(client, email)


def create_room(client: TestClient, admin_token: str, room_number: str = "101", price="5000") -> dict:
    r = client.post(
        "/api/v1/rooms",
        headers=auth_headers(admin_token),
        json={"room_number": room_number, "price_monthly": price, "capacity": "2 persons"},
    )
    assert r.status_code == 201, r.text
    return r.json()


def create_booking(client: TestClient, token: str, room_id: int) -> dict:
    r = client.post(
        "/api/v1/bookings",
        headers=auth_headers(token),
        json={"room_id": room_id, "check_in": "2026-11-01", "check_out": "2026-12-01", "phone_number": "0917 000 0000"},
    )
    assert r.status_code == 201, r.text
    return r.json()


def confirm_payment(client: TestClient, token: str, booking_id: int, payment_intent_id: str | None, redirect_status: str = "succeeded"):
    return client.post(
        f"/api/v1/bookings/{booking_id}/confirm-payment",
        headers=auth_headers(token),
        json={"payment_intent_id": payment_intent_id, "redirect_status": redirect_status},
    )
