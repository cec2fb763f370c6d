# Payment intent endpoint: amount conversion, validation before the processor call, and method handling.
from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from boardinghouse import payments
from boardinghouse.errors import InvalidInputError
from boardinghouse.payments import IssuedIntent, to_minor_units


@pytest.fixture()
def issued(monkeypatch) -> list:
    """Replace the processor call with a recorder; returns the list of calls."""
    calls: list = []

    def fake_issue(amount_minor: int, currency: str, metadata: dict) -> IssuedIntent:
        calls.append({"amount": amount_minor, "currency": currency, "metadata": metadata})
        return IssuedIntent(client_secret="pi_abc_secret_xyz", payment_intent_id="pi_abc")

    monkeypatch.setattr(payments, "_issue_intent", fake_issue)
    return calls


@pytest.mark.parametrize(
    "amount, minor",
    [
        (1500.5, 150050),
        (1500.005, 150001),
        (1500.004, 150000),
        (5000, 500000),
        ("2500.75", 250075),
    ],
)
def test_amount_is_converted_to_minor_units(client: TestClient, issued: list, amount, minor: int):
    r = client.post("/api/create-payment-intent", json={"amount": amount, "bookingId": 42})
    assert r.status_code == 200, r.text
    assert r.json() == {"clientSecret": "pi_abc_secret_xyz", "paymentIntentId": "pi_abc"}

    assert len(issued) == 1
    assert issued[0]["amount"] == minor
    assert issued[0]["currency"] == "php"
    assert issued[0]["metadata"] == {"bookingId": "42"}


# Without a booking id the metadata still carries a placeholder
def test_missing_booking_id_uses_placeholder(client: TestClient, issued: list):
    r = client.post("/api/create-payment-intent", json={"amount": 100})
    assert r.status_code == 200, r.text
    assert issued[0]["metadata"] == {"bookingId": "N/A"}


@pytest.mark.parametrize("body", [{"amount": 0}, {"amount": -5}, {}, {"amount": "abc"}, {"amount": None}, {"amount": 0.001}])
def test_invalid_amount_rejected_before_processor(client: TestClient, issued: list, body: dict):
    r = client.post("/api/create-payment-intent", json=body)
    assert r.status_code == 400, r.text
    assert r.json() == {"error": "Invalid amount"}
    assert issued == []


# A processor failure surfaces its message in the same {"error": ...} shape
def test_processor_failure_is_reported(client: TestClient, monkeypatch):
    def boom(amount_minor: int, currency: str, metadata: dict) -> IssuedIntent:
        raise RuntimeError("card network unavailable")

    monkeypatch.setattr(payments, "_issue_intent", boom)
    r = client.post("/api/create-payment-intent", json={"amount": 1500})
    assert r.status_code == 502, r.text
    assert r.json() == {"error": "card network unavailable"}


# Offline mode issues synthetic test intents
def test_offline_intent_shape(client: TestClient):
    r = client.post("/api/create-payment-intent", json={"amount": 1500, "bookingId": "7"})
    assert r.status_code == 200, r.text
    data = r.json()
    assert data["paymentIntentId"].startswith("pi_test_")
    assert data["clientSecret"].startswith(data["paymentIntentId"] + "_secret")


def test_preflight_and_wrong_methods(client: TestClient, issued: list):
    r = client.options("/api/create-payment-intent")
    assert r.status_code == 204
    assert r.text == ""

    # A real browser preflight is answered by the CORS layer, still empty and 204
    r = client.options(
        "/api/create-payment-intent",
        headers={"Origin": "https://shop.example", "Access-Control-Request-Method": "POST"},
    )
    assert r.status_code == 204, r.text
    assert r.text == ""
    assert r.headers["access-control-allow-origin"] == "*"
    assert "POST" in r.headers["access-control-allow-methods"]

    for method in ("get", "put", "delete"):
        r = getattr(client, method)("/api/create-payment-intent")
        assert r.status_code == 405, method
        assert r.json() == {"error": "Method not allowed"}
    assert issued == []


def test_client_config_never_exposes_secret(client: TestClient):
    r = client.get("/api/config")
    assert r.status_code == 200
    assert set(r.json()) == {"publishableKey", "currency"}


def test_to_minor_units_rounds_half_up():
    assert to_minor_units("1500.005") == 150001
    assert to_minor_units("0.004") == 0
    with pytest.raises(InvalidInputError):
        to_minor_units("not-a-number")
