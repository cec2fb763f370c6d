# Payment reconciliation: end state after a succeeded payment, idempotent replays,
# fatal vs best-effort step failures, ownership checks, and the approve-first path.
from __future__ import annotations

from decimal import Decimal

from fastapi.testclient import TestClient

from boardinghouse import models, reconciliation
from boardinghouse.db import SessionLocal

from helpers import admin_login, auth_headers, confirm_payment, create_booking, create_room, signup


def _counts() -> dict:
    with SessionLocal() as db:
        return {
            "tenants": db.query(models.Tenant).count(),
            "payments": db.query(models.Payment).count(),
            "transactions": db.query(models.PaymentTransaction).count(),
            "notifications": db.query(models.Notification).count(),
        }


def _state(booking_id: int, room_id: int) -> tuple:
    with SessionLocal() as db:
        booking = db.get(models.BookingRequest, booking_id)
        room = db.get(models.Room, room_id)
        return booking.status, room.status


def _setup(client: TestClient, price="5000"):
    admin_token, _ = admin_login(client)
    room = create_room(client, admin_token, "101", price)
    token, user = signup(client, "juan@example.com", "Juan Dela Cruz")
    booking = create_booking(client, token, room["id"])
    return admin_token, token, user, room, booking


# Happy path: one Active tenant, one Paid payment for the room price, Approved booking, Occupied room, one notification
def test_payment_reconciles_booking(client: TestClient):
    _, token, user, room, booking = _setup(client)

    r = confirm_payment(client, token, booking["id"], "pi_123")
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["replayed"] is False
    assert body["warnings"] == []

    with SessionLocal() as db:
        tenants = db.query(models.Tenant).all()
        assert len(tenants) == 1
        assert tenants[0].status is models.TenantStatus.ACTIVE
        assert tenants[0].profile_id == user["id"]
        assert tenants[0].tenant_name == "Juan Dela Cruz"

        payment = db.query(models.Payment).one()
        assert payment.amount == Decimal("5000")
        assert payment.payment_status is models.PaymentStatus.PAID
        assert payment.reference_no == "pi_123"
        assert payment.stripe_payment_intent_id == "pi_123"
        assert payment.tenant_id == tenants[0].id
        assert payment.currency == "PHP"
        assert body["payment_id"] == payment.id

        txn = db.query(models.PaymentTransaction).one()
        assert txn.booking_id == booking["id"]
        assert txn.status == "succeeded"

        notes = db.query(models.Notification).filter(models.Notification.user_id == user["id"]).all()
        assert len(notes) == 1
        assert notes[0].type is models.NotificationType.PAYMENT
        assert notes[0].from_user == "System"
        assert notes[0].message == (
            "Your payment for Room 101 has been confirmed. Amount: ₱5,000. Your booking is now approved!"
        )

    assert _state(booking["id"], room["id"]) == (models.BookingStatus.APPROVED, models.RoomStatus.OCCUPIED)


# Reloading the success page (same intent id) changes nothing
def test_replay_with_same_intent_is_a_no_op(client: TestClient):
    _, token, _, _, booking = _setup(client)

    first = confirm_payment(client, token, booking["id"], "pi_123")
    assert first.status_code == 200, first.text
    before = _counts()

    again = confirm_payment(client, token, booking["id"], "pi_123")
    assert again.status_code == 200, again.text
    assert again.json()["replayed"] is True
    assert again.json()["payment_id"] == first.json()["payment_id"]
    assert _counts() == before


# The redirect return channel runs the same reconciliation
def test_redirect_return_channel(client: TestClient):
    _, token, _, room, booking = _setup(client)

    r = client.get(
        f"/payment-success/{booking['id']}",
        params={"payment_intent": "pi_redirect", "redirect_status": "succeeded"},
        headers=auth_headers(token),
    )
    assert r.status_code == 200, r.text
    assert _counts()["payments"] == 1
    assert _state(booking["id"], room["id"]) == (models.BookingStatus.APPROVED, models.RoomStatus.OCCUPIED)

    # Redirect and direct confirmation of the same intent share one payment
    r = confirm_payment(client, token, booking["id"], "pi_redirect")
    assert r.json()["replayed"] is True
    assert _counts()["payments"] == 1


# An existing Active tenant for the same user and room is reused
def test_existing_active_tenant_is_reused(client: TestClient):
    _, token, user, room, booking = _setup(client)
    with SessionLocal() as db:
        tenant = models.Tenant(
            room_id=room["id"],
            profile_id=user["id"],
            tenant_name="Juan",
            status=models.TenantStatus.ACTIVE,
        )
        db.add(tenant)
        db.commit()
        tenant_id = tenant.id

    r = confirm_payment(client, token, booking["id"], "pi_123")
    assert r.status_code == 200, r.text
    assert r.json()["tenant_id"] == tenant_id
    assert _counts()["tenants"] == 1


# A failed payment insert aborts: nothing is written and the payer is told not to pay again
def test_payment_record_failure_is_fatal(client: TestClient, monkeypatch):
    _, token, _, room, booking = _setup(client)

    def broken(db, st):
        raise RuntimeError("disk full")

    monkeypatch.setattr(reconciliation, "record_payment", broken)

    r = confirm_payment(client, token, booking["id"], "pi_123")
    assert r.status_code == 500, r.text
    detail = r.json()["detail"]
    assert detail["kind"] == "fatal_persistence"
    assert "do not pay again" in detail["error"]
    assert "contact_support" in detail["actions"]

    assert _counts() == {"tenants": 0, "payments": 0, "transactions": 0, "notifications": 0}
    assert _state(booking["id"], room["id"]) == (models.BookingStatus.PENDING, models.RoomStatus.AVAILABLE)


def test_tenant_failure_is_fatal(client: TestClient, monkeypatch):
    _, token, _, room, booking = _setup(client)

    def broken(db, st):
        raise RuntimeError("constraint violated")

    monkeypatch.setattr(reconciliation, "resolve_tenant", broken)

    r = confirm_payment(client, token, booking["id"], "pi_123")
    assert r.status_code == 500, r.text
    assert r.json()["detail"]["error"] == "Tenant creation failed"
    assert _counts()["payments"] == 0


# A best-effort failure is reported as a warning; the payment and later steps still land
def test_room_update_failure_is_best_effort(client: TestClient, monkeypatch):
    _, token, user, room, booking = _setup(client)

    def broken(db, st):
        raise RuntimeError("room write failed")

    monkeypatch.setattr(reconciliation, "occupy_room", broken)

    r = confirm_payment(client, token, booking["id"], "pi_123")
    assert r.status_code == 200, r.text
    assert r.json()["warnings"] == [
        {
            "step": "occupy_room",
            "error": "room write failed",
            "kind": "best_effort_persistence",
            "actions": ["view_bookings"],
        }
    ]

    counts = _counts()
    assert counts["payments"] == 1
    assert counts["notifications"] == 1
    assert _state(booking["id"], room["id"]) == (models.BookingStatus.APPROVED, models.RoomStatus.AVAILABLE)


# Someone else's booking looks exactly like a missing one
def test_foreign_booking_is_not_found(client: TestClient):
    _, _, _, _, booking = _setup(client)
    other_token, _ = signup(client, "other@example.com")

    r = confirm_payment(client, other_token, booking["id"], "pi_123")
    assert r.status_code == 404, r.text
    assert r.json()["detail"]["error"] == "Booking not found"
    assert _counts()["payments"] == 0

    r = confirm_payment(client, other_token, 9999, "pi_456")
    assert r.status_code == 404, r.text


def test_requires_sign_in(client: TestClient):
    _, _, _, _, booking = _setup(client)
    r = client.post(f"/api/v1/bookings/{booking['id']}/confirm-payment", json={"payment_intent_id": "pi_1"})
    assert r.status_code == 401, r.text


# A failed or pending redirect never touches the store
def test_unsuccessful_redirect_status_writes_nothing(client: TestClient):
    _, token, _, room, booking = _setup(client)

    r = confirm_payment(client, token, booking["id"], "pi_123", redirect_status="failed")
    assert r.status_code == 402, r.text
    assert r.json()["detail"]["kind"] == "processor"
    assert _counts()["payments"] == 0
    assert _state(booking["id"], room["id"]) == (models.BookingStatus.PENDING, models.RoomStatus.AVAILABLE)


# Without an intent id the payment is still recorded under a generated reference, but no audit row is written
def test_missing_intent_id_uses_generated_reference(client: TestClient):
    _, token, _, _, booking = _setup(client)

    r = confirm_payment(client, token, booking["id"], None)
    assert r.status_code == 200, r.text
    with SessionLocal() as db:
        payment = db.query(models.Payment).one()
        assert payment.reference_no.startswith("ref_")
        assert payment.stripe_payment_intent_id is None
        assert db.query(models.PaymentTransaction).count() == 0


# Approve first, pay later: same end state, tenant reused, booking stays Approved
def test_admin_approval_then_payment(client: TestClient):
    admin_token, token, _, room, booking = _setup(client)

    r = client.post(
        f"/api/v1/admin/bookings/{booking['id']}/decision",
        headers=auth_headers(admin_token),
        json={"decision": "approve", "message": "Welcome!"},
    )
    assert r.status_code == 200, r.text
    tenant_count = _counts()["tenants"]
    assert tenant_count == 1

    r = confirm_payment(client, token, booking["id"], "pi_123")
    assert r.status_code == 200, r.text
    assert r.json()["warnings"] == []

    counts = _counts()
    assert counts["tenants"] == 1
    assert counts["payments"] == 1
    # booking decision + payment confirmation
    assert counts["notifications"] == 2
    assert _state(booking["id"], room["id"]) == (models.BookingStatus.APPROVED, models.RoomStatus.OCCUPIED)


# Paying for a declined booking still records the charge; the illegal status change is only a warning
def test_payment_for_declined_booking_is_recorded(client: TestClient):
    admin_token, token, _, room, booking = _setup(client)
    r = client.post(
        f"/api/v1/admin/bookings/{booking['id']}/decision",
        headers=auth_headers(admin_token),
        json={"decision": "decline"},
    )
    assert r.status_code == 200, r.text

    r = confirm_payment(client, token, booking["id"], "pi_123")
    assert r.status_code == 200, r.text
    warnings = r.json()["warnings"]
    assert [w["step"] for w in warnings] == ["approve_booking"]
    assert warnings[0]["kind"] == "best_effort_persistence"
    assert "Declined" in warnings[0]["error"]
    assert _counts()["payments"] == 1
    assert _state(booking["id"], room["id"])[0] is models.BookingStatus.DECLINED


# A processing payment may still be charged, so the payer is pointed at their bookings, not at paying again
def test_processing_redirect_status_is_not_called_a_failure(client: TestClient):
    _, token, _, _, booking = _setup(client)

    r = confirm_payment(client, token, booking["id"], "pi_123", redirect_status="processing")
    assert r.status_code == 402, r.text
    detail = r.json()["detail"]
    assert "still processing" in detail["error"]
    assert "not been charged" not in detail["error"]
    assert detail["actions"] == ["view_bookings"]
    assert _counts()["payments"] == 0


# Two runs for one intent that both pass the existence check: the unique intent id turns the second into a replay
def test_concurrent_duplicate_payment_becomes_replay(client: TestClient, monkeypatch):
    _, token, _, _, booking = _setup(client)

    first = confirm_payment(client, token, booking["id"], "pi_1")
    assert first.status_code == 200, first.text

    monkeypatch.setattr(reconciliation, "check_idempotency", lambda db, st: reconciliation.StepOutcome.CONTINUE)
    again = confirm_payment(client, token, booking["id"], "pi_1")
    assert again.status_code == 200, again.text
    assert again.json()["replayed"] is True
    assert again.json()["payment_id"] == first.json()["payment_id"]

    counts = _counts()
    assert counts["payments"] == 1
    assert counts["notifications"] == 1
    assert counts["transactions"] == 1


# The tenant lookup misses a row another run just inserted; the insert conflicts and the winner is reused
def test_concurrently_created_tenant_is_reused(client: TestClient, monkeypatch):
    _, token, user, room, booking = _setup(client)
    with SessionLocal() as db:
        tenant = models.Tenant(
            room_id=room["id"], profile_id=user["id"], tenant_name="Juan", status=models.TenantStatus.ACTIVE
        )
        db.add(tenant)
        db.commit()
        tenant_id = tenant.id

    lookup = reconciliation._find_active_tenant
    calls: list = []

    def stale_first_lookup(db, profile_id, room_id):
        calls.append(room_id)
        if len(calls) == 1:
            return None
        return lookup(db, profile_id, room_id)

    monkeypatch.setattr(reconciliation, "_find_active_tenant", stale_first_lookup)

    r = confirm_payment(client, token, booking["id"], "pi_123")
    assert r.status_code == 200, r.text
    assert r.json()["tenant_id"] == tenant_id
    assert len(calls) == 2

    counts = _counts()
    assert counts["tenants"] == 1
    assert counts["payments"] == 1


# Another user's Active tenancy holds the room: no second Active tenant, and the charge is reported as unrecorded
def test_room_held_by_another_active_tenant(client: TestClient):
    _, token, _, room, booking = _setup(client)
    with SessionLocal() as db:
        other = models.Profile(email="holder@example.com", password_hash="x")
        db.add(other)
        db.commit()
        db.add(models.Tenant(room_id=room["id"], profile_id=other.id, tenant_name="Holder", status=models.TenantStatus.ACTIVE))
        db.commit()

    r = confirm_payment(client, token, booking["id"], "pi_123")
    assert r.status_code == 500, r.text
    assert r.json()["detail"]["error"] == "Tenant creation failed"

    counts = _counts()
    assert counts["tenants"] == 1
    assert counts["payments"] == 0
