# Payment return channel: the two ways a payer comes back after confirming a PaymentIntent.
# - direct: the client POSTs the confirmed intent id
# - redirect: the processor sends the browser to /payment-success/{booking_id}?payment_intent=...&redirect_status=...
# Both run the same idempotent reconciliation, so reloading the success page is harmless.
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..db import get_db
from .. import schemas
from ..errors import BoardingHouseError
from ..locks import hold_or_busy, reconciliation_lock_key
from ..reconciliation import reconcile_payment
from .auth import AuthContext, require_user

router = APIRouter()


def _confirm(
    db: Session,
    ctx: AuthContext,
    booking_id: int,
    payment_intent_id: Optional[str],
    redirect_status: Optional[str],
) -> schemas.ReconciliationRead:
    lock_key = reconciliation_lock_key(payment_intent_id or f"booking:{booking_id}")
    with hold_or_busy(lock_key, ttl_ms=15000):
        try:
            report = reconcile_payment(db, ctx, booking_id, payment_intent_id, redirect_status)
        except BoardingHouseError as exc:
            raise exc.to_http() from exc
    return schemas.ReconciliationRead(
        booking_id=report.booking_id,
        payment_id=report.payment_id,
        tenant_id=report.tenant_id,
        replayed=report.replayed,
        warnings=report.warnings,
    )


@router.post("/api/v1/bookings/{booking_id}/confirm-payment", response_model=schemas.ReconciliationRead)
def confirm_payment(
    booking_id: int,
    payload: schemas.PaymentConfirmRequest,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_user),
) -> schemas.ReconciliationRead:
    return _confirm(db, ctx, booking_id, payload.payment_intent_id, payload.redirect_status)


@router.get("/payment-success/{booking_id}", response_model=schemas.ReconciliationRead)
def payment_success(
    booking_id: int,
    payment_intent: Optional[str] = Query(None, max_length=255),
    redirect_status: Optional[str] = Query(None, max_length=30),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_user),
) -> schemas.ReconciliationRead:
    return _confirm(db, ctx, booking_id, payment_intent, redirect_status)
