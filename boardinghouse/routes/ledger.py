# Payment ledger endpoints.
# Admins review, record and correct payments; users see their own payment history.
from datetime import date, datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from ..db import get_db
from .. import models, schemas
from ..payments import ledger_currency
from ..rate_limit import rate_limit
from .auth import AuthContext, require_admin, require_user

router = APIRouter()


@router.get("/payments/me", response_model=List[schemas.PaymentRead])
def list_my_payments(
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_user),
) -> List[models.Payment]:
    return (
        db.query(models.Payment)
        .join(models.Tenant, models.Tenant.id == models.Payment.tenant_id)
        .filter(models.Tenant.profile_id == ctx.user_id)
        .order_by(models.Payment.payment_date.desc(), models.Payment.id.desc())
        .all()
    )


@router.get("/admin/payments", response_model=List[schemas.PaymentRead])
def list_payments(
    status_filter: Optional[models.PaymentStatus] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_admin),
) -> List[models.Payment]:
    q = db.query(models.Payment)
    if status_filter is not None:
        q = q.filter(models.Payment.payment_status == status_filter)
    return q.order_by(models.Payment.payment_date.desc(), models.Payment.id.desc()).all()


@router.post(
    "/admin/payments",
    response_model=schemas.PaymentRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("write"))],
)
def record_manual_payment(
    payload: schemas.PaymentCreate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_admin),
) -> models.Payment:
    """Cash or bank payments taken outside the card processor."""
    tenant = db.get(models.Tenant, payload.tenant_id)
    if tenant is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tenant not found")

    paid = payload.payment_status is models.PaymentStatus.PAID
    obj = models.Payment(
        tenant_id=tenant.id,
        room_id=tenant.room_id,
        recorded_by=ctx.user_id,
        payment_date=payload.payment_date or date.today(),
        amount=payload.amount,
        currency=ledger_currency(),
        payment_status=payload.payment_status,
        reference_no=payload.reference_no,
        payment_method=payload.payment_method,
        paid_at=datetime.now(timezone.utc) if paid else None,
        notes=payload.notes,
    )
    db.add(obj)
    db.commit()
    db.refresh(obj)
    return obj


@router.patch(
    "/admin/payments/{payment_id}",
    response_model=schemas.PaymentRead,
    dependencies=[Depends(rate_limit("write"))],
)
def update_payment_status(
    payment_id: int,
    payload: schemas.PaymentStatusUpdate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_admin),
) -> models.Payment:
    obj = db.get(models.Payment, payment_id)
    if obj is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Payment not found")

    obj.payment_status = payload.payment_status
    if payload.payment_status is models.PaymentStatus.PAID and obj.paid_at is None:
        obj.paid_at = datetime.now(timezone.utc)
    db.add(obj)
    db.commit()
    db.refresh(obj)
    return obj
