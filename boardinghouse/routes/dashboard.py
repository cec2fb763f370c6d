# Admin dashboard: occupancy and income summary plus a short recent-activity feed.
from datetime import date
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..db import get_db
from .. import models, schemas
from .auth import AuthContext, require_admin

router = APIRouter()

RECENT_ITEMS = 2


def _sum_paid(db: Session, since: Optional[date] = None) -> Decimal:
    q = db.query(func.coalesce(func.sum(models.Payment.amount), 0)).filter(
        models.Payment.payment_status == models.PaymentStatus.PAID
    )
    if since is not None:
        q = q.filter(models.Payment.payment_date >= since)
    return Decimal(str(q.scalar() or 0))


def _recent_activity(db: Session) -> List[schemas.ActivityItem]:
    items: List[schemas.ActivityItem] = []
    payments = (
        db.query(models.Payment)
        .filter(models.Payment.payment_status == models.PaymentStatus.PAID)
        .order_by(models.Payment.created_at.desc(), models.Payment.id.desc())
        .limit(RECENT_ITEMS)
        .all()
    )
    for p in payments:
        who = p.tenant.tenant_name if p.tenant else "Someone"
        room = p.room.room_number if p.room else "?"
        items.append(schemas.ActivityItem(id=f"payment-{p.id}", title=f"{who} paid for Room {room}", at=p.created_at, type="payment"))

    tenants = (
        db.query(models.Tenant)
        .order_by(models.Tenant.created_at.desc(), models.Tenant.id.desc())
        .limit(RECENT_ITEMS)
        .all()
    )
    for t in tenants:
        items.append(schemas.ActivityItem(id=f"tenant-{t.id}", title=f"New tenant registered - {t.tenant_name}", at=t.created_at, type="tenant"))
    return items


@router.get("/admin/dashboard", response_model=schemas.DashboardRead)
def dashboard(
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_admin),
) -> schemas.DashboardRead:
    counts = dict(
        db.query(models.Room.status, func.count(models.Room.id)).group_by(models.Room.status).all()
    )
    month_start = date.today().replace(day=1)

    return schemas.DashboardRead(
        total_rooms=sum(counts.values()),
        available_rooms=counts.get(models.RoomStatus.AVAILABLE, 0),
        occupied_rooms=counts.get(models.RoomStatus.OCCUPIED, 0),
        reserved_rooms=counts.get(models.RoomStatus.RESERVED, 0),
        total_income=_sum_paid(db),
        monthly_income=_sum_paid(db, since=month_start),
        pending_approvals=db.query(models.BookingRequest)
        .filter(models.BookingRequest.status == models.BookingStatus.PENDING)
        .count(),
        pending_payments=db.query(models.Payment)
        .filter(models.Payment.payment_status == models.PaymentStatus.PENDING)
        .count(),
        recent_activity=_recent_activity(db),
    )
