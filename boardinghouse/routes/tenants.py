# Admin tenant management: list occupancies, end a tenancy, send rent reminders.
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from ..db import get_db
from .. import models, schemas
from ..notifications import LANDLORD, TENANCY_TERMINATED, add_notification
from ..rate_limit import rate_limit
from .auth import AuthContext, require_admin

router = APIRouter()


def _get_tenant_or_404(db: Session, tenant_id: int) -> models.Tenant:
    tenant = db.get(models.Tenant, tenant_id)
    if tenant is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tenant not found")
    return tenant


def remove_tenant(db: Session, tenant_id: int) -> models.Tenant:
    """
    End a tenancy: tenant -> Inactive, room -> Available, and tell the tenant.

    Payment history is kept as is. Removing an already inactive tenant changes nothing.
    """
    tenant = _get_tenant_or_404(db, tenant_id)
    if tenant.status is models.TenantStatus.INACTIVE:
        return tenant

    tenant.status = models.TenantStatus.INACTIVE
    room = db.get(models.Room, tenant.room_id)
    if room is not None:
        room.status = models.RoomStatus.AVAILABLE
    add_notification(
        db,
        user_id=tenant.profile_id,
        from_user=LANDLORD,
        message=TENANCY_TERMINATED,
        type=models.NotificationType.MAINTENANCE,
    )
    db.commit()
    db.refresh(tenant)
    return tenant


@router.get("/admin/tenants", response_model=List[schemas.TenantRead])
def list_tenants(
    status_filter: Optional[models.TenantStatus] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_admin),
) -> List[models.Tenant]:
    q = db.query(models.Tenant)
    if status_filter is not None:
        q = q.filter(models.Tenant.status == status_filter)
    return q.order_by(models.Tenant.created_at.desc(), models.Tenant.id.desc()).all()


@router.delete(
    "/admin/tenants/{tenant_id}",
    response_model=schemas.TenantRead,
    dependencies=[Depends(rate_limit("write"))],
)
def remove_tenant_endpoint(
    tenant_id: int,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_admin),
) -> models.Tenant:
    try:
        return remove_tenant(db, tenant_id)
    except HTTPException:
        raise
    except Exception as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to remove tenant: {exc}")


@router.post(
    "/admin/tenants/{tenant_id}/reminder",
    response_model=schemas.NotificationRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("write"))],
)
def send_reminder(
    tenant_id: int,
    payload: schemas.ReminderCreate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_admin),
) -> models.Notification:
    tenant = _get_tenant_or_404(db, tenant_id)
    obj = add_notification(
        db,
        user_id=tenant.profile_id,
        from_user=LANDLORD,
        message=payload.message,
        type=models.NotificationType.REMINDER,
    )
    db.commit()
    db.refresh(obj)
    return obj
