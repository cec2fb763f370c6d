# Notification inbox for the signed-in user.
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from ..db import get_db
from .. import models, schemas
from .auth import AuthContext, require_user

router = APIRouter()


def _own_notification(db: Session, ctx: AuthContext, notification_id: int) -> models.Notification:
    obj = db.get(models.Notification, notification_id)
    if obj is None or obj.user_id != ctx.user_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    return obj


@router.get("/notifications", response_model=List[schemas.NotificationRead])
def list_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_user),
) -> List[models.Notification]:
    """Newest first."""
    q = db.query(models.Notification).filter(models.Notification.user_id == ctx.user_id)
    if unread_only:
        q = q.filter(models.Notification.is_read.is_(False))
    return q.order_by(models.Notification.created_at.desc(), models.Notification.id.desc()).limit(limit).all()


# Declared before /{notification_id}/read so "read-all" is not parsed as an id
@router.post("/notifications/read-all")
def mark_all_read(
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_user),
) -> dict:
    updated = (
        db.query(models.Notification)
        .filter(models.Notification.user_id == ctx.user_id, models.Notification.is_read.is_(False))
        .update({models.Notification.is_read: True}, synchronize_session=False)
    )
    db.commit()
    return {"updated": updated}


@router.post("/notifications/{notification_id}/read", response_model=schemas.NotificationRead)
def mark_read(
    notification_id: int,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_user),
) -> models.Notification:
    obj = _own_notification(db, ctx, notification_id)
    obj.is_read = True
    db.commit()
    db.refresh(obj)
    return obj


@router.delete("/notifications/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_notification(
    notification_id: int,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_user),
) -> None:
    obj = _own_notification(db, ctx, notification_id)
    db.delete(obj)
    db.commit()
