# Room inventory endpoints.
# Anyone can browse rooms; only admins create, edit and delete them.
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..db import get_db
from .. import models, schemas
from .auth import AuthContext, require_admin
from ..rate_limit import rate_limit

router = APIRouter()


def get_room_or_404(db: Session, room_id: int) -> models.Room:
    room = db.get(models.Room, room_id)
    if not room:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Room not found")
    return room


@router.get("/rooms", response_model=List[schemas.RoomRead])
def list_rooms(
    status_filter: Optional[models.RoomStatus] = Query(None, alias="status"),
    db: Session = Depends(get_db),
) -> List[models.Room]:
    """
    List rooms ordered by room number.

    The room selection page passes ?status=Available; the admin inventory omits it.
    """
    q = db.query(models.Room)
    if status_filter is not None:
        q = q.filter(models.Room.status == status_filter)
    return q.order_by(models.Room.room_number.asc()).all()


@router.get("/rooms/{room_id}", response_model=schemas.RoomRead)
def get_room(room_id: int, db: Session = Depends(get_db)) -> models.Room:
    return get_room_or_404(db, room_id)


@router.post(
    "/rooms",
    response_model=schemas.RoomRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("write"))],
)
def create_room(
    payload: schemas.RoomCreate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_admin),
) -> models.Room:
    obj = models.Room(
        room_number=payload.room_number,
        capacity=payload.capacity,
        rental_term=payload.rental_term,
        price_monthly=payload.price_monthly,
        description=payload.description,
        status=payload.status,
        image_urls=list(payload.image_urls),
        created_by=ctx.user_id,
    )
    db.add(obj)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Room number already exists")
    db.refresh(obj)
    return obj


@router.patch(
    "/rooms/{room_id}",
    response_model=schemas.RoomRead,
    dependencies=[Depends(rate_limit("write"))],
)
def update_room(
    room_id: int,
    payload: schemas.RoomUpdate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_admin),
) -> models.Room:
    obj = get_room_or_404(db, room_id)
    for key, value in payload.model_dump(exclude_unset=True).items():
        if value is None:
            continue
        setattr(obj, key, value)
    db.add(obj)
    db.commit()
    db.refresh(obj)
    return obj


@router.delete(
    "/rooms/{room_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(rate_limit("write"))],
)
def delete_room(
    room_id: int,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_admin),
) -> None:
    obj = get_room_or_404(db, room_id)
    if obj.status is models.RoomStatus.OCCUPIED:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Room is occupied")
    db.delete(obj)
    try:
        db.commit()
    except IntegrityError:
        # Bookings, tenancies or payments still reference it
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Room has booking or payment history")
