# Booking request endpoints: users request, update and cancel; admins approve or decline.
# Admin approval is the "approve first, pay later" path. It lands on the same end state as
# payment reconciliation (Active tenant, Occupied room, Approved booking), so either may run first.
from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..db import get_db
from .. import models, schemas
from ..errors import BoardingHouseError, BookingNotFoundError, InvalidTransitionError
from ..locks import hold_or_busy, room_lock_key
from ..notifications import LANDLORD, add_notification, booking_decision_message
from ..rate_limit import rate_limit
from .auth import AuthContext, require_admin, require_user

router = APIRouter()


def _booking_message(payload: schemas.BookingCreate) -> str:
    return f"Check-in: {payload.check_in or '-'}, Check-out: {payload.check_out or '-'}. Contact: {payload.phone_number or '-'}"


def _get_visible_booking(db: Session, ctx: AuthContext, booking_id: int) -> models.BookingRequest:
    booking = db.get(models.BookingRequest, booking_id)
    if booking is None or (booking.requestor != ctx.user_id and not ctx.is_admin):
        raise BookingNotFoundError()
    return booking


def _transition(booking: models.BookingRequest, target: models.BookingStatus) -> None:
    if not models.booking_transition_allowed(booking.status, target):
        raise InvalidTransitionError(
            f"Only pending bookings can be {target.value.lower()}; this booking is {booking.status.value}"
            if booking.status is not models.BookingStatus.APPROVED
            else f"Approved bookings cannot be {target.value.lower()}"
        )
    booking.status = target


def decide_booking(
    db: Session,
    ctx: AuthContext,
    booking_id: int,
    decision: schemas.BookingDecision,
) -> models.BookingRequest:
    """
    Approve or decline a pending booking request in a single transaction.

    Approve: reuse or create the Active tenant for (requestor, room), mark the room
    Occupied, notify the requestor. Decline: notify the requestor. Both record the
    decision message, decider and time on the booking.
    """
    booking = db.get(models.BookingRequest, booking_id)
    if booking is None:
        raise BookingNotFoundError()
    if booking.status is not models.BookingStatus.PENDING:
        raise InvalidTransitionError(f"Only pending bookings can be decided; this booking is {booking.status.value}")

    room = booking.room
    approved = decision.decision == "approve"
    now = datetime.now(timezone.utc)

    if approved:
        tenant = (
            db.query(models.Tenant)
            .filter(
                models.Tenant.profile_id == booking.requestor,
                models.Tenant.room_id == booking.room_id,
                models.Tenant.status == models.TenantStatus.ACTIVE,
            )
            .first()
        )
        if tenant is None:
            requestor = db.get(models.Profile, booking.requestor)
            rent_start = decision.rent_start or booking.check_in
            db.add(
                models.Tenant(
                    room_id=booking.room_id,
                    profile_id=booking.requestor,
                    tenant_name=(requestor.full_name if requestor else None) or booking.contact_name or "Unknown",
                    move_in_date=rent_start,
                    rent_start=rent_start,
                    rent_due=decision.rent_due or booking.check_out,
                    status=models.TenantStatus.ACTIVE,
                )
            )
        room.status = models.RoomStatus.OCCUPIED
        _transition(booking, models.BookingStatus.APPROVED)
    else:
        _transition(booking, models.BookingStatus.DECLINED)

    add_notification(
        db,
        user_id=booking.requestor,
        from_user=LANDLORD,
        message=booking_decision_message(room.room_number if room else None, approved, decision.message),
        type=models.NotificationType.BOOKING,
    )
    booking.message = decision.message
    booking.decided_by = ctx.user_id
    booking.decided_at = now
    db.add(booking)
    db.commit()
    db.refresh(booking)
    return booking


def cancel_booking(db: Session, ctx: AuthContext, booking_id: int) -> models.BookingRequest:
    """
    Cancel a pending or approved booking. Cancelling twice is a no-op.

    Room status is left as it is; see DESIGN.md for why cancellation does not release rooms.
    """
    booking = _get_visible_booking(db, ctx, booking_id)
    if booking.status is models.BookingStatus.CANCELLED:
        return booking
    _transition(booking, models.BookingStatus.CANCELLED)
    booking.decided_at = datetime.now(timezone.utc)
    db.add(booking)
    db.commit()
    db.refresh(booking)
    return booking


# ----------------
# User routes
# ----------------
@router.post(
    "/bookings",
    response_model=schemas.BookingRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("write"))],
)
def create_booking(
    payload: schemas.BookingCreate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_user),
) -> models.BookingRequest:
    room = db.get(models.Room, payload.room_id)
    if not room:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Room not found")
    if room.status is not models.RoomStatus.AVAILABLE:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Room is not available")

    obj = models.BookingRequest(
        room_id=room.id,
        requestor=ctx.user_id,
        status=models.BookingStatus.PENDING,
        check_in=payload.check_in,
        check_out=payload.check_out,
        contact_phone=payload.phone_number,
        message=_booking_message(payload),
    )
    try:
        db.add(obj)
        db.commit()
    except Exception as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to create booking: {exc}")
    db.refresh(obj)
    return obj


@router.get("/bookings/me", response_model=List[schemas.BookingRead])
def list_my_bookings(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_user),
) -> List[models.BookingRequest]:
    return (
        db.query(models.BookingRequest)
        .filter(models.BookingRequest.requestor == ctx.user_id)
        .order_by(models.BookingRequest.created_at.desc(), models.BookingRequest.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )


@router.get("/bookings/{booking_id}", response_model=schemas.BookingRead)
def get_booking(
    booking_id: int,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_user),
) -> models.BookingRequest:
    try:
        return _get_visible_booking(db, ctx, booking_id)
    except BoardingHouseError as exc:
        raise exc.to_http() from exc


@router.put(
    "/bookings/{booking_id}/contact",
    response_model=schemas.BookingRead,
    dependencies=[Depends(rate_limit("write"))],
)
def update_booking_contact(
    booking_id: int,
    payload: schemas.BookingContactUpdate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_user),
) -> models.BookingRequest:
    """Checkout step: store the payer's contact details on the booking before payment."""
    try:
        booking = _get_visible_booking(db, ctx, booking_id)
    except BoardingHouseError as exc:
        raise exc.to_http() from exc
    if booking.status not in (models.BookingStatus.PENDING, models.BookingStatus.APPROVED):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Booking is no longer open")

    for key, value in payload.model_dump().items():
        setattr(booking, key, value)
    db.add(booking)
    db.commit()
    db.refresh(booking)
    return booking


@router.delete(
    "/bookings/{booking_id}",
    response_model=schemas.BookingRead,
    dependencies=[Depends(rate_limit("write"))],
)
def cancel_booking_endpoint(
    booking_id: int,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_user),
) -> models.BookingRequest:
    try:
        return cancel_booking(db, ctx, booking_id)
    except BoardingHouseError as exc:
        db.rollback()
        raise exc.to_http() from exc


# ----------------
# Admin routes
# ----------------
@router.get("/admin/bookings", response_model=List[schemas.BookingRead])
def list_booking_requests(
    status_filter: Optional[models.BookingStatus] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_admin),
) -> List[models.BookingRequest]:
    q = db.query(models.BookingRequest)
    if status_filter is not None:
        q = q.filter(models.BookingRequest.status == status_filter)
    return q.order_by(models.BookingRequest.created_at.desc(), models.BookingRequest.id.desc()).all()


@router.post(
    "/admin/bookings/{booking_id}/decision",
    response_model=schemas.BookingRead,
    dependencies=[Depends(rate_limit("write"))],
)
def decide_booking_endpoint(
    booking_id: int,
    payload: schemas.BookingDecision,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_admin),
) -> models.BookingRequest:
    booking = db.get(models.BookingRequest, booking_id)
    if booking is None:
        raise BookingNotFoundError().to_http()

    with hold_or_busy(room_lock_key(booking.room_id)):
        try:
            return decide_booking(db, ctx, booking_id, payload)
        except BoardingHouseError as exc:
            db.rollback()
            raise exc.to_http() from exc
        except IntegrityError:
            db.rollback()
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Room already has an active tenant")
        except Exception as exc:
            db.rollback()
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to process booking: {exc}")
