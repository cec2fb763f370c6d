# Notification outbox: every user-facing message is a row in `notifications`.
from __future__ import annotations

from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from . import models

SYSTEM = "System"
LANDLORD = "Landlord"

TENANCY_TERMINATED = "Your tenancy has been terminated. Please contact the landlord for more details."


def format_peso(amount: Decimal) -> str:
    # 5000 -> "5,000"; 5000.5 -> "5,000.50"
    amount = Decimal(amount)
    if amount == amount.to_integral_value():
        return f"{int(amount):,}"
    return f"{amount:,.2f}"


def payment_confirmed_message(room_number: str, amount: Decimal) -> str:
    return (
        f"Your payment for Room {room_number} has been confirmed. "
        f"Amount: ₱{format_peso(amount)}. Your booking is now approved!"
    )


def booking_decision_message(room_number: Optional[str], approved: bool, note: str = "") -> str:
    verdict = "approved!" if approved else "declined."
    return f"Your booking for Room {room_number} has been {verdict} {note}".strip()


def add_notification(
    db: Session,
    *,
    user_id: int,
    message: str,
    type: models.NotificationType,
    from_user: str = SYSTEM,
) -> models.Notification:
    """Stage a notification on the session. The caller owns the commit."""
    obj = models.Notification(
        user_id=user_id,
        from_user=from_user,
        message=message,
        type=type,
        is_read=False,
    )
    db.add(obj)
    return obj
