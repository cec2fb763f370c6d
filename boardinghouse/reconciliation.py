# Payment reconciliation: turns one succeeded PaymentIntent into consistent booking, tenancy,
# ledger, room and notification state.
#
# The sequence is an ordered list of Steps. FATAL steps (load booking .. record payment) decide
# whether the charge is recorded at all; any failure there aborts and is reported to the payer.
# BEST_EFFORT steps only keep denormalized status fields and the audit trail in line; a failure
# is logged, rolled back on its own, and returned as a warning.
from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Callable, List, Optional
from uuid import uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import models
from .errors import (
    BoardingHouseError,
    BestEffortPersistenceError,
    BookingNotFoundError,
    ErrorKind,
    FatalPersistenceError,
    ForwardAction,
    InvalidTransitionError,
    PaymentRecordError,
    ProcessorError,
    TenantCreationError,
)
from .notifications import add_notification, payment_confirmed_message
from .payments import ledger_currency, retrieve_intent_status
from .routes.auth import AuthContext

logger = logging.getLogger("boardinghouse.reconciliation")


class Criticality(str, enum.Enum):
    FATAL = "fatal"
    BEST_EFFORT = "best_effort"


class StepOutcome(enum.Enum):
    CONTINUE = "continue"
    SKIPPED = "skipped"
    # Stop the sequence successfully (payment already recorded)
    HALT = "halt"


@dataclass
class ReconciliationState:
    ctx: AuthContext
    booking_id: int
    payment_intent_id: Optional[str]
    now: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    booking: Optional[models.BookingRequest] = None
    tenant: Optional[models.Tenant] = None
    payment: Optional[models.Payment] = None
    replayed: bool = False

    @property
    def today(self) -> date:
        return self.now.date()


StepFn = Callable[[Session, ReconciliationState], Optional[StepOutcome]]


def _confirmation_failed() -> BoardingHouseError:
    return FatalPersistenceError("Payment confirmation failed")


@dataclass(frozen=True)
class Step:
    name: str
    criticality: Criticality
    run: StepFn
    # Commit after this step. Fatal steps share one transaction up to the payment insert.
    commits: bool = False
    # Builds the user-facing error when a FATAL step fails with a non-domain exception
    fatal_error: Callable[[], BoardingHouseError] = _confirmation_failed


@dataclass
class StepResult:
    name: str
    criticality: Criticality
    ok: bool
    skipped: bool = False
    error: Optional[BestEffortPersistenceError] = None

    @property
    def kind(self) -> Optional[ErrorKind]:
        return self.error.kind if self.error is not None else None


@dataclass
class ReconciliationReport:
    booking_id: int
    payment_id: Optional[int]
    tenant_id: Optional[int]
    replayed: bool
    results: List[StepResult]

    @property
    def warnings(self) -> List[dict]:
        return [{"step": r.name, **r.error.to_dict()} for r in self.results if r.error is not None]


# ----------------
# Steps
# ----------------
def load_booking(db: Session, st: ReconciliationState) -> None:
    booking = (
        db.query(models.BookingRequest)
        .filter(
            models.BookingRequest.id == st.booking_id,
            models.BookingRequest.requestor == st.ctx.user_id,
        )
        .first()
    )
    if booking is None or booking.room is None:
        raise BookingNotFoundError()
    st.booking = booking


def _find_payment(db: Session, payment_intent_id: str) -> Optional[models.Payment]:
    return (
        db.query(models.Payment)
        .filter(models.Payment.stripe_payment_intent_id == payment_intent_id)
        .first()
    )


def check_idempotency(db: Session, st: ReconciliationState) -> StepOutcome:
    # Without an intent id there is no key to dedupe on
    if not st.payment_intent_id:
        return StepOutcome.SKIPPED
    existing = _find_payment(db, st.payment_intent_id)
    if existing is None:
        return StepOutcome.CONTINUE
    st.payment = existing
    st.replayed = True
    return StepOutcome.HALT


def _find_active_tenant(db: Session, profile_id: int, room_id: int) -> Optional[models.Tenant]:
    return (
        db.query(models.Tenant)
        .filter(
            models.Tenant.profile_id == profile_id,
            models.Tenant.room_id == room_id,
            models.Tenant.status == models.TenantStatus.ACTIVE,
        )
        .first()
    )


def resolve_tenant(db: Session, st: ReconciliationState) -> StepOutcome:
    booking = st.booking
    profile = st.ctx.profile
    profile_id, room_id = profile.id, booking.room_id
    tenant = _find_active_tenant(db, profile_id, room_id)
    if tenant is not None:
        st.tenant = tenant
        return StepOutcome.SKIPPED

    tenant = models.Tenant(
        room_id=room_id,
        profile_id=profile_id,
        tenant_name=profile.full_name or booking.contact_name or "Unknown",
        move_in_date=st.today,
        rent_start=booking.check_in or st.today,
        rent_due=booking.check_out,
        status=models.TenantStatus.ACTIVE,
    )
    db.add(tenant)
    try:
        db.flush()
    except IntegrityError:
        # A concurrent run (or an admin approval) may have just created it
        db.rollback()
        tenant = _find_active_tenant(db, profile_id, room_id)
        if tenant is None:
            raise
    st.tenant = tenant
    return StepOutcome.CONTINUE


def record_payment(db: Session, st: ReconciliationState) -> StepOutcome:
    booking = st.booking
    room = booking.room
    payment = models.Payment(
        tenant_id=st.tenant.id,
        room_id=room.id,
        recorded_by=st.ctx.user_id,
        payment_date=st.today,
        amount=room.price_monthly,
        payment_status=models.PaymentStatus.PAID,
        reference_no=st.payment_intent_id or f"ref_{int(time.time() * 1000)}",
        stripe_payment_intent_id=st.payment_intent_id,
        payment_method="stripe",
        currency=ledger_currency(),
        paid_at=st.now,
        notes=f"Stripe Payment for Room {room.room_number} - Booking Request #{booking.id}",
    )
    db.add(payment)
    try:
        db.flush()
    except IntegrityError:
        # Unique intent id: another invocation recorded this charge first
        db.rollback()
        existing = _find_payment(db, st.payment_intent_id) if st.payment_intent_id else None
        if existing is None:
            raise
        st.payment = existing
        st.replayed = True
        return StepOutcome.HALT
    st.payment = payment
    return StepOutcome.CONTINUE


def record_transaction(db: Session, st: ReconciliationState) -> StepOutcome:
    if not st.payment_intent_id:
        return StepOutcome.SKIPPED
    booking = st.booking
    db.add(
        models.PaymentTransaction(
            booking_id=booking.id,
            transaction_id=f"txn_{int(time.time() * 1000)}_{uuid4().hex[:9]}",
            payment_method="stripe",
            amount=booking.room.price_monthly,
            currency=ledger_currency(),
            status="succeeded",
            stripe_payment_intent_id=st.payment_intent_id,
            stripe_charge_id=st.payment_intent_id,
            gateway_response={
                "payment_intent": st.payment_intent_id,
                "processed_at": st.now.isoformat(),
                "booking_id": booking.id,
                "payment_id": st.payment.id if st.payment else None,
            },
        )
    )
    return StepOutcome.CONTINUE


def approve_booking(db: Session, st: ReconciliationState) -> StepOutcome:
    booking = st.booking
    target = models.BookingStatus.APPROVED
    if not models.booking_transition_allowed(booking.status, target):
        raise InvalidTransitionError(f"Booking is {booking.status.value}; cannot mark it {target.value}")
    if booking.status is target:
        return StepOutcome.SKIPPED
    booking.status = target
    return StepOutcome.CONTINUE


def occupy_room(db: Session, st: ReconciliationState) -> StepOutcome:
    st.booking.room.status = models.RoomStatus.OCCUPIED
    return StepOutcome.CONTINUE


def notify_payment(db: Session, st: ReconciliationState) -> StepOutcome:
    room = st.booking.room
    add_notification(
        db,
        user_id=st.ctx.user_id,
        message=payment_confirmed_message(room.room_number, room.price_monthly),
        type=models.NotificationType.PAYMENT,
    )
    return StepOutcome.CONTINUE


def build_steps() -> List[Step]:
    # Resolved at call time so individual steps can be swapped out (tests inject failures this way)
    fatal = Criticality.FATAL
    best_effort = Criticality.BEST_EFFORT
    return [
        Step("load_booking", fatal, load_booking,
             fatal_error=lambda: FatalPersistenceError("Failed to verify booking")),
        Step("check_idempotency", fatal, check_idempotency,
             fatal_error=lambda: FatalPersistenceError("Could not check whether this payment was already recorded")),
        Step("resolve_tenant", fatal, resolve_tenant, fatal_error=TenantCreationError),
        Step("record_payment", fatal, record_payment, commits=True, fatal_error=PaymentRecordError),
        Step("record_transaction", best_effort, record_transaction, commits=True),
        Step("approve_booking", best_effort, approve_booking, commits=True),
        Step("occupy_room", best_effort, occupy_room, commits=True),
        Step("notify_payment", best_effort, notify_payment, commits=True),
    ]


def run_steps(db: Session, st: ReconciliationState, steps: List[Step]) -> List[StepResult]:
    results: List[StepResult] = []
    for step in steps:
        try:
            outcome = step.run(db, st)
            if step.commits:
                db.commit()
        except Exception as exc:
            db.rollback()
            if step.criticality is Criticality.FATAL:
                logger.error(
                    "reconcile.fatal",
                    extra={"step": step.name, "booking_id": st.booking_id, "payment_intent_id": st.payment_intent_id},
                    exc_info=True,
                )
                if isinstance(exc, BoardingHouseError):
                    raise
                raise step.fatal_error() from exc
            logger.warning(
                "reconcile.best_effort_failed step=%s booking_id=%s: %s",
                step.name,
                st.booking_id,
                exc,
            )
            failure = BestEffortPersistenceError(str(exc) or type(exc).__name__)
            results.append(StepResult(step.name, step.criticality, ok=False, error=failure))
            continue

        outcome = outcome or StepOutcome.CONTINUE
        results.append(StepResult(step.name, step.criticality, ok=True, skipped=outcome is StepOutcome.SKIPPED))
        logger.info("reconcile.step", extra={"step": step.name, "booking_id": st.booking_id, "outcome": outcome.value})
        if outcome is StepOutcome.HALT:
            break
    return results


_STILL_PROCESSING = (
    "Your payment is still processing. Please check your bookings shortly before paying again."
)


def _not_succeeded(status_value: str) -> ProcessorError:
    if status_value == "processing":
        # The charge may still land; do not invite a second payment
        return ProcessorError(_STILL_PROCESSING, actions=(ForwardAction.VIEW_BOOKINGS,), status_code=402)
    return ProcessorError(
        f"Your payment was not completed (status: {status_value}). You have not been charged for this attempt.",
        status_code=402,
    )


def _ensure_succeeded(payment_intent_id: Optional[str], redirect_status: Optional[str]) -> None:
    if redirect_status not in (None, "succeeded"):
        raise _not_succeeded(redirect_status)
    if payment_intent_id:
        processor_status = retrieve_intent_status(payment_intent_id)
        if processor_status not in (None, "succeeded"):
            raise _not_succeeded(processor_status)


def reconcile_payment(
    db: Session,
    ctx: AuthContext,
    booking_id: int,
    payment_intent_id: Optional[str],
    redirect_status: Optional[str] = None,
) -> ReconciliationReport:
    """
    Record a succeeded payment for `booking_id` on behalf of the signed-in caller.

    Safe to call repeatedly with the same intent id: once a Payment row carries that id,
    later calls return a report with replayed=True and change nothing.
    """
    _ensure_succeeded(payment_intent_id, redirect_status)

    st = ReconciliationState(ctx=ctx, booking_id=booking_id, payment_intent_id=payment_intent_id or None)
    logger.info(
        "reconcile.start",
        extra={"booking_id": booking_id, "user_id": ctx.user_id, "payment_intent_id": payment_intent_id},
    )
    results = run_steps(db, st, build_steps())
    report = ReconciliationReport(
        booking_id=booking_id,
        payment_id=st.payment.id if st.payment else None,
        tenant_id=st.tenant.id if st.tenant else (st.payment.tenant_id if st.payment else None),
        replayed=st.replayed,
        results=results,
    )
    logger.info(
        "reconcile.done",
        extra={"booking_id": booking_id, "replayed": report.replayed, "warnings": len(report.warnings)},
    )
    return report
