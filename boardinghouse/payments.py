# Payments module: Stripe PaymentIntent issuance and status lookup.
# Exposes the public intent-creation endpoint used by the checkout page.
# Without STRIPE_SECRET_KEY the module runs in an offline mode that issues synthetic intents,
# keeping local development and CI free of network calls.
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional
from uuid import uuid4

import stripe
from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import JSONResponse

from . import schemas
from .errors import BoardingHouseError, InvalidInputError, ProcessorError
from .rate_limit import rate_limit

logger = logging.getLogger("boardinghouse.payments")

router = APIRouter()

STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY", "").strip()
STRIPE_PUBLISHABLE_KEY = os.getenv("STRIPE_PUBLISHABLE_KEY", "").strip()
# Settlement currency for every intent and ledger row (ISO code, lower-case for Stripe)
PAYMENT_CURRENCY = os.getenv("PAYMENT_CURRENCY", "php").strip().lower() or "php"

if not STRIPE_SECRET_KEY:
    logger.warning("STRIPE_SECRET_KEY is not set; payment intents will be simulated offline")

_MINOR_UNIT = Decimal("100")
_GENERIC_PROCESSOR_ERROR = "Payment intent creation failed"


@dataclass(frozen=True)
class IssuedIntent:
    client_secret: str
    payment_intent_id: str


def stripe_enabled() -> bool:
    return bool(STRIPE_SECRET_KEY)


def ledger_currency() -> str:
    return PAYMENT_CURRENCY.upper()


def _init_stripe() -> None:
    if not stripe_enabled():
        raise RuntimeError("Stripe not enabled (STRIPE_SECRET_KEY not set)")
    stripe.api_key = STRIPE_SECRET_KEY


def _as_decimal(amount: Any) -> Optional[Decimal]:
    if amount is None or isinstance(amount, bool):
        return None
    try:
        # str() first so 1500.005 is read as written, not as its binary float expansion
        value = Decimal(str(amount).strip())
    except (InvalidOperation, ValueError):
        return None
    return value if value.is_finite() else None


def to_minor_units(amount: Any) -> int:
    """
    Convert a major-unit amount (pesos) to Stripe's minor units (centavos).

    Rounds half-up on the decimal value: 1500.5 -> 150050, 1500.005 -> 150001,
    1500.004 -> 150000.
    """
    value = _as_decimal(amount)
    if value is None:
        raise InvalidInputError("Invalid amount")
    return int((value * _MINOR_UNIT).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _issue_intent(amount_minor: int, currency: str, metadata: dict) -> IssuedIntent:
    """The single remote call of intent issuance."""
    if not stripe_enabled():
        token = uuid4().hex[:24]
        return IssuedIntent(
            client_secret=f"pi_test_{token}_secret_offline",
            payment_intent_id=f"pi_test_{token}",
        )

    _init_stripe()
    pi = stripe.PaymentIntent.create(
        amount=amount_minor,
        currency=currency,
        automatic_payment_methods={"enabled": True},
        metadata=metadata,
    )
    client_secret: Optional[str] = getattr(pi, "client_secret", None)
    if not client_secret:
        raise RuntimeError("Stripe PaymentIntent missing client_secret")
    return IssuedIntent(client_secret=client_secret, payment_intent_id=pi.id)


def create_payment_intent(amount: Any, booking_id: Optional[str]) -> IssuedIntent:
    """
    Issue a PaymentIntent for `amount` major units in the configured currency.

    Invalid amounts are rejected before the processor is contacted. Each call is a
    distinct payment attempt, so nothing is retried and nothing is persisted here.
    """
    value = _as_decimal(amount)
    if value is None or value <= 0:
        raise InvalidInputError("Invalid amount")
    amount_minor = to_minor_units(value)
    if amount_minor <= 0:
        raise InvalidInputError("Invalid amount")

    logger.info(
        "payment_intent.create",
        extra={"booking_id": booking_id, "amount_minor": amount_minor, "currency": PAYMENT_CURRENCY},
    )
    try:
        issued = _issue_intent(amount_minor, PAYMENT_CURRENCY, {"bookingId": booking_id or "N/A"})
    except Exception as exc:
        logger.error("payment_intent.failed", extra={"booking_id": booking_id}, exc_info=True)
        message = getattr(exc, "user_message", None) or str(exc) or _GENERIC_PROCESSOR_ERROR
        raise ProcessorError(message) from exc

    logger.info("payment_intent.created", extra={"payment_intent_id": issued.payment_intent_id})
    return issued


def retrieve_intent_status(payment_intent_id: str) -> Optional[str]:
    """
    Processor-side status of an intent ("succeeded", "processing", ...).

    Offline mode has nothing to ask and returns None; callers then rely on the
    redirect status reported by the client.
    """
    if not stripe_enabled():
        return None

    _init_stripe()
    try:
        pi = stripe.PaymentIntent.retrieve(payment_intent_id)
    except Exception as exc:
        raise ProcessorError(f"Unable to verify payment with the processor: {exc}") from exc
    return getattr(pi, "status", None)


# ----------------
# Routes
# ----------------
_INTENT_PATH = "/api/create-payment-intent"


@router.post(
    _INTENT_PATH,
    response_model=schemas.PaymentIntentResponse,
    dependencies=[Depends(rate_limit("payment"))],
)
def create_payment_intent_endpoint(payload: Optional[schemas.PaymentIntentRequest] = None):
    payload = payload or schemas.PaymentIntentRequest()
    try:
        issued = create_payment_intent(payload.amount, payload.booking_id)
    except BoardingHouseError as exc:
        # Wire shape expected by the checkout page: {"error": "..."}
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})
    return schemas.PaymentIntentResponse(
        client_secret=issued.client_secret,
        payment_intent_id=issued.payment_intent_id,
    )


@router.options(_INTENT_PATH, include_in_schema=False)
def create_payment_intent_preflight() -> Response:
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.api_route(_INTENT_PATH, methods=["GET", "PUT", "PATCH", "DELETE"], include_in_schema=False)
def create_payment_intent_wrong_method() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
        content={"error": "Method not allowed"},
        headers={"Allow": "POST, OPTIONS"},
    )


@router.get("/api/config")
def client_config() -> dict:
    """Publishable processor settings for the browser; never includes the secret key."""
    return {"publishableKey": STRIPE_PUBLISHABLE_KEY, "currency": PAYMENT_CURRENCY}
