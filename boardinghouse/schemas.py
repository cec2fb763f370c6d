# Pydantic models (request/response DTOs) used by the API layer.
# Keep models minimal and serializable; business logic lives in services and route handlers.
from datetime import date, datetime
from decimal import Decimal
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from .models import (
    BookingStatus,
    NotificationType,
    PaymentStatus,
    Role,
    RoomStatus,
    TenantStatus,
)


def _strip(v):
    if isinstance(v, str):
        v = v.strip()
    return v


# Authentication and profiles

class SignupRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    full_name: Optional[str] = Field(None, max_length=255)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        if isinstance(v, str):
            v = v.strip().lower()
        return v


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        if isinstance(v, str):
            v = v.strip().lower()
        return v


class ProfileRead(BaseModel):
    id: int
    email: EmailStr
    role: Role
    full_name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    province: Optional[str] = None
    zip_code: Optional[str] = None
    avatar_url: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class ProfileUpdate(BaseModel):
    full_name: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=50)
    address: Optional[str] = Field(None, max_length=255)
    city: Optional[str] = Field(None, max_length=100)
    province: Optional[str] = Field(None, max_length=100)
    zip_code: Optional[str] = Field(None, max_length=20)
    avatar_url: Optional[str] = Field(None, max_length=1024)

    @field_validator("full_name", "phone", "address", "city", "province", "zip_code", "avatar_url", mode="before")
    @classmethod
    def strip_fields(cls, v):
        return _strip(v)


# OAuth2-style token response bundled with the current profile
class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: ProfileRead


# Rooms

class RoomBase(BaseModel):
    room_number: str = Field(..., min_length=1, max_length=50)
    capacity: Optional[str] = Field(None, max_length=50)
    rental_term: str = Field("One Month", max_length=50)
    price_monthly: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    description: Optional[str] = None
    image_urls: List[str] = Field(default_factory=list)

    @field_validator("room_number", mode="before")
    @classmethod
    def strip_room_number(cls, v: str) -> str:
        return _strip(v)


class RoomCreate(RoomBase):
    status: RoomStatus = RoomStatus.AVAILABLE


class RoomUpdate(BaseModel):
    capacity: Optional[str] = Field(None, max_length=50)
    rental_term: Optional[str] = Field(None, max_length=50)
    price_monthly: Optional[Decimal] = Field(None, gt=0, max_digits=10, decimal_places=2)
    description: Optional[str] = None
    status: Optional[RoomStatus] = None
    image_urls: Optional[List[str]] = None


class RoomRead(RoomBase):
    id: int
    status: RoomStatus

    model_config = ConfigDict(from_attributes=True)


# Booking requests

class BookingCreate(BaseModel):
    room_id: int = Field(..., ge=1)
    check_in: Optional[date] = None
    check_out: Optional[date] = None
    phone_number: Optional[str] = Field(None, max_length=50)

    @field_validator("check_out")
    @classmethod
    def check_out_after_check_in(cls, v, info):
        start = info.data.get("check_in")
        if v is not None and start is not None and v <= start:
            raise ValueError("check_out must be after check_in")
        return v


class BookingContactUpdate(BaseModel):
    contact_name: str = Field(..., min_length=1, max_length=255)
    contact_email: EmailStr
    contact_phone: str = Field(..., min_length=1, max_length=50)
    contact_address: Optional[str] = Field(None, max_length=512)
    notes: Optional[str] = None

    @field_validator("contact_name", "contact_phone", "contact_address", mode="before")
    @classmethod
    def strip_fields(cls, v):
        return _strip(v)


class BookingRead(BaseModel):
    id: int
    room_id: int
    requestor: int
    status: BookingStatus
    check_in: Optional[date] = None
    check_out: Optional[date] = None
    message: Optional[str] = None
    contact_name: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    contact_address: Optional[str] = None
    notes: Optional[str] = None
    decided_by: Optional[int] = None
    decided_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    room: Optional[RoomRead] = None

    model_config = ConfigDict(from_attributes=True)


class BookingDecision(BaseModel):
    decision: Literal["approve", "decline"]
    message: str = Field("", max_length=1000)
    rent_start: Optional[date] = None
    rent_due: Optional[date] = None


# Tenants

class TenantRead(BaseModel):
    id: int
    room_id: int
    profile_id: int
    tenant_name: str
    move_in_date: Optional[date] = None
    rent_start: Optional[date] = None
    rent_due: Optional[date] = None
    status: TenantStatus

    model_config = ConfigDict(from_attributes=True)


class ReminderCreate(BaseModel):
    message: str = Field(..., min_length=1, max_length=1000)

    @field_validator("message", mode="before")
    @classmethod
    def strip_message(cls, v: str) -> str:
        return _strip(v)


# Payments

class PaymentIntentRequest(BaseModel):
    # Deliberately loose: the endpoint reports bad amounts as {"error": ...} rather than a 422
    amount: Any = None
    booking_id: Optional[str] = Field(None, alias="bookingId")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("booking_id", mode="before")
    @classmethod
    def stringify_booking_id(cls, v):
        if v is None:
            return v
        return str(v)


class PaymentIntentResponse(BaseModel):
    client_secret: str = Field(..., serialization_alias="clientSecret")
    payment_intent_id: str = Field(..., serialization_alias="paymentIntentId")


class PaymentConfirmRequest(BaseModel):
    payment_intent_id: Optional[str] = Field(None, max_length=255)
    redirect_status: Optional[Literal["succeeded", "failed", "processing"]] = None


# A best-effort step that failed after the payment was recorded
class StepWarning(BaseModel):
    step: str
    error: str
    kind: str
    actions: List[str]


class ReconciliationRead(BaseModel):
    booking_id: int
    payment_id: Optional[int] = None
    tenant_id: Optional[int] = None
    replayed: bool = False
    warnings: List[StepWarning] = Field(default_factory=list)


class PaymentRead(BaseModel):
    id: int
    tenant_id: int
    room_id: int
    recorded_by: Optional[int] = None
    payment_date: date
    amount: Decimal
    currency: str
    payment_status: PaymentStatus
    reference_no: Optional[str] = None
    stripe_payment_intent_id: Optional[str] = None
    payment_method: str
    paid_at: Optional[datetime] = None
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class PaymentCreate(BaseModel):
    tenant_id: int = Field(..., ge=1)
    amount: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    payment_date: Optional[date] = None
    payment_status: PaymentStatus = PaymentStatus.PAID
    payment_method: str = Field("cash", min_length=1, max_length=50)
    reference_no: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = None


class PaymentStatusUpdate(BaseModel):
    payment_status: PaymentStatus


# Notifications

class NotificationRead(BaseModel):
    id: int
    user_id: int
    from_user: str
    message: str
    type: NotificationType
    is_read: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# Admin dashboard

class ActivityItem(BaseModel):
    id: str
    title: str
    at: Optional[datetime] = None
    type: Literal["payment", "tenant"]


class DashboardRead(BaseModel):
    total_rooms: int
    available_rooms: int
    occupied_rooms: int
    reserved_rooms: int
    total_income: Decimal
    monthly_income: Decimal
    pending_approvals: int
    pending_payments: int
    recent_activity: List[ActivityItem]
