# SQLAlchemy ORM models for the boarding-house schema.
# Status columns are closed enums stored by value; transition rules live next to the enums they govern.
import enum

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.orm import declarative_mixin, relationship

from .db import Base


class Role(str, enum.Enum):
    USER = "user"
    ADMIN = "admin"


class RoomStatus(str, enum.Enum):
    AVAILABLE = "Available"
    RESERVED = "Reserved"
    OCCUPIED = "Occupied"


class BookingStatus(str, enum.Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    DECLINED = "Declined"
    CANCELLED = "Cancelled"


class TenantStatus(str, enum.Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"


class PaymentStatus(str, enum.Enum):
    PAID = "Paid"
    PENDING = "Pending"
    FAILED = "Failed"


class NotificationType(str, enum.Enum):
    PAYMENT = "payment"
    BOOKING = "booking"
    REMINDER = "reminder"
    MAINTENANCE = "maintenance"


# Allowed booking transitions. Approved -> Approved is the no-op taken when an
# approve-first booking is paid later; Declined and Cancelled are terminal.
_BOOKING_TRANSITIONS = {
    BookingStatus.PENDING: frozenset({BookingStatus.APPROVED, BookingStatus.DECLINED, BookingStatus.CANCELLED}),
    BookingStatus.APPROVED: frozenset({BookingStatus.APPROVED, BookingStatus.CANCELLED}),
    BookingStatus.DECLINED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
}


def booking_transition_allowed(current: BookingStatus, target: BookingStatus) -> bool:
    return target in _BOOKING_TRANSITIONS[current]


def _enum_column(enum_cls, length: int = 20):
    # Store the enum *value* ("Pending"), not the member name ("PENDING")
    return Enum(
        enum_cls,
        native_enum=False,
        length=length,
        validate_strings=True,
        values_callable=lambda members: [m.value for m in members],
    )


@declarative_mixin
class TimestampMixin:
    """Timestamps managed by the database: created_at on insert, updated_at on every write."""
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class Profile(Base, TimestampMixin):
    """Account and contact details for a user of the site.

    Roles:
    - user: browses rooms, requests bookings, pays rent
    - admin: manages rooms, tenants, bookings and the payment ledger
    """
    __tablename__ = "profiles"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(_enum_column(Role), nullable=False, default=Role.USER, index=True)
    full_name = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    address = Column(String(255), nullable=True)
    city = Column(String(100), nullable=True)
    province = Column(String(100), nullable=True)
    zip_code = Column(String(20), nullable=True)
    avatar_url = Column(String(1024), nullable=True)


class Room(Base, TimestampMixin):
    """A rentable room. `status` is denormalized from tenancy/booking state and kept in sync by the services."""
    __tablename__ = "rooms"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    room_number = Column(String(50), nullable=False, unique=True)
    capacity = Column(String(50), nullable=True)
    rental_term = Column(String(50), nullable=False, default="One Month")
    price_monthly = Column(Numeric(10, 2), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(_enum_column(RoomStatus), nullable=False, default=RoomStatus.AVAILABLE, index=True)
    image_urls = Column(JSON, nullable=False, default=list)
    created_by = Column(Integer, ForeignKey("profiles.id"), nullable=True)


class BookingRequest(Base, TimestampMixin):
    """A user's request to rent a room.

    Pending -> Approved (admin decision or successful payment)
    Pending -> Declined (admin decision)
    Pending | Approved -> Cancelled (user or admin)
    """
    __tablename__ = "booking_requests"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=False, index=True)
    requestor = Column(Integer, ForeignKey("profiles.id"), nullable=False, index=True)
    status = Column(_enum_column(BookingStatus), nullable=False, default=BookingStatus.PENDING, index=True)
    check_in = Column(Date, nullable=True)
    check_out = Column(Date, nullable=True)
    message = Column(Text, nullable=True)
    contact_name = Column(String(255), nullable=True)
    contact_email = Column(String(255), nullable=True)
    contact_phone = Column(String(50), nullable=True)
    contact_address = Column(String(512), nullable=True)
    notes = Column(Text, nullable=True)
    decided_by = Column(Integer, ForeignKey("profiles.id"), nullable=True)
    decided_at = Column(DateTime(timezone=True), nullable=True)

    room = relationship("Room", lazy="joined")


class Tenant(Base, TimestampMixin):
    """An occupancy linking a profile to a room."""
    __tablename__ = "tenants"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=False, index=True)
    profile_id = Column(Integer, ForeignKey("profiles.id"), nullable=False, index=True)
    tenant_name = Column(String(255), nullable=False, default="Unknown")
    move_in_date = Column(Date, nullable=True)
    rent_start = Column(Date, nullable=True)
    rent_due = Column(Date, nullable=True)
    status = Column(_enum_column(TenantStatus), nullable=False, default=TenantStatus.ACTIVE)

    room = relationship("Room")

    # At most one Active tenant per room; inactive rows are history and unconstrained
    __table_args__ = (
        Index("ix_tenants_profile_room", "profile_id", "room_id"),
        Index(
            "uq_tenants_active_room",
            "room_id",
            unique=True,
            sqlite_where=text("status = 'Active'"),
            postgresql_where=text("status = 'Active'"),
        ),
    )


class Payment(Base, TimestampMixin):
    """Funds received for a tenancy, either from the card processor or entered by an admin."""
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=False, index=True)
    recorded_by = Column(Integer, ForeignKey("profiles.id"), nullable=True)
    payment_date = Column(Date, nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="PHP")
    payment_status = Column(_enum_column(PaymentStatus), nullable=False, default=PaymentStatus.PENDING, index=True)
    reference_no = Column(String(255), nullable=True)
    # Idempotency key for processor-driven payments; NULL for manual entries
    stripe_payment_intent_id = Column(String(255), nullable=True, unique=True)
    payment_method = Column(String(50), nullable=False, default="cash")
    paid_at = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)

    tenant = relationship("Tenant")
    room = relationship("Room")


class PaymentTransaction(Base):
    """Audit trail of processor outcomes. Rows are best-effort and never consulted for business decisions."""
    __tablename__ = "payment_transactions"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    booking_id = Column(Integer, ForeignKey("booking_requests.id"), nullable=False, index=True)
    transaction_id = Column(String(64), nullable=False, unique=True)
    payment_method = Column(String(50), nullable=False, default="stripe")
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    status = Column(String(30), nullable=False)
    stripe_payment_intent_id = Column(String(255), nullable=True, index=True)
    stripe_charge_id = Column(String(255), nullable=True)
    gateway_response = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class Notification(Base):
    """User-facing message shown in the notification inbox."""
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("profiles.id"), nullable=False, index=True)
    from_user = Column(String(100), nullable=False, default="System")
    message = Column(Text, nullable=False)
    type = Column(_enum_column(NotificationType), nullable=False)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_notifications_user_created_at", "user_id", "created_at"),
    )
