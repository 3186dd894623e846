import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    and_,
)
from sqlalchemy.orm import relationship

from .database import Base
from .states import (
    BookingStatus,
    GroupBookingStatus,
    IdempotencyStatus,
    ModifierType,
    ParticipantPaymentStatus,
    PaymentSplitType,
    ResourceType,
    WaitlistPriority,
    WaitlistStatus,
)


def generate_public_id():
    """Generate a unique public ID for secure public access"""
    return str(uuid.uuid4())


def utcnow_naive():
    """Naive UTC timestamp (storage form)"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def state_column(enum_cls, default, **kwargs):
    """Status column holding enum members, stored as their string values"""
    return Column(
        Enum(
            enum_cls,
            native_enum=False,
            length=30,
            values_callable=lambda members: [m.value for m in members],
            validate_strings=True,
        ),
        default=default,
        nullable=False,
        **kwargs,
    )


class Business(Base):
    __tablename__ = "businesses"

    id = Column(Integer, primary_key=True, index=True)
    public_id = Column(String(36), unique=True, nullable=False, default=generate_public_id)
    name = Column(String(255), nullable=False)
    timezone = Column(String(64), nullable=False, default="UTC")  # IANA name, e.g. Asia/Tokyo
    is_active = Column(Boolean, default=True, nullable=False)
    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow_naive, nullable=False)
    updated_at = Column(DateTime, default=utcnow_naive, onupdate=utcnow_naive)


class BusinessHour(Base):
    __tablename__ = "business_hours"
    __table_args__ = (UniqueConstraint("business_id", "weekday", name="uq_business_hours_weekday"),)

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, index=True)
    weekday = Column(Integer, nullable=False)  # 0 = Monday ... 6 = Sunday
    open_time = Column(String(5), nullable=True)  # HH:MM, local time
    close_time = Column(String(5), nullable=True)
    is_closed = Column(Boolean, default=False, nullable=False)


class BusinessHoliday(Base):
    __tablename__ = "business_holidays"
    __table_args__ = (UniqueConstraint("business_id", "date", name="uq_business_holiday_date"),)

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    name = Column(String(255), nullable=True)


class Resource(Base):
    __tablename__ = "resources"

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    type = state_column(ResourceType, ResourceType.STAFF)
    capacity = Column(Integer, default=1, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow_naive, nullable=False)


class ResourceWorkingHour(Base):
    __tablename__ = "resource_working_hours"

    id = Column(Integer, primary_key=True, index=True)
    resource_id = Column(Integer, ForeignKey("resources.id"), nullable=False, index=True)
    weekday = Column(Integer, nullable=False)
    start_time = Column(String(5), nullable=False)
    end_time = Column(String(5), nullable=False)


class ResourceException(Base):
    """Time-off range for a resource (stored in UTC)"""

    __tablename__ = "resource_exceptions"

    id = Column(Integer, primary_key=True, index=True)
    resource_id = Column(Integer, ForeignKey("resources.id"), nullable=False, index=True)
    start_at = Column(DateTime, nullable=False)
    end_at = Column(DateTime, nullable=False)
    reason = Column(String(255), nullable=True)


class CancellationPolicy(Base):
    __tablename__ = "cancellation_policies"

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    hours_before = Column(Integer, nullable=False)
    penalty_percent = Column(Integer, nullable=False)
    is_default = Column(Boolean, default=False, nullable=False)
    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow_naive, nullable=False)


# At most one live default policy per business
Index(
    "uq_cancellation_policy_default",
    CancellationPolicy.business_id,
    unique=True,
    sqlite_where=and_(CancellationPolicy.is_default.is_(True), CancellationPolicy.deleted_at.is_(None)),
    postgresql_where=and_(CancellationPolicy.is_default.is_(True), CancellationPolicy.deleted_at.is_(None)),
)


class Service(Base):
    __tablename__ = "services"

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    duration_minutes = Column(Integer, nullable=True)  # None: explicit slot checks only
    buffer_before_minutes = Column(Integer, default=0, nullable=False)
    buffer_after_minutes = Column(Integer, default=0, nullable=False)
    price_cents = Column(Integer, default=0, nullable=False)
    policy_id = Column(Integer, ForeignKey("cancellation_policies.id"), nullable=True)
    extra_data = Column("metadata", JSON, default=dict, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow_naive, nullable=False)


class ServiceResource(Base):
    __tablename__ = "service_resources"
    __table_args__ = (UniqueConstraint("service_id", "resource_id", name="uq_service_resource"),)

    id = Column(Integer, primary_key=True, index=True)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False, index=True)
    resource_id = Column(Integer, ForeignKey("resources.id"), nullable=False, index=True)
    is_required = Column(Boolean, default=True, nullable=False)


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (Index("ix_bookings_resource_window", "resource_id", "start_at", "end_at"),)

    id = Column(Integer, primary_key=True, index=True)
    public_id = Column(String(36), unique=True, nullable=False, index=True, default=generate_public_id)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, index=True)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=True)
    resource_id = Column(Integer, ForeignKey("resources.id"), nullable=True)  # primary resource
    customer_id = Column(Integer, nullable=True, index=True)  # owned by the customer directory

    start_at = Column(DateTime, nullable=False)
    end_at = Column(DateTime, nullable=False)
    # Buffers captured at creation so later service edits do not move committed occupancy
    buffer_before_minutes = Column(Integer, default=0, nullable=False)
    buffer_after_minutes = Column(Integer, default=0, nullable=False)

    # Status workflow: pending → pending_payment → confirmed → completed
    # cancelled / no_show are terminal and free the slot
    status = state_column(BookingStatus, BookingStatus.PENDING, index=True)

    # Price locked at creation
    price_cents = Column(Integer, default=0, nullable=False)
    pricing_rule_id = Column(Integer, nullable=True)
    policy_snapshot = Column(JSON, nullable=True)

    waitlist_entry_id = Column(Integer, ForeignKey("waitlist_entries.id"), nullable=True)
    group_booking_id = Column(Integer, nullable=True)

    extra_data = Column("metadata", JSON, default=dict, nullable=True)

    # Cancellation outcome
    cancelled_at = Column(DateTime, nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    refund_cents = Column(Integer, nullable=True)
    penalty_cents = Column(Integer, nullable=True)

    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow_naive, nullable=False)
    updated_at = Column(DateTime, default=utcnow_naive, onupdate=utcnow_naive)

    held_resources = relationship(
        "BookingResource", back_populates="booking", lazy="selectin", cascade="all, delete-orphan"
    )


class BookingResource(Base):
    """Every resource a booking occupies (primary one included)"""

    __tablename__ = "booking_resources"
    __table_args__ = (UniqueConstraint("booking_id", "resource_id", name="uq_booking_resource"),)

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    resource_id = Column(Integer, ForeignKey("resources.id"), nullable=False, index=True)

    booking = relationship("Booking", back_populates="held_resources")


class BookingHistory(Base):
    __tablename__ = "booking_history"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    changed_by = Column(String(255), nullable=True)
    field_changed = Column(String(50), nullable=False)
    old_value = Column(Text, nullable=True)
    new_value = Column(Text, nullable=True)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow_naive, nullable=False)


class PricingRule(Base):
    __tablename__ = "pricing_rules"

    id = Column(Integer, primary_key=True, index=True)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    days_of_week = Column(JSON, nullable=True)  # [0..6], 0 = Monday; None = every day
    start_time = Column(String(5), nullable=True)  # [start_time, end_time) local wall time
    end_time = Column(String(5), nullable=True)
    start_date = Column(Date, nullable=True)  # inclusive
    end_date = Column(Date, nullable=True)  # inclusive
    modifier_type = state_column(ModifierType, ModifierType.PERCENTAGE)
    modifier_value = Column(Float, nullable=False)  # percent, or minor units for fixed
    priority = Column(Integer, default=2, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow_naive, nullable=False)


class WaitlistEntry(Base):
    __tablename__ = "waitlist_entries"

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, index=True)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=True)
    resource_id = Column(Integer, ForeignKey("resources.id"), nullable=True)
    customer_id = Column(Integer, nullable=False, index=True)

    preferred_date = Column(Date, nullable=True)
    preferred_time_start = Column(String(5), nullable=True)  # local wall time
    preferred_time_end = Column(String(5), nullable=True)

    # Status workflow: active → notified → converted / expired; cancelled from active or notified
    status = state_column(WaitlistStatus, WaitlistStatus.ACTIVE, index=True)
    priority = state_column(WaitlistPriority, WaitlistPriority.NORMAL)

    notification_count = Column(Integer, default=0, nullable=False)
    notified_at = Column(DateTime, nullable=True)
    last_notified_at = Column(DateTime, nullable=True)
    response_deadline = Column(DateTime, nullable=True)
    offered_start_at = Column(DateTime, nullable=True)
    offered_end_at = Column(DateTime, nullable=True)
    converted_booking_id = Column(Integer, nullable=True)

    created_at = Column(DateTime, default=utcnow_naive, nullable=False)
    updated_at = Column(DateTime, default=utcnow_naive, onupdate=utcnow_naive)


class GroupBooking(Base):
    __tablename__ = "group_bookings"

    id = Column(Integer, primary_key=True, index=True)
    public_id = Column(String(36), unique=True, nullable=False, default=generate_public_id)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, index=True)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=True)  # slot holder
    organizer_customer_id = Column(Integer, nullable=False)
    group_name = Column(String(255), nullable=True)

    min_participants = Column(Integer, nullable=False)
    max_participants = Column(Integer, nullable=False)
    current_participants = Column(Integer, default=1, nullable=False)

    start_at = Column(DateTime, nullable=False)
    end_at = Column(DateTime, nullable=False)
    total_amount_cents = Column(Integer, default=0, nullable=False)
    payment_split_type = state_column(PaymentSplitType, PaymentSplitType.ORGANIZER_PAYS)
    status = state_column(GroupBookingStatus, GroupBookingStatus.PENDING)

    extra_data = Column("metadata", JSON, default=dict, nullable=True)
    created_at = Column(DateTime, default=utcnow_naive, nullable=False)
    updated_at = Column(DateTime, default=utcnow_naive, onupdate=utcnow_naive)


class GroupBookingParticipant(Base):
    __tablename__ = "group_booking_participants"
    __table_args__ = (
        UniqueConstraint("group_booking_id", "customer_id", name="uq_group_participant"),
    )

    id = Column(Integer, primary_key=True, index=True)
    group_booking_id = Column(Integer, ForeignKey("group_bookings.id"), nullable=False, index=True)
    customer_id = Column(Integer, nullable=False)
    is_organizer = Column(Boolean, default=False, nullable=False)
    amount_owed_cents = Column(Integer, default=0, nullable=False)
    payment_status = state_column(ParticipantPaymentStatus, ParticipantPaymentStatus.PENDING)
    payment_reference = Column(String(255), nullable=True)
    paid_at = Column(DateTime, nullable=True)
    checked_in = Column(Boolean, default=False, nullable=False)
    checked_in_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow_naive, nullable=False)


class IdempotencyKey(Base):
    __tablename__ = "idempotency_keys"
    __table_args__ = (UniqueConstraint("scope", "key", name="uq_idempotency_scope_key"),)

    id = Column(Integer, primary_key=True, index=True)
    scope = Column(String(255), nullable=False)
    key = Column(String(255), nullable=False)
    request_hash = Column(String(64), nullable=False)
    status = state_column(IdempotencyStatus, IdempotencyStatus.PENDING)
    booking_id = Column(Integer, nullable=True)  # stored outcome
    error_detail = Column(Text, nullable=True)
    expires_at = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow_naive, nullable=False)
    updated_at = Column(DateTime, default=utcnow_naive, onupdate=utcnow_naive)


class NotificationOutbox(Base):
    """Queued notifications; delivery is owned by an external dispatcher"""

    __tablename__ = "notification_outbox"

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, nullable=False, index=True)
    customer_id = Column(Integer, nullable=True)
    kind = Column(String(50), nullable=False)  # booking_confirmed, waitlist_slot_available, ...
    template = Column(String(100), nullable=False)
    payload = Column(JSON, default=dict, nullable=False)
    delivery_status = Column(String(20), default="queued", nullable=False)
    created_at = Column(DateTime, default=utcnow_naive, nullable=False)
