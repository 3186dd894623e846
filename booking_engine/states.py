"""
Lifecycle states and their transition tables.

Every status change goes through ensure_transition() at the point of mutation.
"""

from enum import Enum

from .exceptions import InvalidTransitionError


class BookingStatus(str, Enum):
    PENDING = "pending"
    PENDING_PAYMENT = "pending_payment"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    NO_SHOW = "no_show"


class WaitlistStatus(str, Enum):
    ACTIVE = "active"
    NOTIFIED = "notified"
    CONVERTED = "converted"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class WaitlistPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    VIP = "vip"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    WaitlistPriority.LOW: 1,
    WaitlistPriority.NORMAL: 2,
    WaitlistPriority.HIGH: 3,
    WaitlistPriority.VIP: 4,
}


class GroupBookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class PaymentSplitType(str, Enum):
    ORGANIZER_PAYS = "organizer_pays"
    SPLIT_EQUAL = "split_equal"
    INDIVIDUAL = "individual"


class ParticipantPaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"


class IdempotencyStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class ResourceType(str, Enum):
    STAFF = "staff"
    ROOM = "room"
    TABLE = "table"
    TRAINER = "trainer"


class ModifierType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


ACTIVE_BOOKING_STATUSES = frozenset(
    {BookingStatus.PENDING, BookingStatus.PENDING_PAYMENT, BookingStatus.CONFIRMED}
)

BOOKING_TRANSITIONS = {
    BookingStatus.PENDING: {BookingStatus.PENDING_PAYMENT, BookingStatus.CONFIRMED, BookingStatus.CANCELLED},
    BookingStatus.PENDING_PAYMENT: {BookingStatus.CONFIRMED, BookingStatus.CANCELLED},
    BookingStatus.CONFIRMED: {BookingStatus.COMPLETED, BookingStatus.CANCELLED, BookingStatus.NO_SHOW},
    BookingStatus.CANCELLED: set(),
    BookingStatus.COMPLETED: set(),
    BookingStatus.NO_SHOW: set(),
}

WAITLIST_TRANSITIONS = {
    WaitlistStatus.ACTIVE: {WaitlistStatus.NOTIFIED, WaitlistStatus.CANCELLED, WaitlistStatus.EXPIRED},
    # NOTIFIED -> ACTIVE re-queues an entry whose deadline passed under the notification cap
    WaitlistStatus.NOTIFIED: {
        WaitlistStatus.CONVERTED,
        WaitlistStatus.EXPIRED,
        WaitlistStatus.CANCELLED,
        WaitlistStatus.ACTIVE,
    },
    WaitlistStatus.CONVERTED: set(),
    WaitlistStatus.CANCELLED: set(),
    WaitlistStatus.EXPIRED: set(),
}

GROUP_BOOKING_TRANSITIONS = {
    GroupBookingStatus.PENDING: {GroupBookingStatus.CONFIRMED, GroupBookingStatus.CANCELLED},
    GroupBookingStatus.CONFIRMED: {GroupBookingStatus.COMPLETED, GroupBookingStatus.CANCELLED},
    GroupBookingStatus.CANCELLED: set(),
    GroupBookingStatus.COMPLETED: set(),
}

PARTICIPANT_PAYMENT_TRANSITIONS = {
    ParticipantPaymentStatus.PENDING: {ParticipantPaymentStatus.PAID},
    ParticipantPaymentStatus.PAID: {ParticipantPaymentStatus.REFUNDED},
    ParticipantPaymentStatus.REFUNDED: set(),
}

IDEMPOTENCY_TRANSITIONS = {
    IdempotencyStatus.PENDING: {IdempotencyStatus.COMPLETED, IdempotencyStatus.FAILED},
    IdempotencyStatus.FAILED: {IdempotencyStatus.PENDING},
    IdempotencyStatus.COMPLETED: set(),
}

_TABLES = {
    BookingStatus: BOOKING_TRANSITIONS,
    WaitlistStatus: WAITLIST_TRANSITIONS,
    GroupBookingStatus: GROUP_BOOKING_TRANSITIONS,
    ParticipantPaymentStatus: PARTICIPANT_PAYMENT_TRANSITIONS,
    IdempotencyStatus: IDEMPOTENCY_TRANSITIONS,
}


def can_transition(current: Enum, target: Enum) -> bool:
    table = _TABLES[type(current)]
    return target in table[current]


def ensure_transition(current, target, label: str = "status"):
    """Validate current -> target against its table and return the target state"""
    state_type = type(target)
    current = state_type(current)
    if not can_transition(current, target):
        raise InvalidTransitionError(
            f"Invalid {label} transition from {current.value} to {target.value}",
            context={"from": current.value, "to": target.value},
        )
    return target
