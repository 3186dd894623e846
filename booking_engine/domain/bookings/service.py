"""Booking service - Business logic for booking operations"""

import logging
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...config import DEFAULT_SERVICE_DURATION_MINUTES
from ...database import transaction
from ...exceptions import SLOT_UNAVAILABLE, BadRequestError, ConflictError, NotFoundError
from ...models import Booking, Business, Service
from ...services.notification_service import queue_booking_cancelled, queue_booking_confirmed
from ...shared.timeutils import from_storage, to_storage, to_utc, utcnow
from ...states import ACTIVE_BOOKING_STATUSES, BookingStatus, ensure_transition
from ..availability.service import (
    DURATION_MISMATCH,
    OUTSIDE_OPEN_HOURS,
    AvailabilityService,
)
from ..idempotency.service import IdempotencyService
from ..policies.service import PolicyService, policy_snapshot
from ..pricing.service import PricingService
from ..waitlist.service import WaitlistService
from .conflict import ConflictDetector
from .repository import BookingRepository

logger = logging.getLogger(__name__)

CREATE_SCOPE = "booking_create"


class BookingService:
    """Service layer for booking operations"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = BookingRepository()
        self.availability = AvailabilityService(db)
        self.pricing = PricingService(db)
        self.policies = PolicyService(db)
        self.waitlist = WaitlistService(db)
        self.conflicts = ConflictDetector(db)

    # ========================================================================
    # READS
    # ========================================================================

    def get_booking(self, booking_id: int) -> Booking:
        booking = self.repo.get_by_id(self.db, booking_id)
        if not booking:
            raise NotFoundError("Booking not found")
        return booking

    def get_booking_by_public_id(self, public_id: str) -> Booking:
        booking = self.repo.get_by_public_id(self.db, public_id)
        if not booking:
            raise NotFoundError("Booking not found")
        return booking

    def list_bookings(
        self,
        business_id: Optional[int] = None,
        resource_id: Optional[int] = None,
        customer_id: Optional[int] = None,
        status: Optional[BookingStatus] = None,
        start_from: Optional[datetime] = None,
        start_to: Optional[datetime] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> list[Booking]:
        if start_from and start_to and to_utc(start_from) >= to_utc(start_to):
            raise BadRequestError("Date range start must be before its end")
        return self.repo.list_bookings(
            self.db,
            business_id=business_id,
            resource_id=resource_id,
            customer_id=customer_id,
            status=status,
            start_from=to_storage(start_from),
            start_to=to_storage(start_to),
            skip=skip,
            limit=limit,
        )

    def get_history(self, booking_id: int):
        self.get_booking(booking_id)
        return self.repo.get_history(self.db, booking_id)

    # ========================================================================
    # CREATE
    # ========================================================================

    def _raise_for_slot(self, reason: Optional[str]) -> None:
        if reason == DURATION_MISMATCH:
            raise BadRequestError("Slot length does not match the service duration", code=reason)
        if reason == OUTSIDE_OPEN_HOURS:
            raise BadRequestError("Requested slot is outside open hours", code=reason)
        raise ConflictError("Requested slot is not available", code=SLOT_UNAVAILABLE)

    def _business_timezone(self, business_id: int) -> str:
        business = self.db.get(Business, business_id)
        return business.timezone if business else "UTC"

    def create_booking(
        self,
        business_id: int,
        start_at: datetime,
        end_at: Optional[datetime] = None,
        service_id: Optional[int] = None,
        resource_id: Optional[int] = None,
        customer_id: Optional[int] = None,
        metadata: Optional[dict[str, Any]] = None,
        waitlist_entry_id: Optional[int] = None,
        group_booking_id: Optional[int] = None,
        initial_status: Optional[BookingStatus] = None,
        changed_by: Optional[str] = None,
    ) -> Booking:
        """
        Create a booking.

        Feasibility is checked up front, then re-checked under resource locks in the
        same transaction that inserts the row, converts the referenced waitlist entry
        and queues the confirmation.
        """
        business = self.availability.calendar.get_business(business_id)
        service: Optional[Service] = None
        if service_id is not None:
            service = self.availability.get_service(service_id, business_id)
        if customer_id is not None and customer_id <= 0:
            raise BadRequestError("Invalid customer id")

        start_at = to_utc(start_at)
        if start_at < utcnow():
            raise BadRequestError("Cannot book a slot in the past")

        if end_at is None:
            duration = (service.duration_minutes if service else None) or DEFAULT_SERVICE_DURATION_MINUTES
            end_at = start_at + timedelta(minutes=duration)
        end_at = to_utc(end_at)
        if start_at >= end_at:
            raise BadRequestError("Start time must be before end time")

        check = self.availability.check_slot(
            business_id,
            start_at,
            end_at,
            service_id=service_id,
            resource_ids=[resource_id] if resource_id else None,
        )
        if not check.available:
            logger.info(f"Booking rejected for business {business_id}: {check.reason}")
            self._raise_for_slot(check.reason)

        held = list(check.resource_ids)
        primary = resource_id or (held[0] if held else None)
        buffer_before = service.buffer_before_minutes if service else 0
        buffer_after = service.buffer_after_minutes if service else 0

        quote = (
            self.pricing.quote_at(service, start_at, business.timezone)
            if service
            else {"effective_price": 0, "applied_rule": None}
        )
        price = quote["effective_price"]
        rule = quote["applied_rule"]

        if initial_status is None:
            initial_status = BookingStatus.PENDING_PAYMENT if price > 0 else BookingStatus.CONFIRMED

        policy = self.policies.resolve_policy(business_id, service)
        if policy is None:
            logger.warning(
                f"⚠️ No cancellation policy for business {business_id}; booking will cancel without penalty"
            )

        try:
            with transaction(self.db):
                self.conflicts.verify(held, start_at, end_at, buffer_before, buffer_after)

                booking = self.repo.create(
                    self.db,
                    held,
                    business_id=business_id,
                    service_id=service_id,
                    resource_id=primary,
                    customer_id=customer_id,
                    start_at=to_storage(start_at),
                    end_at=to_storage(end_at),
                    buffer_before_minutes=buffer_before or 0,
                    buffer_after_minutes=buffer_after or 0,
                    status=initial_status,
                    price_cents=price,
                    pricing_rule_id=rule["id"] if rule else None,
                    policy_snapshot=policy_snapshot(policy),
                    waitlist_entry_id=waitlist_entry_id,
                    group_booking_id=group_booking_id,
                    extra_data=metadata or {},
                )
                self.repo.add_history(
                    self.db, booking.id, "status", None, initial_status.value, "created", changed_by
                )
                if waitlist_entry_id is not None:
                    self.waitlist.convert(waitlist_entry_id, booking)
                if initial_status == BookingStatus.CONFIRMED:
                    queue_booking_confirmed(self.db, booking)
        except IntegrityError as e:
            logger.error(f"❌ Booking insert failed for business {business_id}: {e}")
            raise ConflictError("Booking could not be stored", code=SLOT_UNAVAILABLE)

        logger.info(
            f"✅ Booking {booking.id} created: business={business_id} resource={primary} "
            f"status={initial_status.value} price={price}"
        )
        return booking

    def create_booking_idempotent(self, idempotency_key: Optional[str], **kwargs):
        """
        Create a booking at most once per idempotency key.

        Returns (booking, outcome). The booking is None while the first request with
        the key is still running.
        """
        if not idempotency_key:
            return self.create_booking(**kwargs), None

        guard = IdempotencyService(self.db)
        payload = normalized_create_payload(kwargs)
        scope = f"{CREATE_SCOPE}:{kwargs['business_id']}"
        outcome = guard.execute(scope, idempotency_key, payload, lambda: self.create_booking(**kwargs))
        if outcome.pending:
            return None, outcome
        return self.get_booking(outcome.booking_id), outcome

    # ========================================================================
    # UPDATE
    # ========================================================================

    def update_booking(
        self,
        booking_id: int,
        start_at: Optional[datetime] = None,
        end_at: Optional[datetime] = None,
        resource_id: Optional[int] = None,
        status: Optional[BookingStatus] = None,
        metadata: Optional[dict[str, Any]] = None,
        reason: Optional[str] = None,
        changed_by: Optional[str] = None,
    ) -> Booking:
        """Reschedule, move resource, change status or merge metadata"""
        booking = self.get_booking(booking_id)

        if status in (BookingStatus.CANCELLED, BookingStatus.NO_SHOW):
            if start_at or end_at or resource_id:
                raise BadRequestError("Cannot reschedule and cancel in one update")
            if status == BookingStatus.CANCELLED:
                return self.cancel_booking(booking_id, reason, changed_by)["booking"]
            return self.mark_no_show(booking_id, changed_by)

        reschedule = start_at is not None or end_at is not None or resource_id is not None
        if reschedule and BookingStatus(booking.status) not in ACTIVE_BOOKING_STATUSES:
            raise BadRequestError(f"Cannot reschedule a {BookingStatus(booking.status).value} booking")

        with transaction(self.db):
            if reschedule:
                self._reschedule(booking, start_at, end_at, resource_id, reason, changed_by)

            if status is not None and status != BookingStatus(booking.status):
                old_status = BookingStatus(booking.status)
                booking.status = ensure_transition(old_status, status, "booking")
                self.repo.add_history(
                    self.db, booking.id, "status", old_status.value, status.value, reason, changed_by
                )
                if status == BookingStatus.CONFIRMED:
                    queue_booking_confirmed(self.db, booking)

            if metadata:
                merged = {**(booking.extra_data or {}), **metadata}
                self.repo.add_history(
                    self.db, booking.id, "metadata", booking.extra_data, merged, reason, changed_by
                )
                booking.extra_data = merged

            self.db.flush()

        logger.info(f"Booking {booking_id} updated")
        return booking

    def _reschedule(self, booking, start_at, end_at, resource_id, reason, changed_by) -> None:
        old_start = from_storage(booking.start_at)
        old_end = from_storage(booking.end_at)
        new_start = to_utc(start_at) if start_at else old_start
        if end_at is not None:
            new_end = to_utc(end_at)
        else:
            new_end = new_start + (old_end - old_start)
        if new_start >= new_end:
            raise BadRequestError("Start time must be before end time")
        if new_start != old_start and new_start < utcnow():
            raise BadRequestError("Cannot move a booking into the past")

        service = None
        if booking.service_id:
            service = self.availability.get_service(booking.service_id, booking.business_id)
        primary = resource_id or booking.resource_id

        check = self.availability.check_slot(
            booking.business_id,
            new_start,
            new_end,
            service_id=booking.service_id,
            resource_ids=[primary] if primary else None,
            exclude_booking_id=booking.id,
        )
        if not check.available:
            self._raise_for_slot(check.reason)

        held = list(check.resource_ids)
        buffer_before = service.buffer_before_minutes if service else booking.buffer_before_minutes
        buffer_after = service.buffer_after_minutes if service else booking.buffer_after_minutes
        self.conflicts.verify(
            held, new_start, new_end, buffer_before, buffer_after, exclude_booking_id=booking.id
        )

        if new_start != old_start:
            self.repo.add_history(
                self.db, booking.id, "start_at", old_start.isoformat(), new_start.isoformat(), reason, changed_by
            )
        if new_end != old_end:
            self.repo.add_history(
                self.db, booking.id, "end_at", old_end.isoformat(), new_end.isoformat(), reason, changed_by
            )
        new_primary = primary or (held[0] if held else None)
        if new_primary != booking.resource_id:
            self.repo.add_history(
                self.db, booking.id, "resource_id", booking.resource_id, new_primary, reason, changed_by
            )

        booking.start_at = to_storage(new_start)
        booking.end_at = to_storage(new_end)
        booking.resource_id = new_primary
        booking.buffer_before_minutes = buffer_before or 0
        booking.buffer_after_minutes = buffer_after or 0
        self.repo.replace_resources(self.db, booking, held)

    # ========================================================================
    # CANCEL / NO-SHOW
    # ========================================================================

    def cancel_booking(
        self,
        booking_id: int,
        reason: Optional[str] = None,
        changed_by: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> dict[str, Any]:
        """
        Cancel a booking under the policy captured at creation.

        The status change, the refund figures and the waitlist offer for the freed
        slot commit together.
        """
        booking = self.get_booking(booking_id)
        old_status = BookingStatus(booking.status)
        ensure_transition(old_status, BookingStatus.CANCELLED, "booking")

        outcome = self.policies.evaluate(
            booking.price_cents, from_storage(booking.start_at), booking.policy_snapshot, now
        )

        with transaction(self.db):
            booking = self.repo.get_by_id(self.db, booking_id, for_update=True)
            booking.status = ensure_transition(booking.status, BookingStatus.CANCELLED, "booking")
            booking.cancelled_at = to_storage(now or utcnow())
            booking.cancellation_reason = reason
            booking.penalty_cents = outcome["penalty_cents"]
            booking.refund_cents = outcome["refund_cents"]
            self.repo.add_history(
                self.db, booking.id, "status", old_status.value, BookingStatus.CANCELLED.value, reason, changed_by
            )
            queue_booking_cancelled(self.db, booking)
            offered = self.waitlist.on_slot_freed(booking, self._business_timezone(booking.business_id))

        logger.info(
            f"Booking {booking_id} cancelled: penalty={outcome['penalty_cents']} "
            f"refund={outcome['refund_cents']} waitlist_offer={offered.id if offered else None}"
        )
        return {
            "booking": booking,
            "refund_cents": outcome["refund_cents"],
            "penalty_cents": outcome["penalty_cents"],
            "waitlist_entry_id": offered.id if offered else None,
        }

    def mark_no_show(self, booking_id: int, changed_by: Optional[str] = None) -> Booking:
        booking = self.get_booking(booking_id)
        if from_storage(booking.start_at) > utcnow():
            raise BadRequestError("Cannot mark a booking as no-show before it starts")

        with transaction(self.db):
            old_status = BookingStatus(booking.status)
            booking.status = ensure_transition(old_status, BookingStatus.NO_SHOW, "booking")
            self.repo.add_history(
                self.db, booking.id, "status", old_status.value, BookingStatus.NO_SHOW.value, None, changed_by
            )
            self.waitlist.on_slot_freed(booking, self._business_timezone(booking.business_id))

        logger.info(f"Booking {booking_id} marked as no-show")
        return booking


def normalized_create_payload(kwargs: dict[str, Any]) -> dict[str, Any]:
    """Canonical form of a create request for idempotency hashing"""
    payload = {}
    for name, value in kwargs.items():
        if name == "changed_by" or value is None:
            continue
        if isinstance(value, datetime):
            value = to_utc(value).isoformat()
        elif isinstance(value, BookingStatus):
            value = value.value
        payload[name] = value
    return payload
