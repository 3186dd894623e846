"""
Notification Outbox Service
Queues customer notifications for every booking workflow event
Rows are written in the caller's transaction; delivery belongs to an external dispatcher
"""

import logging
from typing import Any, Optional

from sqlalchemy.orm import Session

from ..models import Booking, GroupBooking, NotificationOutbox, WaitlistEntry
from ..shared.timeutils import from_storage

logger = logging.getLogger(__name__)


def enqueue_notification(
    db: Session,
    business_id: int,
    kind: str,
    template: str,
    customer_id: Optional[int] = None,
    payload: Optional[dict[str, Any]] = None,
) -> NotificationOutbox:
    """
    Queue one notification record

    Args:
        db: Database session (the caller owns the transaction)
        business_id: Tenant the notification belongs to
        kind: Event kind, e.g. booking_confirmed
        template: Template name the dispatcher renders
        customer_id: Recipient, if the event has one
        payload: Template variables

    Returns:
        The queued outbox row
    """
    record = NotificationOutbox(
        business_id=business_id,
        customer_id=customer_id,
        kind=kind,
        template=template,
        payload=payload or {},
        delivery_status="queued",
    )
    db.add(record)
    db.flush()

    if customer_id is None:
        logger.debug(f"⚠️ {kind} notification queued without a recipient (business {business_id})")
    else:
        logger.info(f"📨 Queued {kind} notification for customer {customer_id}")
    return record


def _booking_payload(booking: Booking) -> dict[str, Any]:
    return {
        "booking_id": booking.public_id,
        "start_at": from_storage(booking.start_at).isoformat(),
        "end_at": from_storage(booking.end_at).isoformat(),
        "service_id": booking.service_id,
        "resource_id": booking.resource_id,
        "price_cents": booking.price_cents,
    }


def queue_booking_confirmed(db: Session, booking: Booking) -> NotificationOutbox:
    return enqueue_notification(
        db,
        booking.business_id,
        kind="booking_confirmed",
        template="booking_confirmed",
        customer_id=booking.customer_id,
        payload=_booking_payload(booking),
    )


def queue_booking_cancelled(db: Session, booking: Booking) -> NotificationOutbox:
    payload = _booking_payload(booking)
    payload.update(
        {
            "refund_cents": booking.refund_cents,
            "penalty_cents": booking.penalty_cents,
            "reason": booking.cancellation_reason,
        }
    )
    return enqueue_notification(
        db,
        booking.business_id,
        kind="booking_cancelled",
        template="booking_cancelled",
        customer_id=booking.customer_id,
        payload=payload,
    )


def queue_waitlist_slot_available(db: Session, entry: WaitlistEntry) -> NotificationOutbox:
    """Offer a freed slot to a waitlisted customer"""
    return enqueue_notification(
        db,
        entry.business_id,
        kind="waitlist_slot_available",
        template="waitlist_slot_available",
        customer_id=entry.customer_id,
        payload={
            "waitlist_entry_id": entry.id,
            "service_id": entry.service_id,
            "resource_id": entry.resource_id,
            "offered_start_at": from_storage(entry.offered_start_at).isoformat()
            if entry.offered_start_at
            else None,
            "offered_end_at": from_storage(entry.offered_end_at).isoformat()
            if entry.offered_end_at
            else None,
            "response_deadline": from_storage(entry.response_deadline).isoformat(),
            "notification_count": entry.notification_count,
        },
    )


def queue_group_booking_event(
    db: Session, group: GroupBooking, kind: str, customer_ids: list[int]
) -> list[NotificationOutbox]:
    """Queue one notification per participant for a group booking event"""
    payload = {
        "group_booking_id": group.public_id,
        "group_name": group.group_name,
        "start_at": from_storage(group.start_at).isoformat(),
        "end_at": from_storage(group.end_at).isoformat(),
        "status": group.status.value if hasattr(group.status, "value") else group.status,
    }
    return [
        enqueue_notification(
            db, group.business_id, kind=kind, template=kind, customer_id=customer_id, payload=payload
        )
        for customer_id in customer_ids
    ]
