"""Booking repository - Database operations for bookings"""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy.orm import Session

from ...models import Booking, BookingHistory, BookingResource, Resource
from ...states import BookingStatus


class BookingRepository:
    """Repository for booking database operations"""

    @staticmethod
    def get_by_id(db: Session, booking_id: int, for_update: bool = False) -> Optional[Booking]:
        query = db.query(Booking).filter(Booking.id == booking_id, Booking.deleted_at.is_(None))
        if for_update:
            query = query.with_for_update()
        return query.first()

    @staticmethod
    def get_by_public_id(db: Session, public_id: str) -> Optional[Booking]:
        return (
            db.query(Booking)
            .filter(Booking.public_id == public_id, Booking.deleted_at.is_(None))
            .first()
        )

    @staticmethod
    def list_bookings(
        db: Session,
        business_id: Optional[int] = None,
        resource_id: Optional[int] = None,
        customer_id: Optional[int] = None,
        status: Optional[BookingStatus] = None,
        start_from: Optional[datetime] = None,
        start_to: Optional[datetime] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> list[Booking]:
        """Bookings ordered by start time; date bounds are naive UTC, end exclusive"""
        query = db.query(Booking).filter(Booking.deleted_at.is_(None))
        if business_id is not None:
            query = query.filter(Booking.business_id == business_id)
        if resource_id is not None:
            query = query.filter(
                Booking.id.in_(
                    db.query(BookingResource.booking_id).filter(BookingResource.resource_id == resource_id)
                )
            )
        if customer_id is not None:
            query = query.filter(Booking.customer_id == customer_id)
        if status is not None:
            query = query.filter(Booking.status == status)
        if start_from is not None:
            query = query.filter(Booking.start_at >= start_from)
        if start_to is not None:
            query = query.filter(Booking.start_at < start_to)
        return query.order_by(Booking.start_at, Booking.id).offset(skip).limit(limit).all()

    @staticmethod
    def lock_resources(db: Session, resource_ids: list[int]) -> list[Resource]:
        """Row-lock resources in id order so concurrent writers queue per resource"""
        if not resource_ids:
            return []
        return (
            db.query(Resource)
            .filter(Resource.id.in_(resource_ids))
            .order_by(Resource.id)
            .with_for_update()
            .all()
        )

    @staticmethod
    def create(db: Session, resource_ids: list[int], **fields) -> Booking:
        booking = Booking(**fields)
        booking.held_resources = [BookingResource(resource_id=rid) for rid in resource_ids]
        db.add(booking)
        db.flush()
        return booking

    @staticmethod
    def replace_resources(db: Session, booking: Booking, resource_ids: list[int]) -> None:
        current = {link.resource_id: link for link in booking.held_resources}
        booking.held_resources = [
            current.get(rid) or BookingResource(resource_id=rid) for rid in resource_ids
        ]
        db.flush()

    @staticmethod
    def add_history(
        db: Session,
        booking_id: int,
        field_changed: str,
        old_value: Any,
        new_value: Any,
        reason: Optional[str] = None,
        changed_by: Optional[str] = None,
    ) -> BookingHistory:
        entry = BookingHistory(
            booking_id=booking_id,
            field_changed=field_changed,
            old_value=None if old_value is None else str(old_value),
            new_value=None if new_value is None else str(new_value),
            reason=reason,
            changed_by=changed_by,
        )
        db.add(entry)
        db.flush()
        return entry

    @staticmethod
    def get_history(db: Session, booking_id: int) -> list[BookingHistory]:
        return (
            db.query(BookingHistory)
            .filter(BookingHistory.booking_id == booking_id)
            .order_by(BookingHistory.created_at, BookingHistory.id)
            .all()
        )
