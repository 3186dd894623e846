"""Availability repository - Reads services, resource links and active occupancy"""

from datetime import datetime, timedelta
from typing import Iterable, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...models import Booking, BookingResource, Resource, Service, ServiceResource
from ...states import ACTIVE_BOOKING_STATUSES


class AvailabilityRepository:
    """Repository for availability queries"""

    @staticmethod
    def get_service(db: Session, service_id: int) -> Optional[Service]:
        """Get an active, non-deleted service"""
        return (
            db.query(Service)
            .filter(
                Service.id == service_id,
                Service.is_active.is_(True),
                Service.deleted_at.is_(None),
            )
            .first()
        )

    @staticmethod
    def get_service_links(db: Session, service_id: int) -> list[ServiceResource]:
        """Links from a service to its active resources, required ones first"""
        return (
            db.query(ServiceResource)
            .join(Resource, Resource.id == ServiceResource.resource_id)
            .filter(
                ServiceResource.service_id == service_id,
                Resource.is_active.is_(True),
                Resource.deleted_at.is_(None),
            )
            .order_by(ServiceResource.is_required.desc(), ServiceResource.resource_id)
            .all()
        )

    @staticmethod
    def get_active_occupancy(
        db: Session,
        resource_ids: Iterable[int],
        start: datetime,
        end: datetime,
        exclude_booking_id: Optional[int] = None,
    ) -> list[tuple[int, Booking]]:
        """
        Active bookings holding any of the resources whose buffered span may touch [start, end).

        Bounds are naive UTC. The SQL filter widens the window by the largest stored
        buffers, so callers still apply the exact buffered-overlap predicate.
        """
        resource_ids = list(resource_ids)
        if not resource_ids:
            return []

        active = list(ACTIVE_BOOKING_STATUSES)

        def scoped(query):
            query = query.join(BookingResource, BookingResource.booking_id == Booking.id).filter(
                BookingResource.resource_id.in_(resource_ids),
                Booking.status.in_(active),
                Booking.deleted_at.is_(None),
            )
            if exclude_booking_id is not None:
                query = query.filter(Booking.id != exclude_booking_id)
            return query

        max_before, max_after = scoped(
            db.query(func.max(Booking.buffer_before_minutes), func.max(Booking.buffer_after_minutes))
        ).one()

        rows = (
            scoped(db.query(BookingResource.resource_id, Booking))
            .filter(
                Booking.start_at < end + timedelta(minutes=max_before or 0),
                Booking.end_at > start - timedelta(minutes=max_after or 0),
            )
            .order_by(Booking.start_at)
            .all()
        )
        return [(resource_id, booking) for resource_id, booking in rows]
