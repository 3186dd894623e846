"""Commit-time double-booking guard"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...exceptions import SLOT_UNAVAILABLE, ConflictError
from ...shared.timeutils import to_storage
from ..availability.repository import AvailabilityRepository
from ..availability.service import booking_occupancy, buffered
from ..calendar.intervals import overlaps
from .repository import BookingRepository

logger = logging.getLogger(__name__)


class ConflictDetector:
    """
    Re-runs the buffered overlap predicate inside the writing transaction.

    Resource rows are locked first, so two writers on the same resource are
    serialized by the database and the second one sees the first's booking.
    Must be called inside transaction(); a conflict aborts the whole unit of work.
    """

    def __init__(self, db: Session):
        self.db = db

    def verify(
        self,
        resource_ids: list[int],
        start_at: datetime,
        end_at: datetime,
        buffer_before: int = 0,
        buffer_after: int = 0,
        exclude_booking_id: Optional[int] = None,
    ) -> None:
        if not resource_ids:
            return

        BookingRepository.lock_resources(self.db, sorted(set(resource_ids)))

        span = buffered(start_at, end_at, buffer_before, buffer_after)
        rows = AvailabilityRepository.get_active_occupancy(
            self.db, resource_ids, to_storage(span.start), to_storage(span.end), exclude_booking_id
        )
        for resource_id, booking in rows:
            other = booking_occupancy(booking)
            if overlaps(span.start, span.end, other.start, other.end):
                logger.warning(
                    f"Conflict on resource {resource_id}: requested slot overlaps booking {booking.id}"
                )
                raise ConflictError(
                    "Requested slot is not available",
                    code=SLOT_UNAVAILABLE,
                    context={"resource_id": resource_id},
                )
