"""Waitlist service - Tiered selection, notification and expiry of waitlist entries"""

import logging
from datetime import date, datetime, time, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ...config import WAITLIST_MAX_NOTIFICATIONS, WAITLIST_RESPONSE_WINDOW_HOURS
from ...database import transaction
from ...exceptions import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from ...models import Booking, WaitlistEntry
from ...services.notification_service import queue_waitlist_slot_available
from ...shared.timeutils import from_storage, local_datetime, to_local, to_storage, to_utc, utcnow
from ...shared.validators import parse_hhmm
from ...states import WaitlistPriority, WaitlistStatus, ensure_transition
from ..calendar.intervals import overlaps
from ..calendar.repository import CalendarRepository
from .repository import WaitlistRepository

logger = logging.getLogger(__name__)


def selection_key(entry: WaitlistEntry):
    """Higher tier first, then first come first served"""
    return (-WaitlistPriority(entry.priority).rank, entry.created_at, entry.id)


def entry_matches_slot(entry: WaitlistEntry, slot_start: datetime, slot_end: datetime, tz_name: str) -> bool:
    """Whether the entry's preferred date and time window intersect the slot"""
    local_start = to_local(slot_start, tz_name)
    day = local_start.date()
    if entry.preferred_date and entry.preferred_date != day:
        return False
    if not entry.preferred_time_start and not entry.preferred_time_end:
        return True

    window_start = local_datetime(day, parse_hhmm(entry.preferred_time_start or "00:00"), tz_name)
    if entry.preferred_time_end:
        window_end = local_datetime(day, parse_hhmm(entry.preferred_time_end), tz_name)
    else:
        window_end = local_datetime(day + timedelta(days=1), time(0, 0), tz_name)
    return overlaps(window_start, window_end, to_utc(slot_start), to_utc(slot_end))


class WaitlistService:
    """Service layer for the waitlist state machine"""

    def __init__(
        self,
        db: Session,
        response_window_hours: Optional[int] = None,
        max_notifications: Optional[int] = None,
    ):
        self.db = db
        self.repo = WaitlistRepository()
        self.response_window = timedelta(hours=response_window_hours or WAITLIST_RESPONSE_WINDOW_HOURS)
        self.max_notifications = max_notifications or WAITLIST_MAX_NOTIFICATIONS

    # Lazy expiry

    def _evaluate(self, entry: WaitlistEntry, now: datetime) -> bool:
        """
        Apply a missed response deadline. Returns True when the entry changed.

        Under the notification cap the entry goes back in the queue, at the cap it expires.
        """
        if WaitlistStatus(entry.status) != WaitlistStatus.NOTIFIED or entry.response_deadline is None:
            return False
        if from_storage(entry.response_deadline) > now:
            return False

        if entry.notification_count >= self.max_notifications:
            entry.status = ensure_transition(entry.status, WaitlistStatus.EXPIRED, "waitlist")
            logger.info(f"Waitlist entry {entry.id} expired after {entry.notification_count} notifications")
        else:
            entry.status = ensure_transition(entry.status, WaitlistStatus.ACTIVE, "waitlist")
            logger.info(f"Waitlist entry {entry.id} missed its deadline; back in the queue")
        entry.response_deadline = None
        entry.offered_start_at = None
        entry.offered_end_at = None
        return True

    def _evaluate_all(self, entries: list[WaitlistEntry]) -> list[WaitlistEntry]:
        now = utcnow()
        with transaction(self.db):
            changed = [entry for entry in entries if self._evaluate(entry, now)]
            if changed:
                self.db.flush()
        return entries

    def expire_overdue(self) -> int:
        """Sweep every notified entry past its deadline"""
        with transaction(self.db):
            overdue = self.repo.get_overdue_notified(self.db, to_storage(utcnow()))
            now = utcnow()
            changed = sum(1 for entry in overdue if self._evaluate(entry, now))
            self.db.flush()
        if changed:
            logger.info(f"Waitlist sweep updated {changed} overdue entries")
        return changed

    # Entries

    def get_entry(self, entry_id: int) -> WaitlistEntry:
        entry = self.repo.get_by_id(self.db, entry_id)
        if not entry:
            raise NotFoundError("Waitlist entry not found")
        self._evaluate_all([entry])
        return entry

    def list_entries(
        self,
        business_id: int,
        service_id: Optional[int] = None,
        customer_id: Optional[int] = None,
        status: Optional[WaitlistStatus] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> list[WaitlistEntry]:
        entries = self.repo.list_entries(self.db, business_id, service_id, customer_id, None, 0, None)
        self._evaluate_all(entries)
        if status is not None:
            entries = [e for e in entries if WaitlistStatus(e.status) == status]
        entries.sort(key=selection_key)
        return entries[skip : skip + limit]

    def add_entry(
        self,
        business_id: int,
        customer_id: int,
        service_id: Optional[int] = None,
        resource_id: Optional[int] = None,
        preferred_date: Optional[date] = None,
        preferred_time_start: Optional[str] = None,
        preferred_time_end: Optional[str] = None,
        priority: WaitlistPriority = WaitlistPriority.NORMAL,
    ) -> WaitlistEntry:
        if not CalendarRepository.get_business(self.db, business_id):
            raise NotFoundError("Business not found")
        if resource_id is not None:
            resource = CalendarRepository.get_resource(self.db, resource_id)
            if not resource or resource.business_id != business_id:
                raise NotFoundError("Resource not found or inactive")
        if preferred_time_start and preferred_time_end:
            if parse_hhmm(preferred_time_start) >= parse_hhmm(preferred_time_end):
                raise BadRequestError("Preferred time window must start before it ends")

        existing = self.repo.get_open_for_customer(self.db, business_id, service_id, customer_id)
        if existing:
            self._evaluate_all([existing])
            if WaitlistStatus(existing.status) in (WaitlistStatus.ACTIVE, WaitlistStatus.NOTIFIED):
                raise ConflictError(
                    "Customer already has an open waitlist entry for this service",
                    context={"waitlist_entry_id": existing.id},
                )

        with transaction(self.db):
            entry = self.repo.create(
                self.db,
                business_id=business_id,
                customer_id=customer_id,
                service_id=service_id,
                resource_id=resource_id,
                preferred_date=preferred_date,
                preferred_time_start=preferred_time_start,
                preferred_time_end=preferred_time_end,
                priority=priority,
                status=WaitlistStatus.ACTIVE,
            )
        logger.info(f"Customer {customer_id} joined waitlist for business {business_id} ({priority.value})")
        return entry

    def cancel_entry(self, entry_id: int) -> WaitlistEntry:
        entry = self.get_entry(entry_id)
        with transaction(self.db):
            entry.status = ensure_transition(entry.status, WaitlistStatus.CANCELLED, "waitlist")
            entry.response_deadline = None
            self.db.flush()
        logger.info(f"Waitlist entry {entry_id} cancelled")
        return entry

    def _notify(self, entry: WaitlistEntry, slot_start: Optional[datetime], slot_end: Optional[datetime]):
        now = utcnow()
        entry.status = ensure_transition(entry.status, WaitlistStatus.NOTIFIED, "waitlist")
        entry.notification_count = (entry.notification_count or 0) + 1
        if entry.notified_at is None:
            entry.notified_at = to_storage(now)
        entry.last_notified_at = to_storage(now)
        entry.response_deadline = to_storage(now + self.response_window)
        entry.offered_start_at = to_storage(slot_start)
        entry.offered_end_at = to_storage(slot_end)
        self.db.flush()
        queue_waitlist_slot_available(self.db, entry)
        logger.info(
            f"📣 Waitlist entry {entry.id} notified (attempt {entry.notification_count}, "
            f"priority {WaitlistPriority(entry.priority).value})"
        )

    def notify_entry(
        self,
        entry_id: int,
        slot_start: Optional[datetime] = None,
        slot_end: Optional[datetime] = None,
    ) -> WaitlistEntry:
        """Notify one entry explicitly, optionally offering a slot"""
        if (slot_start is None) != (slot_end is None):
            raise BadRequestError("Offered slot needs both a start and an end")
        if slot_start is not None and to_utc(slot_start) >= to_utc(slot_end):
            raise BadRequestError("Offered slot must start before it ends")
        entry = self.get_entry(entry_id)
        with transaction(self.db):
            self._notify(entry, slot_start, slot_end)
        return entry

    def on_slot_freed(self, booking: Booking, tz_name: str) -> Optional[WaitlistEntry]:
        """
        Offer a freed slot to the best matching active entry.

        Runs inside the caller's transaction so the freeing status change and the
        notification commit together.
        """
        slot_start = from_storage(booking.start_at)
        slot_end = from_storage(booking.end_at)
        held = {link.resource_id for link in booking.held_resources} or {booking.resource_id}

        with transaction(self.db):
            # Entries past their deadline rejoin the queue before the selection
            now = utcnow()
            overdue = self.repo.get_overdue_notified(
                self.db, to_storage(now), booking.business_id, booking.service_id
            )
            for entry in overdue:
                self._evaluate(entry, now)
            self.db.flush()

            candidates = self.repo.get_active_candidates(self.db, booking.business_id, booking.service_id)
            matching = [
                entry
                for entry in candidates
                if (entry.resource_id is None or entry.resource_id in held)
                and entry_matches_slot(entry, slot_start, slot_end, tz_name)
            ]
            if not matching:
                logger.debug(f"No waitlist match for freed booking {booking.id}")
                return None

            selected = min(matching, key=selection_key)
            self._notify(selected, slot_start, slot_end)
        return selected

    def convert(self, entry_id: int, booking: Booking) -> WaitlistEntry:
        """Mark an entry converted by a booking; runs inside the booking's transaction"""
        entry = self.repo.get_by_id(self.db, entry_id, for_update=True)
        if not entry:
            raise NotFoundError("Waitlist entry not found")
        if entry.business_id != booking.business_id:
            raise BadRequestError("Waitlist entry belongs to another business")
        if booking.customer_id is not None and entry.customer_id != booking.customer_id:
            raise ForbiddenError("Waitlist entry belongs to another customer")

        with transaction(self.db):
            entry.status = ensure_transition(entry.status, WaitlistStatus.CONVERTED, "waitlist")
            entry.converted_booking_id = booking.id
            entry.response_deadline = None
            self.db.flush()
        logger.info(f"✅ Waitlist entry {entry_id} converted by booking {booking.id}")
        return entry
