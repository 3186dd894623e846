"""Availability service - Validates explicit slots and enumerates feasible start times"""

import logging
from datetime import date, datetime, timedelta
from typing import NamedTuple, Optional

from sqlalchemy.orm import Session

from ...config import SLOT_GRANULARITY_MINUTES
from ...exceptions import SLOT_UNAVAILABLE, BadRequestError, NotFoundError
from ...models import Booking, Service
from ...shared.timeutils import from_storage, minutes, to_local, to_storage, to_utc, utcnow
from ..calendar.intervals import Interval, contained_in_any, intersect, overlaps
from ..calendar.service import CalendarService
from .repository import AvailabilityRepository

logger = logging.getLogger(__name__)

DURATION_MISMATCH = "duration_mismatch"
OUTSIDE_OPEN_HOURS = "outside_open_hours"

NO_RESOURCE_AVAILABLE = "no_resource_available"


class SlotCheck(NamedTuple):
    available: bool
    reason: Optional[str] = None
    resource_ids: tuple[int, ...] = ()


class ResourcePlan(NamedTuple):
    """Resources a slot needs: all of `required`, plus one of `pool` when `pool` is set"""

    required: tuple[int, ...]
    pool: tuple[int, ...]


def buffered(start: datetime, end: datetime, before: Optional[int], after: Optional[int]) -> Interval:
    """Occupancy span of [start, end) including its buffers"""
    return Interval(start - minutes(before), end + minutes(after))


def booking_occupancy(booking: Booking) -> Interval:
    return buffered(
        from_storage(booking.start_at),
        from_storage(booking.end_at),
        booking.buffer_before_minutes,
        booking.buffer_after_minutes,
    )


class AvailabilityService:
    """Service layer for slot feasibility"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = AvailabilityRepository()
        self.calendar = CalendarService(db)

    def get_service(self, service_id: int, business_id: Optional[int] = None) -> Service:
        service = self.repo.get_service(self.db, service_id)
        if not service:
            raise NotFoundError("Service not found or inactive")
        if business_id is not None and service.business_id != business_id:
            raise BadRequestError("Service does not belong to this business")
        return service

    def plan_resources(
        self, business_id: int, service: Optional[Service], resource_ids: Optional[list[int]] = None
    ) -> ResourcePlan:
        """
        Work out which resources a slot needs.

        Explicit resources are always required, together with every resource the
        service marks as required. Without explicit resources and without required
        links, the service's optional links form a pool of which any one will do.
        """
        explicit = []
        for resource_id in resource_ids or []:
            self.calendar.get_resource(resource_id, business_id)
            if resource_id not in explicit:
                explicit.append(resource_id)

        if service is None:
            return ResourcePlan(tuple(explicit), ())

        links = self.repo.get_service_links(self.db, service.id)
        required = list(explicit)
        for link in links:
            if link.is_required and link.resource_id not in required:
                required.append(link.resource_id)

        pool = ()
        if not required:
            pool = tuple(link.resource_id for link in links)
        return ResourcePlan(tuple(required), pool)

    def _expected_duration(self, service: Optional[Service], duration_minutes: Optional[int]) -> Optional[int]:
        if duration_minutes is not None:
            return duration_minutes
        if service is not None:
            return service.duration_minutes
        return None

    def _buffers(self, service: Optional[Service]) -> tuple[int, int]:
        if service is None:
            return 0, 0
        return service.buffer_before_minutes or 0, service.buffer_after_minutes or 0

    def _occupancy_by_resource(
        self, resource_ids, span: Interval, exclude_booking_id: Optional[int] = None
    ) -> dict[int, list[Interval]]:
        occupied = {resource_id: [] for resource_id in resource_ids}
        rows = self.repo.get_active_occupancy(
            self.db, resource_ids, to_storage(span.start), to_storage(span.end), exclude_booking_id
        )
        for resource_id, booking in rows:
            occupied[resource_id].append(booking_occupancy(booking))
        return occupied

    def _windows_for(self, business_id: int, tz_name: str, span: Interval, resource_id: Optional[int]):
        """Calendar windows for every local date the span touches"""
        first = to_local(span.start, tz_name).date()
        last = to_local(span.end, tz_name).date()
        windows = []
        day = first
        while day <= last:
            windows.extend(self.calendar.resolve(business_id, day, resource_id))
            day += timedelta(days=1)
        return windows

    def _resource_free(self, business_id, tz_name, resource_id, span, occupied, window_cache) -> Optional[str]:
        if resource_id not in window_cache:
            window_cache[resource_id] = self._windows_for(business_id, tz_name, span, resource_id)
        if not contained_in_any(window_cache[resource_id], span.start, span.end):
            return OUTSIDE_OPEN_HOURS
        for other in occupied.get(resource_id, []):
            if overlaps(span.start, span.end, other.start, other.end):
                return SLOT_UNAVAILABLE
        return None

    def check_slot(
        self,
        business_id: int,
        start_at: datetime,
        end_at: datetime,
        service_id: Optional[int] = None,
        resource_ids: Optional[list[int]] = None,
        duration_minutes: Optional[int] = None,
        exclude_booking_id: Optional[int] = None,
    ) -> SlotCheck:
        """
        Check one explicit slot.

        The buffered span [start - buffer_before, end + buffer_after) must lie inside an
        open window of every needed resource and must not overlap the buffered span of
        any active booking on those resources.
        """
        business = self.calendar.get_business(business_id)
        service = self.get_service(service_id, business_id) if service_id else None

        start_at, end_at = to_utc(start_at), to_utc(end_at)
        if start_at >= end_at:
            raise BadRequestError("Start time must be before end time")

        expected = self._expected_duration(service, duration_minutes)
        if expected is not None and end_at - start_at != timedelta(minutes=expected):
            return SlotCheck(False, DURATION_MISMATCH)

        plan = self.plan_resources(business_id, service, resource_ids)
        before, after = self._buffers(service)
        span = buffered(start_at, end_at, before, after)
        return self._check_span(business, span, plan, exclude_booking_id)

    def _check_span(self, business, span: Interval, plan: ResourcePlan, exclude_booking_id=None, caches=None):
        window_cache, occupied = caches if caches else ({}, None)
        if occupied is None:
            occupied = self._occupancy_by_resource(plan.required + plan.pool, span, exclude_booking_id)

        if not plan.required and not plan.pool:
            if None not in window_cache:
                window_cache[None] = self._windows_for(business.id, business.timezone, span, None)
            if not contained_in_any(window_cache[None], span.start, span.end):
                return SlotCheck(False, OUTSIDE_OPEN_HOURS)
            return SlotCheck(True)

        for resource_id in plan.required:
            reason = self._resource_free(
                business.id, business.timezone, resource_id, span, occupied, window_cache
            )
            if reason:
                return SlotCheck(False, reason, (resource_id,))

        if plan.pool:
            reasons = []
            for resource_id in plan.pool:
                reason = self._resource_free(
                    business.id, business.timezone, resource_id, span, occupied, window_cache
                )
                if reason is None:
                    return SlotCheck(True, None, (resource_id,))
                reasons.append(reason)
            # Report a booking conflict ahead of closed calendars
            return SlotCheck(False, SLOT_UNAVAILABLE if SLOT_UNAVAILABLE in reasons else NO_RESOURCE_AVAILABLE)

        return SlotCheck(True, None, plan.required)

    def _walk_windows(self, business_id: int, target_date: date, plan: ResourcePlan, windows):
        """Intervals candidate starts are stepped through, so each resource's own openings are on the grid"""
        if plan.required:
            walk = windows
            for resource_id in plan.required:
                walk = intersect(walk, self.calendar.resolve(business_id, target_date, resource_id))
            return walk
        if plan.pool:
            return [
                window
                for resource_id in plan.pool
                for window in self.calendar.resolve(business_id, target_date, resource_id)
            ]
        return windows

    def enumerate_slots(
        self,
        business_id: int,
        service_id: int,
        target_date: date,
        resource_id: Optional[int] = None,
        granularity_minutes: Optional[int] = None,
        duration_minutes: Optional[int] = None,
        include_past: bool = False,
    ) -> list[dict]:
        """
        Feasible start times for a service on a local date.

        Candidates are walked at the configured granularity across the windows the needed
        resources are open in; a candidate is kept only when every required resource is
        free at once.
        """
        business = self.calendar.get_business(business_id)
        service = self.get_service(service_id, business_id)
        duration = self._expected_duration(service, duration_minutes)
        if not duration:
            raise BadRequestError("Service has no duration configured; check an explicit slot instead")

        step = timedelta(minutes=granularity_minutes or SLOT_GRANULARITY_MINUTES)
        if step <= timedelta(0):
            raise BadRequestError("Granularity must be positive")

        plan = self.plan_resources(business_id, service, [resource_id] if resource_id else None)
        before, after = self._buffers(service)
        length = timedelta(minutes=duration)

        windows = self.calendar.resolve(business_id, target_date)
        if not windows:
            return []

        day_span = Interval(windows[0].start, windows[-1].end)
        occupied = self._occupancy_by_resource(plan.required + plan.pool, day_span)
        window_cache: dict = {}
        not_before = None if include_past else utcnow()

        starts = set()
        for window in self._walk_windows(business_id, target_date, plan, windows):
            candidate = window.start + minutes(before)
            while candidate + length + minutes(after) <= window.end:
                if not_before is None or candidate >= not_before:
                    starts.add(candidate)
                candidate += step

        slots = []
        for candidate in sorted(starts):
            span = buffered(candidate, candidate + length, before, after)
            check = self._check_span(business, span, plan, caches=(window_cache, occupied))
            if check.available:
                slots.append(
                    {
                        "start": candidate,
                        "end": candidate + length,
                        "resourceIds": list(check.resource_ids),
                    }
                )

        logger.debug(f"Enumerated {len(slots)} slots for service {service_id} on {target_date.isoformat()}")
        return slots

    def available_resources(
        self, business_id: int, service_id: int, start_at: datetime, end_at: datetime
    ) -> list[int]:
        """Every active resource linked to the service that is free for the slot"""
        business = self.calendar.get_business(business_id)
        service = self.get_service(service_id, business_id)
        start_at, end_at = to_utc(start_at), to_utc(end_at)
        if start_at >= end_at:
            raise BadRequestError("Start time must be before end time")

        links = self.repo.get_service_links(self.db, service.id)
        before, after = self._buffers(service)
        span = buffered(start_at, end_at, before, after)
        candidates = tuple(link.resource_id for link in links)
        occupied = self._occupancy_by_resource(candidates, span)
        window_cache: dict = {}
        return [
            resource_id
            for resource_id in candidates
            if self._resource_free(
                business.id, business.timezone, resource_id, span, occupied, window_cache
            )
            is None
        ]
