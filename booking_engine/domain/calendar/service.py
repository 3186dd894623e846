"""Calendar service - Resolves open time windows for a business or resource on a date"""

import logging
from datetime import date, datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...database import transaction
from ...exceptions import BadRequestError, ConflictError, NotFoundError
from ...models import Business, Resource
from ...shared.timeutils import from_storage, local_datetime, local_day_bounds, to_local, to_storage, to_utc
from ...shared.validators import parse_hhmm
from .intervals import Interval, intersect, normalize, subtract
from .repository import CalendarRepository

logger = logging.getLogger(__name__)


class CalendarService:
    """Service layer for calendar resolution and calendar reference data"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = CalendarRepository()

    def get_business(self, business_id: int) -> Business:
        business = self.repo.get_business(self.db, business_id)
        if not business:
            raise NotFoundError("Business not found")
        return business

    def get_resource(self, resource_id: int, business_id: Optional[int] = None) -> Resource:
        resource = self.repo.get_resource(self.db, resource_id)
        if not resource:
            raise NotFoundError("Resource not found or inactive")
        if business_id is not None and resource.business_id != business_id:
            raise BadRequestError("Resource does not belong to this business")
        return resource

    def resolve(
        self, business_id: int, target_date: date, resource_id: Optional[int] = None
    ) -> list[Interval]:
        """
        Open windows for a business (and optionally one resource) on a local date.

        Returns a sorted, non-overlapping list of intervals in the business timezone.
        Business hours are the outer bound; a resource with its own working hours is
        closed on weekdays it has no entry for; time-off exceptions are cut out.
        """
        business = self.get_business(business_id)
        tz_name = business.timezone
        weekday = target_date.weekday()

        hour = self.repo.get_business_hour(self.db, business_id, weekday)
        if hour is None or hour.is_closed or not hour.open_time or not hour.close_time:
            return []
        if self.repo.is_holiday(self.db, business_id, target_date):
            return []

        windows = normalize(
            [
                Interval(
                    local_datetime(target_date, parse_hhmm(hour.open_time), tz_name),
                    local_datetime(target_date, parse_hhmm(hour.close_time), tz_name),
                )
            ]
        )
        if not windows or resource_id is None:
            return windows

        self.get_resource(resource_id, business_id)

        working_hours = self.repo.get_working_hours(self.db, resource_id)
        if working_hours:
            day_rows = [row for row in working_hours if row.weekday == weekday]
            if not day_rows:
                return []
            windows = intersect(
                windows,
                [
                    Interval(
                        local_datetime(target_date, parse_hhmm(row.start_time), tz_name),
                        local_datetime(target_date, parse_hhmm(row.end_time), tz_name),
                    )
                    for row in day_rows
                ],
            )

        day_start, day_end = local_day_bounds(target_date, tz_name)
        exceptions = self.repo.get_exceptions_between(
            self.db, resource_id, to_storage(day_start), to_storage(day_end)
        )
        if exceptions:
            cuts = [
                Interval(to_local(from_storage(e.start_at), tz_name), to_local(from_storage(e.end_at), tz_name))
                for e in exceptions
            ]
            windows = subtract(windows, cuts)

        return windows

    # Reference data management

    def set_business_hours(
        self,
        business_id: int,
        weekday: int,
        open_time: Optional[str] = None,
        close_time: Optional[str] = None,
        is_closed: bool = False,
    ):
        self.get_business(business_id)
        if not is_closed:
            if not open_time or not close_time:
                raise BadRequestError("Open and close times are required unless the day is closed")
            if parse_hhmm(open_time) >= parse_hhmm(close_time):
                raise BadRequestError("Open time must be before close time")
        with transaction(self.db):
            hour = self.repo.upsert_business_hour(
                self.db, business_id, weekday, open_time, close_time, is_closed
            )
        logger.info(f"Business {business_id} hours set for weekday {weekday}")
        return hour

    def add_holiday(self, business_id: int, day: date, name: Optional[str] = None):
        self.get_business(business_id)
        try:
            with transaction(self.db):
                holiday = self.repo.add_holiday(self.db, business_id, day, name)
        except IntegrityError:
            raise ConflictError("Holiday already exists for this date")
        logger.info(f"Business {business_id} holiday added: {day.isoformat()}")
        return holiday

    def set_resource_working_hours(self, resource_id: int, rows: list[tuple[int, str, str]]):
        self.get_resource(resource_id)
        for weekday, start, end in rows:
            if parse_hhmm(start) >= parse_hhmm(end):
                raise BadRequestError(f"Working hours on weekday {weekday} must start before they end")
        with transaction(self.db):
            created = self.repo.replace_working_hours(self.db, resource_id, rows)
        logger.info(f"Resource {resource_id} working hours replaced ({len(created)} rows)")
        return created

    def add_resource_exception(
        self, resource_id: int, start_at: datetime, end_at: datetime, reason: Optional[str] = None
    ):
        self.get_resource(resource_id)
        if to_utc(start_at) >= to_utc(end_at):
            raise BadRequestError("Exception start must be before its end")
        with transaction(self.db):
            exception = self.repo.add_exception(
                self.db, resource_id, to_storage(start_at), to_storage(end_at), reason
            )
        logger.info(f"Resource {resource_id} time off added")
        return exception
