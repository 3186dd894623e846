"""Calendar repository - Database operations for hours, holidays and resource schedules"""

from datetime import date, datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models import (
    Business,
    BusinessHoliday,
    BusinessHour,
    Resource,
    ResourceException,
    ResourceWorkingHour,
)


class CalendarRepository:
    """Repository for calendar database operations"""

    @staticmethod
    def get_business(db: Session, business_id: int) -> Optional[Business]:
        """Get an active, non-deleted business"""
        return (
            db.query(Business)
            .filter(
                Business.id == business_id,
                Business.is_active.is_(True),
                Business.deleted_at.is_(None),
            )
            .first()
        )

    @staticmethod
    def get_resource(db: Session, resource_id: int) -> Optional[Resource]:
        """Get an active, non-deleted resource"""
        return (
            db.query(Resource)
            .filter(
                Resource.id == resource_id,
                Resource.is_active.is_(True),
                Resource.deleted_at.is_(None),
            )
            .first()
        )

    @staticmethod
    def get_business_hour(db: Session, business_id: int, weekday: int) -> Optional[BusinessHour]:
        return (
            db.query(BusinessHour)
            .filter(BusinessHour.business_id == business_id, BusinessHour.weekday == weekday)
            .first()
        )

    @staticmethod
    def is_holiday(db: Session, business_id: int, day: date) -> bool:
        return (
            db.query(BusinessHoliday.id)
            .filter(BusinessHoliday.business_id == business_id, BusinessHoliday.date == day)
            .first()
            is not None
        )

    @staticmethod
    def get_working_hours(db: Session, resource_id: int) -> list[ResourceWorkingHour]:
        """All working-hour rows of a resource; empty means it inherits business hours"""
        return (
            db.query(ResourceWorkingHour)
            .filter(ResourceWorkingHour.resource_id == resource_id)
            .order_by(ResourceWorkingHour.weekday, ResourceWorkingHour.start_time)
            .all()
        )

    @staticmethod
    def get_exceptions_between(
        db: Session, resource_id: int, start: datetime, end: datetime
    ) -> list[ResourceException]:
        """Time-off ranges overlapping [start, end) (naive UTC bounds)"""
        return (
            db.query(ResourceException)
            .filter(
                ResourceException.resource_id == resource_id,
                ResourceException.start_at < end,
                ResourceException.end_at > start,
            )
            .order_by(ResourceException.start_at)
            .all()
        )

    @staticmethod
    def upsert_business_hour(
        db: Session,
        business_id: int,
        weekday: int,
        open_time: Optional[str],
        close_time: Optional[str],
        is_closed: bool,
    ) -> BusinessHour:
        hour = CalendarRepository.get_business_hour(db, business_id, weekday)
        if hour is None:
            hour = BusinessHour(business_id=business_id, weekday=weekday)
            db.add(hour)
        hour.open_time = open_time
        hour.close_time = close_time
        hour.is_closed = is_closed
        db.flush()
        return hour

    @staticmethod
    def add_holiday(db: Session, business_id: int, day: date, name: Optional[str] = None) -> BusinessHoliday:
        holiday = BusinessHoliday(business_id=business_id, date=day, name=name)
        db.add(holiday)
        db.flush()
        return holiday

    @staticmethod
    def replace_working_hours(
        db: Session, resource_id: int, rows: list[tuple[int, str, str]]
    ) -> list[ResourceWorkingHour]:
        db.query(ResourceWorkingHour).filter(ResourceWorkingHour.resource_id == resource_id).delete(
            synchronize_session=False
        )
        created = [
            ResourceWorkingHour(resource_id=resource_id, weekday=weekday, start_time=start, end_time=end)
            for weekday, start, end in rows
        ]
        db.add_all(created)
        db.flush()
        return created

    @staticmethod
    def add_exception(
        db: Session, resource_id: int, start_at: datetime, end_at: datetime, reason: Optional[str] = None
    ) -> ResourceException:
        exception = ResourceException(
            resource_id=resource_id, start_at=start_at, end_at=end_at, reason=reason
        )
        db.add(exception)
        db.flush()
        return exception
