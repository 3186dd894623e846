"""
Pytest Configuration and Fixtures

Each test gets a fresh in-memory SQLite database with one business open
Monday-Sunday 09:00-18:00 except Tuesday, one staff resource and one
60-minute service that requires it.
"""

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from booking_engine import models
from booking_engine.database import Base

# A Monday far enough ahead that nothing is in the past
MONDAY = date(2030, 5, 6)
TUESDAY = date(2030, 5, 7)


def at(day: date, hhmm: str, tz_name: str = "UTC") -> datetime:
    """Aware datetime for a wall time on a day"""
    hour, minute = (int(part) for part in hhmm.split(":"))
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=ZoneInfo(tz_name))


def naive_utc(value: datetime) -> datetime:
    return value.astimezone(timezone.utc).replace(tzinfo=None)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()


def add_business(db, name="Studio", tz_name="UTC", closed_weekdays=(1,), open_time="09:00", close_time="18:00"):
    business = models.Business(name=name, timezone=tz_name)
    db.add(business)
    db.flush()
    for weekday in range(7):
        closed = weekday in closed_weekdays
        db.add(
            models.BusinessHour(
                business_id=business.id,
                weekday=weekday,
                open_time=None if closed else open_time,
                close_time=None if closed else close_time,
                is_closed=closed,
            )
        )
    db.commit()
    return business


def add_resource(db, business, name="Alex", type="staff", capacity=1):
    resource = models.Resource(business_id=business.id, name=name, type=type, capacity=capacity)
    db.add(resource)
    db.commit()
    return resource


def add_service(db, business, resources=(), duration=60, price=0, before=0, after=0, required=True, policy=None):
    service = models.Service(
        business_id=business.id,
        name="Session",
        duration_minutes=duration,
        price_cents=price,
        buffer_before_minutes=before,
        buffer_after_minutes=after,
        policy_id=policy.id if policy else None,
    )
    db.add(service)
    db.flush()
    for resource in resources:
        db.add(models.ServiceResource(service_id=service.id, resource_id=resource.id, is_required=required))
    db.commit()
    return service


@pytest.fixture
def business(db):
    return add_business(db)


@pytest.fixture
def resource(db, business):
    return add_resource(db, business)


@pytest.fixture
def service(db, business, resource):
    return add_service(db, business, resources=[resource])
