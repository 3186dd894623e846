"""Calendar router - FastAPI endpoints for hours, holidays and open windows"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...database import get_db
from ...shared.timeutils import from_storage
from .schemas import (
    BusinessHourResponse,
    BusinessHourSet,
    HolidayCreate,
    HolidayResponse,
    OpenWindow,
    OpenWindowsResponse,
    ResourceExceptionCreate,
    ResourceExceptionResponse,
    WorkingHoursSet,
)
from .service import CalendarService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Calendar"])


def get_calendar_service(db: Session = Depends(get_db)) -> CalendarService:
    """Dependency injection for CalendarService"""
    return CalendarService(db)


@router.get("/businesses/{business_id}/open-windows", response_model=OpenWindowsResponse)
async def get_open_windows(
    business_id: int,
    target_date: date = Query(..., alias="date"),
    resource_id: Optional[int] = Query(None),
    service: CalendarService = Depends(get_calendar_service),
):
    """Open windows for a business, or one of its resources, on a local date"""
    business = service.get_business(business_id)
    windows = service.resolve(business_id, target_date, resource_id)
    return OpenWindowsResponse(
        businessId=business_id,
        resourceId=resource_id,
        date=target_date,
        timezone=business.timezone,
        windows=[OpenWindow(start=w.start, end=w.end) for w in windows],
    )


@router.put("/businesses/{business_id}/hours", response_model=BusinessHourResponse)
async def set_business_hours(
    business_id: int,
    data: BusinessHourSet,
    service: CalendarService = Depends(get_calendar_service),
):
    hour = service.set_business_hours(
        business_id, data.weekday, data.openTime, data.closeTime, data.isClosed
    )
    return BusinessHourResponse(
        weekday=hour.weekday,
        openTime=hour.open_time,
        closeTime=hour.close_time,
        isClosed=hour.is_closed,
    )


@router.post("/businesses/{business_id}/holidays", response_model=HolidayResponse, status_code=201)
async def add_holiday(
    business_id: int,
    data: HolidayCreate,
    service: CalendarService = Depends(get_calendar_service),
):
    holiday = service.add_holiday(business_id, data.date, data.name)
    return HolidayResponse(id=holiday.id, date=holiday.date, name=holiday.name)


@router.put("/resources/{resource_id}/working-hours")
async def set_working_hours(
    resource_id: int,
    data: WorkingHoursSet,
    service: CalendarService = Depends(get_calendar_service),
):
    rows = service.set_resource_working_hours(
        resource_id, [(h.weekday, h.startTime, h.endTime) for h in data.hours]
    )
    return {"resourceId": resource_id, "count": len(rows)}


@router.post(
    "/resources/{resource_id}/exceptions",
    response_model=ResourceExceptionResponse,
    status_code=201,
)
async def add_resource_exception(
    resource_id: int,
    data: ResourceExceptionCreate,
    service: CalendarService = Depends(get_calendar_service),
):
    exception = service.add_resource_exception(resource_id, data.startAt, data.endAt, data.reason)
    return ResourceExceptionResponse(
        id=exception.id,
        resourceId=exception.resource_id,
        startAt=from_storage(exception.start_at),
        endAt=from_storage(exception.end_at),
        reason=exception.reason,
    )
