"""Availability router - FastAPI endpoints for slot checks and slot listing"""

import logging
from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...database import get_db
from .schemas import (
    AvailableResourcesResponse,
    SlotCheckRequest,
    SlotCheckResponse,
    SlotListResponse,
    SlotResponse,
)
from .service import AvailabilityService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/availability", tags=["Availability"])


def get_availability_service(db: Session = Depends(get_db)) -> AvailabilityService:
    """Dependency injection for AvailabilityService"""
    return AvailabilityService(db)


@router.get("/slots", response_model=SlotListResponse)
async def list_slots(
    business_id: int = Query(...),
    service_id: int = Query(...),
    target_date: date = Query(..., alias="date"),
    resource_id: Optional[int] = Query(None),
    granularity: Optional[int] = Query(None, gt=0),
    duration_minutes: Optional[int] = Query(None, gt=0),
    service: AvailabilityService = Depends(get_availability_service),
):
    """Feasible start times for a service on a date"""
    slots = service.enumerate_slots(
        business_id,
        service_id,
        target_date,
        resource_id=resource_id,
        granularity_minutes=granularity,
        duration_minutes=duration_minutes,
    )
    return SlotListResponse(
        businessId=business_id,
        serviceId=service_id,
        date=target_date.isoformat(),
        slots=[SlotResponse(**slot) for slot in slots],
    )


@router.post("/check", response_model=SlotCheckResponse)
async def check_slot(
    data: SlotCheckRequest,
    service: AvailabilityService = Depends(get_availability_service),
):
    """Check whether one explicit slot can be booked"""
    result = service.check_slot(
        data.businessId,
        data.startAt,
        data.endAt,
        service_id=data.serviceId,
        resource_ids=data.resourceIds,
        duration_minutes=data.durationMinutes,
    )
    return SlotCheckResponse(
        available=result.available,
        reason=result.reason,
        resourceIds=list(result.resource_ids),
    )


@router.get("/resources", response_model=AvailableResourcesResponse)
async def available_resources(
    business_id: int = Query(...),
    service_id: int = Query(...),
    start_at: datetime = Query(...),
    end_at: datetime = Query(...),
    service: AvailabilityService = Depends(get_availability_service),
):
    """Resources linked to a service that are free for the slot"""
    resource_ids = service.available_resources(business_id, service_id, start_at, end_at)
    return AvailableResourcesResponse(
        serviceId=service_id, startAt=start_at, endAt=end_at, resourceIds=resource_ids
    )
