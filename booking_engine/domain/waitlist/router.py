"""Waitlist router - FastAPI endpoints for waitlist entries"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...database import get_db
from ...models import WaitlistEntry
from ...shared.timeutils import from_storage
from ...states import WaitlistStatus
from .schemas import WaitlistEntryCreate, WaitlistEntryResponse, WaitlistNotify
from .service import WaitlistService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/waitlist", tags=["Waitlist"])


def get_waitlist_service(db: Session = Depends(get_db)) -> WaitlistService:
    """Dependency injection for WaitlistService"""
    return WaitlistService(db)


def entry_response(entry: WaitlistEntry) -> WaitlistEntryResponse:
    return WaitlistEntryResponse(
        id=entry.id,
        businessId=entry.business_id,
        customerId=entry.customer_id,
        serviceId=entry.service_id,
        resourceId=entry.resource_id,
        preferredDate=entry.preferred_date,
        preferredTimeStart=entry.preferred_time_start,
        preferredTimeEnd=entry.preferred_time_end,
        status=entry.status,
        priority=entry.priority,
        notificationCount=entry.notification_count,
        lastNotifiedAt=from_storage(entry.last_notified_at),
        responseDeadline=from_storage(entry.response_deadline),
        offeredStartAt=from_storage(entry.offered_start_at),
        offeredEndAt=from_storage(entry.offered_end_at),
        convertedBookingId=entry.converted_booking_id,
        created_at=from_storage(entry.created_at),
    )


@router.post("", response_model=WaitlistEntryResponse, status_code=201)
async def add_to_waitlist(
    data: WaitlistEntryCreate,
    service: WaitlistService = Depends(get_waitlist_service),
):
    entry = service.add_entry(
        data.businessId,
        data.customerId,
        service_id=data.serviceId,
        resource_id=data.resourceId,
        preferred_date=data.preferredDate,
        preferred_time_start=data.preferredTimeStart,
        preferred_time_end=data.preferredTimeEnd,
        priority=data.priority,
    )
    return entry_response(entry)


@router.get("", response_model=list[WaitlistEntryResponse])
async def list_waitlist(
    business_id: int = Query(...),
    service_id: Optional[int] = Query(None),
    customer_id: Optional[int] = Query(None),
    status: Optional[WaitlistStatus] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    service: WaitlistService = Depends(get_waitlist_service),
):
    """Waitlist in notification order"""
    entries = service.list_entries(business_id, service_id, customer_id, status, skip, limit)
    return [entry_response(e) for e in entries]


@router.get("/{entry_id}", response_model=WaitlistEntryResponse)
async def get_waitlist_entry(entry_id: int, service: WaitlistService = Depends(get_waitlist_service)):
    return entry_response(service.get_entry(entry_id))


@router.post("/{entry_id}/cancel", response_model=WaitlistEntryResponse)
async def cancel_waitlist_entry(entry_id: int, service: WaitlistService = Depends(get_waitlist_service)):
    return entry_response(service.cancel_entry(entry_id))


@router.post("/{entry_id}/notify", response_model=WaitlistEntryResponse)
async def notify_waitlist_entry(
    entry_id: int,
    data: Optional[WaitlistNotify] = None,
    service: WaitlistService = Depends(get_waitlist_service),
):
    data = data or WaitlistNotify()
    return entry_response(service.notify_entry(entry_id, data.slotStart, data.slotEnd))
