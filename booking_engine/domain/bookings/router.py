"""Booking router - FastAPI endpoints for booking operations"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Response
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ...database import get_db
from ...models import Booking
from ...shared.timeutils import from_storage
from ...states import BookingStatus
from .schemas import (
    BookingCancel,
    BookingCreate,
    BookingHistoryResponse,
    BookingResponse,
    BookingUpdate,
    CancelResponse,
)
from .service import BookingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["Bookings"])


def get_booking_service(db: Session = Depends(get_db)) -> BookingService:
    """Dependency injection for BookingService"""
    return BookingService(db)


def booking_response(b: Booking) -> BookingResponse:
    return BookingResponse(
        id=b.id,
        public_id=b.public_id,
        businessId=b.business_id,
        serviceId=b.service_id,
        resourceId=b.resource_id,
        resourceIds=sorted(link.resource_id for link in b.held_resources),
        customerId=b.customer_id,
        startAt=from_storage(b.start_at),
        endAt=from_storage(b.end_at),
        status=b.status,
        priceCents=b.price_cents,
        pricingRuleId=b.pricing_rule_id,
        metadata=b.extra_data,
        waitlistEntryId=b.waitlist_entry_id,
        groupBookingId=b.group_booking_id,
        cancelledAt=from_storage(b.cancelled_at),
        cancellationReason=b.cancellation_reason,
        refundCents=b.refund_cents,
        penaltyCents=b.penalty_cents,
        created_at=from_storage(b.created_at),
    )


# ============================================================================
# CORE CRUD OPERATIONS
# ============================================================================


@router.post("", response_model=BookingResponse, status_code=201)
async def create_booking(
    data: BookingCreate,
    response: Response,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    service: BookingService = Depends(get_booking_service),
):
    """Create a booking; retries carrying the same Idempotency-Key return the original booking"""
    booking, outcome = service.create_booking_idempotent(
        idempotency_key,
        business_id=data.businessId,
        start_at=data.startAt,
        end_at=data.endAt,
        service_id=data.serviceId,
        resource_id=data.resourceId,
        customer_id=data.customerId,
        metadata=data.metadata,
        waitlist_entry_id=data.waitlistEntryId,
    )
    if booking is None:
        return JSONResponse(
            status_code=202,
            content={"status": "pending", "detail": "A request with this idempotency key is still running"},
        )
    if outcome is not None and outcome.replayed:
        response.headers["Idempotent-Replayed"] = "true"
    return booking_response(booking)


@router.get("", response_model=list[BookingResponse])
async def list_bookings(
    business_id: Optional[int] = Query(None),
    resource_id: Optional[int] = Query(None),
    customer_id: Optional[int] = Query(None),
    status: Optional[BookingStatus] = Query(None),
    start_from: Optional[datetime] = Query(None),
    start_to: Optional[datetime] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    service: BookingService = Depends(get_booking_service),
):
    bookings = service.list_bookings(
        business_id, resource_id, customer_id, status, start_from, start_to, skip, limit
    )
    return [booking_response(b) for b in bookings]


@router.get("/public/{public_id}", response_model=BookingResponse)
async def get_booking_by_public_id(public_id: str, service: BookingService = Depends(get_booking_service)):
    """Look up a booking by the public ID shared with the customer"""
    return booking_response(service.get_booking_by_public_id(public_id))


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(booking_id: int, service: BookingService = Depends(get_booking_service)):
    return booking_response(service.get_booking(booking_id))


@router.patch("/{booking_id}", response_model=BookingResponse)
async def update_booking(
    booking_id: int,
    data: BookingUpdate,
    service: BookingService = Depends(get_booking_service),
):
    booking = service.update_booking(
        booking_id,
        start_at=data.startAt,
        end_at=data.endAt,
        resource_id=data.resourceId,
        status=data.status,
        metadata=data.metadata,
        reason=data.reason,
    )
    return booking_response(booking)


# ============================================================================
# STATUS OPERATIONS
# ============================================================================


@router.post("/{booking_id}/cancel", response_model=CancelResponse)
async def cancel_booking(
    booking_id: int,
    data: Optional[BookingCancel] = None,
    service: BookingService = Depends(get_booking_service),
):
    """Cancel a booking and report the refund and penalty"""
    result = service.cancel_booking(booking_id, reason=data.reason if data else None)
    return CancelResponse(
        bookingId=booking_id,
        status=result["booking"].status,
        refund_cents=result["refund_cents"],
        penalty_cents=result["penalty_cents"],
        waitlistEntryId=result["waitlist_entry_id"],
    )


@router.post("/{booking_id}/no-show", response_model=BookingResponse)
async def mark_no_show(booking_id: int, service: BookingService = Depends(get_booking_service)):
    return booking_response(service.mark_no_show(booking_id))


@router.get("/{booking_id}/history", response_model=list[BookingHistoryResponse])
async def get_booking_history(booking_id: int, service: BookingService = Depends(get_booking_service)):
    return [
        BookingHistoryResponse(
            id=h.id,
            field=h.field_changed,
            oldValue=h.old_value,
            newValue=h.new_value,
            reason=h.reason,
            changedBy=h.changed_by,
            created_at=from_storage(h.created_at),
        )
        for h in service.get_history(booking_id)
    ]
