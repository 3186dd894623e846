"""Group booking router - FastAPI endpoints for group bookings"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...database import get_db
from ...models import GroupBooking
from ...shared.timeutils import from_storage
from .schemas import (
    GroupBookingCreate,
    GroupBookingResponse,
    GroupCancel,
    GroupJoin,
    GroupParticipantAction,
    GroupPayment,
    ParticipantResponse,
)
from .service import GroupBookingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/group-bookings", tags=["Group Bookings"])


def get_group_booking_service(db: Session = Depends(get_db)) -> GroupBookingService:
    """Dependency injection for GroupBookingService"""
    return GroupBookingService(db)


def group_response(group: GroupBooking, service: GroupBookingService) -> GroupBookingResponse:
    return GroupBookingResponse(
        id=group.id,
        public_id=group.public_id,
        businessId=group.business_id,
        serviceId=group.service_id,
        bookingId=group.booking_id,
        organizerCustomerId=group.organizer_customer_id,
        groupName=group.group_name,
        minParticipants=group.min_participants,
        maxParticipants=group.max_participants,
        currentParticipants=group.current_participants,
        startAt=from_storage(group.start_at),
        endAt=from_storage(group.end_at),
        totalAmountCents=group.total_amount_cents,
        paymentSplitType=group.payment_split_type,
        status=group.status,
        participants=[
            ParticipantResponse(
                customerId=p.customer_id,
                isOrganizer=p.is_organizer,
                amountOwedCents=p.amount_owed_cents,
                paymentStatus=p.payment_status,
                checkedIn=p.checked_in,
            )
            for p in service.get_participants(group.id)
        ],
    )


@router.post("", response_model=GroupBookingResponse, status_code=201)
async def create_group_booking(
    data: GroupBookingCreate,
    service: GroupBookingService = Depends(get_group_booking_service),
):
    group = service.create_group(
        data.businessId,
        data.organizerCustomerId,
        data.startAt,
        data.minParticipants,
        data.maxParticipants,
        end_at=data.endAt,
        service_id=data.serviceId,
        resource_id=data.resourceId,
        payment_split_type=data.paymentSplitType,
        total_amount_cents=data.totalAmountCents,
        group_name=data.groupName,
        individual_amounts=data.individualAmounts,
    )
    return group_response(group, service)


@router.get("/{group_id}", response_model=GroupBookingResponse)
async def get_group_booking(
    group_id: int, service: GroupBookingService = Depends(get_group_booking_service)
):
    return group_response(service.get_group(group_id), service)


@router.post("/{group_id}/join", response_model=GroupBookingResponse)
async def join_group_booking(
    group_id: int,
    data: GroupJoin,
    service: GroupBookingService = Depends(get_group_booking_service),
):
    return group_response(service.join(group_id, data.customerId, data.amountCents), service)


@router.post("/{group_id}/leave", response_model=GroupBookingResponse)
async def leave_group_booking(
    group_id: int,
    data: GroupParticipantAction,
    service: GroupBookingService = Depends(get_group_booking_service),
):
    return group_response(service.leave(group_id, data.customerId), service)


@router.post("/{group_id}/confirm", response_model=GroupBookingResponse)
async def confirm_group_booking(
    group_id: int, service: GroupBookingService = Depends(get_group_booking_service)
):
    return group_response(service.confirm(group_id), service)


@router.post("/{group_id}/payments", response_model=GroupBookingResponse)
async def record_group_payment(
    group_id: int,
    data: GroupPayment,
    service: GroupBookingService = Depends(get_group_booking_service),
):
    """Record one participant's payment; settlement happens with the payment provider"""
    service.record_payment(group_id, data.customerId, data.paymentReference)
    return group_response(service.get_group(group_id), service)


@router.post("/{group_id}/check-in", response_model=GroupBookingResponse)
async def check_in_participant(
    group_id: int,
    data: GroupParticipantAction,
    service: GroupBookingService = Depends(get_group_booking_service),
):
    service.check_in(group_id, data.customerId)
    return group_response(service.get_group(group_id), service)


@router.post("/{group_id}/cancel", response_model=GroupBookingResponse)
async def cancel_group_booking(
    group_id: int,
    data: Optional[GroupCancel] = None,
    service: GroupBookingService = Depends(get_group_booking_service),
):
    return group_response(service.cancel(group_id, data.reason if data else None), service)
