"""Waitlist domain schemas - Pydantic models for validation"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...shared.validators import validate_hhmm
from ...states import WaitlistPriority, WaitlistStatus


class WaitlistEntryCreate(BaseModel):
    businessId: int
    customerId: int
    serviceId: Optional[int] = None
    resourceId: Optional[int] = None
    preferredDate: Optional[date] = None
    preferredTimeStart: Optional[str] = None
    preferredTimeEnd: Optional[str] = None
    priority: WaitlistPriority = WaitlistPriority.NORMAL

    @field_validator("preferredTimeStart", "preferredTimeEnd")
    @classmethod
    def validate_time(cls, v):
        return validate_hhmm(v)


class WaitlistNotify(BaseModel):
    """Explicit notification, optionally offering a concrete slot"""

    slotStart: Optional[datetime] = None
    slotEnd: Optional[datetime] = None


class WaitlistEntryResponse(BaseModel):
    id: int
    businessId: int
    customerId: int
    serviceId: Optional[int]
    resourceId: Optional[int]
    preferredDate: Optional[date]
    preferredTimeStart: Optional[str]
    preferredTimeEnd: Optional[str]
    status: WaitlistStatus
    priority: WaitlistPriority
    notificationCount: int
    lastNotifiedAt: Optional[datetime]
    responseDeadline: Optional[datetime]
    offeredStartAt: Optional[datetime]
    offeredEndAt: Optional[datetime]
    convertedBookingId: Optional[int]
    created_at: datetime
