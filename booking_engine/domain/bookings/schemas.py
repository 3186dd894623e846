"""Booking domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

from ...shared.timeutils import to_utc
from ...states import BookingStatus

MetadataValue = Union[str, int, float, bool, None]
MAX_METADATA_KEYS = 50


def validate_metadata(value: Optional[dict]) -> Optional[dict]:
    """Flat extension map: string keys, scalar values"""
    if value is None:
        return value
    if len(value) > MAX_METADATA_KEYS:
        raise ValueError(f"metadata supports at most {MAX_METADATA_KEYS} keys")
    for key in value:
        if not key or len(key) > 64:
            raise ValueError("metadata keys must be 1-64 characters")
    return value


class BookingCreate(BaseModel):
    """Schema for creating a booking"""

    businessId: int
    serviceId: Optional[int] = None
    resourceId: Optional[int] = None
    customerId: Optional[int] = Field(default=None, gt=0)
    startAt: datetime
    endAt: Optional[datetime] = None
    metadata: Optional[dict[str, MetadataValue]] = None
    waitlistEntryId: Optional[int] = None

    @field_validator("metadata")
    @classmethod
    def check_metadata(cls, v):
        return validate_metadata(v)

    @model_validator(mode="after")
    def validate_interval(self):
        if self.endAt is not None and to_utc(self.startAt) >= to_utc(self.endAt):
            raise ValueError("startAt must be before endAt")
        return self


class BookingUpdate(BaseModel):
    """Schema for rescheduling or changing a booking"""

    startAt: Optional[datetime] = None
    endAt: Optional[datetime] = None
    resourceId: Optional[int] = None
    status: Optional[BookingStatus] = None
    metadata: Optional[dict[str, MetadataValue]] = None
    reason: Optional[str] = None

    @field_validator("metadata")
    @classmethod
    def check_metadata(cls, v):
        return validate_metadata(v)


class BookingCancel(BaseModel):
    reason: Optional[str] = None


class BookingResponse(BaseModel):
    """Schema for booking response"""

    id: int
    public_id: str
    businessId: int
    serviceId: Optional[int]
    resourceId: Optional[int]
    resourceIds: list[int] = []
    customerId: Optional[int]
    startAt: datetime
    endAt: datetime
    status: BookingStatus
    priceCents: int
    pricingRuleId: Optional[int] = None
    metadata: Optional[dict] = None
    waitlistEntryId: Optional[int] = None
    groupBookingId: Optional[int] = None
    cancelledAt: Optional[datetime] = None
    cancellationReason: Optional[str] = None
    refundCents: Optional[int] = None
    penaltyCents: Optional[int] = None
    created_at: datetime


class CancelResponse(BaseModel):
    bookingId: int
    status: BookingStatus
    refund_cents: int
    penalty_cents: int
    waitlistEntryId: Optional[int] = None


class BookingHistoryResponse(BaseModel):
    id: int
    field: str
    oldValue: Optional[str]
    newValue: Optional[str]
    reason: Optional[str]
    changedBy: Optional[str]
    created_at: datetime
