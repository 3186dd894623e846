"""Group booking domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from ...states import GroupBookingStatus, ParticipantPaymentStatus, PaymentSplitType


class GroupBookingCreate(BaseModel):
    businessId: int
    organizerCustomerId: int = Field(gt=0)
    serviceId: Optional[int] = None
    resourceId: Optional[int] = None
    startAt: datetime
    endAt: Optional[datetime] = None
    minParticipants: int = Field(ge=1)
    maxParticipants: int = Field(ge=1)
    paymentSplitType: PaymentSplitType = PaymentSplitType.ORGANIZER_PAYS
    totalAmountCents: Optional[int] = Field(default=None, ge=0)
    groupName: Optional[str] = None
    individualAmounts: Optional[dict[int, int]] = None

    @model_validator(mode="after")
    def validate_bounds(self):
        if self.minParticipants > self.maxParticipants:
            raise ValueError("minParticipants must not exceed maxParticipants")
        return self


class GroupJoin(BaseModel):
    customerId: int = Field(gt=0)
    amountCents: Optional[int] = Field(default=None, ge=0)


class GroupParticipantAction(BaseModel):
    customerId: int


class GroupPayment(BaseModel):
    customerId: int
    paymentReference: Optional[str] = None


class GroupCancel(BaseModel):
    reason: Optional[str] = None


class ParticipantResponse(BaseModel):
    customerId: int
    isOrganizer: bool
    amountOwedCents: int
    paymentStatus: ParticipantPaymentStatus
    checkedIn: bool


class GroupBookingResponse(BaseModel):
    id: int
    public_id: str
    businessId: int
    serviceId: Optional[int]
    bookingId: Optional[int]
    organizerCustomerId: int
    groupName: Optional[str]
    minParticipants: int
    maxParticipants: int
    currentParticipants: int
    startAt: datetime
    endAt: datetime
    totalAmountCents: int
    paymentSplitType: PaymentSplitType
    status: GroupBookingStatus
    participants: list[ParticipantResponse] = []
