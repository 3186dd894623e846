"""Availability domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from ...shared.timeutils import to_utc


class SlotCheckRequest(BaseModel):
    """Schema for checking one explicit slot"""

    businessId: int
    serviceId: Optional[int] = None
    resourceIds: list[int] = []
    startAt: datetime
    endAt: datetime
    durationMinutes: Optional[int] = Field(default=None, gt=0)

    @model_validator(mode="after")
    def validate_interval(self):
        if to_utc(self.startAt) >= to_utc(self.endAt):
            raise ValueError("startAt must be before endAt")
        return self


class SlotCheckResponse(BaseModel):
    available: bool
    reason: Optional[str] = None
    resourceIds: list[int] = []


class SlotResponse(BaseModel):
    start: datetime
    end: datetime
    resourceIds: list[int] = []


class SlotListResponse(BaseModel):
    businessId: int
    serviceId: int
    date: str
    slots: list[SlotResponse]


class AvailableResourcesResponse(BaseModel):
    serviceId: int
    startAt: datetime
    endAt: datetime
    resourceIds: list[int]
