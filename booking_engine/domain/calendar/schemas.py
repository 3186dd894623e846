"""Calendar domain schemas - Pydantic models for validation"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ...shared.validators import validate_hhmm


class BusinessHourSet(BaseModel):
    """Schema for setting one weekday's business hours"""

    weekday: int = Field(ge=0, le=6)
    openTime: Optional[str] = None
    closeTime: Optional[str] = None
    isClosed: bool = False

    @field_validator("openTime", "closeTime")
    @classmethod
    def validate_time(cls, v):
        return validate_hhmm(v)


class BusinessHourResponse(BaseModel):
    weekday: int
    openTime: Optional[str]
    closeTime: Optional[str]
    isClosed: bool


class HolidayCreate(BaseModel):
    date: date
    name: Optional[str] = None


class HolidayResponse(BaseModel):
    id: int
    date: date
    name: Optional[str]


class WorkingHourEntry(BaseModel):
    weekday: int = Field(ge=0, le=6)
    startTime: str
    endTime: str

    @field_validator("startTime", "endTime")
    @classmethod
    def validate_time(cls, v):
        return validate_hhmm(v)


class WorkingHoursSet(BaseModel):
    """Replaces all working hours of a resource; an empty list means it follows business hours"""

    hours: list[WorkingHourEntry] = []


class ResourceExceptionCreate(BaseModel):
    startAt: datetime
    endAt: datetime
    reason: Optional[str] = None


class ResourceExceptionResponse(BaseModel):
    id: int
    resourceId: int
    startAt: datetime
    endAt: datetime
    reason: Optional[str]


class OpenWindow(BaseModel):
    start: datetime
    end: datetime


class OpenWindowsResponse(BaseModel):
    businessId: int
    resourceId: Optional[int] = None
    date: date
    timezone: str
    windows: list[OpenWindow]
