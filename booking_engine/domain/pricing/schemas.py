"""Pricing domain schemas - Pydantic models for validation"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...shared.validators import validate_hhmm, validate_weekdays
from ...states import ModifierType


class PricingRuleCreate(BaseModel):
    """Schema for creating a pricing rule"""

    name: str
    daysOfWeek: Optional[list[int]] = None
    startTime: Optional[str] = None
    endTime: Optional[str] = None
    startDate: Optional[date] = None
    endDate: Optional[date] = None
    modifierType: ModifierType
    modifierValue: float
    priority: int = 2

    @field_validator("startTime", "endTime")
    @classmethod
    def validate_time(cls, v):
        return validate_hhmm(v)

    @field_validator("daysOfWeek")
    @classmethod
    def validate_days(cls, v):
        return validate_weekdays(v)


class PricingRuleUpdate(BaseModel):
    """Schema for updating a pricing rule"""

    name: Optional[str] = None
    daysOfWeek: Optional[list[int]] = None
    startTime: Optional[str] = None
    endTime: Optional[str] = None
    startDate: Optional[date] = None
    endDate: Optional[date] = None
    modifierType: Optional[ModifierType] = None
    modifierValue: Optional[float] = None
    priority: Optional[int] = None
    isActive: Optional[bool] = None

    @field_validator("startTime", "endTime")
    @classmethod
    def validate_time(cls, v):
        return validate_hhmm(v)

    @field_validator("daysOfWeek")
    @classmethod
    def validate_days(cls, v):
        return validate_weekdays(v)


class PricingRuleResponse(BaseModel):
    id: int
    serviceId: int
    name: str
    daysOfWeek: Optional[list[int]]
    startTime: Optional[str]
    endTime: Optional[str]
    startDate: Optional[date]
    endDate: Optional[date]
    modifierType: ModifierType
    modifierValue: float
    priority: int
    isActive: bool
    created_at: Optional[datetime] = None


class AppliedRule(BaseModel):
    id: int
    name: str
    modifier_type: ModifierType
    modifier_value: float
    priority: int


class PricePreviewResponse(BaseModel):
    serviceId: int
    base_price: int
    effective_price: int
    applied_rule: Optional[AppliedRule] = None

