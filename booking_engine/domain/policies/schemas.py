"""Policy domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class PolicyCreate(BaseModel):
    name: str
    hoursBefore: int = Field(ge=0)
    penaltyPercent: int = Field(ge=0, le=100)
    isDefault: bool = False


class PolicyUpdate(BaseModel):
    name: Optional[str] = None
    hoursBefore: Optional[int] = Field(default=None, ge=0)
    penaltyPercent: Optional[int] = Field(default=None, ge=0, le=100)
    isDefault: Optional[bool] = None


class PolicyResponse(BaseModel):
    id: int
    businessId: int
    name: str
    hoursBefore: int
    penaltyPercent: int
    isDefault: bool
    created_at: Optional[datetime] = None
