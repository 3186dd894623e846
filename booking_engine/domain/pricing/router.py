"""Pricing router - FastAPI endpoints for price preview and pricing rules"""

import logging
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ...database import get_db
from ...models import PricingRule
from ...shared.validators import parse_hhmm
from .schemas import (
    PricePreviewResponse,
    PricingRuleCreate,
    PricingRuleResponse,
    PricingRuleUpdate,
)
from .service import PricingService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Pricing"])

# API field name -> model column
RULE_FIELDS = {
    "name": "name",
    "daysOfWeek": "days_of_week",
    "startTime": "start_time",
    "endTime": "end_time",
    "startDate": "start_date",
    "endDate": "end_date",
    "modifierType": "modifier_type",
    "modifierValue": "modifier_value",
    "priority": "priority",
    "isActive": "is_active",
}


def get_pricing_service(db: Session = Depends(get_db)) -> PricingService:
    """Dependency injection for PricingService"""
    return PricingService(db)


def rule_response(rule: PricingRule) -> PricingRuleResponse:
    return PricingRuleResponse(
        id=rule.id,
        serviceId=rule.service_id,
        name=rule.name,
        daysOfWeek=rule.days_of_week,
        startTime=rule.start_time,
        endTime=rule.end_time,
        startDate=rule.start_date,
        endDate=rule.end_date,
        modifierType=rule.modifier_type,
        modifierValue=rule.modifier_value,
        priority=rule.priority,
        isActive=rule.is_active,
        created_at=rule.created_at,
    )


@router.get("/services/{service_id}/price", response_model=PricePreviewResponse)
async def preview_price(
    service_id: int,
    target_date: date = Query(..., alias="date"),
    target_time: str = Query(..., alias="time"),
    service: PricingService = Depends(get_pricing_service),
):
    """Price preview for a service at a local date and time"""
    try:
        wall_time = parse_hhmm(target_time)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    quote = service.preview(service_id, target_date, wall_time)
    return PricePreviewResponse(serviceId=service_id, **quote)


@router.get("/services/{service_id}/pricing-rules", response_model=list[PricingRuleResponse])
async def list_pricing_rules(
    service_id: int,
    include_inactive: bool = Query(False),
    service: PricingService = Depends(get_pricing_service),
):
    return [rule_response(r) for r in service.list_rules(service_id, include_inactive)]


@router.post(
    "/services/{service_id}/pricing-rules", response_model=PricingRuleResponse, status_code=201
)
async def create_pricing_rule(
    service_id: int,
    data: PricingRuleCreate,
    service: PricingService = Depends(get_pricing_service),
):
    fields = {RULE_FIELDS[k]: v for k, v in data.model_dump().items()}
    return rule_response(service.create_rule(service_id, **fields))


@router.patch("/pricing-rules/{rule_id}", response_model=PricingRuleResponse)
async def update_pricing_rule(
    rule_id: int,
    data: PricingRuleUpdate,
    service: PricingService = Depends(get_pricing_service),
):
    fields = {RULE_FIELDS[k]: v for k, v in data.model_dump(exclude_unset=True).items()}
    return rule_response(service.update_rule(rule_id, **fields))


@router.delete("/pricing-rules/{rule_id}", response_model=PricingRuleResponse)
async def deactivate_pricing_rule(
    rule_id: int,
    service: PricingService = Depends(get_pricing_service),
):
    """Deactivate a pricing rule; rules are kept for price history"""
    return rule_response(service.deactivate_rule(rule_id))
