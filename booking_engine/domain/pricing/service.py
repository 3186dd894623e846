"""Pricing service - Selects the winning pricing rule and applies its modifier"""

import logging
from datetime import date, datetime, time
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

from sqlalchemy.orm import Session

from ...database import transaction
from ...exceptions import BadRequestError, NotFoundError
from ...models import PricingRule, Service
from ...shared.timeutils import to_local
from ...shared.validators import parse_hhmm
from ...states import ModifierType
from ..availability.repository import AvailabilityRepository
from .repository import PricingRepository

logger = logging.getLogger(__name__)


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def apply_modifier(base_cents: int, modifier_type, modifier_value: float) -> int:
    """
    Apply one modifier to a price in minor units.

    percentage: base * (1 + value / 100), rounded half-up
    fixed: base + value
    The result never drops below zero.
    """
    base = Decimal(base_cents)
    value = Decimal(str(modifier_value))
    if ModifierType(modifier_type) == ModifierType.PERCENTAGE:
        price = base * (Decimal(100) + value) / Decimal(100)
    else:
        price = base + value
    return max(0, round_half_up(price))


def time_in_window(target: time, start: Optional[str], end: Optional[str]) -> bool:
    """[start, end) wall-time window; a window whose end precedes its start wraps midnight"""
    if not start and not end:
        return True
    start_t = parse_hhmm(start) if start else time(0, 0)
    if not end:
        return target >= start_t
    end_t = parse_hhmm(end)
    if start_t <= end_t:
        return start_t <= target < end_t
    return target >= start_t or target < end_t


def rule_matches(rule: PricingRule, target_date: date, target_time: time) -> bool:
    if not rule.is_active:
        return False
    if rule.days_of_week and target_date.weekday() not in rule.days_of_week:
        return False
    if rule.start_date and target_date < rule.start_date:
        return False
    if rule.end_date and target_date > rule.end_date:
        return False
    return time_in_window(target_time, rule.start_time, rule.end_time)


def select_rule(rules: list[PricingRule], target_date: date, target_time: time) -> Optional[PricingRule]:
    """Highest priority matching rule; equal priorities go to the newest rule"""
    matching = [rule for rule in rules if rule_matches(rule, target_date, target_time)]
    if not matching:
        return None
    return max(matching, key=lambda rule: (rule.priority, rule.created_at, rule.id))


class PricingService:
    """Service layer for price evaluation and pricing rule management"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = PricingRepository()

    def _get_service(self, service_id: int) -> Service:
        service = AvailabilityRepository.get_service(self.db, service_id)
        if not service:
            raise NotFoundError("Service not found or inactive")
        return service

    def quote(self, service: Service, target_date: date, target_time: time) -> dict[str, Any]:
        """Price of a service at a local date and wall time"""
        base = service.price_cents or 0
        rule = select_rule(self.repo.get_rules(self.db, service.id), target_date, target_time)
        if rule is None:
            return {"base_price": base, "effective_price": base, "applied_rule": None}

        effective = apply_modifier(base, rule.modifier_type, rule.modifier_value)
        return {
            "base_price": base,
            "effective_price": effective,
            "applied_rule": {
                "id": rule.id,
                "name": rule.name,
                "modifier_type": ModifierType(rule.modifier_type).value,
                "modifier_value": rule.modifier_value,
                "priority": rule.priority,
            },
        }

    def quote_at(self, service: Service, start_at: datetime, tz_name: str) -> dict[str, Any]:
        """Price of a service for a slot starting at an absolute instant"""
        local = to_local(start_at, tz_name)
        return self.quote(service, local.date(), local.time().replace(second=0, microsecond=0))

    def preview(self, service_id: int, target_date: date, target_time: time) -> dict[str, Any]:
        return self.quote(self._get_service(service_id), target_date, target_time)

    # Rule management

    def list_rules(self, service_id: int, include_inactive: bool = False) -> list[PricingRule]:
        self._get_service(service_id)
        return self.repo.get_rules(self.db, service_id, active_only=not include_inactive)

    def get_rule(self, rule_id: int) -> PricingRule:
        rule = self.repo.get_by_id(self.db, rule_id)
        if not rule:
            raise NotFoundError("Pricing rule not found")
        return rule

    def _validate_fields(self, fields: dict) -> None:
        start_date, end_date = fields.get("start_date"), fields.get("end_date")
        if start_date and end_date and start_date > end_date:
            raise BadRequestError("Pricing rule start date must not be after its end date")
        start_time, end_time = fields.get("start_time"), fields.get("end_time")
        if start_time and end_time and start_time == end_time:
            raise BadRequestError("Pricing rule time window must not be empty")

    def create_rule(self, service_id: int, **fields) -> PricingRule:
        self._get_service(service_id)
        self._validate_fields(fields)
        with transaction(self.db):
            rule = self.repo.create(self.db, service_id=service_id, **fields)
        logger.info(f"Pricing rule {rule.id} created for service {service_id}")
        return rule

    def update_rule(self, rule_id: int, **fields) -> PricingRule:
        rule = self.get_rule(rule_id)
        merged = {
            "start_date": rule.start_date,
            "end_date": rule.end_date,
            "start_time": rule.start_time,
            "end_time": rule.end_time,
            **fields,
        }
        self._validate_fields(merged)
        with transaction(self.db):
            self.repo.update(self.db, rule, **fields)
        logger.info(f"Pricing rule {rule_id} updated: {', '.join(sorted(fields)) or 'no changes'}")
        return rule

    def deactivate_rule(self, rule_id: int) -> PricingRule:
        rule = self.get_rule(rule_id)
        with transaction(self.db):
            self.repo.update(self.db, rule, is_active=False)
        logger.info(f"Pricing rule {rule_id} deactivated")
        return rule
