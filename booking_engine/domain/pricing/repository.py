"""Pricing repository - Database operations for pricing rules"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import PricingRule


class PricingRepository:
    """Repository for pricing rule database operations"""

    @staticmethod
    def get_by_id(db: Session, rule_id: int) -> Optional[PricingRule]:
        return db.query(PricingRule).filter(PricingRule.id == rule_id).first()

    @staticmethod
    def get_rules(db: Session, service_id: int, active_only: bool = True) -> list[PricingRule]:
        """Rules for a service, highest priority first, newest first within a priority"""
        query = db.query(PricingRule).filter(PricingRule.service_id == service_id)
        if active_only:
            query = query.filter(PricingRule.is_active.is_(True))
        return query.order_by(
            PricingRule.priority.desc(), PricingRule.created_at.desc(), PricingRule.id.desc()
        ).all()

    @staticmethod
    def create(db: Session, **fields) -> PricingRule:
        rule = PricingRule(**fields)
        db.add(rule)
        db.flush()
        return rule

    @staticmethod
    def update(db: Session, rule: PricingRule, **fields) -> PricingRule:
        for field, value in fields.items():
            setattr(rule, field, value)
        db.flush()
        return rule
