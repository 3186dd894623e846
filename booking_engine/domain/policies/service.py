"""Policy service - Cancellation penalties and cancellation policy management"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...database import transaction
from ...exceptions import BadRequestError, ConflictError, NotFoundError
from ...models import CancellationPolicy, Service
from ...shared.timeutils import hours_between, utcnow
from ...shared.validators import validate_percent
from ..pricing.service import round_half_up
from .repository import PolicyRepository

logger = logging.getLogger(__name__)


def policy_snapshot(policy: Optional[CancellationPolicy]) -> Optional[dict[str, Any]]:
    """Terms of a policy as stored on a booking at creation"""
    if policy is None:
        return None
    return {
        "id": policy.id,
        "name": policy.name,
        "hours_before": policy.hours_before,
        "penalty_percent": policy.penalty_percent,
    }


def compute_penalty(
    amount_cents: int,
    start_at: datetime,
    hours_threshold: int,
    penalty_percent: int,
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    """
    Penalty and refund for cancelling a booking.

    Cancelling at least `hours_threshold` hours ahead is free; otherwise the penalty is
    penalty_percent of the amount, rounded half-up. The refund never drops below zero.
    """
    now = now or utcnow()
    hours_before = hours_between(now, start_at)
    amount = max(0, amount_cents or 0)

    if hours_before >= hours_threshold:
        penalty = 0
    else:
        penalty = round_half_up(Decimal(amount) * Decimal(penalty_percent) / Decimal(100))

    return {
        "hours_before": hours_before,
        "penalty_cents": penalty,
        "refund_cents": max(0, amount - penalty),
    }


class PolicyService:
    """Service layer for cancellation policies"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = PolicyRepository()

    def resolve_policy(self, business_id: int, service: Optional[Service] = None) -> Optional[CancellationPolicy]:
        """The service's own policy, else the business default"""
        if service is not None and service.policy_id:
            policy = self.repo.get_by_id(self.db, service.policy_id)
            if policy:
                return policy
        return self.repo.get_default(self.db, business_id)

    def evaluate(
        self,
        amount_cents: int,
        start_at: datetime,
        snapshot: Optional[dict[str, Any]],
        now: Optional[datetime] = None,
    ) -> dict[str, Any]:
        """Penalty for a booking under its stored policy terms; no terms means a free cancellation"""
        if not snapshot:
            return {
                "hours_before": hours_between(now or utcnow(), start_at),
                "penalty_cents": 0,
                "refund_cents": max(0, amount_cents or 0),
                "policy_id": None,
            }
        result = compute_penalty(
            amount_cents, start_at, snapshot["hours_before"], snapshot["penalty_percent"], now
        )
        result["policy_id"] = snapshot.get("id")
        return result

    # Policy management

    def list_policies(self, business_id: int) -> list[CancellationPolicy]:
        return self.repo.get_by_business(self.db, business_id)

    def get_policy(self, policy_id: int) -> CancellationPolicy:
        policy = self.repo.get_by_id(self.db, policy_id)
        if not policy:
            raise NotFoundError("Cancellation policy not found")
        return policy

    def _validate_terms(self, hours_before: Optional[int], penalty_percent: Optional[int]) -> None:
        if hours_before is not None and hours_before < 0:
            raise BadRequestError("hours_before must not be negative")
        try:
            validate_percent(penalty_percent)
        except ValueError as e:
            raise BadRequestError(str(e))

    def create_policy(
        self,
        business_id: int,
        name: str,
        hours_before: int,
        penalty_percent: int,
        is_default: bool = False,
    ) -> CancellationPolicy:
        self._validate_terms(hours_before, penalty_percent)
        try:
            with transaction(self.db):
                if is_default:
                    self.repo.clear_default(self.db, business_id)
                policy = self.repo.create(
                    self.db,
                    business_id=business_id,
                    name=name,
                    hours_before=hours_before,
                    penalty_percent=penalty_percent,
                    is_default=is_default,
                )
        except IntegrityError:
            raise ConflictError("Another default cancellation policy was set concurrently")

        logger.info(f"Cancellation policy {policy.id} created for business {business_id} (default={is_default})")
        return policy

    def update_policy(self, policy_id: int, **fields) -> CancellationPolicy:
        policy = self.get_policy(policy_id)
        self._validate_terms(fields.get("hours_before"), fields.get("penalty_percent"))
        try:
            with transaction(self.db):
                if fields.get("is_default"):
                    self.repo.clear_default(self.db, policy.business_id, keep_id=policy.id)
                self.repo.update(self.db, policy, **fields)
        except IntegrityError:
            raise ConflictError("Another default cancellation policy was set concurrently")

        logger.info(f"Cancellation policy {policy_id} updated")
        return policy

    def delete_policy(self, policy_id: int) -> None:
        policy = self.get_policy(policy_id)
        in_use = self.repo.count_services_using(self.db, policy_id)
        if in_use:
            raise ConflictError(
                f"Cancellation policy is assigned to {in_use} service(s)",
                context={"services": in_use},
            )
        with transaction(self.db):
            self.repo.soft_delete(self.db, policy)
        logger.info(f"Cancellation policy {policy_id} deleted")
