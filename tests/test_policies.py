"""Tests for cancellation penalties and policy management"""

from datetime import timedelta

import pytest

from booking_engine.domain.policies.service import PolicyService, compute_penalty
from booking_engine.exceptions import BadRequestError, ConflictError

from .conftest import MONDAY, add_service, at


class TestComputePenalty:
    def test_no_penalty_at_threshold(self):
        start = at(MONDAY, "10:00")

        result = compute_penalty(10000, start, 24, 50, now=start - timedelta(hours=24))

        assert result["penalty_cents"] == 0
        assert result["refund_cents"] == 10000

    def test_penalty_inside_threshold(self):
        start = at(MONDAY, "10:00")

        result = compute_penalty(10000, start, 24, 50, now=start - timedelta(hours=23, minutes=59))

        assert result["penalty_cents"] == 5000
        assert result["refund_cents"] == 5000

    def test_penalty_rounds_half_up(self):
        start = at(MONDAY, "10:00")

        result = compute_penalty(1001, start, 24, 50, now=start - timedelta(hours=1))

        assert result["penalty_cents"] == 501
        assert result["refund_cents"] == 500

    def test_full_penalty_leaves_no_refund(self):
        start = at(MONDAY, "10:00")

        result = compute_penalty(2500, start, 48, 100, now=start)

        assert result == {"hours_before": 0.0, "penalty_cents": 2500, "refund_cents": 0}


class TestPolicyManagement:
    def test_single_default_per_business(self, db, business):
        policies = PolicyService(db)
        first = policies.create_policy(business.id, "Flexible", 24, 50, is_default=True)
        second = policies.create_policy(business.id, "Strict", 48, 100, is_default=True)

        db.refresh(first)
        assert not first.is_default
        assert second.is_default
        assert policies.resolve_policy(business.id).id == second.id

    def test_service_policy_overrides_default(self, db, business, resource):
        policies = PolicyService(db)
        policies.create_policy(business.id, "Default", 24, 50, is_default=True)
        own = policies.create_policy(business.id, "Own", 2, 10)
        service = add_service(db, business, resources=[resource], policy=own)

        assert policies.resolve_policy(business.id, service).id == own.id

    def test_update_to_default_unsets_previous(self, db, business):
        policies = PolicyService(db)
        first = policies.create_policy(business.id, "A", 24, 50, is_default=True)
        second = policies.create_policy(business.id, "B", 12, 25)

        policies.update_policy(second.id, is_default=True)

        db.refresh(first)
        assert not first.is_default
        assert policies.resolve_policy(business.id).id == second.id

    def test_delete_policy_in_use(self, db, business, resource):
        policies = PolicyService(db)
        policy = policies.create_policy(business.id, "Own", 2, 10)
        add_service(db, business, resources=[resource], policy=policy)

        with pytest.raises(ConflictError):
            policies.delete_policy(policy.id)

    def test_invalid_percent(self, db, business):
        with pytest.raises(BadRequestError):
            PolicyService(db).create_policy(business.id, "Bad", 24, 150)
