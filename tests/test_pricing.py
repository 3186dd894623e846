"""Tests for pricing rule selection"""

from datetime import date, datetime, time

import pytest

from booking_engine import models
from booking_engine.domain.pricing.service import PricingService, apply_modifier, time_in_window
from booking_engine.exceptions import BadRequestError
from booking_engine.states import ModifierType

from .conftest import MONDAY, add_service, at


def add_rule(db, service, priority=2, created_at=None, **fields):
    fields.setdefault("modifier_type", ModifierType.PERCENTAGE)
    fields.setdefault("modifier_value", 10)
    rule = models.PricingRule(
        service_id=service.id,
        name=fields.pop("name", f"rule-{priority}"),
        priority=priority,
        **fields,
    )
    if created_at:
        rule.created_at = created_at
    db.add(rule)
    db.commit()
    return rule


@pytest.fixture
def priced_service(db, business, resource):
    return add_service(db, business, resources=[resource], price=10000)


class TestApplyModifier:
    def test_percentage_rounds_half_up(self):
        assert apply_modifier(999, ModifierType.PERCENTAGE, 50) == 1499

    def test_fixed_amount(self):
        assert apply_modifier(10000, ModifierType.FIXED, 2500) == 12500

    def test_never_below_zero(self):
        assert apply_modifier(1000, ModifierType.FIXED, -5000) == 0
        assert apply_modifier(1000, ModifierType.PERCENTAGE, -150) == 0


class TestTimeWindow:
    def test_end_is_exclusive(self):
        assert time_in_window(time(17, 0), "17:00", "20:00")
        assert not time_in_window(time(20, 0), "17:00", "20:00")

    def test_window_across_midnight(self):
        assert time_in_window(time(23, 30), "22:00", "02:00")
        assert time_in_window(time(1, 0), "22:00", "02:00")
        assert not time_in_window(time(12, 0), "22:00", "02:00")


class TestPricePreview:
    def test_no_matching_rule_returns_base_price(self, db, priced_service):
        add_rule(db, priced_service, days_of_week=[5, 6], modifier_value=20)

        quote = PricingService(db).preview(priced_service.id, MONDAY, time(10, 0))

        assert quote == {"base_price": 10000, "effective_price": 10000, "applied_rule": None}

    def test_highest_priority_rule_wins(self, db, priced_service):
        add_rule(db, priced_service, priority=1, modifier_value=50, name="low")
        high = add_rule(db, priced_service, priority=5, modifier_value=-10, name="high")

        quote = PricingService(db).preview(priced_service.id, MONDAY, time(10, 0))

        assert quote["effective_price"] == 9000
        assert quote["applied_rule"]["id"] == high.id

    def test_equal_priority_prefers_newest_rule(self, db, priced_service):
        add_rule(db, priced_service, priority=3, modifier_value=10, created_at=datetime(2030, 1, 1))
        newest = add_rule(db, priced_service, priority=3, modifier_value=30, created_at=datetime(2030, 2, 1))
        add_rule(db, priced_service, priority=3, modifier_value=20, created_at=datetime(2030, 1, 15))

        quote = PricingService(db).preview(priced_service.id, MONDAY, time(10, 0))

        assert quote["applied_rule"]["id"] == newest.id
        assert quote["effective_price"] == 13000

    def test_rule_filters(self, db, priced_service):
        add_rule(
            db,
            priced_service,
            modifier_value=25,
            days_of_week=[0],
            start_time="17:00",
            end_time="20:00",
            start_date=date(2030, 5, 1),
            end_date=date(2030, 5, 31),
        )
        pricing = PricingService(db)

        assert pricing.preview(priced_service.id, MONDAY, time(18, 0))["effective_price"] == 12500
        assert pricing.preview(priced_service.id, MONDAY, time(16, 59))["effective_price"] == 10000
        assert pricing.preview(priced_service.id, date(2030, 6, 3), time(18, 0))["effective_price"] == 10000

    def test_inactive_rule_is_ignored(self, db, priced_service):
        add_rule(db, priced_service, modifier_value=50, is_active=False)

        assert PricingService(db).preview(priced_service.id, MONDAY, time(10, 0))["effective_price"] == 10000

    def test_quote_uses_business_local_time(self, db, priced_service):
        add_rule(db, priced_service, modifier_value=10, start_time="19:00", end_time="23:00")

        # 10:00 UTC is 19:00 in Tokyo
        quote = PricingService(db).quote_at(priced_service, at(MONDAY, "10:00"), "Asia/Tokyo")

        assert quote["effective_price"] == 11000


class TestPricingRuleManagement:
    def test_create_and_list_ordered_by_priority(self, db, priced_service):
        pricing = PricingService(db)
        pricing.create_rule(priced_service.id, name="a", modifier_type=ModifierType.FIXED, modifier_value=100, priority=1)
        pricing.create_rule(priced_service.id, name="b", modifier_type=ModifierType.FIXED, modifier_value=200, priority=4)

        assert [r.name for r in pricing.list_rules(priced_service.id)] == ["b", "a"]

    def test_invalid_date_range(self, db, priced_service):
        with pytest.raises(BadRequestError):
            PricingService(db).create_rule(
                priced_service.id,
                name="bad",
                modifier_type=ModifierType.PERCENTAGE,
                modifier_value=10,
                start_date=date(2030, 6, 1),
                end_date=date(2030, 5, 1),
            )

    def test_deactivate(self, db, priced_service):
        pricing = PricingService(db)
        rule = pricing.create_rule(priced_service.id, name="x", modifier_type=ModifierType.FIXED, modifier_value=5)

        pricing.deactivate_rule(rule.id)

        assert pricing.list_rules(priced_service.id) == []
        assert len(pricing.list_rules(priced_service.id, include_inactive=True)) == 1
