"""
Tests for mid-cycle proration.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from saascore.billing.subscriptions.proration import ProrationCalculator, days_remaining

pytestmark = pytest.mark.unit


@pytest.fixture
def calculator(clock) -> ProrationCalculator:
    return ProrationCalculator(clock)


class TestProrationAmount:
    """Test ``(new - old) * days_remaining / 30`` rounded half-up."""

    def test_basic_to_premium_half_cycle(
        self, calculator, make_subscription, basic_plan, premium_plan
    ):
        subscription = make_subscription(basic_plan)
        assert calculator.calculate_proration(subscription, basic_plan, premium_plan) == Decimal(
            "10.00"
        )

    def test_premium_to_enterprise_half_cycle(
        self, calculator, make_subscription, premium_plan, enterprise_plan
    ):
        subscription = make_subscription(premium_plan)
        assert calculator.calculate_proration(
            subscription, premium_plan, enterprise_plan
        ) == Decimal("35.00")

    def test_rounding(self, calculator, make_subscription, today, basic_plan, premium_plan):
        # 20.00 * 7 / 30 = 4.6666... -> 4.67
        subscription = make_subscription(next_billing_date=today + timedelta(days=7))
        assert calculator.calculate_proration(subscription, basic_plan, premium_plan) == Decimal(
            "4.67"
        )

    def test_downgrade_is_negative(self, calculator, make_subscription, basic_plan, premium_plan):
        subscription = make_subscription(premium_plan)
        assert calculator.calculate_proration(subscription, premium_plan, basic_plan) == Decimal(
            "-10.00"
        )

    def test_billing_date_today_is_zero(
        self, calculator, make_subscription, today, basic_plan, premium_plan
    ):
        subscription = make_subscription(next_billing_date=today)
        assert calculator.calculate_proration(subscription, basic_plan, premium_plan) == Decimal(
            "0"
        )

    def test_billing_date_in_past_is_zero(
        self, calculator, make_subscription, today, basic_plan, premium_plan
    ):
        subscription = make_subscription(next_billing_date=today - timedelta(days=3))
        result = calculator.preview(subscription, basic_plan, premium_plan)
        assert result.days_remaining == 0
        assert result.amount == Decimal("0")
        assert not result.is_billable

    def test_full_cycle_charges_full_difference(
        self, calculator, make_subscription, today, basic_plan, premium_plan
    ):
        subscription = make_subscription(next_billing_date=today + timedelta(days=30))
        assert calculator.calculate_proration(subscription, basic_plan, premium_plan) == Decimal(
            "20.00"
        )


class TestDaysRemaining:
    def test_days_remaining(self, make_subscription, today):
        subscription = make_subscription(next_billing_date=today + timedelta(days=12))
        assert days_remaining(subscription, today) == 12

    def test_no_billing_date(self, make_subscription, today):
        subscription = make_subscription(next_billing_date=None)
        assert days_remaining(subscription, today) == 0

    def test_preview_reports_delta(self, calculator, make_subscription, basic_plan, premium_plan):
        result = calculator.preview(make_subscription(), basic_plan, premium_plan)
        assert result.days_remaining == 15
        assert result.price_delta == Decimal("20.00")
        assert result.is_billable
