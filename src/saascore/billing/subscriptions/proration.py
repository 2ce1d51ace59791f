"""
Mid-cycle proration for plan upgrades.

Formula: ``(new_price - old_price) * days_remaining / 30`` rounded half-up to
two decimals, where ``days_remaining`` counts from today to the next billing
date. The month is always 30 days regardless of the calendar.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

import structlog

from saascore.billing.clock import Clock, SystemClock
from saascore.billing.core.models import Plan, Subscription
from saascore.billing.money_utils import ZERO, round_half_up

logger = structlog.get_logger(__name__)

PRORATION_MONTH_DAYS = 30


@dataclass(frozen=True)
class ProrationResult:
    """Breakdown of a proration computation."""

    amount: Decimal
    days_remaining: int
    price_delta: Decimal

    @property
    def is_billable(self) -> bool:
        return self.amount > 0


def days_remaining(subscription: Subscription, today: date) -> int:
    """Whole days from ``today`` until the next billing date, never negative."""
    if subscription.next_billing_date is None:
        return 0
    return max(0, (subscription.next_billing_date - today).days)


class ProrationCalculator:
    """Computes the charge owed when a subscription changes plan mid-cycle."""

    def __init__(self, clock: Clock | None = None, month_days: int = PRORATION_MONTH_DAYS) -> None:
        self.clock = clock or SystemClock()
        self.month_days = month_days

    def preview(
        self, subscription: Subscription, old_plan: Plan, new_plan: Plan
    ) -> ProrationResult:
        remaining = days_remaining(subscription, self.clock.today())
        price_delta = new_plan.price - old_plan.price

        if remaining == 0:
            return ProrationResult(amount=ZERO, days_remaining=0, price_delta=price_delta)

        amount = round_half_up(price_delta * remaining / Decimal(self.month_days))
        logger.info(
            "proration.calculated",
            subscription_id=subscription.subscription_id,
            amount=str(amount),
            days_remaining=remaining,
            price_delta=str(price_delta),
        )
        return ProrationResult(amount=amount, days_remaining=remaining, price_delta=price_delta)

    def calculate_proration(
        self, subscription: Subscription, old_plan: Plan, new_plan: Plan
    ) -> Decimal:
        """Proration amount; zero or negative means nothing is billed."""
        return self.preview(subscription, old_plan, new_plan).amount
