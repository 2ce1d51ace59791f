"""
End-to-end lifecycle scenarios driven through the batch runner.

The clock is advanced between runs the way the daily schedule would.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from saascore.billing.core.enums import InvoiceStatus, SubscriptionStatus

pytestmark = pytest.mark.unit


class TestUpgradeScenarios:
    async def test_basic_to_premium_mid_cycle(self, service, storage, make_subscription, today):
        subscription = make_subscription(next_billing_date=today + timedelta(days=15))

        await service.change_plan(subscription.subscription_id, "premium")

        (invoice,) = storage.invoices.values()
        assert invoice.invoice_number.startswith("PRO-")
        assert invoice.subtotal == Decimal("10.00")
        assert invoice.tax_amount == Decimal("2.10")
        assert invoice.total == Decimal("12.10")
        assert invoice.due_date == today + timedelta(days=7)

    async def test_basic_to_enterprise_mid_cycle(self, service, storage, make_subscription, today):
        subscription = make_subscription(next_billing_date=today + timedelta(days=15))

        await service.change_plan(subscription.subscription_id, "enterprise")

        (invoice,) = storage.invoices.values()
        assert invoice.subtotal == Decimal("45.00")
        assert invoice.tax_amount == Decimal("9.45")
        assert invoice.total == Decimal("54.45")


class TestDunningScenarios:
    """An unpaid renewal invoice walks the subscription through dunning."""

    async def test_full_dunning_path(self, runner, storage, make_subscription, clock, today):
        subscription = make_subscription(next_billing_date=today)
        sid = subscription.subscription_id

        await runner.run_lifecycle_cycle()
        (invoice,) = storage.invoices.values()
        due = invoice.due_date
        assert due == today + timedelta(days=15)

        # 7 days past due: still inside the grace period
        clock.set(due + timedelta(days=7))
        await runner.run_delinquencies()
        assert storage.subscriptions[sid].status == SubscriptionStatus.ACTIVE

        # 8 days past due
        clock.set(due + timedelta(days=8))
        result = await runner.run_delinquencies()
        assert result.processed == 1
        assert storage.subscriptions[sid].status == SubscriptionStatus.DELINQUENT

        # 31 days past due
        clock.set(due + timedelta(days=31))
        result = await runner.run_suspensions()
        assert result.processed == 1
        assert storage.subscriptions[sid].status == SubscriptionStatus.SUSPENDED

        # 61 days past due
        clock.set(due + timedelta(days=61))
        result = await runner.run_expirations()
        assert result.processed == 1
        stored = storage.subscriptions[sid]
        assert stored.status == SubscriptionStatus.EXPIRED
        assert stored.auto_renew is False
        assert stored.cancellation_date is not None

    async def test_first_observed_late_catches_up_in_one_cycle(
        self, runner, storage, make_subscription, make_invoice, today
    ):
        subscription = make_subscription()
        make_invoice(subscription, due_date=today - timedelta(days=31))

        results = await runner.run_lifecycle_cycle()

        assert [r.job.value for r in results] == [
            "renewals",
            "delinquencies",
            "suspensions",
            "expirations",
        ]
        assert storage.subscriptions[subscription.subscription_id].status == (
            SubscriptionStatus.SUSPENDED
        )

    async def test_paying_stops_escalation(
        self, runner, service, storage, make_subscription, make_invoice, clock, today
    ):
        subscription = make_subscription()
        invoice = make_invoice(subscription, due_date=today - timedelta(days=8))

        await runner.run_delinquencies()
        assert storage.subscriptions[subscription.subscription_id].status == (
            SubscriptionStatus.DELINQUENT
        )

        await service.mark_invoice_paid(invoice.invoice_id)
        clock.set(today + timedelta(days=30))
        await runner.run_suspensions()

        assert storage.subscriptions[subscription.subscription_id].status == (
            SubscriptionStatus.DELINQUENT
        )
        assert storage.invoices[invoice.invoice_id].status == InvoiceStatus.PAID


class TestReactivationScenario:
    async def test_cancel_then_reactivate(self, service, storage, make_subscription, clock, today):
        subscription = make_subscription(next_billing_date=today + timedelta(days=5))
        sid = subscription.subscription_id

        await service.cancel_subscription(sid)
        clock.set(today + timedelta(days=20))
        result = await service.reactivate_subscription(sid)

        assert result.status == SubscriptionStatus.ACTIVE
        assert result.auto_renew is True
        assert result.next_billing_date == today + timedelta(days=50)

    async def test_cancelled_subscription_is_never_renewed(
        self, runner, service, storage, make_subscription, today
    ):
        subscription = make_subscription(next_billing_date=today)
        await service.cancel_subscription(subscription.subscription_id)

        result = await runner.run_renewals()

        assert result.processed == 0
        assert storage.invoices == {}
