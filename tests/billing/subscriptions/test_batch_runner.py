"""
Tests for batch isolation and idempotency of the lifecycle jobs.
"""

import asyncio
from datetime import timedelta
from unittest.mock import patch

import pytest

from saascore.billing.core.enums import LifecycleJob, SubscriptionStatus
from saascore.billing.subscriptions.batch import LifecycleBatchRunner, build_batch_runner

pytestmark = pytest.mark.unit


class TestRenewals:
    async def test_counts(self, runner, storage, make_subscription, make_invoice, today):
        make_subscription(next_billing_date=today)
        make_subscription(next_billing_date=today - timedelta(days=2))
        make_subscription(next_billing_date=today, auto_renew=False)
        unpaid = make_subscription(next_billing_date=today)
        make_invoice(unpaid, due_date=today + timedelta(days=1))
        make_subscription(next_billing_date=today + timedelta(days=1))
        make_subscription(next_billing_date=today, status=SubscriptionStatus.DELINQUENT)

        result = await runner.run_renewals()

        assert result.job == LifecycleJob.RENEWALS
        assert result.processed == 2
        assert result.skipped == 2
        assert result.errors == 0

    async def test_rerun_is_idempotent(self, runner, storage, make_subscription, today):
        subscription = make_subscription(next_billing_date=today)

        first = await runner.run_renewals()
        second = await runner.run_renewals()

        assert first.processed == 1
        assert second.processed == 0
        assert len(storage.invoices) == 1
        assert storage.subscriptions[subscription.subscription_id].next_billing_date == (
            today + timedelta(days=30)
        )

    async def test_concurrent_runners_bill_once(
        self, service, storage, make_subscription, today
    ):
        subscriptions = [make_subscription(next_billing_date=today) for _ in range(5)]
        scheduled = LifecycleBatchRunner(service)
        manual = LifecycleBatchRunner(service)

        results = await asyncio.gather(scheduled.run_renewals(), manual.run_renewals())

        assert sum(result.processed for result in results) == 5
        assert len(storage.invoices) == 5
        for subscription in subscriptions:
            stored = storage.subscriptions[subscription.subscription_id]
            assert stored.next_billing_date == today + timedelta(days=30)


class TestIsolation:
    async def test_one_failure_does_not_stop_batch(
        self, runner, service, storage, make_subscription, today
    ):
        healthy = [make_subscription(next_billing_date=today) for _ in range(2)]
        broken = make_subscription(next_billing_date=today)
        original = service.invoice_generator.generate_monthly

        async def flaky(uow, subscription):
            if subscription.subscription_id == broken.subscription_id:
                raise RuntimeError("tax service exploded")
            return await original(uow, subscription)

        with patch.object(service.invoice_generator, "generate_monthly", side_effect=flaky):
            result = await runner.run_renewals()

        assert result.processed == 2
        assert result.errors == 1
        assert len(storage.invoices) == 2
        for subscription in healthy:
            assert storage.subscriptions[subscription.subscription_id].next_billing_date == (
                today + timedelta(days=30)
            )
        # The failed item was rolled back and stays due
        assert storage.subscriptions[broken.subscription_id].next_billing_date == today

    async def test_failed_item_retried_next_run(
        self, runner, service, storage, make_subscription, today
    ):
        subscription = make_subscription(next_billing_date=today)

        with patch.object(
            service.invoice_generator, "generate_monthly", side_effect=RuntimeError("boom")
        ):
            failed = await runner.run_renewals()

        retried = await runner.run_renewals()

        assert failed.errors == 1
        assert retried.processed == 1
        assert storage.subscriptions[subscription.subscription_id].next_billing_date == (
            today + timedelta(days=30)
        )

    async def test_suspension_failure_is_isolated(
        self, runner, service, storage, make_subscription, make_invoice, today
    ):
        delinquent = [
            make_subscription(status=SubscriptionStatus.DELINQUENT) for _ in range(3)
        ]
        for subscription in delinquent:
            make_invoice(subscription, due_date=today - timedelta(days=31))
        broken = delinquent[1]
        original = service.suspend

        async def flaky(uow, subscription_id):
            if subscription_id == broken.subscription_id:
                raise RuntimeError("row lock timed out")
            return await original(uow, subscription_id)

        with patch.object(service, "suspend", side_effect=flaky):
            result = await runner.run_suspensions()

        assert result.job == LifecycleJob.SUSPENSIONS
        assert result.processed == 2
        assert result.errors == 1
        assert [
            storage.subscriptions[s.subscription_id].status for s in delinquent
        ] == [
            SubscriptionStatus.SUSPENDED,
            SubscriptionStatus.DELINQUENT,
            SubscriptionStatus.SUSPENDED,
        ]


class TestDunningCandidates:
    async def test_multiple_overdue_invoices_counted_once(
        self, runner, make_subscription, make_invoice, today
    ):
        subscription = make_subscription()
        make_invoice(subscription, due_date=today - timedelta(days=40))
        make_invoice(subscription, due_date=today - timedelta(days=10))

        result = await runner.run_delinquencies()

        assert result.processed == 1

    async def test_only_matching_status_escalates(
        self, runner, storage, make_subscription, make_invoice, today
    ):
        active = make_subscription()
        cancelled = make_subscription(status=SubscriptionStatus.CANCELLED, auto_renew=False)
        for subscription in (active, cancelled):
            make_invoice(subscription, due_date=today - timedelta(days=70))

        await runner.run_suspensions()
        await runner.run_expirations()

        assert storage.subscriptions[active.subscription_id].status == SubscriptionStatus.ACTIVE
        assert storage.subscriptions[cancelled.subscription_id].status == (
            SubscriptionStatus.CANCELLED
        )

    @pytest.mark.parametrize(
        "status, days_overdue, job, escalated",
        [
            (SubscriptionStatus.DELINQUENT, 30, LifecycleJob.SUSPENSIONS, False),
            (SubscriptionStatus.DELINQUENT, 31, LifecycleJob.SUSPENSIONS, True),
            (SubscriptionStatus.SUSPENDED, 60, LifecycleJob.EXPIRATIONS, False),
            (SubscriptionStatus.SUSPENDED, 61, LifecycleJob.EXPIRATIONS, True),
        ],
    )
    async def test_threshold_boundaries(
        self, runner, storage, make_subscription, make_invoice, today,
        status, days_overdue, job, escalated,
    ):
        subscription = make_subscription(status=status)
        make_invoice(subscription, due_date=today - timedelta(days=days_overdue))

        result = await runner.run_job(job)

        assert result.processed == (1 if escalated else 0)
        stored = storage.subscriptions[subscription.subscription_id]
        assert (stored.status != status) is escalated

    async def test_run_job_dispatch(self, runner):
        for job in LifecycleJob:
            result = await runner.run_job(job)
            assert result.job == job
            assert result.processed == 0


class TestBuildBatchRunner:
    def test_uses_given_factory(self, storage, billing_config, clock):
        runner = build_batch_runner(storage.unit_of_work, billing_config, clock)
        assert runner.uow_factory == storage.unit_of_work
        assert runner.clock is clock
