"""
Batch entry points for the scheduled lifecycle jobs.

Each job reads its candidates in one unit of work, then evaluates every
candidate in its own unit of work. A failure is logged with the subscription
id, counted and rolled back; the rest of the batch carries on. Failed items
are picked up again by the next scheduled run.
"""

from collections.abc import Awaitable, Callable
from datetime import timedelta

import structlog
from structlog.contextvars import bound_contextvars

from saascore.billing.clock import Clock
from saascore.billing.config import BillingConfig
from saascore.billing.core.enums import LifecycleJob, SubscriptionStatus
from saascore.billing.core.models import BatchResult
from saascore.billing.exceptions import TransientProcessingError
from saascore.billing.interfaces import UnitOfWork, UnitOfWorkFactory
from saascore.billing.subscriptions.lifecycle import RenewalOutcome, SubscriptionLifecycleService

logger = structlog.get_logger(__name__)


class LifecycleBatchRunner:
    """Runs renewals, delinquencies, suspensions and expirations."""

    def __init__(
        self,
        service: SubscriptionLifecycleService,
        uow_factory: UnitOfWorkFactory | None = None,
    ) -> None:
        self.service = service
        self.uow_factory = uow_factory or service.uow_factory

    @property
    def clock(self) -> Clock:
        return self.service.clock

    async def _renewal_candidates(self) -> list[str]:
        async with self.uow_factory() as uow:
            due = await uow.subscriptions.find_due_for_renewal(self.clock.today())
        return [subscription.subscription_id for subscription in due]

    async def _overdue_candidates(
        self, threshold_days: int, status: SubscriptionStatus
    ) -> list[str]:
        """Subscriptions in ``status`` owning an invoice overdue by more than ``threshold_days``."""
        cutoff = self.clock.today() - timedelta(days=threshold_days)
        async with self.uow_factory() as uow:
            overdue = await uow.invoices.find_overdue(cutoff)
            candidates: list[str] = []
            for invoice in overdue:
                if invoice.subscription_id in candidates:
                    continue
                subscription = await uow.subscriptions.find_by_id(invoice.subscription_id)
                if subscription is not None and subscription.status == status:
                    candidates.append(invoice.subscription_id)
        return candidates

    async def _run(
        self,
        job: LifecycleJob,
        candidates: list[str],
        step: Callable[[UnitOfWork, str], Awaitable[object]],
    ) -> BatchResult:
        result = BatchResult(job=job, timestamp=self.clock.now())
        with bound_contextvars(job=job.value, as_of=self.clock.today().isoformat()):
            await self._process(result, candidates, step)
        return result

    async def _process(
        self,
        result: BatchResult,
        candidates: list[str],
        step: Callable[[UnitOfWork, str], Awaitable[object]],
    ) -> None:
        logger.info("lifecycle.batch.started", candidates=len(candidates))

        for subscription_id in candidates:
            try:
                async with self.uow_factory() as uow:
                    outcome = await step(uow, subscription_id)
            except Exception as e:
                error = (
                    e
                    if isinstance(e, TransientProcessingError)
                    else TransientProcessingError(
                        str(e), subscription_id=subscription_id, job=result.job.value
                    )
                )
                result.errors += 1
                logger.error(
                    "lifecycle.batch.item_failed",
                    subscription_id=subscription_id,
                    error=error.message,
                    error_code=error.error_code,
                    error_type=type(e).__name__,
                    exc_info=True,
                )
                continue

            if outcome is True or outcome == RenewalOutcome.RENEWED:
                result.processed += 1
            elif outcome in (
                RenewalOutcome.SKIPPED_AUTO_RENEW_OFF,
                RenewalOutcome.SKIPPED_UNPAID_INVOICES,
            ):
                result.skipped += 1

        logger.info(
            "lifecycle.batch.completed",
            processed=result.processed,
            errors=result.errors,
            skipped=result.skipped,
        )

    async def run_renewals(self) -> BatchResult:
        candidates = await self._renewal_candidates()
        return await self._run(LifecycleJob.RENEWALS, candidates, self.service.renew)

    async def run_delinquencies(self) -> BatchResult:
        dunning = self.service.config.dunning
        candidates = await self._overdue_candidates(
            dunning.grace_period_days, SubscriptionStatus.ACTIVE
        )
        return await self._run(LifecycleJob.DELINQUENCIES, candidates, self.service.mark_delinquent)

    async def run_suspensions(self) -> BatchResult:
        dunning = self.service.config.dunning
        candidates = await self._overdue_candidates(
            dunning.suspension_days, SubscriptionStatus.DELINQUENT
        )
        return await self._run(LifecycleJob.SUSPENSIONS, candidates, self.service.suspend)

    async def run_expirations(self) -> BatchResult:
        dunning = self.service.config.dunning
        candidates = await self._overdue_candidates(
            dunning.expiration_days, SubscriptionStatus.SUSPENDED
        )
        return await self._run(LifecycleJob.EXPIRATIONS, candidates, self.service.expire)

    async def run_job(self, job: LifecycleJob) -> BatchResult:
        runners = {
            LifecycleJob.RENEWALS: self.run_renewals,
            LifecycleJob.DELINQUENCIES: self.run_delinquencies,
            LifecycleJob.SUSPENSIONS: self.run_suspensions,
            LifecycleJob.EXPIRATIONS: self.run_expirations,
        }
        return await runners[job]()

    async def run_lifecycle_cycle(self) -> list[BatchResult]:
        """All four jobs, in order; a later job sees the earlier jobs' commits."""
        return [await self.run_job(job) for job in LifecycleJob]


def build_batch_runner(
    uow_factory: UnitOfWorkFactory | None = None,
    config: BillingConfig | None = None,
    clock: Clock | None = None,
) -> LifecycleBatchRunner:
    """Wire a runner over the configured database unless a factory is given."""
    if uow_factory is None:
        from saascore.billing.storage.sql import sqlalchemy_uow_factory

        uow_factory = sqlalchemy_uow_factory()
    service = SubscriptionLifecycleService(uow_factory, config=config, clock=clock)
    return LifecycleBatchRunner(service)
