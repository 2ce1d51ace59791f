"""
Subscription lifecycle: state machine, proration and batch jobs.

Celery tasks live in :mod:`saascore.billing.subscriptions.tasks` and are not
imported here so the core can be used without a configured broker.
"""

from saascore.billing.subscriptions.batch import LifecycleBatchRunner, build_batch_runner
from saascore.billing.subscriptions.lifecycle import (
    RenewalOutcome,
    SubscriptionLifecycleService,
)
from saascore.billing.subscriptions.proration import (
    PRORATION_MONTH_DAYS,
    ProrationCalculator,
    ProrationResult,
)
from saascore.billing.subscriptions.schedule import LifecycleSchedule, ScheduledJob

__all__ = [
    "LifecycleBatchRunner",
    "LifecycleSchedule",
    "PRORATION_MONTH_DAYS",
    "ProrationCalculator",
    "ProrationResult",
    "RenewalOutcome",
    "ScheduledJob",
    "SubscriptionLifecycleService",
    "build_batch_runner",
]
