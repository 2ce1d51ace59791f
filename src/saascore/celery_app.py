"""
Celery application configuration.

Registers the subscription lifecycle tasks and their daily beat schedule.
"""

from typing import Any

from celery import Celery
from kombu import Queue

from saascore.settings import settings

# Create Celery application
celery_app = Celery(
    "saascore",
    broker=settings.celery.broker_url,
    backend=settings.celery.result_backend,
    include=[
        "saascore.billing.subscriptions.tasks",
    ],
)

# Configure Celery settings
celery_app.conf.update(
    task_routes={
        "subscriptions.*": {"queue": "billing"},
    },
    task_default_queue="default",
    task_queues=(
        Queue("default", routing_key="default"),
        Queue("billing", routing_key="billing"),
    ),
    # Task execution settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone=settings.celery.timezone,
    enable_utc=settings.celery.enable_utc,
    # Task result settings
    result_expires=3600,  # 1 hour
    task_track_started=True,
    task_time_limit=settings.celery.task_time_limit,
    task_soft_time_limit=settings.celery.task_soft_time_limit,
    # Worker settings
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    worker_max_tasks_per_child=1000,
    worker_send_task_events=True,
    task_send_sent_event=True,
)


@celery_app.on_after_finalize.connect  # type: ignore[misc]
def setup_periodic_tasks(sender: Any, **kwargs: Any) -> None:
    """Register the daily lifecycle jobs, renewals first."""
    import structlog

    from saascore.billing.config import get_billing_config
    from saascore.billing.subscriptions.schedule import LifecycleSchedule
    from saascore.billing.subscriptions.tasks import (
        run_delinquencies_task,
        run_expirations_task,
        run_renewals_task,
        run_suspensions_task,
    )

    logger = structlog.get_logger(__name__)
    schedule = LifecycleSchedule(get_billing_config().schedule)
    if not schedule.enabled:
        logger.info("celery.lifecycle_schedule.disabled")
        return

    tasks = {
        "renewals": run_renewals_task,
        "delinquencies": run_delinquencies_task,
        "suspensions": run_suspensions_task,
        "expirations": run_expirations_task,
    }
    scheduled_jobs = schedule.jobs()
    for scheduled in scheduled_jobs:
        sender.add_periodic_task(
            scheduled.as_crontab(),
            tasks[scheduled.job.value].s(),
            name=scheduled.entry_name,
        )

    logger.info(
        "celery.lifecycle_schedule.registered",
        jobs=[scheduled.entry_name for scheduled in scheduled_jobs],
    )


__all__ = ["celery_app"]
