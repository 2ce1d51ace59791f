"""
Celery tasks for the subscription lifecycle jobs.

Each task drives the async batch runner with ``asyncio.run`` and returns the
run summary. Failures of single subscriptions are already absorbed by the
runner; anything raised here is an infrastructure failure and propagates.
"""

import asyncio
from typing import Any

import structlog

from saascore.billing.core.enums import LifecycleJob
from saascore.billing.subscriptions.batch import build_batch_runner
from saascore.billing.subscriptions.schedule import TASK_NAMES
from saascore.celery_app import celery_app
from saascore.db import get_async_engine

logger = structlog.get_logger(__name__)


async def _dispose_engine() -> None:
    # Pooled connections stay bound to the event loop that opened them.
    await get_async_engine().dispose()


async def _execute_job(job: LifecycleJob) -> dict[str, Any]:
    try:
        runner = build_batch_runner()
        result = await runner.run_job(job)
        return result.to_dict()
    finally:
        await _dispose_engine()


async def _execute_cycle() -> dict[str, Any]:
    try:
        runner = build_batch_runner()
        results = await runner.run_lifecycle_cycle()
    finally:
        await _dispose_engine()
    return {
        "processed": sum(result.processed for result in results),
        "errors": sum(result.errors for result in results),
        "jobs": [result.to_dict() for result in results],
    }


def _run_job(job: LifecycleJob) -> dict[str, Any]:
    result = asyncio.run(_execute_job(job))
    logger.info(
        "subscriptions.task.completed",
        job=job.value,
        processed=result["processed"],
        errors=result["errors"],
    )
    return result


@celery_app.task(name=TASK_NAMES[LifecycleJob.RENEWALS])
def run_renewals_task() -> dict[str, Any]:
    """Invoice every active subscription whose billing date has arrived."""
    return _run_job(LifecycleJob.RENEWALS)


@celery_app.task(name=TASK_NAMES[LifecycleJob.DELINQUENCIES])
def run_delinquencies_task() -> dict[str, Any]:
    return _run_job(LifecycleJob.DELINQUENCIES)


@celery_app.task(name=TASK_NAMES[LifecycleJob.SUSPENSIONS])
def run_suspensions_task() -> dict[str, Any]:
    return _run_job(LifecycleJob.SUSPENSIONS)


@celery_app.task(name=TASK_NAMES[LifecycleJob.EXPIRATIONS])
def run_expirations_task() -> dict[str, Any]:
    return _run_job(LifecycleJob.EXPIRATIONS)


@celery_app.task(name="subscriptions.run_lifecycle_cycle")
def run_lifecycle_cycle_task() -> dict[str, Any]:
    """All four jobs back to back, for catch-up runs."""
    result = asyncio.run(_execute_cycle())
    logger.info(
        "subscriptions.cycle.completed",
        processed=result["processed"],
        errors=result["errors"],
    )
    return result


__all__ = [
    "run_delinquencies_task",
    "run_expirations_task",
    "run_lifecycle_cycle_task",
    "run_renewals_task",
    "run_suspensions_task",
]
