#!/usr/bin/env python
"""
CLI management commands for the saascore billing core.

The ``run-*`` commands are the operator's manual trigger for the lifecycle
jobs; they are safe to run while the scheduled jobs are also running.
"""

import asyncio
import json
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime

import click

from saascore.billing.clock import Clock, FixedClock, SystemClock
from saascore.billing.config import BillingConfig, get_billing_config
from saascore.billing.core.enums import LifecycleJob
from saascore.billing.core.models import BatchResult
from saascore.billing.exceptions import BillingError
from saascore.billing.interfaces import UnitOfWorkFactory
from saascore.billing.subscriptions.batch import build_batch_runner
from saascore.billing.subscriptions.lifecycle import SubscriptionLifecycleService


@dataclass
class CLIDependencies:
    """Bundle of injectable dependencies used by CLI commands."""

    uow_factory: UnitOfWorkFactory
    init_db: Callable[[], Awaitable[None]]
    billing_config: BillingConfig


def _get_cli_dependencies() -> CLIDependencies:
    """Return the default dependency bundle for CLI commands."""
    from saascore.billing.storage.sql import sqlalchemy_uow_factory
    from saascore.db import create_all_tables_async

    return CLIDependencies(
        uow_factory=sqlalchemy_uow_factory(),
        init_db=create_all_tables_async,
        billing_config=get_billing_config(),
    )


def _clock(as_of: datetime | None) -> Clock:
    return FixedClock(as_of.date()) if as_of is not None else SystemClock()


def _service(deps: CLIDependencies, clock: Clock) -> SubscriptionLifecycleService:
    return SubscriptionLifecycleService(deps.uow_factory, config=deps.billing_config, clock=clock)


def _echo_result(result: BatchResult) -> None:
    click.echo(
        f"{result.job.value}: processed={result.processed} "
        f"errors={result.errors} skipped={result.skipped}"
    )


as_of_option = click.option(
    "--as-of",
    type=click.DateTime(formats=["%Y-%m-%d"]),
    default=None,
    help="Evaluate as if today were this date (YYYY-MM-DD)",
)


@click.group()
def cli() -> None:
    """saascore billing CLI."""
    pass


@cli.command()
def init_database() -> None:
    """Create the billing tables."""
    deps = _get_cli_dependencies()
    click.echo("Initializing database...")
    asyncio.run(deps.init_db())
    click.echo("Database initialized successfully!")


def _run_job_command(job: LifecycleJob, as_of: datetime | None) -> None:
    deps = _get_cli_dependencies()
    runner = build_batch_runner(deps.uow_factory, deps.billing_config, _clock(as_of))
    result = asyncio.run(runner.run_job(job))
    _echo_result(result)
    if result.errors:
        raise SystemExit(1)


@cli.command()
@as_of_option
def run_renewals(as_of: datetime | None) -> None:
    """Invoice subscriptions whose billing date has arrived."""
    _run_job_command(LifecycleJob.RENEWALS, as_of)


@cli.command()
@as_of_option
def run_delinquencies(as_of: datetime | None) -> None:
    """Mark active subscriptions with overdue invoices as delinquent."""
    _run_job_command(LifecycleJob.DELINQUENCIES, as_of)


@cli.command()
@as_of_option
def run_suspensions(as_of: datetime | None) -> None:
    """Suspend delinquent subscriptions."""
    _run_job_command(LifecycleJob.SUSPENSIONS, as_of)


@cli.command()
@as_of_option
def run_expirations(as_of: datetime | None) -> None:
    """Expire long-suspended subscriptions."""
    _run_job_command(LifecycleJob.EXPIRATIONS, as_of)


@cli.command()
@as_of_option
def run_cycle(as_of: datetime | None) -> None:
    """Run all four lifecycle jobs in order."""
    deps = _get_cli_dependencies()
    runner = build_batch_runner(deps.uow_factory, deps.billing_config, _clock(as_of))
    results = asyncio.run(runner.run_lifecycle_cycle())
    for result in results:
        _echo_result(result)
    if any(result.errors for result in results):
        raise SystemExit(1)


async def _collect_statistics(service: SubscriptionLifecycleService) -> dict[str, object]:
    lifecycle = await service.lifecycle_statistics()
    invoices = await service.invoice_statistics()
    return {
        "subscriptions": lifecycle.model_dump(mode="json"),
        "invoices": invoices.model_dump(mode="json"),
    }


@cli.command()
@as_of_option
def stats(as_of: datetime | None) -> None:
    """Print subscription counts per status and invoice figures."""
    deps = _get_cli_dependencies()
    statistics = asyncio.run(_collect_statistics(_service(deps, _clock(as_of))))
    click.echo(json.dumps(statistics, indent=2))


@cli.command()
@click.argument("subscription_id")
@click.option("--reason", default=None, help="Cancellation reason")
def cancel(subscription_id: str, reason: str | None) -> None:
    """Cancel a subscription."""
    deps = _get_cli_dependencies()
    try:
        subscription = asyncio.run(
            _service(deps, SystemClock()).cancel_subscription(subscription_id, reason)
        )
    except BillingError as e:
        raise click.ClickException(e.message) from e
    click.echo(f"Subscription {subscription.subscription_id} is {subscription.status.value}")


@cli.command()
@click.argument("subscription_id")
def reactivate(subscription_id: str) -> None:
    """Reactivate a cancelled, suspended or delinquent subscription."""
    deps = _get_cli_dependencies()
    try:
        subscription = asyncio.run(
            _service(deps, SystemClock()).reactivate_subscription(subscription_id)
        )
    except BillingError as e:
        raise click.ClickException(e.message) from e
    click.echo(
        f"Subscription {subscription.subscription_id} is {subscription.status.value}, "
        f"next billing {subscription.next_billing_date}"
    )


@cli.command()
@click.argument("invoice_id")
def mark_paid(invoice_id: str) -> None:
    """Record payment of an invoice."""
    deps = _get_cli_dependencies()
    try:
        invoice = asyncio.run(_service(deps, SystemClock()).mark_invoice_paid(invoice_id))
    except BillingError as e:
        raise click.ClickException(e.message) from e
    click.echo(f"Invoice {invoice.invoice_number} is {invoice.status.value}")


if __name__ == "__main__":
    cli()
