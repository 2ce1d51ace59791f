"""
Subscription lifecycle state machine.

States: ACTIVE, DELINQUENT, SUSPENDED, CANCELLED, EXPIRED. This service is the
only writer of a subscription's ``status`` and ``next_billing_date``.

Dunning thresholds (7/30/60 days) are measured from the due date of the
oldest unpaid invoice, not from when the subscription entered its current
state. A subscription first observed with an invoice already 31 days
overdue therefore goes ACTIVE -> DELINQUENT -> SUSPENDED within one ordered
run of the batch jobs.

Every per-subscription step takes a unit of work, locks the subscription and
re-checks its eligibility before writing, so re-running a job, or running it
concurrently with another runner, never double-charges or double-transitions.
"""

import calendar
from datetime import timedelta
from enum import Enum

import structlog

from saascore.billing.clock import Clock, SystemClock
from saascore.billing.config import BillingConfig, get_billing_config
from saascore.billing.core.enums import UNPAID_INVOICE_STATUSES, InvoiceStatus, SubscriptionStatus
from saascore.billing.core.models import (
    Invoice,
    InvoiceStatistics,
    LifecycleStatistics,
    Plan,
    Subscription,
)
from saascore.billing.exceptions import (
    InvalidStateTransitionError,
    PlanNotFoundError,
    SubscriptionError,
    SubscriptionNotFoundError,
)
from saascore.billing.interfaces import UnitOfWork, UnitOfWorkFactory
from saascore.billing.invoicing.generator import InvoiceGenerator
from saascore.billing.money_utils import ZERO
from saascore.billing.subscriptions.proration import ProrationCalculator
from saascore.billing.tax.calculator import TaxCalculator
from saascore.logging import AuditCategory, log_audit_event

logger = structlog.get_logger(__name__)

DEFAULT_CANCELLATION_REASON = "Cancellation requested by the user"
AUTO_EXPIRY_REASON = "Expired automatically after prolonged non-payment"

REACTIVATABLE_STATUSES = frozenset(
    {SubscriptionStatus.CANCELLED, SubscriptionStatus.SUSPENDED, SubscriptionStatus.DELINQUENT}
)


class RenewalOutcome(str, Enum):
    RENEWED = "renewed"
    SKIPPED_AUTO_RENEW_OFF = "skipped_auto_renew_off"
    SKIPPED_UNPAID_INVOICES = "skipped_unpaid_invoices"
    NOT_ELIGIBLE = "not_eligible"


class SubscriptionLifecycleService:
    """Transition rules plus the manual lifecycle operations."""

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        config: BillingConfig | None = None,
        clock: Clock | None = None,
        tax_calculator: TaxCalculator | None = None,
        invoice_generator: InvoiceGenerator | None = None,
        proration_calculator: ProrationCalculator | None = None,
    ) -> None:
        self.uow_factory = uow_factory
        self.config = config or get_billing_config()
        self.clock = clock or SystemClock()
        self.tax_calculator = tax_calculator or TaxCalculator(self.config.tax)
        self.invoice_generator = invoice_generator or InvoiceGenerator(
            self.tax_calculator, self.config.invoice, self.clock
        )
        self.proration_calculator = proration_calculator or ProrationCalculator(
            self.clock, self.config.invoice.proration_divisor_days
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _load_for_update(self, uow: UnitOfWork, subscription_id: str) -> Subscription:
        subscription = await uow.subscriptions.find_by_id(subscription_id, for_update=True)
        if subscription is None:
            raise SubscriptionNotFoundError(
                f"Subscription {subscription_id} not found", subscription_id=subscription_id
            )
        return subscription

    async def has_unpaid_invoices(self, uow: UnitOfWork, subscription_id: str) -> bool:
        invoices = await uow.invoices.find_by_subscription(subscription_id)
        return any(invoice.is_unpaid for invoice in invoices)

    async def _overdue_invoices(
        self, uow: UnitOfWork, subscription_id: str, threshold_days: int
    ) -> list[Invoice]:
        cutoff = self.clock.today() - timedelta(days=threshold_days)
        invoices = await uow.invoices.find_by_subscription(subscription_id)
        return [invoice for invoice in invoices if invoice.is_overdue_before(cutoff)]

    def _audit(self, action: str, subscription: Subscription, **kwargs: object) -> None:
        log_audit_event(
            action,
            category=AuditCategory.SUBSCRIPTION_LIFECYCLE,
            user_id=subscription.user_id,
            resource_type="subscription",
            resource_id=subscription.subscription_id,
            status=subscription.status.value,
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Scheduled transitions (one subscription, inside the caller's unit of work)
    # ------------------------------------------------------------------

    async def renew(self, uow: UnitOfWork, subscription_id: str) -> RenewalOutcome:
        """Bill one due subscription, or record why it was skipped."""
        subscription = await self._load_for_update(uow, subscription_id)
        today = self.clock.today()

        # Another runner may have renewed it since the candidate list was read.
        if subscription.status != SubscriptionStatus.ACTIVE or not subscription.is_due_for_renewal(
            today
        ):
            return RenewalOutcome.NOT_ELIGIBLE

        if not subscription.auto_renew:
            logger.info(
                "subscription.renewal.skipped",
                subscription_id=subscription_id,
                reason="auto_renew_disabled",
            )
            return RenewalOutcome.SKIPPED_AUTO_RENEW_OFF

        if await self.has_unpaid_invoices(uow, subscription_id):
            logger.warning(
                "subscription.renewal.skipped",
                subscription_id=subscription_id,
                reason="unpaid_invoices",
            )
            return RenewalOutcome.SKIPPED_UNPAID_INVOICES

        invoice = await self.invoice_generator.generate_monthly(uow, subscription)
        self._audit(
            "subscription.renewed",
            subscription,
            invoice_number=invoice.invoice_number,
            next_billing_date=subscription.next_billing_date.isoformat()
            if subscription.next_billing_date
            else None,
        )
        return RenewalOutcome.RENEWED

    async def _escalate(
        self,
        uow: UnitOfWork,
        subscription_id: str,
        from_status: SubscriptionStatus,
        to_status: SubscriptionStatus,
        threshold_days: int,
    ) -> bool:
        subscription = await self._load_for_update(uow, subscription_id)
        if subscription.status != from_status:
            return False

        overdue = await self._overdue_invoices(uow, subscription_id, threshold_days)
        if not overdue:
            return False

        oldest = min(overdue, key=lambda invoice: invoice.due_date)
        subscription.status = to_status
        if to_status == SubscriptionStatus.EXPIRED:
            subscription.auto_renew = False
            subscription.cancellation_date = self.clock.now()
            subscription.cancellation_reason = AUTO_EXPIRY_REASON
        await uow.subscriptions.save(subscription)

        self._audit(
            f"subscription.{to_status.value}",
            subscription,
            previous_status=from_status.value,
            invoice_number=oldest.invoice_number,
            invoice_due_date=oldest.due_date.isoformat(),
        )
        return True

    async def mark_delinquent(self, uow: UnitOfWork, subscription_id: str) -> bool:
        return await self._escalate(
            uow,
            subscription_id,
            SubscriptionStatus.ACTIVE,
            SubscriptionStatus.DELINQUENT,
            self.config.dunning.grace_period_days,
        )

    async def suspend(self, uow: UnitOfWork, subscription_id: str) -> bool:
        return await self._escalate(
            uow,
            subscription_id,
            SubscriptionStatus.DELINQUENT,
            SubscriptionStatus.SUSPENDED,
            self.config.dunning.suspension_days,
        )

    async def expire(self, uow: UnitOfWork, subscription_id: str) -> bool:
        return await self._escalate(
            uow,
            subscription_id,
            SubscriptionStatus.SUSPENDED,
            SubscriptionStatus.EXPIRED,
            self.config.dunning.expiration_days,
        )

    # ------------------------------------------------------------------
    # Manual operations (each in its own transaction, errors propagate)
    # ------------------------------------------------------------------

    async def cancel_subscription(
        self, subscription_id: str, reason: str | None = None
    ) -> Subscription:
        async with self.uow_factory() as uow:
            subscription = await self._load_for_update(uow, subscription_id)

            if subscription.status == SubscriptionStatus.CANCELLED:
                return subscription
            if subscription.status == SubscriptionStatus.EXPIRED:
                raise InvalidStateTransitionError(
                    "An expired subscription cannot be cancelled",
                    current_state=subscription.status.value,
                    requested_state=SubscriptionStatus.CANCELLED.value,
                    subscription_id=subscription_id,
                )

            previous = subscription.status
            subscription.status = SubscriptionStatus.CANCELLED
            subscription.cancellation_date = self.clock.now()
            subscription.cancellation_reason = reason or DEFAULT_CANCELLATION_REASON
            subscription.auto_renew = False
            await uow.subscriptions.save(subscription)

        self._audit(
            "subscription.cancelled",
            subscription,
            previous_status=previous.value,
            reason=subscription.cancellation_reason,
        )
        return subscription

    async def reactivate_subscription(self, subscription_id: str) -> Subscription:
        async with self.uow_factory() as uow:
            subscription = await self._load_for_update(uow, subscription_id)

            if subscription.status == SubscriptionStatus.ACTIVE:
                return subscription
            if subscription.status not in REACTIVATABLE_STATUSES:
                raise InvalidStateTransitionError(
                    "An expired subscription cannot be reactivated; create a new subscription",
                    current_state=subscription.status.value,
                    requested_state=SubscriptionStatus.ACTIVE.value,
                    subscription_id=subscription_id,
                )
            if await self.has_unpaid_invoices(uow, subscription_id):
                raise InvalidStateTransitionError(
                    "Outstanding invoices must be paid before reactivating",
                    current_state=subscription.status.value,
                    requested_state=SubscriptionStatus.ACTIVE.value,
                    subscription_id=subscription_id,
                )

            previous = subscription.status
            today = self.clock.today()
            subscription.status = SubscriptionStatus.ACTIVE
            subscription.cancellation_date = None
            subscription.cancellation_reason = None
            subscription.auto_renew = True
            if subscription.next_billing_date is None or subscription.next_billing_date < today:
                subscription.next_billing_date = today + timedelta(
                    days=self.config.invoice.billing_cycle_days
                )
            await uow.subscriptions.save(subscription)

        self._audit(
            "subscription.reactivated",
            subscription,
            previous_status=previous.value,
            next_billing_date=subscription.next_billing_date.isoformat(),
        )
        return subscription

    async def toggle_auto_renew(self, subscription_id: str, enabled: bool) -> Subscription:
        async with self.uow_factory() as uow:
            subscription = await self._load_for_update(uow, subscription_id)

            if enabled and subscription.is_terminal:
                raise InvalidStateTransitionError(
                    "Auto-renew cannot be enabled on a cancelled or expired subscription",
                    current_state=subscription.status.value,
                    requested_state=subscription.status.value,
                    subscription_id=subscription_id,
                )

            subscription.auto_renew = enabled
            await uow.subscriptions.save(subscription)

        self._audit("subscription.auto_renew.toggled", subscription, auto_renew=enabled)
        return subscription

    async def change_plan(self, subscription_id: str, new_plan_id: str) -> Subscription:
        """Switch plan; upgrades are prorated and invoiced, downgrades are free."""
        async with self.uow_factory() as uow:
            subscription = await self._load_for_update(uow, subscription_id)

            if subscription.status != SubscriptionStatus.ACTIVE:
                raise InvalidStateTransitionError(
                    "Only active subscriptions can change plan",
                    current_state=subscription.status.value,
                    requested_state=SubscriptionStatus.ACTIVE.value,
                    subscription_id=subscription_id,
                )

            new_plan = await uow.plans.find_by_id(new_plan_id)
            if new_plan is None:
                raise PlanNotFoundError(f"Plan {new_plan_id} not found", plan_id=new_plan_id)
            if not new_plan.is_active:
                raise SubscriptionError(
                    f"Plan {new_plan.name} is not available",
                    context={"plan_id": new_plan_id},
                    recovery_hint="Choose an active plan",
                )

            old_plan = await uow.plans.find_by_id(subscription.plan_id)
            if old_plan is None:
                # Plan retired from the catalog: compare against the price being charged.
                old_plan = Plan(
                    plan_id=subscription.plan_id,
                    name=subscription.plan_id,
                    price=subscription.current_price,
                )

            proration_invoice: Invoice | None = None
            if new_plan.price > old_plan.price:
                proration = self.proration_calculator.preview(subscription, old_plan, new_plan)
                if proration.is_billable:
                    proration_invoice = await self.invoice_generator.generate_proration(
                        uow, subscription, old_plan, new_plan, proration.amount
                    )

            subscription.plan_id = new_plan.plan_id
            subscription.current_price = new_plan.price
            await uow.subscriptions.save(subscription)

        self._audit(
            "subscription.plan_changed",
            subscription,
            old_plan_id=old_plan.plan_id,
            new_plan_id=new_plan.plan_id,
            proration_invoice=proration_invoice.invoice_number if proration_invoice else None,
        )
        return subscription

    async def mark_invoice_paid(self, invoice_id: str) -> Invoice:
        async with self.uow_factory() as uow:
            return await self.invoice_generator.mark_paid(uow, invoice_id)

    async def lifecycle_statistics(self) -> LifecycleStatistics:
        async with self.uow_factory() as uow:
            counts = {
                status: await uow.subscriptions.count_by_status(status)
                for status in SubscriptionStatus
            }
            pending = await uow.invoices.count_by_status(InvoiceStatus.PENDING)

        return LifecycleStatistics(
            active=counts[SubscriptionStatus.ACTIVE],
            delinquent=counts[SubscriptionStatus.DELINQUENT],
            suspended=counts[SubscriptionStatus.SUSPENDED],
            cancelled=counts[SubscriptionStatus.CANCELLED],
            expired=counts[SubscriptionStatus.EXPIRED],
            pending_invoices=pending,
        )

    async def invoice_statistics(self) -> InvoiceStatistics:
        """Invoice counts, outstanding amount and this month's paid revenue and tax."""
        today = self.clock.today()
        month_start = today.replace(day=1)
        month_end = today.replace(day=calendar.monthrange(today.year, today.month)[1])

        async with self.uow_factory() as uow:
            by_status = await uow.invoices.summary_by_status()
            overdue = await uow.invoices.find_overdue(today)
            revenue, tax = await uow.invoices.sum_paid_between(month_start, month_end)

        unpaid = [summary for summary in by_status if summary.status in UNPAID_INVOICE_STATUSES]
        return InvoiceStatistics(
            total_invoices=sum(summary.count for summary in by_status),
            pending_invoices=sum(summary.count for summary in unpaid),
            paid_invoices=sum(
                summary.count for summary in by_status if summary.status == InvoiceStatus.PAID
            ),
            overdue_invoices=len(overdue),
            pending_amount=sum((summary.total for summary in unpaid), ZERO),
            revenue_this_month=revenue,
            tax_this_month=tax,
            by_status=by_status,
        )
