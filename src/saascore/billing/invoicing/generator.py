"""
Invoice generation for renewals and plan-change proration.

All writes go through the caller's unit of work so an invoice and the
subscription change that caused it commit or roll back together.
"""

import secrets
from datetime import timedelta
from decimal import Decimal

import structlog

from saascore.billing.clock import Clock, SystemClock
from saascore.billing.config import InvoiceConfig
from saascore.billing.core.enums import InvoiceStatus
from saascore.billing.core.models import Invoice, Plan, Subscription
from saascore.billing.exceptions import InvoiceError, InvoiceNotFoundError
from saascore.billing.interfaces import UnitOfWork
from saascore.billing.money_utils import format_money
from saascore.billing.tax.calculator import TaxCalculator, normalize_country
from saascore.logging import AuditCategory, log_audit_event

logger = structlog.get_logger(__name__)


def generate_invoice_number(prefix: str) -> str:
    """``prefix`` followed by 8 random uppercase hexadecimal characters."""
    return f"{prefix}{secrets.token_hex(4).upper()}"


class InvoiceGenerator:
    """Builds, taxes and persists invoices."""

    def __init__(
        self,
        tax_calculator: TaxCalculator,
        config: InvoiceConfig | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.tax_calculator = tax_calculator
        self.config = config or InvoiceConfig()
        self.clock = clock or SystemClock()

    async def resolve_country(self, uow: UnitOfWork, subscription: Subscription) -> str:
        """Owner's country, or the fallback country when unknown or unavailable."""
        fallback = self.tax_calculator.fallback_country
        try:
            country = await uow.profiles.country_of(subscription.user_id)
        except Exception as e:
            logger.warning(
                "invoice.country_lookup.failed",
                subscription_id=subscription.subscription_id,
                user_id=subscription.user_id,
                error=str(e),
                fallback_country=fallback,
            )
            return fallback

        if normalize_country(country) is None:
            return fallback
        return country  # type: ignore[return-value]

    def _build(
        self,
        subscription: Subscription,
        subtotal: Decimal,
        country: str,
        *,
        prefix: str,
        due_days: int,
        is_proration: bool,
        concept: str,
    ) -> Invoice:
        issue_date = self.clock.today()
        tax_rate = self.tax_calculator.rate_for(country)
        tax_amount = self.tax_calculator.tax_amount(subtotal, country)

        return Invoice(
            invoice_number=generate_invoice_number(prefix),
            subscription_id=subscription.subscription_id,
            issue_date=issue_date,
            due_date=issue_date + timedelta(days=due_days),
            subtotal=subtotal,
            tax_rate=tax_rate,
            tax_amount=tax_amount,
            total=subtotal + tax_amount,
            status=InvoiceStatus.PENDING,
            is_proration=is_proration,
            concept=concept,
            notes=f"Country: {country}, tax applied: {tax_rate}%",
        )

    async def generate_monthly(self, uow: UnitOfWork, subscription: Subscription) -> Invoice:
        """Charge ``current_price`` and advance the next billing date by one cycle."""
        if subscription.next_billing_date is None:
            raise InvoiceError(
                "Subscription has no next billing date",
                context={"subscription_id": subscription.subscription_id},
            )

        country = await self.resolve_country(uow, subscription)
        plan = await uow.plans.find_by_id(subscription.plan_id)
        plan_name = plan.name if plan is not None else subscription.plan_id

        invoice = self._build(
            subscription,
            subscription.current_price,
            country,
            prefix=self.config.monthly_prefix,
            due_days=self.config.monthly_due_days,
            is_proration=False,
            concept=f"Monthly subscription - Plan {plan_name}",
        )
        await uow.invoices.save(invoice)

        subscription.next_billing_date = subscription.next_billing_date + timedelta(
            days=self.config.billing_cycle_days
        )
        await uow.subscriptions.save(subscription)

        logger.info(
            "invoice.monthly.generated",
            invoice_number=invoice.invoice_number,
            subscription_id=subscription.subscription_id,
            total=format_money(invoice.total),
            country=country,
            tax_rate=str(invoice.tax_rate),
            next_billing_date=subscription.next_billing_date.isoformat(),
        )
        return invoice

    async def generate_proration(
        self,
        uow: UnitOfWork,
        subscription: Subscription,
        old_plan: Plan,
        new_plan: Plan,
        subtotal: Decimal,
    ) -> Invoice:
        """Invoice the upgrade difference; the billing date is left untouched."""
        if subtotal <= 0:
            raise InvoiceError(
                "Proration invoices require a positive subtotal",
                context={
                    "subscription_id": subscription.subscription_id,
                    "subtotal": str(subtotal),
                },
            )

        country = await self.resolve_country(uow, subscription)
        invoice = self._build(
            subscription,
            subtotal,
            country,
            prefix=self.config.proration_prefix,
            due_days=self.config.proration_due_days,
            is_proration=True,
            concept=f"Plan change proration: {old_plan.name} -> {new_plan.name}",
        )
        await uow.invoices.save(invoice)

        logger.info(
            "invoice.proration.generated",
            invoice_number=invoice.invoice_number,
            subscription_id=subscription.subscription_id,
            total=format_money(invoice.total),
            country=country,
            tax_rate=str(invoice.tax_rate),
        )
        return invoice

    async def mark_paid(self, uow: UnitOfWork, invoice_id: str) -> Invoice:
        """Record payment. Paid invoices stay paid; cancelled ones cannot be paid."""
        invoice = await uow.invoices.find_by_id(invoice_id)
        if invoice is None:
            raise InvoiceNotFoundError(f"Invoice {invoice_id} not found", invoice_id=invoice_id)

        if invoice.status == InvoiceStatus.PAID:
            return invoice
        if invoice.status == InvoiceStatus.CANCELLED:
            raise InvoiceError(
                f"Invoice {invoice.invoice_number} is cancelled",
                context={"invoice_id": invoice_id, "status": invoice.status.value},
            )

        invoice.status = InvoiceStatus.PAID
        invoice.paid_date = self.clock.now()
        await uow.invoices.save(invoice)

        log_audit_event(
            "invoice.paid",
            category=AuditCategory.BILLING,
            resource_type="invoice",
            resource_id=invoice_id,
            invoice_number=invoice.invoice_number,
            subscription_id=invoice.subscription_id,
        )
        return invoice
