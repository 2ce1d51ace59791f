"""
Tests for monthly and proration invoice generation.
"""

import re
from datetime import timedelta
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from saascore.billing.core.enums import InvoiceStatus
from saascore.billing.exceptions import InvoiceError, InvoiceNotFoundError
from saascore.billing.invoicing.generator import InvoiceGenerator, generate_invoice_number
from saascore.billing.tax.calculator import TaxCalculator

pytestmark = pytest.mark.unit


@pytest.fixture
def generator(clock) -> InvoiceGenerator:
    return InvoiceGenerator(TaxCalculator(), clock=clock)


class TestInvoiceNumbers:
    def test_monthly_format(self):
        assert re.fullmatch(r"FAC-[0-9A-F]{8}", generate_invoice_number("FAC-"))

    def test_proration_format(self):
        assert re.fullmatch(r"PRO-[0-9A-F]{8}", generate_invoice_number("PRO-"))

    def test_numbers_are_random(self):
        numbers = {generate_invoice_number("FAC-") for _ in range(50)}
        assert len(numbers) == 50


class TestMonthlyInvoice:
    """Test renewal invoices."""

    async def test_generate_monthly(self, generator, storage, make_subscription, today):
        subscription = make_subscription(next_billing_date=today)

        async with storage.unit_of_work() as uow:
            invoice = await generator.generate_monthly(uow, subscription)

        assert invoice.invoice_number.startswith("FAC-")
        assert invoice.issue_date == today
        assert invoice.due_date == today + timedelta(days=15)
        assert invoice.subtotal == Decimal("9.99")
        assert invoice.tax_rate == Decimal("21.00")
        assert invoice.tax_amount == Decimal("2.10")
        assert invoice.total == Decimal("12.09")
        assert invoice.status == InvoiceStatus.PENDING
        assert not invoice.is_proration
        assert invoice.concept == "Monthly subscription - Plan Basic"

        stored = storage.subscriptions[subscription.subscription_id]
        assert stored.next_billing_date == today + timedelta(days=30)
        assert invoice.invoice_id in storage.invoices

    async def test_uses_owner_country(self, generator, storage, make_subscription, today):
        subscription = make_subscription(country="DE", next_billing_date=today)

        async with storage.unit_of_work() as uow:
            invoice = await generator.generate_monthly(uow, subscription)

        assert invoice.tax_rate == Decimal("19.00")
        assert invoice.tax_amount == Decimal("1.90")
        assert "DE" in invoice.notes

    async def test_missing_country_falls_back(self, generator, storage, make_subscription, today):
        subscription = make_subscription(country=None, next_billing_date=today)

        async with storage.unit_of_work() as uow:
            invoice = await generator.generate_monthly(uow, subscription)

        assert invoice.tax_rate == Decimal("21.00")

    async def test_lookup_failure_falls_back(self, generator, storage, make_subscription, today):
        subscription = make_subscription(country="US", next_billing_date=today)

        async with storage.unit_of_work() as uow:
            uow.profiles.country_of = AsyncMock(side_effect=RuntimeError("profile service down"))
            invoice = await generator.generate_monthly(uow, subscription)

        assert invoice.tax_rate == Decimal("21.00")

    async def test_requires_billing_date(self, generator, storage, make_subscription):
        subscription = make_subscription(next_billing_date=None)

        async with storage.unit_of_work() as uow:
            with pytest.raises(InvoiceError):
                await generator.generate_monthly(uow, subscription)

    async def test_rollback_discards_invoice(self, generator, storage, make_subscription, today):
        subscription = make_subscription(next_billing_date=today)

        with pytest.raises(RuntimeError):
            async with storage.unit_of_work() as uow:
                await generator.generate_monthly(uow, subscription)
                raise RuntimeError("crash before commit")

        assert storage.invoices == {}
        assert storage.subscriptions[subscription.subscription_id].next_billing_date == today


class TestProrationInvoice:
    """Test upgrade invoices."""

    async def test_generate_proration(
        self, generator, storage, make_subscription, today, basic_plan, premium_plan
    ):
        subscription = make_subscription()

        async with storage.unit_of_work() as uow:
            invoice = await generator.generate_proration(
                uow, subscription, basic_plan, premium_plan, Decimal("10.00")
            )

        assert invoice.invoice_number.startswith("PRO-")
        assert invoice.is_proration
        assert invoice.due_date == today + timedelta(days=7)
        assert invoice.subtotal == Decimal("10.00")
        assert invoice.tax_amount == Decimal("2.10")
        assert invoice.total == Decimal("12.10")
        assert invoice.concept == "Plan change proration: Basic -> Premium"
        # Billing date untouched
        stored = storage.subscriptions[subscription.subscription_id]
        assert stored.next_billing_date == today + timedelta(days=15)

    @pytest.mark.parametrize("subtotal", [Decimal("0"), Decimal("-5.00")])
    async def test_rejects_non_positive_subtotal(
        self, generator, storage, make_subscription, basic_plan, premium_plan, subtotal
    ):
        async with storage.unit_of_work() as uow:
            with pytest.raises(InvoiceError):
                await generator.generate_proration(
                    uow, make_subscription(), basic_plan, premium_plan, subtotal
                )


class TestMarkPaid:
    async def test_mark_paid(self, generator, storage, make_subscription, make_invoice, today, clock):
        invoice = make_invoice(make_subscription(), due_date=today)

        async with storage.unit_of_work() as uow:
            paid = await generator.mark_paid(uow, invoice.invoice_id)

        assert paid.status == InvoiceStatus.PAID
        assert paid.paid_date == clock.now()
        assert storage.invoices[invoice.invoice_id].status == InvoiceStatus.PAID

    async def test_mark_paid_twice_is_noop(
        self, generator, storage, make_subscription, make_invoice, today
    ):
        invoice = make_invoice(make_subscription(), due_date=today, status=InvoiceStatus.PAID)

        async with storage.unit_of_work() as uow:
            paid = await generator.mark_paid(uow, invoice.invoice_id)

        assert paid.status == InvoiceStatus.PAID
        assert paid.paid_date is None

    async def test_cancelled_invoice_cannot_be_paid(
        self, generator, storage, make_subscription, make_invoice, today
    ):
        invoice = make_invoice(make_subscription(), due_date=today, status=InvoiceStatus.CANCELLED)

        async with storage.unit_of_work() as uow:
            with pytest.raises(InvoiceError):
                await generator.mark_paid(uow, invoice.invoice_id)

    async def test_unknown_invoice(self, generator, storage):
        async with storage.unit_of_work() as uow:
            with pytest.raises(InvoiceNotFoundError):
                await generator.mark_paid(uow, "missing")
