"""
Shared fixtures for billing tests.

Everything runs against the in-memory storage adapter and a fixed clock
pinned to ``TODAY`` unless a test says otherwise.
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from saascore.billing.clock import FixedClock
from saascore.billing.config import BillingConfig
from saascore.billing.core.enums import InvoiceStatus
from saascore.billing.core.models import Invoice, Plan, Subscription, new_subscription
from saascore.billing.invoicing.generator import generate_invoice_number
from saascore.billing.money_utils import round_half_up
from saascore.billing.storage.memory import InMemoryBillingStorage
from saascore.billing.subscriptions.batch import LifecycleBatchRunner
from saascore.billing.subscriptions.lifecycle import SubscriptionLifecycleService

TODAY = date(2025, 6, 15)


@pytest.fixture
def today() -> date:
    return TODAY


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(TODAY)


@pytest.fixture
def billing_config() -> BillingConfig:
    return BillingConfig()


@pytest.fixture
def basic_plan() -> Plan:
    return Plan(plan_id="basic", name="Basic", price=Decimal("9.99"))


@pytest.fixture
def premium_plan() -> Plan:
    return Plan(plan_id="premium", name="Premium", price=Decimal("29.99"))


@pytest.fixture
def enterprise_plan() -> Plan:
    return Plan(plan_id="enterprise", name="Enterprise", price=Decimal("99.99"))


@pytest.fixture
def storage(basic_plan, premium_plan, enterprise_plan) -> InMemoryBillingStorage:
    storage = InMemoryBillingStorage()
    for plan in (basic_plan, premium_plan, enterprise_plan):
        storage.add_plan(plan)
    return storage


@pytest.fixture
def service(storage, billing_config, clock) -> SubscriptionLifecycleService:
    return SubscriptionLifecycleService(storage.unit_of_work, config=billing_config, clock=clock)


@pytest.fixture
def runner(service) -> LifecycleBatchRunner:
    return LifecycleBatchRunner(service)


@pytest.fixture
def make_subscription(storage, basic_plan):
    """Seed a subscription (ES owner by default) and return it."""

    def _make(
        plan: Plan | None = None,
        *,
        country: str | None = "ES",
        user_id: str | None = None,
        **overrides,
    ) -> Subscription:
        plan = plan or basic_plan
        user_id = user_id or f"user-{len(storage.subscriptions) + 1}"
        overrides.setdefault("next_billing_date", TODAY + timedelta(days=15))
        subscription = new_subscription(
            user_id, plan, TODAY - timedelta(days=15), **overrides
        )
        storage.set_country(user_id, country)
        return storage.add_subscription(subscription)

    return _make


@pytest.fixture
def make_invoice(storage):
    """Seed an invoice for a subscription, taxed at 21%."""

    def _make(
        subscription: Subscription,
        *,
        due_date: date,
        status: InvoiceStatus = InvoiceStatus.PENDING,
        subtotal: Decimal = Decimal("9.99"),
    ) -> Invoice:
        tax_amount = round_half_up(subtotal * Decimal("21.00") / Decimal(100))
        invoice = Invoice(
            invoice_number=generate_invoice_number("FAC-"),
            subscription_id=subscription.subscription_id,
            issue_date=due_date - timedelta(days=15),
            due_date=due_date,
            subtotal=subtotal,
            tax_rate=Decimal("21.00"),
            tax_amount=tax_amount,
            total=subtotal + tax_amount,
            status=status,
        )
        return storage.add_invoice(invoice)

    return _make
