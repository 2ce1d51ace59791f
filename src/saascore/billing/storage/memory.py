"""
In-process storage adapter.

Dict-backed stores with per-subscription ``asyncio.Lock`` row locking and
copy-on-write units of work: nothing a unit of work saves is visible to
others until it commits, and a rollback simply drops the buffered writes.
"""

import asyncio
from datetime import date
from decimal import Decimal

from saascore.billing.core.enums import InvoiceStatus, SubscriptionStatus
from saascore.billing.core.models import Invoice, InvoiceStatusSummary, Plan, Subscription
from saascore.billing.interfaces import (
    InvoiceStore,
    PlanCatalog,
    ProfileLookup,
    SubscriptionStore,
    UnitOfWork,
)
from saascore.billing.money_utils import ZERO


class InMemoryBillingStorage:
    """Committed state shared by all units of work."""

    def __init__(self) -> None:
        self.subscriptions: dict[str, Subscription] = {}
        self.invoices: dict[str, Invoice] = {}
        self.plans: dict[str, Plan] = {}
        self.countries: dict[str, str | None] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def lock_for(self, subscription_id: str) -> asyncio.Lock:
        lock = self._locks.get(subscription_id)
        if lock is None:
            lock = self._locks[subscription_id] = asyncio.Lock()
        return lock

    # Seeding helpers, bypassing units of work
    def add_plan(self, plan: Plan) -> Plan:
        self.plans[plan.plan_id] = plan
        return plan

    def add_subscription(self, subscription: Subscription) -> Subscription:
        self.subscriptions[subscription.subscription_id] = subscription.model_copy(deep=True)
        return subscription

    def add_invoice(self, invoice: Invoice) -> Invoice:
        self.invoices[invoice.invoice_id] = invoice.model_copy(deep=True)
        return invoice

    def set_country(self, user_id: str, country: str | None) -> None:
        self.countries[user_id] = country

    def unit_of_work(self) -> "InMemoryUnitOfWork":
        return InMemoryUnitOfWork(self)


class _MemorySubscriptionStore(SubscriptionStore):
    def __init__(self, uow: "InMemoryUnitOfWork") -> None:
        self._uow = uow

    def _visible(self) -> dict[str, Subscription]:
        merged = dict(self._uow.storage.subscriptions)
        merged.update(self._uow.pending_subscriptions)
        return merged

    async def find_by_id(
        self, subscription_id: str, *, for_update: bool = False
    ) -> Subscription | None:
        if for_update:
            await self._uow.acquire(subscription_id)
        subscription = self._visible().get(subscription_id)
        return subscription.model_copy(deep=True) if subscription else None

    async def find_by_status(self, status: SubscriptionStatus) -> list[Subscription]:
        return [s.model_copy(deep=True) for s in self._visible().values() if s.status == status]

    async def find_due_for_renewal(self, today: date) -> list[Subscription]:
        return [
            s.model_copy(deep=True)
            for s in self._visible().values()
            if s.status == SubscriptionStatus.ACTIVE and s.is_due_for_renewal(today)
        ]

    async def save(self, subscription: Subscription) -> Subscription:
        self._uow.pending_subscriptions[subscription.subscription_id] = subscription.model_copy(
            deep=True
        )
        return subscription

    async def count_by_status(self, status: SubscriptionStatus) -> int:
        return sum(1 for s in self._visible().values() if s.status == status)


class _MemoryInvoiceStore(InvoiceStore):
    def __init__(self, uow: "InMemoryUnitOfWork") -> None:
        self._uow = uow

    def _visible(self) -> dict[str, Invoice]:
        merged = dict(self._uow.storage.invoices)
        merged.update(self._uow.pending_invoices)
        return merged

    async def find_by_id(self, invoice_id: str) -> Invoice | None:
        invoice = self._visible().get(invoice_id)
        return invoice.model_copy(deep=True) if invoice else None

    async def find_by_subscription(self, subscription_id: str) -> list[Invoice]:
        invoices = [i for i in self._visible().values() if i.subscription_id == subscription_id]
        invoices.sort(key=lambda i: i.issue_date, reverse=True)
        return [i.model_copy(deep=True) for i in invoices]

    async def find_overdue(self, cutoff: date) -> list[Invoice]:
        overdue = [i for i in self._visible().values() if i.is_overdue_before(cutoff)]
        overdue.sort(key=lambda i: i.due_date)
        return [i.model_copy(deep=True) for i in overdue]

    async def save(self, invoice: Invoice) -> Invoice:
        self._uow.pending_invoices[invoice.invoice_id] = invoice.model_copy(deep=True)
        return invoice

    async def count_by_status(self, status: InvoiceStatus) -> int:
        return sum(1 for i in self._visible().values() if i.status == status)

    async def summary_by_status(self) -> list[InvoiceStatusSummary]:
        summaries: dict[InvoiceStatus, InvoiceStatusSummary] = {}
        for invoice in self._visible().values():
            summary = summaries.setdefault(
                invoice.status, InvoiceStatusSummary(status=invoice.status)
            )
            summary.count += 1
            summary.total += invoice.total
        return sorted(summaries.values(), key=lambda s: s.status.value)

    async def sum_paid_between(self, start: date, end: date) -> tuple[Decimal, Decimal]:
        paid = [
            i
            for i in self._visible().values()
            if i.status == InvoiceStatus.PAID and start <= i.issue_date <= end
        ]
        return sum((i.total for i in paid), ZERO), sum((i.tax_amount for i in paid), ZERO)


class _MemoryPlanCatalog(PlanCatalog):
    def __init__(self, storage: InMemoryBillingStorage) -> None:
        self._storage = storage

    async def find_by_id(self, plan_id: str) -> Plan | None:
        return self._storage.plans.get(plan_id)


class _MemoryProfileLookup(ProfileLookup):
    def __init__(self, storage: InMemoryBillingStorage) -> None:
        self._storage = storage

    async def country_of(self, user_id: str) -> str | None:
        return self._storage.countries.get(user_id)


class InMemoryUnitOfWork(UnitOfWork):
    """Buffered transaction over :class:`InMemoryBillingStorage`."""

    def __init__(self, storage: InMemoryBillingStorage) -> None:
        self.storage = storage
        self.pending_subscriptions: dict[str, Subscription] = {}
        self.pending_invoices: dict[str, Invoice] = {}
        self._held: list[asyncio.Lock] = []
        self._held_ids: set[str] = set()

        self.subscriptions = _MemorySubscriptionStore(self)
        self.invoices = _MemoryInvoiceStore(self)
        self.plans = _MemoryPlanCatalog(storage)
        self.profiles = _MemoryProfileLookup(storage)

    async def acquire(self, subscription_id: str) -> None:
        if subscription_id in self._held_ids:
            return
        lock = self.storage.lock_for(subscription_id)
        await lock.acquire()
        self._held.append(lock)
        self._held_ids.add(subscription_id)

    def _release(self) -> None:
        while self._held:
            self._held.pop().release()
        self._held_ids.clear()

    async def commit(self) -> None:
        try:
            self.storage.subscriptions.update(self.pending_subscriptions)
            self.storage.invoices.update(self.pending_invoices)
            self.pending_subscriptions = {}
            self.pending_invoices = {}
        finally:
            self._release()

    async def rollback(self) -> None:
        self.pending_subscriptions = {}
        self.pending_invoices = {}
        self._release()
