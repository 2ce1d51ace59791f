"""Storage collaborator interfaces used by the billing core.

Concrete adapters live in :mod:`saascore.billing.storage`.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import date
from decimal import Decimal
from types import TracebackType

from saascore.billing.core.enums import InvoiceStatus, SubscriptionStatus
from saascore.billing.core.models import Invoice, InvoiceStatusSummary, Plan, Subscription


class SubscriptionStore(ABC):
    """Persistence for subscriptions."""

    @abstractmethod
    async def find_by_id(
        self, subscription_id: str, *, for_update: bool = False
    ) -> Subscription | None:
        """Load a subscription; ``for_update`` serializes concurrent writers on it."""
        pass

    @abstractmethod
    async def find_by_status(self, status: SubscriptionStatus) -> list[Subscription]:
        pass

    @abstractmethod
    async def find_due_for_renewal(self, today: date) -> list[Subscription]:
        """ACTIVE subscriptions whose next billing date is on or before ``today``."""
        pass

    @abstractmethod
    async def save(self, subscription: Subscription) -> Subscription:
        pass

    @abstractmethod
    async def count_by_status(self, status: SubscriptionStatus) -> int:
        pass


class InvoiceStore(ABC):
    """Persistence for invoices."""

    @abstractmethod
    async def find_by_id(self, invoice_id: str) -> Invoice | None:
        pass

    @abstractmethod
    async def find_by_subscription(self, subscription_id: str) -> list[Invoice]:
        """Invoices of a subscription, newest issue date first."""
        pass

    @abstractmethod
    async def find_overdue(self, cutoff: date) -> list[Invoice]:
        """PENDING or OVERDUE invoices whose due date is strictly before ``cutoff``."""
        pass

    @abstractmethod
    async def save(self, invoice: Invoice) -> Invoice:
        pass

    @abstractmethod
    async def count_by_status(self, status: InvoiceStatus) -> int:
        pass

    @abstractmethod
    async def summary_by_status(self) -> list[InvoiceStatusSummary]:
        """Count and summed totals per stored status, ordered by status."""
        pass

    @abstractmethod
    async def sum_paid_between(self, start: date, end: date) -> tuple[Decimal, Decimal]:
        """Summed totals and tax of PAID invoices issued between the two dates, inclusive."""
        pass


class PlanCatalog(ABC):
    """Read-only plan catalog."""

    @abstractmethod
    async def find_by_id(self, plan_id: str) -> Plan | None:
        pass


class ProfileLookup(ABC):
    """Resolves a subscription owner's country."""

    @abstractmethod
    async def country_of(self, user_id: str) -> str | None:
        pass


class UnitOfWork(ABC):
    """One atomic storage transaction.

    Used as ``async with uow_factory() as uow:``; leaving the block normally
    commits, leaving it with an exception rolls back everything written
    through the stores.
    """

    subscriptions: SubscriptionStore
    invoices: InvoiceStore
    plans: PlanCatalog
    profiles: ProfileLookup

    @abstractmethod
    async def commit(self) -> None:
        pass

    @abstractmethod
    async def rollback(self) -> None:
        pass

    async def __aenter__(self) -> "UnitOfWork":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if exc_type is None:
            await self.commit()
        else:
            await self.rollback()


UnitOfWorkFactory = Callable[[], UnitOfWork]
