"""
SQLAlchemy storage adapter.

One :class:`SQLAlchemyUnitOfWork` wraps one ``AsyncSession`` transaction.
``find_by_id(..., for_update=True)`` issues ``SELECT ... FOR UPDATE`` so two
runners evaluating the same subscription are serialized by the database.
"""

from collections.abc import Callable
from datetime import date
from decimal import Decimal
from types import TracebackType
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from saascore.billing.core.enums import UNPAID_INVOICE_STATUSES, InvoiceStatus, SubscriptionStatus
from saascore.billing.core.models import Invoice, InvoiceStatusSummary, Plan, Subscription
from saascore.billing.interfaces import (
    InvoiceStore,
    PlanCatalog,
    ProfileLookup,
    SubscriptionStore,
    UnitOfWork,
)
from saascore.billing.models import (
    BillingInvoiceTable,
    BillingPlanTable,
    BillingSubscriptionTable,
    BillingUserProfileTable,
)
from saascore.billing.money_utils import round_half_up


def _row_values(model: Subscription | Invoice) -> dict[str, Any]:
    values = model.model_dump()
    values["status"] = model.status.value
    return values


class SQLSubscriptionStore(SubscriptionStore):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def find_by_id(
        self, subscription_id: str, *, for_update: bool = False
    ) -> Subscription | None:
        stmt = select(BillingSubscriptionTable).where(
            BillingSubscriptionTable.subscription_id == subscription_id
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        row = (await self.session.execute(stmt)).scalar_one_or_none()
        return Subscription.model_validate(row) if row is not None else None

    async def find_by_status(self, status: SubscriptionStatus) -> list[Subscription]:
        stmt = select(BillingSubscriptionTable).where(
            BillingSubscriptionTable.status == status.value
        )
        rows = (await self.session.execute(stmt)).scalars().all()
        return [Subscription.model_validate(row) for row in rows]

    async def find_due_for_renewal(self, today: date) -> list[Subscription]:
        stmt = (
            select(BillingSubscriptionTable)
            .where(
                BillingSubscriptionTable.status == SubscriptionStatus.ACTIVE.value,
                BillingSubscriptionTable.next_billing_date <= today,
            )
            .order_by(BillingSubscriptionTable.next_billing_date)
        )
        rows = (await self.session.execute(stmt)).scalars().all()
        return [Subscription.model_validate(row) for row in rows]

    async def save(self, subscription: Subscription) -> Subscription:
        values = _row_values(subscription)
        row = await self.session.get(BillingSubscriptionTable, subscription.subscription_id)
        if row is None:
            self.session.add(BillingSubscriptionTable(**values))
        else:
            for key, value in values.items():
                setattr(row, key, value)
        await self.session.flush()
        return subscription

    async def count_by_status(self, status: SubscriptionStatus) -> int:
        stmt = (
            select(func.count())
            .select_from(BillingSubscriptionTable)
            .where(BillingSubscriptionTable.status == status.value)
        )
        return int((await self.session.execute(stmt)).scalar_one())


class SQLInvoiceStore(InvoiceStore):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def find_by_id(self, invoice_id: str) -> Invoice | None:
        row = await self.session.get(BillingInvoiceTable, invoice_id)
        return Invoice.model_validate(row) if row is not None else None

    async def find_by_subscription(self, subscription_id: str) -> list[Invoice]:
        stmt = (
            select(BillingInvoiceTable)
            .where(BillingInvoiceTable.subscription_id == subscription_id)
            .order_by(BillingInvoiceTable.issue_date.desc())
        )
        rows = (await self.session.execute(stmt)).scalars().all()
        return [Invoice.model_validate(row) for row in rows]

    async def find_overdue(self, cutoff: date) -> list[Invoice]:
        stmt = (
            select(BillingInvoiceTable)
            .where(
                BillingInvoiceTable.status.in_([s.value for s in UNPAID_INVOICE_STATUSES]),
                BillingInvoiceTable.due_date < cutoff,
            )
            .order_by(BillingInvoiceTable.due_date)
        )
        rows = (await self.session.execute(stmt)).scalars().all()
        return [Invoice.model_validate(row) for row in rows]

    async def save(self, invoice: Invoice) -> Invoice:
        values = _row_values(invoice)
        row = await self.session.get(BillingInvoiceTable, invoice.invoice_id)
        if row is None:
            self.session.add(BillingInvoiceTable(**values))
        else:
            for key, value in values.items():
                setattr(row, key, value)
        await self.session.flush()
        return invoice

    async def count_by_status(self, status: InvoiceStatus) -> int:
        stmt = (
            select(func.count())
            .select_from(BillingInvoiceTable)
            .where(BillingInvoiceTable.status == status.value)
        )
        return int((await self.session.execute(stmt)).scalar_one())

    async def summary_by_status(self) -> list[InvoiceStatusSummary]:
        stmt = (
            select(
                BillingInvoiceTable.status,
                func.count(),
                func.coalesce(func.sum(BillingInvoiceTable.total), 0),
            )
            .group_by(BillingInvoiceTable.status)
            .order_by(BillingInvoiceTable.status)
        )
        rows = (await self.session.execute(stmt)).all()
        return [
            InvoiceStatusSummary(
                status=InvoiceStatus(status), count=count, total=round_half_up(total)
            )
            for status, count, total in rows
        ]

    async def sum_paid_between(self, start: date, end: date) -> tuple[Decimal, Decimal]:
        stmt = select(
            func.coalesce(func.sum(BillingInvoiceTable.total), 0),
            func.coalesce(func.sum(BillingInvoiceTable.tax_amount), 0),
        ).where(
            BillingInvoiceTable.status == InvoiceStatus.PAID.value,
            BillingInvoiceTable.issue_date.between(start, end),
        )
        total, tax = (await self.session.execute(stmt)).one()
        return round_half_up(total), round_half_up(tax)


class SQLPlanCatalog(PlanCatalog):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def find_by_id(self, plan_id: str) -> Plan | None:
        row = await self.session.get(BillingPlanTable, plan_id)
        return Plan.model_validate(row) if row is not None else None


class SQLProfileLookup(ProfileLookup):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def country_of(self, user_id: str) -> str | None:
        # A failed lookup must leave the enclosing transaction usable.
        async with self.session.begin_nested():
            row = await self.session.get(BillingUserProfileTable, user_id)
        return row.country if row is not None else None


class SQLAlchemyUnitOfWork(UnitOfWork):
    """Unit of work backed by one ``AsyncSession``."""

    def __init__(self, session_factory: Callable[[], AsyncSession] | None = None) -> None:
        if session_factory is None:
            from saascore.db import get_async_session_maker

            session_factory = get_async_session_maker()
        self._session_factory = session_factory

    async def __aenter__(self) -> "SQLAlchemyUnitOfWork":
        self.session = self._session_factory()
        self.subscriptions = SQLSubscriptionStore(self.session)
        self.invoices = SQLInvoiceStore(self.session)
        self.plans = SQLPlanCatalog(self.session)
        self.profiles = SQLProfileLookup(self.session)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        try:
            await super().__aexit__(exc_type, exc, tb)
        finally:
            await self.session.close()

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()


def sqlalchemy_uow_factory(
    session_factory: Callable[[], AsyncSession] | None = None,
) -> Callable[[], SQLAlchemyUnitOfWork]:
    """Build a unit-of-work factory for the lifecycle service."""

    def factory() -> SQLAlchemyUnitOfWork:
        return SQLAlchemyUnitOfWork(session_factory)

    return factory
