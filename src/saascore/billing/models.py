"""
Billing database tables.

Row shapes mirror the domain models in :mod:`saascore.billing.core.models`;
statuses are stored as their enum values.
"""

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Boolean, Date, DateTime, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from saascore.db import Base, TimestampMixin


class BillingPlanTable(Base, TimestampMixin):
    """Read-only copy of the plan catalog."""

    __tablename__ = "billing_plans"

    plan_id: Mapped[str] = mapped_column(String(50), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class BillingUserProfileTable(Base, TimestampMixin):
    """Subscription owner profile data the billing core needs."""

    __tablename__ = "billing_user_profiles"

    user_id: Mapped[str] = mapped_column(String(50), primary_key=True)
    country: Mapped[str | None] = mapped_column(String(100), nullable=True)


class BillingSubscriptionTable(Base, TimestampMixin):
    """SQLAlchemy table for customer subscriptions."""

    __tablename__ = "billing_subscriptions"

    subscription_id: Mapped[str] = mapped_column(String(50), primary_key=True)

    user_id: Mapped[str] = mapped_column(String(50), nullable=False)
    plan_id: Mapped[str] = mapped_column(String(50), nullable=False)

    # active, delinquent, suspended, cancelled, expired
    status: Mapped[str] = mapped_column(String(20), nullable=False)

    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    next_billing_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    auto_renew: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    current_price: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)

    cancellation_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_billing_subscriptions_user", "user_id"),
        Index("ix_billing_subscriptions_status", "status"),
        Index("ix_billing_subscriptions_next_billing", "status", "next_billing_date"),
    )


class BillingInvoiceTable(Base, TimestampMixin):
    """SQLAlchemy table for monthly and proration invoices."""

    __tablename__ = "billing_invoices"

    invoice_id: Mapped[str] = mapped_column(String(50), primary_key=True)
    invoice_number: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)
    subscription_id: Mapped[str] = mapped_column(String(50), nullable=False)

    issue_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)

    subtotal: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)

    # pending, paid, overdue, cancelled
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    is_proration: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    paid_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    concept: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_billing_invoices_subscription", "subscription_id"),
        Index("ix_billing_invoices_status_due", "status", "due_date"),
    )
