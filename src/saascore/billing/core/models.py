"""
Core billing domain models.

Plans are read-only catalog entries; subscriptions are the mutable entity the
lifecycle engine owns; invoices are immutable once issued except for their
payment fields.
"""

from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from saascore.billing.core.enums import (
    UNPAID_INVOICE_STATUSES,
    InvoiceStatus,
    LifecycleJob,
    SubscriptionStatus,
)
from saascore.billing.money_utils import ZERO, round_half_up


def _new_id() -> str:
    return str(uuid4())


class BillingBaseModel(BaseModel):
    """Base model for billing entities."""

    model_config = ConfigDict(from_attributes=True, validate_assignment=True)


class Plan(BillingBaseModel):
    """Catalog plan as seen by the billing core."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    plan_id: str = Field(default_factory=_new_id)
    name: str
    price: Decimal = Field(description="Monthly price, 2-digit precision")
    is_active: bool = True

    @field_validator("price")
    @classmethod
    def round_price(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("Plan price cannot be negative")
        return round_half_up(v)


class Subscription(BillingBaseModel):
    """A user's subscription to a plan."""

    subscription_id: str = Field(default_factory=_new_id)
    user_id: str
    plan_id: str
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    start_date: date
    end_date: date | None = None
    next_billing_date: date | None = None
    auto_renew: bool = True
    current_price: Decimal
    cancellation_date: datetime | None = None
    cancellation_reason: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def is_due_for_renewal(self, today: date) -> bool:
        return self.next_billing_date is not None and self.next_billing_date <= today


class Invoice(BillingBaseModel):
    """Monthly or proration invoice."""

    invoice_id: str = Field(default_factory=_new_id)
    invoice_number: str
    subscription_id: str
    issue_date: date
    due_date: date
    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    total: Decimal
    status: InvoiceStatus = InvoiceStatus.PENDING
    is_proration: bool = False
    paid_date: datetime | None = None
    concept: str | None = None
    notes: str | None = None

    @model_validator(mode="after")
    def check_total(self) -> "Invoice":
        if self.total != self.subtotal + self.tax_amount:
            raise ValueError(
                f"Invoice total {self.total} != subtotal {self.subtotal} + tax {self.tax_amount}"
            )
        return self

    @property
    def is_unpaid(self) -> bool:
        return self.status in UNPAID_INVOICE_STATUSES

    def effective_status(self, today: date) -> InvoiceStatus:
        """Status as presented to readers: PENDING past its due date reads as OVERDUE."""
        if self.status == InvoiceStatus.PENDING and self.due_date < today:
            return InvoiceStatus.OVERDUE
        return self.status

    def is_overdue_before(self, cutoff: date) -> bool:
        """Unpaid with a due date strictly before ``cutoff``."""
        return self.is_unpaid and self.due_date < cutoff


class LifecycleStatistics(BaseModel):
    """Counts per subscription status plus pending invoices."""

    active: int = 0
    delinquent: int = 0
    suspended: int = 0
    cancelled: int = 0
    expired: int = 0
    pending_invoices: int = 0


class InvoiceStatusSummary(BaseModel):
    """Invoice count and summed totals for one stored status."""

    status: InvoiceStatus
    count: int = 0
    total: Decimal = ZERO


class InvoiceStatistics(BaseModel):
    """Invoice figures for the billing overview.

    ``revenue_this_month`` and ``tax_this_month`` only include PAID invoices
    issued in the current calendar month. Overdue invoices are unpaid ones
    whose due date has passed, whatever their stored status.
    """

    total_invoices: int = 0
    pending_invoices: int = 0
    paid_invoices: int = 0
    overdue_invoices: int = 0
    pending_amount: Decimal = ZERO
    revenue_this_month: Decimal = ZERO
    tax_this_month: Decimal = ZERO
    by_status: list[InvoiceStatusSummary] = Field(default_factory=list)


class BatchResult(BaseModel):
    """Outcome of one batch job run."""

    job: LifecycleJob
    processed: int = 0
    errors: int = 0
    skipped: int = 0
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "job": self.job.value,
            "processed": self.processed,
            "errors": self.errors,
            "skipped": self.skipped,
            "timestamp": self.timestamp.isoformat(),
        }


def new_subscription(
    user_id: str,
    plan: Plan,
    start_date: date,
    *,
    billing_cycle_days: int = 30,
    **overrides: Any,
) -> Subscription:
    """Build an ACTIVE subscription the way the signup path creates one."""
    values: dict[str, Any] = {
        "user_id": user_id,
        "plan_id": plan.plan_id,
        "start_date": start_date,
        "next_billing_date": start_date + timedelta(days=billing_cycle_days),
        "auto_renew": True,
        "current_price": plan.price,
    }
    values.update(overrides)
    return Subscription(**values)
