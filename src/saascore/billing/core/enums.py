"""
Billing enums shared by the lifecycle engine and storage adapters.
"""

from enum import Enum


class SubscriptionStatus(str, Enum):
    """Operational state of a subscription."""

    ACTIVE = "active"
    DELINQUENT = "delinquent"
    SUSPENDED = "suspended"
    CANCELLED = "cancelled"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self in (SubscriptionStatus.CANCELLED, SubscriptionStatus.EXPIRED)


class InvoiceStatus(str, Enum):
    """Invoice status. OVERDUE is derived when reading a past-due PENDING invoice."""

    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


UNPAID_INVOICE_STATUSES = frozenset({InvoiceStatus.PENDING, InvoiceStatus.OVERDUE})


class LifecycleJob(str, Enum):
    """Batch jobs, in the order they must run within one cycle."""

    RENEWALS = "renewals"
    DELINQUENCIES = "delinquencies"
    SUSPENSIONS = "suspensions"
    EXPIRATIONS = "expirations"
