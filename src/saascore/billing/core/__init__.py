"""Core billing domain: enums and entity models."""

from saascore.billing.core.enums import (
    UNPAID_INVOICE_STATUSES,
    InvoiceStatus,
    LifecycleJob,
    SubscriptionStatus,
)
from saascore.billing.core.models import (
    BatchResult,
    Invoice,
    InvoiceStatistics,
    InvoiceStatusSummary,
    LifecycleStatistics,
    Plan,
    Subscription,
    new_subscription,
)

__all__ = [
    "UNPAID_INVOICE_STATUSES",
    "BatchResult",
    "Invoice",
    "InvoiceStatistics",
    "InvoiceStatus",
    "InvoiceStatusSummary",
    "LifecycleJob",
    "LifecycleStatistics",
    "Plan",
    "Subscription",
    "SubscriptionStatus",
    "new_subscription",
]
