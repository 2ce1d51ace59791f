"""
Billing system module.

Provides the subscription billing core:
- Subscription lifecycle state machine
- Monthly renewal and proration invoicing
- Country-based tax calculation
- Dunning (delinquency, suspension, expiration) batch jobs
- Payment method masking and validation
"""

from saascore.billing.exceptions import (
    BillingConfigurationError,
    BillingError,
    InvalidStateTransitionError,
    InvoiceError,
    InvoiceNotFoundError,
    PaymentMethodError,
    PlanNotFoundError,
    SubscriptionError,
    SubscriptionNotFoundError,
    TransientProcessingError,
)

__all__ = [
    "BillingError",
    "SubscriptionError",
    "SubscriptionNotFoundError",
    "InvalidStateTransitionError",
    "PlanNotFoundError",
    "TransientProcessingError",
    "InvoiceError",
    "InvoiceNotFoundError",
    "PaymentMethodError",
    "BillingConfigurationError",
]
