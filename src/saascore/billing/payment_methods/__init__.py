"""Payment methods: card, PayPal and bank transfer."""

from saascore.billing.payment_methods.models import (
    BankTransferPayment,
    CardPayment,
    PaymentMethod,
    PaymentMethodType,
    PaypalPayment,
    is_valid,
    masked_display,
    method_type,
    parse_payment_method,
    require_valid,
)

__all__ = [
    "BankTransferPayment",
    "CardPayment",
    "PaymentMethod",
    "PaymentMethodType",
    "PaypalPayment",
    "is_valid",
    "masked_display",
    "method_type",
    "parse_payment_method",
    "require_valid",
]
