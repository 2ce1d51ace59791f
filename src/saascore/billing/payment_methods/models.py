"""
Payment methods attached to a subscription owner.

A payment method is one of three shapes, told apart by ``type``. Display
masking and validity checks dispatch on the concrete shape.
"""

import re
from datetime import date
from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from saascore.billing.exceptions import PaymentMethodError

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_IBAN_PATTERN = re.compile(r"^[A-Z]{2}[A-Z0-9]{13,32}$")


class PaymentMethodType(str, Enum):
    CARD = "card"
    PAYPAL = "paypal"
    BANK_TRANSFER = "bank_transfer"


class _PaymentMethodBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    holder_name: str | None = None


class CardPayment(_PaymentMethodBase):
    type: Literal[PaymentMethodType.CARD] = PaymentMethodType.CARD
    card_number: str = Field(min_length=4)
    expiry_month: int = Field(ge=1, le=12)
    expiry_year: int


class PaypalPayment(_PaymentMethodBase):
    type: Literal[PaymentMethodType.PAYPAL] = PaymentMethodType.PAYPAL
    email: str


class BankTransferPayment(_PaymentMethodBase):
    type: Literal[PaymentMethodType.BANK_TRANSFER] = PaymentMethodType.BANK_TRANSFER
    iban: str
    bank_name: str | None = None


PaymentMethod = Annotated[
    CardPayment | PaypalPayment | BankTransferPayment, Field(discriminator="type")
]

_payment_method_adapter: TypeAdapter[PaymentMethod] = TypeAdapter(PaymentMethod)


def parse_payment_method(data: dict) -> PaymentMethod:
    """Build the concrete payment method from its serialized form."""
    return _payment_method_adapter.validate_python(data)


def _compact_iban(iban: str) -> str:
    return iban.replace(" ", "").upper()


def masked_display(method: PaymentMethod) -> str:
    """Representation safe to show to users and write to logs."""
    match method:
        case CardPayment(card_number=number):
            digits = number.replace(" ", "")
            return f"**** **** **** {digits[-4:]}"
        case PaypalPayment(email=email):
            local, _, domain = email.partition("@")
            if not domain:
                return "***"
            return f"{local[:2]}***@{domain}"
        case BankTransferPayment(iban=iban):
            return f"****{_compact_iban(iban)[-4:]}"
        case _:
            raise PaymentMethodError(f"Unsupported payment method: {method!r}")


def is_valid(method: PaymentMethod, today: date) -> bool:
    """Whether the method can currently be charged."""
    match method:
        case CardPayment(expiry_month=month, expiry_year=year):
            # Cards are valid through the last day of their expiry month.
            return (year, month) >= (today.year, today.month)
        case PaypalPayment(email=email):
            return bool(_EMAIL_PATTERN.match(email))
        case BankTransferPayment(iban=iban):
            return bool(_IBAN_PATTERN.match(_compact_iban(iban)))
        case _:
            raise PaymentMethodError(f"Unsupported payment method: {method!r}")


def method_type(method: PaymentMethod) -> PaymentMethodType:
    match method:
        case CardPayment():
            return PaymentMethodType.CARD
        case PaypalPayment():
            return PaymentMethodType.PAYPAL
        case BankTransferPayment():
            return PaymentMethodType.BANK_TRANSFER
        case _:
            raise PaymentMethodError(f"Unsupported payment method: {method!r}")


def require_valid(method: PaymentMethod, today: date) -> PaymentMethod:
    """Return ``method`` or raise :class:`PaymentMethodError` if it cannot be charged."""
    if not is_valid(method, today):
        raise PaymentMethodError(
            f"Payment method {masked_display(method)} is not valid",
            method_type=method_type(method).value,
        )
    return method
