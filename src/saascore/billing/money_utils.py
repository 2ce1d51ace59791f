"""
Money utilities using py-moneyed and Babel.

All billing arithmetic is done on ``Decimal`` and rounded half-up to the
currency precision (two places for the single supported currency).
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from babel import Locale
from babel.core import UnknownLocaleError
from babel.numbers import format_currency, get_currency_precision
from moneyed import Currency, Money, get_currency
from moneyed.classes import CurrencyDoesNotExist

DEFAULT_CURRENCY = "EUR"
DEFAULT_LOCALE = "es_ES"

ZERO = Decimal("0.00")


def to_decimal(amount: int | float | Decimal | str) -> Decimal:
    """Convert a number to Decimal without binary float artefacts."""
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))


def round_half_up(amount: int | float | Decimal | str, places: int = 2) -> Decimal:
    """Round to ``places`` decimals using half-up (commercial) rounding."""
    quantum = Decimal(1).scaleb(-places)
    return to_decimal(amount).quantize(quantum, rounding=ROUND_HALF_UP)


class MoneyHandler:
    """Central handler for money operations with proper error handling."""

    def __init__(
        self, default_currency: str = DEFAULT_CURRENCY, default_locale: str = DEFAULT_LOCALE
    ) -> None:
        self.default_currency = self._validate_currency(default_currency)
        self.default_locale = self._validate_locale(default_locale)

    def _validate_currency(self, currency_code: str) -> Currency:
        """Validate and return Currency object."""
        try:
            return get_currency(currency_code.upper())
        except CurrencyDoesNotExist:
            raise ValueError(f"Invalid currency code: {currency_code}")

    def _validate_locale(self, locale_code: str) -> str:
        """Validate locale code."""
        try:
            Locale.parse(locale_code)
            return locale_code
        except (UnknownLocaleError, ValueError):
            return DEFAULT_LOCALE

    @property
    def precision(self) -> int:
        return get_currency_precision(self.default_currency.code)

    def create_money(self, amount: int | float | Decimal | str) -> Money:
        """Create Money in the default currency, rounded to its precision."""
        return Money(
            amount=round_half_up(amount, self.precision), currency=self.default_currency
        )

    def format_money(self, amount: Money | Decimal, locale: str | None = None) -> str:
        """Format an amount with locale-aware formatting."""
        money = amount if isinstance(amount, Money) else self.create_money(amount)
        validated_locale = self._validate_locale(locale or self.default_locale)

        try:
            return format_currency(
                number=money.amount, currency=money.currency.code, locale=validated_locale
            )
        except (TypeError, ValueError):
            return f"{money.currency.code} {money.amount}"

    def to_dict(self, amount: Decimal) -> dict[str, Any]:
        """Convert an amount to a dictionary for serialization."""
        money = self.create_money(amount)
        return {"amount": str(money.amount), "currency": money.currency.code}


# Global instance for convenience
money_handler = MoneyHandler()


def create_money(amount: int | float | Decimal | str) -> Money:
    """Create Money object with default handler."""
    return money_handler.create_money(amount)


def format_money(amount: Money | Decimal, locale: str | None = None) -> str:
    """Format money with default handler."""
    return money_handler.format_money(amount, locale)


__all__ = [
    "MoneyHandler",
    "money_handler",
    "create_money",
    "format_money",
    "round_half_up",
    "to_decimal",
    "ZERO",
]
