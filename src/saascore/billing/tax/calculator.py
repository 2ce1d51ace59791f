"""
Country based tax calculation.

The rate table comes from configuration and is frozen when the calculator is
built, so one instance can be shared by any number of callers.
"""

from dataclasses import dataclass
from decimal import Decimal
from types import MappingProxyType
from typing import Mapping

import structlog

from saascore.billing.config import TaxConfig
from saascore.billing.money_utils import round_half_up, to_decimal

logger = structlog.get_logger(__name__)

_SALES_TAX_COUNTRIES = frozenset({"US", "USA"})
_GST_COUNTRIES = frozenset({"CA", "CANADA", "CANADÁ"})
_VAT_COUNTRIES = frozenset({"GB", "UK"})
_ICMS_COUNTRIES = frozenset({"BR", "BRAZIL", "BRASIL"})


@dataclass(frozen=True)
class TaxInfo:
    """Resolved tax for a country."""

    country: str | None
    rate: Decimal
    tax_name: str


def normalize_country(country: str | None) -> str | None:
    """Upper-case and trim; blank input becomes ``None``."""
    if country is None or not country.strip():
        return None
    return country.strip().upper()


class TaxCalculator:
    """Resolve a country to a tax percentage and compute tax amounts."""

    def __init__(self, config: TaxConfig | None = None) -> None:
        config = config or TaxConfig()
        self._rates: Mapping[str, Decimal] = MappingProxyType(dict(config.rates))
        self.default_rate = config.default_rate
        self.fallback_country = config.fallback_country

    def rate_for(self, country: str | None) -> Decimal:
        """Tax percentage for ``country`` (ISO code or name); default rate on miss."""
        normalized = normalize_country(country)
        if normalized is None:
            logger.debug("tax.rate.default", reason="no_country", rate=str(self.default_rate))
            return self.default_rate

        rate = self._rates.get(normalized, self.default_rate)
        logger.debug("tax.rate.resolved", country=country, rate=str(rate))
        return rate

    def tax_amount(self, subtotal: Decimal, country: str | None) -> Decimal:
        """``subtotal * rate / 100`` rounded half-up to 2 decimals."""
        rate = self.rate_for(country)
        return round_half_up(to_decimal(subtotal) * rate / Decimal(100))

    def total(self, subtotal: Decimal, country: str | None) -> Decimal:
        return to_decimal(subtotal) + self.tax_amount(subtotal, country)

    def has_rate(self, country: str | None) -> bool:
        normalized = normalize_country(country)
        return normalized is not None and normalized in self._rates

    def rates(self) -> Mapping[str, Decimal]:
        """Read-only view of the configured table."""
        return self._rates

    def tax_info(self, country: str | None) -> TaxInfo:
        return TaxInfo(country=country, rate=self.rate_for(country), tax_name=tax_name_for(country))


def tax_name_for(country: str | None) -> str:
    """Local name of the consumption tax for display on invoices."""
    normalized = normalize_country(country)
    if normalized is None:
        return "IVA"
    if normalized in _SALES_TAX_COUNTRIES or any(
        name in normalized for name in ("UNITED STATES", "ESTADOS UNIDOS")
    ):
        return "Sales Tax"
    if normalized in _GST_COUNTRIES:
        return "GST"
    if normalized in _VAT_COUNTRIES or any(
        name in normalized for name in ("UNITED KINGDOM", "REINO UNIDO")
    ):
        return "VAT"
    if normalized in _ICMS_COUNTRIES:
        return "ICMS"
    return "IVA"
