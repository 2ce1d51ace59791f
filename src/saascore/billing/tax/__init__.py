"""Tax engine."""

from saascore.billing.tax.calculator import TaxCalculator, TaxInfo, normalize_country, tax_name_for

__all__ = ["TaxCalculator", "TaxInfo", "normalize_country", "tax_name_for"]
