"""
Billing module configuration
"""

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from saascore.billing.exceptions import BillingConfigurationError

# Country (ISO code or full name, upper-cased) -> tax percentage
DEFAULT_TAX_RATES: dict[str, Decimal] = {
    # Europe - VAT
    "ES": Decimal("21.00"),
    "ESPAÑA": Decimal("21.00"),
    "SPAIN": Decimal("21.00"),
    "DE": Decimal("19.00"),
    "GERMANY": Decimal("19.00"),
    "ALEMANIA": Decimal("19.00"),
    "FR": Decimal("20.00"),
    "FRANCE": Decimal("20.00"),
    "FRANCIA": Decimal("20.00"),
    "IT": Decimal("22.00"),
    "ITALY": Decimal("22.00"),
    "ITALIA": Decimal("22.00"),
    "PT": Decimal("23.00"),
    "PORTUGAL": Decimal("23.00"),
    "GB": Decimal("20.00"),
    "UK": Decimal("20.00"),
    "UNITED KINGDOM": Decimal("20.00"),
    "REINO UNIDO": Decimal("20.00"),
    "NL": Decimal("21.00"),
    "NETHERLANDS": Decimal("21.00"),
    "HOLANDA": Decimal("21.00"),
    "BE": Decimal("21.00"),
    "BELGIUM": Decimal("21.00"),
    "BÉLGICA": Decimal("21.00"),
    "AT": Decimal("20.00"),
    "AUSTRIA": Decimal("20.00"),
    "SE": Decimal("25.00"),
    "SWEDEN": Decimal("25.00"),
    "SUECIA": Decimal("25.00"),
    "DK": Decimal("25.00"),
    "DENMARK": Decimal("25.00"),
    "DINAMARCA": Decimal("25.00"),
    "PL": Decimal("23.00"),
    "POLAND": Decimal("23.00"),
    "POLONIA": Decimal("23.00"),
    "IE": Decimal("23.00"),
    "IRELAND": Decimal("23.00"),
    "IRLANDA": Decimal("23.00"),
    "CH": Decimal("7.70"),
    "SWITZERLAND": Decimal("7.70"),
    "SUIZA": Decimal("7.70"),
    # Americas
    "MX": Decimal("16.00"),
    "MEXICO": Decimal("16.00"),
    "MÉXICO": Decimal("16.00"),
    "AR": Decimal("21.00"),
    "ARGENTINA": Decimal("21.00"),
    "CL": Decimal("19.00"),
    "CHILE": Decimal("19.00"),
    "CO": Decimal("19.00"),
    "COLOMBIA": Decimal("19.00"),
    "PE": Decimal("18.00"),
    "PERU": Decimal("18.00"),
    "PERÚ": Decimal("18.00"),
    "BR": Decimal("17.00"),
    "BRAZIL": Decimal("17.00"),
    "BRASIL": Decimal("17.00"),
    "US": Decimal("0.00"),
    "USA": Decimal("0.00"),
    "UNITED STATES": Decimal("0.00"),
    "ESTADOS UNIDOS": Decimal("0.00"),
    "CA": Decimal("5.00"),
    "CANADA": Decimal("5.00"),
    "CANADÁ": Decimal("5.00"),
}


def _default_tax_rates() -> dict[str, Decimal]:
    return dict(DEFAULT_TAX_RATES)


class TaxConfig(BaseModel):
    """Tax configuration"""

    model_config = ConfigDict(frozen=True)

    rates: dict[str, Decimal] = Field(
        default_factory=_default_tax_rates, description="Country to tax percentage table"
    )
    default_rate: Decimal = Field(Decimal("21.00"), description="Rate for unknown countries")
    fallback_country: str = Field("ES", description="Country used when the owner has none")

    @field_validator("rates")
    @classmethod
    def normalize_rates(cls, v: dict[str, Decimal]) -> dict[str, Decimal]:
        """Upper-case and trim keys so lookups only need to normalize the query."""
        normalized: dict[str, Decimal] = {}
        for country, rate in v.items():
            if rate < 0 or rate > 100:
                raise ValueError(f"Tax rate for {country} must be between 0 and 100")
            normalized[country.strip().upper()] = Decimal(rate)
        return normalized


class InvoiceConfig(BaseModel):
    """Invoice configuration"""

    model_config = ConfigDict(frozen=True)

    monthly_prefix: str = Field("FAC-", description="Number prefix for monthly invoices")
    proration_prefix: str = Field("PRO-", description="Number prefix for proration invoices")
    monthly_due_days: int = Field(15, description="Payment terms for monthly invoices")
    proration_due_days: int = Field(7, description="Payment terms for proration invoices")
    billing_cycle_days: int = Field(30, description="Days between monthly charges")
    proration_divisor_days: int = Field(30, description="Fixed month length used by proration")


class DunningConfig(BaseModel):
    """Overdue thresholds, each measured from the invoice due date."""

    model_config = ConfigDict(frozen=True)

    grace_period_days: int = Field(7, description="Days overdue before DELINQUENT")
    suspension_days: int = Field(30, description="Days overdue before SUSPENDED")
    expiration_days: int = Field(60, description="Days overdue before EXPIRED")


def _parse_time(value: str) -> tuple[int, int]:
    try:
        hour_text, minute_text = value.split(":")
        hour, minute = int(hour_text), int(minute_text)
    except ValueError:
        raise BillingConfigurationError(
            f"Invalid schedule time {value!r}", recovery_hint="Use HH:MM, e.g. 01:30"
        )
    if not (0 <= hour < 24 and 0 <= minute < 60):
        raise BillingConfigurationError(
            f"Schedule time out of range: {value!r}", recovery_hint="Use HH:MM, e.g. 01:30"
        )
    return hour, minute


class ScheduleConfig(BaseModel):
    """Time of day (HH:MM) for each lifecycle job."""

    model_config = ConfigDict(frozen=True)

    renewals_at: str = "00:00"
    delinquencies_at: str = "01:00"
    suspensions_at: str = "02:00"
    expirations_at: str = "03:00"
    enabled: bool = True

    @field_validator("renewals_at", "delinquencies_at", "suspensions_at", "expirations_at")
    @classmethod
    def validate_time(cls, v: str) -> str:
        _parse_time(v)
        return v

    def hour_minute(self, job: str) -> tuple[int, int]:
        """Return (hour, minute) for a job name such as ``"renewals"``."""
        return _parse_time(getattr(self, f"{job}_at"))


class BillingConfig(BaseModel):
    """Main billing configuration"""

    model_config = ConfigDict(frozen=True)

    tax: TaxConfig = Field(default_factory=TaxConfig)
    invoice: InvoiceConfig = Field(default_factory=InvoiceConfig)
    dunning: DunningConfig = Field(default_factory=DunningConfig)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)

    @classmethod
    def from_settings(cls) -> "BillingConfig":
        """Create configuration from the environment-backed settings."""
        from saascore.settings import settings

        billing = settings.billing
        rates = _default_tax_rates()
        rates.update(billing.tax_rate_overrides)

        return cls(
            tax=TaxConfig(
                rates=rates,
                default_rate=billing.default_tax_rate,
                fallback_country=billing.default_country,
            ),
            invoice=InvoiceConfig(
                monthly_due_days=billing.monthly_invoice_due_days,
                proration_due_days=billing.proration_invoice_due_days,
                billing_cycle_days=billing.billing_cycle_days,
            ),
            dunning=DunningConfig(
                grace_period_days=billing.grace_period_days,
                suspension_days=billing.suspension_days,
                expiration_days=billing.expiration_days,
            ),
            schedule=ScheduleConfig(
                renewals_at=billing.renewals_at,
                delinquencies_at=billing.delinquencies_at,
                suspensions_at=billing.suspensions_at,
                expirations_at=billing.expirations_at,
                enabled=billing.schedule_enabled,
            ),
        )


# Global configuration instance
_billing_config: BillingConfig | None = None


def get_billing_config() -> BillingConfig:
    """Get the global billing configuration instance"""
    global _billing_config
    if _billing_config is None:
        _billing_config = BillingConfig.from_settings()
    return _billing_config


def set_billing_config(config: BillingConfig | None) -> None:
    """Set (or with ``None`` reset) the global billing configuration instance"""
    global _billing_config
    _billing_config = config
