"""Tests for environment-backed settings and logging setup."""

from decimal import Decimal
from unittest.mock import patch

import pytest
from structlog.testing import capture_logs

from saascore.settings import Environment, Settings, get_settings, reset_settings

pytestmark = pytest.mark.unit


class TestSettings:
    def test_billing_defaults(self, monkeypatch):
        for name in ("BILLING__GRACE_PERIOD_DAYS", "BILLING__DEFAULT_TAX_RATE"):
            monkeypatch.delenv(name, raising=False)
        settings = Settings()

        assert settings.billing.default_country == "ES"
        assert settings.billing.default_tax_rate == Decimal("21.00")
        assert settings.billing.grace_period_days == 7
        assert settings.billing.suspension_days == 30
        assert settings.billing.expiration_days == 60
        assert settings.billing.renewals_at == "00:00"

    def test_nested_override(self, monkeypatch):
        monkeypatch.setenv("BILLING__SUSPENSION_DAYS", "45")
        monkeypatch.setenv("CELERY__TIMEZONE", "Europe/Madrid")

        settings = Settings()

        assert settings.billing.suspension_days == 45
        assert settings.celery.timezone == "Europe/Madrid"

    def test_environment_is_case_insensitive(self, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "PRODUCTION")
        settings = Settings()

        assert settings.environment == Environment.PRODUCTION
        assert settings.is_production
        assert not settings.is_testing

    def test_singleton_reset(self):
        first = get_settings()
        assert get_settings() is first
        reset_settings()
        assert get_settings() is not first


class TestDatabaseUrls:
    def test_async_url_conversion(self):
        from saascore import db

        with patch.object(db, "get_database_url", return_value="postgresql://u:p@h:5432/d"):
            assert db.get_async_database_url() == "postgresql+asyncpg://u:p@h:5432/d"
        with patch.object(db, "get_database_url", return_value="sqlite:///./x.db"):
            assert db.get_async_database_url() == "sqlite+aiosqlite:///./x.db"


class TestAuditLogging:
    def test_log_audit_event(self):
        from saascore.logging import log_audit_event

        with capture_logs() as logs:
            log_audit_event(
                "subscription.cancelled",
                category="subscription_lifecycle",
                resource_type="subscription",
                resource_id="sub-1",
                reason="Too expensive",
            )

        (entry,) = logs
        assert entry["event"] == "subscription.cancelled"
        assert entry["audit_category"] == "subscription_lifecycle"
        assert entry["audit_resource_id"] == "sub-1"
        assert entry["reason"] == "Too expensive"

    def test_unknown_category_rejected(self):
        from saascore.logging import log_audit_event

        with pytest.raises(ValueError):
            log_audit_event("subscription.cancelled", category="marketing")

    def test_category_enum_accepted(self):
        from saascore.logging import AuditCategory, log_audit_event

        with capture_logs() as logs:
            log_audit_event("invoice.paid", category=AuditCategory.BILLING, resource_id="inv-1")

        assert logs[0]["audit_category"] == "billing"


class TestServiceContext:
    def test_adds_service_and_environment(self):
        from saascore.logging import add_service_context, settings

        event = add_service_context(None, "info", {"event": "subscription.renewed"})

        assert event["service"] == settings.app_name
        assert event["environment"] == settings.environment.value

    def test_keeps_explicit_values(self):
        from saascore.logging import add_service_context

        event = add_service_context(None, "info", {"event": "x", "service": "worker"})

        assert event["service"] == "worker"
