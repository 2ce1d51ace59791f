"""
Global pytest configuration and fixtures for saascore tests.
"""

import os

import pytest

# Keep tests off any database or broker configured in the developer's .env
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE__URL", "sqlite:///./pytest.db")
os.environ.setdefault("CELERY__BROKER_URL", "memory://")
os.environ.setdefault("CELERY__RESULT_BACKEND", "cache+memory://")
os.environ.setdefault("OBSERVABILITY__LOG_FORMAT", "text")


@pytest.fixture(autouse=True)
def reset_billing_config():
    """Each test starts from the default billing configuration."""
    from saascore.billing.config import set_billing_config

    set_billing_config(None)
    yield
    set_billing_config(None)
