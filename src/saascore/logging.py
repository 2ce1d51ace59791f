"""
structlog configuration for the billing core.

Events are dotted keys (``subscription.renewed``, ``lifecycle.batch.completed``)
with keyword context. The batch runner binds ``job`` and ``as_of`` through
``structlog.contextvars``; they are merged into every event emitted while a
job runs.

State changes and operator actions go to the ``audit`` logger via
:func:`log_audit_event`. There is no separate revision store.
"""

import logging
from collections.abc import MutableMapping
from enum import Enum
from typing import Any

import structlog

from saascore.settings import settings

AUDIT_LOGGER_NAME = "audit"


class AuditCategory(str, Enum):
    """Audit trails written by the billing core."""

    SUBSCRIPTION_LIFECYCLE = "subscription_lifecycle"
    BILLING = "billing"


def add_service_context(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    event_dict.setdefault("service", settings.app_name)
    event_dict.setdefault("environment", settings.environment.value)
    return event_dict


def _processors() -> list[Any]:
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        add_service_context,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.observability.enable_thread_names:
        processors.insert(
            0,
            structlog.processors.CallsiteParameterAdder(
                parameters=[structlog.processors.CallsiteParameter.THREAD_NAME]
            ),
        )

    # Workers ship JSON; text is for local runs of the CLI
    if settings.observability.log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())
    return processors


def setup_logging() -> None:
    """Configure structlog on top of stdlib logging at the configured level."""
    logging.basicConfig(format="%(message)s", level=settings.observability.log_level.value)

    structlog.configure(
        processors=_processors(),
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_audit_logger() -> structlog.BoundLogger:
    return structlog.get_logger(AUDIT_LOGGER_NAME)


def log_audit_event(
    action: str,
    category: AuditCategory | str,
    user_id: str | None = None,
    resource_type: str | None = None,
    resource_id: str | None = None,
    **kwargs: Any,
) -> None:
    """
    Record one audit entry.

    Args:
        action: Dotted event key, e.g. ``subscription.suspended``
        category: Audit trail the entry belongs to
        user_id: Subscription owner or acting operator, when known
        resource_type: ``subscription`` or ``invoice``
        resource_id: Identifier of the affected resource
        **kwargs: Extra context such as ``previous_status``
    """
    get_audit_logger().info(
        action,
        audit_category=AuditCategory(category).value,
        audit_user_id=user_id,
        audit_resource_type=resource_type,
        audit_resource_id=resource_id,
        **kwargs,
    )


# Initialize on import
setup_logging()
