"""
Billing system exceptions.

Custom exceptions for subscription lifecycle and invoicing operations.
Every error carries a machine-readable code, an HTTP-ish status code,
context data and a recovery hint so the presentation layer can render it.
"""

from typing import Any


class BillingError(Exception):
    """
    Base billing system error with enhanced context.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code for API responses
        status_code: HTTP status code for this error type
        context: Additional context data about the error
        recovery_hint: Suggested action to resolve the error
    """

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        status_code: int = 400,
        context: dict[str, Any] | None = None,
        recovery_hint: str | None = None,
    ):
        self.message = message
        self.error_code = error_code or "BILLING_ERROR"
        self.status_code = status_code
        self.context = context or {}
        self.recovery_hint = recovery_hint
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for API responses."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "status_code": self.status_code,
            "context": self.context,
            "recovery_hint": self.recovery_hint,
        }


class SubscriptionError(BillingError):
    """Subscription-related errors."""

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        recovery_hint: str | None = None,
    ):
        super().__init__(
            message,
            "SUBSCRIPTION_ERROR",
            status_code=400,
            context=context,
            recovery_hint=recovery_hint,
        )


class SubscriptionNotFoundError(SubscriptionError):
    """Subscription not found error."""

    def __init__(self, message: str, subscription_id: str | None = None) -> None:
        context = {}
        if subscription_id:
            context["subscription_id"] = subscription_id

        super().__init__(
            message,
            context=context,
            recovery_hint="Verify the subscription ID and ensure it exists",
        )
        self.error_code = "SUBSCRIPTION_NOT_FOUND"
        self.status_code = 404


class InvalidStateTransitionError(SubscriptionError):
    """Requested operation is illegal in the subscription's current state."""

    def __init__(
        self,
        message: str,
        current_state: str,
        requested_state: str,
        subscription_id: str | None = None,
    ) -> None:
        context = {"current_state": current_state, "requested_state": requested_state}
        if subscription_id:
            context["subscription_id"] = subscription_id

        super().__init__(
            message,
            context=context,
            recovery_hint=(
                f"Cannot transition from {current_state} to {requested_state}. "
                "Check subscription status and outstanding invoices first."
            ),
        )
        self.error_code = "INVALID_SUBSCRIPTION_STATE"
        self.status_code = 409
        self.current_state = current_state
        self.requested_state = requested_state


class PlanNotFoundError(SubscriptionError):
    """Subscription plan not found error."""

    def __init__(self, message: str, plan_id: str | None = None) -> None:
        context = {}
        if plan_id:
            context["plan_id"] = plan_id

        super().__init__(
            message,
            context=context,
            recovery_hint="Verify the plan ID and ensure it exists in the catalog",
        )
        self.error_code = "PLAN_NOT_FOUND"
        self.status_code = 404


class TransientProcessingError(SubscriptionError):
    """A single subscription failed inside a batch run.

    Counted as an error for the run; the subscription stays a candidate for
    the next scheduled run.
    """

    def __init__(self, message: str, subscription_id: str, job: str | None = None) -> None:
        context = {"subscription_id": subscription_id}
        if job:
            context["job"] = job

        super().__init__(
            message,
            context=context,
            recovery_hint="The subscription will be retried on the next scheduled run",
        )
        self.error_code = "TRANSIENT_PROCESSING_ERROR"
        self.status_code = 503
        self.subscription_id = subscription_id


class InvoiceError(BillingError):
    """Invoice-related errors."""

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        recovery_hint: str | None = None,
    ):
        super().__init__(
            message, "INVOICE_ERROR", status_code=400, context=context, recovery_hint=recovery_hint
        )


class InvoiceNotFoundError(InvoiceError):
    """Invoice not found error."""

    def __init__(self, message: str, invoice_id: str | None = None) -> None:
        context = {}
        if invoice_id:
            context["invoice_id"] = invoice_id

        super().__init__(
            message, context=context, recovery_hint="Verify the invoice ID and ensure it exists"
        )
        self.error_code = "INVOICE_NOT_FOUND"
        self.status_code = 404


class PaymentMethodError(BillingError):
    """Payment method errors."""

    def __init__(self, message: str, method_type: str | None = None) -> None:
        context = {}
        if method_type:
            context["method_type"] = method_type

        super().__init__(
            message,
            "PAYMENT_METHOD_ERROR",
            status_code=402,
            context=context,
            recovery_hint="Verify the payment method details",
        )


class BillingConfigurationError(BillingError):
    """Billing configuration errors."""

    def __init__(
        self, message: str, config_key: str | None = None, recovery_hint: str | None = None
    ):
        context = {}
        if config_key:
            context["config_key"] = config_key

        super().__init__(
            message,
            "BILLING_CONFIG_ERROR",
            status_code=500,
            context=context,
            recovery_hint=recovery_hint or "Check billing configuration settings",
        )
