"""Invoice generation."""

from saascore.billing.invoicing.generator import InvoiceGenerator, generate_invoice_number

__all__ = ["InvoiceGenerator", "generate_invoice_number"]
