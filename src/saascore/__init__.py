"""
saascore - subscription lifecycle and billing core.

Decides, on a schedule, whether subscriptions are renewed, billed, marked
delinquent, suspended or expired, and computes the monetary consequences
(prorated charges, country-specific tax) of plan changes and renewals.
"""

__version__ = "1.0.0"

__all__ = ["__version__"]
