"""Storage adapters implementing :mod:`saascore.billing.interfaces`."""

from saascore.billing.storage.memory import InMemoryBillingStorage, InMemoryUnitOfWork

__all__ = ["InMemoryBillingStorage", "InMemoryUnitOfWork"]
