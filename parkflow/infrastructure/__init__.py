"""Infrastructure layer package."""

from parkflow.infrastructure.db import (
    SqlStore,
    close_db,
    get_store,
    init_db,
)
from parkflow.infrastructure.memory import InMemoryStore, MemoryDatabase
from parkflow.infrastructure.store import (
    FINE_SCHEME_KEY,
    PaymentTotals,
    Store,
)

__all__ = [
    # Store
    "Store",
    "PaymentTotals",
    "FINE_SCHEME_KEY",
    "InMemoryStore",
    "MemoryDatabase",
    # Database
    "SqlStore",
    "get_store",
    "init_db",
    "close_db",
]
