"""
Repository contracts and their implementations.

The services depend only on the Protocols in ``contracts``; the in-memory
implementations back tests and embedded use, the SQLAlchemy ones back a
real database.
"""

from agri_kernel.repositories.contracts import (
    ContributionRepository,
    OrderRepository,
    SavingsRepository,
)
from agri_kernel.repositories.memory import (
    InMemoryContributionRepository,
    InMemoryOrderRepository,
    InMemorySavingsRepository,
)
from agri_kernel.repositories.sql import (
    SqlContributionRepository,
    SqlSavingsRepository,
)

__all__ = [
    "ContributionRepository",
    "InMemoryContributionRepository",
    "InMemoryOrderRepository",
    "InMemorySavingsRepository",
    "OrderRepository",
    "SavingsRepository",
    "SqlContributionRepository",
    "SqlSavingsRepository",
]
