"""
Repository contracts -- storage ports for the payout core.

Architecture position:
    Kernel > Repositories.  Services receive these by constructor injection
    and never import a concrete implementation.

Contract:
    - Repositories never commit.  The in-memory implementations apply
      writes immediately; the SQL ones flush into the caller's session.
    - Returned objects are immutable domain dataclasses, never ORM rows.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable
from uuid import UUID

from agri_kernel.domain.contribution import Contribution, GradingDecision
from agri_kernel.domain.order import Order
from agri_kernel.domain.savings import SavingsAccount, SavingsTransaction


@runtime_checkable
class ContributionRepository(Protocol):
    """Contributions with their current grading and the grading history."""

    def add(self, contribution: Contribution) -> None: ...

    def get(self, contribution_id: UUID) -> Contribution:
        """Raises ContributionNotFoundError."""
        ...

    def save(self, contribution: Contribution, decision: GradingDecision) -> None:
        """Replace the current state and append ``decision`` to the history."""
        ...

    def list_for_order(self, order_id: str) -> list[Contribution]:
        """Contributions of one order, oldest first."""
        ...

    def grading_history(self, contribution_id: UUID) -> list[GradingDecision]:
        """Grading decisions ordered by sequence."""
        ...


@runtime_checkable
class SavingsRepository(Protocol):
    """Savings accounts and their append-only transaction ledgers."""

    def get_account(self, member_id: str) -> SavingsAccount | None: ...

    def append(self, account: SavingsAccount, transaction: SavingsTransaction) -> None:
        """
        Store ``account`` and append ``transaction`` atomically.

        Raises:
            DuplicateDepositError: a deposit for the same (member, order)
                already exists.
            StaleLedgerError: ``transaction.sequence`` is not the next one.
        """
        ...

    def transactions(self, member_id: str) -> list[SavingsTransaction]:
        """Ledger lines ordered by sequence."""
        ...

    def find_deposit(self, member_id: str, order_id: str) -> SavingsTransaction | None: ...

    def member_ids(self) -> list[str]: ...


@runtime_checkable
class OrderRepository(Protocol):
    def add(self, order: Order) -> None: ...

    def get(self, order_id: str) -> Order:
        """Raises OrderNotFoundError."""
        ...

    def save(self, order: Order) -> None: ...
