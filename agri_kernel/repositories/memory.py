"""
In-memory repositories.

Thread-safe: every public method holds the repository lock, so a
check-then-insert (duplicate deposit, ledger sequence) is atomic even when
services are called from several threads without their own locks.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from uuid import UUID

from agri_kernel.domain.contribution import Contribution, GradingDecision
from agri_kernel.domain.order import Order
from agri_kernel.domain.savings import (
    SavingsAccount,
    SavingsTransaction,
    deposit_key,
)
from agri_kernel.exceptions import (
    ContributionNotFoundError,
    DuplicateDepositError,
    OrderNotFoundError,
    StaleLedgerError,
)


class InMemoryContributionRepository:
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._contributions: dict[UUID, Contribution] = {}
        self._history: dict[UUID, list[GradingDecision]] = defaultdict(list)

    def add(self, contribution: Contribution) -> None:
        with self._lock:
            self._contributions[contribution.id] = contribution

    def get(self, contribution_id: UUID) -> Contribution:
        with self._lock:
            try:
                return self._contributions[contribution_id]
            except KeyError:
                raise ContributionNotFoundError(str(contribution_id)) from None

    def save(self, contribution: Contribution, decision: GradingDecision) -> None:
        with self._lock:
            if contribution.id not in self._contributions:
                raise ContributionNotFoundError(str(contribution.id))
            self._contributions[contribution.id] = contribution
            self._history[contribution.id].append(decision)

    def list_for_order(self, order_id: str) -> list[Contribution]:
        with self._lock:
            found = [c for c in self._contributions.values() if c.order_id == order_id]
        return sorted(found, key=lambda c: (c.timestamp, str(c.id)))

    def grading_history(self, contribution_id: UUID) -> list[GradingDecision]:
        with self._lock:
            if contribution_id not in self._contributions:
                raise ContributionNotFoundError(str(contribution_id))
            return list(self._history.get(contribution_id, ()))


class InMemorySavingsRepository:
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._accounts: dict[str, SavingsAccount] = {}
        self._ledgers: dict[str, list[SavingsTransaction]] = defaultdict(list)
        self._deposits: dict[str, SavingsTransaction] = {}

    def get_account(self, member_id: str) -> SavingsAccount | None:
        with self._lock:
            return self._accounts.get(member_id)

    def append(self, account: SavingsAccount, transaction: SavingsTransaction) -> None:
        with self._lock:
            key = transaction.deposit_key
            if key is not None and key in self._deposits:
                existing = self._deposits[key]
                raise DuplicateDepositError(
                    transaction.member_id,
                    transaction.order_id,
                    str(existing.amount),
                    existing,
                )

            ledger = self._ledgers[transaction.member_id]
            expected = len(ledger) + 1
            if transaction.sequence != expected:
                raise StaleLedgerError(transaction.member_id, expected, transaction.sequence)

            ledger.append(transaction)
            if key is not None:
                self._deposits[key] = transaction
            self._accounts[account.member_id] = account

    def transactions(self, member_id: str) -> list[SavingsTransaction]:
        with self._lock:
            return list(self._ledgers.get(member_id, ()))

    def find_deposit(self, member_id: str, order_id: str) -> SavingsTransaction | None:
        with self._lock:
            return self._deposits.get(deposit_key(member_id, order_id))

    def member_ids(self) -> list[str]:
        with self._lock:
            return sorted(self._accounts)


class InMemoryOrderRepository:
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._orders: dict[str, Order] = {}

    def add(self, order: Order) -> None:
        with self._lock:
            self._orders[order.id] = order

    def get(self, order_id: str) -> Order:
        with self._lock:
            try:
                return self._orders[order_id]
            except KeyError:
                raise OrderNotFoundError(order_id) from None

    def save(self, order: Order) -> None:
        with self._lock:
            if order.id not in self._orders:
                raise OrderNotFoundError(order.id)
            self._orders[order.id] = order


__all__ = [
    "InMemoryContributionRepository",
    "InMemoryOrderRepository",
    "InMemorySavingsRepository",
]
