"""
Savings -- per-member compulsory savings account and its ledger entries.

Responsibility:
    Defines SavingsAccount (running balances plus the annual rollover
    window) and SavingsTransaction (one append-only ledger line).

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Each transaction's ``balance`` equals the account's total savings
      immediately after that transaction is applied.
    - Transactions are strictly ordered by ``sequence``; no back-dating.
    - ``available_for_withdrawal`` never exceeds ``total_savings``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from agri_kernel.domain.values import Money

INTEREST_ORDER_REF = "interest"
WITHDRAWAL_ORDER_REF = "withdrawal"


class SavingsTransactionType(str, Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    INTEREST = "interest"


class SavingsAccountState(str, Enum):
    """Rollover window state of an account."""

    ACCRUING = "accruing"
    ROLLOVER_DUE = "rollover-due"


def add_one_year(d: date) -> date:
    """Same calendar day next year; 29 February maps to 28 February."""
    try:
        return d.replace(year=d.year + 1)
    except ValueError:
        return d.replace(year=d.year + 1, day=28)


def deposit_key(member_id: str, order_id: str) -> str:
    """Idempotency key of a savings deposit."""
    return f"{member_id}:{order_id}"


@dataclass(frozen=True)
class SavingsTransaction:
    id: UUID
    member_id: str
    order_id: str
    amount: Money
    date: date
    type: SavingsTransactionType
    balance: Money
    sequence: int

    @property
    def deposit_key(self) -> str | None:
        if self.type != SavingsTransactionType.DEPOSIT:
            return None
        return deposit_key(self.member_id, self.order_id)


@dataclass(frozen=True)
class SavingsAccount:
    """
    A member's savings account across all orders.

    ``last_rollover_date`` is the start of the current annual window; the
    window closes on its anniversary (``next_rollover_date``).
    """

    member_id: str
    total_savings: Money
    available_for_withdrawal: Money
    annual_interest_rate: Decimal
    last_rollover_date: date
    opened_on: date
    transaction_count: int = 0

    def __post_init__(self) -> None:
        if self.available_for_withdrawal > self.total_savings:
            raise ValueError(
                f"Available {self.available_for_withdrawal} exceeds total {self.total_savings}"
            )

    @classmethod
    def open(
        cls,
        member_id: str,
        currency: str,
        annual_interest_rate: Decimal,
        opened_on: date,
    ) -> SavingsAccount:
        return cls(
            member_id=member_id,
            total_savings=Money.zero(currency),
            available_for_withdrawal=Money.zero(currency),
            annual_interest_rate=annual_interest_rate,
            last_rollover_date=opened_on,
            opened_on=opened_on,
        )

    @property
    def currency(self):
        return self.total_savings.currency

    @property
    def locked_savings(self) -> Money:
        return self.total_savings - self.available_for_withdrawal

    @property
    def next_rollover_date(self) -> date:
        return add_one_year(self.last_rollover_date)

    def state(self, as_of: date) -> SavingsAccountState:
        if as_of >= self.next_rollover_date:
            return SavingsAccountState.ROLLOVER_DUE
        return SavingsAccountState.ACCRUING
