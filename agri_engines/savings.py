"""
Module: agri_engines.savings
Responsibility:
    Pure state transitions of a member savings account: compulsory
    deposit, withdrawal, annual interest rollover, and the running-balance
    check over a ledger.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Each posting returns the
    next account state together with the ledger line that produced it;
    the SavingsAccrual service persists both atomically.

Invariants enforced:
    - transaction.balance == account.total_savings after the posting.
    - transaction.sequence == previous transaction_count + 1.
    - Interest advances last_rollover_date by exactly one year (never to
      the as-of date) and releases the whole balance for withdrawal.
    - available_for_withdrawal never exceeds total_savings.

Failure modes:
    - InvalidQuantityError when a deposit quantity is negative or not in kg.
    - InvalidAmountError when a withdrawal amount is not positive.
    - InsufficientFundsError when a withdrawal exceeds the available amount.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from uuid import UUID

from agri_engines.tracer import traced_engine
from agri_kernel.domain.savings import (
    INTEREST_ORDER_REF,
    WITHDRAWAL_ORDER_REF,
    SavingsAccount,
    SavingsTransaction,
    SavingsTransactionType,
)
from agri_kernel.domain.values import Money, Quantity
from agri_kernel.exceptions import (
    InsufficientFundsError,
    InvalidAmountError,
    InvalidQuantityError,
)

_HUNDRED = Decimal("100")


@dataclass(frozen=True)
class SavingsPolicy:
    """Compulsory savings terms applied to every member account."""

    rate_per_kg: Money
    annual_interest_rate: Decimal
    lock_deposits_until_rollover: bool = True

    @property
    def currency(self):
        return self.rate_per_kg.currency


def deposit_amount(accepted: Quantity, rate_per_kg: Money) -> Money:
    """Compulsory savings for an accepted quantity, at currency precision."""
    if accepted.unit != "kg":
        raise InvalidQuantityError(str(accepted), "savings are withheld per kg")
    if accepted.value < 0:
        raise InvalidQuantityError(str(accepted), "accepted quantity cannot be negative")
    return (rate_per_kg * accepted.value).round()


def annual_interest(total: Money, annual_rate_pct: Decimal) -> Money:
    return (total * annual_rate_pct / _HUNDRED).round()


def _line(
    account: SavingsAccount,
    tx_id: UUID,
    order_ref: str,
    amount: Money,
    on: date,
    tx_type: SavingsTransactionType,
) -> SavingsTransaction:
    return SavingsTransaction(
        id=tx_id,
        member_id=account.member_id,
        order_id=order_ref,
        amount=amount,
        date=on,
        type=tx_type,
        balance=account.total_savings,
        sequence=account.transaction_count,
    )


def post_deposit(
    account: SavingsAccount,
    order_id: str,
    amount: Money,
    on: date,
    tx_id: UUID,
    lock_until_rollover: bool = True,
) -> tuple[SavingsAccount, SavingsTransaction]:
    """
    Credit a compulsory savings deposit.

    With ``lock_until_rollover`` the deposit raises total savings only; it
    becomes withdrawable at the next interest rollover.
    """
    if amount.is_negative:
        raise InvalidAmountError(str(amount), "deposit amount cannot be negative")
    available = account.available_for_withdrawal
    if not lock_until_rollover:
        available = available + amount
    new_account = replace(
        account,
        total_savings=account.total_savings + amount,
        available_for_withdrawal=available,
        transaction_count=account.transaction_count + 1,
    )
    return new_account, _line(
        new_account, tx_id, order_id, amount, on, SavingsTransactionType.DEPOSIT
    )


def post_withdrawal(
    account: SavingsAccount,
    amount: Money,
    on: date,
    tx_id: UUID,
) -> tuple[SavingsAccount, SavingsTransaction]:
    """
    Raises:
        InvalidAmountError: amount <= 0.
        InsufficientFundsError: amount > available_for_withdrawal.
    """
    if not amount.is_positive:
        raise InvalidAmountError(str(amount), "withdrawal amount must be greater than zero")
    if amount > account.available_for_withdrawal:
        raise InsufficientFundsError(
            account.member_id, str(amount), str(account.available_for_withdrawal)
        )
    new_account = replace(
        account,
        total_savings=account.total_savings - amount,
        available_for_withdrawal=account.available_for_withdrawal - amount,
        transaction_count=account.transaction_count + 1,
    )
    return new_account, _line(
        new_account, tx_id, WITHDRAWAL_ORDER_REF, -amount, on, SavingsTransactionType.WITHDRAWAL
    )


@traced_engine("savings_interest", "1.0", fingerprint_fields=("account", "as_of"))
def post_interest(
    account: SavingsAccount,
    as_of: date,
    tx_id: UUID,
) -> tuple[SavingsAccount, SavingsTransaction] | None:
    """
    Run one annual rollover if it is due on ``as_of``; None otherwise.

    Only one year is rolled per call.  A caller that is several years late
    calls again until it returns None.
    """
    if as_of < account.next_rollover_date:
        return None
    interest = annual_interest(account.total_savings, account.annual_interest_rate)
    total = account.total_savings + interest
    new_account = replace(
        account,
        total_savings=total,
        available_for_withdrawal=total,
        last_rollover_date=account.next_rollover_date,
        transaction_count=account.transaction_count + 1,
    )
    return new_account, _line(
        new_account, tx_id, INTEREST_ORDER_REF, interest, as_of, SavingsTransactionType.INTEREST
    )


def projected_interest(account: SavingsAccount) -> Money:
    """Interest the current balance would earn at the next rollover."""
    return annual_interest(account.total_savings, account.annual_interest_rate)


def verify_running_balance(transactions: Sequence[SavingsTransaction]) -> bool:
    """
    True when every line's balance is the running sum of amounts up to and
    including it, and sequences run 1..n without gaps.
    """
    running: Money | None = None
    for expected_seq, tx in enumerate(transactions, start=1):
        if tx.sequence != expected_seq:
            return False
        running = tx.amount if running is None else running + tx.amount
        if running != tx.balance:
            return False
    return True
