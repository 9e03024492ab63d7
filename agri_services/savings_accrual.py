"""
SavingsAccrual -- compulsory member savings across orders.

Responsibility:
    Posts the per-kg compulsory savings deposit for each (member, order),
    member withdrawals, and the annual interest rollover, persisting the
    account state and its ledger line together.

Architecture position:
    Services -- imperative shell over the savings engine and an injected
    SavingsRepository.  Holds no timers; ``accrue_interest`` /
    ``accrue_due`` are driven by an external scheduler.

Invariants enforced:
    - Deposits are idempotent per (member, order): a second deposit for
      the same pair raises DuplicateDepositError carrying the existing
      transaction and never credits twice.  The check and the insert run
      under the member lock, and the repository refuses the duplicate key
      again at insert time.
    - Postings for one member are serialized on the member lock; the
      ledger stays strictly ordered with balance == running total.
    - projected_interest never mutates state.

Failure modes:
    - DuplicateDepositError: deposit already posted for (member, order).
    - InvalidQuantityError: deposit quantity not positive / not kg.
    - InvalidAmountError: withdrawal amount <= 0.
    - InsufficientFundsError: withdrawal above the available amount.
    - SavingsAccountNotFoundError: withdrawal/interest for a member with
      no account.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import uuid4

from agri_engines.savings import (
    SavingsPolicy,
    deposit_amount,
    post_deposit,
    post_interest,
    post_withdrawal,
    projected_interest,
    verify_running_balance,
)
from agri_kernel.domain.clock import Clock, SystemClock
from agri_kernel.domain.savings import (
    SavingsAccount,
    SavingsAccountState,
    SavingsTransaction,
)
from agri_kernel.domain.values import Money, Quantity
from agri_kernel.exceptions import (
    DuplicateDepositError,
    InsufficientFundsError,
    InvalidAmountError,
    InvalidQuantityError,
    SavingsAccountNotFoundError,
)
from agri_kernel.logging_config import LogContext, get_logger
from agri_kernel.repositories.contracts import SavingsRepository
from agri_services.locks import KeyedLocks

logger = get_logger("services.savings_accrual")


@dataclass(frozen=True)
class SavingsStatement:
    """A member's account with its full ledger, for display and audit."""

    account: SavingsAccount
    transactions: tuple[SavingsTransaction, ...]
    projected_interest: Money
    state: SavingsAccountState
    balance_verified: bool


class SavingsAccrual:
    def __init__(
        self,
        repository: SavingsRepository,
        policy: SavingsPolicy,
        clock: Clock | None = None,
        member_locks: KeyedLocks | None = None,
    ):
        self._repository = repository
        self.policy = policy
        self._clock = clock or SystemClock()
        self._member_locks = member_locks or KeyedLocks()

    # ------------------------------------------------------------------
    # Postings
    # ------------------------------------------------------------------

    def deposit(
        self,
        member_id: str,
        order_id: str,
        accepted_quantity: Quantity | Decimal | int | str,
    ) -> SavingsTransaction:
        """
        Post the compulsory savings for ``accepted_quantity`` kg on an order.

        Raises:
            DuplicateDepositError: a deposit for (member, order) exists.
        """
        qty = (
            accepted_quantity
            if isinstance(accepted_quantity, Quantity)
            else Quantity.of(Decimal(str(accepted_quantity)), "kg")
        )
        if not qty.is_positive:
            raise InvalidQuantityError(str(qty), "deposit quantity must be greater than zero")
        amount = deposit_amount(qty, self.policy.rate_per_kg)

        with self._member_locks.hold(member_id), LogContext.bind(
            member_id=member_id, order_id=order_id
        ):
            existing = self._repository.find_deposit(member_id, order_id)
            if existing is not None:
                logger.info(
                    "savings_deposit_duplicate",
                    extra={
                        "existing_amount": str(existing.amount.amount),
                        "requested_amount": str(amount.amount),
                    },
                )
                raise DuplicateDepositError(member_id, order_id, str(existing.amount), existing)

            today = self._clock.today()
            account = self._repository.get_account(member_id) or SavingsAccount.open(
                member_id,
                self.policy.currency.code,
                self.policy.annual_interest_rate,
                today,
            )
            account, tx = post_deposit(
                account,
                order_id,
                amount,
                today,
                uuid4(),
                lock_until_rollover=self.policy.lock_deposits_until_rollover,
            )
            self._repository.append(account, tx)

            logger.info(
                "savings_deposit_posted",
                extra={
                    "quantity_kg": str(qty.value),
                    "amount": str(amount.amount),
                    "balance": str(tx.balance.amount),
                    "sequence": tx.sequence,
                },
            )
        return tx

    def withdraw(self, member_id: str, amount: Money) -> SavingsTransaction:
        if not amount.is_positive:
            raise InvalidAmountError(str(amount), "withdrawal amount must be greater than zero")

        with self._member_locks.hold(member_id), LogContext.bind(member_id=member_id):
            account = self._require_account(member_id)
            try:
                account, tx = post_withdrawal(account, amount, self._clock.today(), uuid4())
            except InsufficientFundsError as e:
                logger.info(
                    "savings_withdrawal_refused",
                    extra={"requested": e.requested, "available": e.available},
                )
                raise
            self._repository.append(account, tx)

            logger.info(
                "savings_withdrawal_posted",
                extra={
                    "amount": str(amount.amount),
                    "balance": str(tx.balance.amount),
                    "sequence": tx.sequence,
                },
            )
        return tx

    def accrue_interest(
        self,
        member_id: str,
        as_of: date | None = None,
    ) -> SavingsTransaction | None:
        """
        Roll the account over one year if its anniversary has passed.

        Returns None when the rollover is not yet due.
        """
        as_of = as_of or self._clock.today()
        with self._member_locks.hold(member_id), LogContext.bind(member_id=member_id):
            account = self._require_account(member_id)
            result = post_interest(account, as_of, uuid4())
            if result is None:
                logger.debug(
                    "savings_interest_not_due",
                    extra={
                        "as_of": as_of,
                        "next_rollover_date": account.next_rollover_date,
                    },
                )
                return None

            account, tx = result
            self._repository.append(account, tx)
            logger.info(
                "savings_interest_posted",
                extra={
                    "interest": str(tx.amount.amount),
                    "balance": str(tx.balance.amount),
                    "rollover_date": account.last_rollover_date,
                    "sequence": tx.sequence,
                },
            )
        return tx

    def accrue_due(self, as_of: date | None = None) -> list[SavingsTransaction]:
        """Scheduler entry point: one rollover for every account that is due."""
        as_of = as_of or self._clock.today()
        posted: list[SavingsTransaction] = []
        for member_id in self._repository.member_ids():
            tx = self.accrue_interest(member_id, as_of)
            if tx is not None:
                posted.append(tx)
        logger.info(
            "savings_rollover_run_completed",
            extra={"as_of": as_of, "posted_count": len(posted)},
        )
        return posted

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def account(self, member_id: str) -> SavingsAccount:
        return self._require_account(member_id)

    def find_deposit(self, member_id: str, order_id: str) -> SavingsTransaction | None:
        return self._repository.find_deposit(member_id, order_id)

    def expected_deposit(self, accepted_quantity: Quantity) -> Money:
        return deposit_amount(accepted_quantity, self.policy.rate_per_kg)

    def projected_interest(self, member_id: str) -> Money:
        account = self._repository.get_account(member_id)
        if account is None:
            return Money.zero(self.policy.currency)
        return projected_interest(account)

    def rollover_state(self, member_id: str, as_of: date | None = None) -> SavingsAccountState:
        return self._require_account(member_id).state(as_of or self._clock.today())

    def transactions(self, member_id: str) -> list[SavingsTransaction]:
        return self._repository.transactions(member_id)

    def statement(self, member_id: str) -> SavingsStatement:
        with self._member_locks.hold(member_id):
            account = self._require_account(member_id)
            transactions = tuple(self._repository.transactions(member_id))
        return SavingsStatement(
            account=account,
            transactions=transactions,
            projected_interest=projected_interest(account),
            state=account.state(self._clock.today()),
            balance_verified=verify_running_balance(transactions),
        )

    def _require_account(self, member_id: str) -> SavingsAccount:
        account = self._repository.get_account(member_id)
        if account is None:
            raise SavingsAccountNotFoundError(member_id)
        return account
