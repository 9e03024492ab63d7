"""
Module: agri_kernel.repositories.sql
Responsibility: SQLAlchemy implementations of the contribution and savings
    repositories.  Maps ORM rows to immutable domain objects at the boundary.
Architecture position: Kernel > Repositories.  May import from models/,
    domain/, db/ and exceptions.

Invariants enforced:
    - Repositories flush and never commit; the caller's session_scope owns
      the transaction.
    - The savings account row is read with SELECT ... FOR UPDATE before a
      ledger append, so appends for one member are serialized in the
      database as well as in-process.
    - The unique deposit_key constraint is the conditional insert that
      refuses a second deposit for the same (member, order) even when two
      processes race past the pre-check.

Failure modes:
    - DuplicateDepositError / StaleLedgerError from append().  When raised
      from a failed flush the session must be rolled back by its owner.
"""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from agri_kernel.domain.contribution import (
    Contribution,
    ContributionStatus,
    GradingDecision,
    QualityGrade,
)
from agri_kernel.domain.savings import (
    SavingsAccount,
    SavingsTransaction,
    SavingsTransactionType,
    deposit_key,
)
from agri_kernel.domain.values import Money, Quantity
from agri_kernel.exceptions import (
    ContributionNotFoundError,
    DuplicateDepositError,
    StaleLedgerError,
)
from agri_kernel.logging_config import get_logger
from agri_kernel.models.contribution import ContributionRecord, GradingDecisionRecord
from agri_kernel.models.savings import SavingsAccountRecord, SavingsTransactionRecord

logger = get_logger("repositories.sql")


def _dec(value: Decimal) -> Decimal:
    """Drop the trailing zeros a Numeric(38, 9) column pads values with."""
    if value == value.to_integral_value():
        return value.quantize(Decimal(1))
    return value.normalize()


def _utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class SqlContributionRepository:
    """Contribution repository over a caller-owned session."""

    def __init__(self, session: Session):
        self.session = session

    def add(self, contribution: Contribution) -> None:
        self.session.add(
            ContributionRecord(
                id=contribution.id,
                order_id=contribution.order_id,
                member_id=contribution.member_id,
                declared_quantity=contribution.declared_quantity.value,
                accepted_quantity=contribution.accepted_quantity.value,
                unit=contribution.unit,
                quality_grade=contribution.quality_grade.value,
                status=contribution.status.value,
                rejection_reason=contribution.rejection_reason,
                produce_type=contribution.produce_type,
                contributed_at=contribution.timestamp,
                graded_at=contribution.graded_at,
            )
        )
        self.session.flush()

    def get(self, contribution_id: UUID) -> Contribution:
        return self._to_domain(self._get_record(contribution_id))

    def save(self, contribution: Contribution, decision: GradingDecision) -> None:
        record = self._get_record(contribution.id, for_update=True)
        record.status = contribution.status.value
        record.accepted_quantity = contribution.accepted_quantity.value
        record.rejection_reason = contribution.rejection_reason
        record.graded_at = contribution.graded_at

        self.session.add(
            GradingDecisionRecord(
                contribution_id=decision.contribution_id,
                sequence=decision.sequence,
                status=decision.status.value,
                accepted_quantity=decision.accepted_quantity.value,
                unit=decision.accepted_quantity.unit,
                rejection_reason=decision.rejection_reason,
                previous_status=(
                    decision.previous_status.value if decision.previous_status else None
                ),
                graded_by=decision.graded_by,
                graded_at=decision.graded_at,
            )
        )
        self.session.flush()

    def list_for_order(self, order_id: str) -> list[Contribution]:
        stmt = (
            select(ContributionRecord)
            .where(ContributionRecord.order_id == order_id)
            .order_by(ContributionRecord.contributed_at, ContributionRecord.id)
        )
        return [self._to_domain(r) for r in self.session.execute(stmt).scalars()]

    def grading_history(self, contribution_id: UUID) -> list[GradingDecision]:
        self._get_record(contribution_id)
        stmt = (
            select(GradingDecisionRecord)
            .where(GradingDecisionRecord.contribution_id == contribution_id)
            .order_by(GradingDecisionRecord.sequence)
        )
        return [self._decision_to_domain(r) for r in self.session.execute(stmt).scalars()]

    def _get_record(self, contribution_id: UUID, for_update: bool = False) -> ContributionRecord:
        record = self.session.get(
            ContributionRecord, contribution_id, with_for_update=for_update or None
        )
        if record is None:
            raise ContributionNotFoundError(str(contribution_id))
        return record

    def _to_domain(self, record: ContributionRecord) -> Contribution:
        return Contribution(
            id=record.id,
            order_id=record.order_id,
            member_id=record.member_id,
            declared_quantity=Quantity.of(_dec(record.declared_quantity), record.unit),
            quality_grade=QualityGrade(record.quality_grade),
            timestamp=_utc(record.contributed_at),
            status=ContributionStatus(record.status),
            accepted_quantity=Quantity.of(_dec(record.accepted_quantity), record.unit),
            rejection_reason=record.rejection_reason,
            produce_type=record.produce_type,
            graded_at=_utc(record.graded_at),
        )

    def _decision_to_domain(self, record: GradingDecisionRecord) -> GradingDecision:
        return GradingDecision(
            contribution_id=record.contribution_id,
            sequence=record.sequence,
            status=ContributionStatus(record.status),
            accepted_quantity=Quantity.of(_dec(record.accepted_quantity), record.unit),
            rejection_reason=record.rejection_reason,
            graded_at=_utc(record.graded_at),
            graded_by=record.graded_by,
            previous_status=(
                ContributionStatus(record.previous_status) if record.previous_status else None
            ),
        )


class SqlSavingsRepository:
    """Savings repository over a caller-owned session."""

    def __init__(self, session: Session):
        self.session = session

    def get_account(self, member_id: str) -> SavingsAccount | None:
        record = self._account_record(member_id)
        return self._account_to_domain(record) if record is not None else None

    def append(self, account: SavingsAccount, transaction: SavingsTransaction) -> None:
        key = transaction.deposit_key
        if key is not None:
            existing = self._find_by_key(key)
            if existing is not None:
                raise DuplicateDepositError(
                    transaction.member_id,
                    transaction.order_id,
                    str(existing.amount),
                    existing,
                )

        record = self._account_record(account.member_id, for_update=True)
        expected = (record.transaction_count if record is not None else 0) + 1
        if transaction.sequence != expected:
            raise StaleLedgerError(account.member_id, expected, transaction.sequence)

        if record is None:
            record = SavingsAccountRecord(
                member_id=account.member_id,
                currency=account.currency.code,
                opened_on=account.opened_on,
            )
            self.session.add(record)
        record.total_savings = account.total_savings.amount
        record.available_for_withdrawal = account.available_for_withdrawal.amount
        record.annual_interest_rate = account.annual_interest_rate
        record.last_rollover_date = account.last_rollover_date
        record.transaction_count = account.transaction_count

        self.session.add(
            SavingsTransactionRecord(
                id=transaction.id,
                member_id=transaction.member_id,
                order_id=transaction.order_id,
                amount=transaction.amount.amount,
                currency=transaction.amount.currency.code,
                transaction_date=transaction.date,
                type=transaction.type.value,
                balance=transaction.balance.amount,
                sequence=transaction.sequence,
                deposit_key=key,
            )
        )

        try:
            self.session.flush()
        except IntegrityError as exc:
            logger.warning(
                "savings_append_conflict",
                extra={
                    "member_id": transaction.member_id,
                    "order_id": transaction.order_id,
                    "sequence": transaction.sequence,
                },
            )
            if key is not None and "deposit_key" in str(exc.orig):
                raise DuplicateDepositError(
                    transaction.member_id,
                    transaction.order_id,
                    "unknown (concurrent insert)",
                ) from exc
            raise StaleLedgerError(
                transaction.member_id, expected, transaction.sequence
            ) from exc

    def transactions(self, member_id: str) -> list[SavingsTransaction]:
        stmt = (
            select(SavingsTransactionRecord)
            .where(SavingsTransactionRecord.member_id == member_id)
            .order_by(SavingsTransactionRecord.sequence)
        )
        return [self._tx_to_domain(r) for r in self.session.execute(stmt).scalars()]

    def find_deposit(self, member_id: str, order_id: str) -> SavingsTransaction | None:
        return self._find_by_key(deposit_key(member_id, order_id))

    def member_ids(self) -> list[str]:
        stmt = select(SavingsAccountRecord.member_id).order_by(SavingsAccountRecord.member_id)
        return list(self.session.execute(stmt).scalars())

    def _find_by_key(self, key: str) -> SavingsTransaction | None:
        stmt = select(SavingsTransactionRecord).where(SavingsTransactionRecord.deposit_key == key)
        record = self.session.execute(stmt).scalar_one_or_none()
        return self._tx_to_domain(record) if record is not None else None

    def _account_record(
        self, member_id: str, for_update: bool = False
    ) -> SavingsAccountRecord | None:
        stmt = select(SavingsAccountRecord).where(SavingsAccountRecord.member_id == member_id)
        if for_update:
            stmt = stmt.with_for_update()
        return self.session.execute(stmt).scalar_one_or_none()

    def _account_to_domain(self, record: SavingsAccountRecord) -> SavingsAccount:
        return SavingsAccount(
            member_id=record.member_id,
            total_savings=Money.of(_dec(record.total_savings), record.currency),
            available_for_withdrawal=Money.of(
                _dec(record.available_for_withdrawal), record.currency
            ),
            annual_interest_rate=_dec(record.annual_interest_rate),
            last_rollover_date=record.last_rollover_date,
            opened_on=record.opened_on,
            transaction_count=record.transaction_count,
        )

    def _tx_to_domain(self, record: SavingsTransactionRecord) -> SavingsTransaction:
        return SavingsTransaction(
            id=record.id,
            member_id=record.member_id,
            order_id=record.order_id,
            amount=Money.of(_dec(record.amount), record.currency),
            date=record.transaction_date,
            type=SavingsTransactionType(record.type),
            balance=Money.of(_dec(record.balance), record.currency),
            sequence=record.sequence,
        )
