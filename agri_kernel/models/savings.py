"""
Module: agri_kernel.models.savings
Responsibility: ORM persistence for member savings accounts and the
    append-only savings transaction ledger.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One account per member (uq_savings_member).
    - (member_id, sequence) unique: the ledger is strictly ordered.
    - deposit_key unique: at most one deposit per (member, order).  This is
      the conditional insert that makes deposits idempotent under retries.
"""

from datetime import date
from decimal import Decimal

from sqlalchemy import Date, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from agri_kernel.db.base import Base, TrackedBase


class SavingsAccountRecord(TrackedBase):
    __tablename__ = "savings_accounts"

    __table_args__ = (
        UniqueConstraint("member_id", name="uq_savings_member"),
    )

    member_id: Mapped[str] = mapped_column(String(64), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    total_savings: Mapped[Decimal] = mapped_column(nullable=False)
    available_for_withdrawal: Mapped[Decimal] = mapped_column(nullable=False)
    annual_interest_rate: Mapped[Decimal] = mapped_column(nullable=False)
    last_rollover_date: Mapped[date] = mapped_column(Date, nullable=False)
    opened_on: Mapped[date] = mapped_column(Date, nullable=False)
    transaction_count: Mapped[int] = mapped_column(nullable=False, default=0)


class SavingsTransactionRecord(Base):
    __tablename__ = "savings_transactions"

    __table_args__ = (
        UniqueConstraint("member_id", "sequence", name="uq_savings_tx_sequence"),
        UniqueConstraint("deposit_key", name="uq_savings_deposit_key"),
        Index("idx_savings_tx_member", "member_id"),
    )

    member_id: Mapped[str] = mapped_column(String(64), nullable=False)
    order_id: Mapped[str] = mapped_column(String(64), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    balance: Mapped[Decimal] = mapped_column(nullable=False)
    sequence: Mapped[int] = mapped_column(nullable=False)
    deposit_key: Mapped[str | None] = mapped_column(String(140), nullable=True)
