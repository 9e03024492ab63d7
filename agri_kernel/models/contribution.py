"""
Module: agri_kernel.models.contribution
Responsibility: ORM persistence for produce contributions and their grading
    history.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One row per contribution holding the CURRENT grading decision.
    - grading_decisions is append-only; (contribution_id, sequence) is unique
      so two concurrent re-gradings cannot both claim the same slot.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import DateTime, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from agri_kernel.db.base import Base, TrackedBase, UUIDString


class ContributionRecord(TrackedBase):
    """Current state of one contribution."""

    __tablename__ = "contributions"

    __table_args__ = (
        Index("idx_contribution_order", "order_id"),
        Index("idx_contribution_member", "member_id"),
    )

    order_id: Mapped[str] = mapped_column(String(64), nullable=False)
    member_id: Mapped[str] = mapped_column(String(64), nullable=False)
    declared_quantity: Mapped[Decimal] = mapped_column(nullable=False)
    accepted_quantity: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    unit: Mapped[str] = mapped_column(String(16), nullable=False)
    quality_grade: Mapped[str] = mapped_column(String(1), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    rejection_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    produce_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    contributed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    graded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class GradingDecisionRecord(Base):
    """One immutable entry of a contribution's grading history."""

    __tablename__ = "grading_decisions"

    __table_args__ = (
        UniqueConstraint("contribution_id", "sequence", name="uq_grading_sequence"),
    )

    contribution_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    sequence: Mapped[int] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    accepted_quantity: Mapped[Decimal] = mapped_column(nullable=False)
    unit: Mapped[str] = mapped_column(String(16), nullable=False)
    rejection_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    previous_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    graded_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    graded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
