"""
Contribution -- one delivery of produce by a member toward an order.

Responsibility:
    Defines the Contribution entity, its grading statuses, and the grading
    rules that tie ``status`` to ``accepted_quantity``. Re-grading an already
    graded contribution is allowed; it supersedes the current decision and
    the superseded one stays in the ``GradingDecision`` history.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - pending / rejected     <=> accepted_quantity == 0
    - accepted               <=> accepted_quantity == declared_quantity
    - partially_accepted     <=> 0 < accepted_quantity < declared_quantity
    - rejected / partially_accepted require a non-blank rejection_reason
    - declared_quantity > 0, timestamp immutable

Failure modes:
    - InvalidQuantityError when the declared quantity is not positive.
    - InvalidGradingError for any illegal status/quantity combination.
      Illegal combinations always fail; nothing is clamped.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID, uuid4

from agri_kernel.domain.values import Quantity
from agri_kernel.exceptions import InvalidGradingError, InvalidQuantityError


class ContributionStatus(str, Enum):
    """Grading status of a contribution."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    PARTIALLY_ACCEPTED = "partially_accepted"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self != ContributionStatus.PENDING

    @property
    def counts_toward_payment(self) -> bool:
        return self in (
            ContributionStatus.ACCEPTED,
            ContributionStatus.PARTIALLY_ACCEPTED,
        )


class QualityGrade(str, Enum):
    A = "A"
    B = "B"
    C = "C"


_REASON_REQUIRED = frozenset(
    {ContributionStatus.REJECTED, ContributionStatus.PARTIALLY_ACCEPTED}
)


@dataclass(frozen=True)
class GradingDecision:
    """
    One grading decision in a contribution's audit trail.

    ``sequence`` starts at 1 and increases by one per decision; the decision
    with the highest sequence is the current one.
    """

    contribution_id: UUID
    sequence: int
    status: ContributionStatus
    accepted_quantity: Quantity
    rejection_reason: str | None
    graded_at: datetime
    graded_by: str | None = None
    previous_status: ContributionStatus | None = None


@dataclass(frozen=True)
class Contribution:
    """
    A member's produce contribution to a specific order.

    Contract:
        Created in ``pending`` with zero accepted quantity. Every change of
        grading goes through ``apply_grading`` which re-validates the full
        status/quantity mapping and returns a new instance.
    """

    id: UUID
    order_id: str
    member_id: str
    declared_quantity: Quantity
    quality_grade: QualityGrade
    timestamp: datetime
    status: ContributionStatus = ContributionStatus.PENDING
    accepted_quantity: Quantity | None = None
    rejection_reason: str | None = None
    produce_type: str | None = None
    graded_at: datetime | None = None

    def __post_init__(self) -> None:
        if not self.declared_quantity.is_positive:
            raise InvalidQuantityError(
                str(self.declared_quantity), "declared quantity must be greater than zero"
            )
        object.__setattr__(self, "quality_grade", QualityGrade(self.quality_grade))
        object.__setattr__(self, "status", ContributionStatus(self.status))
        if self.accepted_quantity is None:
            object.__setattr__(
                self, "accepted_quantity", Quantity.zero(self.declared_quantity.unit)
            )

    @classmethod
    def create(
        cls,
        order_id: str,
        member_id: str,
        quantity: Quantity,
        grade: QualityGrade | str,
        timestamp: datetime,
        produce_type: str | None = None,
        contribution_id: UUID | None = None,
    ) -> Contribution:
        """Build a new pending contribution."""
        return cls(
            id=contribution_id or uuid4(),
            order_id=order_id,
            member_id=member_id,
            declared_quantity=quantity,
            quality_grade=QualityGrade(grade),
            timestamp=timestamp,
            produce_type=produce_type,
        )

    @property
    def unit(self) -> str:
        return self.declared_quantity.unit

    @property
    def is_graded(self) -> bool:
        return self.status.is_terminal

    @property
    def rejected_quantity(self) -> Quantity:
        return self.declared_quantity - self.accepted_quantity

    def apply_grading(
        self,
        status: ContributionStatus | str,
        accepted_quantity: Quantity | Decimal | int | str,
        rejection_reason: str | None = None,
        graded_at: datetime | None = None,
    ) -> Contribution:
        """
        Return a copy of this contribution carrying the new grading decision.

        Raises:
            InvalidGradingError: status/quantity/reason combination illegal.
        """
        cid = str(self.id)
        try:
            status = ContributionStatus(status)
        except ValueError as e:
            raise InvalidGradingError(cid, str(status), "unknown status") from e

        if not isinstance(accepted_quantity, Quantity):
            try:
                accepted_quantity = Quantity.of(
                    Decimal(str(accepted_quantity)), self.unit
                )
            except (ValueError, ArithmeticError) as e:
                raise InvalidGradingError(
                    cid, status.value, f"accepted quantity {accepted_quantity!r} is not a number"
                ) from e
        elif accepted_quantity.unit != self.unit:
            raise InvalidGradingError(
                cid,
                status.value,
                f"accepted quantity unit {accepted_quantity.unit} does not match {self.unit}",
            )

        accepted = accepted_quantity.value
        declared = self.declared_quantity.value

        if status == ContributionStatus.PENDING:
            raise InvalidGradingError(cid, status.value, "grading must move to a terminal status")
        if accepted < 0:
            raise InvalidGradingError(cid, status.value, "accepted quantity cannot be negative")
        if accepted > declared:
            raise InvalidGradingError(
                cid, status.value, f"accepted quantity {accepted} exceeds declared {declared}"
            )

        if status == ContributionStatus.ACCEPTED and accepted != declared:
            raise InvalidGradingError(
                cid,
                status.value,
                f"accepted quantity must equal declared quantity {declared}, got {accepted}",
            )
        if status == ContributionStatus.PARTIALLY_ACCEPTED and not (0 < accepted < declared):
            raise InvalidGradingError(
                cid,
                status.value,
                f"accepted quantity must be strictly between 0 and {declared}, got {accepted}",
            )
        if status == ContributionStatus.REJECTED and accepted != 0:
            raise InvalidGradingError(
                cid, status.value, f"accepted quantity must be 0, got {accepted}"
            )

        reason = rejection_reason.strip() if rejection_reason else None
        if status in _REASON_REQUIRED and not reason:
            raise InvalidGradingError(cid, status.value, "a rejection reason is required")
        if status == ContributionStatus.ACCEPTED:
            reason = None

        return replace(
            self,
            status=status,
            accepted_quantity=accepted_quantity,
            rejection_reason=reason,
            graded_at=graded_at,
        )
