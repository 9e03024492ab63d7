"""
ContributionLedger -- produce contributions per order and their grading.

Responsibility:
    Records member deliveries against an order, applies grading decisions
    (keeping every superseded decision in an append-only history) and
    answers fulfillment questions: total accepted, fulfillment percentage,
    remaining quantity.

Architecture position:
    Services -- imperative shell over the Contribution domain object, the
    fulfillment engine and an injected ContributionRepository.

Invariants enforced:
    - Grading goes through Contribution.apply_grading; illegal
      status/quantity combinations always raise and never clamp.
    - Writes for one order run under that order's lock, and change
      listeners are notified inside the same critical section, so an
      allocation recomputed by a listener never sees a half-applied
      re-grading.
    - Grading history sequences start at 1 and have no gaps.

Failure modes:
    - InvalidQuantityError: declared quantity not positive.
    - MemberNotFoundError / InactiveMemberError: the delivering member is
      not in the member directory or is inactive (only when a directory
      is given).
    - InvalidGradingError: grading rules violated (logged at INFO, not a
      system fault).
    - ContributionNotFoundError: unknown contribution id.
    - InvalidOrderError: fulfillment asked for a non-positive requirement.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from decimal import Decimal
from uuid import UUID

from agri_engines.fulfillment import (
    fulfillment_percentage,
    remaining_quantity,
    total_accepted,
)
from agri_kernel.domain.clock import Clock, SystemClock
from agri_kernel.domain.contribution import (
    Contribution,
    ContributionStatus,
    GradingDecision,
    QualityGrade,
)
from agri_kernel.domain.member import Member
from agri_kernel.domain.values import Quantity
from agri_kernel.exceptions import InactiveMemberError, InvalidGradingError, MemberNotFoundError
from agri_kernel.logging_config import LogContext, get_logger
from agri_kernel.repositories.contracts import ContributionRepository
from agri_services.locks import KeyedLocks

logger = get_logger("services.contribution_ledger")

LedgerListener = Callable[[str], None]


def _as_quantity(value: Quantity | Decimal | int | str, unit: str) -> Quantity:
    if isinstance(value, Quantity):
        return value
    return Quantity.of(Decimal(str(value)), unit)


class ContributionLedger:
    """
    Contract:
        Every mutation is persisted through the repository and followed by
        a notification to subscribed listeners with the affected order id.

    Non-goals:
        - Does not know order prices or fees; see PaymentAllocatorService.
    """

    def __init__(
        self,
        repository: ContributionRepository,
        clock: Clock | None = None,
        order_locks: KeyedLocks | None = None,
        members: Mapping[str, Member] | None = None,
    ):
        self._repository = repository
        self._members = members
        self._clock = clock or SystemClock()
        self._order_locks = order_locks or KeyedLocks()
        self._listeners: list[LedgerListener] = []

    @contextmanager
    def order_lock(self, order_id: str) -> Iterator[None]:
        """The per-order critical section shared with the allocator."""
        with self._order_locks.hold(order_id):
            yield

    def subscribe(self, listener: LedgerListener) -> None:
        """
        Call ``listener(order_id)`` after each stored change, inside the
        order lock.  The write is already stored when a listener runs;
        listeners handle their own errors and must not raise.
        """
        self._listeners.append(listener)

    def _check_member(self, member_id: str) -> None:
        if self._members is None:
            return
        member = self._members.get(member_id)
        if member is None:
            raise MemberNotFoundError(member_id)
        if not member.is_active:
            logger.info("contribution_refused_inactive_member", extra={"member_id": member_id})
            raise InactiveMemberError(member_id)

    def _notify(self, order_id: str) -> None:
        for listener in list(self._listeners):
            listener(order_id)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def record_contribution(
        self,
        order_id: str,
        member_id: str,
        quantity: Quantity | Decimal | int | str,
        grade: QualityGrade | str,
        produce_type: str | None = None,
        unit: str = "kg",
    ) -> Contribution:
        """Record a delivery in ``pending`` status with zero accepted quantity."""
        self._check_member(member_id)
        contribution = Contribution.create(
            order_id=order_id,
            member_id=member_id,
            quantity=_as_quantity(quantity, unit),
            grade=grade,
            timestamp=self._clock.now(),
            produce_type=produce_type,
        )
        with self.order_lock(order_id):
            self._repository.add(contribution)
            self._notify(order_id)

        logger.info(
            "contribution_recorded",
            extra={
                "order_id": order_id,
                "member_id": member_id,
                "contribution_id": str(contribution.id),
                "declared_quantity": str(contribution.declared_quantity.value),
                "unit": contribution.unit,
                "quality_grade": contribution.quality_grade.value,
            },
        )
        return contribution

    def grade(
        self,
        contribution_id: UUID,
        status: ContributionStatus | str,
        accepted_quantity: Quantity | Decimal | int | str,
        rejection_reason: str | None = None,
        graded_by: str | None = None,
    ) -> Contribution:
        """
        Apply a grading decision.  Re-grading a terminal contribution
        supersedes the current decision; the old one stays in the history.
        """
        order_id = self._repository.get(contribution_id).order_id

        with self.order_lock(order_id), LogContext.bind(order_id=order_id, actor_id=graded_by):
            current = self._repository.get(contribution_id)
            graded_at = self._clock.now()
            try:
                updated = current.apply_grading(
                    status, accepted_quantity, rejection_reason, graded_at=graded_at
                )
            except InvalidGradingError as e:
                logger.info(
                    "contribution_grading_rejected",
                    extra={
                        "contribution_id": str(contribution_id),
                        "requested_status": str(e.status),
                        "reason": e.reason,
                    },
                )
                raise

            history = self._repository.grading_history(contribution_id)
            decision = GradingDecision(
                contribution_id=contribution_id,
                sequence=len(history) + 1,
                status=updated.status,
                accepted_quantity=updated.accepted_quantity,
                rejection_reason=updated.rejection_reason,
                graded_at=graded_at,
                graded_by=graded_by,
                previous_status=current.status,
            )
            self._repository.save(updated, decision)

            logger.info(
                "contribution_graded",
                extra={
                    "contribution_id": str(contribution_id),
                    "member_id": updated.member_id,
                    "status": updated.status.value,
                    "previous_status": current.status.value,
                    "accepted_quantity": str(updated.accepted_quantity.value),
                    "decision_sequence": decision.sequence,
                },
            )
            self._notify(order_id)

        return updated

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def contributions_for(self, order_id: str) -> list[Contribution]:
        with self.order_lock(order_id):
            return self._repository.list_for_order(order_id)

    def get(self, contribution_id: UUID) -> Contribution:
        return self._repository.get(contribution_id)

    def grading_history(self, contribution_id: UUID) -> list[GradingDecision]:
        return self._repository.grading_history(contribution_id)

    def total_accepted(self, order_id: str, unit: str = "kg") -> Quantity:
        return total_accepted(self.contributions_for(order_id), unit)

    def fulfillment_percentage(
        self,
        order_id: str,
        required_quantity: Quantity | Decimal | int | str,
    ) -> int:
        required = _as_quantity(required_quantity, "kg")
        return fulfillment_percentage(self.total_accepted(order_id, required.unit), required)

    def remaining_quantity(
        self,
        order_id: str,
        required_quantity: Quantity | Decimal | int | str,
    ) -> Quantity:
        required = _as_quantity(required_quantity, "kg")
        return remaining_quantity(self.total_accepted(order_id, required.unit), required)
