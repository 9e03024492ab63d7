"""
PaymentAllocatorService -- keeps every order's member split current.

Responsibility:
    Subscribes to the ContributionLedger and recomputes an order's fee
    breakdown and per-member allocation after every ledger change, inside
    the order lock.  Also allocates individual payment legs (down payment,
    balance) and builds the distribution report.

Architecture position:
    Services -- composes the fee and allocation engines with the ledger
    and an OrderRepository.

Invariants enforced:
    - Recompute, read and leg allocation of one order are serialized on
      the ledger's order lock; total accepted is never read mid-update.
    - Leg nets are proportional to the leg's share of the order total and
      rounded to currency precision.
    - Member shares are paid in whole payout units.
    - A ledger change is never failed by the recompute it triggers: a
      recompute error is logged and the stale snapshot dropped, so the
      next read recomputes and raises to its caller.

Failure modes:
    - OrderNotFoundError for unknown orders (ledger changes for orders the
      repository does not know are skipped, not raised).
    - NegativeNetAmountError / UnknownTierError from the fee schedule.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from agri_engines.allocation import (
    DEFAULT_PAYOUT_UNIT,
    DistributionReport,
    PaymentAllocation,
    allocate,
    allocate_net,
    distribution_report,
)
from agri_engines.fees import FeeBreakdown, FeeSchedule
from agri_kernel.domain.values import Money
from agri_kernel.exceptions import AgriKernelError, InvalidAmountError, OrderNotFoundError
from agri_kernel.logging_config import get_logger
from agri_kernel.repositories.contracts import OrderRepository
from agri_services.contribution_ledger import ContributionLedger

logger = get_logger("services.payment_allocator")


@dataclass(frozen=True)
class AllocationSnapshot:
    """Allocation of one order as of a given ledger revision."""

    order_id: str
    revision: int
    fee_breakdown: FeeBreakdown
    allocations: tuple[PaymentAllocation, ...]


class PaymentAllocatorService:
    def __init__(
        self,
        ledger: ContributionLedger,
        orders: OrderRepository,
        fee_schedule: FeeSchedule,
        subscribe: bool = True,
        payout_unit: Decimal = DEFAULT_PAYOUT_UNIT,
    ):
        self._ledger = ledger
        self._orders = orders
        self.fee_schedule = fee_schedule
        self.payout_unit = payout_unit
        self._snapshots: dict[str, AllocationSnapshot] = {}
        self._revisions: dict[str, int] = {}
        if subscribe:
            ledger.subscribe(self._on_ledger_change)

    def _on_ledger_change(self, order_id: str) -> None:
        try:
            self.recompute(order_id)
        except OrderNotFoundError:
            logger.debug("allocation_skipped_unknown_order", extra={"order_id": order_id})
        except AgriKernelError as e:
            # the ledger write already stands
            with self._ledger.order_lock(order_id):
                self._snapshots.pop(order_id, None)
            logger.warning(
                "allocation_recompute_failed",
                extra={"order_id": order_id, "error_code": e.code, "error": str(e)},
            )

    def recompute(self, order_id: str) -> AllocationSnapshot:
        with self._ledger.order_lock(order_id):
            order = self._orders.get(order_id)
            fee_breakdown = self.fee_schedule.breakdown(order)
            allocations = allocate(
                order, self._ledger.contributions_for(order_id), fee_breakdown, self.payout_unit
            )
            revision = self._revisions.get(order_id, 0) + 1
            self._revisions[order_id] = revision
            snapshot = AllocationSnapshot(
                order_id=order_id,
                revision=revision,
                fee_breakdown=fee_breakdown,
                allocations=tuple(allocations),
            )
            self._snapshots[order_id] = snapshot
        return snapshot

    def snapshot(self, order_id: str) -> AllocationSnapshot:
        """Latest snapshot, computing one if the order has none yet."""
        with self._ledger.order_lock(order_id):
            current = self._snapshots.get(order_id)
            if current is None:
                current = self.recompute(order_id)
            return current

    def allocate(self, order_id: str) -> list[PaymentAllocation]:
        return list(self.snapshot(order_id).allocations)

    def fee_breakdown(self, order_id: str) -> FeeBreakdown:
        return self.snapshot(order_id).fee_breakdown

    def leg_net(self, order_id: str, leg_amount: Money) -> Money:
        """The order net amount scaled to one payment leg."""
        with self._ledger.order_lock(order_id):
            order = self._orders.get(order_id)
            total = order.total_amount
            if leg_amount.is_negative or leg_amount > total:
                raise InvalidAmountError(
                    str(leg_amount), f"payment leg must lie within the order total {total}"
                )
            net = self.snapshot(order_id).fee_breakdown.net_amount
            return (net * leg_amount.amount / total.amount).round()

    def allocate_amount(self, order_id: str, net_amount: Money) -> list[PaymentAllocation]:
        """Split an arbitrary net amount by the order's accepted quantities."""
        with self._ledger.order_lock(order_id):
            return allocate_net(
                order_id, net_amount, self._ledger.contributions_for(order_id), self.payout_unit
            )

    def forget(self, order_id: str) -> None:
        """Drop the cached snapshot of a finished order."""
        with self._ledger.order_lock(order_id):
            self._snapshots.pop(order_id, None)
            self._revisions.pop(order_id, None)

    def distribution_report(self, order_id: str) -> DistributionReport:
        with self._ledger.order_lock(order_id):
            snapshot = self.snapshot(order_id)
            order = self._orders.get(order_id)
        return distribution_report(order, snapshot.allocations, snapshot.fee_breakdown)
