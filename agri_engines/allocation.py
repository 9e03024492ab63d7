"""
Module: agri_engines.allocation
Responsibility:
    Split an order's fee-adjusted net amount across the members whose
    produce was accepted, proportionally to accepted quantity, and assemble
    the audit/export view of that split.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import agri_kernel/domain, agri_kernel/exceptions and sibling
    engine modules.

Invariants enforced:
    - Only accepted and partially accepted contributions take part.
    - A member's contributions to one order are summed before the
      percentage is taken; allocation is per member, never per delivery.
    - Shares are paid in whole payout units (1 currency unit by default).
      The rounded net amount is floored to the payout unit; that much is
      allocated exactly and the residual below one unit stays unallocated.
      Rounding uses the largest-remainder method: every share is floored
      to the payout unit and the leftover units go, one each, to the
      largest fractional remainders.  Ties go to the larger accepted
      quantity, then to the lower member id.
    - Percentages keep full Decimal precision; they sum to 100 within
      Decimal context precision.

Failure modes:
    - Empty or all-pending/rejected input returns an empty allocation.
    - InvalidAmountError for a payout unit that is not a positive
      multiple of the currency's minor unit.
    - ValueError when the fee breakdown currency differs from the order's.
    - NegativeNetAmountError from withhold_savings when the compulsory
      savings exceed a member's share.

Usage:
    allocations = allocate(order, contributions, fee_breakdown)
    report = distribution_report(order, allocations, fee_breakdown)
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal

from agri_engines.fees import FeeBreakdown, FeeLine
from agri_engines.tracer import traced_engine
from agri_kernel.domain.contribution import Contribution
from agri_kernel.domain.order import Order
from agri_kernel.domain.values import Money, Quantity
from agri_kernel.exceptions import InvalidAmountError, NegativeNetAmountError
from agri_kernel.logging_config import get_logger

logger = get_logger("engines.allocation")

_HUNDRED = Decimal("100")
_DISPLAY = Decimal("0.01")

DEFAULT_PAYOUT_UNIT = Decimal("1")


@dataclass(frozen=True)
class PaymentAllocation:
    """
    One member's share of an order's net amount.

    ``percentage`` is exact; ``display_percentage`` is the 2-dp figure
    shown on screens and exports.
    """

    order_id: str
    member_id: str
    quantity: Quantity
    percentage: Decimal
    amount: Money
    contribution_count: int = 1

    @property
    def display_percentage(self) -> Decimal:
        return self.percentage.quantize(_DISPLAY, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class MemberPayout:
    """A member's share after the compulsory savings are withheld."""

    member_id: str
    quantity: Quantity
    gross_amount: Money
    savings_withheld: Money
    net_payout: Money


def _member_totals(
    contributions: Iterable[Contribution],
) -> tuple[dict[str, Quantity], dict[str, int]]:
    totals: dict[str, Quantity] = {}
    counts: dict[str, int] = {}
    for c in contributions:
        if not c.status.counts_toward_payment:
            continue
        if c.member_id in totals:
            totals[c.member_id] = totals[c.member_id] + c.accepted_quantity
        else:
            totals[c.member_id] = c.accepted_quantity
        counts[c.member_id] = counts.get(c.member_id, 0) + 1
    return totals, counts


@traced_engine(
    "payment_allocation", "1.1", fingerprint_fields=("order_id", "net_amount", "payout_unit")
)
def allocate_net(
    order_id: str,
    net_amount: Money,
    contributions: Iterable[Contribution],
    payout_unit: Decimal = DEFAULT_PAYOUT_UNIT,
) -> list[PaymentAllocation]:
    """
    Allocate ``net_amount`` over the accepted contributions.

    Members appear in the order of their first counted contribution.
    ``payout_unit`` is the smallest amount paid out, e.g. ``Decimal("1")``
    for whole shillings or ``Decimal("0.01")`` for cents.
    """
    currency = net_amount.currency
    minor_unit = Decimal(1).scaleb(-currency.decimal_places)
    if payout_unit <= 0 or payout_unit % minor_unit != 0:
        raise InvalidAmountError(
            str(payout_unit), f"payout unit must be a positive multiple of {minor_unit} {currency}"
        )

    totals, counts = _member_totals(contributions)
    if not totals:
        logger.info(
            "allocation_no_accepted_contributions",
            extra={"order_id": order_id, "net_amount": str(net_amount)},
        )
        return []

    total_qty = sum((q.value for q in totals.values()), Decimal("0"))
    if total_qty == 0:
        return []

    net = net_amount.round()
    quantum = payout_unit
    units_total = (net.amount / quantum).to_integral_value(rounding=ROUND_FLOOR)

    floors: dict[str, Decimal] = {}
    remainders: dict[str, Decimal] = {}
    for member_id, qty in totals.items():
        exact_units = net.amount * qty.value / total_qty / quantum
        floor_units = exact_units.to_integral_value(rounding=ROUND_FLOOR)
        floors[member_id] = floor_units
        remainders[member_id] = exact_units - floor_units

    leftover = int(units_total - sum(floors.values(), Decimal("0")))
    ranked = sorted(
        totals,
        key=lambda m: (-remainders[m], -totals[m].value, m),
    )
    for member_id in ranked[:max(leftover, 0)]:
        floors[member_id] += 1

    allocations = [
        PaymentAllocation(
            order_id=order_id,
            member_id=member_id,
            quantity=qty,
            percentage=qty.value / total_qty * _HUNDRED,
            amount=Money(floors[member_id] * quantum, currency).round(),
            contribution_count=counts[member_id],
        )
        for member_id, qty in totals.items()
    ]
    residual = net.amount - units_total * quantum

    logger.info(
        "allocation_completed",
        extra={
            "order_id": order_id,
            "member_count": len(allocations),
            "net_amount": str(net),
            "total_accepted": str(total_qty),
            "rounding_units": leftover,
            "payout_unit": str(payout_unit),
            "unallocated": str(residual),
        },
    )
    return allocations


def allocate(
    order: Order,
    contributions: Iterable[Contribution],
    fee_breakdown: FeeBreakdown,
    payout_unit: Decimal = DEFAULT_PAYOUT_UNIT,
) -> list[PaymentAllocation]:
    """Per-member shares of the order's net amount."""
    if fee_breakdown.currency != order.currency:
        raise ValueError(
            f"Fee breakdown currency {fee_breakdown.currency} does not match "
            f"order currency {order.currency}"
        )
    return allocate_net(order.id, fee_breakdown.net_amount, contributions, payout_unit)


def total_allocated(allocations: Sequence[PaymentAllocation], currency) -> Money:
    return sum((a.amount for a in allocations), Money.zero(currency))


def withhold_savings(
    allocations: Sequence[PaymentAllocation],
    savings_per_kg: Money,
) -> list[MemberPayout]:
    """
    Deduct the compulsory per-kg savings from each member's share.

    Raises:
        NegativeNetAmountError: withholding exceeds a member's share.
    """
    payouts: list[MemberPayout] = []
    for a in allocations:
        withheld = (savings_per_kg * a.quantity.value).round()
        if withheld > a.amount:
            raise NegativeNetAmountError(str(a.amount), str(withheld))
        payouts.append(
            MemberPayout(
                member_id=a.member_id,
                quantity=a.quantity,
                gross_amount=a.amount,
                savings_withheld=withheld,
                net_payout=a.amount - withheld,
            )
        )
    return payouts


# =============================================================================
# Distribution report
# =============================================================================


@dataclass(frozen=True)
class ReportRow:
    """One flat, serializable line of a distribution report."""

    kind: str
    label: str
    amount: Decimal
    currency: str
    quantity: Decimal | None = None
    unit: str | None = None
    percentage: Decimal | None = None

    def as_dict(self) -> dict[str, str]:
        return {
            "kind": self.kind,
            "label": self.label,
            "quantity": "" if self.quantity is None else str(self.quantity),
            "unit": self.unit or "",
            "percentage": "" if self.percentage is None else str(self.percentage),
            "amount": str(self.amount),
            "currency": self.currency,
        }


@dataclass(frozen=True)
class DistributionReport:
    """Allocations combined with the fee lines of the same order."""

    order_id: str
    produce_type: str
    currency: str
    base_amount: Money
    fee_lines: tuple[FeeLine, ...]
    total_deductions: Money
    net_amount: Money
    allocations: tuple[PaymentAllocation, ...]
    total_allocated: Money

    @property
    def unallocated(self) -> Money:
        return self.net_amount - self.total_allocated

    def rows(self) -> list[ReportRow]:
        """Member rows, then fee rows, then the totals."""
        rows = [
            ReportRow(
                kind="member",
                label=a.member_id,
                amount=a.amount.amount,
                currency=self.currency,
                quantity=a.quantity.value,
                unit=a.quantity.unit,
                percentage=a.display_percentage,
            )
            for a in self.allocations
        ]
        rows.extend(
            ReportRow(
                kind="fee",
                label=line.name,
                amount=line.amount.amount,
                currency=self.currency,
                percentage=line.percentage,
            )
            for line in self.fee_lines
        )
        rows.append(ReportRow("total", "base_amount", self.base_amount.amount, self.currency))
        rows.append(
            ReportRow("total", "total_deductions", self.total_deductions.amount, self.currency)
        )
        rows.append(ReportRow("total", "net_amount", self.net_amount.amount, self.currency))
        return rows


def distribution_report(
    order: Order,
    allocations: Sequence[PaymentAllocation],
    fee_breakdown: FeeBreakdown,
) -> DistributionReport:
    currency = fee_breakdown.currency
    return DistributionReport(
        order_id=order.id,
        produce_type=order.produce_type,
        currency=currency.code,
        base_amount=fee_breakdown.base_amount,
        fee_lines=fee_breakdown.lines(),
        total_deductions=fee_breakdown.total_deductions,
        net_amount=fee_breakdown.net_amount,
        allocations=tuple(allocations),
        total_allocated=total_allocated(allocations, currency),
    )
