"""
Fulfillment aggregation -- how much of an order the accepted produce covers.

Pure functions over a sequence of contributions; the ledger service calls
them under its order lock.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal

from agri_engines.tracer import traced_engine
from agri_kernel.domain.contribution import Contribution
from agri_kernel.domain.values import Quantity
from agri_kernel.exceptions import InvalidOrderError

_HUNDRED = Decimal("100")


def total_accepted(contributions: Iterable[Contribution], unit: str = "kg") -> Quantity:
    """
    Sum of accepted quantity over graded contributions.

    Pending contributions are skipped; rejected ones contribute zero.
    """
    total = Quantity.zero(unit)
    for c in contributions:
        if c.is_graded:
            total = total + c.accepted_quantity
    return total


@traced_engine("fulfillment_percentage", "1.0", fingerprint_fields=("accepted", "required"))
def fulfillment_percentage(accepted: Quantity, required: Quantity) -> int:
    """
    ``min(100, round(accepted / required * 100))``, rounding half up.

    Raises:
        InvalidOrderError: required quantity is not positive.
    """
    if not required.is_positive:
        raise InvalidOrderError(None, "required quantity must be greater than zero")
    if accepted.unit != required.unit:
        raise InvalidOrderError(
            None, f"accepted unit {accepted.unit} does not match required unit {required.unit}"
        )
    pct = (accepted.value / required.value * _HUNDRED).quantize(
        Decimal("1"), rounding=ROUND_HALF_UP
    )
    return int(min(_HUNDRED, pct))


def remaining_quantity(accepted: Quantity, required: Quantity) -> Quantity:
    """Quantity still needed; never negative."""
    remaining = required - accepted
    if remaining.value < 0:
        return Quantity.zero(required.unit)
    return remaining
