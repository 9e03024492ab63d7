"""
Order -- a buyer's purchase request fulfilled by one farmer group.

Invariants enforced:
    - required quantity > 0, price per unit > 0
    - total_amount == price_per_unit x quantity (derived, never stored)
    - status moves pending -> confirmed -> in_transit -> delivered -> completed;
      cancellation is allowed from any state before completion
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date
from enum import Enum

from agri_kernel.domain.values import Money, Quantity
from agri_kernel.exceptions import InvalidOrderError, InvalidOrderTransitionError


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.COMPLETED, OrderStatus.CANCELLED)


_ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.IN_TRANSIT, OrderStatus.CANCELLED}),
    OrderStatus.IN_TRANSIT: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


def normalize_tier(tier: str) -> str:
    """'5 Ton' / '5ton' / ' 5TON ' -> '5ton'."""
    return "".join(str(tier).split()).lower()


@dataclass(frozen=True)
class Order:
    """
    A buyer order against a farmer group.

    ``truck_tier`` is kept as the normalized tier label; the fee schedule
    resolves it against the configured tier table.
    """

    id: str
    buyer_id: str
    group_id: str
    produce_type: str
    quantity: Quantity
    price_per_unit: Money
    truck_tier: str
    status: OrderStatus = OrderStatus.PENDING
    scheduled_date: date | None = None
    delivery_date: date | None = None

    def __post_init__(self) -> None:
        if not self.quantity.is_positive:
            raise InvalidOrderError(self.id, "required quantity must be greater than zero")
        if not self.price_per_unit.is_positive:
            raise InvalidOrderError(self.id, "price per unit must be greater than zero")
        object.__setattr__(self, "status", OrderStatus(self.status))
        object.__setattr__(self, "truck_tier", normalize_tier(self.truck_tier))
        object.__setattr__(self, "produce_type", self.produce_type.strip().lower())

    @property
    def unit(self) -> str:
        return self.quantity.unit

    @property
    def currency(self):
        return self.price_per_unit.currency

    @property
    def total_amount(self) -> Money:
        return self.price_per_unit * self.quantity.value

    def can_transition_to(self, status: OrderStatus | str) -> bool:
        return OrderStatus(status) in _ALLOWED_TRANSITIONS[self.status]

    def transition_to(
        self,
        status: OrderStatus | str,
        on: date | None = None,
    ) -> Order:
        """
        Return a copy in the new status.

        Moving to ``delivered`` records ``on`` as the delivery date.

        Raises:
            InvalidOrderTransitionError: transition not in the lifecycle.
        """
        status = OrderStatus(status)
        if not self.can_transition_to(status):
            raise InvalidOrderTransitionError(self.id, self.status.value, status.value)
        if status == OrderStatus.DELIVERED:
            return replace(self, status=status, delivery_date=on or self.delivery_date)
        return replace(self, status=status)
