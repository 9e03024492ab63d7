"""
External collaborator ports for the payment workflow.

The disbursement gateway and the finance partner are synchronous calls
that either return a result or raise.  The core never retries them; the
workflow step that called them fails as a whole and is retried by the
caller.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Protocol, runtime_checkable

from agri_kernel.domain.contribution import Contribution
from agri_kernel.domain.order import Order
from agri_kernel.domain.values import Money


class DisbursementKind(str, Enum):
    DOWN_PAYMENT = "down_payment"
    BALANCE = "balance"


@dataclass(frozen=True)
class FinanceApproval:
    """Finance partner's answer to a financing submission."""

    reference_id: str
    down_payment_amount: Money
    balance_amount: Money
    approved_at: datetime | None = None
    message: str = ""


@runtime_checkable
class DisbursementGateway(Protocol):
    def request_disbursement(self, order_id: str, kind: DisbursementKind, amount: Money) -> str:
        """Pay out ``amount``; returns the gateway reference id."""
        ...


@runtime_checkable
class FinancePartner(Protocol):
    def submit(
        self,
        order: Order,
        contributions: Sequence[Contribution],
        down_payment_pct: Decimal,
    ) -> FinanceApproval: ...
