"""
Payout configuration schema.

The human-authored YAML set is parsed into these frozen dataclasses by the
loader; nothing here carries executable logic.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Mapping

FEE_BASIS_PERCENT = "percent"
FEE_BASIS_PER_KG = "per_kg"


@dataclass(frozen=True)
class FeeRateDef:
    """A named deduction: a percentage of the order amount or a per-kg charge."""

    name: str
    basis: str  # "percent" or "per_kg"
    value: Decimal


@dataclass(frozen=True)
class TruckTierDef:
    """Transport percentage charged for one truck capacity tier."""

    tier: str
    transport_pct: Decimal
    capacity_kg: Decimal | None = None


@dataclass(frozen=True)
class CommissionTierDef:
    """Platform commission for orders of min_tons <= tonnage < max_tons."""

    min_tons: Decimal
    max_tons: Decimal | None
    rate: Decimal


@dataclass(frozen=True)
class SavingsPolicyDef:
    rate_per_kg: Decimal
    annual_interest_rate: Decimal
    lock_deposits_until_rollover: bool = True


@dataclass(frozen=True)
class PayoutConfiguration:
    """
    A complete, validated payout configuration.

    ``checksum`` is the SHA-256 of the canonical source data and identifies
    the exact configuration that produced a payout.
    """

    config_id: str
    version: int
    currency: str
    fees: tuple[FeeRateDef, ...]
    truck_tiers: tuple[TruckTierDef, ...]
    commission_tiers: tuple[CommissionTierDef, ...]
    savings: SavingsPolicyDef
    floor_prices: Mapping[str, Decimal] = field(default_factory=dict)
    minimum_order_quantity: Decimal = Decimal("1000")
    default_down_payment_pct: Decimal = Decimal("30")
    payout_unit: Decimal = Decimal("1")  # smallest amount paid to a member
    unit: str = "kg"
    checksum: str = ""

    def fee(self, name: str) -> FeeRateDef | None:
        for f in self.fees:
            if f.name == name:
                return f
        return None
