"""
Module: agri_engines.fees
Responsibility:
    Pure fee computations for a produce order: truck-tier transport rates,
    tonnage commission tiers, the standard deduction breakdown, the produce
    floor-price gate, net price per unit and the down-payment split.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import agri_kernel/domain and agri_kernel/exceptions.

Invariants enforced:
    - Deductions are computed in a fixed order: platform, transport,
      grading, insurance, finance markup.  Each is rounded to the
      currency's precision on its own: percentage lines round down,
      flat lines half up.
    - net_amount == base_amount - total_deductions, exactly.
    - net_amount never goes negative; the breakdown refuses instead.
    - Flat fees pass through unscaled; percentage fees scale with the base.

Failure modes:
    - UnknownTierError for a truck tier outside the tier table.
    - InvalidAmountError for negative bases, rates or flat amounts.
    - NegativeNetAmountError when deductions exceed the base amount.
    - InvalidConfigurationError from validate_commission_tiers.

Usage:
    from agri_engines.fees import FeeConfig, FeeRate, breakdown
    from agri_kernel.domain.values import Money

    fb = breakdown(
        Money.of("200000", "KES"),
        FeeConfig(platform=FeeRate.percent("5"), transport=FeeRate.percent("3")),
    )
    fb.net_amount   # Money('184000.00', 'KES')
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from decimal import ROUND_FLOOR, Decimal
from enum import Enum

from agri_engines.tracer import traced_engine
from agri_kernel.domain.order import Order, normalize_tier
from agri_kernel.domain.values import Money
from agri_kernel.exceptions import (
    InvalidAmountError,
    InvalidConfigurationError,
    NegativeNetAmountError,
    UnknownTierError,
)
from agri_kernel.logging_config import get_logger

logger = get_logger("engines.fees")

_HUNDRED = Decimal("100")
_KG_PER_TON = Decimal("1000")


class TruckTier(str, Enum):
    """Truck capacity tiers offered to buyers."""

    T1 = "1ton"
    T2 = "2ton"
    T3 = "3ton"
    T4 = "4ton"
    T5 = "5ton"
    T6 = "6ton"
    T7 = "7ton"
    T8 = "8ton"
    T10 = "10ton"


# Smaller trucks carry a higher rate per shilling moved.
DEFAULT_TRANSPORT_RATES: Mapping[str, Decimal] = {
    TruckTier.T1.value: Decimal("10"),
    TruckTier.T2.value: Decimal("10"),
    TruckTier.T3.value: Decimal("8"),
    TruckTier.T4.value: Decimal("8"),
    TruckTier.T5.value: Decimal("6"),
    TruckTier.T6.value: Decimal("6"),
    TruckTier.T7.value: Decimal("5"),
    TruckTier.T8.value: Decimal("5"),
    TruckTier.T10.value: Decimal("5"),
}


# =============================================================================
# Value objects
# =============================================================================


@dataclass(frozen=True)
class FeeRate:
    """
    One deduction rule: a percentage of the base, or a flat amount.

    ``flat_amount`` wins when set; it is passed through unscaled.
    """

    percentage: Decimal = Decimal("0")
    flat_amount: Money | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.percentage, Decimal):
            object.__setattr__(self, "percentage", Decimal(str(self.percentage)))
        if self.percentage < 0:
            raise InvalidAmountError(str(self.percentage), "fee percentage cannot be negative")
        if self.flat_amount is not None and self.flat_amount.is_negative:
            raise InvalidAmountError(str(self.flat_amount), "flat fee cannot be negative")

    @classmethod
    def percent(cls, value: Decimal | str | int) -> FeeRate:
        return cls(percentage=Decimal(str(value)))

    @classmethod
    def flat(cls, amount: Money) -> FeeRate:
        return cls(flat_amount=amount)

    @property
    def is_flat(self) -> bool:
        return self.flat_amount is not None

    def amount_on(self, base: Money) -> Money:
        """Unrounded deduction for ``base``."""
        if self.flat_amount is not None:
            return self.flat_amount
        return base * self.percentage / _HUNDRED


_NO_FEE = FeeRate()


def _rounded_deduction(rule: FeeRate, base: Money) -> Money:
    # percentage lines round down; flat lines half up
    if rule.is_flat:
        return rule.amount_on(base).round()
    return rule.amount_on(base).round(ROUND_FLOOR)


@dataclass(frozen=True)
class FeeConfig:
    """Deduction rules applied to an order's base amount."""

    platform: FeeRate = _NO_FEE
    transport: FeeRate = _NO_FEE
    grading: FeeRate = _NO_FEE
    insurance: FeeRate = _NO_FEE
    finance_markup: FeeRate = _NO_FEE

    @property
    def total_percentage(self) -> Decimal:
        """Sum of the percentage-based rules (flat rules excluded)."""
        return sum(
            (r.percentage for r in self.rules() if not r.is_flat),
            Decimal("0"),
        )

    def rules(self) -> tuple[FeeRate, ...]:
        return (self.platform, self.transport, self.grading, self.insurance, self.finance_markup)


@dataclass(frozen=True)
class FeeLine:
    """One named deduction, display-ready."""

    name: str
    amount: Money
    percentage: Decimal | None = None


@dataclass(frozen=True)
class FeeBreakdown:
    """
    Derived deductions for one base amount.

    Never stored; recompute on demand.
    """

    base_amount: Money
    platform_fee: Money
    transport_fee: Money
    grading_fee: Money
    insurance_fee: Money
    finance_markup: Money
    total_deductions: Money
    net_amount: Money
    config: FeeConfig = field(default_factory=FeeConfig, compare=False)

    @property
    def currency(self):
        return self.base_amount.currency

    def lines(self) -> tuple[FeeLine, ...]:
        """Deduction lines in the order they are applied."""

        def pct(rule: FeeRate) -> Decimal | None:
            return None if rule.is_flat else rule.percentage

        c = self.config
        return (
            FeeLine("platform_fee", self.platform_fee, pct(c.platform)),
            FeeLine("transport_fee", self.transport_fee, pct(c.transport)),
            FeeLine("grading_fee", self.grading_fee, pct(c.grading)),
            FeeLine("insurance_fee", self.insurance_fee, pct(c.insurance)),
            FeeLine("finance_markup", self.finance_markup, pct(c.finance_markup)),
        )


@dataclass(frozen=True)
class FloorPriceCheck:
    ok: bool
    produce_type: str
    floor_price: Decimal | None = None


@dataclass(frozen=True)
class CommissionTier:
    """Commission rate for orders of ``min_tons`` <= tonnage < ``max_tons``."""

    min_tons: Decimal
    max_tons: Decimal | None
    rate: Decimal

    def contains(self, tonnage: Decimal) -> bool:
        if tonnage < self.min_tons:
            return False
        return self.max_tons is None or tonnage < self.max_tons


# =============================================================================
# Pure functions
# =============================================================================


def transport_fee_rate(
    truck_tier: TruckTier | str,
    rates: Mapping[str, Decimal] | None = None,
) -> Decimal:
    """
    Transport percentage for a truck tier.

    Raises:
        UnknownTierError: tier not in the table.
    """
    table = DEFAULT_TRANSPORT_RATES if rates is None else rates
    raw = truck_tier.value if isinstance(truck_tier, TruckTier) else truck_tier
    key = normalize_tier(raw)
    if key not in table:
        raise UnknownTierError(str(raw))
    return table[key]


@traced_engine("fee_breakdown", "1.0", fingerprint_fields=("base_amount", "config"))
def breakdown(base_amount: Money, config: FeeConfig) -> FeeBreakdown:
    """
    Standard deductions for ``base_amount``.

    Raises:
        InvalidAmountError: base amount is negative.
        NegativeNetAmountError: deductions exceed the base amount.
    """
    if base_amount.is_negative:
        raise InvalidAmountError(str(base_amount), "base amount cannot be negative")

    amounts = [_rounded_deduction(rule, base_amount) for rule in config.rules()]
    total = sum(amounts, Money.zero(base_amount.currency))

    if total > base_amount:
        logger.warning(
            "fee_deductions_exceed_base",
            extra={"base_amount": str(base_amount), "total_deductions": str(total)},
        )
        raise NegativeNetAmountError(str(base_amount), str(total))

    platform, transport, grading, insurance, finance = amounts
    return FeeBreakdown(
        base_amount=base_amount,
        platform_fee=platform,
        transport_fee=transport,
        grading_fee=grading,
        insurance_fee=insurance,
        finance_markup=finance,
        total_deductions=total,
        net_amount=base_amount - total,
        config=config,
    )


def floor_price_check(
    produce_type: str,
    offered_price: Money | Decimal,
    floor_table: Mapping[str, Decimal],
) -> FloorPriceCheck:
    """
    Compare an offered unit price against the produce floor price.

    Absent entries mean there is no floor.  Keys are matched
    case-insensitively.
    """
    key = produce_type.strip().lower()
    floors = {k.strip().lower(): v for k, v in floor_table.items()}
    floor = floors.get(key)
    if floor is None:
        return FloorPriceCheck(ok=True, produce_type=key)

    offered = offered_price.amount if isinstance(offered_price, Money) else offered_price
    floor_value = floor.amount if isinstance(floor, Money) else Decimal(str(floor))
    return FloorPriceCheck(
        ok=offered >= floor_value,
        produce_type=key,
        floor_price=floor_value,
    )


def validate_commission_tiers(tiers: Sequence[CommissionTier]) -> None:
    """
    Raises:
        InvalidConfigurationError: negative bounds, min >= max, rates
            outside [0, 100), overlapping ranges.
    """
    errors: list[str] = []
    for t in tiers:
        if t.min_tons < 0:
            errors.append(f"commission tier {t.min_tons}-{t.max_tons}: minimum cannot be negative")
        if t.max_tons is not None and t.min_tons >= t.max_tons:
            errors.append(
                f"commission tier {t.min_tons}-{t.max_tons}: maximum must be greater than minimum"
            )
        if not (Decimal("0") <= t.rate < _HUNDRED):
            errors.append(f"commission tier {t.min_tons}-{t.max_tons}: rate {t.rate} out of range")

    ordered = sorted(tiers, key=lambda t: t.min_tons)
    for prev, nxt in zip(ordered, ordered[1:]):
        if prev.max_tons is None or nxt.min_tons < prev.max_tons:
            errors.append(
                f"commission tiers {prev.min_tons}-{prev.max_tons} and "
                f"{nxt.min_tons}-{nxt.max_tons} overlap"
            )

    if errors:
        raise InvalidConfigurationError(errors)


def commission_rate(
    tonnage: Decimal,
    tiers: Sequence[CommissionTier],
) -> Decimal | None:
    """Rate of the tier containing ``tonnage``; None when no tier matches."""
    for tier in sorted(tiers, key=lambda t: t.min_tons):
        if tier.contains(tonnage):
            return tier.rate
    return None


def split_down_payment(total: Money, down_payment_pct: Decimal) -> tuple[Money, Money]:
    """
    (down payment, balance) for a financed order.

    The balance absorbs the rounding so the two legs always sum to total.
    """
    if not (Decimal("0") < down_payment_pct <= _HUNDRED):
        raise InvalidAmountError(
            str(down_payment_pct), "down payment percentage must be in (0, 100]"
        )
    down = (total * down_payment_pct / _HUNDRED).round()
    return down, total - down


# =============================================================================
# FeeSchedule
# =============================================================================


@dataclass(frozen=True)
class FeeSchedule:
    """
    The marketplace's configured fee rules.

    Resolves per-order deductions: the platform rate comes from the
    commission tier for the order's tonnage (falling back to
    ``platform_fee_pct``), the transport rate from the truck tier, and the
    per-kg grading fee becomes a flat amount for the order quantity.
    """

    currency: str = "KES"
    platform_fee_pct: Decimal = Decimal("0")
    transport_rates: Mapping[str, Decimal] = field(
        default_factory=lambda: dict(DEFAULT_TRANSPORT_RATES)
    )
    commission_tiers: tuple[CommissionTier, ...] = ()
    grading_fee_per_kg: Decimal = Decimal("0")
    insurance_pct: Decimal = Decimal("0")
    finance_markup_pct: Decimal = Decimal("0")
    savings_per_kg: Decimal = Decimal("0")
    floor_prices: Mapping[str, Decimal] = field(default_factory=dict)

    def transport_fee_rate(self, truck_tier: TruckTier | str) -> Decimal:
        return transport_fee_rate(truck_tier, self.transport_rates)

    def platform_rate(self, tonnage: Decimal) -> Decimal:
        if self.commission_tiers:
            rate = commission_rate(tonnage, self.commission_tiers)
            if rate is not None:
                return rate
        return self.platform_fee_pct

    def config_for_order(self, order: Order) -> FeeConfig:
        tonnage = order.quantity.value / _KG_PER_TON
        grading = (
            FeeRate.flat(Money.of(self.grading_fee_per_kg * order.quantity.value, order.currency))
            if self.grading_fee_per_kg
            else _NO_FEE
        )
        return FeeConfig(
            platform=FeeRate.percent(self.platform_rate(tonnage)),
            transport=FeeRate.percent(self.transport_fee_rate(order.truck_tier)),
            grading=grading,
            insurance=FeeRate.percent(self.insurance_pct),
            finance_markup=FeeRate.percent(self.finance_markup_pct),
        )

    def breakdown(self, order: Order) -> FeeBreakdown:
        """Deductions on the order's total amount."""
        return breakdown(order.total_amount, self.config_for_order(order))

    def floor_price_check(self, produce_type: str, offered_price: Money | Decimal) -> FloorPriceCheck:
        return floor_price_check(produce_type, offered_price, self.floor_prices)

    def net_price_per_unit(self, order: Order) -> Money:
        """
        What a farmer keeps per unit after every deduction and the
        compulsory savings.  Display value; may be negative for very low
        prices.
        """
        price = order.price_per_unit
        tonnage = order.quantity.value / _KG_PER_TON
        pct = (
            self.platform_rate(tonnage)
            + self.transport_fee_rate(order.truck_tier)
            + self.insurance_pct
            + self.finance_markup_pct
        )
        per_unit = price * (_HUNDRED - pct) / _HUNDRED
        per_unit = per_unit - Money.of(self.grading_fee_per_kg + self.savings_per_kg, price.currency)
        return per_unit.round()
