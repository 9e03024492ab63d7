"""
Configuration Validator (``agri_config.validator``).

Responsibility
--------------
Validates a parsed ``PayoutConfiguration`` before it is handed to any
service, so a bad fee table can never reach a payout.

Invariants enforced
-------------------
* Percentages lie in [0, 100); per-kg charges and floor prices are
  positive or zero as appropriate.
* The largest possible sum of percentage deductions (highest commission
  or platform rate + highest transport rate + insurance + finance
  markup) stays below 100, so no order can be fee'd to nothing.
* Truck tiers are unique; commission tiers do not overlap and each has
  min < max.
* The currency is a supported ISO 4217 code.
* The payout unit is a positive multiple of the currency's minor unit.

Failure modes
-------------
* Errors (``ConfigValidationResult.errors``)  -> the configuration MUST
  NOT be used; ``get_active_config`` raises ``InvalidConfigurationError``.
* Warnings  -> usable, but should be reviewed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from agri_config.schema import FEE_BASIS_PER_KG, FEE_BASIS_PERCENT, PayoutConfiguration
from agri_engines.fees import CommissionTier, TruckTier, validate_commission_tiers
from agri_kernel.domain.currency import CurrencyRegistry
from agri_kernel.exceptions import InvalidConfigurationError

_HUNDRED = Decimal("100")

# fee name -> basis it must use
KNOWN_FEES: dict[str, str] = {
    "platform": FEE_BASIS_PERCENT,
    "grading": FEE_BASIS_PER_KG,
    "insurance": FEE_BASIS_PERCENT,
    "finance_markup": FEE_BASIS_PERCENT,
}


@dataclass
class ConfigValidationResult:
    """``is_valid`` only when ``errors`` is empty."""

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def _check_pct(result: ConfigValidationResult, label: str, value: Decimal) -> None:
    if not (Decimal("0") <= value < _HUNDRED):
        result.add_error(f"{label}: percentage {value} must be in [0, 100)")


def validate_configuration(config: PayoutConfiguration) -> ConfigValidationResult:
    result = ConfigValidationResult()

    if not CurrencyRegistry.is_valid(config.currency):
        result.add_error(f"currency: unsupported code {config.currency!r}")
    if config.unit != "kg":
        result.add_warning(f"unit: per-kg fees and savings assume kg, got {config.unit!r}")

    _validate_fees(config, result)
    _validate_truck_tiers(config, result)

    try:
        validate_commission_tiers(
            [CommissionTier(t.min_tons, t.max_tons, t.rate) for t in config.commission_tiers]
        )
    except InvalidConfigurationError as e:
        for msg in e.errors:
            result.add_error(msg)

    _validate_deduction_ceiling(config, result)

    savings = config.savings
    if savings.rate_per_kg < 0:
        result.add_error(f"savings.rate_per_kg: {savings.rate_per_kg} cannot be negative")
    _check_pct(result, "savings.annual_interest_rate", savings.annual_interest_rate)

    for produce, price in config.floor_prices.items():
        if price <= 0:
            result.add_error(f"floor_prices.{produce}: {price} must be greater than zero")

    if config.minimum_order_quantity <= 0:
        result.add_error("orders.minimum_quantity must be greater than zero")
    if not (Decimal("0") < config.default_down_payment_pct <= _HUNDRED):
        result.add_error("orders.default_down_payment_pct must be in (0, 100]")
    _validate_payout_unit(config, result)

    return result


def _validate_payout_unit(config: PayoutConfiguration, result: ConfigValidationResult) -> None:
    unit = config.payout_unit
    if unit <= 0:
        result.add_error(f"payouts.unit: {unit} must be greater than zero")
        return
    if not CurrencyRegistry.is_valid(config.currency):
        return
    minor_unit = Decimal(1).scaleb(-CurrencyRegistry.get_decimal_places(config.currency))
    if unit % minor_unit != 0:
        result.add_error(
            f"payouts.unit: {unit} is not a multiple of the {config.currency} minor unit {minor_unit}"
        )


def _validate_fees(config: PayoutConfiguration, result: ConfigValidationResult) -> None:
    seen: set[str] = set()
    for fee in config.fees:
        if fee.name in seen:
            result.add_error(f"fees.{fee.name}: defined more than once")
        seen.add(fee.name)

        expected = KNOWN_FEES.get(fee.name)
        if expected is None:
            result.add_error(f"fees.{fee.name}: unknown fee")
            continue
        if fee.basis != expected:
            result.add_error(f"fees.{fee.name}: must be '{expected}', got '{fee.basis}'")
            continue
        if fee.basis == FEE_BASIS_PERCENT:
            _check_pct(result, f"fees.{fee.name}", fee.value)
        elif fee.value < 0:
            result.add_error(f"fees.{fee.name}: {fee.value} cannot be negative")


def _validate_truck_tiers(config: PayoutConfiguration, result: ConfigValidationResult) -> None:
    known = {t.value for t in TruckTier}
    seen: set[str] = set()
    for tier in config.truck_tiers:
        if tier.tier in seen:
            result.add_error(f"truck_tiers.{tier.tier}: defined more than once")
        seen.add(tier.tier)
        if tier.tier not in known:
            result.add_warning(f"truck_tiers.{tier.tier}: not a standard truck tier")
        _check_pct(result, f"truck_tiers.{tier.tier}", tier.transport_pct)
    if not config.truck_tiers:
        result.add_error("truck_tiers: at least one tier is required")


def _validate_deduction_ceiling(
    config: PayoutConfiguration, result: ConfigValidationResult
) -> None:
    def pct(name: str) -> Decimal:
        fee = config.fee(name)
        if fee is None or fee.basis != FEE_BASIS_PERCENT:
            return Decimal("0")
        return fee.value

    platform_max = max(
        [pct("platform"), *(t.rate for t in config.commission_tiers)],
    )
    transport_max = max((t.transport_pct for t in config.truck_tiers), default=Decimal("0"))
    ceiling = platform_max + transport_max + pct("insurance") + pct("finance_markup")
    if ceiling >= _HUNDRED:
        result.add_error(
            f"percentage deductions can reach {ceiling}%; they must stay below 100%"
        )
