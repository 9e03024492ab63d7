"""
Config -> Engine Bridges.

Convert a ``PayoutConfiguration`` into the engine-level objects the
services consume.  These live in agri_config (the producer) because the
kernel and the engines never import agri_config.

Usage:
    config = get_active_config()
    schedule = build_fee_schedule(config)
    policy = build_savings_policy(config)
"""

from __future__ import annotations

from decimal import Decimal

from agri_config.schema import FEE_BASIS_PER_KG, FEE_BASIS_PERCENT, PayoutConfiguration
from agri_engines.fees import CommissionTier, FeeSchedule
from agri_engines.savings import SavingsPolicy
from agri_kernel.domain.values import Money


def _fee_value(config: PayoutConfiguration, name: str, basis: str) -> Decimal:
    fee = config.fee(name)
    if fee is None or fee.basis != basis:
        return Decimal("0")
    return fee.value


def build_fee_schedule(config: PayoutConfiguration) -> FeeSchedule:
    return FeeSchedule(
        currency=config.currency,
        platform_fee_pct=_fee_value(config, "platform", FEE_BASIS_PERCENT),
        transport_rates={t.tier: t.transport_pct for t in config.truck_tiers},
        commission_tiers=tuple(
            CommissionTier(t.min_tons, t.max_tons, t.rate) for t in config.commission_tiers
        ),
        grading_fee_per_kg=_fee_value(config, "grading", FEE_BASIS_PER_KG),
        insurance_pct=_fee_value(config, "insurance", FEE_BASIS_PERCENT),
        finance_markup_pct=_fee_value(config, "finance_markup", FEE_BASIS_PERCENT),
        savings_per_kg=config.savings.rate_per_kg,
        floor_prices=dict(config.floor_prices),
    )


def build_savings_policy(config: PayoutConfiguration) -> SavingsPolicy:
    return SavingsPolicy(
        rate_per_kg=Money.of(config.savings.rate_per_kg, config.currency),
        annual_interest_rate=config.savings.annual_interest_rate,
        lock_deposits_until_rollover=config.savings.lock_deposits_until_rollover,
    )
