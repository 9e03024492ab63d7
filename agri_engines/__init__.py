"""
Module: agri_engines
Responsibility:
    Package entrypoint re-exporting the pure calculation engines: fee
    schedule, fulfillment aggregation, payment allocation and savings
    arithmetic.  Canonical import surface for agri_services.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import agri_kernel (domain, exceptions, logging).
    MUST NOT import agri_services or agri_config.

Invariants enforced:
    - Purity: engines never read the clock; dates are passed in.
    - Decimal-only arithmetic; floats are never used for amounts or kg.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Entry points are wrapped with ``@traced_engine`` and emit
    AGRI_ENGINE_TRACE records with an input fingerprint.
"""

from agri_engines.allocation import (
    DEFAULT_PAYOUT_UNIT,
    DistributionReport,
    MemberPayout,
    PaymentAllocation,
    ReportRow,
    allocate,
    allocate_net,
    distribution_report,
    total_allocated,
    withhold_savings,
)
from agri_engines.fees import (
    DEFAULT_TRANSPORT_RATES,
    CommissionTier,
    FeeBreakdown,
    FeeConfig,
    FeeLine,
    FeeRate,
    FeeSchedule,
    FloorPriceCheck,
    TruckTier,
    breakdown,
    commission_rate,
    floor_price_check,
    split_down_payment,
    transport_fee_rate,
    validate_commission_tiers,
)
from agri_engines.fulfillment import (
    fulfillment_percentage,
    remaining_quantity,
    total_accepted,
)
from agri_engines.savings import (
    SavingsPolicy,
    annual_interest,
    deposit_amount,
    post_deposit,
    post_interest,
    post_withdrawal,
    projected_interest,
    verify_running_balance,
)
from agri_engines.tracer import traced_engine

__all__ = [
    "CommissionTier",
    "DEFAULT_PAYOUT_UNIT",
    "DEFAULT_TRANSPORT_RATES",
    "DistributionReport",
    "FeeBreakdown",
    "FeeConfig",
    "FeeLine",
    "FeeRate",
    "FeeSchedule",
    "FloorPriceCheck",
    "MemberPayout",
    "PaymentAllocation",
    "ReportRow",
    "SavingsPolicy",
    "TruckTier",
    "allocate",
    "allocate_net",
    "annual_interest",
    "breakdown",
    "commission_rate",
    "deposit_amount",
    "distribution_report",
    "floor_price_check",
    "fulfillment_percentage",
    "post_deposit",
    "post_interest",
    "post_withdrawal",
    "projected_interest",
    "remaining_quantity",
    "split_down_payment",
    "total_accepted",
    "total_allocated",
    "traced_engine",
    "transport_fee_rate",
    "validate_commission_tiers",
    "verify_running_balance",
]
