"""
Pure domain layer.

This module contains immutable domain objects and validation rules
with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Time/clock (timestamps are passed in)
- I/O
"""

from agri_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from agri_kernel.domain.contribution import (
    Contribution,
    ContributionStatus,
    GradingDecision,
    QualityGrade,
)
from agri_kernel.domain.currency import CurrencyInfo, CurrencyRegistry
from agri_kernel.domain.member import Member, MemberStatus
from agri_kernel.domain.order import Order, OrderStatus, normalize_tier
from agri_kernel.domain.savings import (
    INTEREST_ORDER_REF,
    WITHDRAWAL_ORDER_REF,
    SavingsAccount,
    SavingsAccountState,
    SavingsTransaction,
    SavingsTransactionType,
    add_one_year,
    deposit_key,
)
from agri_kernel.domain.values import Currency, Money, Quantity

__all__ = [
    "Clock",
    "Contribution",
    "ContributionStatus",
    "Currency",
    "CurrencyInfo",
    "CurrencyRegistry",
    "DeterministicClock",
    "GradingDecision",
    "INTEREST_ORDER_REF",
    "Member",
    "MemberStatus",
    "Money",
    "Order",
    "OrderStatus",
    "QualityGrade",
    "Quantity",
    "SavingsAccount",
    "SavingsAccountState",
    "SavingsTransaction",
    "SavingsTransactionType",
    "SystemClock",
    "WITHDRAWAL_ORDER_REF",
    "add_one_year",
    "deposit_key",
    "normalize_tier",
]
