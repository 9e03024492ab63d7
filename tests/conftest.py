"""
Pytest fixtures for the produce payout test suite.

Provides:
- Structured logging configured once per session, LogContext cleared per test
- captured_logs for asserting on emitted JSON records
- Deterministic clock, in-memory repositories and wired services
- Fake finance partner and disbursement gateway
- Order / contribution builders
"""

import json
import logging
from datetime import UTC, datetime
from decimal import Decimal
from io import StringIO

import pytest

from agri_config import get_active_config
from agri_config.bridges import build_fee_schedule, build_savings_policy
from agri_engines.fees import FeeSchedule, split_down_payment
from agri_engines.savings import SavingsPolicy
from agri_kernel.domain.clock import DeterministicClock
from agri_kernel.domain.order import Order
from agri_kernel.domain.values import Money, Quantity
from agri_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from agri_kernel.repositories.memory import (
    InMemoryContributionRepository,
    InMemoryOrderRepository,
    InMemorySavingsRepository,
)
from agri_services.collaborators import DisbursementKind, FinanceApproval
from agri_services.contribution_ledger import ContributionLedger
from agri_services.payment_allocator import PaymentAllocatorService
from agri_services.payment_workflow import OrderPaymentWorkflow
from agri_services.savings_accrual import SavingsAccrual

START_TIME = datetime(2024, 1, 1, 12, 0, 0, tzinfo=UTC)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture agri_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, ledger):
            ledger.record_contribution(...)
            logs = captured_logs()
            assert any(r["message"] == "contribution_recorded" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("agri_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Clock, configuration, repositories
# =============================================================================


@pytest.fixture
def clock():
    return DeterministicClock(START_TIME)


@pytest.fixture
def config():
    return get_active_config()


@pytest.fixture
def fee_schedule(config):
    return build_fee_schedule(config)


@pytest.fixture
def savings_policy(config):
    return build_savings_policy(config)


@pytest.fixture
def simple_fee_schedule():
    """5 % platform, 3 % transport on the 5ton tier, nothing else."""
    return FeeSchedule(
        currency="KES",
        platform_fee_pct=Decimal("5"),
        transport_rates={"5ton": Decimal("3")},
    )


@pytest.fixture
def contribution_repo():
    return InMemoryContributionRepository()


@pytest.fixture
def savings_repo():
    return InMemorySavingsRepository()


@pytest.fixture
def order_repo():
    return InMemoryOrderRepository()


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def ledger(contribution_repo, clock):
    return ContributionLedger(contribution_repo, clock=clock)


@pytest.fixture
def allocator(ledger, order_repo, fee_schedule, config):
    return PaymentAllocatorService(ledger, order_repo, fee_schedule, payout_unit=config.payout_unit)


@pytest.fixture
def accrual(savings_repo, savings_policy, clock):
    return SavingsAccrual(savings_repo, savings_policy, clock=clock)


@pytest.fixture
def unlocked_accrual(savings_repo, clock):
    """Savings accrual whose deposits are withdrawable immediately."""
    policy = SavingsPolicy(
        rate_per_kg=Money.of("2", "KES"),
        annual_interest_rate=Decimal("8"),
        lock_deposits_until_rollover=False,
    )
    return SavingsAccrual(savings_repo, policy, clock=clock)


# =============================================================================
# Collaborator fakes
# =============================================================================


class FakeDisbursementGateway:
    """Records disbursements; raises ``failure`` while it is set."""

    def __init__(self):
        self.calls: list[tuple[str, DisbursementKind, Money]] = []
        self.failure: Exception | None = None

    def request_disbursement(self, order_id, kind, amount):
        if self.failure is not None:
            raise self.failure
        self.calls.append((order_id, kind, amount))
        return f"DSB-{order_id}-{kind.value}-{len(self.calls)}"


class FakeFinancePartner:
    """Approves every submission with the standard down-payment split."""

    def __init__(self):
        self.submissions: list[tuple[str, Decimal]] = []
        self.failure: Exception | None = None
        self.override: FinanceApproval | None = None

    def submit(self, order, contributions, down_payment_pct):
        if self.failure is not None:
            raise self.failure
        self.submissions.append((order.id, down_payment_pct))
        if self.override is not None:
            return self.override
        down, balance = split_down_payment(order.total_amount, down_payment_pct)
        return FinanceApproval(
            reference_id=f"FIN-{order.id}-{len(self.submissions)}",
            down_payment_amount=down,
            balance_amount=balance,
        )


@pytest.fixture
def disbursements():
    return FakeDisbursementGateway()


@pytest.fixture
def finance_partner():
    return FakeFinancePartner()


@pytest.fixture
def workflow(order_repo, ledger, allocator, accrual, finance_partner, disbursements, config, clock):
    return OrderPaymentWorkflow(
        orders=order_repo,
        ledger=ledger,
        allocator=allocator,
        savings=accrual,
        finance_partner=finance_partner,
        disbursements=disbursements,
        configuration=config,
        clock=clock,
    )


# =============================================================================
# Builders
# =============================================================================


@pytest.fixture
def make_order():
    """Factory for orders with sensible defaults."""

    def _make(
        order_id: str = "ORD-1",
        quantity: str | int = 1000,
        price: str | int = 100,
        produce_type: str = "tomatoes",
        truck_tier: str = "5ton",
        currency: str = "KES",
        **kwargs,
    ) -> Order:
        return Order(
            id=order_id,
            buyer_id=kwargs.pop("buyer_id", "BUYER-1"),
            group_id=kwargs.pop("group_id", "GROUP-1"),
            produce_type=produce_type,
            quantity=Quantity.of(quantity, "kg"),
            price_per_unit=Money.of(price, currency),
            truck_tier=truck_tier,
            **kwargs,
        )

    return _make
