"""Tests for the in-memory repositories."""

from datetime import UTC, date, datetime
from decimal import Decimal
from uuid import uuid4

import pytest

from agri_engines.savings import post_deposit
from agri_kernel.domain.contribution import Contribution, GradingDecision
from agri_kernel.domain.order import OrderStatus
from agri_kernel.domain.savings import SavingsAccount
from agri_kernel.domain.values import Money, Quantity
from agri_kernel.exceptions import (
    ContributionNotFoundError,
    DuplicateDepositError,
    OrderNotFoundError,
    StaleLedgerError,
)
from agri_kernel.repositories.contracts import (
    ContributionRepository,
    OrderRepository,
    SavingsRepository,
)

T0 = datetime(2024, 1, 1, tzinfo=UTC)
D0 = date(2024, 1, 1)


def _account(member_id="M-1") -> SavingsAccount:
    return SavingsAccount.open(member_id, "KES", Decimal("8"), D0)


class TestInMemoryContributionRepository:
    def test_satisfies_contract(self, contribution_repo):
        assert isinstance(contribution_repo, ContributionRepository)

    def test_add_get_list(self, contribution_repo):
        c = Contribution.create("ORD-1", "M-1", Quantity.of(10), "A", T0)
        contribution_repo.add(c)
        assert contribution_repo.get(c.id) == c
        assert contribution_repo.list_for_order("ORD-1") == [c]
        assert contribution_repo.list_for_order("ORD-2") == []

    def test_unknown_id(self, contribution_repo):
        with pytest.raises(ContributionNotFoundError):
            contribution_repo.get(uuid4())
        with pytest.raises(ContributionNotFoundError):
            contribution_repo.grading_history(uuid4())

    def test_save_requires_existing(self, contribution_repo):
        c = Contribution.create("ORD-1", "M-1", Quantity.of(10), "A", T0)
        graded = c.apply_grading("accepted", 10, graded_at=T0)
        decision = GradingDecision(
            contribution_id=c.id,
            sequence=1,
            status=graded.status,
            accepted_quantity=graded.accepted_quantity,
            rejection_reason=None,
            graded_at=T0,
        )
        with pytest.raises(ContributionNotFoundError):
            contribution_repo.save(graded, decision)

        contribution_repo.add(c)
        contribution_repo.save(graded, decision)
        assert contribution_repo.get(c.id) == graded
        assert contribution_repo.grading_history(c.id) == [decision]


class TestInMemorySavingsRepository:
    def test_satisfies_contract(self, savings_repo):
        assert isinstance(savings_repo, SavingsRepository)

    def test_append_and_read(self, savings_repo):
        account, tx = post_deposit(_account(), "ORD-1", Money.of("240", "KES"), D0, uuid4())
        savings_repo.append(account, tx)

        assert savings_repo.get_account("M-1") == account
        assert savings_repo.transactions("M-1") == [tx]
        assert savings_repo.find_deposit("M-1", "ORD-1") == tx
        assert savings_repo.find_deposit("M-1", "ORD-2") is None

    def test_duplicate_deposit_key(self, savings_repo):
        account, tx = post_deposit(_account(), "ORD-1", Money.of("240", "KES"), D0, uuid4())
        savings_repo.append(account, tx)
        again, tx2 = post_deposit(account, "ORD-1", Money.of("240", "KES"), D0, uuid4())

        with pytest.raises(DuplicateDepositError) as exc_info:
            savings_repo.append(again, tx2)
        assert exc_info.value.existing_transaction == tx
        assert savings_repo.get_account("M-1") == account

    def test_stale_sequence(self, savings_repo):
        account, tx = post_deposit(_account(), "ORD-1", Money.of("1", "KES"), D0, uuid4())
        savings_repo.append(account, tx)
        # built from the account as it was before the first append
        _, stale = post_deposit(_account(), "ORD-2", Money.of("1", "KES"), D0, uuid4())

        with pytest.raises(StaleLedgerError) as exc_info:
            savings_repo.append(account, stale)
        assert exc_info.value.expected_sequence == 2
        assert exc_info.value.received_sequence == 1

    def test_member_ids_sorted(self, savings_repo):
        for member_id in ("M-3", "M-1", "M-2"):
            account, tx = post_deposit(_account(member_id), "ORD-1", Money.of("1", "KES"), D0, uuid4())
            savings_repo.append(account, tx)
        assert savings_repo.member_ids() == ["M-1", "M-2", "M-3"]


class TestInMemoryOrderRepository:
    def test_satisfies_contract(self, order_repo):
        assert isinstance(order_repo, OrderRepository)

    def test_add_get_save(self, order_repo, make_order):
        order = make_order()
        order_repo.add(order)
        confirmed = order.transition_to(OrderStatus.CONFIRMED)
        order_repo.save(confirmed)
        assert order_repo.get(order.id).status == OrderStatus.CONFIRMED

    def test_unknown(self, order_repo, make_order):
        with pytest.raises(OrderNotFoundError):
            order_repo.get("ORD-404")
        with pytest.raises(OrderNotFoundError):
            order_repo.save(make_order(order_id="ORD-404"))
