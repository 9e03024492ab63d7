"""
Tests for OrderPaymentWorkflow.

Scenario used throughout: 1000 kg of tomatoes at 100 KES/kg on a 5 ton
truck under the default configuration (net 78,500 KES), with M-1
delivering 600 kg and M-2 400 kg, both fully accepted.

Covers:
- Happy path through all four steps
- Order gates: minimum quantity, floor price, truck tier
- Steps out of order, cancelled orders
- Collaborator failures leave no state applied and can be retried
- Savings idempotency across retries
"""

from dataclasses import replace
from decimal import Decimal

import pytest

from agri_kernel.domain.order import OrderStatus
from agri_kernel.domain.values import Money
from agri_kernel.exceptions import (
    DisbursementFailedError,
    DuplicateDepositError,
    FinancePartnerError,
    FloorPriceViolationError,
    InvalidOrderError,
    NegativeNetAmountError,
    OrderNotFoundError,
    UnknownTierError,
    WorkflowStepError,
)
from agri_services.collaborators import DisbursementKind, FinanceApproval
from agri_services.payment_workflow import OrderPaymentWorkflow, PaymentStep


def kes(amount) -> Money:
    return Money.of(str(amount), "KES")


@pytest.fixture
def created(workflow, ledger, make_order):
    order = workflow.create_order(make_order())
    c1 = ledger.record_contribution(order.id, "M-1", 600, "A")
    c2 = ledger.record_contribution(order.id, "M-2", 400, "B")
    ledger.grade(c1.id, "accepted", 600)
    ledger.grade(c2.id, "accepted", 400)
    return order


@pytest.fixture
def financed(workflow, created):
    workflow.submit_financing(created.id)
    return created


@pytest.fixture
def settled_down(workflow, financed):
    workflow.process_down_payment(financed.id)
    return financed


def deliver(workflow, order_id):
    workflow.update_order_status(order_id, OrderStatus.IN_TRANSIT)
    workflow.update_order_status(order_id, OrderStatus.DELIVERED)


class TestHappyPath:
    def test_full_flow(self, workflow, created, order_repo, accrual, disbursements, finance_partner, clock):
        assert workflow.progress(created.id) == PaymentStep.ORDER_CREATED

        approval = workflow.submit_financing(created.id)
        assert approval.down_payment_amount == kes(30000)
        assert approval.balance_amount == kes(70000)
        assert finance_partner.submissions == [("ORD-1", Decimal("30"))]
        assert order_repo.get(created.id).status == OrderStatus.CONFIRMED
        assert workflow.progress(created.id) == PaymentStep.FINANCING_APPROVED

        down = workflow.process_down_payment(created.id)
        assert down.kind == DisbursementKind.DOWN_PAYMENT
        assert down.amount == kes(30000)
        assert down.net_amount == kes("23550.00")
        assert [(p.member_id, p.gross_amount, p.savings_withheld, p.net_payout) for p in down.payouts] == [
            ("M-1", kes("14130.00"), kes(1200), kes(12930)),
            ("M-2", kes("9420.00"), kes(800), kes(8620)),
        ]
        assert [tx.amount for tx in down.savings_transactions] == [kes(1200), kes(800)]
        assert accrual.account("M-1").total_savings == kes(1200)
        assert workflow.progress(created.id) == PaymentStep.DOWN_PAYMENT_SETTLED

        deliver(workflow, created.id)
        assert order_repo.get(created.id).delivery_date == clock.today()

        balance = workflow.process_balance_payment(created.id)
        assert balance.amount == kes(70000)
        assert balance.net_amount == kes("54950.00")
        assert [(p.member_id, p.net_payout) for p in balance.payouts] == [
            ("M-1", kes(32970)),
            ("M-2", kes(21980)),
        ]
        assert all(p.savings_withheld.is_zero for p in balance.payouts)
        assert balance.savings_transactions == ()
        assert down.net_amount + balance.net_amount == kes(78500)

        assert order_repo.get(created.id).status == OrderStatus.COMPLETED
        assert workflow.progress(created.id) == PaymentStep.COMPLETED
        assert [(kind, amount) for _, kind, amount in disbursements.calls] == [
            (DisbursementKind.DOWN_PAYMENT, kes(30000)),
            (DisbursementKind.BALANCE, kes(70000)),
        ]
        assert workflow.settlement(created.id, DisbursementKind.BALANCE) == balance

    def test_custom_down_payment_pct(self, workflow, created):
        approval = workflow.submit_financing(created.id, Decimal("40"))
        assert approval.down_payment_amount == kes(40000)
        assert workflow.process_down_payment(created.id).net_amount == kes("31400.00")

    def test_refinancing_before_disbursement(self, workflow, created, finance_partner):
        workflow.submit_financing(created.id)
        approval = workflow.submit_financing(created.id, Decimal("50"))
        assert approval.reference_id == "FIN-ORD-1-2"
        assert len(finance_partner.submissions) == 2

    def test_steps_logged(self, workflow, settled_down, captured_logs):
        deliver(workflow, settled_down.id)
        workflow.process_balance_payment(settled_down.id)
        messages = [r["message"] for r in captured_logs()]
        assert "order_status_changed" in messages
        settled = [r for r in captured_logs() if r["message"] == "balance_payment_settled"][-1]
        assert settled["order_id"] == "ORD-1"
        assert settled["net_amount"] == "54950.00"


class TestOrderGates:
    def test_below_minimum_quantity(self, workflow, make_order, order_repo):
        with pytest.raises(InvalidOrderError, match="minimum"):
            workflow.create_order(make_order(quantity=999))
        with pytest.raises(OrderNotFoundError):
            order_repo.get("ORD-1")

    def test_price_below_floor(self, workflow, make_order, captured_logs):
        with pytest.raises(FloorPriceViolationError) as exc_info:
            workflow.create_order(make_order(price=75))
        assert exc_info.value.floor_price == "80"
        refused = [r for r in captured_logs() if r["message"] == "floor_price_refused"][-1]
        assert refused["produce_type"] == "tomatoes"

    def test_produce_without_floor(self, workflow, make_order):
        order = workflow.create_order(make_order(produce_type="Dragonfruit", price=10))
        assert order.produce_type == "dragonfruit"

    def test_unknown_truck_tier(self, workflow, make_order):
        with pytest.raises(UnknownTierError):
            workflow.create_order(make_order(truck_tier="9ton"))

    def test_fees_above_total_refused_before_storing(self, workflow, make_order, order_repo):
        # 3000 KES total against 570 KES of percentage fees and 2500 KES grading
        with pytest.raises(NegativeNetAmountError):
            workflow.create_order(make_order(produce_type="maize", price=3))
        with pytest.raises(OrderNotFoundError):
            order_repo.get("ORD-1")
        with pytest.raises(OrderNotFoundError):
            workflow.progress("ORD-1")

    def test_reprice_below_fees_refused(self, workflow, make_order, order_repo, allocator):
        order = workflow.create_order(make_order(produce_type="maize", price=10))
        with pytest.raises(NegativeNetAmountError):
            workflow.change_price(order.id, kes(3))
        assert order_repo.get(order.id).price_per_unit == kes(10)
        assert allocator.fee_breakdown(order.id).base_amount == kes(10000)

    def test_change_price_recomputes(self, workflow, created, allocator):
        workflow.change_price(created.id, kes(120))
        assert allocator.fee_breakdown(created.id).base_amount == kes(120000)

    def test_change_price_respects_floor(self, workflow, created, order_repo):
        with pytest.raises(FloorPriceViolationError):
            workflow.change_price(created.id, kes("79.99"))
        assert order_repo.get(created.id).price_per_unit == kes(100)

    def test_change_price_only_while_pending(self, workflow, financed):
        with pytest.raises(WorkflowStepError):
            workflow.change_price(financed.id, kes(120))


class TestStepOrdering:
    def test_down_payment_before_financing(self, workflow, created, disbursements):
        with pytest.raises(WorkflowStepError) as exc_info:
            workflow.process_down_payment(created.id)
        assert exc_info.value.current_step == "order_created"
        assert disbursements.calls == []

    def test_balance_before_down_payment(self, workflow, financed):
        with pytest.raises(WorkflowStepError):
            workflow.process_balance_payment(financed.id)

    def test_balance_before_delivery(self, workflow, settled_down, disbursements):
        with pytest.raises(WorkflowStepError, match="confirmed"):
            workflow.process_balance_payment(settled_down.id)
        assert len(disbursements.calls) == 1

    def test_financing_after_disbursement(self, workflow, settled_down):
        with pytest.raises(WorkflowStepError):
            workflow.submit_financing(settled_down.id)

    def test_cancelled_order(self, workflow, financed, disbursements):
        workflow.update_order_status(financed.id, OrderStatus.CANCELLED)
        with pytest.raises(WorkflowStepError):
            workflow.process_down_payment(financed.id)
        assert disbursements.calls == []

    def test_unknown_order(self, workflow):
        with pytest.raises(OrderNotFoundError):
            workflow.progress("ORD-404")
        with pytest.raises(OrderNotFoundError):
            workflow.submit_financing("ORD-404")

    def test_nothing_accepted(self, workflow, make_order, disbursements):
        order = workflow.create_order(make_order(order_id="ORD-EMPTY"))
        workflow.submit_financing(order.id)
        with pytest.raises(InvalidOrderError):
            workflow.process_down_payment(order.id)
        assert disbursements.calls == []

    def test_repeat_returns_same_settlement(self, workflow, financed, disbursements):
        first = workflow.process_down_payment(financed.id)
        assert workflow.process_down_payment(financed.id) is first
        assert len(disbursements.calls) == 1


class TestFinancePartnerFailures:
    def test_failure_leaves_no_state(self, workflow, created, finance_partner, order_repo, captured_logs):
        finance_partner.failure = TimeoutError("partner timed out")
        with pytest.raises(FinancePartnerError, match="timed out"):
            workflow.submit_financing(created.id)

        assert workflow.progress(created.id) == PaymentStep.ORDER_CREATED
        assert order_repo.get(created.id).status == OrderStatus.PENDING
        failed = [r for r in captured_logs() if r["message"] == "finance_partner_failed"][-1]
        assert failed["level"] == "ERROR"

        finance_partner.failure = None
        workflow.submit_financing(created.id)
        assert workflow.progress(created.id) == PaymentStep.FINANCING_APPROVED

    def test_amounts_must_add_up(self, workflow, created, finance_partner):
        finance_partner.override = FinanceApproval("FIN-BAD", kes(30000), kes(60000))
        with pytest.raises(FinancePartnerError, match="do not add up"):
            workflow.submit_financing(created.id)
        assert workflow.progress(created.id) == PaymentStep.ORDER_CREATED

    def test_floor_rechecked_before_submission(self, workflow, created, order_repo, finance_partner):
        order_repo.save(replace(order_repo.get(created.id), price_per_unit=kes(50)))
        with pytest.raises(FloorPriceViolationError):
            workflow.submit_financing(created.id)
        assert finance_partner.submissions == []


class TestDisbursementFailures:
    def test_failure_posts_no_savings(self, workflow, financed, disbursements, accrual):
        disbursements.failure = ConnectionError("gateway down")
        with pytest.raises(DisbursementFailedError) as exc_info:
            workflow.process_down_payment(financed.id)

        assert exc_info.value.kind == "down_payment"
        assert accrual.find_deposit("M-1", financed.id) is None
        assert accrual.find_deposit("M-2", financed.id) is None
        assert workflow.progress(financed.id) == PaymentStep.FINANCING_APPROVED

    def test_retry_after_failure(self, workflow, financed, disbursements, accrual):
        disbursements.failure = ConnectionError("gateway down")
        with pytest.raises(DisbursementFailedError):
            workflow.process_down_payment(financed.id)

        disbursements.failure = None
        settlement = workflow.process_down_payment(financed.id)
        assert settlement.reference_id == "DSB-ORD-1-down_payment-1"
        assert accrual.account("M-1").total_savings == kes(1200)

    def test_balance_failure_keeps_order_delivered(self, workflow, settled_down, disbursements, order_repo):
        deliver(workflow, settled_down.id)
        disbursements.failure = ConnectionError("gateway down")
        with pytest.raises(DisbursementFailedError):
            workflow.process_balance_payment(settled_down.id)
        assert order_repo.get(settled_down.id).status == OrderStatus.DELIVERED
        assert workflow.progress(settled_down.id) == PaymentStep.DOWN_PAYMENT_SETTLED


class TestSavingsIdempotency:
    def test_identical_prior_deposit_accepted(self, workflow, financed, accrual, captured_logs):
        prior = accrual.deposit("M-1", financed.id, 600)
        settlement = workflow.process_down_payment(financed.id)

        assert settlement.savings_transactions[0] == prior
        assert len(accrual.transactions("M-1")) == 1
        assert any(r["message"] == "savings_deposit_already_posted" for r in captured_logs())

    def test_conflicting_prior_deposit_refused_before_payout(self, workflow, financed, accrual, disbursements):
        accrual.deposit("M-1", financed.id, 10)
        with pytest.raises(DuplicateDepositError) as exc_info:
            workflow.process_down_payment(financed.id)

        assert exc_info.value.member_id == "M-1"
        assert disbursements.calls == []
        assert accrual.find_deposit("M-2", financed.id) is None


class TestFinishedOrders:
    def test_completed_order_leaves_active_tables(self, workflow, settled_down, allocator):
        deliver(workflow, settled_down.id)
        balance = workflow.process_balance_payment(settled_down.id)

        assert workflow.active_order_count() == 0
        assert workflow.progress(settled_down.id) == PaymentStep.COMPLETED
        assert workflow.process_balance_payment(settled_down.id) is balance
        assert settled_down.id not in allocator._snapshots

    def test_cancelled_order_retired(self, workflow, financed, allocator):
        workflow.update_order_status(financed.id, OrderStatus.CANCELLED)
        assert workflow.active_order_count() == 0
        assert financed.id not in allocator._snapshots
        with pytest.raises(WorkflowStepError):
            workflow.submit_financing(financed.id)

    def test_oldest_finished_orders_evicted(
        self, order_repo, ledger, allocator, accrual, finance_partner, disbursements, config, clock, make_order
    ):
        workflow = OrderPaymentWorkflow(
            orders=order_repo,
            ledger=ledger,
            allocator=allocator,
            savings=accrual,
            finance_partner=finance_partner,
            disbursements=disbursements,
            configuration=config,
            clock=clock,
            finished_retention=2,
        )
        for i in range(3):
            order = workflow.create_order(make_order(order_id=f"ORD-{i}"))
            workflow.update_order_status(order.id, OrderStatus.CANCELLED)

        with pytest.raises(OrderNotFoundError):
            workflow.progress("ORD-0")
        assert workflow.progress("ORD-2") == PaymentStep.ORDER_CREATED
        # the order record itself is kept by the repository
        assert order_repo.get("ORD-0").status == OrderStatus.CANCELLED
