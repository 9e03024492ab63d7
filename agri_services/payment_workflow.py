"""
OrderPaymentWorkflow -- the four-step order payment wizard.

Responsibility:
    Drives an order from creation to final settlement:

        1. create_order            minimum quantity, floor price and fee gates
        2. submit_financing        finance partner splits the total into a
                                   down payment and a balance
        3. process_down_payment    disburse the down payment leg, then post
                                   every contributing member's compulsory
                                   savings
        4. process_balance_payment after delivery: disburse the balance leg
                                   and complete the order

    Each leg's member payouts are allocated from the leg's share of the
    order's net (post-fee) amount; the two leg nets add up to the order net.

Architecture position:
    Services -- orchestrates the ledger, allocator, savings accrual and the
    external collaborators.  Steps for one order run under the order lock.

Invariants enforced:
    - Everything that can be refused (fees, withholding, a conflicting
      prior deposit) is computed before the first external call.
    - A failed collaborator call leaves no state applied: no deposit is
      posted and the step is not marked settled.
    - A disbursement that succeeded is remembered; a retried step never
      pays the same leg twice and treats identical prior deposits as
      success.
    - The floor price and the fee breakdown are checked before an order
      is stored or repriced; the floor price again right before financing
      is submitted.
    - Completed and cancelled orders leave the active tables; the most
      recent FINISHED_RETENTION of them stay readable.

Failure modes:
    - InvalidOrderError: below minimum quantity, nothing accepted.
    - FloorPriceViolationError: price below the produce floor.
    - UnknownTierError / NegativeNetAmountError: the order cannot carry
      its fees; nothing is stored.
    - WorkflowStepError: step called out of order or on a cancelled order.
    - FinancePartnerError / DisbursementFailedError: collaborator failed;
      retry the step.
    - DuplicateDepositError: a prior deposit exists with another amount.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal
from enum import Enum

from agri_config.schema import PayoutConfiguration
from agri_engines.allocation import MemberPayout, withhold_savings
from agri_engines.fees import split_down_payment
from agri_kernel.domain.clock import Clock, SystemClock
from agri_kernel.domain.order import Order, OrderStatus
from agri_kernel.domain.savings import SavingsTransaction
from agri_kernel.domain.values import Money
from agri_kernel.exceptions import (
    AgriKernelError,
    DisbursementFailedError,
    DuplicateDepositError,
    FinancePartnerError,
    FloorPriceViolationError,
    InvalidOrderError,
    OrderNotFoundError,
    WorkflowStepError,
)
from agri_kernel.logging_config import LogContext, get_logger
from agri_kernel.repositories.contracts import OrderRepository
from agri_services.collaborators import (
    DisbursementGateway,
    DisbursementKind,
    FinanceApproval,
    FinancePartner,
)
from agri_services.contribution_ledger import ContributionLedger
from agri_services.payment_allocator import PaymentAllocatorService
from agri_services.savings_accrual import SavingsAccrual

logger = get_logger("services.payment_workflow")

# completed or cancelled orders whose progress stays readable
FINISHED_RETENTION = 256


class PaymentStep(str, Enum):
    ORDER_CREATED = "order_created"
    FINANCING_APPROVED = "financing_approved"
    DOWN_PAYMENT_SETTLED = "down_payment_settled"
    COMPLETED = "completed"


@dataclass(frozen=True)
class LegSettlement:
    """Outcome of one settled payment leg."""

    order_id: str
    kind: DisbursementKind
    amount: Money
    net_amount: Money
    reference_id: str
    payouts: tuple[MemberPayout, ...]
    savings_transactions: tuple[SavingsTransaction, ...] = ()


@dataclass
class PaymentProgress:
    order_id: str
    step: PaymentStep = PaymentStep.ORDER_CREATED
    approval: FinanceApproval | None = None
    down_payment_pct: Decimal | None = None
    down_payment_net: Money | None = None
    disbursed: dict[DisbursementKind, str] = field(default_factory=dict)
    settlements: dict[DisbursementKind, LegSettlement] = field(default_factory=dict)


class OrderPaymentWorkflow:
    def __init__(
        self,
        orders: OrderRepository,
        ledger: ContributionLedger,
        allocator: PaymentAllocatorService,
        savings: SavingsAccrual,
        finance_partner: FinancePartner,
        disbursements: DisbursementGateway,
        configuration: PayoutConfiguration,
        clock: Clock | None = None,
        finished_retention: int = FINISHED_RETENTION,
    ):
        self._orders = orders
        self._ledger = ledger
        self._allocator = allocator
        self._savings = savings
        self._finance_partner = finance_partner
        self._disbursements = disbursements
        self._config = configuration
        self._clock = clock or SystemClock()
        self._progress: dict[str, PaymentProgress] = {}
        self._finished: OrderedDict[str, PaymentProgress] = OrderedDict()
        self._finished_retention = finished_retention

    # ------------------------------------------------------------------
    # Step 1: order
    # ------------------------------------------------------------------

    def create_order(self, order: Order) -> Order:
        if order.quantity.value < self._config.minimum_order_quantity:
            raise InvalidOrderError(
                order.id,
                f"quantity {order.quantity} is below the minimum order of "
                f"{self._config.minimum_order_quantity} {self._config.unit}",
            )
        self._check_floor(order)
        # unknown tier or fees above the order total refuse the order here
        self._allocator.fee_schedule.breakdown(order)

        with self._ledger.order_lock(order.id):
            self._orders.add(order)
            self._progress[order.id] = PaymentProgress(order_id=order.id)

        logger.info(
            "order_created",
            extra={
                "order_id": order.id,
                "group_id": order.group_id,
                "produce_type": order.produce_type,
                "quantity": str(order.quantity.value),
                "total_amount": str(order.total_amount.amount),
                "truck_tier": order.truck_tier,
            },
        )
        return order

    def change_price(self, order_id: str, price_per_unit: Money) -> Order:
        """Reprice a pending order; the floor price applies."""
        with self._ledger.order_lock(order_id):
            order = self._orders.get(order_id)
            if order.status != OrderStatus.PENDING:
                raise WorkflowStepError(order_id, "change_price", f"order {order.status.value}")
            repriced = replace(order, price_per_unit=price_per_unit)
            self._check_floor(repriced)
            self._allocator.fee_schedule.breakdown(repriced)
            self._orders.save(repriced)
            self._allocator.recompute(order_id)
        return repriced

    def update_order_status(
        self,
        order_id: str,
        status: OrderStatus | str,
        on: date | None = None,
    ) -> Order:
        """Move the order along its lifecycle (in transit, delivered, cancelled)."""
        with self._ledger.order_lock(order_id):
            order = self._orders.get(order_id)
            status = OrderStatus(status)
            if status == OrderStatus.DELIVERED and on is None:
                on = self._clock.today()
            updated = order.transition_to(status, on=on)
            self._orders.save(updated)
            if updated.status == OrderStatus.CANCELLED:
                self._retire(order_id)
        logger.info(
            "order_status_changed",
            extra={
                "order_id": order_id,
                "from_status": order.status.value,
                "to_status": updated.status.value,
            },
        )
        return updated

    # ------------------------------------------------------------------
    # Step 2: financing
    # ------------------------------------------------------------------

    def submit_financing(
        self,
        order_id: str,
        down_payment_pct: Decimal | None = None,
    ) -> FinanceApproval:
        pct = self._config.default_down_payment_pct if down_payment_pct is None else down_payment_pct

        with self._ledger.order_lock(order_id), LogContext.bind(order_id=order_id):
            progress = self._require_progress(order_id)
            order = self._orders.get(order_id)
            if progress.step not in (PaymentStep.ORDER_CREATED, PaymentStep.FINANCING_APPROVED):
                raise WorkflowStepError(order_id, "submit_financing", progress.step.value)
            if progress.disbursed:
                raise WorkflowStepError(order_id, "submit_financing", "down payment disbursed")
            if order.status not in (OrderStatus.PENDING, OrderStatus.CONFIRMED):
                raise WorkflowStepError(order_id, "submit_financing", f"order {order.status.value}")

            self._check_floor(order)
            expected_down, expected_balance = split_down_payment(order.total_amount, pct)
            contributions = self._ledger.contributions_for(order_id)

            try:
                approval = self._finance_partner.submit(order, contributions, pct)
            except AgriKernelError:
                raise
            except Exception as e:
                logger.error(
                    "finance_partner_failed",
                    extra={"down_payment_pct": str(pct), "error": str(e)},
                )
                raise FinancePartnerError(order_id, str(e)) from e

            if approval.down_payment_amount + approval.balance_amount != order.total_amount:
                logger.error(
                    "finance_partner_amounts_mismatch",
                    extra={
                        "down_payment": str(approval.down_payment_amount),
                        "balance": str(approval.balance_amount),
                        "total_amount": str(order.total_amount),
                    },
                )
                raise FinancePartnerError(
                    order_id,
                    f"down payment {approval.down_payment_amount} and balance "
                    f"{approval.balance_amount} do not add up to {order.total_amount}",
                )

            if order.status == OrderStatus.PENDING:
                self._orders.save(order.transition_to(OrderStatus.CONFIRMED))

            progress.approval = approval
            progress.down_payment_pct = pct
            progress.down_payment_net = self._allocator.leg_net(
                order_id, approval.down_payment_amount
            )
            progress.step = PaymentStep.FINANCING_APPROVED

            logger.info(
                "financing_approved",
                extra={
                    "reference_id": approval.reference_id,
                    "down_payment_pct": str(pct),
                    "down_payment": str(approval.down_payment_amount.amount),
                    "balance": str(approval.balance_amount.amount),
                    "expected_down_payment": str(expected_down.amount),
                    "expected_balance": str(expected_balance.amount),
                },
            )
        return approval

    # ------------------------------------------------------------------
    # Step 3: down payment
    # ------------------------------------------------------------------

    def process_down_payment(self, order_id: str) -> LegSettlement:
        kind = DisbursementKind.DOWN_PAYMENT
        with self._ledger.order_lock(order_id), LogContext.bind(order_id=order_id):
            progress = self._require_progress(order_id)
            if kind in progress.settlements:
                return progress.settlements[kind]
            if progress.step != PaymentStep.FINANCING_APPROVED:
                raise WorkflowStepError(order_id, "process_down_payment", progress.step.value)
            order = self._orders.get(order_id)
            if order.status == OrderStatus.CANCELLED:
                raise WorkflowStepError(order_id, "process_down_payment", "order cancelled")

            approval = progress.approval
            leg_net = self._allocator.leg_net(order_id, approval.down_payment_amount)
            allocations = self._allocator.allocate_amount(order_id, leg_net)
            if not allocations:
                raise InvalidOrderError(order_id, "no accepted contributions to pay")
            payouts = withhold_savings(allocations, self._savings.policy.rate_per_kg)

            for payout in payouts:
                existing = self._savings.find_deposit(payout.member_id, order_id)
                if existing is not None and existing.amount != payout.savings_withheld:
                    raise DuplicateDepositError(
                        payout.member_id, order_id, str(existing.amount), existing
                    )

            reference = self._disburse(progress, kind, approval.down_payment_amount)

            deposits = tuple(self._post_savings(order_id, p) for p in payouts)

            settlement = LegSettlement(
                order_id=order_id,
                kind=kind,
                amount=approval.down_payment_amount,
                net_amount=leg_net,
                reference_id=reference,
                payouts=tuple(payouts),
                savings_transactions=deposits,
            )
            progress.down_payment_net = leg_net
            progress.settlements[kind] = settlement
            progress.step = PaymentStep.DOWN_PAYMENT_SETTLED

            logger.info(
                "down_payment_settled",
                extra={
                    "reference_id": reference,
                    "amount": str(settlement.amount.amount),
                    "net_amount": str(leg_net.amount),
                    "member_count": len(payouts),
                    "savings_total": str(
                        sum((p.savings_withheld.amount for p in payouts), Decimal("0"))
                    ),
                },
            )
        return settlement

    # ------------------------------------------------------------------
    # Step 4: balance
    # ------------------------------------------------------------------

    def process_balance_payment(self, order_id: str) -> LegSettlement:
        kind = DisbursementKind.BALANCE
        with self._ledger.order_lock(order_id), LogContext.bind(order_id=order_id):
            progress = self._require_progress(order_id)
            if kind in progress.settlements:
                return progress.settlements[kind]
            if progress.step != PaymentStep.DOWN_PAYMENT_SETTLED:
                raise WorkflowStepError(order_id, "process_balance_payment", progress.step.value)
            order = self._orders.get(order_id)
            if order.status != OrderStatus.DELIVERED:
                raise WorkflowStepError(
                    order_id, "process_balance_payment", f"order {order.status.value}"
                )

            approval = progress.approval
            full_net = self._allocator.fee_breakdown(order_id).net_amount
            leg_net = full_net - progress.down_payment_net
            allocations = self._allocator.allocate_amount(order_id, leg_net)
            if not allocations:
                raise InvalidOrderError(order_id, "no accepted contributions to pay")
            payouts = withhold_savings(allocations, Money.zero(leg_net.currency))

            reference = self._disburse(progress, kind, approval.balance_amount)

            self._orders.save(order.transition_to(OrderStatus.COMPLETED))
            settlement = LegSettlement(
                order_id=order_id,
                kind=kind,
                amount=approval.balance_amount,
                net_amount=leg_net,
                reference_id=reference,
                payouts=tuple(payouts),
            )
            progress.settlements[kind] = settlement
            progress.step = PaymentStep.COMPLETED
            self._retire(order_id)

            logger.info(
                "balance_payment_settled",
                extra={
                    "reference_id": reference,
                    "amount": str(settlement.amount.amount),
                    "net_amount": str(leg_net.amount),
                    "member_count": len(payouts),
                },
            )
        return settlement

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def progress(self, order_id: str) -> PaymentStep:
        return self._require_progress(order_id).step

    def settlement(self, order_id: str, kind: DisbursementKind) -> LegSettlement | None:
        return self._require_progress(order_id).settlements.get(kind)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_progress(self, order_id: str) -> PaymentProgress:
        progress = self._progress.get(order_id) or self._finished.get(order_id)
        if progress is None:
            raise OrderNotFoundError(order_id)
        return progress

    def _retire(self, order_id: str) -> None:
        """Move a completed or cancelled order out of the active tables."""
        progress = self._progress.pop(order_id, None)
        if progress is not None:
            self._finished[order_id] = progress
            while len(self._finished) > self._finished_retention:
                evicted, _ = self._finished.popitem(last=False)
                logger.debug("finished_order_evicted", extra={"order_id": evicted})
        self._allocator.forget(order_id)

    def active_order_count(self) -> int:
        return len(self._progress)

    def _check_floor(self, order: Order) -> None:
        check = self._allocator.fee_schedule.floor_price_check(
            order.produce_type, order.price_per_unit
        )
        if not check.ok:
            logger.info(
                "floor_price_refused",
                extra={
                    "order_id": order.id,
                    "produce_type": order.produce_type,
                    "offered_price": str(order.price_per_unit.amount),
                    "floor_price": str(check.floor_price),
                },
            )
            raise FloorPriceViolationError(
                order.produce_type, str(order.price_per_unit.amount), str(check.floor_price)
            )

    def _disburse(self, progress: PaymentProgress, kind: DisbursementKind, amount: Money) -> str:
        if kind in progress.disbursed:
            return progress.disbursed[kind]
        try:
            reference = self._disbursements.request_disbursement(progress.order_id, kind, amount)
        except AgriKernelError:
            raise
        except Exception as e:
            logger.error(
                "disbursement_failed",
                extra={"kind": kind.value, "amount": str(amount.amount), "error": str(e)},
            )
            raise DisbursementFailedError(progress.order_id, kind.value, str(amount), str(e)) from e
        progress.disbursed[kind] = reference
        return reference

    def _post_savings(self, order_id: str, payout: MemberPayout) -> SavingsTransaction:
        try:
            return self._savings.deposit(payout.member_id, order_id, payout.quantity)
        except DuplicateDepositError as e:
            existing = e.existing_transaction
            if existing is not None and existing.amount == payout.savings_withheld:
                logger.info(
                    "savings_deposit_already_posted",
                    extra={"member_id": payout.member_id, "sequence": existing.sequence},
                )
                return existing
            raise
