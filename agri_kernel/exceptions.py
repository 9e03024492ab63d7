"""
Typed Exception Hierarchy for the produce payout kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (API handlers, the payment wizard, scheduled jobs) must decide how
to react to a failure without parsing message strings. Every error here:
  1. Has a TYPED exception class (catch by type, not message)
  2. Has a CODE attribute (machine-readable, API-safe)
  3. Carries structured DATA as attributes

Example:
    try:
        accrual.withdraw(member_id, Money.of("500", "KES"))
    except InsufficientFundsError as e:
        api_response(code=e.code, available=e.available)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    AgriKernelError (base)
    |
    +-- ValidationError              caller input, never retried, never a fault
    |   +-- InvalidGradingError
    |   +-- InvalidQuantityError
    |   +-- InvalidAmountError
    |   +-- UnknownTierError
    |   +-- InvalidOrderError
    |   +-- InvalidConfigurationError
    |
    +-- NotFoundError
    |   +-- ContributionNotFoundError
    |   +-- OrderNotFoundError
    |   +-- MemberNotFoundError
    |   +-- SavingsAccountNotFoundError
    |
    +-- BusinessRuleError            refusal with explanation
    |   +-- InsufficientFundsError
    |   +-- InactiveMemberError
    |   +-- FloorPriceViolationError
    |   +-- NegativeNetAmountError
    |   +-- InvalidOrderTransitionError
    |   +-- WorkflowStepError
    |
    +-- IdempotencyError
    |   +-- DuplicateDepositError
    |
    +-- CollaboratorError            external call failed, nothing applied
    |   +-- DisbursementFailedError
    |   +-- FinancePartnerError
    |
    +-- ConcurrencyError
        +-- StaleLedgerError

===============================================================================
HANDLING PATTERNS
===============================================================================

1. IDEMPOTENT DEPOSIT RETRY (identical prior deposit is success):

    try:
        tx = accrual.deposit(member_id, order_id, kg)
    except DuplicateDepositError as e:
        if e.existing_transaction.amount == expected_amount:
            tx = e.existing_transaction
        else:
            raise

2. COLLABORATOR FAILURES (retry the whole step from the top):

    except DisbursementFailedError as e:
        show_retry(step=e.order_id)
"""

from __future__ import annotations

from typing import Any


class AgriKernelError(Exception):
    """
    Base exception for all kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "AGRI_KERNEL_ERROR"


# Validation errors


class ValidationError(AgriKernelError):
    """Base exception for caller-input problems."""

    code: str = "VALIDATION_ERROR"


class InvalidGradingError(ValidationError):
    """Grading status and accepted quantity do not satisfy the grading rules."""

    code: str = "INVALID_GRADING"

    def __init__(self, contribution_id: str, status: str, reason: str):
        self.contribution_id = contribution_id
        self.status = status
        self.reason = reason
        super().__init__(
            f"Invalid grading for contribution {contribution_id} "
            f"as {status}: {reason}"
        )


class InvalidQuantityError(ValidationError):
    """Quantity is zero, negative, or in the wrong unit."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, quantity: str, reason: str):
        self.quantity = quantity
        self.reason = reason
        super().__init__(f"Invalid quantity {quantity}: {reason}")


class InvalidAmountError(ValidationError):
    """Monetary amount is not acceptable for the operation."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, amount: str, reason: str):
        self.amount = amount
        self.reason = reason
        super().__init__(f"Invalid amount {amount}: {reason}")


class UnknownTierError(ValidationError):
    """Truck/capacity tier is not in the tier table."""

    code: str = "UNKNOWN_TIER"

    def __init__(self, tier: str):
        self.tier = tier
        super().__init__(f"Unknown truck tier: {tier}")


class InvalidOrderError(ValidationError):
    """Order data is unusable (non-positive quantity, bad price, ...)."""

    code: str = "INVALID_ORDER"

    def __init__(self, order_id: str | None, reason: str):
        self.order_id = order_id
        self.reason = reason
        super().__init__(f"Invalid order {order_id}: {reason}")


class InvalidConfigurationError(ValidationError):
    """Payout configuration failed validation."""

    code: str = "INVALID_CONFIGURATION"

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__(
            f"Configuration invalid ({len(errors)} error(s)): " + "; ".join(errors)
        )


# Lookup errors


class NotFoundError(AgriKernelError):
    """Base exception for missing records."""

    code: str = "NOT_FOUND"


class ContributionNotFoundError(NotFoundError):
    """Contribution with given ID was not found."""

    code: str = "CONTRIBUTION_NOT_FOUND"

    def __init__(self, contribution_id: str):
        self.contribution_id = contribution_id
        super().__init__(f"Contribution not found: {contribution_id}")


class OrderNotFoundError(NotFoundError):
    """Order with given ID was not found."""

    code: str = "ORDER_NOT_FOUND"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class MemberNotFoundError(NotFoundError):
    """Member is not in the group's member directory."""

    code: str = "MEMBER_NOT_FOUND"

    def __init__(self, member_id: str):
        self.member_id = member_id
        super().__init__(f"Member not found: {member_id}")


class SavingsAccountNotFoundError(NotFoundError):
    """Member has no savings account yet."""

    code: str = "SAVINGS_ACCOUNT_NOT_FOUND"

    def __init__(self, member_id: str):
        self.member_id = member_id
        super().__init__(f"Savings account not found for member {member_id}")


# Business-rule violations


class BusinessRuleError(AgriKernelError):
    """Base exception for refusals the caller may present to a user."""

    code: str = "BUSINESS_RULE_VIOLATION"


class InsufficientFundsError(BusinessRuleError):
    """Withdrawal exceeds the amount available for withdrawal."""

    code: str = "INSUFFICIENT_FUNDS"

    def __init__(self, member_id: str, requested: str, available: str):
        self.member_id = member_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient savings for member {member_id}: "
            f"requested {requested}, available {available}"
        )


class InactiveMemberError(BusinessRuleError):
    """Inactive members cannot deliver produce."""

    code: str = "MEMBER_INACTIVE"

    def __init__(self, member_id: str):
        self.member_id = member_id
        super().__init__(f"Member {member_id} is inactive")


class FloorPriceViolationError(BusinessRuleError):
    """Offered price is below the produce floor price."""

    code: str = "FLOOR_PRICE_VIOLATION"

    def __init__(self, produce_type: str, offered_price: str, floor_price: str):
        self.produce_type = produce_type
        self.offered_price = offered_price
        self.floor_price = floor_price
        super().__init__(
            f"Offered price {offered_price} for {produce_type} is below "
            f"the floor price {floor_price}"
        )


class NegativeNetAmountError(BusinessRuleError):
    """Deductions would exceed the amount they are taken from."""

    code: str = "NEGATIVE_NET_AMOUNT"

    def __init__(self, base_amount: str, total_deductions: str):
        self.base_amount = base_amount
        self.total_deductions = total_deductions
        super().__init__(
            f"Deductions {total_deductions} exceed base amount {base_amount}"
        )


class InvalidOrderTransitionError(BusinessRuleError):
    """Order status transition is not allowed."""

    code: str = "INVALID_ORDER_TRANSITION"

    def __init__(self, order_id: str, from_status: str, to_status: str):
        self.order_id = order_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Order {order_id} cannot move from {from_status} to {to_status}"
        )


class WorkflowStepError(BusinessRuleError):
    """Payment workflow step invoked out of order."""

    code: str = "WORKFLOW_STEP_OUT_OF_ORDER"

    def __init__(self, order_id: str, step: str, current_step: str):
        self.order_id = order_id
        self.step = step
        self.current_step = current_step
        super().__init__(
            f"Cannot run step {step} for order {order_id}; "
            f"workflow is at {current_step}"
        )


# Idempotency conflicts


class IdempotencyError(AgriKernelError):
    """Base exception for repeated operations."""

    code: str = "IDEMPOTENCY_CONFLICT"


class DuplicateDepositError(IdempotencyError):
    """
    A savings deposit for this (member, order) pair already exists.

    Recoverable: if the existing transaction carries the amount the caller meant
    to deposit, the prior deposit can be treated as success.
    """

    code: str = "DUPLICATE_DEPOSIT"

    def __init__(
        self,
        member_id: str,
        order_id: str,
        existing_amount: str,
        existing_transaction: Any = None,
    ):
        self.member_id = member_id
        self.order_id = order_id
        self.existing_amount = existing_amount
        self.existing_transaction = existing_transaction
        super().__init__(
            f"Savings deposit for member {member_id} on order {order_id} "
            f"already posted ({existing_amount})"
        )


# External collaborator failures


class CollaboratorError(AgriKernelError):
    """Base exception for failed calls to external services."""

    code: str = "COLLABORATOR_FAILURE"


class DisbursementFailedError(CollaboratorError):
    """Disbursement gateway refused or failed the payment request."""

    code: str = "DISBURSEMENT_FAILED"

    def __init__(self, order_id: str, kind: str, amount: str, reason: str):
        self.order_id = order_id
        self.kind = kind
        self.amount = amount
        self.reason = reason
        super().__init__(
            f"Disbursement of {kind} ({amount}) for order {order_id} failed: {reason}"
        )


class FinancePartnerError(CollaboratorError):
    """Finance partner submission failed."""

    code: str = "FINANCE_PARTNER_FAILURE"

    def __init__(self, order_id: str, reason: str):
        self.order_id = order_id
        self.reason = reason
        super().__init__(f"Finance partner submission for order {order_id} failed: {reason}")


# Concurrency


class ConcurrencyError(AgriKernelError):
    """Base exception for concurrent-modification conflicts."""

    code: str = "CONCURRENCY_ERROR"


class StaleLedgerError(ConcurrencyError):
    """
    A savings transaction was appended out of order.

    The ledger is strictly ordered; a writer that read an older balance
    must re-read and retry.
    """

    code: str = "STALE_LEDGER"

    def __init__(self, member_id: str, expected_sequence: int, received_sequence: int):
        self.member_id = member_id
        self.expected_sequence = expected_sequence
        self.received_sequence = received_sequence
        super().__init__(
            f"Savings ledger for member {member_id} expected sequence "
            f"{expected_sequence}, received {received_sequence}"
        )
