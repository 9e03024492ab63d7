"""
agri_services -- Package init and public API.

Responsibility:
    Stateful orchestration services that compose the pure calculation
    engines (agri_engines/) with repositories, locks, the clock and the
    external collaborators.  This is the only layer that holds state,
    takes locks or reads wall-clock time.

Architecture position:
    Services -- stateful orchestration over engines + kernel.

    Dependency direction (enforced by tests/architecture/test_layer_boundary.py):
        agri_services/ -> agri_engines/  (allowed)
        agri_services/ -> agri_kernel/   (allowed)
        agri_services/ -> agri_config/   (allowed)
        agri_engines/  -> agri_services/ (FORBIDDEN)
        agri_kernel/   -> agri_services/ (FORBIDDEN)

Invariants enforced:
    - All writes touching one order run under that order's lock; all
      savings postings for one member run under that member's lock.
    - No service self-constructs its repositories or collaborators.
"""

from agri_kernel.logging_config import get_logger

logger = get_logger("services")

from agri_services.collaborators import (
    DisbursementGateway,
    DisbursementKind,
    FinanceApproval,
    FinancePartner,
)
from agri_services.contribution_ledger import ContributionLedger
from agri_services.locks import KeyedLocks
from agri_services.payment_allocator import AllocationSnapshot, PaymentAllocatorService
from agri_services.payment_workflow import (
    LegSettlement,
    OrderPaymentWorkflow,
    PaymentStep,
)
from agri_services.report_export import CSV_COLUMNS, write_csv
from agri_services.savings_accrual import SavingsAccrual, SavingsStatement

__all__ = [
    "AllocationSnapshot",
    "CSV_COLUMNS",
    "ContributionLedger",
    "DisbursementGateway",
    "DisbursementKind",
    "FinanceApproval",
    "FinancePartner",
    "KeyedLocks",
    "LegSettlement",
    "OrderPaymentWorkflow",
    "PaymentAllocatorService",
    "PaymentStep",
    "SavingsAccrual",
    "SavingsStatement",
    "write_csv",
]
