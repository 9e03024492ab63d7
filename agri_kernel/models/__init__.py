"""ORM models for the payout kernel."""

from agri_kernel.models.contribution import ContributionRecord, GradingDecisionRecord
from agri_kernel.models.savings import SavingsAccountRecord, SavingsTransactionRecord

__all__ = [
    "ContributionRecord",
    "GradingDecisionRecord",
    "SavingsAccountRecord",
    "SavingsTransactionRecord",
]
