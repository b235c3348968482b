"""
Data Models Package

This package contains all Pydantic models used by billcycle.
Every stored record and every computed view conforms to these schemas.
"""

from billcycle.models.records import (
    BankAccount,
    BankBalance,
    Budget,
    BudgetImpact,
    BudgetPeriod,
    Card,
    Category,
    CategoryAllocation,
    CategoryType,
    Frequency,
    LedgerRecord,
    LoanPlan,
    LoanStatus,
    Payment,
    PaymentMethod,
    Profile,
    RecurringRule,
    RecurringType,
    Statement,
    TermEntryMode,
    Transaction,
    TransactionType,
)
from billcycle.models.views import (
    AffordabilityResult,
    AllocationStatus,
    AmortizationRow,
    BillTotals,
    BudgetWithSpending,
    BufferSummary,
    CardDeletion,
    CashFlowSummary,
    CashPosition,
    InstallmentProgress,
    InstallmentStatus,
    LoanDetails,
    RolloverResult,
    StatementPeriod,
    TransactionBucket,
    TransactionBuckets,
    ValidationIssue,
    ValidationResult,
)
from billcycle.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Stored records
    "BankAccount",
    "BankBalance",
    "Budget",
    "BudgetImpact",
    "BudgetPeriod",
    "Card",
    "Category",
    "CategoryAllocation",
    "CategoryType",
    "Frequency",
    "LedgerRecord",
    "LoanPlan",
    "LoanStatus",
    "Payment",
    "PaymentMethod",
    "Profile",
    "RecurringRule",
    "RecurringType",
    "Statement",
    "TermEntryMode",
    "Transaction",
    "TransactionType",
    # Computed views
    "AffordabilityResult",
    "AllocationStatus",
    "AmortizationRow",
    "BillTotals",
    "BudgetWithSpending",
    "BufferSummary",
    "CardDeletion",
    "CashFlowSummary",
    "CashPosition",
    "InstallmentProgress",
    "InstallmentStatus",
    "LoanDetails",
    "RolloverResult",
    "StatementPeriod",
    "TransactionBucket",
    "TransactionBuckets",
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
