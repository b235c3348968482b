"""
Ledger Computation Engine

Pure functions over the record models. Every operation takes the current
records as arguments and returns new or updated records; nothing here
reads or writes storage.
"""

from billcycle.engine.balances import (
    buffer,
    cash_flow_summary,
    current_liquid_balance,
    projected_end_of_month,
)
from billcycle.engine.budgets import find_active_budget, process_rollover, with_spending
from billcycle.engine.classifier import bucket, group_by_bucket, is_parent, viewable
from billcycle.engine.cycles import (
    due_date,
    payment_month,
    resolve_statement_period,
    statement_period,
)
from billcycle.engine.errors import (
    InvalidCycleDayError,
    InvalidPaymentError,
    LedgerError,
    LoanPlanError,
    ProtectedCategoryError,
)
from billcycle.engine.loans import (
    calculate_affordability,
    calculate_loan_details,
    recompute_loan_plan,
    update_loan_plan,
)
from billcycle.engine.statements import (
    bill_totals,
    card_deletion,
    record_payment,
    toggle_paid,
    update_statement,
)
from billcycle.engine.terms import (
    build_installment_plan,
    current_term,
    installment_progress,
    installment_status,
)

__all__ = [
    # Errors
    "InvalidCycleDayError",
    "InvalidPaymentError",
    "LedgerError",
    "LoanPlanError",
    "ProtectedCategoryError",
    # Cycles
    "due_date",
    "payment_month",
    "resolve_statement_period",
    "statement_period",
    # Terms
    "build_installment_plan",
    "current_term",
    "installment_progress",
    "installment_status",
    # Classification
    "bucket",
    "group_by_bucket",
    "is_parent",
    "viewable",
    # Statements
    "bill_totals",
    "card_deletion",
    "record_payment",
    "toggle_paid",
    "update_statement",
    # Balances
    "buffer",
    "cash_flow_summary",
    "current_liquid_balance",
    "projected_end_of_month",
    # Budgets
    "find_active_budget",
    "process_rollover",
    "with_spending",
    # Loans
    "calculate_affordability",
    "calculate_loan_details",
    "recompute_loan_plan",
    "update_loan_plan",
]
