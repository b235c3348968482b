"""
Derived View Models

Everything the engine computes but never stores: statement periods,
bucketed transaction lists, installment progress, cash positions, budget
utilisation and loan figures.

DESIGN DECISION: Views are immutable value objects. They are rebuilt from
the stored records on every read, so they never carry ids of their own
and never go stale.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from billcycle.models.records import Budget, BudgetImpact, Transaction


class FrozenView(BaseModel):
    """Base for computed values."""

    model_config = ConfigDict(frozen=True)


class TransactionBucket(str, Enum):
    """Mutually exclusive classification of a transaction."""
    DIRECT = "direct"
    RECURRING = "recurring"
    INSTALLMENT = "installment"


# =============================================================================
# CYCLES AND TERMS
# =============================================================================

class StatementPeriod(FrozenView):
    """
    Inclusive calendar-day range of charges billed on one statement.

    ``month_str`` is the payment month the period settles into.
    """

    start: date
    end: date
    month_str: str

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end


class TransactionBuckets(FrozenView):
    """Viewable transactions split by bucket."""

    direct: list[Transaction] = Field(default_factory=list)
    recurring: list[Transaction] = Field(default_factory=list)
    installment: list[Transaction] = Field(default_factory=list)


class InstallmentStatus(FrozenView):
    """
    Term position of an installment on a given day.

    ``current_term`` is NOT floored here: zero or negative means the
    installment has not started yet.
    """

    current_term: int
    total_terms: int
    monthly_amount: Decimal
    is_active: bool
    is_finished: bool
    is_upcoming: bool


class InstallmentProgress(FrozenView):
    """Progress of one installment group."""

    group_id: str
    description: str
    card_id: Optional[str] = None
    monthly_amount: Decimal
    total_principal: Decimal
    current_term: int
    total_terms: int
    progress_percentage: int = Field(ge=0, le=100)
    is_completed: bool
    remaining_balance: Decimal
    start_date: Optional[date] = None
    end_date: Optional[date] = None


# =============================================================================
# STATEMENTS AND BALANCES
# =============================================================================

class BillTotals(FrozenView):
    """Bill totals across all cards for one payment month."""

    month_str: str
    bill_total: Decimal
    paid_total: Decimal
    unpaid_total: Decimal


class CardDeletion(FrozenView):
    """Records that must be deleted together with a card."""

    card_id: str
    statement_ids: list[str] = Field(default_factory=list)
    transaction_ids: list[str] = Field(default_factory=list)


class BufferSummary(FrozenView):
    """Bank balance against unpaid statements for one month."""

    month_str: str
    bank_balance: Decimal
    unpaid_statements: Decimal
    buffer: Decimal
    is_danger_zone: bool


class CashPosition(FrozenView):
    """Current and projected cash for the rest of a month."""

    as_of: date
    current_liquid_balance: Decimal
    projected_income: Decimal
    committed_expenses: Decimal
    projected_end_of_month_balance: Decimal
    available_right_now: Decimal

    @property
    def is_positive(self) -> bool:
        return self.projected_end_of_month_balance >= 0


class CashFlowSummary(FrozenView):
    """Monthly cash in and out."""

    month_str: str
    income: Decimal
    expenses: Decimal

    @property
    def net(self) -> Decimal:
        return self.income - self.expenses


# =============================================================================
# BUDGETS
# =============================================================================

class AllocationStatus(FrozenView):
    """Spending against one category allocation."""

    category_id: str
    category_label: str
    allocated: Decimal
    spent: Decimal
    remaining: Decimal
    percentage: int = Field(ge=0, le=100)
    is_over_threshold: bool


class BudgetWithSpending(FrozenView):
    """A budget joined with the spending in its current window."""

    budget: Budget
    window_start: date
    window_end: date
    allocations: list[AllocationStatus] = Field(default_factory=list)
    total_allocated: Decimal
    total_spent: Decimal
    total_remaining: Decimal
    percentage: int = Field(ge=0, le=100)
    alerts: list[str] = Field(default_factory=list)


class RolloverResult(FrozenView):
    """
    Outcome of rolling a budget's unspent remainder forward.

    ``budget`` is the next-period budget to persist (new or updated), or
    None when nothing was rolled.
    """

    applied: bool
    created: bool = False
    closing_key: Optional[str] = None
    budget: Optional[Budget] = None
    carried: dict[str, Decimal] = Field(default_factory=dict)
    reason: Optional[str] = None


# =============================================================================
# LOANS
# =============================================================================

class LoanDetails(FrozenView):
    """Payment figures for a loan plan."""

    principal: Decimal
    monthly_principal_and_interest: Decimal
    monthly_ancillary: Decimal
    monthly_payment: Decimal
    total_interest: Decimal
    total_cost: Decimal


class AffordabilityResult(FrozenView):
    """Heuristic affordability assessment for a monthly payment."""

    score: int = Field(ge=0, le=100)
    monthly_income_required: Decimal
    debt_to_income_ratio: Decimal
    impact: BudgetImpact


class AmortizationRow(FrozenView):
    """One month of an amortization schedule."""

    term: int
    payment: Decimal
    principal: Decimal
    interest: Decimal
    balance: Decimal


# =============================================================================
# NORMALIZATION
# =============================================================================

class ValidationIssue(BaseModel):
    """A single issue found while loading a stored document."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'legacy_field', 'invalid_date', 'invalid_amount')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )


class ValidationResult(BaseModel):
    """Outcome of normalizing one stored document."""

    record_type: str
    record_id: Optional[str] = None
    is_valid: bool
    issues: list[ValidationIssue] = Field(default_factory=list)
    normalized: dict = Field(
        default_factory=dict,
        description="Document with canonical field names"
    )

    @property
    def has_errors(self) -> bool:
        return any(i.severity == "error" for i in self.issues)

    @property
    def error_count(self) -> int:
        return sum(1 for i in self.issues if i.severity == "error")

    @property
    def warnings(self) -> list[str]:
        return [i.message for i in self.issues if i.severity == "warning"]
