"""
Core Record Models for Billcycle

These models define the strict schemas for every record the engine reads
and returns. They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Round-trip field-for-field with the stored document shapes
4. Stay free of any persistence concern

DESIGN DECISION: Attributes are snake_case in Python, but every model
serialises with camelCase aliases (cardId, monthStr, isPaid...) because
that is the shape the storage collaborators already hold. Load with
``Model.model_validate(doc)``, dump with ``model_dump(by_alias=True,
mode="json")``. Historical field names (cutoffDay, settlementDay, dueDay)
are NOT accepted here; they are mapped by the normalizer at the
persistence boundary.

Money is always Decimal. Dates are calendar days (datetime.date) with no
time component and no timezone.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)
from pydantic.alias_generators import to_camel


MONTH_PATTERN = r"^\d{4}-(0[1-9]|1[0-2])$"


def new_id() -> str:
    """Generate a record identifier."""
    return str(uuid4())


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionType(str, Enum):
    """Direction of an economic event."""
    INCOME = "income"
    EXPENSE = "expense"


class PaymentMethod(str, Enum):
    """How a transaction was paid."""
    CASH = "cash"
    CARD = "card"
    BANK_TRANSFER = "bank_transfer"
    OTHER = "other"


class RecurringType(str, Enum):
    """
    Kind of recurring rule.

    INSTALLMENT rules carry principal and term information;
    SUBSCRIPTION and CUSTOM rules only carry a frequency and next date.
    """
    INSTALLMENT = "installment"
    SUBSCRIPTION = "subscription"
    CUSTOM = "custom"


class Frequency(str, Enum):
    """Recurrence frequency."""
    MONTHLY = "monthly"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class TermEntryMode(str, Enum):
    """
    How an installment's current term is maintained.

    AUTO terms are recomputed from the start date on every read.
    MANUAL terms are whatever the user last typed in.
    """
    AUTO = "auto"
    MANUAL = "manual"


class BudgetPeriod(str, Enum):
    """Length of a budget period."""
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class LoanStatus(str, Enum):
    """Lifecycle of a loan plan."""
    PLANNING = "planning"
    ACTIVE = "active"
    ARCHIVED = "archived"


class CategoryType(str, Enum):
    """Which transaction types a category applies to."""
    INCOME = "income"
    EXPENSE = "expense"
    BOTH = "both"


# =============================================================================
# BASE
# =============================================================================

class LedgerRecord(BaseModel):
    """Common configuration for every stored record."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


# =============================================================================
# PROFILES, CARDS AND ACCOUNTS
# =============================================================================

class Profile(LedgerRecord):
    """A tenant-like partition. Every other record belongs to exactly one."""

    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=100)


class Card(LedgerRecord):
    """
    A revolving-credit instrument.

    ``cycle_close_day`` is the day of month the billing cycle closes
    (historically "cutoff" or "settlement" day). ``payment_due_day`` is the
    day of month the closed cycle must be paid. Both are clamped to the
    last valid day of shorter months by the cycle resolver, never here.
    """

    id: str = Field(default_factory=new_id)
    profile_id: str
    bank_name: str = Field(default="", max_length=100)
    card_name: str = Field(default="", max_length=100)
    cycle_close_day: int = Field(
        ...,
        ge=1,
        le=31,
        description="Day of month the billing cycle closes"
    )
    payment_due_day: int = Field(
        ...,
        ge=1,
        le=31,
        description="Day of month payment for a closed cycle is due"
    )
    color: str = Field(default="#64748b", description="Display only")
    is_cash_card: bool = False


class BankAccount(LedgerRecord):
    """A tracked cash account."""

    id: str = Field(default_factory=new_id)
    profile_id: str
    name: str = Field(default="", max_length=100)
    initial_balance: Decimal = Field(
        default=Decimal("0"),
        description="Balance used when no monthly snapshot was stored"
    )


class BankBalance(LedgerRecord):
    """
    Point-in-time balance snapshot.

    One row per (profile, month), or per (profile, month, account) when
    per-account tracking is enabled.
    """

    id: str = Field(default_factory=new_id)
    profile_id: str
    month_str: str = Field(..., pattern=MONTH_PATTERN)
    account_id: Optional[str] = None
    balance: Decimal = Decimal("0")


class Category(LedgerRecord):
    """Transaction category."""

    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=100)
    icon: Optional[str] = None
    color: Optional[str] = None
    parent_id: Optional[str] = None
    type: CategoryType = CategoryType.BOTH


# =============================================================================
# TRANSACTIONS
# =============================================================================

class RecurringRule(LedgerRecord):
    """
    Recurrence description attached to a recurring transaction.

    Installment rules carry the obligation's principal and terms and an
    ``installment_group_id`` shared by every materialized monthly entry.
    Subscription/custom rules carry a frequency and next occurrence.
    """

    type: RecurringType
    frequency: Frequency = Frequency.MONTHLY

    # Installment-specific
    total_principal: Optional[Decimal] = Field(default=None, ge=0)
    current_term: Optional[int] = Field(default=None, ge=1)
    total_terms: Optional[int] = Field(default=None, ge=1)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    interest_rate: Optional[Decimal] = Field(default=None, ge=0)
    installment_group_id: Optional[str] = None
    term_entry_mode: TermEntryMode = TermEntryMode.AUTO

    # General recurring
    next_date: Optional[date] = None
    last_date: Optional[date] = None


class Transaction(LedgerRecord):
    """
    An economic event.

    A transaction is a *parent* only when it is a recurring installment,
    is not virtual, has no parent pointer and is explicitly marked
    ``is_budget_impacting=False``. Parents hold the total principal for
    net-worth tracking; every other record is a viewable ledger entry.
    """

    id: str = Field(default_factory=new_id)
    profile_id: str
    type: TransactionType
    amount: Decimal = Field(..., ge=0)
    date: date
    category_id: str = "uncategorized"
    subcategory_id: Optional[str] = None
    description: str = Field(default="", max_length=500)
    notes: Optional[str] = None
    payment_method: PaymentMethod = PaymentMethod.CASH
    card_id: Optional[str] = None

    # Cash movement
    bank_account_id: Optional[str] = None
    to_bank_account_id: Optional[str] = None
    transfer_fee: Decimal = Field(default=Decimal("0"), ge=0)

    # Recurrence
    is_recurring: bool = False
    recurring_rule: Optional[RecurringRule] = None
    parent_transaction_id: Optional[str] = None
    is_virtual: bool = False
    is_budget_impacting: bool = True
    is_estimate: bool = False

    # Someone else covered this charge
    paid_by_other: bool = False
    paid_by_other_profile_id: Optional[str] = None
    paid_by_other_name: Optional[str] = None

    # Statement-paid marking for card charges
    is_paid: bool = False
    paid_date: Optional[date] = None

    tags: list[str] = Field(default_factory=list)

    @model_validator(mode='after')
    def drop_rule_when_not_recurring(self) -> 'Transaction':
        """A non-recurring transaction never carries a recurring rule."""
        if not self.is_recurring and self.recurring_rule is not None:
            self.recurring_rule = None
        return self


# =============================================================================
# STATEMENTS
# =============================================================================

class Payment(LedgerRecord):
    """A discrete payment applied to a statement."""

    amount: Decimal = Field(..., ge=0)
    date: date


class Statement(LedgerRecord):
    """
    One ledger row per (card, calendar month).

    ``month_str`` is the payment month the row settles into. The manual
    overrides (adjusted amount, custom dates, custom close day) always win
    over computed values.
    """

    id: str = Field(default_factory=new_id)
    card_id: str
    month_str: str = Field(..., pattern=MONTH_PATTERN)
    amount: Decimal = Field(default=Decimal("0"), ge=0)
    is_paid: bool = False
    paid_amount: Decimal = Field(default=Decimal("0"), ge=0)
    payments: list[Payment] = Field(default_factory=list)

    # Manual overrides
    adjusted_amount: Optional[Decimal] = Field(default=None, ge=0)
    custom_due_date: Optional[date] = None
    custom_close_date: Optional[date] = None
    custom_payment_date: Optional[date] = None
    custom_cycle_close_day: Optional[int] = Field(default=None, ge=1, le=31)

    is_unbilled: Optional[bool] = None
    is_estimated: bool = False
    notes: Optional[str] = Field(default=None, max_length=1000)

    @property
    def effective_amount(self) -> Decimal:
        """The manually adjusted amount when present, else the computed one."""
        return self.adjusted_amount if self.adjusted_amount is not None else self.amount

    @property
    def outstanding_amount(self) -> Decimal:
        """What is still owed on this statement."""
        if self.is_paid:
            return Decimal("0")
        return max(Decimal("0"), self.effective_amount - self.paid_amount)


# =============================================================================
# BUDGETS
# =============================================================================

class CategoryAllocation(LedgerRecord):
    """Amount allocated to one category within a budget."""

    category_id: str
    allocated_amount: Decimal = Field(..., ge=0)


class Budget(LedgerRecord):
    """
    Per-profile budget for one period length.

    ``applied_rollovers`` records which closing periods have already been
    rolled into this budget so the same remainder is never added twice.
    """

    id: str = Field(default_factory=new_id)
    profile_id: str
    name: str = Field(default="Budget", max_length=100)
    period: BudgetPeriod = BudgetPeriod.MONTHLY
    start_date: date
    end_date: Optional[date] = None
    allocations: list[CategoryAllocation] = Field(default_factory=list)
    rollover_unspent: bool = False
    alert_threshold: int = Field(default=80, ge=0, le=100)
    applied_rollovers: list[str] = Field(default_factory=list)

    @model_validator(mode='after')
    def validate_dates(self) -> 'Budget':
        """End date cannot precede start date."""
        if self.end_date and self.end_date < self.start_date:
            raise ValueError("Budget end date cannot be before start date")
        return self


# =============================================================================
# LOAN PLANS
# =============================================================================

class BudgetImpact(LedgerRecord):
    """How a loan payment would sit against observed income and spend."""

    current_monthly_income: Decimal = Decimal("0")
    current_monthly_expenses: Decimal = Decimal("0")
    current_monthly_debt: Decimal = Decimal("0")
    new_monthly_payment: Decimal = Decimal("0")
    new_total_monthly_debt: Decimal = Decimal("0")
    new_debt_to_income_ratio: Decimal = Decimal("0")
    remaining_after_loan: Decimal = Decimal("0")
    percentage_of_income_used: Decimal = Decimal("0")
    recommendations: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class LoanPlan(LedgerRecord):
    """
    A prospective or active financing scenario.

    The fields after ``status`` are cached derived values. They are only
    ever produced by ``billcycle.engine.loans.recompute_loan_plan`` which
    returns a new record; nothing invalidates them lazily.
    """

    id: str = Field(default_factory=new_id)
    profile_id: str
    name: str = Field(..., min_length=1, max_length=200)
    total_amount: Decimal = Field(..., ge=0)
    down_payment: Decimal = Field(default=Decimal("0"), ge=0)
    loan_amount: Optional[Decimal] = Field(default=None, ge=0)
    interest_rate: Decimal = Field(default=Decimal("0"), ge=0, description="Annual percentage rate")
    term_months: int = Field(..., ge=1, le=600)

    # Ancillary monthly costs
    property_tax: Decimal = Field(default=Decimal("0"), ge=0)
    insurance: Decimal = Field(default=Decimal("0"), ge=0)
    pmi: Decimal = Field(default=Decimal("0"), ge=0)
    hoa: Decimal = Field(default=Decimal("0"), ge=0)
    maintenance: Decimal = Field(default=Decimal("0"), ge=0)

    status: LoanStatus = LoanStatus.PLANNING

    # Cached derived values
    monthly_payment: Decimal = Decimal("0")
    total_interest: Decimal = Decimal("0")
    total_cost: Decimal = Decimal("0")
    affordability_score: int = Field(default=0, ge=0, le=100)
    monthly_income_required: Decimal = Decimal("0")
    debt_to_income_ratio: Decimal = Decimal("0")
    impact_on_budget: Optional[BudgetImpact] = None

    @model_validator(mode='after')
    def derive_loan_amount(self) -> 'LoanPlan':
        """Financed amount defaults to price minus down payment."""
        if self.down_payment > self.total_amount:
            raise ValueError("Down payment cannot exceed total amount")
        if self.loan_amount is None:
            self.loan_amount = self.total_amount - self.down_payment
        return self
