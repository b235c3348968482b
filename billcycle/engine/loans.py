"""
Loan Affordability Analyzer

Amortizes a loan plan and scores how affordable its monthly payment is
against the profile's recent income and spending.

DESIGN DECISION: The cached figures on a LoanPlan (monthly payment,
interest, score...) are only ever written by ``recompute_loan_plan``,
which returns a new record. ``update_loan_plan`` recomputes whenever any
input field changes, so a stored plan can never carry figures computed
from different inputs.

The score is an advisory heuristic. The penalty tiers below are fixed
values and are intentionally not exposed as configuration.
"""

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Iterable, Mapping, Optional

import structlog

from billcycle.engine.classifier import viewable
from billcycle.engine.dates import (
    ZERO,
    add_months,
    month_str,
    round_currency,
    start_of_month,
)
from billcycle.engine.errors import LoanPlanError
from billcycle.engine.terms import installment_end_date, installment_status
from billcycle.models.records import (
    BudgetImpact,
    Frequency,
    LoanPlan,
    LoanStatus,
    PaymentMethod,
    RecurringRule,
    RecurringType,
    Transaction,
    TransactionType,
)
from billcycle.models.views import AffordabilityResult, AmortizationRow, LoanDetails

logger = structlog.get_logger(__name__)

TRAILING_MONTHS = 6
INCOME_MULTIPLE = 3

# (threshold, penalty), checked in order
DTI_PENALTIES = ((43, 40), (36, 30), (28, 15), (20, 5))
RESIDUAL_PENALTIES = ((0, 20), (500, 15), (1000, 10), (2000, 5))
PAYMENT_SHARE_PENALTIES = ((50, 20), (40, 15), (30, 10), (20, 5))

LOAN_INPUT_FIELDS = frozenset({
    "total_amount",
    "down_payment",
    "loan_amount",
    "interest_rate",
    "term_months",
    "property_tax",
    "insurance",
    "pmi",
    "hoa",
    "maintenance",
})


# =============================================================================
# AMORTIZATION
# =============================================================================

def _monthly_rate(annual_rate) -> Decimal:
    return Decimal(str(annual_rate)) / 100 / 12


def _raw_payment(principal: Decimal, annual_rate, months: int) -> Decimal:
    if months < 1:
        raise LoanPlanError(f"Loan term must be at least 1 month, got {months}")
    rate = _monthly_rate(annual_rate)
    if rate <= 0:
        return principal / months
    growth = (1 + rate) ** months
    return principal * rate * growth / (growth - 1)


def monthly_principal_and_interest(principal, annual_rate, months: int) -> Decimal:
    """
    Fixed-rate monthly payment, rounded to cents.

    A zero rate divides the principal evenly over the term.
    """
    return round_currency(_raw_payment(Decimal(str(principal)), annual_rate, months))


def ancillary_monthly_cost(plan: LoanPlan) -> Decimal:
    return plan.property_tax + plan.insurance + plan.pmi + plan.hoa + plan.maintenance


def calculate_loan_details(plan: LoanPlan) -> LoanDetails:
    """
    Monthly payment, total interest and total cost of a plan.

    Monthly payment = principal and interest + ancillary costs. Total
    interest covers principal and interest only; total cost adds the
    ancillary costs over the whole term.
    """
    principal = plan.loan_amount
    raw = _raw_payment(principal, plan.interest_rate, plan.term_months)
    ancillary = ancillary_monthly_cost(plan)
    interest = raw * plan.term_months - principal
    return LoanDetails(
        principal=round_currency(principal),
        monthly_principal_and_interest=round_currency(raw),
        monthly_ancillary=round_currency(ancillary),
        monthly_payment=round_currency(raw + ancillary),
        total_interest=round_currency(interest),
        total_cost=round_currency(principal + interest + ancillary * plan.term_months),
    )


def amortization_schedule(principal, annual_rate, months: int) -> list[AmortizationRow]:
    """Month-by-month split of each payment; the last row clears the balance."""
    balance = round_currency(principal)
    payment = monthly_principal_and_interest(balance, annual_rate, months)
    rate = _monthly_rate(annual_rate)

    rows = []
    for term in range(1, months + 1):
        interest = round_currency(balance * rate)
        if term == months:
            principal_part = balance
        else:
            principal_part = min(balance, payment - interest)
        balance = round_currency(balance - principal_part)
        rows.append(AmortizationRow(
            term=term,
            payment=round_currency(principal_part + interest),
            principal=round_currency(principal_part),
            interest=interest,
            balance=balance,
        ))
    return rows


# =============================================================================
# AFFORDABILITY
# =============================================================================

def _penalty(value: Decimal, tiers, above: bool) -> int:
    for threshold, points in tiers:
        if (value > threshold) if above else (value < threshold):
            return points
    return 0


def affordability_score(
    debt_to_income: Decimal,
    remaining_after_loan: Decimal,
    payment_share: Decimal,
) -> int:
    """100 minus the three penalty tiers, floored at 0."""
    score = 100
    score -= _penalty(debt_to_income, DTI_PENALTIES, above=True)
    score -= _penalty(remaining_after_loan, RESIDUAL_PENALTIES, above=False)
    score -= _penalty(payment_share, PAYMENT_SHARE_PENALTIES, above=True)
    return max(0, score)


def _monthly_average(totals: Mapping[str, Decimal]) -> Decimal:
    if not totals:
        return ZERO
    return sum(totals.values(), ZERO) / len(totals)


def current_installment_debt(
    transactions: Iterable[Transaction],
    profile_id: str,
    as_of: date,
) -> Decimal:
    """
    Monthly installment payments currently running for the profile.

    Each installment group counts once, with the amount of its term in the
    month of ``as_of`` (or its first term), and only while active.
    """
    groups: dict[str, list[Transaction]] = defaultdict(list)
    for txn in viewable(transactions):
        rule = txn.recurring_rule
        if (
            txn.profile_id != profile_id
            or txn.type != TransactionType.EXPENSE
            or txn.paid_by_other
            or not txn.is_recurring
            or rule is None
            or rule.type != RecurringType.INSTALLMENT
            or rule.frequency != Frequency.MONTHLY
        ):
            continue
        groups[rule.installment_group_id or txn.parent_transaction_id or txn.id].append(txn)

    debt = ZERO
    current = month_str(as_of)
    for members in groups.values():
        members.sort(key=lambda t: t.date)
        rule = members[0].recurring_rule
        if rule.start_date is not None and rule.total_terms:
            if not installment_status(rule.start_date, rule.total_terms, as_of).is_active:
                continue
        this_month = [t for t in members if month_str(t.date) == current]
        debt += (this_month or members)[0].amount
    return debt


def calculate_affordability(
    monthly_payment,
    transactions: Iterable[Transaction],
    profile_id: str,
    as_of: date,
) -> AffordabilityResult:
    """
    Score a monthly payment against trailing six-month history.

    Averages are taken over the months that actually had income (or
    expenses) since the first day of the month six months before ``as_of``.
    Required income is three times the payment.
    """
    payment = Decimal(str(monthly_payment))
    transactions = list(transactions)
    window_start = add_months(start_of_month(as_of), -TRAILING_MONTHS)

    income_by_month: dict[str, Decimal] = defaultdict(lambda: ZERO)
    expense_by_month: dict[str, Decimal] = defaultdict(lambda: ZERO)
    for txn in viewable(transactions):
        if txn.profile_id != profile_id or txn.paid_by_other:
            continue
        if not window_start <= txn.date <= as_of:
            continue
        bucket = income_by_month if txn.type == TransactionType.INCOME else expense_by_month
        bucket[month_str(txn.date)] += txn.amount

    income = _monthly_average(income_by_month)
    expenses = _monthly_average(expense_by_month)
    debt = current_installment_debt(transactions, profile_id, as_of)

    new_total_debt = debt + payment
    dti = new_total_debt / income * 100 if income > 0 else ZERO
    remaining = income - expenses - payment
    share = payment / income * 100 if income > 0 else ZERO
    score = affordability_score(dti, remaining, share)

    warnings = []
    if dti > 43:
        warnings.append("DTI exceeds typical lender limit (43%). Consider a lower loan amount.")
    elif dti > 36:
        warnings.append("DTI is high. Lenders may require additional documentation.")
    if remaining < 0:
        warnings.append("This loan would create negative cash flow. Not recommended.")
    elif remaining < 1000:
        warnings.append("Very little remaining income after loan payment. Consider reducing expenses.")

    if score >= 80:
        recommendations = ["Excellent affordability. You qualify for this loan."]
    elif score >= 60:
        recommendations = ["Good affordability. Minor improvements could help."]
    elif score >= 40:
        recommendations = [
            "Fair affordability. Significant planning required.",
            "Consider increasing down payment or reducing loan amount.",
        ]
    else:
        recommendations = [
            "Poor affordability. Not recommended at this time.",
            "Focus on reducing debt and increasing income first.",
        ]

    impact = BudgetImpact(
        current_monthly_income=round_currency(income),
        current_monthly_expenses=round_currency(expenses),
        current_monthly_debt=round_currency(debt),
        new_monthly_payment=round_currency(payment),
        new_total_monthly_debt=round_currency(new_total_debt),
        new_debt_to_income_ratio=round_currency(dti),
        remaining_after_loan=round_currency(remaining),
        percentage_of_income_used=round_currency(share),
        recommendations=recommendations,
        warnings=warnings,
    )
    return AffordabilityResult(
        score=score,
        monthly_income_required=round_currency(payment * INCOME_MULTIPLE),
        debt_to_income_ratio=round_currency(dti),
        impact=impact,
    )


# =============================================================================
# PLAN LIFECYCLE
# =============================================================================

def recompute_loan_plan(
    plan: LoanPlan,
    transactions: Iterable[Transaction],
    as_of: date,
) -> LoanPlan:
    """Return ``plan`` with every cached figure recomputed."""
    details = calculate_loan_details(plan)
    result = calculate_affordability(details.monthly_payment, transactions, plan.profile_id, as_of)
    logger.debug(
        "loan_plan_recomputed",
        plan_id=plan.id,
        monthly_payment=str(details.monthly_payment),
        score=result.score,
    )
    return plan.model_copy(update={
        "monthly_payment": details.monthly_payment,
        "total_interest": details.total_interest,
        "total_cost": details.total_cost,
        "affordability_score": result.score,
        "monthly_income_required": result.monthly_income_required,
        "debt_to_income_ratio": result.debt_to_income_ratio,
        "impact_on_budget": result.impact,
    })


def update_loan_plan(
    plan: LoanPlan,
    changes: Mapping,
    transactions: Iterable[Transaction],
    as_of: date,
) -> LoanPlan:
    """
    Apply ``changes`` and recompute if any input field moved.

    When the price or down payment changes without an explicit
    ``loan_amount``, the financed amount is re-derived from them.

    Raises:
        LoanPlanError: If the merged plan is invalid
    """
    merged = {**plan.model_dump(), **changes}
    if ({"total_amount", "down_payment"} & changes.keys()) and "loan_amount" not in changes:
        merged["loan_amount"] = None
    try:
        updated = LoanPlan.model_validate(merged)
    except ValueError as e:
        raise LoanPlanError(str(e)) from e

    if LOAN_INPUT_FIELDS & changes.keys():
        return recompute_loan_plan(updated, transactions, as_of)
    return updated


def loan_to_transaction(
    plan: LoanPlan,
    start_date: date,
    card_id: Optional[str] = None,
    category_id: str = "housing",
) -> tuple[Transaction, LoanPlan]:
    """
    Turn an approved plan into a recurring installment expense.

    Returns the new transaction and the plan marked active.
    """
    if plan.monthly_payment <= 0:
        raise LoanPlanError(f"Loan plan {plan.id} has no computed monthly payment")

    txn = Transaction(
        profile_id=plan.profile_id,
        type=TransactionType.EXPENSE,
        amount=plan.monthly_payment,
        date=start_date,
        category_id=category_id,
        description=f"{plan.name} Payment",
        notes=f"Loan: {plan.name}. Total: {plan.total_amount}, Down: {plan.down_payment}",
        payment_method=PaymentMethod.CARD if card_id else PaymentMethod.BANK_TRANSFER,
        card_id=card_id,
        is_recurring=True,
        recurring_rule=RecurringRule(
            type=RecurringType.INSTALLMENT,
            frequency=Frequency.MONTHLY,
            total_principal=plan.loan_amount,
            current_term=1,
            total_terms=plan.term_months,
            start_date=start_date,
            end_date=installment_end_date(start_date, plan.term_months),
            interest_rate=plan.interest_rate,
            installment_group_id=f"loan_{plan.id}",
        ),
    )
    return txn, plan.model_copy(update={"status": LoanStatus.ACTIVE})
