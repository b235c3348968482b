"""
Budget Aggregator

Sums category spending inside a budget's period window, compares it with
the allocations and rolls unspent allocation forward.

DESIGN DECISION: Spending counts only what the profile actually bore. Charges
someone else paid, charges made on another profile's behalf and installment
parents (which hold a whole principal, not a month's spend) never reach a
budget.

Rollover is idempotent per closing period: the next budget remembers which
closing periods were rolled into it in ``applied_rollovers``, so running
the rollover twice never doubles the carried amount nor creates a second
next-period budget.
"""

from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Optional

import structlog
from dateutil.relativedelta import relativedelta

from billcycle.engine.categories import category_label
from billcycle.engine.classifier import is_covered_elsewhere, viewable
from billcycle.engine.dates import ZERO, round_currency, round_half_up
from billcycle.models.records import (
    Budget,
    BudgetPeriod,
    Category,
    CategoryAllocation,
    Transaction,
    TransactionType,
)
from billcycle.models.views import AllocationStatus, BudgetWithSpending, RolloverResult

logger = structlog.get_logger(__name__)

_PERIOD_MONTHS = {
    BudgetPeriod.MONTHLY: 1,
    BudgetPeriod.QUARTERLY: 3,
    BudgetPeriod.YEARLY: 12,
}


def period_window(period: BudgetPeriod, day: date) -> tuple[date, date]:
    """Inclusive calendar month, quarter or year containing ``day``."""
    if period == BudgetPeriod.MONTHLY:
        start = day.replace(day=1)
    elif period == BudgetPeriod.QUARTERLY:
        start = date(day.year, 3 * ((day.month - 1) // 3) + 1, 1)
    else:
        start = date(day.year, 1, 1)
    end = start + relativedelta(months=_PERIOD_MONTHS[period]) - timedelta(days=1)
    return start, end


def spending_by_category(
    budget: Budget,
    transactions: Iterable[Transaction],
    day: date,
) -> dict[str, Decimal]:
    """Expense totals per category for the budget's window containing ``day``."""
    start, end = period_window(budget.period, day)
    spending: dict[str, Decimal] = defaultdict(lambda: ZERO)
    for txn in viewable(transactions):
        if txn.profile_id != budget.profile_id or txn.type != TransactionType.EXPENSE:
            continue
        if not start <= txn.date <= end:
            continue
        if not txn.is_budget_impacting or is_covered_elsewhere(txn, budget.profile_id):
            continue
        spending[txn.category_id] += txn.amount
    return dict(spending)


def _percentage(spent: Decimal, allocated: Decimal) -> Decimal:
    if allocated <= 0:
        return ZERO
    return min(spent / allocated * 100, Decimal("100"))


def with_spending(
    budget: Budget,
    transactions: Iterable[Transaction],
    day: date,
    categories: Optional[Iterable[Category]] = None,
) -> BudgetWithSpending:
    """
    Join a budget with the spending of its current window.

    An alert is raised for each allocation whose percentage (capped at
    100) reaches the budget's alert threshold. Alerts name the category,
    or "Unknown Category" when it no longer exists; without a category
    list the raw id is used.
    """
    categories = list(categories) if categories is not None else None
    start, end = period_window(budget.period, day)
    spending = spending_by_category(budget, transactions, day)

    statuses = []
    alerts = []
    for alloc in budget.allocations:
        spent = spending.get(alloc.category_id, ZERO)
        pct = _percentage(spent, alloc.allocated_amount)
        label = (
            category_label(categories, alloc.category_id)
            if categories is not None else alloc.category_id
        )
        over = pct >= budget.alert_threshold
        if over:
            alerts.append(
                f"{label} is at {round_half_up(pct)}% of budget "
                f"({budget.alert_threshold}% threshold)"
            )
        statuses.append(AllocationStatus(
            category_id=alloc.category_id,
            category_label=label,
            allocated=alloc.allocated_amount,
            spent=round_currency(spent),
            remaining=round_currency(alloc.allocated_amount - spent),
            percentage=round_half_up(pct),
            is_over_threshold=over,
        ))

    total_allocated = sum((s.allocated for s in statuses), ZERO)
    total_spent = sum((s.spent for s in statuses), ZERO)
    return BudgetWithSpending(
        budget=budget,
        window_start=start,
        window_end=end,
        allocations=statuses,
        total_allocated=round_currency(total_allocated),
        total_spent=round_currency(total_spent),
        total_remaining=round_currency(total_allocated - total_spent),
        percentage=round_half_up(_percentage(total_spent, total_allocated)),
        alerts=alerts,
    )


def find_active_budget(
    budgets: Iterable[Budget],
    profile_id: str,
    period: BudgetPeriod,
    day: date,
    exclude_id: Optional[str] = None,
) -> Optional[Budget]:
    """
    The profile's budget of ``period`` covering ``day``.

    Open-ended budgets cover every day from their start. When several
    match, the one that started last wins.
    """
    matches = [
        b for b in budgets
        if b.profile_id == profile_id
        and b.period == period
        and b.id != exclude_id
        and b.start_date <= day
        and (b.end_date is None or day <= b.end_date)
    ]
    if not matches:
        return None
    return max(matches, key=lambda b: b.start_date)


def rollover_key(budget: Budget, window_start: date) -> str:
    """Identifier of one closing period of one budget."""
    return f"{budget.id}:{window_start.isoformat()}"


def process_rollover(
    budget: Budget,
    budgets: Iterable[Budget],
    transactions: Iterable[Transaction],
    from_date: date,
) -> RolloverResult:
    """
    Carry the unspent remainder of the window containing ``from_date``.

    Creates the next period's budget (allocations = original + remainder)
    or adds the remainder to the existing one. Returns the budget to
    persist in ``RolloverResult.budget``.
    """
    if not budget.rollover_unspent:
        return RolloverResult(applied=False, reason="rollover disabled")

    start, end = period_window(budget.period, from_date)
    key = rollover_key(budget, start)
    spending = spending_by_category(budget, transactions, from_date)
    carried = {
        alloc.category_id: max(ZERO, alloc.allocated_amount - spending.get(alloc.category_id, ZERO))
        for alloc in budget.allocations
    }

    next_start, next_end = period_window(budget.period, end + timedelta(days=1))
    existing = find_active_budget(
        budgets, budget.profile_id, budget.period, next_start, exclude_id=budget.id
    )

    if existing is None:
        created = Budget(
            profile_id=budget.profile_id,
            name=budget.name,
            period=budget.period,
            start_date=next_start,
            end_date=next_end,
            allocations=[
                CategoryAllocation(
                    category_id=alloc.category_id,
                    allocated_amount=round_currency(alloc.allocated_amount + carried[alloc.category_id]),
                )
                for alloc in budget.allocations
            ],
            rollover_unspent=budget.rollover_unspent,
            alert_threshold=budget.alert_threshold,
            applied_rollovers=[key],
        )
        logger.info("budget_rollover_created", source_id=budget.id, budget_id=created.id)
        return RolloverResult(
            applied=True, created=True, closing_key=key, budget=created, carried=carried,
        )

    if key in existing.applied_rollovers:
        return RolloverResult(
            applied=False, closing_key=key, budget=existing, reason="already applied",
        )

    allocations = []
    seen = set()
    for alloc in existing.allocations:
        seen.add(alloc.category_id)
        allocations.append(CategoryAllocation(
            category_id=alloc.category_id,
            allocated_amount=round_currency(alloc.allocated_amount + carried.get(alloc.category_id, ZERO)),
        ))
    for category_id, amount in carried.items():
        if category_id not in seen:
            allocations.append(CategoryAllocation(category_id=category_id, allocated_amount=amount))

    updated = existing.model_copy(update={
        "allocations": allocations,
        "applied_rollovers": [*existing.applied_rollovers, key],
    })
    logger.info("budget_rollover_applied", source_id=budget.id, budget_id=existing.id)
    return RolloverResult(
        applied=True, created=False, closing_key=key, budget=updated, carried=carried,
    )
