"""Tests for the budget aggregator."""

from datetime import date
from decimal import Decimal

import pytest

from billcycle.engine.budgets import (
    find_active_budget,
    period_window,
    process_rollover,
    spending_by_category,
    with_spending,
)
from billcycle.engine.categories import default_categories
from billcycle.engine.terms import build_installment_plan
from billcycle.models.records import Budget, BudgetPeriod, CategoryAllocation

from conftest import PROFILE, make_txn


@pytest.fixture
def budget() -> Budget:
    return Budget(
        id="budget-jan",
        profile_id=PROFILE,
        name="Household",
        start_date=date(2025, 1, 1),
        end_date=date(2025, 1, 31),
        allocations=[
            CategoryAllocation(category_id="groceries", allocated_amount=Decimal("500")),
            CategoryAllocation(category_id="entertainment", allocated_amount=Decimal("100")),
        ],
        rollover_unspent=True,
        alert_threshold=80,
    )


class TestWindows:
    """Tests for budget period windows."""

    @pytest.mark.parametrize("period,day,start,end", [
        (BudgetPeriod.MONTHLY, date(2024, 2, 10), date(2024, 2, 1), date(2024, 2, 29)),
        (BudgetPeriod.QUARTERLY, date(2025, 5, 10), date(2025, 4, 1), date(2025, 6, 30)),
        (BudgetPeriod.YEARLY, date(2025, 5, 10), date(2025, 1, 1), date(2025, 12, 31)),
    ])
    def test_period_window(self, period, day, start, end):
        """Test monthly, quarterly and yearly windows."""
        assert period_window(period, day) == (start, end)

    def test_find_active_budget_prefers_latest_start(self, budget):
        """Test the covering budget with the latest start wins."""
        open_ended = Budget(id="open", profile_id=PROFILE, start_date=date(2024, 6, 1))
        assert find_active_budget([budget, open_ended], PROFILE, BudgetPeriod.MONTHLY,
                                  date(2025, 1, 10)).id == "budget-jan"
        assert find_active_budget([budget, open_ended], PROFILE, BudgetPeriod.MONTHLY,
                                  date(2025, 2, 10)).id == "open"
        assert find_active_budget([budget], PROFILE, BudgetPeriod.YEARLY, date(2025, 1, 10)) is None


class TestSpending:
    """Tests for spending against allocations."""

    def test_only_borne_expenses_count(self, budget):
        """Test only the profile's own expenses in the window count."""
        plan = build_installment_plan(PROFILE, "Console", Decimal("600"), 3, date(2025, 1, 3),
                                      category_id="entertainment")
        txns = [
            make_txn(120, date(2025, 1, 5), category_id="groceries"),
            make_txn(80, date(2025, 1, 25), category_id="groceries"),
            make_txn(40, date(2025, 2, 1), category_id="groceries"),
            make_txn(60, date(2025, 1, 6), category_id="groceries", paid_by_other=True),
            make_txn(70, date(2025, 1, 6), category_id="groceries", profile_id="profile-2"),
            *plan,
        ]
        spending = spending_by_category(budget, txns, date(2025, 1, 15))
        assert spending == {"groceries": Decimal("200"), "entertainment": Decimal("200")}

    def test_alerts_at_threshold(self, budget):
        """Test an alert is raised once a category reaches the threshold."""
        txns = [
            make_txn(400, date(2025, 1, 5), category_id="groceries"),
            make_txn(150, date(2025, 1, 5), category_id="entertainment"),
        ]
        view = with_spending(budget, txns, date(2025, 1, 20), default_categories())
        groceries, fun = view.allocations
        assert groceries.percentage == 80
        assert groceries.is_over_threshold
        assert fun.percentage == 100
        assert fun.remaining == Decimal("-50.00")
        assert view.alerts == [
            "Groceries is at 80% of budget (80% threshold)",
            "Entertainment is at 100% of budget (80% threshold)",
        ]
        assert view.total_spent == Decimal("550.00")
        assert view.percentage == 92

    def test_unknown_category_label(self, budget):
        """Test a deleted category still alerts under a fallback label."""
        orphan = budget.model_copy(update={
            "allocations": [CategoryAllocation(category_id="gone", allocated_amount=Decimal("10"))],
        })
        view = with_spending(orphan, [make_txn(10, date(2025, 1, 2), category_id="gone")],
                             date(2025, 1, 2), default_categories())
        assert view.alerts == ["Unknown Category is at 100% of budget (80% threshold)"]

    def test_zero_allocation_never_divides(self, budget):
        """Test an empty allocation reports 0%."""
        empty = budget.model_copy(update={
            "allocations": [CategoryAllocation(category_id="groceries", allocated_amount=Decimal("0"))],
        })
        view = with_spending(empty, [make_txn(10, date(2025, 1, 2), category_id="groceries")],
                             date(2025, 1, 2))
        assert view.allocations[0].percentage == 0
        assert view.percentage == 0


class TestRollover:
    """Tests for rolling unspent amounts forward."""

    def test_creates_next_budget_with_remainder(self, budget):
        """Test the next budget gets each category's unspent remainder."""
        txns = [make_txn(300, date(2025, 1, 10), category_id="groceries")]
        result = process_rollover(budget, [budget], txns, date(2025, 1, 31))
        assert result.applied and result.created
        nxt = result.budget
        assert nxt.start_date == date(2025, 2, 1)
        assert nxt.end_date == date(2025, 2, 28)
        amounts = {a.category_id: a.allocated_amount for a in nxt.allocations}
        assert amounts == {"groceries": Decimal("700.00"), "entertainment": Decimal("200.00")}
        assert result.carried["groceries"] == Decimal("200")

    def test_second_run_is_noop(self, budget):
        """Test the same closing period never rolls over twice."""
        txns = [make_txn(300, date(2025, 1, 10), category_id="groceries")]
        first = process_rollover(budget, [budget], txns, date(2025, 1, 31))
        second = process_rollover(budget, [budget, first.budget], txns, date(2025, 1, 31))
        assert not second.applied
        assert second.reason == "already applied"
        assert second.budget == first.budget

    def test_adds_to_existing_budget(self, budget):
        """Test the remainder is added to an existing next-period budget."""
        february = Budget(
            id="budget-feb",
            profile_id=PROFILE,
            start_date=date(2025, 2, 1),
            end_date=date(2025, 2, 28),
            allocations=[CategoryAllocation(category_id="groceries", allocated_amount=Decimal("450"))],
        )
        result = process_rollover(budget, [budget, february], [], date(2025, 1, 31))
        assert result.applied and not result.created
        amounts = {a.category_id: a.allocated_amount for a in result.budget.allocations}
        assert amounts == {"groceries": Decimal("950.00"), "entertainment": Decimal("100")}
        assert result.budget.id == "budget-feb"
        assert result.budget.applied_rollovers == ["budget-jan:2025-01-01"]

    def test_overspent_category_carries_nothing(self, budget):
        """Test an overspent category carries zero."""
        txns = [make_txn(900, date(2025, 1, 10), category_id="groceries")]
        result = process_rollover(budget, [budget], txns, date(2025, 1, 31))
        assert result.carried["groceries"] == Decimal("0")

    def test_disabled(self, budget):
        """Test nothing rolls over when rollover is off."""
        off = budget.model_copy(update={"rollover_unspent": False})
        result = process_rollover(off, [off], [], date(2025, 1, 31))
        assert not result.applied
        assert result.reason == "rollover disabled"
