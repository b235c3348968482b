"""Workflow tests for the ledger workspace over the in-memory store."""

from datetime import date
from decimal import Decimal

import pytest

from billcycle.engine.errors import InvalidPaymentError, LoanPlanError, ProtectedCategoryError
from billcycle.models.audit import AuditEventType
from billcycle.models.records import (
    BankBalance,
    Budget,
    Category,
    CategoryAllocation,
    LoanPlan,
    LoanStatus,
    Statement,
)
from billcycle.orchestrator import create_workspace
from billcycle.services.storage import InMemoryAuditStorage, NotFoundError, RecordKind

from conftest import PROFILE, card_charge, make_txn


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def workspace(audit_storage, card, same_month_card):
    ws = create_workspace(audit_storage=audit_storage)
    ws.store.upsert(RecordKind.CARD, card)
    ws.store.upsert(RecordKind.CARD, same_month_card)
    return ws


def event_types(storage):
    return [e.event_type for e in sorted(storage.get_recent_events(1000), key=lambda e: e.timestamp)]


class TestChargeLinking:
    """Tests for linking charges to statements."""

    def test_charge_lands_on_payment_month_statement(self, workspace):
        """Test a charge is added to its payment month's statement."""
        statement = workspace.save_transaction(card_charge(120, date(2024, 12, 22)))
        assert statement.month_str == "2025-02"
        assert workspace.store.find_statement("card-1", "2025-02").amount == Decimal("120")

    def test_editing_a_charge_moves_its_amount(self, workspace):
        """Test editing a charge replaces its old amount."""
        charge = card_charge(120, date(2025, 1, 5))
        workspace.save_transaction(charge)
        workspace.save_transaction(charge.model_copy(update={"amount": Decimal("80")}))
        assert workspace.store.find_statement("card-1", "2025-02").amount == Decimal("80")

        workspace.save_transaction(charge.model_copy(update={"date": date(2025, 1, 25)}))
        assert workspace.store.find_statement("card-1", "2025-02").amount == Decimal("0")
        assert workspace.store.find_statement("card-1", "2025-03").amount == Decimal("120")

    def test_cash_expense_creates_no_statement(self, workspace):
        """Test a cash expense leaves statements alone."""
        assert workspace.save_transaction(make_txn(30, date(2025, 1, 5))) is None
        assert workspace.store.statements() == []

    def test_deleting_a_charge_unlinks_it(self, workspace, audit_storage):
        """Test deleting a charge removes it from its statement."""
        charge = card_charge(50, date(2025, 1, 5))
        workspace.save_transaction(charge)
        assert workspace.delete_transaction(charge.id) == [charge.id]
        assert workspace.store.find_statement("card-1", "2025-02").amount == Decimal("0")
        assert AuditEventType.TRANSACTION_DELETED in event_types(audit_storage)

    def test_delete_missing_transaction(self, workspace):
        """Test deleting an unknown transaction raises."""
        with pytest.raises(NotFoundError):
            workspace.delete_transaction("ghost")


class TestInstallments:
    """Tests for installment plans."""

    def test_plan_terms_bill_into_consecutive_months(self, workspace):
        """Test each term bills into its own month."""
        plan = workspace.add_installment_plan(
            PROFILE, "Laptop", Decimal("900"), 3, date(2025, 1, 5), card_id="card-1",
        )
        assert len(plan) == 4
        for key in ("2025-02", "2025-03", "2025-04"):
            assert workspace.store.find_statement("card-1", key).amount == Decimal("300")

        (progress,) = workspace.installments(PROFILE, date(2025, 2, 10))
        assert progress.current_term == 2
        assert progress.progress_percentage == 67

    def test_deleting_parent_cascades(self, workspace):
        """Test deleting the parent deletes its terms."""
        parent, *children = workspace.add_installment_plan(
            PROFILE, "Laptop", Decimal("900"), 3, date(2025, 1, 5), card_id="card-1",
        )
        deleted = workspace.delete_transaction(parent.id)
        assert set(deleted) == {parent.id, *(c.id for c in children)}
        assert workspace.store.transactions() == []
        assert workspace.store.find_statement("card-1", "2025-03").amount == Decimal("0")


class TestStatementFlows:
    """Tests for payments, toggles and overrides."""

    def test_payments(self, workspace, audit_storage):
        """Test payments are stored and audited."""
        workspace.save_transaction(card_charge(100, date(2025, 1, 5)))
        workspace.record_payment("card-1", "2025-02", Decimal("40"), date(2025, 2, 1))
        paid = workspace.record_payment("card-1", "2025-02", Decimal("60"), date(2025, 2, 5))
        assert paid.is_paid
        assert workspace.store.find_statement("card-1", "2025-02").is_paid
        assert event_types(audit_storage).count(AuditEventType.PAYMENT_RECORDED) == 2

    def test_rejected_payment_is_audited_and_changes_nothing(self, workspace, audit_storage):
        """Test a rejected payment is audited and leaves the statement unchanged."""
        workspace.save_transaction(card_charge(100, date(2025, 1, 5)))
        with pytest.raises(InvalidPaymentError):
            workspace.record_payment("card-1", "2025-02", Decimal("-10"), date(2025, 2, 1))
        assert workspace.store.find_statement("card-1", "2025-02").paid_amount == Decimal("0")
        assert AuditEventType.PAYMENT_REJECTED in event_types(audit_storage)

    def test_new_charge_reopens_paid_statement(self, workspace):
        """Test a charge saved after full payment reopens the statement."""
        workspace.save_transaction(card_charge(500, date(2025, 1, 5)))
        workspace.record_payment("card-1", "2025-02", Decimal("500"), date(2025, 1, 30))
        workspace.save_transaction(card_charge(200, date(2025, 1, 8)))

        statement = workspace.store.find_statement("card-1", "2025-02")
        assert statement.amount == Decimal("700")
        assert statement.paid_amount == Decimal("500")
        assert not statement.is_paid
        assert statement.outstanding_amount == Decimal("200")

    def test_zero_payment_writes_nothing(self, workspace):
        """Test a zero payment writes nothing."""
        assert workspace.record_payment("card-1", "2025-02", 0, date(2025, 2, 1)) is None
        assert workspace.store.statements() == []

    def test_toggle_paid_without_statement_uses_charge_total(self, workspace, card):
        """Test marking paid with no statement uses the charge total."""
        first = card_charge(70, date(2025, 1, 2))
        second = card_charge(30.5, date(2025, 1, 3))
        for txn in (first, second):
            workspace.store.upsert(RecordKind.TRANSACTION, txn)

        statement = workspace.toggle_paid("card-1", "2025-02", date(2025, 2, 12))
        assert statement.is_paid
        assert statement.amount == Decimal("100.50")
        marked = workspace.store.get(RecordKind.TRANSACTION, first.id)
        assert marked.is_paid and marked.paid_date == date(2025, 2, 12)

        reopened = workspace.toggle_paid("card-1", "2025-02", date(2025, 2, 13))
        assert not reopened.is_paid
        assert not workspace.store.get(RecordKind.TRANSACTION, first.id).is_paid

    def test_overrides_and_adjustment(self, workspace):
        """Test overrides and adjustments are stored."""
        workspace.set_statement_overrides("card-1", "2025-02", due_date=date(2025, 2, 3))
        adjusted = workspace.adjust_statement("card-1", "2025-02", Decimal("55"))
        assert adjusted.custom_due_date == date(2025, 2, 3)
        assert adjusted.effective_amount == Decimal("55.00")

    def test_bill_totals_fall_back_to_charges(self, workspace):
        """Test cards without a statement fall back to their charges."""
        workspace.store.upsert(RecordKind.TRANSACTION, card_charge(40, date(2025, 1, 12), card_id="card-2"))
        workspace.save_transaction(card_charge(100, date(2025, 1, 5)))
        workspace.record_payment("card-1", "2025-02", Decimal("100"), date(2025, 2, 1))
        totals = workspace.bill_totals(PROFILE, "2025-02")
        assert totals.bill_total == Decimal("140.00")
        assert totals.paid_total == Decimal("100.00")
        assert totals.unpaid_total == Decimal("40.00")


class TestCascades:
    """Tests for card and category deletion."""

    def test_delete_card(self, workspace, audit_storage):
        """Test deleting a card removes its statements and plans."""
        plain = card_charge(10, date(2025, 1, 3))
        workspace.save_transaction(plain)
        workspace.add_installment_plan(PROFILE, "Bike", Decimal("300"), 3, date(2025, 1, 1), card_id="card-1")
        workspace.store.upsert(RecordKind.STATEMENT, Statement(card_id="card-2", month_str="2025-02"))

        workspace.delete_card("card-1")
        assert workspace.store.get(RecordKind.CARD, "card-1") is None
        assert [s.card_id for s in workspace.store.statements()] == ["card-2"]
        assert [t.id for t in workspace.store.transactions()] == [plain.id]
        assert AuditEventType.CARD_DELETED in event_types(audit_storage)

    def test_delete_category(self, workspace):
        """Test a custom category is deleted and a default one protected."""
        workspace.store.upsert(RecordKind.CATEGORY, Category(id="pets", name="Pets"))
        remaining = workspace.delete_category("pets")
        assert "pets" not in {c.id for c in remaining}
        assert workspace.store.categories() == []
        with pytest.raises(ProtectedCategoryError):
            workspace.delete_category("groceries")


class TestBudgetsAndLoans:
    """Tests for budget rollover and loan plans."""

    def test_rollover_is_idempotent(self, workspace):
        """Test a rollover is applied once."""
        budget = Budget(
            id="b-jan",
            profile_id=PROFILE,
            start_date=date(2025, 1, 1),
            end_date=date(2025, 1, 31),
            allocations=[CategoryAllocation(category_id="groceries", allocated_amount=Decimal("500"))],
            rollover_unspent=True,
        )
        workspace.store.upsert(RecordKind.BUDGET, budget)
        workspace.save_transaction(make_txn(300, date(2025, 1, 10), category_id="groceries"))

        first = workspace.rollover_budget("b-jan", date(2025, 1, 31))
        second = workspace.rollover_budget("b-jan", date(2025, 1, 31))
        assert first.applied
        assert first.budget.allocations[0].allocated_amount == Decimal("700.00")
        assert not second.applied
        assert second.reason == "already applied"
        assert len(workspace.store.budgets(PROFILE)) == 2

        status = workspace.budget_status(first.budget.id, date(2025, 2, 10))
        assert status.allocations[0].category_label == "Groceries"

    def test_new_budget_threshold_from_settings(self, monkeypatch, audit_storage):
        """Test new budgets take the configured alert threshold."""
        monkeypatch.setenv("BILLCYCLE_DEFAULT_ALERT_THRESHOLD", "65")
        ws = create_workspace(audit_storage=audit_storage)
        assert ws.new_budget(PROFILE, date(2025, 1, 1)).alert_threshold == 65
        assert ws.new_budget(PROFILE, date(2025, 1, 1), alert_threshold=90).alert_threshold == 90

    def test_loan_lifecycle(self, workspace, audit_storage):
        """Test a loan plan from saving to activation."""
        plan = workspace.save_loan_plan(
            LoanPlan(id="loan-1", profile_id=PROFILE, name="Car", total_amount=Decimal("12000"),
                     term_months=12),
            date(2025, 7, 1),
        )
        assert plan.monthly_payment == Decimal("1000.00")
        assert workspace.store.get(RecordKind.LOAN_PLAN, "loan-1").monthly_payment == Decimal("1000.00")

        updated = workspace.update_loan_plan("loan-1", {"term_months": 24}, date(2025, 7, 1))
        assert updated.monthly_payment == Decimal("500.00")
        assert event_types(audit_storage).count(AuditEventType.LOAN_RECOMPUTED) == 2

        with pytest.raises(LoanPlanError):
            workspace.activate_loan("loan-1", date(2025, 8, 1), card_id="missing")

        txn, active = workspace.activate_loan("loan-1", date(2025, 8, 1), card_id="card-1")
        assert active.status == LoanStatus.ACTIVE
        assert workspace.store.get(RecordKind.LOAN_PLAN, "loan-1").status == LoanStatus.ACTIVE
        assert workspace.store.find_statement("card-1", "2025-09").amount == Decimal("500.00")


class TestLoadingAndViews:
    """Tests for loading documents and cash views."""

    def test_load_documents_maps_legacy_names(self, audit_storage):
        """Test loaded documents are normalised and repairs audited."""
        ws = create_workspace(audit_storage=audit_storage)
        loaded = ws.load_documents(RecordKind.CARD, [
            {"id": "legacy", "profileId": PROFILE, "cutoffDay": 15, "dueDay": 5},
            {"id": "broken", "profileId": PROFILE, "cutoffDay": 45, "dueDay": 5},
        ])
        assert loaded == 1
        assert ws.store.get(RecordKind.CARD, "legacy").cycle_close_day == 15
        assert event_types(audit_storage).count(AuditEventType.RECORD_NORMALISED) == 2

    def test_cash_views(self, workspace, snapshot):
        """Test cash position, bills due soon and buffer together."""
        workspace.store.upsert(RecordKind.BANK_BALANCE, snapshot)
        workspace.store.upsert(
            RecordKind.STATEMENT,
            Statement(card_id="card-1", month_str="2025-03", amount=Decimal("800")),
        )
        workspace.save_transaction(make_txn(200, date(2025, 3, 2), bank_account_id="acct-1"))

        position = workspace.cash_position(PROFILE, date(2025, 3, 10))
        assert position.current_liquid_balance == Decimal("4800.00")
        assert position.committed_expenses == Decimal("800.00")
        assert workspace.bills_due_soon(PROFILE, date(2025, 3, 10)) == Decimal("800.00")
        assert workspace.buffer(PROFILE, "2025-03").buffer == Decimal("4200.00")

    def test_due_soon_window_from_settings(self, monkeypatch, audit_storage, card):
        """Test the due-soon window comes from settings."""
        monkeypatch.setenv("BILLCYCLE_DUE_SOON_DAYS", "1")
        ws = create_workspace(audit_storage=audit_storage)
        ws.store.upsert(RecordKind.CARD, card)
        ws.store.upsert(RecordKind.STATEMENT,
                        Statement(card_id="card-1", month_str="2025-03", amount=Decimal("800")))
        assert ws.bills_due_soon(PROFILE, date(2025, 3, 10)) == Decimal("0.00")

    def test_per_account_tracking(self, monkeypatch, audit_storage, account):
        """Test per-account tracking is read from settings."""
        monkeypatch.setenv("BILLCYCLE_PER_ACCOUNT_TRACKING", "true")
        ws = create_workspace(audit_storage=audit_storage)
        ws.store.upsert(RecordKind.BANK_ACCOUNT, account)
        ws.store.upsert(RecordKind.BANK_BALANCE,
                        BankBalance(profile_id=PROFILE, month_str="2025-03", balance=Decimal("5000")))
        assert ws.buffer(PROFILE, "2025-03").bank_balance == Decimal("1000.00")
