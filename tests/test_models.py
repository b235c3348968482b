"""
Tests for Billcycle record and view models

Test strategy:
1. Field validation and defaults on stored records
2. camelCase serialisation matches the stored document shapes
3. Derived properties on records and views
"""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from billcycle.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from billcycle.models.records import (
    Budget,
    Card,
    LoanPlan,
    Payment,
    RecurringRule,
    RecurringType,
    Statement,
    Transaction,
    TransactionType,
)
from billcycle.models.views import (
    CashFlowSummary,
    StatementPeriod,
    ValidationIssue,
    ValidationResult,
)


class TestCardModel:
    """Tests for card records."""

    def test_card_creation(self):
        """Test Card model creation."""
        card = Card(profile_id="p1", bank_name="Metro", cycle_close_day=20, payment_due_day=12)
        assert card.cycle_close_day == 20
        assert card.id

    def test_card_strips_whitespace(self):
        """Test that whitespace is stripped from the bank name."""
        card = Card(profile_id="p1", bank_name="  Metro  ", cycle_close_day=1, payment_due_day=1)
        assert card.bank_name == "Metro"

    @pytest.mark.parametrize("day", [0, 32])
    def test_card_rejects_out_of_range_days(self, day):
        """Test cycle days must be 1-31."""
        with pytest.raises(ValueError):
            Card(profile_id="p1", cycle_close_day=day, payment_due_day=5)

    def test_card_dumps_camel_case(self):
        """Test serialisation uses the stored field names."""
        card = Card(id="c1", profile_id="p1", cycle_close_day=9, payment_due_day=27)
        doc = card.model_dump(by_alias=True, mode="json")
        assert doc["cycleCloseDay"] == 9
        assert doc["paymentDueDay"] == 27
        assert doc["profileId"] == "p1"

    def test_card_rejects_legacy_names(self):
        """Test historical names are left to the normalizer."""
        with pytest.raises(ValueError):
            Card.model_validate({"profileId": "p1", "cutoffDay": 9, "dueDay": 27})


class TestTransactionModel:
    """Tests for transaction records."""

    def test_transaction_rejects_negative_amount(self):
        """Test that negative amounts are rejected."""
        with pytest.raises(ValueError):
            Transaction(profile_id="p1", type=TransactionType.EXPENSE,
                        amount=Decimal("-1"), date=date(2025, 1, 1))

    def test_non_recurring_drops_rule(self):
        """Test a one-off transaction never keeps a recurring rule."""
        txn = Transaction(
            profile_id="p1",
            type=TransactionType.EXPENSE,
            amount=Decimal("10"),
            date=date(2025, 1, 1),
            recurring_rule=RecurringRule(type=RecurringType.SUBSCRIPTION),
        )
        assert txn.recurring_rule is None

    def test_decimal_amount_serialises_as_string(self):
        """Test money survives a JSON round trip exactly."""
        txn = Transaction(profile_id="p1", type=TransactionType.INCOME,
                          amount=Decimal("0.10"), date=date(2025, 1, 1))
        doc = txn.model_dump(by_alias=True, mode="json")
        assert doc["amount"] == "0.10"
        assert Transaction.model_validate(doc).amount == Decimal("0.10")


class TestStatementModel:
    """Tests for statement records."""

    def test_month_key_format(self):
        """Test month_str must be YYYY-MM."""
        with pytest.raises(ValueError):
            Statement(card_id="c1", month_str="2025-2")

    def test_effective_amount_prefers_adjustment(self):
        """Test the manual adjustment wins over the computed amount."""
        statement = Statement(card_id="c1", month_str="2025-02", amount=Decimal("100"),
                              adjusted_amount=Decimal("90"))
        assert statement.effective_amount == Decimal("90")
        assert statement.outstanding_amount == Decimal("90")

    def test_outstanding_amount_never_negative(self):
        """Test an overpaid adjustment leaves nothing outstanding."""
        statement = Statement(
            card_id="c1",
            month_str="2025-02",
            amount=Decimal("100"),
            adjusted_amount=Decimal("50"),
            paid_amount=Decimal("80"),
            payments=[Payment(amount=Decimal("80"), date=date(2025, 2, 1))],
        )
        assert statement.outstanding_amount == Decimal("0")


class TestBudgetAndLoanModels:
    """Tests for budget and loan plan records."""

    def test_budget_date_validation(self):
        """Test that end_date cannot be before start_date."""
        with pytest.raises(ValueError, match="Budget end date cannot be before start date"):
            Budget(profile_id="p1", start_date=date(2025, 2, 1), end_date=date(2025, 1, 1))

    def test_loan_amount_derived(self):
        """Test the financed amount defaults to price minus down payment."""
        plan = LoanPlan(profile_id="p1", name="Car", total_amount=Decimal("20000"),
                        down_payment=Decimal("5000"), term_months=36)
        assert plan.loan_amount == Decimal("15000")

    def test_down_payment_cannot_exceed_total(self):
        """Test an impossible down payment is rejected."""
        with pytest.raises(ValueError, match="Down payment cannot exceed total amount"):
            LoanPlan(profile_id="p1", name="Car", total_amount=Decimal("100"),
                     down_payment=Decimal("200"), term_months=12)


class TestViewModels:
    """Tests for computed views."""

    def test_statement_period_contains(self):
        """Test period bounds are inclusive."""
        period = StatementPeriod(start=date(2025, 1, 9), end=date(2025, 2, 8), month_str="2025-02")
        assert period.contains(date(2025, 1, 9))
        assert period.contains(date(2025, 2, 8))
        assert not period.contains(date(2025, 2, 9))

    def test_views_are_frozen(self):
        """Test computed views cannot be modified."""
        summary = CashFlowSummary(month_str="2025-01", income=Decimal("10"), expenses=Decimal("4"))
        assert summary.net == Decimal("6")
        with pytest.raises(ValueError):
            summary.income = Decimal("0")


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.STATEMENT_CREATED,
            description="Statement created",
        )
        assert event.event_type == AuditEventType.STATEMENT_CREATED
        assert event.severity == AuditSeverity.INFO
        assert event.timestamp.tzinfo is not None

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEventBuilder.transaction_saved("t1", "p1", Decimal("12.50"))
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "transaction_saved"
        assert log_dict["details"]["amount"] == "12.50"

    def test_audit_event_builder_budget_rolled_over(self):
        """Test AuditEventBuilder.budget_rolled_over."""
        correlation_id = uuid4()
        event = AuditEventBuilder.budget_rolled_over(
            source_id="b-jan",
            budget_id="b-feb",
            closing_key="b-jan:2025-01-01",
            created=True,
            carried={"groceries": Decimal("200")},
            correlation_id=correlation_id,
        )
        assert event.event_type == AuditEventType.BUDGET_ROLLED_OVER
        assert event.entity_id == "b-feb"
        assert event.correlation_id == correlation_id
        assert event.details["carried"] == {"groceries": "200"}


class TestValidationResult:
    """Tests for ValidationResult model."""

    def test_validation_result_has_errors(self):
        """Test has_errors property."""
        result = ValidationResult(
            record_type="cards",
            is_valid=False,
            issues=[
                ValidationIssue(
                    field="cycleCloseDay",
                    issue_type="invalid_day",
                    message="cycleCloseDay must be a day between 1 and 31",
                    severity="error",
                ),
            ],
        )
        assert result.has_errors is True
        assert result.error_count == 1

    def test_validation_result_warnings_only(self):
        """Test that warnings don't count as errors."""
        result = ValidationResult(
            record_type="transactions",
            is_valid=True,
            issues=[
                ValidationIssue(
                    field="amount",
                    issue_type="invalid_amount",
                    message="amount is not a number ('x'); using 0",
                    severity="warning",
                ),
            ],
        )
        assert result.has_errors is False
        assert result.error_count == 0
        assert result.warnings == ["amount is not a number ('x'); using 0"]

    def test_severity_pattern(self):
        """Test only known severities are accepted."""
        with pytest.raises(ValueError):
            ValidationIssue(field="x", issue_type="y", message="z", severity="fatal")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
