"""
Ledger Workspace

This module ties the pure engine to a record store and defines the
caller-side flows:
1. Transactions (save → link card charge into its statement → audit)
2. Statements (payments, paid toggles, overrides)
3. Cascades (card deletion, installment plan deletion)
4. Budgets and loans (rollover, recompute, activation)

DESIGN DECISION: The workspace enforces the boundaries:
- The engine never sees the store; it gets plain lists
- Every write is lookup-then-write and goes through the store
- Statement, transaction, card, rollover and loan writes are audited

Callers serialise writes per (card, month) statement and per budget; the
workspace does not lock.
"""

from datetime import date
from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID

import structlog

from billcycle.audit import AuditLogger, create_correlation_id
from billcycle.config import get_settings
from billcycle.engine import balances, budgets, categories, loans, statements, terms
from billcycle.engine.classifier import is_parent, virtual_children
from billcycle.engine.dates import month_str
from billcycle.engine.errors import InvalidPaymentError, LoanPlanError
from billcycle.models.records import (
    Budget,
    Card,
    Category,
    LedgerRecord,
    LoanPlan,
    PaymentMethod,
    Statement,
    Transaction,
)
from billcycle.models.views import (
    BillTotals,
    BudgetWithSpending,
    BufferSummary,
    CashPosition,
    InstallmentProgress,
    RolloverResult,
)
from billcycle.services.storage import (
    AuditStorageInterface,
    InMemoryAuditStorage,
    InMemoryRecordStore,
    NotFoundError,
    RecordKind,
    RecordStore,
)
from billcycle.validation import RecordNormalizer

logger = structlog.get_logger(__name__)


class LedgerWorkspace:
    """
    Runs engine operations against a record store.

    Flow for a card charge:
    1. Save → persist the transaction
    2. Link → add it to the statement of its payment month
    3. Persist → upsert the statement
    4. Audit → one event per record written
    """

    def __init__(
        self,
        store: RecordStore,
        audit_logger: Optional[AuditLogger] = None,
        normalizer: Optional[RecordNormalizer] = None,
    ):
        self._store = store
        self._audit_logger = audit_logger or AuditLogger()
        self._normalizer = normalizer or RecordNormalizer()
        self._settings = get_settings().engine

    @property
    def store(self) -> RecordStore:
        return self._store

    # =========================================================================
    # LOADING
    # =========================================================================

    def load_documents(
        self,
        kind: RecordKind,
        documents: Iterable[dict],
        correlation_id: Optional[UUID] = None,
    ) -> int:
        """
        Normalize stored documents and load them into the store.

        Documents that cannot be repaired are skipped. Returns the number
        loaded.
        """
        correlation_id = correlation_id or create_correlation_id()
        records, reported = self._normalizer.load_many(kind, list(documents))
        for result in reported:
            self._audit_logger.log_record_normalised(result, correlation_id=correlation_id)
        for record in records:
            self._store.upsert(kind, record)
        return len(records)

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _require(self, kind: RecordKind, record_id: str) -> LedgerRecord:
        record = self._store.get(kind, record_id)
        if record is None:
            raise NotFoundError(f"{kind.value} record not found: {record_id}")
        return record

    def _card(self, card_id: Optional[str]) -> Optional[Card]:
        if not card_id:
            return None
        return self._store.get(RecordKind.CARD, card_id)

    def _save_statement(self, statement: Statement, correlation_id: Optional[UUID]) -> Statement:
        created = self._store.upsert(RecordKind.STATEMENT, statement)
        self._audit_logger.log_statement_saved(
            statement.id, statement.card_id, statement.month_str, created,
            correlation_id=correlation_id,
        )
        return statement

    def _unlink(self, txn: Transaction, correlation_id: Optional[UUID]) -> None:
        card = self._card(txn.card_id)
        if card is None:
            return
        updated = statements.remove_charge(card, self._store.statements(), txn)
        if updated is not None:
            self._save_statement(updated, correlation_id)

    def _link(self, txn: Transaction, correlation_id: Optional[UUID]) -> Optional[Statement]:
        card = self._card(txn.card_id)
        if card is None:
            return None
        updated = statements.apply_charge(card, self._store.statements(), txn)
        if updated is not None:
            self._save_statement(updated, correlation_id)
        return updated

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    def save_transaction(
        self,
        txn: Transaction,
        correlation_id: Optional[UUID] = None,
    ) -> Optional[Statement]:
        """
        Persist a transaction and keep its card statement in step.

        Replacing an existing card charge first removes the old amount from
        its statement. Returns the statement the charge landed on, if any.
        """
        correlation_id = correlation_id or create_correlation_id()
        previous = self._store.get(RecordKind.TRANSACTION, txn.id)
        if previous is not None:
            self._unlink(previous, correlation_id)

        self._store.upsert(RecordKind.TRANSACTION, txn)
        self._audit_logger.log_transaction_saved(txn, correlation_id=correlation_id)
        return self._link(txn, correlation_id)

    def add_installment_plan(
        self,
        profile_id: str,
        description: str,
        total_principal,
        total_terms: int,
        start_date: date,
        category_id: str = "uncategorized",
        card_id: Optional[str] = None,
        bank_account_id: Optional[str] = None,
    ) -> list[Transaction]:
        """Create a parent plus one virtual record per term and save them."""
        correlation_id = create_correlation_id()
        plan = terms.build_installment_plan(
            profile_id=profile_id,
            description=description,
            total_principal=total_principal,
            total_terms=total_terms,
            start_date=start_date,
            category_id=category_id,
            payment_method=PaymentMethod.CARD if card_id else PaymentMethod.BANK_TRANSFER,
            card_id=card_id,
            bank_account_id=bank_account_id,
        )
        for txn in plan:
            self.save_transaction(txn, correlation_id=correlation_id)
        return plan

    def delete_transaction(self, transaction_id: str) -> list[str]:
        """
        Delete a transaction, and every virtual term when it is a parent.

        Returns the ids deleted.
        """
        correlation_id = create_correlation_id()
        txn = self._require(RecordKind.TRANSACTION, transaction_id)
        doomed = [txn]
        if is_parent(txn):
            doomed.extend(virtual_children(txn.id, self._store.transactions(txn.profile_id)))

        for record in doomed:
            self._unlink(record, correlation_id)
            self._store.delete(RecordKind.TRANSACTION, record.id)
            self._audit_logger.log_transaction_deleted(record, correlation_id=correlation_id)
        return [record.id for record in doomed]

    # =========================================================================
    # STATEMENTS
    # =========================================================================

    def record_payment(
        self,
        card_id: str,
        month_key: str,
        amount,
        paid_on: date,
    ) -> Optional[Statement]:
        """
        Apply a payment to a card's statement.

        Raises:
            InvalidPaymentError: For a negative or non-numeric amount;
                nothing is written.
        """
        correlation_id = create_correlation_id()
        try:
            statement = statements.record_payment(
                self._store.statements(), card_id, month_key, amount, paid_on
            )
        except InvalidPaymentError as e:
            self._audit_logger.log_payment_rejected(
                card_id, month_key, amount, str(e), correlation_id=correlation_id
            )
            raise

        if statement is None or Decimal(str(amount)) == 0:
            return statement
        self._store.upsert(RecordKind.STATEMENT, statement)
        self._audit_logger.log_payment_recorded(
            statement, statement.payments[-1].amount, correlation_id=correlation_id
        )
        return statement

    def toggle_paid(self, card_id: str, month_key: str, paid_on: date) -> Statement:
        """
        Flip a statement's paid state and mark its charges to match.

        A statement that does not exist yet is created paid, at the total
        of the charges billed into that month.
        """
        correlation_id = create_correlation_id()
        card = self._require(RecordKind.CARD, card_id)
        transactions = self._store.transactions(card.profile_id)
        fallback = statements.period_charge_total(card, month_key, transactions)

        statement = statements.toggle_paid(
            self._store.statements(), card_id, month_key, fallback_total=fallback
        )
        self._save_statement(statement, correlation_id)

        for txn in statements.mark_statement_transactions(
            card, month_key, transactions, statement.is_paid, paid_on
        ):
            self._store.upsert(RecordKind.TRANSACTION, txn)
        return statement

    def set_statement_overrides(self, card_id: str, month_key: str, **overrides) -> Statement:
        """Set or clear due/close/payment dates, close day or notes."""
        card = self._require(RecordKind.CARD, card_id)
        statement = statements.set_overrides(
            self._store.statements(), card, month_key, **overrides
        )
        return self._save_statement(statement, create_correlation_id())

    def adjust_statement(self, card_id: str, month_key: str, adjusted_amount) -> Statement:
        """Set or clear (``None``) the manually adjusted amount."""
        statement = statements.set_adjustment(
            self._store.statements(), card_id, month_key, adjusted_amount
        )
        return self._save_statement(statement, create_correlation_id())

    # =========================================================================
    # CASCADES
    # =========================================================================

    def delete_card(self, card_id: str) -> None:
        """Delete a card with its statements and installment records."""
        correlation_id = create_correlation_id()
        card = self._require(RecordKind.CARD, card_id)
        deletion = statements.card_deletion(
            card.id, self._store.statements(), self._store.transactions()
        )
        for statement_id in deletion.statement_ids:
            self._store.delete(RecordKind.STATEMENT, statement_id)
        for transaction_id in deletion.transaction_ids:
            self._store.delete(RecordKind.TRANSACTION, transaction_id)
        self._store.delete(RecordKind.CARD, card.id)
        self._audit_logger.log_card_deleted(deletion, correlation_id=correlation_id)

    def delete_category(self, category_id: str) -> list[Category]:
        """
        Delete a user category.

        Raises:
            ProtectedCategoryError: For a default category
        """
        remaining = categories.delete_category(self._store.categories(), category_id)
        if self._store.get(RecordKind.CATEGORY, category_id) is not None:
            self._store.delete(RecordKind.CATEGORY, category_id)
        return remaining

    # =========================================================================
    # BUDGETS AND LOANS
    # =========================================================================

    def rollover_budget(self, budget_id: str, from_date: date) -> RolloverResult:
        """Roll the budget's unspent remainder into the next period."""
        budget = self._require(RecordKind.BUDGET, budget_id)
        result = budgets.process_rollover(
            budget,
            self._store.budgets(budget.profile_id),
            self._store.transactions(budget.profile_id),
            from_date,
        )
        if result.applied and result.budget is not None:
            self._store.upsert(RecordKind.BUDGET, result.budget)
            self._audit_logger.log_budget_rolled_over(budget.id, result)
        return result

    def save_loan_plan(self, plan: LoanPlan, as_of: date) -> LoanPlan:
        """Recompute a plan's cached figures and persist it."""
        plan = loans.recompute_loan_plan(plan, self._store.transactions(plan.profile_id), as_of)
        self._store.upsert(RecordKind.LOAN_PLAN, plan)
        self._audit_logger.log_loan_recomputed(plan)
        return plan

    def update_loan_plan(self, plan_id: str, changes: dict, as_of: date) -> LoanPlan:
        """
        Apply changes to a stored plan.

        Raises:
            LoanPlanError: If the changes make the plan invalid
        """
        plan = self._require(RecordKind.LOAN_PLAN, plan_id)
        updated = loans.update_loan_plan(
            plan, changes, self._store.transactions(plan.profile_id), as_of
        )
        self._store.upsert(RecordKind.LOAN_PLAN, updated)
        if (updated.monthly_payment, updated.affordability_score) != (
            plan.monthly_payment, plan.affordability_score
        ):
            self._audit_logger.log_loan_recomputed(updated)
        return updated

    def activate_loan(
        self,
        plan_id: str,
        start_date: date,
        card_id: Optional[str] = None,
    ) -> tuple[Transaction, LoanPlan]:
        """Turn a plan into a recurring installment expense and mark it active."""
        plan = self._require(RecordKind.LOAN_PLAN, plan_id)
        if card_id and self._card(card_id) is None:
            raise LoanPlanError(f"Card not found: {card_id}")
        txn, active = loans.loan_to_transaction(plan, start_date, card_id)
        self.save_transaction(txn)
        self._store.upsert(RecordKind.LOAN_PLAN, active)
        return txn, active

    # =========================================================================
    # VIEWS
    # =========================================================================

    def cash_position(self, profile_id: str, as_of: date) -> CashPosition:
        return balances.projected_end_of_month(
            profile_id,
            as_of,
            self._store.transactions(profile_id),
            self._store.bank_balances(profile_id),
            cards=self._store.cards(profile_id),
            statements=self._store.statements(),
            accounts=self._store.bank_accounts(profile_id),
            per_account=self._settings.per_account_tracking,
        )

    def bills_due_soon(self, profile_id: str, today: date) -> Decimal:
        """Unpaid statement amounts due within the configured window."""
        return balances.bills_due_within(
            self._store.cards(profile_id),
            self._store.statements(),
            month_str(today),
            today,
            days=self._settings.due_soon_days,
        )

    def buffer(self, profile_id: str, month_key: str) -> BufferSummary:
        return balances.buffer(
            profile_id,
            month_key,
            self._store.cards(profile_id),
            self._store.statements(),
            self._store.bank_balances(profile_id),
            accounts=self._store.bank_accounts(profile_id),
            per_account=self._settings.per_account_tracking,
        )

    def bill_totals(self, profile_id: str, month_key: str) -> BillTotals:
        cards = self._store.cards(profile_id)
        transactions = self._store.transactions(profile_id)
        fallback = {
            card.id: statements.period_charge_total(card, month_key, transactions)
            for card in cards
        }
        return statements.bill_totals(cards, self._store.statements(), month_key, fallback)

    def budget_status(self, budget_id: str, day: date) -> BudgetWithSpending:
        budget = self._require(RecordKind.BUDGET, budget_id)
        return budgets.with_spending(
            budget,
            self._store.transactions(budget.profile_id),
            day,
            [*categories.default_categories(), *self._store.categories()],
        )

    def installments(self, profile_id: str, as_of: date) -> list[InstallmentProgress]:
        return terms.installment_progress(self._store.transactions(profile_id), as_of)

    def new_budget(self, profile_id: str, start_date: date, **fields) -> Budget:
        """Create a budget, defaulting its alert threshold from settings."""
        fields.setdefault("alert_threshold", self._settings.default_alert_threshold)
        budget = Budget(profile_id=profile_id, start_date=start_date, **fields)
        self._store.upsert(RecordKind.BUDGET, budget)
        return budget


def create_workspace(
    store: Optional[RecordStore] = None,
    audit_storage: Optional[AuditStorageInterface] = None,
) -> LedgerWorkspace:
    """
    Factory function to create a workspace.

    Args:
        store: Record store; an empty in-memory store when None.
        audit_storage: Where audit events are persisted; in-memory when None.
    """
    return LedgerWorkspace(
        store=store or InMemoryRecordStore(),
        audit_logger=AuditLogger(audit_storage or InMemoryAuditStorage()),
    )
