"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Keep the engine free of any persistence concern
2. Use in-memory storage for testing
3. Swap in a document database without touching the workflow

The interface is intentionally simple - we're not building a full ORM.
Records are addressed by kind and id; the only secondary lookup is the
(card, month) statement, because statement upserts depend on it.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional
from uuid import UUID

from billcycle.models.audit import AuditEvent
from billcycle.models.records import (
    BankAccount,
    BankBalance,
    Budget,
    Card,
    Category,
    LedgerRecord,
    LoanPlan,
    Profile,
    Statement,
    Transaction,
)


class RecordKind(str, Enum):
    """Collections held by a record store."""
    PROFILE = "profiles"
    CARD = "cards"
    BANK_ACCOUNT = "bank_accounts"
    BANK_BALANCE = "bank_balances"
    CATEGORY = "categories"
    TRANSACTION = "transactions"
    STATEMENT = "statements"
    BUDGET = "budgets"
    LOAN_PLAN = "loan_plans"


RECORD_MODELS: dict[RecordKind, type[LedgerRecord]] = {
    RecordKind.PROFILE: Profile,
    RecordKind.CARD: Card,
    RecordKind.BANK_ACCOUNT: BankAccount,
    RecordKind.BANK_BALANCE: BankBalance,
    RecordKind.CATEGORY: Category,
    RecordKind.TRANSACTION: Transaction,
    RecordKind.STATEMENT: Statement,
    RecordKind.BUDGET: Budget,
    RecordKind.LOAN_PLAN: LoanPlan,
}


class RecordStore(ABC):
    """
    Abstract interface for ledger record storage.

    Any storage implementation must implement these methods. Callers
    serialise writes per (card, month) statement; the store itself does
    not lock.
    """

    @abstractmethod
    def get(self, kind: RecordKind, record_id: str) -> Optional[LedgerRecord]:
        """
        Retrieve a record by its ID.

        Returns:
            The record if found, None otherwise
        """
        pass

    @abstractmethod
    def list_records(self, kind: RecordKind, profile_id: Optional[str] = None) -> list[LedgerRecord]:
        """
        List records of one kind.

        Args:
            kind: Collection to read
            profile_id: Only records of this profile. Kinds without a
                profile (statements, categories) ignore it.
        """
        pass

    @abstractmethod
    def upsert(self, kind: RecordKind, record: LedgerRecord) -> bool:
        """
        Insert or replace a record by ID.

        Returns:
            True if the record was created, False if it replaced one

        Raises:
            DuplicateError: If a different statement already holds the
                same (card, month)
        """
        pass

    @abstractmethod
    def delete(self, kind: RecordKind, record_id: str) -> None:
        """
        Delete a record by ID.

        Raises:
            NotFoundError: If the record doesn't exist
        """
        pass

    @abstractmethod
    def find_statement(self, card_id: str, month_str: str) -> Optional[Statement]:
        """The statement for (card, payment month), if any."""
        pass

    # Typed shortcuts used by the workspace

    def cards(self, profile_id: Optional[str] = None) -> list[Card]:
        return self.list_records(RecordKind.CARD, profile_id)

    def transactions(self, profile_id: Optional[str] = None) -> list[Transaction]:
        return self.list_records(RecordKind.TRANSACTION, profile_id)

    def statements(self) -> list[Statement]:
        return self.list_records(RecordKind.STATEMENT)

    def budgets(self, profile_id: Optional[str] = None) -> list[Budget]:
        return self.list_records(RecordKind.BUDGET, profile_id)

    def bank_balances(self, profile_id: Optional[str] = None) -> list[BankBalance]:
        return self.list_records(RecordKind.BANK_BALANCE, profile_id)

    def bank_accounts(self, profile_id: Optional[str] = None) -> list[BankAccount]:
        return self.list_records(RecordKind.BANK_ACCOUNT, profile_id)

    def categories(self) -> list[Category]:
        return self.list_records(RecordKind.CATEGORY)


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    def get_events_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        """All events for a correlation ID in chronological order."""
        pass

    @abstractmethod
    def get_events_by_entity(self, entity_type: str, entity_id: str) -> list[AuditEvent]:
        """All events for a specific record in chronological order."""
        pass

    @abstractmethod
    def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        """The most recent audit events, newest first."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass
