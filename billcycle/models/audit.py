"""
Audit Models for Billcycle

Every write the workspace performs is logged for audit purposes.
This provides:
1. Traceability of statement, budget and loan changes
2. Debugging information when a stored document had to be repaired
3. Ability to reconstruct how a balance came to be

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every write operation of the workspace has its own event type.
    """
    # Statements
    STATEMENT_CREATED = "statement_created"
    STATEMENT_UPDATED = "statement_updated"
    PAYMENT_RECORDED = "payment_recorded"
    PAYMENT_REJECTED = "payment_rejected"

    # Cards and transactions
    CARD_DELETED = "card_deleted"
    TRANSACTION_SAVED = "transaction_saved"
    TRANSACTION_DELETED = "transaction_deleted"

    # Budgets and loans
    BUDGET_ROLLED_OVER = "budget_rolled_over"
    LOAN_RECOMPUTED = "loan_recomputed"

    # Persistence boundary
    RECORD_NORMALISED = "record_normalised"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every write creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what record is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of record (e.g., 'statement', 'budget', 'loan_plan')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the record this event relates to"
    )
    profile_id: Optional[str] = None

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., a card and its cascade)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "profile_id": self.profile_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.payment_recorded(statement_id, card_id, month, amount)
        event = AuditEventBuilder.card_deleted(card_id, 3, 12, correlation_id)
    """

    @staticmethod
    def statement_saved(
        statement_id: str,
        card_id: str,
        month_str: str,
        created: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        action = "created" if created else "updated"
        return AuditEvent(
            event_type=(
                AuditEventType.STATEMENT_CREATED if created
                else AuditEventType.STATEMENT_UPDATED
            ),
            entity_type="statement",
            entity_id=statement_id,
            correlation_id=correlation_id,
            description=f"Statement {action}: card {card_id} for {month_str}",
            details={"card_id": card_id, "month_str": month_str},
        )

    @staticmethod
    def payment_recorded(
        statement_id: str,
        card_id: str,
        month_str: str,
        amount: Decimal,
        is_paid: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PAYMENT_RECORDED,
            entity_type="statement",
            entity_id=statement_id,
            correlation_id=correlation_id,
            description=f"Payment of {amount} recorded for {month_str}",
            details={
                "card_id": card_id,
                "month_str": month_str,
                "amount": str(amount),
                "is_paid": is_paid,
            },
        )

    @staticmethod
    def payment_rejected(
        card_id: str,
        month_str: str,
        amount: Any,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PAYMENT_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="statement",
            correlation_id=correlation_id,
            description=f"Payment rejected for {month_str}",
            details={"card_id": card_id, "month_str": month_str, "amount": repr(amount)},
            error_code="invalid_payment",
            error_message=reason,
        )

    @staticmethod
    def card_deleted(
        card_id: str,
        statement_count: int,
        transaction_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CARD_DELETED,
            severity=AuditSeverity.WARNING,
            entity_type="card",
            entity_id=card_id,
            correlation_id=correlation_id,
            description=(
                f"Card deleted with {statement_count} statements "
                f"and {transaction_count} installment records"
            ),
            details={
                "statements_deleted": statement_count,
                "transactions_deleted": transaction_count,
            },
        )

    @staticmethod
    def transaction_saved(
        transaction_id: str,
        profile_id: str,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_SAVED,
            entity_type="transaction",
            entity_id=transaction_id,
            profile_id=profile_id,
            correlation_id=correlation_id,
            description=f"Transaction saved: {amount}",
            details={"amount": str(amount)},
        )

    @staticmethod
    def transaction_deleted(
        transaction_id: str,
        profile_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            entity_type="transaction",
            entity_id=transaction_id,
            profile_id=profile_id,
            correlation_id=correlation_id,
            description="Transaction deleted",
        )

    @staticmethod
    def budget_rolled_over(
        source_id: str,
        budget_id: str,
        closing_key: str,
        created: bool,
        carried: dict[str, Decimal],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_ROLLED_OVER,
            entity_type="budget",
            entity_id=budget_id,
            correlation_id=correlation_id,
            description=(
                f"Unspent budget rolled into {'new' if created else 'existing'} budget"
            ),
            details={
                "source_id": source_id,
                "closing_key": closing_key,
                "carried": {k: str(v) for k, v in carried.items()},
            },
        )

    @staticmethod
    def loan_recomputed(
        plan_id: str,
        profile_id: str,
        monthly_payment: Decimal,
        score: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOAN_RECOMPUTED,
            entity_type="loan_plan",
            entity_id=plan_id,
            profile_id=profile_id,
            correlation_id=correlation_id,
            description=f"Loan plan recomputed: score {score}",
            details={"monthly_payment": str(monthly_payment), "affordability_score": score},
        )

    @staticmethod
    def record_normalised(
        record_type: str,
        record_id: Optional[str],
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_NORMALISED,
            severity=AuditSeverity.WARNING,
            entity_type=record_type,
            entity_id=record_id,
            correlation_id=correlation_id,
            description=f"Stored {record_type} repaired with {len(issues)} issues",
            details={"issues": issues},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
