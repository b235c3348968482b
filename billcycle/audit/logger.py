"""
Audit Logger

DESIGN DECISION: Every write the workspace performs is logged.
This provides:
1. Complete traceability
2. Debugging capability when stored documents had to be repaired
3. A history of statement and budget changes

The audit logger:
- Is synchronous, like the rest of the engine
- Gracefully handles storage failures (doesn't break a write if logging fails)
- Supports correlation IDs to trace related events
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from billcycle.config import LoggingSettings, get_settings
from billcycle.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from billcycle.services.storage import AuditStorageInterface, StorageError


def configure_logging(settings: Optional[LoggingSettings] = None) -> None:
    """
    Configure structlog for local logging.

    Renders JSON lines by default; ``json_output=False`` switches to the
    console renderer for local development.
    """
    settings = settings or get_settings().logging
    logging.basicConfig(format="%(message)s", level=settings.level)

    renderer = (
        structlog.processors.JSONRenderer()
        if settings.json_output
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. An audit store (for persistence), when one is configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger(__name__)

    def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return self._storage.append_event(event)
            except StorageError as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    def log_statement_saved(self, statement_id, card_id, month_str, created, correlation_id=None) -> None:
        self.log(AuditEventBuilder.statement_saved(
            statement_id=statement_id,
            card_id=card_id,
            month_str=month_str,
            created=created,
            correlation_id=correlation_id,
        ))

    def log_payment_recorded(self, statement, amount, correlation_id=None) -> None:
        """Log a payment applied to a statement."""
        self.log(AuditEventBuilder.payment_recorded(
            statement_id=statement.id,
            card_id=statement.card_id,
            month_str=statement.month_str,
            amount=amount,
            is_paid=statement.is_paid,
            correlation_id=correlation_id,
        ))

    def log_payment_rejected(self, card_id, month_str, amount, reason, correlation_id=None) -> None:
        """Log a payment refused before any change was made."""
        self.log(AuditEventBuilder.payment_rejected(
            card_id=card_id,
            month_str=month_str,
            amount=amount,
            reason=reason,
            correlation_id=correlation_id,
        ))

    def log_card_deleted(self, deletion, correlation_id=None) -> None:
        self.log(AuditEventBuilder.card_deleted(
            card_id=deletion.card_id,
            statement_count=len(deletion.statement_ids),
            transaction_count=len(deletion.transaction_ids),
            correlation_id=correlation_id,
        ))

    def log_transaction_saved(self, txn, correlation_id=None) -> None:
        self.log(AuditEventBuilder.transaction_saved(
            transaction_id=txn.id,
            profile_id=txn.profile_id,
            amount=txn.amount,
            correlation_id=correlation_id,
        ))

    def log_transaction_deleted(self, txn, correlation_id=None) -> None:
        self.log(AuditEventBuilder.transaction_deleted(
            transaction_id=txn.id,
            profile_id=txn.profile_id,
            correlation_id=correlation_id,
        ))

    def log_budget_rolled_over(self, source_id, result, correlation_id=None) -> None:
        """Log a rollover that changed or created the next budget."""
        self.log(AuditEventBuilder.budget_rolled_over(
            source_id=source_id,
            budget_id=result.budget.id,
            closing_key=result.closing_key,
            created=result.created,
            carried=result.carried,
            correlation_id=correlation_id,
        ))

    def log_loan_recomputed(self, plan, correlation_id=None) -> None:
        self.log(AuditEventBuilder.loan_recomputed(
            plan_id=plan.id,
            profile_id=plan.profile_id,
            monthly_payment=plan.monthly_payment,
            score=plan.affordability_score,
            correlation_id=correlation_id,
        ))

    def log_record_normalised(self, result, correlation_id=None) -> None:
        """Log a stored document that needed repairs on load."""
        self.log(AuditEventBuilder.record_normalised(
            record_type=result.record_type,
            record_id=result.record_id,
            issues=[i.model_dump() for i in result.issues],
            correlation_id=correlation_id,
        ))

    def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a user action (e.g., deleting a card).
    Pass it through all subsequent operations.
    """
    return uuid4()
