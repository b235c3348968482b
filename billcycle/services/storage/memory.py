"""
In-Memory Storage Implementation

DESIGN DECISION: Records are held as camelCase documents, exactly the
shape a document database would hold, and re-validated on every read.
That keeps the in-memory store honest: anything that would not survive
a real round trip through storage does not survive here either.

TRADEOFFS:
- Every read re-validates (we're fine for personal-scale data)
- No transactions (callers serialise writes per statement and budget)
"""

from typing import Optional
from uuid import UUID

from billcycle.models.audit import AuditEvent
from billcycle.models.records import LedgerRecord, Statement
from billcycle.services.storage.interface import (
    RECORD_MODELS,
    AuditStorageInterface,
    DuplicateError,
    NotFoundError,
    RecordKind,
    RecordStore,
    StorageError,
)


def _to_document(record: LedgerRecord) -> dict:
    return record.model_dump(by_alias=True, mode="json")


class InMemoryRecordStore(RecordStore):
    """Dictionary-backed record store, one collection per record kind."""

    def __init__(self):
        self._collections: dict[RecordKind, dict[str, dict]] = {
            kind: {} for kind in RecordKind
        }

    def _load(self, kind: RecordKind, document: dict) -> LedgerRecord:
        return RECORD_MODELS[kind].model_validate(document)

    def get(self, kind: RecordKind, record_id: str) -> Optional[LedgerRecord]:
        document = self._collections[kind].get(record_id)
        if document is None:
            return None
        return self._load(kind, document)

    def list_records(self, kind: RecordKind, profile_id: Optional[str] = None) -> list[LedgerRecord]:
        records = [self._load(kind, doc) for doc in self._collections[kind].values()]
        if profile_id is None:
            return records
        return [r for r in records if getattr(r, "profile_id", profile_id) == profile_id]

    def upsert(self, kind: RecordKind, record: LedgerRecord) -> bool:
        model = RECORD_MODELS[kind]
        if not isinstance(record, model):
            raise StorageError(f"Expected {model.__name__} for {kind.value}, got {type(record).__name__}")

        if kind == RecordKind.STATEMENT:
            existing = self.find_statement(record.card_id, record.month_str)
            if existing is not None and existing.id != record.id:
                raise DuplicateError(
                    f"Statement for card {record.card_id} in {record.month_str} already exists"
                )

        collection = self._collections[kind]
        created = record.id not in collection
        collection[record.id] = _to_document(record)
        return created

    def delete(self, kind: RecordKind, record_id: str) -> None:
        try:
            del self._collections[kind][record_id]
        except KeyError:
            raise NotFoundError(f"{kind.value} record not found: {record_id}") from None

    def find_statement(self, card_id: str, month_str: str) -> Optional[Statement]:
        for document in self._collections[RecordKind.STATEMENT].values():
            if document.get("cardId") == card_id and document.get("monthStr") == month_str:
                return Statement.model_validate(document)
        return None

    def import_documents(self, kind: RecordKind, documents: list[dict]) -> int:
        """
        Load canonical documents (already normalized) into a collection.

        Returns the number of documents stored.
        """
        for document in documents:
            self.upsert(kind, self._load(kind, document))
        return len(documents)


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    def get_events_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    def get_events_by_entity(self, entity_type: str, entity_id: str) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        # Sort newest first
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
