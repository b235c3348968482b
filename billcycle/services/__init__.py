"""Services package."""

from billcycle.services.storage import (
    AuditStorageInterface,
    DuplicateError,
    InMemoryAuditStorage,
    InMemoryRecordStore,
    NotFoundError,
    RecordKind,
    RecordStore,
    StorageError,
)

__all__ = [
    "AuditStorageInterface",
    "DuplicateError",
    "InMemoryAuditStorage",
    "InMemoryRecordStore",
    "NotFoundError",
    "RecordKind",
    "RecordStore",
    "StorageError",
]
