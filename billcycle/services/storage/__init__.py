"""
Storage Services Package

Provides the abstract record store interface and an in-memory
implementation. The engine never touches storage; the workspace does.
"""

from billcycle.services.storage.interface import (
    RECORD_MODELS,
    AuditStorageInterface,
    DuplicateError,
    NotFoundError,
    RecordKind,
    RecordStore,
    StorageError,
)
from billcycle.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryRecordStore,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "RecordKind",
    "RecordStore",
    "RECORD_MODELS",
    # Exceptions
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryRecordStore",
]
