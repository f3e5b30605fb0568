"""
congregation_backup.storage - Persistent document store

One SQLite table per entity collection, with bulk operations and staging.
"""

from congregation_backup.storage.db import (
    BulkWriteError,
    CongregationDatabase,
    EntityStore,
    RecordValidationError,
    StoreError,
)

__all__ = [
    "BulkWriteError",
    "CongregationDatabase",
    "EntityStore",
    "RecordValidationError",
    "StoreError",
]
