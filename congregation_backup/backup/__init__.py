"""
Snapshot backup and restore for congregation data.

This module captures every entity collection into one versioned snapshot,
restores the store from a snapshot, and exports snapshots as JSON or CSV.
"""

from congregation_backup.backup.archive import BackupArchive
from congregation_backup.backup.export import ExportFile, ExportFormatter
from congregation_backup.backup.lock import RestoreInProgressError, RestoreLock
from congregation_backup.backup.registry import (
    ENTITY_NAMES,
    LEGACY_ALIASES,
    EntityRegistry,
    RegistryEntry,
)
from congregation_backup.backup.restore import (
    RestoreOutcome,
    SnapshotRestorer,
    resolve_entity_data,
)
from congregation_backup.backup.service import BackupService, OperationResult
from congregation_backup.backup.snapshot import (
    SNAPSHOT_VERSION,
    Snapshot,
    SnapshotBuilder,
    SnapshotFormatError,
)

__all__ = [
    "ENTITY_NAMES",
    "LEGACY_ALIASES",
    "SNAPSHOT_VERSION",
    "BackupArchive",
    "BackupService",
    "EntityRegistry",
    "ExportFile",
    "ExportFormatter",
    "OperationResult",
    "RegistryEntry",
    "RestoreInProgressError",
    "RestoreLock",
    "RestoreOutcome",
    "Snapshot",
    "SnapshotBuilder",
    "SnapshotFormatError",
    "SnapshotRestorer",
    "resolve_entity_data",
]
