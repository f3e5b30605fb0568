"""
Snapshot model and builder.

A snapshot is the whole congregation store captured as one versioned
document:

    {
        "version": "2.0",
        "timestamp": "2024-01-20T10:30:00+00:00",
        "data": {
            "members": [...],
            "groups": [...],
            ...
        },
        "metadata": {
            "totalMembers": 120,
            "totalGroups": 8,
            "totalTerritories": 45,
            "totalRecords": 5321,
            "createdBy": "u1",
            "counts": {"members": 120, "groups": 8, ...}
        }
    }

Version "1.0" snapshots predate the current entity names and are still
accepted for restore.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from congregation_backup.auth.session import Unauthorized, User
from congregation_backup.backup.registry import EntityRegistry

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = "2.0"
LEGACY_VERSION = "1.0"
SUPPORTED_VERSIONS = (LEGACY_VERSION, SNAPSHOT_VERSION)

DEFAULT_MAX_WORKERS = 8


class SnapshotFormatError(Exception):
    """Raised when a snapshot payload has an unusable layout or version."""

    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def build_metadata(
    data: Mapping[str, list[Any]], created_by: str | None
) -> dict[str, Any]:
    """
    Derive snapshot metadata from its data.

    totalRecords is always the sum of every collection's length.
    """
    counts = {name: len(records) for name, records in data.items()}
    return {
        "totalMembers": counts.get("members", 0),
        "totalGroups": counts.get("groups", 0),
        "totalTerritories": counts.get("territories", 0),
        "totalRecords": sum(counts.values()),
        "createdBy": created_by,
        "counts": counts,
    }


@dataclass(frozen=True)
class Snapshot:
    """
    Immutable capture of every entity collection.

    Attributes:
        version: Format tag ("2.0" current, "1.0" legacy)
        timestamp: ISO 8601 creation time, informational only
        data: Entity name -> records, each record an opaque document
        metadata: Counts derived from data at build time
    """

    version: str
    timestamp: str
    data: dict[str, list[dict[str, Any]]]
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def total_records(self) -> int:
        return sum(len(records) for records in self.data.values())

    @property
    def created_by(self) -> str | None:
        return self.metadata.get("createdBy")

    def records(self, name: str) -> list[dict[str, Any]]:
        """Get the records of one collection (empty if absent)."""
        return self.data.get(name) or []

    def count(self, name: str) -> int:
        return len(self.records(name))

    def to_dict(self) -> dict[str, Any]:
        """Convert to the snapshot file layout."""
        return {
            "version": self.version,
            "timestamp": self.timestamp,
            "data": self.data,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, payload: Any) -> Snapshot:
        """
        Create a Snapshot from a parsed snapshot file.

        A missing version is read as legacy "1.0". Missing metadata is
        derived from the data.

        Raises:
            SnapshotFormatError: If the payload is not a snapshot or its
                                 version is not supported
        """
        if not isinstance(payload, Mapping):
            raise SnapshotFormatError(
                f"Invalid backup format: expected an object, "
                f"got {type(payload).__name__}"
            )

        data = payload.get("data")
        if not isinstance(data, Mapping):
            raise SnapshotFormatError("Invalid backup format: missing 'data' object")

        version = payload.get("version", LEGACY_VERSION)
        if version not in SUPPORTED_VERSIONS:
            raise SnapshotFormatError(f"Unsupported backup version: {version}")

        collections: dict[str, list[dict[str, Any]]] = {}
        for name, records in data.items():
            if records is None:
                continue
            if not isinstance(records, list):
                raise SnapshotFormatError(
                    f"Invalid backup format: data.{name} must be a list, "
                    f"got {type(records).__name__}"
                )
            collections[str(name)] = records

        metadata = payload.get("metadata")
        if not isinstance(metadata, Mapping):
            metadata = build_metadata(collections, None)

        return cls(
            version=str(version),
            timestamp=str(payload.get("timestamp", "")),
            data=collections,
            metadata=dict(metadata),
        )


class SnapshotBuilder:
    """
    Builds a Snapshot from the current contents of every registered store.

    By default each collection is read by its own find-all call, all
    issued together on a thread pool. Collections are read independently,
    so a write landing during the build can leave cross-collection
    references unresolved (e.g. an assignment whose member was inserted
    after members were read). Pass consistent_read=True to read every
    collection inside one read transaction instead.

    Usage:
        builder = SnapshotBuilder(registry)
        snapshot = builder.build(user)
    """

    def __init__(
        self,
        registry: EntityRegistry,
        max_workers: int = DEFAULT_MAX_WORKERS,
        consistent_read: bool = False,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.registry = registry
        self.max_workers = max_workers
        self.consistent_read = consistent_read
        self.clock = clock

    def build(self, user: User | None) -> Snapshot:
        """
        Read every collection and assemble a snapshot.

        Args:
            user: The requesting caller; recorded as createdBy

        Returns:
            A new Snapshot at SNAPSHOT_VERSION

        Raises:
            Unauthorized: If user is None (no store is read)
            StoreError: If any collection cannot be read
        """
        if user is None:
            raise Unauthorized()

        if self.consistent_read:
            data = self._read_consistent()
        else:
            data = self._read_concurrent()

        snapshot = Snapshot(
            version=SNAPSHOT_VERSION,
            timestamp=self.clock().isoformat(),
            data=data,
            metadata=build_metadata(data, user.id),
        )
        logger.info(
            f"Built snapshot of {len(data)} collections "
            f"({snapshot.metadata['totalRecords']} records)"
        )
        return snapshot

    def _read_concurrent(self) -> dict[str, list[dict[str, Any]]]:
        entries = self.registry.list()
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures: list[Future[list[dict[str, Any]]]] = [
                executor.submit(entry.store.find_all) for entry in entries
            ]
            try:
                results = [future.result() for future in futures]
            except Exception:
                for future in futures:
                    future.cancel()
                raise

        data = {}
        for entry, records in zip(entries, results):
            logger.debug(f"Read {len(records)} records from {entry.name}")
            data[entry.name] = records
        return data

    def _read_consistent(self) -> dict[str, list[dict[str, Any]]]:
        by_table = self.registry.db.consistent_read(self.registry.tables())
        return {entry.name: by_table[entry.table] for entry in self.registry.list()}
