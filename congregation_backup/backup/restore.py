"""
Snapshot restore.

Replaces the contents of every registered collection with the contents
of a snapshot. Two strategies are available:

- staged (default): every collection is loaded into a staging table
  first. Only when all of them loaded cleanly are the staging tables
  promoted to live, in a single transaction. Any failure leaves the live
  store exactly as it was.
- direct: every live collection is wiped, then reloaded. A failure part
  way through leaves the store partially wiped; rerun the restore from a
  known-good snapshot.

Records are inserted unordered (a bad record does not stop the rest) and
without validation, since they were exported from an equivalent store.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, TypeVar

from congregation_backup.backup.registry import (
    LEGACY_ALIASES,
    EntityRegistry,
    RegistryEntry,
)
from congregation_backup.backup.snapshot import DEFAULT_MAX_WORKERS, Snapshot
from congregation_backup.storage.db import BulkWriteError, StoreError

logger = logging.getLogger(__name__)

STRATEGY_STAGED = "staged"
STRATEGY_DIRECT = "direct"
RESTORE_STRATEGIES = (STRATEGY_STAGED, STRATEGY_DIRECT)

INSERT_OPTIONS: dict[str, Any] = {"ordered": False, "validate": False}

T = TypeVar("T")


@dataclass
class EntityRestoreResult:
    """Result of restoring a single collection."""

    name: str
    deleted: int = 0
    inserted: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "deleted": self.deleted,
            "inserted": self.inserted,
            "error": self.error,
        }


@dataclass
class RestoreOutcome:
    """
    Result of a restore.

    Attributes:
        success: True if every collection was restored
        error: Aggregate failure message, present only when success is False
        entities: Per-collection results in registry order
    """

    success: bool
    error: str | None = None
    entities: list[EntityRestoreResult] = field(default_factory=list)

    @property
    def failed(self) -> list[EntityRestoreResult]:
        return [result for result in self.entities if not result.ok]

    @property
    def total_inserted(self) -> int:
        return sum(result.inserted for result in self.entities)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "success": self.success,
            "entities": [entity.to_dict() for entity in self.entities],
        }
        if not self.success:
            result["error"] = self.error
        return result


def resolve_entity_data(
    snapshot: Snapshot, registry: EntityRegistry
) -> dict[str, list[dict[str, Any]]]:
    """
    Map snapshot data onto registry collections.

    Applies the two known renames from older snapshots: when
    "territoryAssignments" is absent, territory assignments are loaded
    from "assignments"; when "fieldServiceReports" is absent, field
    service reports are loaded from "reports". Keys matching neither a
    collection nor a legacy name are ignored.

    Returns:
        Every registry name mapped to the records to load (possibly empty)
    """
    data = snapshot.data
    resolved: dict[str, list[dict[str, Any]]] = {}

    for name in registry.names():
        records = data.get(name)
        legacy_name = LEGACY_ALIASES.get(name)
        if records is None and legacy_name and data.get(legacy_name) is not None:
            logger.info(f"Loading {name} from legacy '{legacy_name}' data")
            records = data[legacy_name]
        resolved[name] = list(records or [])

    known = set(registry.names()) | set(LEGACY_ALIASES.values())
    for name in data:
        if name not in known:
            logger.warning(f"Ignoring unknown collection in snapshot: {name}")

    return resolved


def _outcome(
    results: Sequence[EntityRestoreResult], note: str = ""
) -> RestoreOutcome:
    failed = [result for result in results if not result.ok]
    if not failed:
        return RestoreOutcome(success=True, entities=list(results))

    details = "; ".join(f"{result.name}: {result.error}" for result in failed)
    error = f"Restore failed for {len(failed)} collection(s): {details}"
    if note:
        error = f"{error}. {note}"
    return RestoreOutcome(success=False, error=error, entities=list(results))


class SnapshotRestorer:
    """
    Restores every registered collection from a snapshot.

    Usage:
        restorer = SnapshotRestorer(registry)
        outcome = restorer.restore(snapshot)
        if not outcome.success:
            for failure in outcome.failed:
                print(failure.name, failure.error)
    """

    def __init__(
        self,
        registry: EntityRegistry,
        max_workers: int = DEFAULT_MAX_WORKERS,
        strategy: str = STRATEGY_STAGED,
    ):
        if strategy not in RESTORE_STRATEGIES:
            raise ValueError(
                f"Invalid restore strategy '{strategy}'. "
                f"Must be one of: {', '.join(RESTORE_STRATEGIES)}"
            )
        self.registry = registry
        self.max_workers = max_workers
        self.strategy = strategy

    def restore(self, payload: Snapshot | dict[str, Any]) -> RestoreOutcome:
        """
        Replace all collections with the contents of a snapshot.

        Args:
            payload: A Snapshot or a parsed snapshot file

        Returns:
            RestoreOutcome with per-collection results

        Raises:
            SnapshotFormatError: If the payload is not a usable snapshot
            StoreError: If staging tables cannot be created or promoted
        """
        if isinstance(payload, Snapshot):
            snapshot = payload
        else:
            snapshot = Snapshot.from_dict(payload)
        data = resolve_entity_data(snapshot, self.registry)

        total = sum(len(records) for records in data.values())
        logger.info(
            f"Restoring snapshot version {snapshot.version} "
            f"({total} records, strategy={self.strategy})"
        )

        if self.strategy == STRATEGY_DIRECT:
            outcome = self._restore_direct(data)
        else:
            outcome = self._restore_staged(data)

        if outcome.success:
            logger.info(f"Restore complete: {outcome.total_inserted} records loaded")
        else:
            logger.error(outcome.error)
        return outcome

    # =========================================================================
    # Strategies
    # =========================================================================

    def _restore_staged(
        self, data: dict[str, list[dict[str, Any]]]
    ) -> RestoreOutcome:
        entries = self.registry.list()
        tables = self.registry.tables()
        results = {entry.name: EntityRestoreResult(entry.name) for entry in entries}

        def stage(entry: RegistryEntry) -> int:
            staging = entry.store.staging()
            records = data[entry.name]
            if not records:
                return 0
            return staging.insert_many(records, **INSERT_OPTIONS)

        try:
            for entry, value in self._run_all(stage, entries):
                self._record_insert(results[entry.name], value, "staging")

            if any(not result.ok for result in results.values()):
                self.registry.db.drop_staging(tables)
                return _outcome(
                    list(results.values()), "No changes were applied"
                )

            replaced = self.registry.db.promote_staging(tables)
        except StoreError:
            self.registry.db.drop_staging(tables)
            raise

        for entry in entries:
            results[entry.name].deleted = replaced.get(entry.table, 0)
        return _outcome(list(results.values()))

    def _restore_direct(
        self, data: dict[str, list[dict[str, Any]]]
    ) -> RestoreOutcome:
        entries = self.registry.list()
        results = {entry.name: EntityRestoreResult(entry.name) for entry in entries}

        for entry, value in self._run_all(lambda e: e.store.delete_all(), entries):
            if isinstance(value, Exception):
                results[entry.name].error = f"delete failed: {value}"
            else:
                results[entry.name].deleted = value

        if any(not result.ok for result in results.values()):
            return _outcome(
                list(results.values()),
                "The store may be partially wiped; rerun restore from a "
                "known-good snapshot",
            )

        to_load = [entry for entry in entries if data[entry.name]]
        for entry, value in self._run_all(
            lambda e: e.store.insert_many(data[e.name], **INSERT_OPTIONS), to_load
        ):
            self._record_insert(results[entry.name], value)

        return _outcome(
            list(results.values()),
            "The store may be partially restored; rerun restore from a "
            "known-good snapshot",
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    def _run_all(
        self,
        func: Callable[[RegistryEntry], T],
        entries: Sequence[RegistryEntry],
    ) -> list[tuple[RegistryEntry, T | Exception]]:
        """
        Run func for every entry concurrently and wait for all of them.

        Failures are returned in place of results so every collection
        gets reported.
        """
        if not entries:
            return []

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = [(entry, executor.submit(func, entry)) for entry in entries]

            results: list[tuple[RegistryEntry, T | Exception]] = []
            for entry, future in futures:
                try:
                    results.append((entry, future.result()))
                except Exception as e:
                    logger.debug(f"{entry.name} failed: {e}")
                    results.append((entry, e))
            return results

    @staticmethod
    def _record_insert(
        result: EntityRestoreResult, value: Any, action: str = "insert"
    ) -> None:
        if isinstance(value, BulkWriteError):
            result.inserted = value.inserted
            result.error = f"{action} failed: {value}"
        elif isinstance(value, Exception):
            result.error = f"{action} failed: {value}"
        else:
            result.inserted = value
