"""
Backup entry points.

BackupService is the callable surface of the snapshot subsystem:
create_backup, restore_backup and export_backup_file. Each returns an
OperationResult and never raises; failures are logged and reported as
{"success": False, "error": "..."}.

Both backup and restore require an authenticated caller. Restores are
single-flight: a second restore while one is running is rejected.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from congregation_backup.auth.session import Session, Unauthorized, require_user
from congregation_backup.backup.export import ExportFile, ExportFormatter
from congregation_backup.backup.lock import (
    LOCK_FILE_NAME,
    LockFileError,
    RestoreInProgressError,
    RestoreLock,
)
from congregation_backup.backup.registry import EntityRegistry
from congregation_backup.backup.restore import (
    STRATEGY_STAGED,
    RestoreOutcome,
    SnapshotRestorer,
)
from congregation_backup.backup.snapshot import (
    DEFAULT_MAX_WORKERS,
    Snapshot,
    SnapshotBuilder,
    SnapshotFormatError,
)

logger = logging.getLogger(__name__)

EXPORT_FORMATS = ("json", "csv")
DEFAULT_CSV_TYPE = "members"


@dataclass
class OperationResult:
    """
    Result of an entry point call.

    Attributes:
        success: Whether the operation succeeded
        data: Snapshot, RestoreOutcome or ExportFile, depending on the call
        error: Failure message, present only when success is False
    """

    success: bool
    data: Any = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"success": self.success}
        if self.data is not None:
            result["data"] = (
                self.data.to_dict() if hasattr(self.data, "to_dict") else self.data
            )
        if not self.success:
            result["error"] = self.error
        return result


class BackupService:
    """
    Entry points for backup, restore and export.

    Usage:
        registry = EntityRegistry(CongregationDatabase("congregation.db"))
        service = BackupService(registry, StaticSession(user))

        result = service.create_backup()
        if result.success:
            snapshot = result.data

        result = service.export_backup_file("csv", "members")
        result = service.restore_backup(snapshot.to_dict())
    """

    def __init__(
        self,
        registry: EntityRegistry,
        session: Session,
        builder: SnapshotBuilder | None = None,
        restorer: SnapshotRestorer | None = None,
        formatter: ExportFormatter | None = None,
        restore_lock: RestoreLock | None = None,
    ):
        self.registry = registry
        self.session = session
        self.builder = builder or SnapshotBuilder(registry)
        self.restorer = restorer or SnapshotRestorer(registry)
        self.formatter = formatter or ExportFormatter()
        self.restore_lock = restore_lock or RestoreLock()

    @classmethod
    def from_config(
        cls,
        registry: EntityRegistry,
        session: Session,
        config: dict[str, Any],
        config_dir: Path | None = None,
    ) -> BackupService:
        """
        Create a service using configuration file settings.

        Reads max_workers, restore_strategy and backup_consistent_read.
        With a config_dir, restores are also excluded across processes
        through a lock file in that directory.
        """
        max_workers = config.get("max_workers", DEFAULT_MAX_WORKERS)
        lock_file = config_dir / LOCK_FILE_NAME if config_dir else None
        return cls(
            registry,
            session,
            builder=SnapshotBuilder(
                registry,
                max_workers=max_workers,
                consistent_read=config.get("backup_consistent_read", False),
            ),
            restorer=SnapshotRestorer(
                registry,
                max_workers=max_workers,
                strategy=config.get("restore_strategy", STRATEGY_STAGED),
            ),
            restore_lock=RestoreLock(lock_file),
        )

    def create_backup(self) -> OperationResult:
        """
        Build a snapshot of every collection.

        Returns:
            OperationResult with the Snapshot as data
        """
        try:
            user = require_user(self.session)
            snapshot = self.builder.build(user)
            return OperationResult(success=True, data=snapshot)
        except Unauthorized as e:
            logger.warning("Backup rejected: no authenticated caller")
            return OperationResult(success=False, error=str(e))
        except Exception as e:
            logger.exception(f"Backup failed: {e}")
            return OperationResult(success=False, error=str(e))

    def restore_backup(
        self, payload: Snapshot | dict[str, Any], strategy: str | None = None
    ) -> OperationResult:
        """
        Replace every collection with the contents of a snapshot.

        Args:
            payload: A Snapshot or a parsed snapshot file
            strategy: Override the configured restore strategy for this call

        Returns:
            OperationResult with the RestoreOutcome as data (also on
            per-collection failures)
        """
        try:
            user = require_user(self.session)
            restorer = self.restorer
            if strategy and strategy != restorer.strategy:
                restorer = SnapshotRestorer(
                    self.registry,
                    max_workers=restorer.max_workers,
                    strategy=strategy,
                )

            self.restore_lock.acquire()
            try:
                logger.info(f"Restore requested by {user.id}")
                outcome: RestoreOutcome = restorer.restore(payload)
            finally:
                self._release_restore_lock()
        except (
            Unauthorized,
            RestoreInProgressError,
            SnapshotFormatError,
            ValueError,
        ) as e:
            logger.warning(f"Restore rejected: {e}")
            return OperationResult(success=False, error=str(e))
        except Exception as e:
            logger.exception(f"Restore failed: {e}")
            return OperationResult(success=False, error=str(e))

        if not outcome.success:
            return OperationResult(success=False, data=outcome, error=outcome.error)
        return OperationResult(success=True, data=outcome)

    def _release_restore_lock(self) -> None:
        try:
            self.restore_lock.release()
        except LockFileError as e:
            logger.warning(f"Could not release restore lock: {e}")

    def export_backup_file(
        self, fmt: str = "json", data_type: str | None = None
    ) -> OperationResult:
        """
        Build a snapshot and format it as a downloadable file.

        Args:
            fmt: "json" for the full snapshot, "csv" for one entity type
            data_type: Entity type for CSV exports (default "members")

        Returns:
            OperationResult with the ExportFile as data
        """
        result = self.create_backup()
        if not result.success:
            return OperationResult(success=False, error=result.error)

        snapshot: Snapshot = result.data
        export: ExportFile
        try:
            if fmt == "json":
                export = self.formatter.to_json(snapshot)
            elif fmt == "csv":
                export = self.formatter.to_csv(snapshot, data_type or DEFAULT_CSV_TYPE)
            else:
                logger.warning(f"Export rejected: unsupported format {fmt!r}")
                return OperationResult(
                    success=False, error=f"Unsupported format: {fmt}"
                )
        except Exception as e:
            logger.exception(f"Export failed: {e}")
            return OperationResult(success=False, error=str(e))

        logger.info(f"Exported {export.filename}")
        return OperationResult(success=True, data=export)
