"""
Backup archive for snapshot files kept on disk.

Provides functionality to:
- Save snapshots as JSON files with timestamp naming
- List available snapshot files sorted by timestamp
- Load snapshot files for restore operations
- Apply retention policy to limit the number of kept files
"""

from __future__ import annotations

import contextlib
import json
import logging
from datetime import datetime
from pathlib import Path

from congregation_backup.backup.snapshot import Snapshot, SnapshotFormatError

logger = logging.getLogger(__name__)


class BackupArchive:
    """
    Directory of timestamped snapshot files.

    Attributes:
        backup_dir: Directory path where snapshot files are stored
        retention_count: Maximum number of files to retain (0 = unlimited)

    Usage:
        archive = BackupArchive(Path("~/.congregation-backup/backups"))

        # Save a snapshot
        path = archive.save(snapshot)

        # List available backups
        backups = archive.list_backups()

        # Load specific backup
        snapshot = archive.load(path)
    """

    BACKUP_PREFIX = "backup_"
    BACKUP_SUFFIX = ".json"

    def __init__(self, backup_dir: Path | str, retention_count: int = 10):
        """
        Initialize the archive.

        Args:
            backup_dir: Directory path where backups will be stored
            retention_count: Maximum number of backups to keep (0 = keep all)
        """
        self.backup_dir = Path(backup_dir).expanduser()
        self.retention_count = retention_count

        self.backup_dir.mkdir(parents=True, exist_ok=True)

    def save(self, snapshot: Snapshot) -> Path:
        """
        Write a snapshot to a new timestamped file.

        Creates a JSON file named backup_YYYYMMDD_HHMMSS.json. If a file
        with that name already exists a numeric suffix is added.

        Returns:
            Path to the created file

        Raises:
            OSError: If the file cannot be written
        """
        ts_str = datetime.now().strftime("%Y%m%d_%H%M%S")
        filename = f"{self.BACKUP_PREFIX}{ts_str}{self.BACKUP_SUFFIX}"
        backup_path = self.backup_dir / filename
        counter = 1
        while backup_path.exists():
            backup_path = self.backup_dir / (
                f"{self.BACKUP_PREFIX}{ts_str}_{counter}{self.BACKUP_SUFFIX}"
            )
            counter += 1

        with open(backup_path, "w", encoding="utf-8") as f:
            json.dump(snapshot.to_dict(), f, indent=2, ensure_ascii=False)

        logger.info(f"Saved backup to {backup_path}")
        self.apply_retention()
        return backup_path

    def list_backups(self) -> list[Path]:
        """
        List all available backup files sorted by timestamp (newest first).

        Returns:
            List of Path objects for backup files, sorted newest to oldest
        """
        backup_files = list(
            self.backup_dir.glob(f"{self.BACKUP_PREFIX}*{self.BACKUP_SUFFIX}")
        )
        backup_files.sort(key=lambda p: (p.stat().st_mtime, p.name), reverse=True)
        return backup_files

    def read(self, backup_file: Path | str) -> Snapshot:
        """
        Read and parse a snapshot file.

        Raises:
            OSError: If the file cannot be read
            json.JSONDecodeError: If the file is not valid JSON
            SnapshotFormatError: If the content is not a supported snapshot
        """
        with open(backup_file, encoding="utf-8") as f:
            payload = json.load(f)
        return Snapshot.from_dict(payload)

    def load(self, backup_file: Path | str) -> Snapshot | None:
        """
        Load and parse a snapshot file.

        Args:
            backup_file: Path to the file to load

        Returns:
            The Snapshot, or None if the file cannot be read or is not a
            supported snapshot
        """
        try:
            return self.read(backup_file)
        except (OSError, ValueError, SnapshotFormatError) as e:
            logger.warning(f"Cannot load backup {backup_file}: {e}")
            return None

    def apply_retention(self) -> int:
        """
        Apply retention policy by deleting old backups.

        Keeps only the most recent N backups where N = retention_count.
        If retention_count is 0, all backups are kept.

        Returns:
            Number of backups deleted
        """
        if self.retention_count == 0:
            return 0

        deleted = 0
        for backup in self.list_backups()[self.retention_count :]:
            with contextlib.suppress(OSError):
                backup.unlink()
                deleted += 1
                logger.debug(f"Removed old backup {backup.name}")
        return deleted
