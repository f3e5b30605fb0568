"""
Single-flight lock around restore operations.

Two restores running at once would wipe and reload the same collections
in interleaved order. RestoreLock admits one restore at a time: a thread
lock covers callers inside one process, and a PID lock file covers
separate processes (e.g. two CLI invocations) sharing a config directory.
"""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from types import TracebackType

logger = logging.getLogger(__name__)

LOCK_FILE_NAME = "restore.lock"


class RestoreInProgressError(Exception):
    """Raised when a restore is requested while another one is running."""

    def __init__(self, message: str = "Restore already in progress"):
        super().__init__(message)


class LockFileError(Exception):
    """Raised when the lock file cannot be written or removed."""

    pass


class RestoreLock:
    """
    Non-blocking mutual exclusion for restores.

    Usage:
        lock = RestoreLock(config_dir / "restore.lock")
        with lock:
            restorer.restore(snapshot)

    Acquiring a held lock raises RestoreInProgressError immediately. A
    lock file left behind by a process that no longer runs is treated as
    stale and replaced.
    """

    def __init__(self, lock_file: Path | None = None):
        """
        Initialize the lock.

        Args:
            lock_file: Path of the PID lock file. If None, only restores
                       within this process are excluded.
        """
        self.lock_file = lock_file
        self._thread_lock = threading.Lock()

    def acquire(self) -> None:
        """
        Take the lock.

        Raises:
            RestoreInProgressError: If another restore holds the lock
            LockFileError: If the lock file cannot be created
        """
        if not self._thread_lock.acquire(blocking=False):
            raise RestoreInProgressError()

        try:
            if self.lock_file is not None:
                self._create_lock_file(self.lock_file)
        except BaseException:
            self._thread_lock.release()
            raise

    def release(self) -> None:
        """Release the lock and remove the lock file."""
        try:
            if self.lock_file is not None and self.read() == os.getpid():
                try:
                    self.lock_file.unlink()
                    logger.debug(f"Removed lock file: {self.lock_file}")
                except FileNotFoundError:
                    pass
                except OSError as e:
                    raise LockFileError(
                        f"Failed to remove lock file {self.lock_file}: {e}"
                    ) from e
        finally:
            self._thread_lock.release()

    def is_locked(self) -> bool:
        """Check whether a restore currently holds the lock."""
        if self._thread_lock.locked():
            return True
        pid = self.read()
        return pid is not None and self._is_process_running(pid)

    def read(self) -> int | None:
        """
        Read the PID stored in the lock file.

        Returns:
            The PID, or None if there is no lock file or it is unreadable
        """
        if self.lock_file is None or not self.lock_file.exists():
            return None

        try:
            return int(self.lock_file.read_text().strip())
        except (OSError, ValueError):
            return None

    def __enter__(self) -> RestoreLock:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()

    def _create_lock_file(self, lock_file: Path) -> None:
        for _attempt in range(2):
            try:
                lock_file.parent.mkdir(parents=True, exist_ok=True)
                fd = os.open(
                    lock_file, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644
                )
            except FileExistsError:
                pid = self.read()
                if pid is not None and self._is_process_running(pid):
                    logger.warning(f"Restore already running with PID {pid}")
                    raise RestoreInProgressError() from None
                logger.warning(
                    f"Removing stale lock file {lock_file} (PID {pid})"
                )
                try:
                    lock_file.unlink()
                except FileNotFoundError:
                    pass
                continue
            except OSError as e:
                raise LockFileError(
                    f"Failed to create lock file {lock_file}: {e}"
                ) from e

            with os.fdopen(fd, "w") as f:
                f.write(str(os.getpid()))
            logger.debug(f"Created lock file: {lock_file} (PID: {os.getpid()})")
            return

        raise RestoreInProgressError()

    @staticmethod
    def _is_process_running(pid: int) -> bool:
        try:
            # Signal 0 only checks that the process exists
            os.kill(pid, 0)
            return True
        except ProcessLookupError:
            return False
        except PermissionError:
            # Exists, owned by someone else
            return True
