"""
Logging setup for the congregation-backup command line.

Console messages go to stderr, one short line each unless verbose. Every
run also appends to a dated file in the log directory (<config-dir>/logs
unless log_dir is configured), always at DEBUG. Old files beyond
log_retention_count are pruned by cleanup_old_logs.

Environment:
    CONGREGATION_BACKUP_LOG_LEVEL  console level name (default INFO)
    CONGREGATION_BACKUP_DEBUG      "1", "true" or "yes" forces DEBUG
    CONGREGATION_BACKUP_LOG_FILE   explicit log file, or "none" to disable
"""

import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

import click

from congregation_backup.utils.paths import resolve_config_dir

# Every module logger hangs under the package logger
ROOT_LOGGER_NAME = "congregation_backup"

CONSOLE_FORMAT = "%(levelname)s: %(message)s"
FILE_FORMAT = (
    "%(asctime)s %(levelname)-8s %(name)s [%(filename)s:%(lineno)d] %(message)s"
)
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

ENV_LOG_LEVEL = "CONGREGATION_BACKUP_LOG_LEVEL"
ENV_DEBUG = "CONGREGATION_BACKUP_DEBUG"
ENV_LOG_FILE = "CONGREGATION_BACKUP_LOG_FILE"

LOG_FILE_PREFIX = "congregation_backup_"

LEVEL_COLORS = {
    "DEBUG": "cyan",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "magenta",
}


class ConsoleFormatter(logging.Formatter):
    """
    Formatter for the stderr handler.

    Uses the short format, or the file format when verbose. With colors
    on, whole lines are styled by level through click.style.
    """

    def __init__(self, verbose: bool = False, colors: bool = False):
        super().__init__(FILE_FORMAT if verbose else CONSOLE_FORMAT, DATE_FORMAT)
        self.colors = colors

    def formatMessage(self, record: logging.LogRecord) -> str:
        text = super().formatMessage(record)
        color = LEVEL_COLORS.get(record.levelname)
        if self.colors and color:
            return click.style(text, fg=color)
        return text


def _stderr_supports_color() -> bool:
    if os.environ.get("NO_COLOR"):
        return False
    isatty = getattr(sys.stderr, "isatty", None)
    return bool(isatty and isatty()) and os.environ.get("TERM") != "dumb"


def console_level() -> int:
    """
    Get the console level from the environment.

    Unknown level names fall back to INFO.
    """
    if os.environ.get(ENV_DEBUG, "").lower() in ("1", "true", "yes"):
        return logging.DEBUG

    level = getattr(logging, os.environ.get(ENV_LOG_LEVEL, "INFO").upper(), None)
    return level if isinstance(level, int) else logging.INFO


def dated_log_name(now: Optional[datetime] = None) -> str:
    return f"{LOG_FILE_PREFIX}{(now or datetime.now()).strftime('%Y%m%d')}.log"


def log_file_for(log_dir: Path) -> Optional[Path]:
    """
    Get the file this run logs to.

    Returns:
        CONGREGATION_BACKUP_LOG_FILE when set, today's dated file in
        log_dir otherwise, or None when file logging is turned off
    """
    override = os.environ.get(ENV_LOG_FILE)
    if override is not None:
        if override.lower() in ("", "none", "disabled"):
            return None
        return Path(override).expanduser()
    return log_dir / dated_log_name()


def setup_logging(
    verbose: bool = False, log_dir: Optional[Path] = None
) -> logging.Logger:
    """
    Configure the package logger for one CLI run.

    Replaces any handlers from an earlier call. A log file that cannot be
    created is reported as a warning and the run continues with console
    output only.

    Args:
        verbose: Log DEBUG to the console, in the detailed format
        log_dir: Directory of the dated log files (default <config-dir>/logs)

    Returns:
        The congregation_backup logger
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(logging.DEBUG if verbose else console_level())
    console.setFormatter(ConsoleFormatter(verbose, colors=_stderr_supports_color()))
    logger.addHandler(console)

    log_file = log_file_for(log_dir or resolve_config_dir() / "logs")
    if log_file is not None:
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file, encoding="utf-8")
        except OSError as e:
            logger.warning(f"Could not create log file {log_file}: {e}")
        else:
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(logging.Formatter(FILE_FORMAT, DATE_FORMAT))
            logger.addHandler(file_handler)
            logger.debug(f"Log file: {log_file}")

    return logger


def cleanup_old_logs(log_dir: Path, keep_count: int = 10) -> int:
    """
    Delete dated log files beyond the newest keep_count.

    Dated names sort chronologically, so the newest files are the last
    ones by name. Files without the log prefix are never touched.

    Returns:
        Number of files deleted (0 when keep_count is 0)
    """
    if keep_count <= 0 or not log_dir.is_dir():
        return 0

    logs = sorted(log_dir.glob(f"{LOG_FILE_PREFIX}*.log"), reverse=True)
    deleted = 0
    for old_log in logs[keep_count:]:
        try:
            old_log.unlink()
        except OSError as e:
            get_logger(__name__).debug(f"Could not remove old log {old_log}: {e}")
            continue
        deleted += 1
    return deleted


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the congregation_backup hierarchy."""
    if not name.startswith(ROOT_LOGGER_NAME):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)


__all__ = [
    "ConsoleFormatter",
    "ROOT_LOGGER_NAME",
    "cleanup_old_logs",
    "console_level",
    "get_logger",
    "log_file_for",
    "setup_logging",
]
