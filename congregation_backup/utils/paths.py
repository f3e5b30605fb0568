"""
Path utilities for configuration directory resolution.

Provides consistent path resolution for the congregation-backup
configuration directory across all modules.
"""

from __future__ import annotations

import os
from pathlib import Path

# Default configuration directory
DEFAULT_CONFIG_DIR = Path.home() / ".congregation-backup"

# Environment variable for overriding config directory
CONFIG_DIR_ENV_VAR = "CONGREGATION_BACKUP_CONFIG_DIR"

# Default database file name inside the configuration directory
DEFAULT_DATABASE_FILE = "congregation.db"


def resolve_config_dir(config_dir: Path | str | None = None) -> Path:
    """
    Resolve the configuration directory path.

    Priority:
        1. Explicit config_dir parameter (if provided)
        2. CONGREGATION_BACKUP_CONFIG_DIR environment variable
        3. Default directory (~/.congregation-backup)

    Args:
        config_dir: Optional explicit configuration directory path.
                   Can be a Path object or string.

    Returns:
        Resolved Path to the configuration directory (expanduser and resolve applied)
    """
    if config_dir is not None:
        return Path(config_dir).expanduser().resolve()

    env_dir = os.environ.get(CONFIG_DIR_ENV_VAR)
    if env_dir:
        return Path(env_dir).expanduser().resolve()

    return DEFAULT_CONFIG_DIR.expanduser().resolve()


def resolve_database_path(
    config_dir: Path, database_path: Path | str | None = None
) -> str:
    """
    Resolve the path of the congregation database.

    An explicit path wins; ':memory:' is passed through untouched.
    Otherwise the database lives in the configuration directory.
    """
    if database_path is not None:
        if str(database_path) == ":memory:":
            return ":memory:"
        return str(Path(database_path).expanduser())
    return str(config_dir / DEFAULT_DATABASE_FILE)
