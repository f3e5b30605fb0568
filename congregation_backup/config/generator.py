"""
Configuration file generator for congregation backups.

Provides functionality to generate a default configuration file with
documentation for all available options.
"""

import logging
from pathlib import Path

logger = logging.getLogger(__name__)


def generate_default_config() -> str:
    """
    Generate default YAML configuration with all options documented.

    Returns:
        String containing YAML configuration with comments
    """
    return """# Congregation Backup Configuration
# =================================
#
# CLI arguments always override these values.
#
# To use this configuration:
#   1. Save as ~/.congregation-backup/config.yaml (or custom location)
#   2. Uncomment and modify options as needed
#   3. Run congregation-backup commands normally

# General
# -------

# Enable verbose output with detailed logging
# Default: false
# verbose: true

# Identity recorded as createdBy in snapshots. Backup and restore refuse
# to run without one (also settable with --user or CONGREGATION_BACKUP_USER).
# operator: secretary


# Store
# -----

# Path to the congregation database
# Default: ~/.congregation-backup/congregation.db
# database_path: /srv/congregation/congregation.db

# Number of collections read or written at the same time
# Default: 8
# max_workers: 8


# Backups
# -------

# Directory for snapshot files created by the backup command
# Default: ~/.congregation-backup/backups
# backup_dir: /srv/congregation/backups

# Number of snapshot files to keep (0 = keep all)
# Default: 10
# backup_retention_count: 10

# Read every collection inside one read transaction, so the snapshot is a
# single point in time. When false, collections are read independently and
# concurrent writes may leave cross-collection references unresolved.
# Default: false
# backup_consistent_read: false


# Restore
# -------

# How restores replace the store:
#   - staged: load everything into staging tables, then swap all at once.
#             A failure leaves the store untouched. (recommended)
#   - direct: wipe every collection, then reload. A failure may leave the
#             store partially wiped.
# Default: staged
# restore_strategy: staged


# Logging
# -------

# Directory for log files
# Default: ~/.congregation-backup/logs
# log_dir: /var/log/congregation-backup

# Number of log files to keep (0 = keep all)
# Default: 10
# log_retention_count: 10
"""


def save_config_file(
    config_path: Path, overwrite: bool = False
) -> tuple[bool, str | None]:
    """
    Save default configuration file to specified path.

    Creates parent directories if they don't exist and saves
    the configuration with owner-only permissions.

    Args:
        config_path: Path where the config file should be saved
        overwrite: If True, overwrite existing file. If False, fail if file exists.

    Returns:
        Tuple of (success, error_message)
    """
    try:
        config_path = config_path.expanduser().resolve()

        if config_path.exists() and not overwrite:
            return (
                False,
                f"Configuration file already exists: {config_path}\n"
                "Use --force to overwrite.",
            )

        config_path.parent.mkdir(parents=True, mode=0o700, exist_ok=True)
        config_path.write_text(generate_default_config(), encoding="utf-8")
        config_path.chmod(0o600)

        logger.info(f"Created configuration file: {config_path}")
        return (True, None)

    except OSError as e:
        error_msg = f"Failed to create configuration file: {e}"
        logger.error(error_msg)
        return (False, error_msg)
