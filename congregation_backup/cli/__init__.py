"""CLI package for congregation_backup."""

from congregation_backup.cli.formatters import (
    show_backup_list,
    show_entity_counts,
    show_restore_preview,
    show_restore_summary,
)
from congregation_backup.cli.main import (
    cli,
    create_service,
    get_backup_dir,
    get_config_dir,
    get_config_file,
    open_registry,
)
from congregation_backup.config.loader import DEFAULT_CONFIG_FILE
from congregation_backup.utils import DEFAULT_CONFIG_DIR

__all__ = [
    "DEFAULT_CONFIG_DIR",
    "DEFAULT_CONFIG_FILE",
    "cli",
    "create_service",
    "get_backup_dir",
    "get_config_dir",
    "get_config_file",
    "open_registry",
    "show_backup_list",
    "show_entity_counts",
    "show_restore_preview",
    "show_restore_summary",
]
