"""
congregation_backup.utils - Utility module

Common utilities including path resolution and record serialization.
"""

from congregation_backup.utils.paths import DEFAULT_CONFIG_DIR, resolve_config_dir
from congregation_backup.utils.serialization import serialize_record, serialize_value

__all__ = [
    "DEFAULT_CONFIG_DIR",
    "resolve_config_dir",
    "serialize_record",
    "serialize_value",
]
