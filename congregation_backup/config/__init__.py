"""
congregation_backup.config - Configuration management module

Contains configuration loading, validation, and default config generation.
"""

from congregation_backup.config.generator import (
    generate_default_config,
    save_config_file,
)
from congregation_backup.config.loader import (
    DEFAULT_CONFIG_FILE,
    ConfigError,
    ConfigLoader,
)

__all__ = [
    "DEFAULT_CONFIG_FILE",
    "ConfigError",
    "ConfigLoader",
    "generate_default_config",
    "save_config_file",
]
