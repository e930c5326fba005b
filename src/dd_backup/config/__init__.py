"""Configuration system for dd-backup.

This module provides JSON/TOML configuration loading, validation,
and schema definitions for block device image backups.
"""

from .loader import ConfigError, find_config_file, load_config, parse_config
from .schema import (
    Config,
    DestinationConfig,
    DeviceConfig,
)

__all__ = [
    "Config",
    "DestinationConfig",
    "DeviceConfig",
    "load_config",
    "parse_config",
    "find_config_file",
    "ConfigError",
]
