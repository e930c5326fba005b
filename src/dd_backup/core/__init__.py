"""Core backup engine for dd-backup.

Planning, mount handling, image copies and copy rotation, organized into
focused modules.
"""

from .operations import execute_plan, run_backups
from .planning import ConfigValidationError, build_plan, validate_config
from .records import BackupRecord, format_filename, parse_filename

__all__ = [
    "run_backups",
    "execute_plan",
    "build_plan",
    "validate_config",
    "ConfigValidationError",
    "BackupRecord",
    "format_filename",
    "parse_filename",
]
