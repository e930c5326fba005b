"""dd-backup: dd_backup/__init__.py."""

__version__ = "0.3.0"
