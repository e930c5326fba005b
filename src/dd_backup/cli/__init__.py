"""Command line interface for dd-backup."""

from .dispatcher import main

__all__ = ["main"]
