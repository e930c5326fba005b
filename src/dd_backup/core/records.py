"""Backup image file names.

Image files are named ``<YYYY-MM-DD>_<name>_<model>_<serial>.img`` where the
name segment, including its separator, is left out for unnamed devices.
Files written by older releases must keep parsing, so this format is fixed.
"""

import re
from dataclasses import dataclass
from datetime import date
from typing import Optional

SUFFIX = ".img"
SEPARATOR = "_"
UNKNOWN_MODEL = "unknown"

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_UNSAFE_RE = re.compile(r"[\s_/]+")


def normalize_field(value: Optional[str]) -> Optional[str]:
    """Make a value usable as one file name segment.

    Whitespace, separators and slashes collapse to ``-``; empty values
    become None.
    """
    if value is None:
        return None
    value = _UNSAFE_RE.sub("-", value.strip()).strip("-")
    return value or None


@dataclass(frozen=True)
class BackupRecord:
    """Structured form of an image file name."""

    date: date
    name: Optional[str]
    model: Optional[str]
    serial: str

    @classmethod
    def for_device(
        cls,
        backup_date: date,
        name: Optional[str],
        model: Optional[str],
        serial: str,
    ) -> "BackupRecord":
        """Build a normalized record for a device backup."""
        serial = normalize_field(serial)
        if serial is None:
            raise ValueError("A backup record needs a serial")
        return cls(
            date=backup_date,
            name=normalize_field(name),
            model=normalize_field(model) or UNKNOWN_MODEL,
            serial=serial,
        )

    @property
    def filename(self) -> str:
        return format_filename(self)

    def matches(self, other: "BackupRecord") -> bool:
        """True if ``other`` agrees on every identity field set on self."""
        for attr in ("name", "model", "serial"):
            mine = getattr(self, attr)
            if mine is not None and getattr(other, attr) != mine:
                return False
        return True


def format_filename(record: BackupRecord) -> str:
    """Render ``record`` as an image file name.

    Raises:
        ValueError: If a segment would make the name ambiguous
    """
    if record.name is not None and record.model is None:
        raise ValueError("A named backup record needs a model")

    segments = [record.date.isoformat(), record.name, record.model, record.serial]
    for segment in segments[1:]:
        if segment is not None and normalize_field(segment) != segment:
            raise ValueError(f"Invalid file name segment: {segment!r}")
    return SEPARATOR.join(s for s in segments if s is not None) + SUFFIX


def parse_filename(filename: str) -> Optional[BackupRecord]:
    """Parse an image file name, returning None for foreign files."""
    if not filename.endswith(SUFFIX):
        return None

    parts = filename[: -len(SUFFIX)].split(SEPARATOR)
    if not 2 <= len(parts) <= 4 or not all(parts):
        return None
    if not _DATE_RE.match(parts[0]):
        return None
    try:
        backup_date = date.fromisoformat(parts[0])
    except ValueError:
        return None

    fields = parts[1:]
    name = fields[-3] if len(fields) == 3 else None
    model = fields[-2] if len(fields) >= 2 else None
    return BackupRecord(date=backup_date, name=name, model=model, serial=fields[-1])
