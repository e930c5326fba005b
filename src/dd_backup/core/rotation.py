"""Copy rotation: keep at most ``copies`` images per device."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .records import BackupRecord, parse_filename

logger = logging.getLogger(__name__)


@dataclass
class RotationResult:
    """Outcome of one rotation pass."""

    kept: list[Path] = field(default_factory=list)
    deleted: list[Path] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


def list_backups(directory: Path) -> list[tuple[Path, BackupRecord]]:
    """Return the image files directly inside ``directory``.

    Files whose names do not parse as backup images are ignored.
    """
    backups = []
    for path in directory.iterdir():
        if not path.is_file():
            continue
        record = parse_filename(path.name)
        if record is None:
            logger.debug("Ignoring foreign file: %s", path.name)
            continue
        backups.append((path, record))
    return backups


def retention_group(
    backups: list[tuple[Path, BackupRecord]], current: BackupRecord
) -> list[tuple[Path, BackupRecord]]:
    """Backups of the same device as ``current``, newest first."""
    group = [(path, record) for path, record in backups if current.matches(record)]
    # Name as tie breaker keeps same-day ordering deterministic
    group.sort(key=lambda item: (item[1].date, item[0].name), reverse=True)
    return group


def rotate(
    directory: Path | str,
    current: BackupRecord,
    copies: Optional[int],
    dry_run: bool = False,
) -> RotationResult:
    """Delete the oldest images of ``current``'s device beyond ``copies``.

    Args:
        directory: Directory holding the images
        current: Record of the image that was just written
        copies: Images to keep, None keeps everything
        dry_run: Only report what would be deleted, counting ``current`` as
            present even though it has not been written

    Returns:
        RotationResult; deletion failures are collected, not raised
    """
    directory = Path(directory)
    result = RotationResult()

    try:
        backups = list_backups(directory)
    except OSError as e:
        result.errors.append(f"Failed to read backup directory {directory}: {e}")
        logger.error("%s", result.errors[-1])
        return result

    planned = directory / current.filename
    if dry_run and all(path != planned for path, _ in backups):
        backups.append((planned, current))
    group = retention_group(backups, current)

    if copies is None or len(group) <= copies:
        result.kept = [path for path, _ in group]
        logger.debug(
            "%d copies of %s present, nothing to rotate", len(group), current.serial
        )
        return result

    result.kept = [path for path, _ in group[:copies]]
    for path, _ in reversed(group[copies:]):
        if dry_run:
            logger.info("Would remove old backup file: %s", path)
            result.deleted.append(path)
            continue
        try:
            path.unlink()
        except OSError as e:
            result.errors.append(f"Failed to delete old backup file '{path}': {e}")
            logger.error("%s", result.errors[-1])
            continue
        logger.info("Removed old backup file: %s", path)
        result.deleted.append(path)

    return result
