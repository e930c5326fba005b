"""Backup of one device onto one destination.

The sequence per pair is strictly ordered: resolution check, free space
check, file name, dd (or its dry-run report), sync, copy rotation.
"""

import logging
import os
import shutil
from datetime import date
from pathlib import Path
from typing import Optional

from .. import __util__
from .planning import ResolvedPair
from .records import BackupRecord
from .report import Outcome, PairResult
from .rotation import rotate

logger = logging.getLogger(__name__)

DD_BLOCK_SIZE = "4M"
PARTIAL_SUFFIX = ".part"


def free_space(path: Path) -> int:
    """Free bytes available to us on the filesystem holding ``path``."""
    return shutil.disk_usage(path).free


class BackupExecutor:
    """Run the backup sequence for resolved pairs."""

    def __init__(
        self,
        runner,
        dry_run: bool = False,
        today: Optional[date] = None,
    ) -> None:
        self.runner = runner
        self.dry_run = dry_run
        self.today = today or date.today()

    def _result(
        self, pair: ResolvedPair, outcome: Outcome, reason: str = "", **kwargs
    ) -> PairResult:
        return PairResult(
            outcome=outcome,
            serial=pair.device.serial,
            uuid=pair.destination.uuid,
            reason=reason,
            source=pair.device_path,
            size_bytes=pair.size_bytes,
            **kwargs,
        )

    def _available_space(
        self, pair: ResolvedPair, mounted: bool, fsavail: Optional[int]
    ) -> Optional[int]:
        if not mounted:
            return fsavail
        target_dir = pair.target_dir
        probe = target_dir if target_dir.exists() else pair.mount_point
        return free_space(probe)

    def build_command(self, source: str, target: Path) -> list[str]:
        return [
            "dd",
            f"if={source}",
            f"of={target}",
            f"bs={DD_BLOCK_SIZE}",
            "status=progress",
            "conv=fsync",
        ]

    def run(
        self,
        pair: ResolvedPair,
        mounted: bool = True,
        fsavail: Optional[int] = None,
    ) -> PairResult:
        """Back up ``pair``.

        Args:
            pair: The resolved (destination, device) pair
            mounted: Whether the destination is really mounted at the
                mount point (False for a dry run that skipped mounting)
            fsavail: Free bytes reported by lsblk, used when not mounted

        Returns:
            The tagged result; failures never raise
        """
        if pair.skipped:
            reason = pair.skip_reason or "device or destination not resolved"
            return self._result(pair, Outcome.SKIPPED, f"unresolved: {reason}")

        target_dir = pair.target_dir
        if not self.dry_run:
            try:
                target_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                return self._result(
                    pair, Outcome.FAILED, f"Error creating {target_dir}: {e}"
                )

        required = pair.size_bytes
        try:
            available = self._available_space(pair, mounted, fsavail)
        except OSError as e:
            logger.debug("Free space lookup failed: %s", e)
            available = None

        if required is None:
            return self._result(
                pair, Outcome.SKIPPED, f"size of {pair.device_path} is unknown"
            )
        if available is None:
            if not self.dry_run:
                return self._result(
                    pair,
                    Outcome.SKIPPED,
                    f"cannot determine free space at {target_dir}",
                )
            logger.warning(
                "Free space at %s is unknown until the filesystem is mounted",
                target_dir,
            )
        elif available < required:
            return self._result(
                pair,
                Outcome.SKIPPED,
                f"insufficient space: {__util__.format_size(required)} needed, "
                f"{__util__.format_size(available)} available at {target_dir}",
            )

        record = BackupRecord.for_device(
            self.today, pair.device.name, pair.model, pair.device.serial
        )
        target = target_dir / record.filename

        if self.dry_run:
            planned = self._result(pair, Outcome.DRY_RUN, target=target)
            # Old images can only be listed when the filesystem is really there
            if mounted and target_dir.is_dir():
                rotation = rotate(target_dir, record, pair.device.copies, dry_run=True)
                planned.deleted = rotation.deleted
                planned.errors.extend(rotation.errors)
            return planned

        return self._copy(pair, record, target)

    def _copy(
        self, pair: ResolvedPair, record: BackupRecord, target: Path
    ) -> PairResult:
        partial = target.with_name(target.name + PARTIAL_SUFFIX)
        command = self.build_command(pair.device_path, partial)
        logger.info(__util__.log_heading(f"{pair.device_path} -> {target}"))

        settled = False
        try:
            result = self.runner.run(
                command, f"copy {pair.device_path} to {target}", sudo=True, stream=True
            )
            if result.returncode != 0:
                raise __util__.AbortError(f"dd exited with code {result.returncode}")
            os.replace(partial, target)
            settled = True
        except (OSError, __util__.AbortError) as e:
            settled = True
            failed = self._result(pair, Outcome.FAILED, str(e), target=target)
            self._discard_partial(partial, failed)
            return failed
        finally:
            # Interrupted copy: drop the device sized .part file before unwinding
            if not settled:
                try:
                    partial.unlink(missing_ok=True)
                except OSError as e:
                    logger.error("Failed to remove partial image %s: %s", partial, e)

        completed = self._result(pair, Outcome.COMPLETED, target=target)

        try:
            synced = self.runner.run(["sync"], "execute sync").returncode == 0
        except OSError:
            synced = False
        if not synced:
            completed.errors.append("sync after backup failed")

        rotation = rotate(target.parent, record, pair.device.copies)
        completed.deleted = rotation.deleted
        completed.errors.extend(rotation.errors)
        return completed

    @staticmethod
    def _discard_partial(partial: Path, result: PairResult) -> None:
        try:
            partial.unlink(missing_ok=True)
        except OSError as e:
            result.errors.append(f"Failed to remove partial image {partial}: {e}")
