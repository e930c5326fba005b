"""Destination filesystem lifecycle.

A destination filesystem is checked and mounted before its devices are
backed up, then flushed and unmounted again.
"""

import logging
import shlex
from enum import Enum
from pathlib import Path

from .planning import DestinationPlan

logger = logging.getLogger(__name__)


class MountState(Enum):
    """Mount state of one destination."""

    UNMOUNTED = "unmounted"
    MOUNTED = "mounted"  # mounted by us, unmounted on release
    MOUNTED_EXTERNALLY = "mounted-externally"  # skip_mount, left alone


class FsckError(Exception):
    """The filesystem check reported a problem."""

    pass


class MountError(Exception):
    """The destination filesystem could not be mounted."""

    pass


class UnmountError(Exception):
    """The destination filesystem could not be unmounted."""

    pass


class MountStateError(RuntimeError):
    """acquire/release called out of order."""

    pass


class MountManager:
    """Check, mount and unmount one destination filesystem."""

    def __init__(self, mountpath: Path | str, runner, dry_run: bool = False) -> None:
        self.mountpath = Path(mountpath)
        self.runner = runner
        self.dry_run = dry_run
        self.state = MountState.UNMOUNTED
        self.plan: DestinationPlan | None = None

    @property
    def skip_fsck(self) -> bool:
        """Effective fsck flag for the current destination."""
        if self.state is MountState.MOUNTED_EXTERNALLY:
            return True
        return self.plan is not None and self.plan.destination.skip_fsck

    def _transition(self, expected: tuple[MountState, ...], new: MountState) -> None:
        if self.state not in expected:
            raise MountStateError(
                f"Cannot go from {self.state.value} to {new.value} for {self.mountpath}"
            )
        logger.debug("Mount state %s -> %s", self.state.value, new.value)
        self.state = new

    def acquire(self, plan: DestinationPlan) -> None:
        """Bring the destination filesystem into a checked, mounted state.

        Raises:
            FsckError: If the check command exits non-zero
            MountError: If the filesystem cannot be mounted
            MountStateError: If called twice without release
        """
        if self.state is not MountState.UNMOUNTED:
            raise MountStateError(f"{self.mountpath} is already acquired")
        destination = plan.destination

        if destination.skip_mount:
            logger.info(
                "Expecting %s to be mounted at %s already",
                destination.uuid,
                self.mountpath,
            )
            if plan.current_mountpoint is None:
                raise MountError(
                    f"Filesystem {destination.uuid} is not mounted, "
                    f"expected it at {self.mountpath}"
                )
            if Path(plan.current_mountpoint) != self.mountpath:
                raise MountError(
                    f"Filesystem {destination.uuid} is mounted at "
                    f"{plan.current_mountpoint}, expected it at {self.mountpath}"
                )
            self.plan = plan
            self._transition((MountState.UNMOUNTED,), MountState.MOUNTED_EXTERNALLY)
            return

        if plan.filesystem_path is None:
            raise MountError(f"Filesystem {destination.uuid} is not resolved")
        if plan.current_mountpoint:
            raise MountError(
                f"Filesystem {plan.filesystem_path} is already mounted at "
                f"{plan.current_mountpoint}, use skip_mount to back up onto it"
            )

        self.plan = plan
        try:
            if not self.skip_fsck:
                self._fsck(plan.filesystem_path, destination.fsck_command)
            else:
                logger.info("Skipping filesystem check of %s", plan.filesystem_path)
            self._mount(plan.filesystem_path)
        except (FsckError, MountError):
            self.plan = None
            raise

        self._transition((MountState.UNMOUNTED,), MountState.MOUNTED)

    def release(self) -> None:
        """Flush and unmount a filesystem mounted by acquire.

        Raises:
            UnmountError: If sync or umount fails; the state is reset anyway
        """
        if self.state is MountState.UNMOUNTED:
            raise MountStateError(f"{self.mountpath} is not acquired")

        state = self.state
        self._transition(
            (MountState.MOUNTED, MountState.MOUNTED_EXTERNALLY), MountState.UNMOUNTED
        )
        plan, self.plan = self.plan, None
        if state is MountState.MOUNTED_EXTERNALLY:
            return

        device = plan.filesystem_path if plan else "filesystem"
        if self.dry_run:
            logger.info("Would sync and unmount %s from %s", device, self.mountpath)
            return

        try:
            result = self.runner.run(["sync"], "execute sync")
            if result.returncode != 0:
                raise UnmountError(f"sync failed before unmounting {device}")
            result = self.runner.run(
                ["umount", str(self.mountpath)],
                f"unmount filesystem {device} at {self.mountpath}",
                sudo=True,
            )
        except OSError as e:
            raise UnmountError(f"Error unmounting {device}: {e}") from e
        if result.returncode != 0:
            raise UnmountError(
                f"Error unmounting filesystem {device} at {self.mountpath}: "
                f"{(result.stderr or '').strip()}"
            )
        logger.info("Filesystem %s unmounted from %s", device, self.mountpath)

    def _fsck(self, device: str, fsck_command: str) -> None:
        command = [*shlex.split(fsck_command), device]
        if self.dry_run:
            logger.info("Would check filesystem: %s", shlex.join(command))
            return

        logger.info("Checking filesystem: %s", shlex.join(command))
        try:
            result = self.runner.run(command, f"check filesystem {device}", sudo=True)
        except OSError as e:
            raise FsckError(f"Failed to run {command[0]}: {e}") from e
        if result.returncode != 0:
            raise FsckError(
                f"Filesystem check of {device} failed with exit code "
                f"{result.returncode}: {(result.stdout or '').strip()}"
            )

    def _mount(self, device: str) -> None:
        if self.dry_run:
            logger.info("Would mount %s at %s", device, self.mountpath)
            return

        try:
            self.mountpath.mkdir(parents=True, exist_ok=True)
            result = self.runner.run(
                ["mount", device, str(self.mountpath)],
                f"mount filesystem {device} at {self.mountpath}",
                sudo=True,
            )
        except OSError as e:
            raise MountError(f"Error mounting filesystem {device}: {e}") from e
        if result.returncode != 0:
            raise MountError(
                f"Error mounting filesystem {device}: {(result.stderr or '').strip()}"
            )
        logger.info("Filesystem %s mounted at %s", device, self.mountpath)
