"""Tests for the destination mount lifecycle."""

import pytest

from dd_backup.config import DestinationConfig
from dd_backup.core.mount import (
    FsckError,
    MountError,
    MountManager,
    MountState,
    MountStateError,
    UnmountError,
)
from dd_backup.core.planning import DestinationPlan


@pytest.fixture
def plan():
    """A resolved, unmounted destination."""
    return DestinationPlan(
        destination=DestinationConfig(uuid="D1", fsck_command="e2fsck -n -f"),
        filesystem_path="/dev/sdc1",
    )


class TestAcquire:
    """Tests for MountManager.acquire."""

    def test_fsck_then_mount(self, plan, runner, mountpath):
        manager = MountManager(mountpath, runner)

        manager.acquire(plan)

        assert manager.state is MountState.MOUNTED
        assert runner.commands == [
            ["e2fsck", "-n", "-f", "/dev/sdc1"],
            ["mount", "/dev/sdc1", str(mountpath)],
        ]
        assert runner.sudo == [True, True]

    def test_creates_mountpath(self, plan, runner, tmp_path):
        mountpath = tmp_path / "not" / "there"
        MountManager(mountpath, runner).acquire(plan)
        assert mountpath.is_dir()

    def test_skip_fsck(self, plan, runner, mountpath):
        plan.destination.skip_fsck = True

        MountManager(mountpath, runner).acquire(plan)

        assert runner.names == ["mount"]

    def test_skip_mount_never_checks(self, plan, runner, mountpath):
        """Test skip_mount wins over an explicit skip_fsck = false."""
        plan.destination.skip_mount = True
        plan.destination.skip_fsck = False
        plan.current_mountpoint = str(mountpath)
        manager = MountManager(mountpath, runner)

        manager.acquire(plan)

        assert manager.state is MountState.MOUNTED_EXTERNALLY
        assert manager.skip_fsck is True
        assert runner.commands == []

    def test_skip_mount_elsewhere(self, plan, runner, mountpath):
        """Test skip_mount refuses a filesystem mounted at another path."""
        plan.destination.skip_mount = True
        plan.current_mountpoint = "/media/backup"
        manager = MountManager(mountpath, runner)

        with pytest.raises(MountError, match="mounted at /media/backup"):
            manager.acquire(plan)

        assert manager.state is MountState.UNMOUNTED
        assert runner.commands == []

    def test_skip_mount_not_mounted(self, plan, runner, mountpath):
        plan.destination.skip_mount = True
        with pytest.raises(MountError, match="is not mounted"):
            MountManager(mountpath, runner).acquire(plan)

    def test_skip_mount_trailing_slash(self, plan, runner, mountpath):
        plan.destination.skip_mount = True
        plan.current_mountpoint = f"{mountpath}/"
        manager = MountManager(mountpath, runner)
        manager.acquire(plan)
        assert manager.state is MountState.MOUNTED_EXTERNALLY

    def test_fsck_failure_prevents_mount(self, plan, make_runner, mountpath):
        runner = make_runner(returncodes={"e2fsck": 4})
        manager = MountManager(mountpath, runner)

        with pytest.raises(FsckError, match="exit code 4"):
            manager.acquire(plan)

        assert runner.names == ["e2fsck"]
        assert manager.state is MountState.UNMOUNTED

    def test_mount_failure(self, plan, make_runner, mountpath):
        runner = make_runner(returncodes={"mount": 32})
        manager = MountManager(mountpath, runner)

        with pytest.raises(MountError):
            manager.acquire(plan)

        assert manager.state is MountState.UNMOUNTED

    def test_already_mounted_elsewhere(self, plan, runner, mountpath):
        """Test a live filesystem is neither checked nor mounted twice."""
        plan.current_mountpoint = "/media/backup"

        with pytest.raises(MountError, match="already mounted"):
            MountManager(mountpath, runner).acquire(plan)

        assert runner.commands == []

    def test_unresolved_filesystem(self, runner, mountpath):
        plan = DestinationPlan(destination=DestinationConfig(uuid="D9"))
        with pytest.raises(MountError, match="not resolved"):
            MountManager(mountpath, runner).acquire(plan)

    def test_acquire_twice(self, plan, runner, mountpath):
        manager = MountManager(mountpath, runner)
        manager.acquire(plan)
        with pytest.raises(MountStateError):
            manager.acquire(plan)

    def test_dry_run(self, plan, runner, tmp_path):
        """Test a dry run executes nothing but proceeds as mounted."""
        mountpath = tmp_path / "mnt"
        manager = MountManager(mountpath, runner, dry_run=True)

        manager.acquire(plan)
        manager.release()

        assert runner.commands == []
        assert not mountpath.exists()
        assert manager.state is MountState.UNMOUNTED


class TestRelease:
    """Tests for MountManager.release."""

    def test_sync_then_umount(self, plan, runner, mountpath):
        manager = MountManager(mountpath, runner)
        manager.acquire(plan)

        manager.release()

        assert runner.commands[-2:] == [["sync"], ["umount", str(mountpath)]]
        assert manager.state is MountState.UNMOUNTED

    def test_externally_mounted_left_alone(self, plan, runner, mountpath):
        plan.destination.skip_mount = True
        plan.current_mountpoint = str(mountpath)
        manager = MountManager(mountpath, runner)
        manager.acquire(plan)

        manager.release()

        assert runner.commands == []
        assert manager.state is MountState.UNMOUNTED

    def test_umount_failure(self, plan, make_runner, mountpath):
        runner = make_runner(returncodes={"umount": 1})
        manager = MountManager(mountpath, runner)
        manager.acquire(plan)

        with pytest.raises(UnmountError, match="Error unmounting"):
            manager.release()

        assert manager.state is MountState.UNMOUNTED

    def test_release_without_acquire(self, runner, mountpath):
        with pytest.raises(MountStateError):
            MountManager(mountpath, runner).release()
