"""Pytest configuration and shared fixtures."""

import json
import subprocess
from pathlib import Path

import pytest

from dd_backup.core.devices import BlockDevice, DeviceResolver


class FakeRunner:
    """Stand-in for CommandRunner that records commands instead of running them.

    ``returncodes`` maps a command name to an exit code, or to a list of exit
    codes consumed one call at a time. ``dd`` writes a small file to its
    ``of=`` target so the executor has something to rename.
    """

    def __init__(self, returncodes=None, lsblk_output=""):
        self.commands: list[list[str]] = []
        self.sudo: list[bool] = []
        self.returncodes = dict(returncodes or {})
        self.lsblk_output = lsblk_output

    @property
    def names(self) -> list[str]:
        return [command[0] for command in self.commands]

    def _returncode(self, name: str) -> int:
        code = self.returncodes.get(name, 0)
        if isinstance(code, list):
            return code.pop(0) if code else 0
        return code

    def run(self, command, description, sudo=False, stream=False):
        self.commands.append(list(command))
        self.sudo.append(sudo)
        returncode = self._returncode(command[0])

        stdout = ""
        if command[0] == "dd":
            target = next(arg[3:] for arg in command if arg.startswith("of="))
            Path(target).write_bytes(b"image")
        elif command[0] == "lsblk":
            stdout = self.lsblk_output

        stderr = f"{command[0]} failed" if returncode else ""
        return subprocess.CompletedProcess(command, returncode, stdout, stderr)


def tree(path: Path) -> list[str]:
    """Relative paths of everything below ``path``."""
    if not path.exists():
        return []
    return sorted(str(p.relative_to(path)) for p in path.rglob("*"))


@pytest.fixture
def runner():
    """A fake command runner where every command succeeds."""
    return FakeRunner()


@pytest.fixture
def make_runner():
    """Factory for fake runners with scripted exit codes."""
    return FakeRunner


@pytest.fixture
def list_tree():
    """Helper listing a directory tree, to assert nothing was written."""
    return tree


@pytest.fixture
def block_devices():
    """Block devices as lsblk would report them."""
    return [
        BlockDevice(name="sda", model="ModelX", serial="S1", size=1000),
        BlockDevice(name="sdb", model="Big Disk", serial="S3", size=10**6),
        BlockDevice(name="sdd", model="ModelY", serial="S4", size=2000),
        BlockDevice(name="sdc", model="Backup Drive", serial="B1", size=10**9),
        BlockDevice(name="sdc1", uuid="D1", fsavail=10**8),
        BlockDevice(name="sde1", uuid="D2", fsavail=10**8),
    ]


@pytest.fixture
def mounts_file(tmp_path):
    """A mount table that mounts none of the fixture devices."""
    path = tmp_path / "mounts"
    path.write_text(
        "proc /proc proc rw,nosuid,nodev,noexec,relatime 0 0\n"
        "/dev/nvme0n1p2 / ext4 rw,relatime 0 0\n"
    )
    return path


@pytest.fixture
def resolver(block_devices, mounts_file):
    """Device resolver over the fixture devices."""
    return DeviceResolver(block_devices, mounts_file=mounts_file)


@pytest.fixture
def mountpath(tmp_path):
    """Mount point directory used instead of /mnt."""
    path = tmp_path / "mnt"
    path.mkdir()
    return path


@pytest.fixture
def sample_config_dict():
    """Return a sample valid configuration as deserialized JSON."""
    return {
        "mountpath": "/mnt/backup",
        "backups": [
            {
                "uuid": "D1",
                "destination_path": "./images",
                "fsck_command": "e2fsck -n",
                "backup_devices": [
                    {"serial": "S1", "name": "desktop", "copies": 2},
                    {"serial": "S4"},
                ],
            },
            {
                "uuid": "D2",
                "skip_mount": True,
                "backup_devices": [{"serial": "S3", "copies": 1}],
            },
        ],
    }


@pytest.fixture
def sample_config_json(sample_config_dict):
    """Return a sample valid JSON configuration string."""
    return json.dumps(sample_config_dict, indent=2)


@pytest.fixture
def sample_config_toml():
    """Return a sample valid TOML configuration string."""
    return """
mountpath = "/mnt/backup"

[[backups]]
uuid = "D1"
destination_path = "./images"

[[backups.backup_devices]]
serial = "S1"
name = "desktop"
copies = 2

[[backups.backup_devices]]
serial = "S4"
"""


@pytest.fixture
def config_file(tmp_path, sample_config_json):
    """Create a temporary JSON config file."""
    config_path = tmp_path / "config.json"
    config_path.write_text(sample_config_json)
    return config_path


@pytest.fixture
def lsblk_json():
    """Output of ``lsblk -b -l -J -o NAME,MODEL,SERIAL,SIZE,MOUNTPOINT,UUID,FSAVAIL``."""
    return json.dumps(
        {
            "blockdevices": [
                {
                    "name": "sda",
                    "model": "Samsung SSD 860",
                    "serial": "S3Z9NB0K123456A",
                    "size": 500107862016,
                    "mountpoint": None,
                    "uuid": None,
                    "fsavail": None,
                },
                {
                    "name": "sda1",
                    "model": None,
                    "serial": None,
                    "size": 500106813440,
                    "mountpoint": "/",
                    "uuid": "9c1a5f2e-0d7b-4e52-a1b3-6f0e2d4c8a11",
                    "fsavail": 123456789,
                },
                {
                    "name": "sdb",
                    "model": "WDC WD40EFRX ",
                    "serial": "WD-WCC4E1234567",
                    "size": "4000787030016",
                    "mountpoint": None,
                    "uuid": None,
                    "fsavail": None,
                },
                {
                    "name": "sdb1",
                    "model": None,
                    "serial": None,
                    "size": 4000785104896,
                    "mountpoint": None,
                    "uuid": "0a1b2c3d-4e5f-6789-abcd-ef0123456789",
                    "fsavail": None,
                },
            ]
        }
    )
