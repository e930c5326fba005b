"""Block device discovery through lsblk.

Resolves source devices by serial number and destination filesystems by
UUID to their current /dev paths.
"""

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from .. import __util__

logger = logging.getLogger(__name__)

LSBLK_COLUMNS = "NAME,MODEL,SERIAL,SIZE,MOUNTPOINT,UUID,FSAVAIL"


class DeviceResolutionError(Exception):
    """lsblk could not be executed or its output could not be read."""

    pass


class UnresolvedError(LookupError):
    """A serial or UUID does not identify exactly one present device."""

    pass


@dataclass
class BlockDevice:
    """One line of ``lsblk -l`` output."""

    name: str
    model: Optional[str] = None
    serial: Optional[str] = None
    uuid: Optional[str] = None
    mountpoint: Optional[str] = None
    size: Optional[int] = None
    fsavail: Optional[int] = None

    @property
    def path(self) -> str:
        return f"/dev/{self.name}"


@dataclass
class ResolvedDevice:
    """A source device found by serial number."""

    path: str
    model: Optional[str]
    size_bytes: Optional[int]


@dataclass
class ResolvedFilesystem:
    """A destination filesystem found by UUID."""

    path: str
    mountpoint: Optional[str]
    fsavail: Optional[int]


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def parse_lsblk_output(output: str) -> list[BlockDevice]:
    """Parse the JSON printed by ``lsblk -J``.

    Raises:
        DeviceResolutionError: If the output is not valid lsblk JSON
    """
    try:
        data = json.loads(output)
        entries = data["blockdevices"]
    except (json.JSONDecodeError, KeyError, TypeError) as e:
        raise DeviceResolutionError(f"Failed to deserialize lsblk JSON: {e}") from e

    devices = []
    for entry in entries:
        try:
            devices.append(
                BlockDevice(
                    name=entry["name"],
                    model=_clean(entry.get("model")),
                    serial=_clean(entry.get("serial")),
                    uuid=_clean(entry.get("uuid")),
                    mountpoint=_clean(entry.get("mountpoint")),
                    size=__util__.parse_size(entry.get("size")),
                    fsavail=__util__.parse_size(entry.get("fsavail")),
                )
            )
        except (KeyError, ValueError) as e:
            raise DeviceResolutionError(f"Unexpected lsblk entry {entry!r}: {e}")
    return devices


class DeviceResolver:
    """Lookup of the block devices currently present on the system."""

    def __init__(
        self,
        block_devices: list[BlockDevice],
        mounts_file: Path | str = "/proc/mounts",
    ) -> None:
        self.block_devices = list(block_devices)
        self.mounts_file = Path(mounts_file)

    @classmethod
    def from_lsblk(cls, runner, **kwargs) -> "DeviceResolver":
        """Build a resolver from a fresh ``lsblk`` run.

        Raises:
            DeviceResolutionError: If lsblk fails
        """
        command = ["lsblk", "-b", "-l", "-J", "-o", LSBLK_COLUMNS]
        try:
            result = runner.run(command, "list block devices")
        except OSError as e:
            raise DeviceResolutionError(f"Failed to execute lsblk: {e}") from e
        if result.returncode != 0:
            raise DeviceResolutionError(
                f"Execution of lsblk failed: {(result.stderr or '').strip()}"
            )
        return cls(parse_lsblk_output(result.stdout), **kwargs)

    @property
    def available_devices(self) -> list[BlockDevice]:
        return [d for d in self.block_devices if d.serial is not None]

    @property
    def available_filesystems(self) -> list[BlockDevice]:
        return [d for d in self.block_devices if d.uuid is not None]

    def resolve_serial(self, serial: str) -> ResolvedDevice:
        """Find the unique device carrying ``serial``.

        Raises:
            UnresolvedError: If no device or several devices match
        """
        matches = [d for d in self.available_devices if d.serial == serial]
        if not matches:
            raise UnresolvedError(f"Device not found: {serial}")
        if len(matches) > 1:
            raise UnresolvedError(f"Device has not a unique serial: {serial}")
        device = matches[0]
        return ResolvedDevice(
            path=device.path, model=device.model, size_bytes=device.size
        )

    def resolve_uuid(self, uuid: str) -> ResolvedFilesystem:
        """Find the unique filesystem carrying ``uuid``.

        Raises:
            UnresolvedError: If no filesystem or several filesystems match
        """
        matches = [d for d in self.available_filesystems if d.uuid == uuid]
        if not matches:
            raise UnresolvedError(f"Filesystem not found: {uuid}")
        if len(matches) > 1:
            raise UnresolvedError(f"Not a unique UUID: {uuid}")
        fs = matches[0]
        return ResolvedFilesystem(
            path=fs.path, mountpoint=fs.mountpoint, fsavail=fs.fsavail
        )

    def is_device_mounted(self, device_path: str) -> bool:
        """Check /proc/mounts for the device or one of its partitions.

        Raises:
            UnresolvedError: If the mount table cannot be read
        """
        # Whole device or a partition of it, never /dev/sdaa for /dev/sda
        pattern = re.compile(rf"{re.escape(device_path)}(p?\d+)?")
        try:
            with open(self.mounts_file, encoding="utf-8") as f:
                for line in f:
                    fields = line.split()
                    if len(fields) >= 2 and pattern.fullmatch(fields[0]):
                        logger.debug("%s is mounted at %s", fields[0], fields[1])
                        return True
        except OSError as e:
            raise UnresolvedError(f"Failed to open {self.mounts_file}: {e}") from e
        return False
