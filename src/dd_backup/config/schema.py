"""Configuration schema definitions using dataclasses.

Defines the structure of the backup configuration with sensible defaults.
"""

from dataclasses import dataclass, field
from typing import Optional

DEFAULT_MOUNTPATH = "/mnt"
DEFAULT_DESTINATION_PATH = "./"
DEFAULT_FSCK_COMMAND = "fsck -n"


@dataclass
class DeviceConfig:
    """Source device configuration.

    Attributes:
        serial: Manufacturer serial number identifying the whole device
        name: Optional friendly name, embedded in the image file name
        copies: Number of images to keep (None keeps all of them)
    """

    serial: str
    name: Optional[str] = None
    copies: Optional[int] = None


@dataclass
class DestinationConfig:
    """Destination filesystem configuration.

    Attributes:
        uuid: UUID of the filesystem the images are written to
        destination_path: Directory below the mount point holding the images
        fsck_command: Check command run against the device before mounting
        skip_fsck: Do not run the check command
        skip_mount: The filesystem is already mounted at the mountpath,
            implies skip_fsck
        devices: Source devices backed up to this destination, in order
    """

    uuid: str
    destination_path: str = DEFAULT_DESTINATION_PATH
    fsck_command: str = DEFAULT_FSCK_COMMAND
    skip_fsck: bool = False
    skip_mount: bool = False
    devices: list[DeviceConfig] = field(default_factory=list)

    def __post_init__(self):
        # A mounted filesystem must never be checked
        if self.skip_mount:
            self.skip_fsck = True


@dataclass
class Config:
    """Root configuration object.

    Attributes:
        mountpath: Directory destination filesystems are mounted on
        backups: Destination configurations, processed in order
    """

    mountpath: str = DEFAULT_MOUNTPATH
    backups: list[DestinationConfig] = field(default_factory=list)

    def iter_devices(self):
        """Yield (destination, device) tuples in configuration order."""
        for destination in self.backups:
            for device in destination.devices:
                yield destination, device
