"""Backup planning.

Cross-references the configuration with the block devices present on the
system and produces the ordered list of (destination, device) pairs to run.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from ..config import Config, ConfigError, DestinationConfig, DeviceConfig
from .devices import DeviceResolver, UnresolvedError

logger = logging.getLogger(__name__)


class ConfigValidationError(ConfigError):
    """The configuration is inconsistent and no backup may run."""

    pass


@dataclass
class ResolvedPair:
    """One device to back up onto one destination."""

    destination: DestinationConfig
    device: DeviceConfig
    device_path: Optional[str] = None
    model: Optional[str] = None
    mount_point: Optional[Path] = None
    size_bytes: Optional[int] = None
    skip_reason: Optional[str] = None

    @property
    def skipped(self) -> bool:
        return self.device_path is None or self.mount_point is None

    @property
    def target_dir(self) -> Optional[Path]:
        """Directory the image of this pair is written to."""
        if self.mount_point is None:
            return None
        return self.mount_point / self.destination.destination_path


@dataclass
class DestinationPlan:
    """The pairs of one destination, with the resolved filesystem."""

    destination: DestinationConfig
    filesystem_path: Optional[str] = None
    current_mountpoint: Optional[str] = None
    fsavail: Optional[int] = None
    skip_reason: Optional[str] = None
    pairs: list[ResolvedPair] = field(default_factory=list)

    @property
    def resolved(self) -> bool:
        return self.filesystem_path is not None


@dataclass
class BackupPlan:
    """Ordered plan for a whole run."""

    mountpath: Path
    destinations: list[DestinationPlan] = field(default_factory=list)

    @property
    def pairs(self) -> list[ResolvedPair]:
        return [pair for plan in self.destinations for pair in plan.pairs]


def validate_config(config: Config) -> None:
    """Check configuration wide invariants.

    Raises:
        ConfigValidationError: On duplicate UUIDs, duplicate serials or an
            invalid number of copies
    """
    uuids = Counter(d.uuid for d in config.backups)
    duplicates = sorted(uuid for uuid, count in uuids.items() if count > 1)
    if duplicates:
        raise ConfigValidationError(
            f"Duplicate UUID found in backups: {', '.join(duplicates)}"
        )

    serials = Counter(device.serial for _, device in config.iter_devices())
    duplicates = sorted(serial for serial, count in serials.items() if count > 1)
    if duplicates:
        raise ConfigValidationError(
            f"Duplicate serial number found in backups: {', '.join(duplicates)}"
        )

    for _, device in config.iter_devices():
        if device.copies is not None and device.copies < 1:
            raise ConfigValidationError(
                f"Invalid number of copies for device with serial "
                f"'{device.serial}'. Must be greater than 0."
            )


def _resolve_pair(
    destination: DestinationConfig,
    device: DeviceConfig,
    resolver: DeviceResolver,
    mount_point: Optional[Path],
) -> ResolvedPair:
    pair = ResolvedPair(destination=destination, device=device, mount_point=mount_point)
    try:
        resolved = resolver.resolve_serial(device.serial)
        if resolver.is_device_mounted(resolved.path):
            raise UnresolvedError(f"Device {resolved.path} is mounted")
    except UnresolvedError as e:
        pair.skip_reason = str(e)
        logger.warning("%s, skipping it", e)
        return pair

    pair.device_path = resolved.path
    pair.model = resolved.model
    pair.size_bytes = resolved.size_bytes
    return pair


def build_plan(config: Config, resolver: DeviceResolver) -> BackupPlan:
    """Build the ordered backup plan.

    Validates the configuration first; unresolvable destinations and
    devices end up as skipped pairs instead of failing the run.

    Raises:
        ConfigValidationError: If validate_config rejects the configuration
    """
    validate_config(config)

    mountpath = Path(config.mountpath)
    plan = BackupPlan(mountpath=mountpath)

    for destination in config.backups:
        dest_plan = DestinationPlan(destination=destination)
        try:
            filesystem = resolver.resolve_uuid(destination.uuid)
        except UnresolvedError as e:
            dest_plan.skip_reason = str(e)
            logger.warning("%s, skipping backup destination", e)
        else:
            dest_plan.filesystem_path = filesystem.path
            dest_plan.current_mountpoint = filesystem.mountpoint
            dest_plan.fsavail = filesystem.fsavail

        mount_point = mountpath if dest_plan.resolved else None
        for device in destination.devices:
            if dest_plan.resolved:
                pair = _resolve_pair(destination, device, resolver, mount_point)
            else:
                pair = ResolvedPair(
                    destination=destination,
                    device=device,
                    skip_reason=dest_plan.skip_reason,
                )
            dest_plan.pairs.append(pair)

        logger.debug("%r", dest_plan)
        plan.destinations.append(dest_plan)

    return plan
