"""Devices command: Show the identifiers usable in the configuration."""

import argparse
import logging

from rich.table import Table

from .. import __util__
from ..__logger__ import create_logger, get_console
from ..core.commands import CommandRunner
from ..core.devices import DeviceResolutionError, DeviceResolver
from .common import get_log_level

logger = logging.getLogger(__name__)


def execute_devices(args: argparse.Namespace) -> int:
    """Execute the devices command.

    Args:
        args: Parsed command line arguments

    Returns:
        Exit code
    """
    log_level = get_log_level(args)
    create_logger(log_level)

    try:
        resolver = DeviceResolver.from_lsblk(CommandRunner())
    except DeviceResolutionError as e:
        logger.error("Cannot list block devices: %s", e)
        return 1

    console = get_console()

    devices = Table(title="Source devices (serial)")
    devices.add_column("Path")
    devices.add_column("Serial")
    devices.add_column("Model")
    devices.add_column("Size", justify="right")
    for device in resolver.available_devices:
        devices.add_row(
            device.path,
            device.serial,
            device.model or "",
            __util__.format_size(device.size),
        )
    console.print(devices)

    filesystems = Table(title="Destination filesystems (uuid)")
    filesystems.add_column("Path")
    filesystems.add_column("UUID")
    filesystems.add_column("Mountpoint")
    filesystems.add_column("Available", justify="right")
    for fs in resolver.available_filesystems:
        filesystems.add_row(
            fs.path,
            fs.uuid,
            fs.mountpoint or "",
            __util__.format_size(fs.fsavail) if fs.fsavail is not None else "",
        )
    console.print(filesystems)

    return 0
