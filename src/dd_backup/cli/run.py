"""Run command: Perform the configured backups."""

import argparse
import logging
import time

from .. import __util__
from ..__logger__ import create_logger, get_console
from ..config import (
    Config,
    ConfigError,
    DestinationConfig,
    DeviceConfig,
    find_config_file,
    load_config,
)
from ..config.schema import DEFAULT_DESTINATION_PATH, DEFAULT_FSCK_COMMAND
from ..core.commands import CommandRunner
from ..core.devices import DeviceResolutionError
from ..core.operations import run_backups
from .common import get_log_level

logger = logging.getLogger(__name__)

SINGLE_BACKUP_OPTIONS = (
    "destination_uuid",
    "source_serial",
    "destination_path",
    "copies",
    "name",
    "fsck_command",
    "skip_fsck",
    "skip_mount",
)


def _single_backup_requested(args: argparse.Namespace) -> bool:
    return any(getattr(args, option, None) for option in SINGLE_BACKUP_OPTIONS)


def single_backup_config(args: argparse.Namespace) -> Config:
    """Synthesize a one destination, one device configuration from flags.

    Raises:
        ConfigError: If the flags are incomplete or combined with a config file
    """
    if getattr(args, "config_file_path", None):
        raise ConfigError(
            "Single backup options cannot be combined with --config-file-path"
        )
    if not args.destination_uuid or not args.source_serial:
        raise ConfigError(
            "Single backup mode needs both --destination-uuid and --source-serial"
        )

    device = DeviceConfig(
        serial=args.source_serial,
        name=args.name or None,
        copies=args.copies,
    )
    destination = DestinationConfig(
        uuid=args.destination_uuid,
        destination_path=args.destination_path or DEFAULT_DESTINATION_PATH,
        fsck_command=args.fsck_command or DEFAULT_FSCK_COMMAND,
        skip_fsck=bool(args.skip_fsck),
        skip_mount=bool(args.skip_mount),
        devices=[device],
    )
    config = Config(backups=[destination])
    if args.mountpath:
        config.mountpath = args.mountpath
    return config


def _load_run_config(args: argparse.Namespace) -> Config | None:
    if _single_backup_requested(args):
        logger.info("Single backup mode")
        return single_backup_config(args)

    config_path = find_config_file(getattr(args, "config_file_path", None))
    if config_path is None:
        print("No configuration file found.")
        print("Create one with: dd-backup config init")
        print("")
        print("Or back up a single device with --destination-uuid and --source-serial")
        return None

    logger.info("Loading configuration from: %s", config_path)
    config, warnings = load_config(config_path)
    for warning in warnings:
        logger.warning("Config: %s", warning)

    if getattr(args, "mountpath", None):
        config.mountpath = args.mountpath
    return config


def execute_run(args: argparse.Namespace) -> int:
    """Execute the run command.

    Args:
        args: Parsed command line arguments

    Returns:
        Exit code: 0 when the run completed, even with skipped or failed
        devices; 1 on configuration errors or when a destination could not
        be checked or mounted
    """
    # Initialize logger
    log_level = get_log_level(args)
    create_logger(log_level)

    try:
        config = _load_run_config(args)
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        return 1
    if config is None:
        return 1

    dry_run = getattr(args, "dry_run", False)
    if dry_run:
        logger.info("Dry run mode - no fsck, mount, dd or deletion is performed")

    logger.info(__util__.log_heading(f"Started at {time.ctime()}"))

    try:
        report = run_backups(config, CommandRunner(), dry_run=dry_run)
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        return 1
    except DeviceResolutionError as e:
        logger.error("Cannot list block devices: %s", e)
        return 1

    logger.info(__util__.log_heading(f"Finished at {time.ctime()}"))
    report.print_summary(get_console())

    if report.aborted_destinations:
        logger.warning(
            "%d destination(s) could not be checked or mounted",
            len(report.aborted_destinations),
        )
        return 1
    return 0
