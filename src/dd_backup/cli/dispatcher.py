"""CLI dispatcher.

Builds the subcommand parser and routes parsed arguments to the command
handlers.
"""

import argparse
import sys
from typing import Callable

from .common import add_config_file_arg, add_verbosity_args


def positive_int(value: str) -> int:
    """argparse type for a strictly positive integer."""
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: {value!r}")
    if number < 1:
        raise argparse.ArgumentTypeError("must be greater than 0")
    return number


def _add_run_parser(subparsers) -> None:
    run_parser = subparsers.add_parser(
        "run",
        help="Perform the backups",
        description=(
            "Mount the destination filesystems, image the configured devices "
            "with dd and rotate old copies"
        ),
    )
    run_parser.add_argument(
        "-n",
        "--dry-run",
        action="store_true",
        help="Show what would be done without running fsck, mount or dd",
    )
    add_config_file_arg(run_parser)
    run_parser.add_argument(
        "-m",
        "--mountpath",
        metavar="PATH",
        help="Directory the destination filesystems are mounted on (overrides config)",
    )

    single = run_parser.add_argument_group(
        "Single backup",
        "Back up one device without a configuration file "
        "(cannot be combined with --config-file-path)",
    )
    single.add_argument(
        "--destination-uuid",
        metavar="UUID",
        help="UUID of the destination filesystem",
    )
    single.add_argument(
        "--source-serial",
        metavar="SERIAL",
        help="Serial number of the device to back up",
    )
    single.add_argument(
        "--destination-path",
        metavar="PATH",
        help="Directory below the mountpath for the image (default: ./)",
    )
    single.add_argument(
        "--copies",
        type=positive_int,
        metavar="N",
        help="Number of images to keep (default: keep all)",
    )
    single.add_argument(
        "--name",
        help="Name embedded in the image file name",
    )
    single.add_argument(
        "--fsck-command",
        metavar="COMMAND",
        help="Filesystem check command (default: 'fsck -n')",
    )
    single.add_argument(
        "--skip-fsck",
        action="store_true",
        help="Do not check the destination filesystem",
    )
    single.add_argument(
        "--skip-mount",
        action="store_true",
        help="Destination is already mounted at the mountpath (implies --skip-fsck)",
    )


def create_subcommand_parser() -> argparse.ArgumentParser:
    """Create the main argument parser with subcommands."""
    parser = argparse.ArgumentParser(
        prog="dd-backup",
        description="Block device image backups with dd onto identified filesystems",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    add_verbosity_args(parser)

    parser.add_argument(
        "-V",
        "--version",
        action="store_true",
        help="Show version and exit",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        title="commands",
        description="Available commands (use 'command --help' for details)",
    )

    _add_run_parser(subparsers)

    # config command with subcommands
    config_parser = subparsers.add_parser(
        "config",
        help="Configuration management",
        description="Validate or initialize configuration",
    )
    config_subs = config_parser.add_subparsers(dest="config_action")

    validate_parser = config_subs.add_parser(
        "validate",
        help="Validate configuration file",
    )
    add_config_file_arg(validate_parser)

    init_parser = config_subs.add_parser(
        "init",
        help="Generate example configuration",
    )
    init_parser.add_argument(
        "-o",
        "--output",
        metavar="FILE",
        help="Output file (default: stdout)",
    )

    # devices command
    subparsers.add_parser(
        "devices",
        help="List devices and filesystems",
        description="Show serial numbers and UUIDs usable in the configuration",
    )

    return parser


def run_subcommand(args: argparse.Namespace) -> int:
    """Run the specified subcommand.

    Args:
        args: Parsed arguments

    Returns:
        Exit code
    """
    from .. import __version__

    if args.version:
        print(f"dd-backup {__version__}")
        return 0

    if not args.command:
        print("No command specified. Use --help for usage information.")
        return 1

    # Route to appropriate command handler
    handlers: dict[str, Callable] = {
        "run": cmd_run,
        "config": cmd_config,
        "devices": cmd_devices,
    }

    handler = handlers.get(args.command)
    if handler:
        return handler(args)
    else:
        print(f"Unknown command: {args.command}")
        return 1


def cmd_run(args: argparse.Namespace) -> int:
    """Execute run command."""
    from .run import execute_run

    return execute_run(args)


def cmd_config(args: argparse.Namespace) -> int:
    """Execute config command."""
    from .config_cmd import execute_config

    return execute_config(args)


def cmd_devices(args: argparse.Namespace) -> int:
    """Execute devices command."""
    from .devices_cmd import execute_devices

    return execute_devices(args)


def main(argv: list[str] | None = None) -> int:
    """Main entry point for dd-backup CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code
    """
    if argv is None:
        argv = sys.argv[1:]

    parser = create_subcommand_parser()
    args = parser.parse_args(argv)

    return run_subcommand(args)
