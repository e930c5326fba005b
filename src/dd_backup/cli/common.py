"""Shared CLI utilities and argument parsers."""

import argparse

# First set flag wins; --debug overrides -q so a quiet cron job can be traced
LOG_LEVEL_FLAGS = (
    ("debug", "DEBUG"),
    ("quiet", "WARNING"),
    ("verbose", "DEBUG"),
)
DEFAULT_LOG_LEVEL = "INFO"


def add_verbosity_args(parser: argparse.ArgumentParser) -> None:
    """Add -v/-q (exclusive of each other) and --debug to ``parser``."""
    group = parser.add_argument_group("Output options")
    chatter = group.add_mutually_exclusive_group()
    chatter.add_argument(
        "-v", "--verbose", action="store_true", help="Log each command and decision"
    )
    chatter.add_argument(
        "-q", "--quiet", action="store_true", help="Only log warnings and errors"
    )
    group.add_argument(
        "--debug", action="store_true", help="Log everything, including -q runs"
    )


def add_config_file_arg(parser: argparse.ArgumentParser) -> None:
    """Add the config file option shared by config driven commands."""
    parser.add_argument(
        "-c",
        "--config-file-path",
        metavar="PATH",
        help="Path to the configuration file",
    )


def get_log_level(args: argparse.Namespace) -> str:
    """Log level name selected by the verbosity flags in ``args``.

    Flags missing from ``args`` count as unset, so subcommand handlers can
    be called with hand built namespaces.
    """
    for flag, level in LOG_LEVEL_FLAGS:
        if getattr(args, flag, False):
            return level
    return DEFAULT_LOG_LEVEL
