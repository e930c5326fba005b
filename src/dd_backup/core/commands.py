"""External command execution.

All block device, mount and copy operations go through a CommandRunner so
the engine can be driven against a fake runner in tests.
"""

import getpass
import logging
import os
import shlex
import shutil
import subprocess
from pathlib import Path

from filelock import FileLock

logger = logging.getLogger(__name__)


class CommandRunner:
    """Run external commands, escalating with sudo when needed."""

    def __init__(self, lock_dir: Path | str = "/tmp") -> None:
        self.lock_path = Path(lock_dir) / f".dd-backup.{getpass.getuser()}.lock"

    @staticmethod
    def _needs_sudo() -> bool:
        return os.geteuid() != 0 and shutil.which("sudo") is not None

    def build_command(self, command: list[str], sudo: bool = False) -> list[str]:
        """Return the command line that will actually be executed."""
        if sudo and self._needs_sudo():
            return ["sudo", *command]
        return list(command)

    def run(
        self,
        command: list[str],
        description: str,
        sudo: bool = False,
        stream: bool = False,
    ) -> subprocess.CompletedProcess:
        """Execute ``command`` and return the completed process.

        Args:
            command: Command and arguments
            description: What the command does, used in log messages
            sudo: Prefix with sudo when not running as root
            stream: Let the command write to the terminal instead of
                capturing its output (used for dd progress)

        Raises:
            OSError: If the command cannot be started
        """
        command = self.build_command(command, sudo=sudo)
        if command[0] == "sudo":
            logger.info("Sudo is needed to %s", description)
        logger.debug("Executing: %s", shlex.join(command))

        with FileLock(self.lock_path):
            if stream:
                result = subprocess.run(command, check=False)
            else:
                result = subprocess.run(
                    command, check=False, capture_output=True, text=True
                )

        if result.returncode != 0:
            logger.debug(
                "Command failed to %s (exit %d): %s",
                description,
                result.returncode,
                (result.stderr or "").strip(),
            )
        return result
