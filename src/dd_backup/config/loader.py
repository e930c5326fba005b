"""Configuration file loading and validation.

Handles config file discovery, parsing (JSON or TOML), and structural
validation with helpful error messages.
"""

import json
import tomllib
from pathlib import Path
from typing import Any

from .schema import (
    DEFAULT_DESTINATION_PATH,
    DEFAULT_FSCK_COMMAND,
    DEFAULT_MOUNTPATH,
    Config,
    DestinationConfig,
    DeviceConfig,
)


class ConfigError(Exception):
    """Configuration loading or validation error."""

    pass


# Config file search paths in priority order
CONFIG_PATHS = [
    Path.home() / ".config" / "dd_backup" / "config.json",
    Path.home() / ".config" / "dd_backup" / "config.toml",
    Path("/etc/dd_backup/config.json"),
]


def find_config_file(explicit_path: str | None = None) -> Path | None:
    """Find configuration file.

    Args:
        explicit_path: Explicitly specified config path (highest priority)

    Returns:
        Path to config file, or None if not found
    """
    if explicit_path:
        path = Path(explicit_path)
        if path.exists():
            return path
        raise ConfigError(f"Config file not found: {explicit_path}")

    for path in CONFIG_PATHS:
        if path.exists():
            return path

    return None


def _require_str(data: dict[str, Any], key: str, what: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"{what} missing required '{key}' field")
    return value


def _parse_bool(data: dict[str, Any], key: str, default: bool, what: str) -> bool:
    value = data.get(key, default)
    if not isinstance(value, bool):
        raise ConfigError(f"{what}: '{key}' must be true or false")
    return value


def _parse_device(data: Any) -> DeviceConfig:
    """Parse device configuration from dict."""
    if not isinstance(data, dict):
        raise ConfigError("Backup device entries must be objects")

    serial = _require_str(data, "serial", "Backup device")

    name = data.get("name")
    if name is not None and not isinstance(name, str):
        raise ConfigError(f"Device '{serial}': 'name' must be a string")

    copies = data.get("copies")
    if copies is not None:
        # bool is an int subclass, reject it explicitly
        if isinstance(copies, bool) or not isinstance(copies, int):
            raise ConfigError(f"Device '{serial}': 'copies' must be an integer")
        if copies < 1:
            raise ConfigError(
                f"Invalid number of copies for device with serial '{serial}'. "
                "Must be greater than 0."
            )

    return DeviceConfig(serial=serial, name=name or None, copies=copies)


def _parse_destination(data: Any) -> DestinationConfig:
    """Parse destination configuration from dict."""
    if not isinstance(data, dict):
        raise ConfigError("Backup entries must be objects")

    uuid = _require_str(data, "uuid", "Backup")
    what = f"Backup '{uuid}'"

    devices_data = data.get("backup_devices", [])
    if not isinstance(devices_data, list):
        raise ConfigError(f"{what}: 'backup_devices' must be a list")

    destination_path = data.get("destination_path", DEFAULT_DESTINATION_PATH)
    if not isinstance(destination_path, str):
        raise ConfigError(f"{what}: 'destination_path' must be a string")
    if Path(destination_path).is_absolute():
        raise ConfigError(
            f"{what}: 'destination_path' must be relative to the mountpath"
        )

    fsck_command = data.get("fsck_command", DEFAULT_FSCK_COMMAND)
    if not isinstance(fsck_command, str) or not fsck_command.strip():
        raise ConfigError(f"{what}: 'fsck_command' must be a non-empty string")

    return DestinationConfig(
        uuid=uuid,
        destination_path=destination_path,
        fsck_command=fsck_command,
        skip_fsck=_parse_bool(data, "skip_fsck", False, what),
        skip_mount=_parse_bool(data, "skip_mount", False, what),
        devices=[_parse_device(d) for d in devices_data],
    )


def parse_config(data: Any) -> Config:
    """Build a Config from already deserialized data.

    Raises:
        ConfigError: If the data does not follow the schema
    """
    if not isinstance(data, dict):
        raise ConfigError("Configuration root must be an object")

    mountpath = data.get("mountpath", DEFAULT_MOUNTPATH)
    if not isinstance(mountpath, str) or not mountpath:
        raise ConfigError("'mountpath' must be a non-empty string")

    backups_data = data.get("backups", [])
    if not isinstance(backups_data, list):
        raise ConfigError("'backups' must be a list")

    return Config(
        mountpath=mountpath,
        backups=[_parse_destination(b) for b in backups_data],
    )


def _validate_config(config: Config) -> list[str]:
    """Validate configuration and return list of warnings."""
    warnings = []

    if not config.backups:
        warnings.append("No backups configured")

    for destination in config.backups:
        if not destination.devices:
            warnings.append(
                f"Backup '{destination.uuid}' has no backup devices configured"
            )

    return warnings


def _read_data(path: Path) -> Any:
    if path.suffix == ".toml":
        try:
            with open(path, "rb") as f:
                return tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid TOML syntax: {e}")

    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Cannot parse config file -> {e}")


def load_config(path: Path | str) -> tuple[Config, list[str]]:
    """Load and validate configuration from a JSON or TOML file.

    Args:
        path: Path to configuration file

    Returns:
        Tuple of (Config object, list of warnings)

    Raises:
        ConfigError: If config is invalid or cannot be parsed
    """
    path = Path(path)

    try:
        data = _read_data(path)
    except OSError as e:
        raise ConfigError(f"Cannot read config file: {e}")

    config = parse_config(data)

    # Validate and collect warnings
    warnings = _validate_config(config)

    return config, warnings


def generate_example_config() -> str:
    """Generate example configuration file content."""
    return """{
  "mountpath": "/mnt",
  "backups": [
    {
      "uuid": "0a1b2c3d-4e5f-6789-abcd-ef0123456789",
      "destination_path": "./images",
      "fsck_command": "fsck -n",
      "skip_fsck": false,
      "skip_mount": false,
      "backup_devices": [
        { "serial": "S3Z9NB0K123456A", "name": "desktop", "copies": 2 },
        { "serial": "WD-WCC4E1234567" }
      ]
    }
  ]
}
"""
