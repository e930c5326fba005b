# pyright: standard

"""dd-backup: dd_backup/__util__.py
Common utility code shared among modules.
"""

import logging

logger = logging.getLogger(__name__)

SIZE_UNITS = {
    "B": 1,
    "K": 1024,
    "M": 1024**2,
    "G": 1024**3,
    "T": 1024**4,
    "P": 1024**5,
}


class AbortError(Exception):
    """Exception where an operation had to be aborted."""


def log_heading(caption: str) -> str:
    """Formatted heading for logging output sections."""
    return f"--[ {caption} ]--"


def parse_size(value) -> int | None:
    """Convert a size reported by lsblk into bytes.

    Accepts plain integers, digit strings (``lsblk -b``) and strings with a
    binary unit suffix such as ``"100M"`` or ``"1.5G"``.

    Returns:
        The size in bytes, or None when the value is missing or has an
        unknown unit.

    Raises:
        ValueError: If the numeric part cannot be parsed.
    """
    if value is None:
        return None
    if isinstance(value, int):
        return value

    text = str(value).strip()
    if not text:
        return None
    if text.isdigit():
        return int(text)

    unit = text[-1].upper()
    if unit not in SIZE_UNITS:
        return None
    try:
        amount = float(text[:-1])
    except ValueError as e:
        raise ValueError(f"Error parsing unit size: {text!r}") from e
    return round(amount * SIZE_UNITS[unit])


def format_size(size_bytes: int | None) -> str:
    """Format a byte count for humans (binary units)."""
    if size_bytes is None:
        return "unknown"
    if abs(size_bytes) < 1024:
        return f"{size_bytes} B"
    size = float(size_bytes)
    for unit in ("KiB", "MiB", "GiB", "TiB"):
        size /= 1024
        if abs(size) < 1024:
            break
    return f"{size:.1f} {unit}"
