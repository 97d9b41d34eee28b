"""Helpers for parsing and rendering byte sizes."""

import re

from archive_stager.const import BYTES_PER_GIB, BYTES_PER_MIB

_BYTE_VALUE_PATTERN = re.compile(r"^(?P<number>\d+(?:\.\d+)?)\s*(?P<unit>[a-z]*)$")

_UNIT_MULTIPLIERS = {
    "": 1,
    "b": 1,
    "k": 1024,
    "kb": 1024,
    "kib": 1024,
    "m": 1024**2,
    "mb": 1024**2,
    "mib": 1024**2,
    "g": 1024**3,
    "gb": 1024**3,
    "gib": 1024**3,
    "t": 1024**4,
    "tb": 1024**4,
    "tib": 1024**4,
}


def parse_bytes(value: int | str) -> int:
    """Parse a byte quantity from an integer or unit-suffixed string.

    Supported string units (case-insensitive, binary multiples):
        b, k/kb/kib, m/mb/mib, g/gb/gib, t/tb/tib

    Args:
        value: Raw byte value as an ``int`` or a string such as ``"10mb"`` or
            ``"2.5 GB"``.

    Returns:
        The parsed value in bytes.

    Raises:
        ValueError: If the input cannot be parsed or contains an unknown unit.
    """
    if isinstance(value, int):
        return value

    match = _BYTE_VALUE_PATTERN.match(str(value).strip().lower())
    if match is None:
        raise ValueError(f"Invalid byte value: {value!r}")

    unit = match.group("unit")
    if unit not in _UNIT_MULTIPLIERS:
        raise ValueError(f"Unknown byte unit in value: {value!r}")

    return int(float(match.group("number")) * _UNIT_MULTIPLIERS[unit])


def format_size(num_bytes: int) -> str:
    """Render a byte count as MB below one GiB and as GB above."""
    if num_bytes < BYTES_PER_GIB:
        return f"{num_bytes / BYTES_PER_MIB:.2f} MB"
    return f"{num_bytes / BYTES_PER_GIB:.2f} GB"
