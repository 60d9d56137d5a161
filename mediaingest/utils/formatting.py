"""Human-readable formatting helpers for progress messages."""

from __future__ import annotations

_SIZE_UNITS = ("Bytes", "KB", "MB", "GB")

MEGABYTE = 1024 * 1024


def format_file_size(num_bytes: int) -> str:
    """Format *num_bytes* as ``"3.5 MB"`` style text (binary units, two decimals max)."""
    if num_bytes <= 0:
        return "0 Bytes"
    value = float(num_bytes)
    index = 0
    while value >= 1024 and index < len(_SIZE_UNITS) - 1:
        value /= 1024
        index += 1
    value = round(value, 2)
    text = str(int(value)) if value == int(value) else str(value)
    return f"{text} {_SIZE_UNITS[index]}"


def format_megabytes(num_bytes: int) -> str:
    """Format *num_bytes* as megabytes, e.g. ``"150MB"`` or ``"4.5MB"``."""
    value = num_bytes / MEGABYTE
    if value >= 10:
        return f"{round(value)}MB"
    return f"{round(value, 1):g}MB"
