"""
Human-readable byte sizes and durations.

Sizes are written as ``<number><space><unit>`` with units B, KB, MB, GB, TB
(powers of 1024), e.g. ``"25 GB"``.
"""

DEFAULT_MAX_DISK_SIZE = '25 GB'

_UNITS = ('B', 'KB', 'MB', 'GB', 'TB')


def parse_size(text: str) -> int:
    """
    Parse a human-readable size into bytes.

    Args:
        text: Size such as "25 GB" or "512 MB"

    Returns:
        Number of bytes

    Raises:
        ValueError: If the text is not "<number> <unit>" with a known unit
    """
    parts = text.strip().split()
    if len(parts) != 2:
        raise ValueError(f"Size must be written as '<number> <unit>': {text!r}")

    number, unit = parts
    unit = unit.upper()
    if unit not in _UNITS:
        raise ValueError(f"Unknown size unit: {unit}. Valid units: {list(_UNITS)}")

    value = float(number)
    if value < 0:
        raise ValueError(f"Size cannot be negative: {text!r}")

    return int(value * (1024 ** _UNITS.index(unit)))


def format_size(num_bytes: int) -> str:
    """
    Format a byte count with the largest unit that keeps the value >= 1.

    Args:
        num_bytes: Size in bytes

    Returns:
        Formatted size, e.g. "1.5 MB" or "512 B"
    """
    value = float(num_bytes)
    for unit in _UNITS[:-1]:
        if abs(value) < 1024:
            break
        value /= 1024
    else:
        unit = _UNITS[-1]

    if unit == 'B':
        return f"{int(value)} B"
    return f"{value:.2f} {unit}".replace('.00 ', ' ')


def format_duration(seconds: float) -> str:
    """
    Format an elapsed time for backup notifications.

    Under a minute: "s.mmms"; under an hour: "mm:ssmin"; otherwise "HH:mmh".
    """
    millis = int(round(seconds * 1000))
    if seconds < 60:
        return f"{millis // 1000}.{millis % 1000:03d}s"

    total_seconds = millis // 1000
    if seconds < 3600:
        minutes, secs = divmod(total_seconds, 60)
        return f"{minutes:02d}:{secs:02d}min"

    hours, remainder = divmod(total_seconds, 3600)
    return f"{hours:02d}:{remainder // 60:02d}h"
