"""Human-readable binary size strings."""

from __future__ import annotations

import re

_SIZE_RE = re.compile(r"^(\d+(?:\.\d+)*) ?([kKmMgGtTpP])?[iI]?[bB]?$")

_BINARY_MULTIPLIERS = {
    "k": 1024,
    "m": 1024**2,
    "g": 1024**3,
    "t": 1024**4,
    "p": 1024**5,
}

_BINARY_ABBRS = ("B", "KiB", "MiB", "GiB", "TiB", "PiB", "EiB", "ZiB", "YiB")


def ram_in_bytes(size: str) -> int:
    """Parse a size such as "4GiB", "512m" or "100 kb" into bytes (binary units)."""
    match = _SIZE_RE.match(size)
    if match is None:
        raise ValueError(f"invalid size: '{size}'")
    try:
        value = float(match.group(1))
    except ValueError as exc:
        raise ValueError(f"invalid size: '{size}'") from exc
    prefix = (match.group(2) or "").lower()
    value *= _BINARY_MULTIPLIERS.get(prefix, 1)
    return int(value)


def bytes_size(size: float) -> str:
    """Format a byte count with binary units and four significant digits, e.g. "4GiB"."""
    value = float(size)
    index = 0
    while value >= 1024.0 and index < len(_BINARY_ABBRS) - 1:
        value /= 1024.0
        index += 1
    return "%.4g%s" % (value, _BINARY_ABBRS[index])