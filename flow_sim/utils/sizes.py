"""Parsing of human readable file sizes such as ``10KB``."""

import re

from flow_sim.core.errors import ParseError

SIZE_UNITS = {
    "B": 1,
    "KB": 1024,
    "MB": 1024 * 1024,
}

_SIZE = re.compile(r"^(\d+)([A-Za-z]+)$")


def parse_file_size(size: str) -> int:
    """Convert ``<int><unit>`` with unit B, KB or MB to a byte count.

    Args:
        size: The size string, e.g. ``"1MB"``.

    Returns:
        Number of bytes.

    Raises:
        ParseError: The string is malformed or its unit is not supported.
    """
    match = _SIZE.match(size.strip())
    if match is None:
        raise ParseError(f"File size {size!r} is not of the form <int><unit>")
    value, unit = match.groups()
    if unit not in SIZE_UNITS:
        raise ParseError(f"File size unit ({unit}) is not supported.")
    return int(value) * SIZE_UNITS[unit]
