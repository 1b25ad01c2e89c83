"""
Duration string parsing.

Durations are one or more ``<integer><unit>`` segments with units
``d`` (days), ``h`` (hours), ``m`` (minutes) and ``s`` (seconds), e.g.
``"30d"`` or ``"1d12h30m"``.
"""

import re
from datetime import timedelta

from shared.errors import DurationFormatError

_DURATION_PATTERN = re.compile(r"(?:\d+[dhms])+")
_SEGMENT_PATTERN = re.compile(r"(\d+)([dhms])")

_UNIT_MS = {
    "d": 24 * 60 * 60 * 1000,
    "h": 60 * 60 * 1000,
    "m": 60 * 1000,
    "s": 1000,
}


def parse_time_string(value: str) -> int:
    """Parse a duration string into milliseconds.

    Raises:
        DurationFormatError: for empty strings, unknown units or any text
            outside the segment grammar.
    """
    if not isinstance(value, str) or not _DURATION_PATTERN.fullmatch(value):
        raise DurationFormatError(str(value))

    total_ms = 0
    for amount, unit in _SEGMENT_PATTERN.findall(value):
        total_ms += int(amount) * _UNIT_MS[unit]
    return total_ms


def parse_duration(value: str) -> timedelta:
    """Parse a duration string into a ``timedelta``."""
    return timedelta(milliseconds=parse_time_string(value))
