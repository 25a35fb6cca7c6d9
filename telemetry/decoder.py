"""
Notification decoder.

Each notification from the wearable carries one reading as UTF-8 text:
twelve base-10 integers separated by commas, e.g. ``"1,2,3,...,12"``.
Fields that do not start with an integer decode to NaN and are passed
through; the channel count is not checked.
"""

import logging
import math
import re
from dataclasses import dataclass

logger = logging.getLogger(__name__)

CHANNEL_COUNT = 12

# leading integer of a field, surrounding whitespace ignored ("12abc" -> 12)
_INT_PREFIX = re.compile(r"\s*([+-]?[0-9]+)")


@dataclass(frozen=True, slots=True)
class Sample:
    """One timestamped multi-channel reading (ms since connection start)."""

    timestamp: int
    values: tuple[float, ...]

    @property
    def is_degraded(self) -> bool:
        """True when a channel is not a finite number or the channel count is off."""
        return len(self.values) != CHANNEL_COUNT or not all(
            math.isfinite(v) for v in self.values
        )


def parse_field(field: str) -> float:
    """Parse one field as a base-10 integer.

    NaN when it has no integer prefix, +-inf when it overflows a float.
    """
    match = _INT_PREFIX.match(field)
    if match is None:
        return math.nan
    digits = match.group(1)
    value = float(digits)
    return int(digits) if math.isfinite(value) else value


def decode(payload: bytes | bytearray | None, elapsed_ms: int) -> Sample | None:
    """Turn a raw notification payload into a Sample.

    Returns None for an empty or absent payload.
    """
    if not payload:
        logger.debug("Dropping empty notification payload")
        return None
    text = bytes(payload).decode("utf-8", errors="replace")
    values = tuple(parse_field(field) for field in text.split(","))
    return Sample(timestamp=int(elapsed_ms), values=values)
