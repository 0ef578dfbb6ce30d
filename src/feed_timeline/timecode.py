"""Parsing and formatting of ``m:ss`` / ``h:mm:ss`` time codes."""

from __future__ import annotations

import math

from .exceptions import InvalidTimeCodeError

# Time conversion constants
SECONDS_PER_MINUTE = 60
SECONDS_PER_HOUR = 3600

TIMECODE_PARTS_HHMMSS = 3
TIMECODE_PARTS_MMSS = 2


def _parse_component(component: str, text: str) -> float:
    try:
        value = float(component)
    except ValueError as exc:
        raise InvalidTimeCodeError(text) from exc
    if not math.isfinite(value) or value < 0:
        raise InvalidTimeCodeError(text)
    return value


def parse_timecode(text: str) -> float:
    """Convert a ``m:s`` or ``h:m:s`` time code into seconds.

    Args:
        text: Time code such as ``"12:34"`` or ``"1:02:03"``

    Returns:
        Number of seconds

    Raises:
        InvalidTimeCodeError: If the text has another component count or a
            component is not a non-negative number
    """
    parts = text.strip().split(":")
    if len(parts) == TIMECODE_PARTS_HHMMSS:
        hours, minutes, seconds = (_parse_component(p, text) for p in parts)
        return hours * SECONDS_PER_HOUR + minutes * SECONDS_PER_MINUTE + seconds
    if len(parts) == TIMECODE_PARTS_MMSS:
        minutes, seconds = (_parse_component(p, text) for p in parts)
        return minutes * SECONDS_PER_MINUTE + seconds
    raise InvalidTimeCodeError(text)


def format_timecode(seconds: float) -> str:
    """Render seconds as ``m:ss`` or ``h:mm:ss``."""
    total = int(max(0.0, seconds))
    hours, rest = divmod(total, SECONDS_PER_HOUR)
    minutes, secs = divmod(rest, SECONDS_PER_MINUTE)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"
