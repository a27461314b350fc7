"""
Time-code formatting for cue text.
WEBVTT style uses HH:MM:SS.mmm, SRT style uses HH:MM:SS,mmm.
"""

import math
import re

_ZERO_MS = 0

_TIMECODE_RE = re.compile(
    r'^\s*(?:(\d+):)?(\d{1,2}):(\d{2})[.,](\d{1,3})\s*$'
)


def _coerce_ms(ms) -> int:
    """Turn anything into a non-negative whole millisecond count."""
    if ms is None or isinstance(ms, bool):
        return _ZERO_MS
    try:
        value = float(ms)
    except (TypeError, ValueError):
        return _ZERO_MS
    if not math.isfinite(value) or value < 0:
        return _ZERO_MS
    return math.floor(value)


def _format(ms, separator: str) -> str:
    total = _coerce_ms(ms)
    hours = total // 3_600_000
    minutes = (total // 60_000) % 60
    seconds = (total // 1000) % 60
    millis = total % 1000
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}{separator}{millis:03d}"


def format_vtt_time(ms) -> str:
    """Format milliseconds as HH:MM:SS.mmm (00:00:00.000 for missing/NaN input)."""
    return _format(ms, '.')


def format_srt_time(ms) -> str:
    """Format milliseconds as HH:MM:SS,mmm (00:00:00,000 for missing/NaN input)."""
    return _format(ms, ',')


def parse_timecode(text: str) -> int:
    """
    Parse HH:MM:SS.mmm / HH:MM:SS,mmm (or MM:SS.mmm) back into milliseconds.
    Raises ValueError on anything else.
    """
    match = _TIMECODE_RE.match(text or "")
    if not match:
        raise ValueError(f"Not a timecode: {text!r}")
    hours, minutes, seconds, millis = match.groups()
    return (
        int(hours or 0) * 3_600_000
        + int(minutes) * 60_000
        + int(seconds) * 1000
        + int(millis.ljust(3, '0'))
    )
