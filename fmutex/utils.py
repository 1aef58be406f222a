"""Utility functions for fmutex"""

import math
import re
import time
from datetime import datetime, timedelta, timezone
from typing import Union

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Returned by FileMutex.when() for an unlocked mutex
ZERO_TIME = datetime.min.replace(tzinfo=timezone.utc)

_DURATION_UNITS = {
    'ns': 1e-9,
    'us': 1e-6,
    'µs': 1e-6,
    'ms': 1e-3,
    's': 1.0,
    'm': 60.0,
    'h': 3600.0,
}

_DURATION_PART = re.compile(r'(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)')


def now_millis() -> int:
    """Current wall-clock time in milliseconds since the epoch"""
    return time.time_ns() // 1_000_000


def to_millis(seconds: float) -> int:
    return int(seconds * 1000)


def millis_to_datetime(value: int) -> datetime:
    return EPOCH + timedelta(milliseconds=value)


def datetime_to_millis(value: datetime) -> int:
    return (value - EPOCH) // timedelta(milliseconds=1)


def read_timestamp(path: str) -> int:
    """Read a millisecond timestamp from a lock file.

    Returns 0 when the file is missing, unreadable or does not hold an integer.
    """
    try:
        with open(path, 'r', encoding='utf-8') as f:
            return int(f.read().strip())
    except (OSError, ValueError):
        return 0


def write_timestamp(path: str, mode: str = 'w') -> int:
    """Write the current millisecond timestamp plus a newline into path.

    Raises OSError on failure; returns the timestamp written.
    """
    with open(path, mode, encoding='utf-8') as f:
        if mode == 'r+':
            f.truncate()
        timestamp = now_millis()
        f.write(f"{timestamp}\n")
    return timestamp


def parse_duration(value: Union[str, int, float]) -> float:
    """Parse a duration into seconds.

    Accepts numbers (seconds) and Go-style strings such as ``500ms``,
    ``1m30s`` or ``-2h``.
    """
    if isinstance(value, bool):
        raise ValueError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)

    text = str(value).strip()
    if not text:
        raise ValueError("invalid duration: empty string")

    sign = 1.0
    if text[0] in '+-':
        sign = -1.0 if text[0] == '-' else 1.0
        text = text[1:]

    try:
        number = float(text)
    except ValueError:
        pass
    else:
        if not math.isfinite(number):
            raise ValueError(f"invalid duration: {value!r}")
        return sign * number

    total = 0.0
    pos = 0
    while pos < len(text):
        match = _DURATION_PART.match(text, pos)
        if not match:
            raise ValueError(f"invalid duration: {value!r}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos == 0:
        raise ValueError(f"invalid duration: {value!r}")
    return sign * total


def format_duration(seconds: float) -> str:
    """Render seconds the way parse_duration reads them"""
    if seconds and seconds < 1:
        return f"{seconds * 1000:g}ms"
    minutes, secs = divmod(seconds, 60)
    hours, minutes = divmod(int(minutes), 60)
    parts = []
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    if secs or not parts:
        parts.append(f"{secs:g}s")
    return ''.join(parts)


_TRUE_WORDS = ('1', 'true', 'yes', 'on', 'y')
_FALSE_WORDS = ('0', 'false', 'no', 'off', 'n', '')


def parse_bool(value) -> bool:
    """Parse a flag given as a bool, a number or a true/false word"""
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        word = value.strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
    raise ValueError(f"invalid boolean: {value!r}")


def is_empty(value) -> bool:
    return value is None or not str(value).strip()
