"""Windows FILETIME to ISO 8601 conversion.

Hives only carry last-written times, and a zero FILETIME always means the
time is absent, so the converter returns None for it instead of the epoch.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

WINDOWS_TICK = 10_000_000            # 100ns ticks per second
SEC_TO_UNIX_EPOCH = 11_644_473_600   # Seconds from 1601-01-01 to 1970-01-01

_UNIX_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def filetime_to_unix(windows_ticks: int) -> int:
    """Convert FILETIME ticks to whole Unix seconds.

    The division truncates toward zero, so sub-second ticks are dropped
    rather than rounded.
    """
    seconds = abs(windows_ticks) // WINDOWS_TICK
    if windows_ticks < 0:
        seconds = -seconds
    return seconds - SEC_TO_UNIX_EPOCH


def filetime_to_8601(windows_ticks: Optional[int]) -> Optional[str]:
    """Convert a FILETIME to ``YYYY-MM-DDTHH:MM:SSZ``.

    Args:
        windows_ticks: 100-nanosecond intervals since 1601-01-01 UTC

    Returns:
        The UTC timestamp string, or None when the input is absent (None or
        0) or falls outside the representable calendar range.
    """
    if not windows_ticks:
        return None

    try:
        tm = _UNIX_EPOCH + timedelta(seconds=filetime_to_unix(windows_ticks))
    except OverflowError:
        return None

    return "%04d-%02d-%02dT%02d:%02d:%02dZ" % (
        tm.year, tm.month, tm.day, tm.hour, tm.minute, tm.second)
