"""
Time utilities for timestamps.
"""
from __future__ import annotations

import time
from datetime import datetime, timezone


def now() -> float:
    """Get current timestamp in seconds (float)."""
    return time.time()


def ms() -> int:
    """Get current timestamp in milliseconds (int)."""
    return int(time.time() * 1000)


def iso_utc(ts: float | None = None) -> str:
    """
    Format a timestamp as an ISO 8601 UTC string with millisecond precision.

    Args:
        ts: Timestamp in seconds (default: now())

    Returns:
        String such as "2025-12-29T19:30:45.120Z"
    """
    if ts is None:
        ts = now()
    dt = datetime.fromtimestamp(ts, tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")
