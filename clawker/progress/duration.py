"""Compact elapsed-time formatting for build steps."""

from __future__ import annotations

import math
from datetime import timedelta


def format_duration(delta: float | timedelta) -> str:
    """Format elapsed time for display.

    - under a minute : ``12.3s`` (tenths, truncated)
    - under an hour  : ``1m 12s``
    - otherwise      : ``1h 03m``

    Negative values render as ``0.0s``.  Formatting never consults the
    locale, so the decimal separator is always ``.``.
    """
    seconds = delta.total_seconds() if isinstance(delta, timedelta) else float(delta)
    if not math.isfinite(seconds) or seconds < 0:
        seconds = 0.0

    if seconds < 60:
        tenths = math.floor(round(seconds * 10, 6))
        return f"{tenths // 10}.{tenths % 10}s"

    whole = int(seconds)
    if whole < 3600:
        minutes, secs = divmod(whole, 60)
        return f"{minutes}m {secs}s"

    hours, rem = divmod(whole, 3600)
    return f"{hours}h {rem // 60:02d}m"
