"""Countdown helpers for the SCHEDULED phase."""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

from simulive._types import TimeRemaining, to_utc

if TYPE_CHECKING:
    from datetime import datetime

_SECONDS_PER_DAY = 86_400
_SECONDS_PER_HOUR = 3_600


def time_remaining(scheduled_start: datetime, now: datetime) -> TimeRemaining:
    """Whole days/hours/minutes/seconds until ``scheduled_start``.

    Floors to the second; zero once the start has been reached.
    """
    difference = (to_utc(scheduled_start) - to_utc(now)).total_seconds()
    if difference <= 0:
        return TimeRemaining()

    total = math.floor(difference)
    days, rest = divmod(total, _SECONDS_PER_DAY)
    hours, rest = divmod(rest, _SECONDS_PER_HOUR)
    minutes, seconds = divmod(rest, 60)
    return TimeRemaining(days=days, hours=hours, minutes=minutes, seconds=seconds)


def format_duration(seconds: float) -> str:
    """Format a duration as "12m 34s" or "1h 23m 45s".

    Seconds are always shown; non-positive input gives "0s".
    """
    if not seconds or seconds < 0:
        return "0s"

    total = math.floor(seconds)
    hours, rest = divmod(total, _SECONDS_PER_HOUR)
    minutes, secs = divmod(rest, 60)

    parts = []
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")
    parts.append(f"{secs}s")
    return " ".join(parts)
