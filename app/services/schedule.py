"""Alarm schedule arithmetic. Pure functions, no I/O.

All instants are aware UTC datetimes. The wall-clock `time` of an alarm is
interpreted in the configured timezone only when the first occurrence is
computed; every later occurrence is `previous + repeat_interval hours`, which
keeps a stable cadence regardless of when the previous one was handled.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from app.core.alarm_policies import (
    MAX_REPEAT_INTERVAL_HOURS,
    MIN_REPEAT_INTERVAL_HOURS,
    TOLERANCE_SECONDS,
)
from app.core.clock import as_utc

logger = logging.getLogger(__name__)

TOLERANCE = timedelta(seconds=TOLERANCE_SECONDS)


def parse_time_of_day(raw: str) -> tuple[int, int]:
    """Parse "HH:MM" (24h) into (hour, minute).

    Raises ValueError on malformed input.
    """
    parts = raw.strip().split(":")
    if len(parts) != 2 or not all(p.isdigit() for p in parts):
        raise ValueError(f"Time must be HH:MM, got {raw!r}")
    hour, minute = int(parts[0]), int(parts[1])
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f"Hour/minute out of range: {raw!r}")
    return hour, minute


def is_valid_interval(value: object) -> bool:
    """True for an integer number of hours within the allowed range."""
    if isinstance(value, bool) or not isinstance(value, int):
        return False
    return MIN_REPEAT_INTERVAL_HOURS <= value <= MAX_REPEAT_INTERVAL_HOURS


def first_occurrence(time_of_day: str, repeat_interval: int, now: datetime, tz: str = "UTC") -> datetime:
    """First firing at or after `now` for an alarm anchored at `time_of_day`.

    Starts from today's `time_of_day` in `tz` and steps forward by
    `repeat_interval` hours until the instant is no longer in the past.
    """
    hour, minute = parse_time_of_day(time_of_day)
    if not is_valid_interval(repeat_interval):
        raise ValueError(f"Repeat interval out of range: {repeat_interval!r}")

    zone = ZoneInfo(tz)
    local_now = as_utc(now).astimezone(zone)
    anchor = local_now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    candidate = as_utc(anchor)
    step = timedelta(hours=repeat_interval)
    while candidate < as_utc(now):
        candidate += step
    return candidate


def next_occurrence(current: datetime, repeat_interval: int) -> datetime:
    """Successor of `current`: exactly `repeat_interval` hours later."""
    if not is_valid_interval(repeat_interval):
        raise ValueError(f"Repeat interval out of range: {repeat_interval!r}")
    return as_utc(current) + timedelta(hours=repeat_interval)


def skip_missed(next_alarm: datetime, repeat_interval: int, now: datetime) -> datetime:
    """First occurrence on the cadence of `next_alarm` that is not past tolerance at `now`.

    Returns `next_alarm` itself when it is still inside its window.
    """
    if not is_valid_interval(repeat_interval):
        raise ValueError(f"Repeat interval out of range: {repeat_interval!r}")
    current = as_utc(next_alarm)
    overdue = as_utc(now) - escalation_deadline(current)
    if overdue <= timedelta(0):
        return current
    step = timedelta(hours=repeat_interval)
    return current + step * -(-overdue // step)


def escalation_deadline(next_alarm: datetime) -> datetime:
    """Instant at which an undismissed occurrence must escalate."""
    return as_utc(next_alarm) + TOLERANCE


def is_due(next_alarm: datetime, now: datetime) -> bool:
    """The occurrence has started ringing."""
    return as_utc(now) >= as_utc(next_alarm)


def is_past_tolerance(next_alarm: datetime, now: datetime) -> bool:
    """The tolerance window is over and the occurrence was missed."""
    return as_utc(now) > escalation_deadline(next_alarm)


def coerce_timestamp(value: object) -> datetime:
    """Accept a datetime or an ISO-8601 string; raise ValueError otherwise."""
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        return as_utc(datetime.fromisoformat(text))
    raise ValueError(f"Not a timestamp: {value!r}")
