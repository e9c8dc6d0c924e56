"""Alarm and escalation policy constants."""

from __future__ import annotations

# Grace period after nextAlarm before escalation is due. The client countdown
# and the reconciler both read this value.
TOLERANCE_SECONDS = 180

# Local "alarm is active" reminder, relative to activation
REMINDER_DELAY_SECONDS = 60

# Repeat interval bounds, in hours
MIN_REPEAT_INTERVAL_HOURS = 1
MAX_REPEAT_INTERVAL_HOURS = 24

# Defaults applied at registration
DEFAULT_ALARM_TIME = "08:00"
DEFAULT_REPEAT_INTERVAL_HOURS = 12
DEFAULT_RINGTONE = "tone-1"
DEFAULT_COUNTRY = "Brasil"

RINGTONES = ("tone-1", "tone-2", "tone-3", "vibrate-only")
VIBRATE_ONLY = "vibrate-only"
