"""Plain records returned by every RecordStore implementation.

Stores hand out copies; mutating a record never changes persisted state.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from app.core.alarm_policies import DEFAULT_COUNTRY

USER_FIELDS = frozenset({"email", "password", "full_name", "whatsapp", "birthdate", "country"})
EMERGENCY_CONTACT_FIELDS = frozenset({"name", "whatsapp"})
ALARM_CONFIG_FIELDS = frozenset({"time", "repeat_interval", "ringtone", "is_active", "next_alarm"})


@dataclass
class UserRecord:
    id: int
    email: str
    password: str  # bcrypt hash
    full_name: str
    whatsapp: str = ""
    birthdate: str = ""
    country: str = DEFAULT_COUNTRY


@dataclass
class EmergencyContactRecord:
    id: int
    user_id: int
    name: str
    whatsapp: str


@dataclass
class AlarmConfigRecord:
    """A user's alarm. `next_alarm` is an aware UTC datetime."""

    id: int
    user_id: int
    time: str                # HH:MM
    repeat_interval: int     # hours
    ringtone: str
    is_active: bool
    next_alarm: datetime
