"""SQLAlchemy models."""

from __future__ import annotations

from app.models.alarm_config import AlarmConfig
from app.models.emergency_contact import EmergencyContact
from app.models.escalation_event import EscalationEvent
from app.models.user import User

__all__ = [
    "User",
    "AlarmConfig",
    "EmergencyContact",
    "EscalationEvent",
]
