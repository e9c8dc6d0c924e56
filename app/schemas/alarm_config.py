"""Alarm config schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import Field

from app.core.alarm_policies import (
    DEFAULT_ALARM_TIME,
    DEFAULT_REPEAT_INTERVAL_HOURS,
    DEFAULT_RINGTONE,
    MAX_REPEAT_INTERVAL_HOURS,
    MIN_REPEAT_INTERVAL_HOURS,
)
from app.schemas.common import CamelModel, PartialUpdate, TimeOfDay

Ringtone = Literal["tone-1", "tone-2", "tone-3", "vibrate-only"]


class AlarmConfigCreate(CamelModel):
    user_id: int = Field(ge=1)
    time: TimeOfDay = DEFAULT_ALARM_TIME
    repeat_interval: int = Field(
        default=DEFAULT_REPEAT_INTERVAL_HOURS,
        ge=MIN_REPEAT_INTERVAL_HOURS,
        le=MAX_REPEAT_INTERVAL_HOURS,
    )
    ringtone: Ringtone = DEFAULT_RINGTONE
    is_active: bool = True
    next_alarm: datetime | None = Field(default=None, description="Computed from time when omitted")


class AlarmConfigUpdate(PartialUpdate):
    time: TimeOfDay | None = Field(default=None, description="HH:MM format, e.g. 08:00")
    repeat_interval: int | None = Field(
        default=None,
        ge=MIN_REPEAT_INTERVAL_HOURS,
        le=MAX_REPEAT_INTERVAL_HOURS,
        description="Hours between occurrences (1-24)",
    )
    ringtone: Ringtone | None = None
    is_active: bool | None = None
    next_alarm: datetime | None = None


class AlarmConfigResponse(CamelModel):
    id: int
    user_id: int
    time: str
    repeat_interval: int
    ringtone: str
    is_active: bool
    next_alarm: datetime


class AdvanceRequest(CamelModel):
    expected_next_alarm: datetime
