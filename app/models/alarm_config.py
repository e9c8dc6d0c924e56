"""Alarm config model. Exactly one per user."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.core.alarm_policies import DEFAULT_ALARM_TIME, DEFAULT_REPEAT_INTERVAL_HOURS, DEFAULT_RINGTONE
from app.db.base import Base


class AlarmConfig(Base):
    """Recurring dead-man's-switch alarm."""

    __tablename__ = "alarm_configs"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    time: Mapped[str] = mapped_column(String(5), nullable=False, default=DEFAULT_ALARM_TIME)  # "08:00"
    repeat_interval: Mapped[int] = mapped_column(Integer, nullable=False, default=DEFAULT_REPEAT_INTERVAL_HOURS)
    ringtone: Mapped[str] = mapped_column(String(20), nullable=False, default=DEFAULT_RINGTONE)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    next_alarm: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
