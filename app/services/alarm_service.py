"""Alarm config service: creation, partial updates and compare-and-advance."""

from __future__ import annotations

import logging
from datetime import datetime

from app.core.alarm_policies import (
    DEFAULT_ALARM_TIME,
    DEFAULT_REPEAT_INTERVAL_HOURS,
    DEFAULT_RINGTONE,
)
from app.core.clock import as_utc, utcnow
from app.core.config import settings
from app.core.errors import MissingEmergencyContact, NotFoundError, ValidationError
from app.db.records import AlarmConfigRecord, EmergencyContactRecord
from app.db.store import RecordStore
from app.schemas.alarm_config import AlarmConfigCreate
from app.services.schedule import first_occurrence, next_occurrence, skip_missed

logger = logging.getLogger(__name__)


def create_default_alarm_config(
    store: RecordStore,
    user_id: int,
    now: datetime | None = None,
    tz: str | None = None,
) -> AlarmConfigRecord:
    """Default alarm for a new user: 08:00 every 12 hours, tone-1, active."""
    now = now or utcnow()
    return store.create_alarm_config(
        user_id=user_id,
        time=DEFAULT_ALARM_TIME,
        repeat_interval=DEFAULT_REPEAT_INTERVAL_HOURS,
        ringtone=DEFAULT_RINGTONE,
        is_active=True,
        next_alarm=first_occurrence(DEFAULT_ALARM_TIME, DEFAULT_REPEAT_INTERVAL_HOURS, now, tz or settings.timezone),
    )


def create_alarm_config(
    store: RecordStore,
    data: AlarmConfigCreate,
    now: datetime | None = None,
    tz: str | None = None,
) -> AlarmConfigRecord:
    """Create (or replace) a user's alarm config."""
    if store.get_user(data.user_id) is None:
        raise NotFoundError("User", data.user_id)
    if data.next_alarm is not None:
        next_alarm = as_utc(data.next_alarm)
    else:
        next_alarm = first_occurrence(data.time, data.repeat_interval, now or utcnow(), tz or settings.timezone)
    config = store.create_alarm_config(
        user_id=data.user_id,
        time=data.time,
        repeat_interval=data.repeat_interval,
        ringtone=data.ringtone,
        is_active=data.is_active,
        next_alarm=next_alarm,
    )
    logger.info("Alarm config #%d set for user %d, next at %s", config.id, data.user_id, next_alarm.isoformat())
    return config


def update_alarm_config(
    store: RecordStore,
    config_id: int,
    changes: dict,
    now: datetime | None = None,
) -> AlarmConfigRecord:
    """Apply a partial update; unspecified fields are left untouched.

    Turning an alarm back on without a new next_alarm skips the occurrences
    it missed while it was off.
    """
    changes = dict(changes)
    if "next_alarm" in changes:
        changes["next_alarm"] = as_utc(changes["next_alarm"])
    config = store.update_alarm_config(config_id, changes)
    if config is None:
        raise NotFoundError("Alarm config", config_id)
    if changes.get("is_active") and "next_alarm" not in changes:
        config = skip_missed_occurrences(store, config, now)
    return config


def advance_alarm(
    store: RecordStore,
    config_id: int,
    expected_next_alarm: datetime,
) -> tuple[AlarmConfigRecord, bool]:
    """Move an alarm from `expected_next_alarm` to its next occurrence.

    Returns (config, advanced). When another writer already moved the alarm
    the current config is returned with advanced=False and nothing changes.
    """
    current = store.get_alarm_config(config_id)
    if current is None:
        raise NotFoundError("Alarm config", config_id)
    try:
        new = next_occurrence(expected_next_alarm, current.repeat_interval)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc

    updated = store.advance_next_alarm(config_id, as_utc(expected_next_alarm), new)
    if updated is not None:
        logger.info("Alarm config #%d advanced %s -> %s", config_id, expected_next_alarm.isoformat(), new.isoformat())
        return updated, True

    latest = store.get_alarm_config(config_id)
    if latest is None:
        raise NotFoundError("Alarm config", config_id)
    logger.info("Alarm config #%d already advanced to %s", config_id, latest.next_alarm.isoformat())
    return latest, False


def require_emergency_contact(store: RecordStore, user_id: int) -> EmergencyContactRecord:
    """Return the user's contact or refuse to arm/escalate without one."""
    contact = store.get_emergency_contact_by_user_id(user_id)
    if contact is None:
        raise MissingEmergencyContact(user_id)
    return contact


def activate_alarm(store: RecordStore, config_id: int, now: datetime | None = None) -> AlarmConfigRecord:
    """Arm an alarm. Nothing changes when the user has no emergency contact."""
    config = store.get_alarm_config(config_id)
    if config is None:
        raise NotFoundError("Alarm config", config_id)
    require_emergency_contact(store, config.user_id)
    if not config.is_active:
        config = store.update_alarm_config(config_id, {"is_active": True})
        if config is None:
            raise NotFoundError("Alarm config", config_id)
        logger.info("Alarm config #%d armed", config_id)
    return skip_missed_occurrences(store, config, now)


def skip_missed_occurrences(
    store: RecordStore,
    config: AlarmConfigRecord,
    now: datetime | None = None,
) -> AlarmConfigRecord:
    """Move a stale next_alarm to the first occurrence still inside its window.

    Used where an alarm becomes armable again (re-enabled, contact added).
    The skipped occurrences could not have rung, so nobody is notified.
    """
    try:
        fresh = skip_missed(config.next_alarm, config.repeat_interval, now or utcnow())
    except ValueError:
        logger.warning("Alarm config #%d has invalid interval %r", config.id, config.repeat_interval)
        return config
    if fresh == config.next_alarm:
        return config
    updated = store.advance_next_alarm(config.id, config.next_alarm, fresh)
    if updated is None:
        return store.get_alarm_config(config.id) or config
    logger.info(
        "Alarm config #%d skipped missed occurrences: %s -> %s",
        config.id, config.next_alarm.isoformat(), fresh.isoformat(),
    )
    return updated


def set_emergency_contact(
    store: RecordStore,
    user_id: int,
    name: str,
    whatsapp: str,
    now: datetime | None = None,
) -> EmergencyContactRecord:
    """Create (or replace) the user's contact and make their alarm current.

    Occurrences that went by without a contact are skipped, not escalated.
    """
    if store.get_user(user_id) is None:
        raise NotFoundError("User", user_id)
    contact = store.create_emergency_contact(user_id, name, whatsapp)
    config = store.get_alarm_config_by_user_id(user_id)
    if config is not None and config.is_active:
        skip_missed_occurrences(store, config, now)
    return contact
