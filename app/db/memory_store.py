"""In-process record store.

One dict per entity kind keyed by an auto-incrementing integer id. A single
re-entrant lock makes every operation, including replace-on-create and
compare-and-advance, atomic within the process.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from dataclasses import replace
from datetime import datetime
from typing import Any

from app.core.alarm_policies import DEFAULT_COUNTRY
from app.core.clock import as_utc
from app.db.records import (
    ALARM_CONFIG_FIELDS,
    EMERGENCY_CONTACT_FIELDS,
    USER_FIELDS,
    AlarmConfigRecord,
    EmergencyContactRecord,
    UserRecord,
)
from app.db.store import check_fields

logger = logging.getLogger(__name__)


class MemoryStore:
    """Dict-backed implementation of RecordStore."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._users: dict[int, UserRecord] = {}
        self._contacts: dict[int, EmergencyContactRecord] = {}
        self._configs: dict[int, AlarmConfigRecord] = {}
        self._next_ids = {"user": 1, "contact": 1, "config": 1}
        self._escalations: set[tuple[int, datetime]] = set()

    def _allocate_id(self, kind: str) -> int:
        new_id = self._next_ids[kind]
        self._next_ids[kind] += 1
        return new_id

    # ---------- Users ----------

    def get_user(self, user_id: int) -> UserRecord | None:
        with self._lock:
            user = self._users.get(user_id)
            return replace(user) if user else None

    def get_user_by_email(self, email: str) -> UserRecord | None:
        needle = email.strip().lower()
        with self._lock:
            for user in self._users.values():
                if user.email.lower() == needle:
                    return replace(user)
        return None

    def create_user(
        self,
        email: str,
        password: str,
        full_name: str,
        whatsapp: str = "",
        birthdate: str = "",
        country: str = DEFAULT_COUNTRY,
    ) -> UserRecord:
        with self._lock:
            user = UserRecord(
                id=self._allocate_id("user"),
                email=email,
                password=password,
                full_name=full_name,
                whatsapp=whatsapp,
                birthdate=birthdate,
                country=country,
            )
            self._users[user.id] = user
        logger.info("User created: #%d <%s>", user.id, email)
        return replace(user)

    def update_user(self, user_id: int, changes: Mapping[str, Any]) -> UserRecord | None:
        check_fields("user", changes, USER_FIELDS)
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return None
            user = replace(user, **changes)
            self._users[user_id] = user
            return replace(user)

    # ---------- Emergency contacts ----------

    def get_emergency_contact_by_user_id(self, user_id: int) -> EmergencyContactRecord | None:
        with self._lock:
            for contact in self._contacts.values():
                if contact.user_id == user_id:
                    return replace(contact)
        return None

    def create_emergency_contact(
        self, user_id: int, name: str, whatsapp: str,
    ) -> EmergencyContactRecord:
        with self._lock:
            stale = [cid for cid, c in self._contacts.items() if c.user_id == user_id]
            for cid in stale:
                del self._contacts[cid]
            contact = EmergencyContactRecord(
                id=self._allocate_id("contact"),
                user_id=user_id,
                name=name,
                whatsapp=whatsapp,
            )
            self._contacts[contact.id] = contact
        if stale:
            logger.info("Emergency contact for user %d replaced (#%s -> #%d)", user_id, stale, contact.id)
        return replace(contact)

    def update_emergency_contact(
        self, contact_id: int, changes: Mapping[str, Any],
    ) -> EmergencyContactRecord | None:
        check_fields("emergency contact", changes, EMERGENCY_CONTACT_FIELDS)
        with self._lock:
            contact = self._contacts.get(contact_id)
            if contact is None:
                return None
            contact = replace(contact, **changes)
            self._contacts[contact_id] = contact
            return replace(contact)

    # ---------- Alarm configs ----------

    def get_alarm_config(self, config_id: int) -> AlarmConfigRecord | None:
        with self._lock:
            config = self._configs.get(config_id)
            return replace(config) if config else None

    def get_alarm_config_by_user_id(self, user_id: int) -> AlarmConfigRecord | None:
        with self._lock:
            for config in self._configs.values():
                if config.user_id == user_id:
                    return replace(config)
        return None

    def list_active_alarm_configs(self) -> list[AlarmConfigRecord]:
        with self._lock:
            return [replace(c) for c in self._configs.values() if c.is_active]

    def create_alarm_config(
        self,
        user_id: int,
        time: str,
        repeat_interval: int,
        ringtone: str,
        is_active: bool,
        next_alarm: datetime,
    ) -> AlarmConfigRecord:
        with self._lock:
            stale = [cid for cid, c in self._configs.items() if c.user_id == user_id]
            for cid in stale:
                del self._configs[cid]
            config = AlarmConfigRecord(
                id=self._allocate_id("config"),
                user_id=user_id,
                time=time,
                repeat_interval=repeat_interval,
                ringtone=ringtone,
                is_active=is_active,
                next_alarm=next_alarm,
            )
            self._configs[config.id] = config
        if stale:
            logger.info("Alarm config for user %d replaced (#%s -> #%d)", user_id, stale, config.id)
        return replace(config)

    def update_alarm_config(
        self, config_id: int, changes: Mapping[str, Any],
    ) -> AlarmConfigRecord | None:
        check_fields("alarm config", changes, ALARM_CONFIG_FIELDS)
        with self._lock:
            config = self._configs.get(config_id)
            if config is None:
                return None
            config = replace(config, **changes)
            self._configs[config_id] = config
            return replace(config)

    def advance_next_alarm(
        self, config_id: int, expected: datetime, new: datetime,
    ) -> AlarmConfigRecord | None:
        with self._lock:
            config = self._configs.get(config_id)
            if config is None or config.next_alarm != expected:
                return None
            config = replace(config, next_alarm=new)
            self._configs[config_id] = config
            return replace(config)

    # ---------- Escalations ----------

    def claim_escalation(self, user_id: int, occurrence: datetime) -> bool:
        key = (user_id, as_utc(occurrence))
        with self._lock:
            if key in self._escalations:
                return False
            self._escalations.add(key)
            return True

    def release_escalation(self, user_id: int, occurrence: datetime) -> None:
        with self._lock:
            self._escalations.discard((user_id, as_utc(occurrence)))
