"""SQLAlchemy-backed record store.

Each operation runs in its own short transaction so the store can be shared
between request handlers and the reconciler thread.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

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
from app.models.alarm_config import AlarmConfig
from app.models.emergency_contact import EmergencyContact
from app.models.escalation_event import EscalationEvent
from app.models.user import User

logger = logging.getLogger(__name__)


def _user_record(row: User) -> UserRecord:
    return UserRecord(
        id=row.id,
        email=row.email,
        password=row.hashed_password,
        full_name=row.full_name,
        whatsapp=row.whatsapp,
        birthdate=row.birthdate,
        country=row.country,
    )


def _contact_record(row: EmergencyContact) -> EmergencyContactRecord:
    return EmergencyContactRecord(
        id=row.id,
        user_id=row.user_id,
        name=row.name,
        whatsapp=row.whatsapp,
    )


def _config_record(row: AlarmConfig) -> AlarmConfigRecord:
    return AlarmConfigRecord(
        id=row.id,
        user_id=row.user_id,
        time=row.time,
        repeat_interval=row.repeat_interval,
        ringtone=row.ringtone,
        is_active=row.is_active,
        # SQLite drops tzinfo; everything is written as UTC
        next_alarm=as_utc(row.next_alarm),
    )


class SqlAlchemyStore:
    """RecordStore over the users / emergency_contacts / alarm_configs tables."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    # ---------- Users ----------

    def get_user(self, user_id: int) -> UserRecord | None:
        with self._session_factory() as db:
            row = db.get(User, user_id)
            return _user_record(row) if row else None

    def get_user_by_email(self, email: str) -> UserRecord | None:
        stmt = select(User).where(func.lower(User.email) == email.strip().lower())
        with self._session_factory() as db:
            row = db.execute(stmt).scalar_one_or_none()
            return _user_record(row) if row else None

    def create_user(
        self,
        email: str,
        password: str,
        full_name: str,
        whatsapp: str = "",
        birthdate: str = "",
        country: str = DEFAULT_COUNTRY,
    ) -> UserRecord:
        with self._session_factory.begin() as db:
            row = User(
                email=email,
                hashed_password=password,
                full_name=full_name,
                whatsapp=whatsapp,
                birthdate=birthdate,
                country=country,
            )
            db.add(row)
            db.flush()
            user = _user_record(row)
        logger.info("User created: #%d <%s>", user.id, email)
        return user

    def update_user(self, user_id: int, changes: Mapping[str, Any]) -> UserRecord | None:
        check_fields("user", changes, USER_FIELDS)
        with self._session_factory.begin() as db:
            row = db.get(User, user_id)
            if row is None:
                return None
            for key, value in changes.items():
                setattr(row, "hashed_password" if key == "password" else key, value)
            db.flush()
            return _user_record(row)

    # ---------- Emergency contacts ----------

    def get_emergency_contact_by_user_id(self, user_id: int) -> EmergencyContactRecord | None:
        stmt = select(EmergencyContact).where(EmergencyContact.user_id == user_id)
        with self._session_factory() as db:
            row = db.execute(stmt).scalar_one_or_none()
            return _contact_record(row) if row else None

    def create_emergency_contact(
        self, user_id: int, name: str, whatsapp: str,
    ) -> EmergencyContactRecord:
        with self._session_factory.begin() as db:
            # Core DELETE runs before the INSERT is flushed, keeping the
            # unique(user_id) constraint satisfied inside one transaction.
            db.execute(delete(EmergencyContact).where(EmergencyContact.user_id == user_id))
            row = EmergencyContact(user_id=user_id, name=name, whatsapp=whatsapp)
            db.add(row)
            db.flush()
            return _contact_record(row)

    def update_emergency_contact(
        self, contact_id: int, changes: Mapping[str, Any],
    ) -> EmergencyContactRecord | None:
        check_fields("emergency contact", changes, EMERGENCY_CONTACT_FIELDS)
        with self._session_factory.begin() as db:
            row = db.get(EmergencyContact, contact_id)
            if row is None:
                return None
            for key, value in changes.items():
                setattr(row, key, value)
            db.flush()
            return _contact_record(row)

    # ---------- Alarm configs ----------

    def get_alarm_config(self, config_id: int) -> AlarmConfigRecord | None:
        with self._session_factory() as db:
            row = db.get(AlarmConfig, config_id)
            return _config_record(row) if row else None

    def get_alarm_config_by_user_id(self, user_id: int) -> AlarmConfigRecord | None:
        stmt = select(AlarmConfig).where(AlarmConfig.user_id == user_id)
        with self._session_factory() as db:
            row = db.execute(stmt).scalar_one_or_none()
            return _config_record(row) if row else None

    def list_active_alarm_configs(self) -> list[AlarmConfigRecord]:
        stmt = select(AlarmConfig).where(AlarmConfig.is_active.is_(True)).order_by(AlarmConfig.id)
        with self._session_factory() as db:
            return [_config_record(row) for row in db.execute(stmt).scalars().all()]

    def create_alarm_config(
        self,
        user_id: int,
        time: str,
        repeat_interval: int,
        ringtone: str,
        is_active: bool,
        next_alarm: datetime,
    ) -> AlarmConfigRecord:
        with self._session_factory.begin() as db:
            db.execute(delete(AlarmConfig).where(AlarmConfig.user_id == user_id))
            row = AlarmConfig(
                user_id=user_id,
                time=time,
                repeat_interval=repeat_interval,
                ringtone=ringtone,
                is_active=is_active,
                next_alarm=as_utc(next_alarm),
            )
            db.add(row)
            db.flush()
            return _config_record(row)

    def update_alarm_config(
        self, config_id: int, changes: Mapping[str, Any],
    ) -> AlarmConfigRecord | None:
        check_fields("alarm config", changes, ALARM_CONFIG_FIELDS)
        with self._session_factory.begin() as db:
            row = db.get(AlarmConfig, config_id)
            if row is None:
                return None
            for key, value in changes.items():
                if key == "next_alarm" and isinstance(value, datetime):
                    value = as_utc(value)
                setattr(row, key, value)
            db.flush()
            return _config_record(row)

    def advance_next_alarm(
        self, config_id: int, expected: datetime, new: datetime,
    ) -> AlarmConfigRecord | None:
        stmt = (
            update(AlarmConfig)
            .where(AlarmConfig.id == config_id, AlarmConfig.next_alarm == as_utc(expected))
            .values(next_alarm=as_utc(new))
            .execution_options(synchronize_session=False)
        )
        with self._session_factory.begin() as db:
            result = db.execute(stmt)
            if result.rowcount == 0:
                return None
            row = db.get(AlarmConfig, config_id)
            return _config_record(row) if row else None

    # ---------- Escalations ----------

    def claim_escalation(self, user_id: int, occurrence: datetime) -> bool:
        # unique(user_id, occurrence) makes the INSERT the claim
        try:
            with self._session_factory.begin() as db:
                db.add(EscalationEvent(user_id=user_id, occurrence=as_utc(occurrence)))
        except IntegrityError:
            return False
        return True

    def release_escalation(self, user_id: int, occurrence: datetime) -> None:
        stmt = delete(EscalationEvent).where(
            EscalationEvent.user_id == user_id,
            EscalationEvent.occurrence == as_utc(occurrence),
        )
        with self._session_factory.begin() as db:
            db.execute(stmt)
