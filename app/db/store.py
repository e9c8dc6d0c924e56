"""Record store interface.

Core modules depend on this protocol, never on a specific storage engine.
Two implementations ship: MemoryStore (process-local maps) and
SqlAlchemyStore (any SQLAlchemy database).
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any, Protocol

from app.core.alarm_policies import DEFAULT_COUNTRY
from app.core.errors import ValidationError
from app.db.records import AlarmConfigRecord, EmergencyContactRecord, UserRecord


class RecordStore(Protocol):
    """CRUD contract over users, emergency contacts and alarm configs.

    - get_* returns None when the record is absent.
    - update_* returns None when the id does not exist and never creates.
    - create_emergency_contact / create_alarm_config replace any record the
      user already has, so a user never owns two of either.
    """

    # Users
    def get_user(self, user_id: int) -> UserRecord | None: ...

    def get_user_by_email(self, email: str) -> UserRecord | None: ...

    def create_user(
        self,
        email: str,
        password: str,
        full_name: str,
        whatsapp: str = "",
        birthdate: str = "",
        country: str = DEFAULT_COUNTRY,
    ) -> UserRecord: ...

    def update_user(self, user_id: int, changes: Mapping[str, Any]) -> UserRecord | None: ...

    # Emergency contacts
    def get_emergency_contact_by_user_id(self, user_id: int) -> EmergencyContactRecord | None: ...

    def create_emergency_contact(
        self, user_id: int, name: str, whatsapp: str,
    ) -> EmergencyContactRecord: ...

    def update_emergency_contact(
        self, contact_id: int, changes: Mapping[str, Any],
    ) -> EmergencyContactRecord | None: ...

    # Alarm configs
    def get_alarm_config(self, config_id: int) -> AlarmConfigRecord | None: ...

    def get_alarm_config_by_user_id(self, user_id: int) -> AlarmConfigRecord | None: ...

    def list_active_alarm_configs(self) -> list[AlarmConfigRecord]: ...

    def create_alarm_config(
        self,
        user_id: int,
        time: str,
        repeat_interval: int,
        ringtone: str,
        is_active: bool,
        next_alarm: datetime,
    ) -> AlarmConfigRecord: ...

    def update_alarm_config(
        self, config_id: int, changes: Mapping[str, Any],
    ) -> AlarmConfigRecord | None: ...

    def advance_next_alarm(
        self, config_id: int, expected: datetime, new: datetime,
    ) -> AlarmConfigRecord | None:
        """Set next_alarm to `new` only if it still equals `expected`.

        Returns the updated record, or None when the record is missing or
        another writer already moved next_alarm.
        """
        ...

    # Escalations
    def claim_escalation(self, user_id: int, occurrence: datetime) -> bool:
        """Record that the occurrence is being escalated.

        Returns False when it was already claimed, by this process or any
        other one sharing the store.
        """
        ...

    def release_escalation(self, user_id: int, occurrence: datetime) -> None: ...


def check_fields(entity: str, changes: Mapping[str, Any], allowed: Iterable[str]) -> None:
    """Reject partial updates that touch fields outside the allowlist."""
    unknown = sorted(set(changes) - set(allowed))
    if unknown:
        raise ValidationError(f"Unknown {entity} field(s): {', '.join(unknown)}")
