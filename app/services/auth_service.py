"""Auth and profile service."""

from __future__ import annotations

import logging
from datetime import datetime

from app.core.config import settings
from app.core.errors import NotFoundError, ValidationError
from app.core.security import hash_password, verify_password
from app.db.records import UserRecord
from app.db.store import RecordStore
from app.schemas.auth import RegisterRequest
from app.services.alarm_service import create_default_alarm_config

logger = logging.getLogger(__name__)


def register_user(
    store: RecordStore,
    data: RegisterRequest,
    now: datetime | None = None,
    tz: str | None = None,
) -> UserRecord:
    """Create a user with the default alarm config and, if given, an emergency contact."""
    if store.get_user_by_email(data.email):
        raise ValidationError("Email already registered")

    user = store.create_user(
        email=data.email,
        password=hash_password(data.password),
        full_name=data.full_name,
        whatsapp=data.whatsapp,
        birthdate=data.birthdate,
        country=data.country,
    )
    create_default_alarm_config(store, user.id, now=now, tz=tz or settings.timezone)

    if data.emergency_contact is not None:
        store.create_emergency_contact(
            user_id=user.id,
            name=data.emergency_contact.name,
            whatsapp=data.emergency_contact.whatsapp,
        )
    logger.info("User %d registered (emergency contact: %s)", user.id, data.emergency_contact is not None)
    return user


def authenticate_user(store: RecordStore, email: str, password: str) -> UserRecord | None:
    """Authenticate user by email and password."""
    user = store.get_user_by_email(email)
    if not user or not verify_password(password, user.password):
        return None
    return user


def update_profile(store: RecordStore, user_id: int, changes: dict) -> UserRecord:
    """Apply a partial profile update. Passwords are re-hashed; emails stay unique."""
    changes = dict(changes)
    if "email" in changes:
        owner = store.get_user_by_email(changes["email"])
        if owner and owner.id != user_id:
            raise ValidationError("Email already registered")
    if "password" in changes:
        changes["password"] = hash_password(changes["password"])

    user = store.update_user(user_id, changes)
    if user is None:
        raise NotFoundError("User", user_id)
    return user
