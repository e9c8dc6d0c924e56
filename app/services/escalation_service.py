"""Server-side emergency dispatch shared by the API and the reconciler."""

from __future__ import annotations

import logging
from datetime import datetime

from app.core.clock import as_utc
from app.core.errors import NotFoundError
from app.db.store import RecordStore
from app.services.notifier import (
    EmergencyAlert,
    Notifier,
    NotifyResult,
    build_emergency_message,
)

logger = logging.getLogger(__name__)


class EmergencyDispatcher:
    """Builds the alert for a user and hands it to the notifier exactly once.

    Alerts tied to an occurrence are claimed in the record store first, so
    the client's own escalation and a reconciler pass for the same missed
    occurrence produce a single message even when they run in different
    processes. A failed delivery releases its claim so a later attempt may
    retry.
    """

    def __init__(self, store: RecordStore, notifier: Notifier) -> None:
        self._store = store
        self._notifier = notifier

    def dispatch(self, user_id: int, occurrence: datetime | None = None) -> NotifyResult:
        """Notify the user's emergency contact.

        Raises NotFoundError when the user or the contact is missing; every
        delivery problem is reported in the returned NotifyResult.
        """
        user = self._store.get_user(user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        contact = self._store.get_emergency_contact_by_user_id(user_id)
        if contact is None:
            raise NotFoundError("Emergency contact", user_id)

        alert = EmergencyAlert(
            user_id=user.id,
            user_name=user.full_name,
            contact=contact,
            message=build_emergency_message(user.full_name),
            occurrence=as_utc(occurrence) if occurrence is not None else None,
        )
        if alert.occurrence is not None and not self._store.claim_escalation(user.id, alert.occurrence):
            logger.info("Emergency for user %d occurrence %s already sent", user_id, alert.occurrence)
            return NotifyResult(
                success=True,
                detail=f"Emergency message for this occurrence was already sent to {contact.name}",
                duplicate=True,
            )

        try:
            result = self._notifier.notify(alert)
        except Exception as exc:  # noqa: BLE001 - delivery failure is reported, never raised
            logger.exception("Notifier raised for user %d", user_id)
            result = NotifyResult(success=False, detail=f"Notifier error: {exc}")

        if result.success:
            logger.warning("Emergency message dispatched for user %d via %s", user_id, result.channel or "notifier")
        else:
            logger.error("Emergency message for user %d NOT delivered: %s", user_id, result.detail)
            if alert.occurrence is not None:
                self._store.release_escalation(user.id, alert.occurrence)
        return result
