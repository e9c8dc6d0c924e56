"""Escalation reconciler: the server-side backstop of the dead-man's switch.

Every pass loads all active alarms and escalates the ones whose tolerance
window elapsed without the client handling them, for instance because the
app was closed. An escalation advances `next_alarm` by one repeat interval and
notifies the emergency contact.

The pass keeps no state of its own: the only memory is `next_alarm`, which
is advanced with a compare-and-advance write. If the client (or another pass)
already moved the alarm, the write loses and nothing is sent, so escalating
twice for one occurrence cannot happen through this path.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from app.core.clock import utcnow
from app.core.errors import MissingEmergencyContact, NotFoundError, ReconcilerRecordError
from app.db.records import AlarmConfigRecord
from app.db.store import RecordStore
from app.services.alarm_service import require_emergency_contact
from app.services.escalation_service import EmergencyDispatcher
from app.services.schedule import (
    coerce_timestamp,
    is_past_tolerance,
    is_valid_interval,
    next_occurrence,
    skip_missed,
)

logger = logging.getLogger(__name__)

# Outcome actions
PENDING = "pending"        # still inside its window, untouched
ESCALATED = "escalated"    # advanced and notification attempted
RACED = "raced"            # another writer advanced it first
BLOCKED = "blocked"        # no emergency contact, missed occurrences skipped
INVALID = "invalid"        # malformed record, skipped
FAILED = "failed"          # unexpected error for this record


@dataclass
class ReconcileOutcome:
    config_id: int
    user_id: int
    action: str
    previous: datetime | None = None
    next_alarm: datetime | None = None
    notified: bool | None = None
    detail: str = ""


@dataclass
class ReconcileReport:
    started_at: datetime
    outcomes: list[ReconcileOutcome] = field(default_factory=list)
    load_error: str | None = None

    def count(self, action: str) -> int:
        return sum(1 for o in self.outcomes if o.action == action)

    @property
    def checked(self) -> int:
        return len(self.outcomes)

    @property
    def escalated(self) -> int:
        return self.count(ESCALATED)

    @property
    def notified(self) -> int:
        return sum(1 for o in self.outcomes if o.notified)


class EscalationReconciler:
    """Periodic escalation pass over every active alarm.

    `run_once` never raises for a single record, and two passes never
    overlap: a pass that starts while another is running returns None.
    """

    def __init__(
        self,
        store: RecordStore,
        dispatcher: EmergencyDispatcher,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._dispatcher = dispatcher
        self._clock = clock
        self._run_lock = threading.Lock()

    def run_once(self, now: datetime | None = None) -> ReconcileReport | None:
        if not self._run_lock.acquire(blocking=False):
            logger.info("Reconciler pass already running; skipping this tick")
            return None
        try:
            return self._run(now or self._clock())
        finally:
            self._run_lock.release()

    def _run(self, now: datetime) -> ReconcileReport:
        report = ReconcileReport(started_at=now)
        try:
            configs = self._store.list_active_alarm_configs()
        except Exception as exc:  # noqa: BLE001 - next pass retries
            logger.exception("Reconciler could not load alarm configs")
            report.load_error = str(exc)
            return report

        for config in configs:
            try:
                outcome = self._reconcile(config, now)
            except ReconcilerRecordError as exc:
                logger.warning("Skipping alarm config #%s: %s", config.id, exc.reason)
                outcome = ReconcileOutcome(config.id, config.user_id, INVALID, detail=exc.reason)
            except Exception as exc:  # noqa: BLE001 - isolate failures per record
                logger.exception("Reconciler failed on alarm config #%s", config.id)
                outcome = ReconcileOutcome(config.id, config.user_id, FAILED, detail=str(exc))
            report.outcomes.append(outcome)

        logger.info(
            "Reconciler pass at %s: checked=%d escalated=%d notified=%d skipped=%d",
            now.isoformat(), report.checked, report.escalated, report.notified,
            report.count(INVALID) + report.count(BLOCKED) + report.count(FAILED),
        )
        return report

    def _reconcile(self, config: AlarmConfigRecord, now: datetime) -> ReconcileOutcome:
        if not config.is_active:
            return ReconcileOutcome(config.id, config.user_id, PENDING, detail="inactive")

        try:
            next_alarm = coerce_timestamp(config.next_alarm)
        except ValueError as exc:
            raise ReconcilerRecordError(config.id, f"unparseable nextAlarm {config.next_alarm!r}") from exc

        if not is_past_tolerance(next_alarm, now):
            return ReconcileOutcome(config.id, config.user_id, PENDING, previous=next_alarm, next_alarm=next_alarm)

        if not is_valid_interval(config.repeat_interval):
            raise ReconcilerRecordError(config.id, f"invalid repeatInterval {config.repeat_interval!r}")

        try:
            require_emergency_contact(self._store, config.user_id)
        except MissingEmergencyContact as exc:
            return self._skip_blocked(config, next_alarm, now, exc)

        new_next_alarm = next_occurrence(next_alarm, config.repeat_interval)
        logger.warning(
            "Alarm config #%d for user %d missed (nextAlarm=%s); escalating, next at %s",
            config.id, config.user_id, next_alarm.isoformat(), new_next_alarm.isoformat(),
        )

        try:
            advanced = self._store.advance_next_alarm(config.id, config.next_alarm, new_next_alarm)
        except Exception:  # noqa: BLE001 - bookkeeping failure must not block the notification
            logger.exception("Could not persist next alarm for config #%d; notifying anyway", config.id)
        else:
            if advanced is None:
                logger.info("Alarm config #%d was advanced by another writer; not escalating", config.id)
                return ReconcileOutcome(config.id, config.user_id, RACED, previous=next_alarm)

        notified, detail = self._notify(config.user_id, next_alarm)
        return ReconcileOutcome(
            config.id,
            config.user_id,
            ESCALATED,
            previous=next_alarm,
            next_alarm=new_next_alarm,
            notified=notified,
            detail=detail,
        )

    def _skip_blocked(
        self,
        config: AlarmConfigRecord,
        next_alarm: datetime,
        now: datetime,
        exc: MissingEmergencyContact,
    ) -> ReconcileOutcome:
        # Nobody to notify: move past the missed occurrences silently.
        fresh = skip_missed(next_alarm, config.repeat_interval, now)
        logger.warning(
            "Alarm config #%d missed but cannot escalate: %s; skipping to %s",
            config.id, exc, fresh.isoformat(),
        )
        try:
            advanced = self._store.advance_next_alarm(config.id, config.next_alarm, fresh)
        except Exception:  # noqa: BLE001 - retried on the next pass
            logger.exception("Could not skip missed occurrences for config #%d", config.id)
            fresh = next_alarm
        else:
            if advanced is None:
                logger.info("Alarm config #%d was advanced by another writer", config.id)
                return ReconcileOutcome(config.id, config.user_id, RACED, previous=next_alarm)
        return ReconcileOutcome(
            config.id, config.user_id, BLOCKED, previous=next_alarm, next_alarm=fresh, detail=str(exc)
        )

    def _notify(self, user_id: int, occurrence: datetime) -> tuple[bool, str]:
        try:
            result = self._dispatcher.dispatch(user_id, occurrence=occurrence)
        except NotFoundError as exc:
            logger.warning("Cannot notify for user %d: %s", user_id, exc)
            return False, str(exc)
        except Exception as exc:  # noqa: BLE001 - reported, next occurrence is the safety net
            logger.exception("Emergency dispatch failed for user %d", user_id)
            return False, str(exc)
        return result.success, result.detail
