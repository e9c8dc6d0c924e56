"""Client-side alarm state machine.

    IDLE -> ACTIVE -> DISMISSED | ESCALATED -> IDLE

The countdown is a deadline timestamp, not a tick counter: every `tick`
compares the clock with the deadline, so a clock restored after a restart
(or a long sleep) lands in the right state on its first tick.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Protocol

from app.client.feedback import FeedbackPort, LoggingFeedback, ReminderPort, TimerReminder
from app.core.alarm_policies import REMINDER_DELAY_SECONDS
from app.core.clock import as_utc, utcnow
from app.core.config import settings
from app.core.errors import MissingEmergencyContact, PreconditionError
from app.db.records import AlarmConfigRecord, EmergencyContactRecord
from app.services.notifier import (
    DeepLinkNotifier,
    EmergencyAlert,
    FallbackNotifier,
    Notifier,
    NotifyResult,
    ServerChannelNotifier,
    build_emergency_message,
)
from app.services.schedule import TOLERANCE, escalation_deadline, first_occurrence, is_due, next_occurrence

logger = logging.getLogger(__name__)


class AlarmBackend(Protocol):
    """What the clock needs from the server. AlarmApiClient implements it."""

    def get_alarm_config(self, user_id: int) -> AlarmConfigRecord | None: ...

    def get_emergency_contact(self, user_id: int) -> EmergencyContactRecord | None: ...

    def update_alarm_config(self, config_id: int, **changes) -> AlarmConfigRecord: ...

    def advance_alarm(self, config_id: int, expected_next_alarm: datetime) -> tuple[AlarmConfigRecord, bool]: ...


class AlarmState(str, enum.Enum):
    IDLE = "idle"
    ACTIVE = "active"
    DISMISSED = "dismissed"
    ESCALATED = "escalated"


@dataclass
class Countdown:
    occurrence: datetime | None  # next_alarm being handled, None for a manual activation
    deadline: datetime
    started_at: datetime

    def remaining(self, now: datetime) -> float:
        return max(0.0, (self.deadline - as_utc(now)).total_seconds())


class AlarmClock:
    """Rings the user's alarm and escalates when it is not dismissed in time."""

    def __init__(
        self,
        user_id: int,
        user_name: str,
        backend: AlarmBackend,
        notifier: Notifier | None = None,
        feedback: FeedbackPort | None = None,
        reminder: ReminderPort | None = None,
        clock: Callable[[], datetime] = utcnow,
        tz: str | None = None,
    ) -> None:
        self.user_id = user_id
        self.user_name = user_name
        self._backend = backend
        if notifier is None:
            notifier = FallbackNotifier(ServerChannelNotifier(backend), DeepLinkNotifier())
        self._notifier = notifier
        self._feedback = feedback or LoggingFeedback()
        self._reminder = reminder or TimerReminder(clock=clock)
        self._clock = clock
        self._tz = tz or settings.timezone

        self.state = AlarmState.IDLE
        self.config: AlarmConfigRecord | None = None
        self.contact: EmergencyContactRecord | None = None
        self.countdown: Countdown | None = None
        self.last_result: NotifyResult | None = None

    # Loading

    def load(self) -> AlarmConfigRecord | None:
        """Fetch the alarm config and emergency contact from the server."""
        self.config = self._backend.get_alarm_config(self.user_id)
        self.contact = self._backend.get_emergency_contact(self.user_id)
        if self.config is None:
            logger.warning("User %d has no alarm config", self.user_id)
        return self.config

    def resume(self, now: datetime | None = None) -> AlarmState:
        """Load and reconstruct state after a restart."""
        self.load()
        return self.tick(now)

    # Commands

    def configure(
        self,
        time: str,
        repeat_interval: int,
        ringtone: str | None = None,
        is_active: bool | None = None,
        now: datetime | None = None,
    ) -> AlarmConfigRecord:
        """Change the alarm settings; nextAlarm is recomputed from `time`."""
        if self.state == AlarmState.ACTIVE:
            raise PreconditionError("Dismiss the ringing alarm before changing its settings")
        config = self._require_config()
        if is_active and not config.is_active:
            self._require_contact()

        changes = {
            "time": time,
            "repeat_interval": repeat_interval,
            "next_alarm": first_occurrence(time, repeat_interval, now or self._clock(), self._tz),
        }
        if ringtone is not None:
            changes["ringtone"] = ringtone
        if is_active is not None:
            changes["is_active"] = is_active
        self.config = self._backend.update_alarm_config(config.id, **changes)
        logger.info("Alarm configured: %s every %dh, next at %s", time, repeat_interval, self.config.next_alarm)
        return self.config

    def activate(self, now: datetime | None = None) -> Countdown:
        """Arm now: start ringing immediately with a full tolerance window.

        A manual window is not tied to an occurrence. Dismissing it only moves
        next_alarm on when that occurrence came due while it was ringing.

        Raises MissingEmergencyContact, leaving the config untouched, when
        the user has no emergency contact.
        """
        if self.state == AlarmState.ACTIVE:
            raise PreconditionError("Alarm is already ringing")
        now = as_utc(now or self._clock())
        config = self._require_config()
        self.contact = self._backend.get_emergency_contact(self.user_id)
        self._require_contact()

        if not config.is_active:
            self.config = config = self._backend.update_alarm_config(config.id, is_active=True)
        return self._start(None, now + TOLERANCE, now)

    def tick(self, now: datetime | None = None) -> AlarmState:
        """Advance the state machine to `now`."""
        now = as_utc(now or self._clock())

        if self.state == AlarmState.ACTIVE:
            if now >= self.countdown.deadline:
                self._escalate(now)
            return self.state

        config = self.config
        if config is None or not config.is_active or not is_due(config.next_alarm, now):
            return self.state

        if self.contact is None:
            self.contact = self._backend.get_emergency_contact(self.user_id)
            if self.contact is None:
                logger.warning(
                    "Alarm for user %d is due but there is no emergency contact; not arming",
                    self.user_id,
                )
                return self.state

        deadline = escalation_deadline(config.next_alarm)
        self._start(config.next_alarm, deadline, now)
        if now >= deadline:
            logger.warning("Alarm window for %s already elapsed; escalating now", config.next_alarm.isoformat())
            self._escalate(now)
        return self.state

    def dismiss(self, now: datetime | None = None) -> AlarmConfigRecord:
        """User is fine: stop ringing and move to the next occurrence."""
        if self.state != AlarmState.ACTIVE:
            raise PreconditionError("No alarm is ringing")
        now = as_utc(now or self._clock())
        logger.info(
            "Alarm dismissed with %.0fs left", self.countdown.remaining(now),
        )
        self._release()
        self.state = AlarmState.DISMISSED
        self._finish(self._covered_occurrence(now))
        return self.config

    def teardown(self) -> None:
        """Release feedback and the reminder. Persisted state is left as is."""
        self._release()
        self.countdown = None
        self.state = AlarmState.IDLE

    async def run(self, poll_seconds: float = 1.0, stop_event: asyncio.Event | None = None) -> None:
        """Resume, then tick until `stop_event` is set. Backend calls run in a worker thread."""
        stop_event = stop_event or asyncio.Event()
        await asyncio.to_thread(self.resume)
        try:
            while not stop_event.is_set():
                await asyncio.to_thread(self.tick)
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=poll_seconds)
                except asyncio.TimeoutError:
                    pass
        finally:
            self.teardown()

    # Internals

    def _require_config(self) -> AlarmConfigRecord:
        if self.config is None and self.load() is None:
            raise PreconditionError(f"User {self.user_id} has no alarm config")
        return self.config

    def _require_contact(self) -> EmergencyContactRecord:
        if self.contact is None:
            raise MissingEmergencyContact(self.user_id)
        return self.contact

    def _start(self, occurrence: datetime | None, deadline: datetime, now: datetime) -> Countdown:
        self.countdown = Countdown(
            occurrence=as_utc(occurrence) if occurrence is not None else None,
            deadline=as_utc(deadline),
            started_at=now,
        )
        self.state = AlarmState.ACTIVE
        self._feedback.start(self.config.ringtone)
        self._reminder.schedule(
            now + timedelta(seconds=REMINDER_DELAY_SECONDS),
            "Your SafeWake alarm is ringing. Open the app to turn it off.",
        )
        logger.info(
            "Alarm ringing for user %d; escalation at %s", self.user_id, self.countdown.deadline.isoformat(),
        )
        return self.countdown

    def _release(self) -> None:
        self._feedback.stop()
        self._reminder.cancel()

    def _covered_occurrence(self, now: datetime) -> datetime | None:
        """Occurrence handled by the current countdown, if any."""
        if self.countdown.occurrence is not None:
            return self.countdown.occurrence
        config = self.config
        if config is not None and config.is_active and is_due(config.next_alarm, now):
            return as_utc(config.next_alarm)
        return None

    def _escalate(self, now: datetime) -> None:
        covered = self._covered_occurrence(now)
        self._release()
        self.state = AlarmState.ESCALATED
        logger.warning("Alarm for user %d not dismissed in time; escalating", self.user_id)

        alert = EmergencyAlert(
            user_id=self.user_id,
            user_name=self.user_name,
            contact=self.contact,
            message=build_emergency_message(self.user_name),
            occurrence=covered or self.countdown.started_at,
        )
        try:
            self.last_result = self._notifier.notify(alert)
        except Exception as exc:  # noqa: BLE001 - reschedule must still happen
            logger.exception("Emergency notification raised")
            self.last_result = NotifyResult(success=False, detail=str(exc))
        if not self.last_result.success:
            logger.error("Emergency notification failed: %s", self.last_result.detail)
        self._finish(covered)

    def _finish(self, occurrence: datetime | None) -> None:
        if occurrence is not None:
            self._reschedule(occurrence)
        self.countdown = None
        self.state = AlarmState.IDLE

    def _reschedule(self, occurrence: datetime) -> None:
        config = self.config
        try:
            self.config, advanced = self._backend.advance_alarm(config.id, occurrence)
            if not advanced:
                logger.info("Alarm was already advanced to %s", self.config.next_alarm.isoformat())
        except Exception:  # noqa: BLE001 - keep ringing on schedule locally
            logger.exception("Could not persist next alarm; advancing locally")
            self.config = replace(config, next_alarm=next_occurrence(occurrence, config.repeat_interval))
