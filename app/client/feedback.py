"""Device side effects of a ringing alarm: sound/vibration and the local reminder.

The Alarm Clock only talks to these protocols; the defaults log.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import datetime
from typing import Protocol

from app.core.alarm_policies import VIBRATE_ONLY
from app.core.clock import as_utc, utcnow

logger = logging.getLogger(__name__)


class FeedbackPort(Protocol):
    def start(self, ringtone: str) -> None: ...

    def stop(self) -> None: ...


class ReminderPort(Protocol):
    def schedule(self, fire_at: datetime, message: str) -> None: ...

    def cancel(self) -> None: ...


class LoggingFeedback:
    """Logs feedback changes instead of driving a speaker or a vibration motor."""

    def __init__(self) -> None:
        self.playing: str | None = None

    def start(self, ringtone: str) -> None:
        self.playing = ringtone
        if ringtone == VIBRATE_ONLY:
            logger.info("Vibrating")
        else:
            logger.info("Playing ringtone %s", ringtone)

    def stop(self) -> None:
        if self.playing is not None:
            logger.info("Feedback stopped")
        self.playing = None


class TimerReminder:
    """Local reminder backed by a threading.Timer; firing calls `on_fire`."""

    def __init__(
        self,
        on_fire: Callable[[str], None] | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._on_fire = on_fire or (lambda message: logger.warning("Reminder: %s", message))
        self._clock = clock
        self._timer: threading.Timer | None = None

    def schedule(self, fire_at: datetime, message: str) -> None:
        self.cancel()
        delay = max(0.0, (as_utc(fire_at) - self._clock()).total_seconds())
        self._timer = threading.Timer(delay, self._on_fire, args=(message,))
        self._timer.daemon = True
        self._timer.start()

    def cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
