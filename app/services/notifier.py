"""Emergency notifier: deliver an alert message to a user's emergency contact.

Core modules depend on the `Notifier` protocol only. Channels:

- LoggingNotifier: records the alert in the log (server default when no
  gateway is configured).
- WhatsAppGatewayNotifier: posts to an HTTP WhatsApp gateway with retries.
- ServerChannelNotifier: client side, asks the API to send the alert.
- DeepLinkNotifier: client side, opens a wa.me link with the message prefilled.
- FallbackNotifier: tries channels in order until one succeeds.

A failed delivery is reported through `NotifyResult`, never raised to the
caller; escalation has already happened by the time a notifier runs.
"""

from __future__ import annotations

import logging
import re
import time
import webbrowser
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Protocol
from urllib.parse import quote

import httpx

from app.core.errors import NotifierFailure
from app.db.records import EmergencyContactRecord

if TYPE_CHECKING:
    from app.client.api_client import AlarmApiClient

logger = logging.getLogger(__name__)


@dataclass
class EmergencyAlert:
    """One escalation event addressed to one contact."""

    user_id: int
    user_name: str
    contact: EmergencyContactRecord
    message: str
    occurrence: datetime | None = None  # next_alarm of the missed occurrence

    @property
    def key(self) -> str | None:
        """Idempotency key: one delivery per user per missed occurrence."""
        if self.occurrence is None:
            return None
        return f"{self.user_id}:{self.occurrence.isoformat()}"


@dataclass
class NotifyResult:
    success: bool
    detail: str
    channel: str = ""
    duplicate: bool = False


class Notifier(Protocol):
    """Abstract notification interface used by the clock and the reconciler."""

    def notify(self, alert: EmergencyAlert) -> NotifyResult: ...


def build_emergency_message(user_name: str) -> str:
    """Fixed emergency template embedding the user's display name."""
    name = user_name.strip() or "a SafeWake user"
    return (
        "🚨 SAFETY ALERT - SAFEWAKE 🚨\n\n"
        f"Hello, my name is {name}. This is an automatic safety alert sent by the "
        "SafeWake app. I did not turn off my personal safety alarm in time.\n\n"
        "Please get in touch with me.\n\n"
        "⚠️ This is an automated emergency message."
    )


def whatsapp_digits(phone: str) -> str:
    """Strip a phone number down to the digits WhatsApp expects."""
    return re.sub(r"\D", "", phone)


def whatsapp_deep_link(phone: str, message: str) -> str:
    """wa.me link that opens a chat with `message` prefilled."""
    return f"https://wa.me/{whatsapp_digits(phone)}?text={quote(message, safe='')}"


class LoggingNotifier:
    """Records the alert in the application log and reports success."""

    channel = "log"

    def notify(self, alert: EmergencyAlert) -> NotifyResult:
        logger.warning(
            "EMERGENCY for user %d -> %s (%s): %s",
            alert.user_id, alert.contact.name, alert.contact.whatsapp, alert.message.splitlines()[0],
        )
        return NotifyResult(
            success=True,
            detail=f"Emergency message sent to {alert.contact.name} at {alert.contact.whatsapp}",
            channel=self.channel,
        )


class WhatsAppGatewayNotifier:
    """Delivers alerts through an HTTP WhatsApp gateway.

    Retries up to `max_attempts` times with a linear backoff. Gateway and
    transport errors never escape `notify`.
    """

    channel = "whatsapp-gateway"

    def __init__(
        self,
        url: str,
        token: str = "",
        max_attempts: int = 3,
        backoff_seconds: float = 1.0,
        http: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._url = url
        self._token = token
        self._max_attempts = max(1, max_attempts)
        self._backoff = backoff_seconds
        self._http = http or httpx.Client(timeout=10.0)
        self._sleep = sleep

    def notify(self, alert: EmergencyAlert) -> NotifyResult:
        last_error: Exception | None = None
        for attempt in range(1, self._max_attempts + 1):
            try:
                self._deliver(alert)
                logger.info(
                    "Emergency message for user %d delivered via gateway (attempt %d)",
                    alert.user_id, attempt,
                )
                return NotifyResult(
                    success=True,
                    detail=f"Emergency message sent to {alert.contact.name} at {alert.contact.whatsapp}",
                    channel=self.channel,
                )
            except NotifierFailure as exc:
                last_error = exc
                logger.warning(
                    "Gateway delivery failed for user %d (attempt %d/%d): %s",
                    alert.user_id, attempt, self._max_attempts, exc,
                )
                if attempt < self._max_attempts:
                    self._sleep(self._backoff * attempt)

        return NotifyResult(
            success=False,
            detail=f"Gateway delivery failed after {self._max_attempts} attempts: {last_error}",
            channel=self.channel,
        )

    def _deliver(self, alert: EmergencyAlert) -> None:
        headers = {"Authorization": f"Bearer {self._token}"} if self._token else {}
        payload = {
            "to": whatsapp_digits(alert.contact.whatsapp),
            "message": alert.message,
            "reference": alert.key,
        }
        try:
            response = self._http.post(self._url, json=payload, headers=headers)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise NotifierFailure(f"WhatsApp gateway request failed: {exc}") from exc


class ServerChannelNotifier:
    """Client-side channel: asks the API to send the alert on the user's behalf."""

    channel = "server"

    def __init__(self, api: AlarmApiClient) -> None:
        self._api = api

    def notify(self, alert: EmergencyAlert) -> NotifyResult:
        try:
            body = self._api.send_emergency(alert.user_id, occurrence=alert.occurrence)
        except httpx.HTTPError as exc:
            return NotifyResult(success=False, detail=f"Server unreachable: {exc}", channel=self.channel)
        return NotifyResult(
            success=bool(body.get("success")),
            detail=str(body.get("message", "")),
            channel=self.channel,
            duplicate=bool(body.get("duplicate", False)),
        )


class DeepLinkNotifier:
    """Client-side channel: opens WhatsApp directly with the message prefilled."""

    channel = "deep-link"

    def __init__(self, opener: Callable[[str], bool] = webbrowser.open) -> None:
        self._opener = opener

    def notify(self, alert: EmergencyAlert) -> NotifyResult:
        url = whatsapp_deep_link(alert.contact.whatsapp, alert.message)
        try:
            opened = self._opener(url)
        except Exception as exc:  # noqa: BLE001 - any opener failure is a delivery failure
            return NotifyResult(success=False, detail=f"Could not open WhatsApp: {exc}", channel=self.channel)
        if opened is False:
            return NotifyResult(success=False, detail="No handler for WhatsApp link", channel=self.channel)
        return NotifyResult(success=True, detail=f"WhatsApp opened for {alert.contact.name}", channel=self.channel)


class FallbackNotifier:
    """Tries each channel in order; the first success wins."""

    def __init__(self, *channels: Notifier) -> None:
        if not channels:
            raise ValueError("FallbackNotifier needs at least one channel")
        self._channels = channels

    def notify(self, alert: EmergencyAlert) -> NotifyResult:
        failures: list[str] = []
        for channel in self._channels:
            try:
                result = channel.notify(alert)
            except Exception as exc:  # noqa: BLE001 - a broken channel must not stop the next one
                logger.exception("Notifier channel %s raised", type(channel).__name__)
                result = NotifyResult(success=False, detail=str(exc), channel=type(channel).__name__)
            if result.success:
                return result
            failures.append(f"{result.channel or type(channel).__name__}: {result.detail}")
            logger.warning("Notifier channel failed for user %d: %s", alert.user_id, failures[-1])
        return NotifyResult(success=False, detail="; ".join(failures), channel="fallback")

