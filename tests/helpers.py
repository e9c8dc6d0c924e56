"""Shared test helpers."""

from datetime import datetime, timezone

from app.services.notifier import NotifyResult


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class RecordingNotifier:
    """Notifier double that records alerts and answers with a fixed result."""

    channel = "recording"

    def __init__(self, success: bool = True) -> None:
        self.success = success
        self.alerts = []

    def notify(self, alert):
        self.alerts.append(alert)
        if self.success:
            return NotifyResult(success=True, detail=f"Sent to {alert.contact.name}", channel=self.channel)
        return NotifyResult(success=False, detail="gateway down", channel=self.channel)
