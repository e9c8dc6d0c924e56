"""HTTP client the Alarm Clock uses to talk to the SafeWake API."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

import httpx
from pydantic.alias_generators import to_camel

from app.core.clock import as_utc
from app.core.config import settings
from app.db.records import AlarmConfigRecord, EmergencyContactRecord
from app.schemas.alarm_config import AlarmConfigResponse
from app.schemas.emergency_contact import EmergencyContactResponse

logger = logging.getLogger(__name__)


def _to_alarm_config(body: dict) -> AlarmConfigRecord:
    data = AlarmConfigResponse.model_validate(body)
    return AlarmConfigRecord(**data.model_dump())


def _to_contact(body: dict) -> EmergencyContactRecord:
    data = EmergencyContactResponse.model_validate(body)
    return EmergencyContactRecord(**data.model_dump())


def _wire(value: Any) -> Any:
    if isinstance(value, datetime):
        return as_utc(value).isoformat()
    return value


class AlarmApiClient:
    """Thin wrapper over the REST API.

    Lookups return None on 404. Other HTTP failures raise httpx.HTTPError.
    Pass `http` to reuse an existing client (a FastAPI TestClient works).
    """

    def __init__(
        self,
        base_url: str | None = None,
        http: httpx.Client | None = None,
        prefix: str = "/api",
        timeout: float = 10.0,
    ) -> None:
        self._http = http or httpx.Client(base_url=base_url or settings.api_base_url, timeout=timeout)
        self._prefix = prefix.rstrip("/")

    def _url(self, path: str) -> str:
        return f"{self._prefix}{path}"

    def get_alarm_config(self, user_id: int) -> AlarmConfigRecord | None:
        response = self._http.get(self._url(f"/alarm-config/{user_id}"))
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return _to_alarm_config(response.json())

    def get_emergency_contact(self, user_id: int) -> EmergencyContactRecord | None:
        response = self._http.get(self._url(f"/emergency-contact/{user_id}"))
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return _to_contact(response.json())

    def update_alarm_config(self, config_id: int, **changes: Any) -> AlarmConfigRecord:
        payload = {to_camel(k): _wire(v) for k, v in changes.items()}
        response = self._http.put(self._url(f"/alarm-config/{config_id}"), json=payload)
        response.raise_for_status()
        return _to_alarm_config(response.json())

    def advance_alarm(self, config_id: int, expected_next_alarm: datetime) -> tuple[AlarmConfigRecord, bool]:
        """Compare-and-advance on the server. advanced=False when someone else already moved it."""
        response = self._http.post(
            self._url(f"/alarm-config/{config_id}/advance"),
            json={"expectedNextAlarm": _wire(expected_next_alarm)},
        )
        if response.status_code == 409:
            return _to_alarm_config(response.json()), False
        response.raise_for_status()
        return _to_alarm_config(response.json()), True

    def send_emergency(self, user_id: int, occurrence: datetime | None = None) -> dict:
        payload: dict[str, Any] = {"userId": user_id}
        if occurrence is not None:
            payload["occurrence"] = _wire(occurrence)
        response = self._http.post(self._url("/send-emergency"), json=payload)
        response.raise_for_status()
        return response.json()

    def close(self) -> None:
        self._http.close()
