"""Domain errors shared by services, the reconciler and the alarm clock."""

from __future__ import annotations


class SafeWakeError(Exception):
    """Base class for all domain errors."""


class ValidationError(SafeWakeError):
    """Malformed input (bad id, unknown field, out-of-range value)."""


class NotFoundError(SafeWakeError):
    """A referenced entity does not exist."""

    def __init__(self, entity: str, key: object) -> None:
        super().__init__(f"{entity} not found: {key}")
        self.entity = entity
        self.key = key


class PreconditionError(SafeWakeError):
    """A state transition was refused because a precondition does not hold."""


class MissingEmergencyContact(PreconditionError):
    """The alarm cannot be armed because the user has no emergency contact."""

    def __init__(self, user_id: int) -> None:
        super().__init__(
            f"User {user_id} has no emergency contact configured; the alarm cannot be armed"
        )
        self.user_id = user_id


class NotifierFailure(SafeWakeError):
    """An emergency message could not be delivered."""


class ReconcilerRecordError(SafeWakeError):
    """A single alarm record could not be reconciled."""

    def __init__(self, config_id: int | None, reason: str) -> None:
        super().__init__(f"Alarm config {config_id}: {reason}")
        self.config_id = config_id
        self.reason = reason
