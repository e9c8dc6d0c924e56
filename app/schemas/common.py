"""Shared schema helpers: camelCase wire format and field types."""

from __future__ import annotations

import re
from typing import Annotated

from pydantic import AfterValidator, BaseModel
from pydantic.alias_generators import to_camel

_PHONE_RE = re.compile(r"^\+?[\d\s().-]+$")


class CamelModel(BaseModel):
    """JSON uses camelCase keys; Python code uses snake_case."""

    model_config = {"alias_generator": to_camel, "populate_by_name": True, "from_attributes": True}


class PartialUpdate(CamelModel):
    """Partial update payload: every field optional, unknown fields rejected."""

    model_config = {**CamelModel.model_config, "extra": "forbid"}

    def changes(self) -> dict:
        """Fields the caller actually sent, by attribute name."""
        return self.model_dump(exclude_unset=True, exclude_none=True)


def _time_of_day(v: str) -> str:
    parts = v.split(":")
    if len(parts) != 2 or not all(p.isdigit() for p in parts):
        raise ValueError("Must be HH:MM format")
    h, m = int(parts[0]), int(parts[1])
    if not (0 <= h <= 23 and 0 <= m <= 59):
        raise ValueError("Invalid time")
    return f"{h:02d}:{m:02d}"


def _phone(v: str) -> str:
    v = v.strip()
    digits = re.sub(r"\D", "", v)
    if not _PHONE_RE.match(v) or not (10 <= len(digits) <= 15):
        raise ValueError("Must be a phone number with 10 to 15 digits, e.g. +55 (11) 91234-5678")
    return v


TimeOfDay = Annotated[str, AfterValidator(_time_of_day)]
Phone = Annotated[str, AfterValidator(_phone)]
