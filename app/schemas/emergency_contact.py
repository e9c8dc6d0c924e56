"""Emergency contact schemas."""

from __future__ import annotations

from pydantic import Field

from app.schemas.common import CamelModel, PartialUpdate, Phone


class EmergencyContactIn(CamelModel):
    name: str = Field(min_length=3)
    whatsapp: Phone


class EmergencyContactCreate(EmergencyContactIn):
    user_id: int = Field(ge=1)


class EmergencyContactUpdate(PartialUpdate):
    name: str | None = Field(default=None, min_length=3)
    whatsapp: Phone | None = None


class EmergencyContactResponse(CamelModel):
    id: int
    user_id: int
    name: str
    whatsapp: str
