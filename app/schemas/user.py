"""User schemas."""

from __future__ import annotations

from pydantic import EmailStr, Field

from app.schemas.common import CamelModel, PartialUpdate, Phone


class UserResponse(CamelModel):
    """User as returned by the API. Never carries the password."""

    id: int
    email: str
    full_name: str
    whatsapp: str
    birthdate: str
    country: str


class UserUpdate(PartialUpdate):
    email: EmailStr | None = None
    password: str | None = Field(default=None, min_length=6)
    full_name: str | None = Field(default=None, min_length=3)
    whatsapp: Phone | None = None
    birthdate: str | None = Field(default=None, pattern=r"^\d{2}/\d{2}/\d{4}$")
    country: str | None = Field(default=None, min_length=1)
