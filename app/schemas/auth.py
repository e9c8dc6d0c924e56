"""Auth schemas."""

from pydantic import EmailStr, Field

from app.core.alarm_policies import DEFAULT_COUNTRY
from app.schemas.common import CamelModel, Phone
from app.schemas.emergency_contact import EmergencyContactIn


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(min_length=1)


class RegisterRequest(CamelModel):
    email: EmailStr
    password: str = Field(min_length=6)
    full_name: str = Field(min_length=3)
    whatsapp: Phone
    birthdate: str = Field(pattern=r"^\d{2}/\d{2}/\d{4}$", description="DD/MM/YYYY")
    country: str = Field(default=DEFAULT_COUNTRY, min_length=1)
    emergency_contact: EmergencyContactIn | None = None

