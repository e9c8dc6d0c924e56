"""User model."""

from __future__ import annotations

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from app.core.alarm_policies import DEFAULT_COUNTRY
from app.db.base import Base


class User(Base):
    """Registered SafeWake user."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    whatsapp: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    birthdate: Mapped[str] = mapped_column(String(10), nullable=False, default="")  # DD/MM/YYYY
    country: Mapped[str] = mapped_column(String(64), nullable=False, default=DEFAULT_COUNTRY)
