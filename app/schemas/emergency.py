"""Emergency trigger schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from app.schemas.common import CamelModel


class SendEmergencyRequest(CamelModel):
    user_id: int = Field(ge=1)
    occurrence: datetime | None = Field(
        default=None,
        description="nextAlarm of the missed occurrence; repeats for the same occurrence are not re-sent",
    )


class SendEmergencyResponse(BaseModel):
    success: bool
    message: str
    duplicate: bool = False
