"""Pydantic schemas for auto-send email settings."""

from datetime import date

from pydantic import Field

from homehub.models.email_settings import DEFAULT_AUTO_SEND_TIME
from homehub.schemas.common import BaseSchema


class EmailSettingsUpdate(BaseSchema):
    """Body of PUT /email-settings."""

    email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    auto_send_enabled: bool
    auto_send_time: str = Field(
        default=DEFAULT_AUTO_SEND_TIME,
        description="Accepted for compatibility; the send time is fixed",
    )


class EmailSettingsResponse(BaseSchema):
    id: str
    email: str
    auto_send_enabled: bool
    auto_send_time: str
    last_sent_date: date | None
