"""Pydantic schemas for the outbound notification dispatcher."""

from typing import Literal

from pydantic import Field, model_validator

from homehub.schemas.common import BaseSchema


class EmailDispatchRequest(BaseSchema):
    """Rendered email for one or more recipients.

    ``email`` is accepted for single-recipient callers.
    """

    email: str | None = Field(default=None, max_length=255)
    recipients: list[str] = Field(default_factory=list, max_length=50)
    subject: str = Field(..., min_length=1, max_length=300)
    content: str = Field(..., min_length=1)
    defer: bool = False

    @model_validator(mode="after")
    def _collect_recipients(self) -> "EmailDispatchRequest":
        if self.email and self.email not in self.recipients:
            self.recipients = [self.email, *self.recipients]
        if not self.recipients:
            raise ValueError("At least one recipient is required")
        return self


class PushDispatchRequest(BaseSchema):
    """Rendered push message for one or more users."""

    user_id: str | None = Field(default=None, alias="userId")
    user_ids: list[str] = Field(default_factory=list, max_length=100)
    title: str = Field(..., min_length=1, max_length=200)
    body: str = Field(..., min_length=1, max_length=2000)
    defer: bool = False

    @model_validator(mode="after")
    def _collect_user_ids(self) -> "PushDispatchRequest":
        if self.user_id and self.user_id not in self.user_ids:
            self.user_ids = [self.user_id, *self.user_ids]
        if not self.user_ids:
            raise ValueError("At least one recipient is required")
        return self


class RecipientStatusResponse(BaseSchema):
    recipient: str
    status: str
    detail: str | None = None


class DispatchResponse(BaseSchema):
    channel: Literal["email", "push"]
    status: Literal["completed", "queued"]
    delivered: int = 0
    failed: int = 0
    results: list[RecipientStatusResponse] = Field(default_factory=list)
