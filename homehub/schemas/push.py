"""Pydantic schemas for push subscription endpoints."""

from pydantic import Field, field_validator

from homehub.schemas.common import BaseSchema
from homehub.services.key_codec import decode_url_safe_base64
from homehub.services.subscription_store import FailureReason

# Uncompressed P-256 point (0x04 || X || Y) and the RFC 8291 auth secret
P256DH_LENGTH = 65
AUTH_SECRET_LENGTH = 16


class PushSubscriptionKeys(BaseSchema):
    """Standard base64 encodings of the subscription keys."""

    p256dh: str = Field(..., min_length=1, max_length=255)
    auth: str = Field(..., min_length=1, max_length=255)

    @field_validator("p256dh")
    @classmethod
    def _check_p256dh(cls, value: str) -> str:
        raw = decode_url_safe_base64(value)
        if len(raw) != P256DH_LENGTH or raw[0] != 0x04:
            raise ValueError("p256dh must be an uncompressed P-256 public key")
        return value

    @field_validator("auth")
    @classmethod
    def _check_auth(cls, value: str) -> str:
        if len(decode_url_safe_base64(value)) != AUTH_SECRET_LENGTH:
            raise ValueError(f"auth must be a {AUTH_SECRET_LENGTH}-byte secret")
        return value


class PushSubscriptionCreate(BaseSchema):
    """Body of POST /push/subscriptions, shaped like PushSubscription.toJSON()."""

    endpoint: str = Field(..., min_length=1, description="Push service delivery URL")
    keys: PushSubscriptionKeys


class SubscriptionResultResponse(BaseSchema):
    """Outcome of a subscription mutation."""

    success: bool
    message: str
    reason: FailureReason


class SubscriptionStatusResponse(BaseSchema):
    subscribed: bool


class VapidPublicKeyResponse(BaseSchema):
    public_key: str


class SendTestPushRequest(BaseSchema):
    title: str = Field(default="Test Notification", max_length=200)
    body: str = Field(
        default="This is a test notification from your profile page",
        max_length=2000,
    )
