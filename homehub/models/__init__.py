"""SQLAlchemy models."""

from homehub.models.base import Base
from homehub.models.email_settings import DEFAULT_AUTO_SEND_TIME, AutoEmailSettings
from homehub.models.push_subscription import UserPushSubscription
from homehub.models.vapid_key import VapidKey

__all__ = [
    # Base
    "Base",
    # Push
    "UserPushSubscription",
    "VapidKey",
    # Email
    "AutoEmailSettings",
    "DEFAULT_AUTO_SEND_TIME",
]
