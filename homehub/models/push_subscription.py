"""Web Push subscription owned by a single user."""

from datetime import datetime

from sqlalchemy import DateTime, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from homehub.models.base import Base


class UserPushSubscription(Base):
    """A user's push delivery channel.

    At most one row exists per user: re-subscribing from any device
    replaces the endpoint and keys instead of adding a row.
    """

    __tablename__ = "user_push_subscriptions"

    # Opaque id issued by the identity provider
    user_id: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )
    endpoint: Mapped[str] = mapped_column(Text, nullable=False)

    # Standard base64 of the raw key material
    p256dh: Mapped[str] = mapped_column(String(255), nullable=False)
    auth: Mapped[str] = mapped_column(String(255), nullable=False)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def subscription_info(self) -> dict[str, object]:
        """Shape expected by pywebpush."""
        return {
            "endpoint": self.endpoint,
            "keys": {"p256dh": self.p256dh, "auth": self.auth},
        }

    def __repr__(self) -> str:
        return f"<UserPushSubscription user={self.user_id}>"
