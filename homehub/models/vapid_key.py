"""VAPID application server key pair."""

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from homehub.models.base import Base


class VapidKey(Base):
    """Single-row key configuration used to sign push requests.

    ``public_key`` is the URL-safe base64 uncompressed P-256 point handed
    to browsers. ``private_key`` holds the Fernet-encrypted PEM.
    """

    __tablename__ = "vapid_keys"

    public_key: Mapped[str] = mapped_column(String(255), nullable=False)
    private_key: Mapped[str] = mapped_column(Text, nullable=False)

    def __repr__(self) -> str:
        return f"<VapidKey {self.public_key[:12]}...>"
