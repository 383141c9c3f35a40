"""Per-email auto-send preferences."""

from datetime import date

from sqlalchemy import Boolean, Date, String
from sqlalchemy.orm import Mapped, mapped_column

from homehub.models.base import Base

DEFAULT_AUTO_SEND_TIME = "19:00"


class AutoEmailSettings(Base):
    """Auto-send preference for one email address.

    ``email`` is deliberately not unique: rows left behind by interrupted
    writes are collapsed by EmailSettingsStore.load.
    """

    __tablename__ = "auto_email_settings"

    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    auto_send_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    auto_send_time: Mapped[str] = mapped_column(
        String(5),
        default=DEFAULT_AUTO_SEND_TIME,
        nullable=False,
    )
    last_sent_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    def __repr__(self) -> str:
        return f"<AutoEmailSettings {self.email} enabled={self.auto_send_enabled}>"
