"""Auto-send email preferences with a self-healing read path."""

import logging
from datetime import date, datetime

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from homehub.models.email_settings import DEFAULT_AUTO_SEND_TIME, AutoEmailSettings

logger = logging.getLogger(__name__)


class EmailSettingsStore:
    """One settings row per email address.

    Storage errors propagate to the caller; there is no safe default for a
    failed read.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def save(
        self,
        email: str,
        auto_send_enabled: bool,
        time: str = DEFAULT_AUTO_SEND_TIME,  # noqa: ARG002
    ) -> None:
        """Replace the email's settings with a single row.

        The send time is policy-frozen: ``time`` is accepted for callers
        but the stored value is always DEFAULT_AUTO_SEND_TIME. Delete and
        insert commit together.
        """
        await self.db.execute(delete(AutoEmailSettings).where(AutoEmailSettings.email == email))
        self.db.add(
            AutoEmailSettings(
                email=email,
                auto_send_enabled=auto_send_enabled,
                auto_send_time=DEFAULT_AUTO_SEND_TIME,
            )
        )
        await self.db.commit()
        logger.info("Email settings saved: email=%s auto_send=%s", email, auto_send_enabled)

    async def load(self, email: str) -> AutoEmailSettings | None:
        """Return the email's settings, collapsing duplicates onto the last id."""
        result = await self.db.execute(
            select(AutoEmailSettings)
            .where(AutoEmailSettings.email == email)
            .order_by(AutoEmailSettings.id)
        )
        rows = list(result.scalars().all())
        if not rows:
            return None
        if len(rows) == 1:
            return rows[0]

        rows.sort(key=lambda row: row.id)
        canonical = rows[-1]
        stale_ids = [row.id for row in rows[:-1]]
        await self.db.execute(delete(AutoEmailSettings).where(AutoEmailSettings.id.in_(stale_ids)))
        await self.db.commit()

        logger.warning(
            "Collapsed %d duplicate email settings rows for %s onto id=%s",
            len(stale_ids),
            email,
            canonical.id,
        )
        return canonical

    async def mark_sent(self, email: str, sent_on: date) -> None:
        """Record that today's automatic email went out."""
        settings_row = await self.load(email)
        if settings_row is None:
            return
        settings_row.last_sent_date = sent_on
        await self.db.commit()

    async def list_due(self, now: datetime) -> list[AutoEmailSettings]:
        """Enabled settings whose send time has passed and that were not sent today."""
        today = now.date()
        current_time = now.strftime("%H:%M")
        result = await self.db.execute(
            select(AutoEmailSettings).where(
                AutoEmailSettings.auto_send_enabled.is_(True),
                AutoEmailSettings.auto_send_time <= current_time,
            )
        )
        due: dict[str, AutoEmailSettings] = {}
        for row in result.scalars().all():
            if row.last_sent_date is not None and row.last_sent_date >= today:
                continue
            # Duplicates not yet repaired: the last id is canonical
            if row.email not in due or row.id > due[row.email].id:
                due[row.email] = row
        return sorted(due.values(), key=lambda row: row.email)

    async def repair_duplicates(self) -> int:
        """Heal every email that has more than one row. Returns emails repaired."""
        result = await self.db.execute(
            select(AutoEmailSettings.email)
            .group_by(AutoEmailSettings.email)
            .having(func.count(AutoEmailSettings.id) > 1)
        )
        emails = list(result.scalars().all())
        for email in emails:
            await self.load(email)
        return len(emails)
