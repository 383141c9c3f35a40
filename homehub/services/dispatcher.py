"""Outbound notification dispatcher for rendered email and push messages."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from homehub.core.config import settings
from homehub.services.email_service import EmailService
from homehub.services.email_settings_store import EmailSettingsStore
from homehub.services.push_service import PushOutcome, PushService
from homehub.services.subscription_store import SubscriptionStore
from homehub.services.vapid_service import VapidKeyService

logger = logging.getLogger(__name__)


@dataclass
class RecipientStatus:
    recipient: str
    status: str
    detail: str | None = None


@dataclass
class DispatchResult:
    """Per-recipient delivery status for one dispatch."""

    channel: str
    results: list[RecipientStatus] = field(default_factory=list)

    @property
    def delivered(self) -> int:
        return sum(1 for r in self.results if r.status == "sent")

    @property
    def failed(self) -> int:
        return len(self.results) - self.delivered


class NotificationDispatcher:
    """Delivers a rendered message by email or push to one or more recipients."""

    def __init__(
        self,
        db: AsyncSession,
        email_service: EmailService | None = None,
    ) -> None:
        self.db = db
        self.email_service = email_service or EmailService()
        self.subscriptions = SubscriptionStore(db, timeout=settings.store_timeout_seconds)
        self.email_settings = EmailSettingsStore(db)
        self.vapid_keys = VapidKeyService(db)

    async def send_email(
        self,
        recipients: Sequence[str],
        subject: str,
        content: str,
        *,
        source: str = "client",
    ) -> DispatchResult:
        """Send ``content`` to each recipient.

        Scheduled sends (``source="server"``) record today's date on the
        recipient's auto-send settings.
        """
        result = DispatchResult(channel="email")
        for email in recipients:
            email_id = await self.email_service.send(email, subject, content, source=source)
            if not email_id:
                result.results.append(RecipientStatus(email, "failed"))
                continue

            result.results.append(RecipientStatus(email, "sent", email_id))
            if source == "server":
                await self._mark_sent(email)

        logger.info(
            "Email dispatch finished: delivered=%d failed=%d", result.delivered, result.failed
        )
        return result

    async def _mark_sent(self, email: str) -> None:
        # The email is already out; its result stays "sent" whatever happens here
        try:
            await self.email_settings.mark_sent(email, datetime.now(UTC).date())
        except SQLAlchemyError:
            logger.exception("Failed to record auto-send date for %s", email)
            try:
                await self.db.rollback()
            except SQLAlchemyError:
                logger.warning("Rollback after failed auto-send update failed", exc_info=True)

    async def send_push(
        self,
        user_ids: Sequence[str],
        title: str,
        body: str,
    ) -> DispatchResult:
        """Push ``title``/``body`` to each user's stored subscription.

        Subscriptions the push service reports as gone are pruned.

        Raises:
            ConfigurationUnavailable: If no VAPID key pair is stored.
        """
        push_service = PushService(await self.vapid_keys.get_key_pair())
        subscriptions = {s.user_id: s for s in await self.subscriptions.get_for_users(user_ids)}

        result = DispatchResult(channel="push")
        for user_id in user_ids:
            subscription = subscriptions.get(user_id)
            if subscription is None:
                result.results.append(RecipientStatus(user_id, "no_subscription"))
                continue

            outcome = await push_service.send(
                subscription.subscription_info(),
                {"title": title, "body": body, "userId": user_id},
            )
            if outcome is PushOutcome.EXPIRED:
                await self.subscriptions.remove_endpoint(subscription.endpoint)
            result.results.append(RecipientStatus(user_id, outcome.value))

        logger.info(
            "Push dispatch finished: delivered=%d failed=%d", result.delivered, result.failed
        )
        return result
