"""Enable/disable flow for a signed-in user's push notifications."""

import logging

from homehub.core.errors import NotAuthenticated
from homehub.services.subscription_manager import SubscriptionManager, UserNotifier
from homehub.services.subscription_store import SubscriptionStore

logger = logging.getLogger(__name__)


class PushNotificationService:
    """Joins the session's SubscriptionManager with the SubscriptionStore.

    A user counts as subscribed only when both a stored record and a live
    platform subscription exist.
    """

    def __init__(
        self,
        user_id: str | None,
        manager: SubscriptionManager,
        store: SubscriptionStore,
        notifier: UserNotifier | None = None,
    ) -> None:
        self.user_id = user_id
        self.manager = manager
        self.store = store
        self.notifier = notifier or manager.notifier

    def _require_user(self) -> str:
        if not self.user_id:
            raise NotAuthenticated("You must be logged in to manage notifications")
        return self.user_id

    async def is_subscribed(self) -> bool:
        if not self.user_id:
            return False
        return self.manager.subscription is not None and await self.store.exists(self.user_id)

    async def enable(self) -> bool:
        """Create a platform subscription and persist it for the user."""
        try:
            user_id = self._require_user()
        except NotAuthenticated as e:
            self.notifier.error("Error", str(e))
            return False

        created = await self.manager.create_subscription()
        if created is None:
            return False

        result = await self.store.save(
            user_id,
            created.subscription.endpoint,
            created.keys.p256dh_key,
            created.keys.auth_key,
        )
        if not result.success:
            logger.error("Could not persist subscription for %s: %s", user_id, result.message)
            self.notifier.error(
                "Notification Error", "Failed to enable notifications. Please try again."
            )
            return False
        return True

    async def disable(self) -> bool:
        """Remove the stored record, then the platform subscription."""
        try:
            user_id = self._require_user()
        except NotAuthenticated as e:
            self.notifier.error("Error", str(e))
            return False

        result = await self.store.remove(user_id)
        if not result.success:
            self.notifier.error("Error", "Failed to disable notifications. Please try again.")
            return False
        return await self.manager.remove_subscription()
