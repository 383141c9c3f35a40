"""Session-scoped orchestration of the platform push subscription.

The platform (a browser service worker, a desktop push bridge, a test
double) is reached only through the protocols below. One manager belongs
to one client session: it memoizes the platform registration and keeps at
most one live platform subscription, replacing rather than accumulating.
"""

import asyncio
import enum
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol, TypeVar

from homehub.core.config import settings
from homehub.core.errors import ConfigurationUnavailable, MalformedKeyMaterial
from homehub.services.key_codec import decode_url_safe_base64, encode_bytes_to_base64

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PlatformSubscription(Protocol):
    """A live push subscription on the platform."""

    endpoint: str

    def get_key(self, name: str) -> bytes | None: ...

    async def unsubscribe(self) -> bool: ...


class PushManager(Protocol):
    async def get_subscription(self) -> PlatformSubscription | None: ...

    async def subscribe(
        self, *, user_visible_only: bool, application_server_key: bytes
    ) -> PlatformSubscription: ...


class PlatformRegistration(Protocol):
    push_manager: PushManager


class PushPlatform(Protocol):
    """Entry point of the platform push-registration API."""

    async def register(self, script_url: str) -> PlatformRegistration: ...

    async def ready(self) -> PlatformRegistration: ...


class UserNotifier(Protocol):
    """Surfaces errors to the person using the session (a toast, a dialog)."""

    def error(self, title: str, description: str) -> None: ...


class LoggingNotifier:
    """Notifier used when the session has no UI attached."""

    def error(self, title: str, description: str) -> None:
        logger.warning("%s: %s", title, description)


class SessionState(str, enum.Enum):
    UNREGISTERED = "unregistered"
    REGISTERED = "registered"
    SUBSCRIBED = "subscribed"
    UNSUBSCRIBED = "unsubscribed"


@dataclass(frozen=True)
class SubscriptionKeys:
    """Standard base64 encodings of the subscription's key material."""

    p256dh_key: str
    auth_key: str


@dataclass(frozen=True)
class CreatedSubscription:
    subscription: PlatformSubscription
    keys: SubscriptionKeys


PublicKeyProvider = Callable[[], Awaitable[str | None]]


class SubscriptionManager:
    """Creates and removes the session's platform push subscription."""

    def __init__(
        self,
        platform: PushPlatform,
        public_key_provider: PublicKeyProvider,
        notifier: UserNotifier | None = None,
        *,
        script_url: str | None = None,
        operation_timeout: float | None = None,
    ) -> None:
        self.platform = platform
        self.public_key_provider = public_key_provider
        self.notifier = notifier or LoggingNotifier()
        self.script_url = script_url or settings.service_worker_url
        self.operation_timeout = operation_timeout

        self.registration: PlatformRegistration | None = None
        self.subscription: PlatformSubscription | None = None
        self.state = SessionState.UNREGISTERED
        self._registration_lock = asyncio.Lock()

    async def _step(self, awaitable: Awaitable[T]) -> T:
        if self.operation_timeout is None:
            return await awaitable
        return await asyncio.wait_for(awaitable, timeout=self.operation_timeout)

    async def _ensure_registration(self) -> PlatformRegistration:
        # Concurrent callers wait on the same in-flight registration
        async with self._registration_lock:
            if self.registration is None:
                registration = await self._step(self.platform.register(self.script_url))
                await self._step(self.platform.ready())
                self.registration = registration
                self.state = SessionState.REGISTERED
                logger.debug("Push platform registration ready: %s", self.script_url)
            return self.registration

    async def create_subscription(self) -> CreatedSubscription | None:
        """Replace the session's platform subscription with a fresh one.

        Returns None (after notifying the user) on any failure.
        """
        try:
            registration = await self._ensure_registration()

            public_key = await self._step(self.public_key_provider())
            if not public_key:
                raise ConfigurationUnavailable("VAPID public key not available")
            application_server_key = decode_url_safe_base64(public_key)

            push_manager = registration.push_manager
            existing = await self._step(push_manager.get_subscription())
            if existing is not None:
                await self._step(existing.unsubscribe())
                self.subscription = None

            new_subscription = await self._step(
                push_manager.subscribe(
                    user_visible_only=True,
                    application_server_key=application_server_key,
                )
            )

            p256dh_raw = new_subscription.get_key("p256dh")
            auth_raw = new_subscription.get_key("auth")
            if not p256dh_raw or not auth_raw:
                raise MalformedKeyMaterial("Subscription is missing key material")

            keys = SubscriptionKeys(
                p256dh_key=encode_bytes_to_base64(p256dh_raw),
                auth_key=encode_bytes_to_base64(auth_raw),
            )
        except Exception as e:
            logger.exception("Error creating push subscription")
            self.notifier.error("Subscription Error", str(e) or "Failed to create subscription")
            return None

        self.subscription = new_subscription
        self.state = SessionState.SUBSCRIBED
        return CreatedSubscription(subscription=new_subscription, keys=keys)

    async def remove_subscription(self) -> bool:
        """Unsubscribe the cached subscription. Nothing cached is not an error."""
        if self.subscription is None:
            return True
        try:
            await self._step(self.subscription.unsubscribe())
        except Exception:
            logger.exception("Error removing push subscription")
            return False

        self.subscription = None
        self.state = SessionState.UNSUBSCRIBED
        return True

    def close(self) -> None:
        """End the session, forgetting the registration and subscription."""
        self.registration = None
        self.subscription = None
        self.state = SessionState.UNREGISTERED
