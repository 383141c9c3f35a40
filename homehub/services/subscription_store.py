"""Durable storage for users' push subscriptions."""

import asyncio
import enum
import logging
from collections.abc import Awaitable, Sequence
from dataclasses import dataclass
from typing import TypeVar

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from homehub.core.errors import TransientBackendError
from homehub.models.push_subscription import UserPushSubscription

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TIMEOUT_SECONDS = 5.0


class FailureReason(str, enum.Enum):
    """Why a store operation did not succeed."""

    OK = "ok"
    BACKEND_ERROR = "backend_error"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class SubscriptionResult:
    """Outcome of a subscription mutation, never raised across the store boundary."""

    success: bool
    message: str
    reason: FailureReason = FailureReason.OK

    @classmethod
    def ok(cls, message: str) -> "SubscriptionResult":
        return cls(success=True, message=message)

    @classmethod
    def failed(cls, message: str, reason: FailureReason) -> "SubscriptionResult":
        return cls(success=False, message=message, reason=reason)


class SubscriptionStore:
    """Persists at most one push subscription per user.

    Mutations return a SubscriptionResult instead of raising; ``exists``
    fails open to False. Every database round trip is bounded by
    ``timeout`` seconds.
    """

    def __init__(self, db: AsyncSession, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> None:
        self.db = db
        self.timeout = timeout

    async def _bounded(self, awaitable: Awaitable[T]) -> T:
        return await asyncio.wait_for(awaitable, timeout=self.timeout)

    async def _rollback(self) -> None:
        # A cancelled round trip can leave the connection unusable
        try:
            await self.db.rollback()
        except (TimeoutError, SQLAlchemyError):
            logger.warning("Rollback failed", exc_info=True)

    async def save(
        self,
        user_id: str,
        endpoint: str,
        p256dh_key: str,
        auth_key: str,
    ) -> SubscriptionResult:
        """Create or update the user's subscription.

        A row matching ``user_id`` and ``endpoint`` has its keys replaced in
        place. Otherwise the user's previous rows are removed and a new row
        is inserted in the same transaction.
        """
        try:
            existing = (
                await self._bounded(
                    self.db.execute(
                        select(UserPushSubscription).where(
                            UserPushSubscription.user_id == user_id,
                            UserPushSubscription.endpoint == endpoint,
                        )
                    )
                )
            ).scalar_one_or_none()

            if existing is not None:
                existing.p256dh = p256dh_key
                existing.auth = auth_key
            else:
                await self._bounded(
                    self.db.execute(
                        delete(UserPushSubscription).where(
                            UserPushSubscription.user_id == user_id
                        )
                    )
                )
                self.db.add(
                    UserPushSubscription(
                        user_id=user_id,
                        endpoint=endpoint,
                        p256dh=p256dh_key,
                        auth=auth_key,
                    )
                )

            await self._bounded(self.db.commit())
        except TimeoutError:
            await self._rollback()
            logger.error("Timed out saving push subscription for user %s", user_id)
            return SubscriptionResult.failed(
                "Database operation timed out", FailureReason.TIMEOUT
            )
        except SQLAlchemyError as e:
            await self._rollback()
            logger.exception("Failed to save push subscription for user %s", user_id)
            return SubscriptionResult.failed(
                str(e) or "Failed to save subscription", FailureReason.BACKEND_ERROR
            )

        logger.info("Push subscription saved: user=%s updated=%s", user_id, existing is not None)
        return SubscriptionResult.ok("Subscription saved successfully")

    async def remove(self, user_id: str) -> SubscriptionResult:
        """Delete every subscription row for the user, whatever the endpoint.

        Removing a subscription that does not exist succeeds.
        """
        try:
            await self._bounded(
                self.db.execute(
                    delete(UserPushSubscription).where(UserPushSubscription.user_id == user_id)
                )
            )
            await self._bounded(self.db.commit())
        except TimeoutError:
            await self._rollback()
            logger.error("Timed out removing push subscription for user %s", user_id)
            return SubscriptionResult.failed(
                "Database operation timed out", FailureReason.TIMEOUT
            )
        except SQLAlchemyError as e:
            await self._rollback()
            logger.exception("Failed to remove push subscription for user %s", user_id)
            return SubscriptionResult.failed(
                str(e) or "Failed to remove subscription", FailureReason.BACKEND_ERROR
            )

        logger.info("Push subscription removed: user=%s", user_id)
        return SubscriptionResult.ok("Subscription removed successfully")

    async def exists(self, user_id: str) -> bool:
        """Whether the user has a stored subscription. Errors read as False."""
        try:
            row = (
                await self._bounded(
                    self.db.execute(
                        select(UserPushSubscription.id)
                        .where(UserPushSubscription.user_id == user_id)
                        .limit(1)
                    )
                )
            ).scalar_one_or_none()
        except (TimeoutError, SQLAlchemyError):
            logger.warning("Subscription check failed for user %s", user_id, exc_info=True)
            return False
        return row is not None

    async def get_for_users(self, user_ids: Sequence[str]) -> list[UserPushSubscription]:
        """Stored subscriptions for the given users.

        Raises:
            TransientBackendError: If the lookup times out or the database fails.
        """
        if not user_ids:
            return []
        try:
            result = await self._bounded(
                self.db.execute(
                    select(UserPushSubscription).where(UserPushSubscription.user_id.in_(user_ids))
                )
            )
        except (TimeoutError, SQLAlchemyError) as e:
            raise TransientBackendError("Could not load push subscriptions") from e
        return list(result.scalars().all())

    async def remove_endpoint(self, endpoint: str) -> SubscriptionResult:
        """Drop a subscription the push service reported as gone."""
        try:
            await self._bounded(
                self.db.execute(
                    delete(UserPushSubscription).where(UserPushSubscription.endpoint == endpoint)
                )
            )
            await self._bounded(self.db.commit())
        except (TimeoutError, SQLAlchemyError) as e:
            await self._rollback()
            logger.warning("Failed to prune expired endpoint %s", endpoint[:60], exc_info=True)
            reason = (
                FailureReason.TIMEOUT if isinstance(e, TimeoutError) else FailureReason.BACKEND_ERROR
            )
            return SubscriptionResult.failed("Failed to remove expired subscription", reason)

        logger.info("Pruned expired push endpoint %s", endpoint[:60])
        return SubscriptionResult.ok("Expired subscription removed")
