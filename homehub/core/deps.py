"""Dependency injection for FastAPI routes."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from homehub.core.auth import (
    CurrentUser,
    CurrentUserId,
    ServiceCaller,
    get_current_user,
    get_current_user_id,
)
from homehub.core.config import settings
from homehub.core.database import get_async_session
from homehub.services.dispatcher import NotificationDispatcher
from homehub.services.email_settings_store import EmailSettingsStore
from homehub.services.subscription_store import SubscriptionStore


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Alias for get_async_session, overridable in tests."""
    async for session in get_async_session():
        yield session


DBSession = Annotated[AsyncSession, Depends(get_db)]


def get_subscription_store(db: DBSession) -> SubscriptionStore:
    """Subscription store bound to the request session."""
    return SubscriptionStore(db, timeout=settings.store_timeout_seconds)


def get_email_settings_store(db: DBSession) -> EmailSettingsStore:
    """Email settings store bound to the request session."""
    return EmailSettingsStore(db)


def get_dispatcher(db: DBSession) -> NotificationDispatcher:
    """Notification dispatcher bound to the request session."""
    return NotificationDispatcher(db)


SubscriptionStoreDep = Annotated[SubscriptionStore, Depends(get_subscription_store)]
EmailSettingsStoreDep = Annotated[EmailSettingsStore, Depends(get_email_settings_store)]
DispatcherDep = Annotated[NotificationDispatcher, Depends(get_dispatcher)]


__all__ = [
    "CurrentUser",
    "CurrentUserId",
    "DBSession",
    "DispatcherDep",
    "EmailSettingsStoreDep",
    "ServiceCaller",
    "SubscriptionStoreDep",
    "get_current_user",
    "get_current_user_id",
    "get_db",
    "get_dispatcher",
    "get_email_settings_store",
    "get_subscription_store",
]
