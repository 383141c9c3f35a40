"""Celery tasks for deferred notification delivery and settings repair."""

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any, TypeVar

from homehub.core.database import async_session_maker, engine
from homehub.core.errors import ConfigurationUnavailable
from homehub.services.dispatcher import DispatchResult, NotificationDispatcher
from homehub.services.email_settings_store import EmailSettingsStore
from homehub.workers.celery_app import BaseTask, celery_app

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run an async coroutine in a fresh event loop, disposing DB connections after.

    asyncpg connections are bound to the loop that created them, so pooled
    connections must not outlive the per-task loop.
    """
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.run_until_complete(engine.dispose())
        loop.close()


def _summarize(result: DispatchResult) -> dict[str, Any]:
    return {
        "channel": result.channel,
        "delivered": result.delivered,
        "failed": result.failed,
        "results": [{"recipient": r.recipient, "status": r.status} for r in result.results],
    }


class DispatchTask(BaseTask):
    """Retries transient failures; missing configuration is not retried."""

    abstract = True
    dont_autoretry_for = (ConfigurationUnavailable,)


# ---------------------------------------------------------------------------
# Deferred dispatch
# ---------------------------------------------------------------------------


@celery_app.task(  # type: ignore[untyped-decorator]
    name="tasks.notifications.send_email_notification",
    base=DispatchTask,
    bind=True,
)
def send_email_notification(
    self: BaseTask,  # noqa: ARG001
    recipients: list[str],
    subject: str,
    content: str,
    source: str = "client",
) -> dict[str, Any]:
    """Send a rendered email to each recipient."""
    return _run_async(_send_email_async(recipients, subject, content, source))


async def _send_email_async(
    recipients: list[str], subject: str, content: str, source: str
) -> dict[str, Any]:
    async with async_session_maker() as db:
        result = await NotificationDispatcher(db).send_email(
            recipients, subject, content, source=source
        )
    return _summarize(result)


@celery_app.task(  # type: ignore[untyped-decorator]
    name="tasks.notifications.send_push_notification",
    base=DispatchTask,
    bind=True,
)
def send_push_notification(
    self: BaseTask,  # noqa: ARG001
    user_ids: list[str],
    title: str,
    body: str,
) -> dict[str, Any]:
    """Push a message to the stored subscriptions of each user."""
    return _run_async(_send_push_async(user_ids, title, body))


async def _send_push_async(user_ids: list[str], title: str, body: str) -> dict[str, Any]:
    async with async_session_maker() as db:
        result = await NotificationDispatcher(db).send_push(user_ids, title, body)
    return _summarize(result)


# ---------------------------------------------------------------------------
# Periodic maintenance
# ---------------------------------------------------------------------------


@celery_app.task(  # type: ignore[untyped-decorator]
    name="tasks.notifications.repair_email_settings",
    base=BaseTask,
    bind=True,
)
def repair_email_settings(self: BaseTask) -> dict[str, Any]:  # noqa: ARG001
    """Collapse duplicate email settings rows left by interrupted writes."""
    return _run_async(_repair_email_settings_async())


async def _repair_email_settings_async() -> dict[str, Any]:
    async with async_session_maker() as db:
        repaired = await EmailSettingsStore(db).repair_duplicates()
    if repaired:
        logger.info("Repaired duplicate email settings for %d addresses", repaired)
    return {"status": "ok", "repaired": repaired}
