"""Tests for NotificationDispatcher and PushService.

pywebpush's ``webpush`` is patched so nothing leaves the process.
"""

import binascii
import json
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import requests
from pywebpush import WebPushException
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from homehub.core.errors import ConfigurationUnavailable
from homehub.models.email_settings import AutoEmailSettings
from homehub.models.push_subscription import UserPushSubscription
from homehub.models.vapid_key import VapidKey
from homehub.services.dispatcher import NotificationDispatcher
from homehub.services.push_service import PushOutcome, PushService
from homehub.services.vapid_service import VapidKeyPair
from tests.conftest import OTHER_USER_ID, TEST_USER_EMAIL, TEST_USER_ID


def _gone(status_code: int) -> WebPushException:
    return WebPushException("Push failed", response=MagicMock(status_code=status_code))


def _email_service(*returns: str | None) -> MagicMock:
    service = MagicMock()
    service.send = AsyncMock(side_effect=list(returns))
    return service


# ---------------------------------------------------------------------------
# PushService
# ---------------------------------------------------------------------------


class TestPushService:
    SUBSCRIPTION = {
        "endpoint": "https://push.example.com/send/abc",
        "keys": {"p256dh": "p", "auth": "a"},
    }

    async def test_sends_json_payload_signed_with_key_pair(
        self, vapid_key_pair: VapidKeyPair
    ) -> None:
        with patch("homehub.services.push_service.webpush") as mock_webpush:
            outcome = await PushService(vapid_key_pair).send(
                self.SUBSCRIPTION, {"title": "Hi", "body": "There"}
            )

        assert outcome is PushOutcome.SENT
        kwargs = mock_webpush.call_args.kwargs
        assert kwargs["subscription_info"] == self.SUBSCRIPTION
        assert json.loads(kwargs["data"]) == {"title": "Hi", "body": "There"}
        assert kwargs["vapid_claims"] == {"sub": "mailto:test@example.com"}
        assert kwargs["vapid_private_key"] is not None
        assert kwargs["timeout"] == 10.0

    async def test_claims_are_fresh_per_send(self, vapid_key_pair: VapidKeyPair) -> None:
        service = PushService(vapid_key_pair)
        with patch("homehub.services.push_service.webpush") as mock_webpush:
            await service.send(self.SUBSCRIPTION, {"title": "1"})
            await service.send(self.SUBSCRIPTION, {"title": "2"})

        first, second = (c.kwargs["vapid_claims"] for c in mock_webpush.call_args_list)
        assert first is not second

    @pytest.mark.parametrize("status_code", [404, 410])
    async def test_gone_endpoint_is_expired(
        self, vapid_key_pair: VapidKeyPair, status_code: int
    ) -> None:
        with patch("homehub.services.push_service.webpush", side_effect=_gone(status_code)):
            outcome = await PushService(vapid_key_pair).send(self.SUBSCRIPTION, {})
        assert outcome is PushOutcome.EXPIRED

    async def test_other_errors_are_failures(self, vapid_key_pair: VapidKeyPair) -> None:
        with patch("homehub.services.push_service.webpush", side_effect=_gone(500)):
            outcome = await PushService(vapid_key_pair).send(self.SUBSCRIPTION, {})
        assert outcome is PushOutcome.FAILED

    async def test_error_without_response_is_failure(self, vapid_key_pair: VapidKeyPair) -> None:
        with patch(
            "homehub.services.push_service.webpush",
            side_effect=WebPushException("no response"),
        ):
            outcome = await PushService(vapid_key_pair).send(self.SUBSCRIPTION, {})
        assert outcome is PushOutcome.FAILED

    async def test_unreachable_push_service_is_failure(self, vapid_key_pair: VapidKeyPair) -> None:
        with patch(
            "homehub.services.push_service.webpush",
            side_effect=requests.exceptions.ConnectionError("connection refused"),
        ):
            outcome = await PushService(vapid_key_pair).send(self.SUBSCRIPTION, {})
        assert outcome is PushOutcome.FAILED

    async def test_undecodable_keys_are_failure(self, vapid_key_pair: VapidKeyPair) -> None:
        with patch(
            "homehub.services.push_service.webpush",
            side_effect=binascii.Error("Incorrect padding"),
        ):
            outcome = await PushService(vapid_key_pair).send(self.SUBSCRIPTION, {})
        assert outcome is PushOutcome.FAILED


# ---------------------------------------------------------------------------
# Push dispatch
# ---------------------------------------------------------------------------


class TestSendPush:
    async def test_requires_vapid_configuration(self, db_session: AsyncSession) -> None:
        dispatcher = NotificationDispatcher(db_session, email_service=_email_service())
        with pytest.raises(ConfigurationUnavailable):
            await dispatcher.send_push([TEST_USER_ID], "Title", "Body")

    async def test_delivers_to_stored_subscription(
        self,
        db_session: AsyncSession,
        stored_vapid_key: VapidKey,  # noqa: ARG002
        push_subscription_factory: Callable[..., Any],
    ) -> None:
        subscription = await push_subscription_factory()

        with patch("homehub.services.push_service.webpush") as mock_webpush:
            result = await NotificationDispatcher(db_session).send_push(
                [TEST_USER_ID], "Title", "Body"
            )

        assert result.delivered == 1
        assert result.failed == 0
        kwargs = mock_webpush.call_args.kwargs
        assert kwargs["subscription_info"]["endpoint"] == subscription.endpoint
        assert json.loads(kwargs["data"]) == {
            "title": "Title",
            "body": "Body",
            "userId": TEST_USER_ID,
        }

    async def test_user_without_subscription(
        self,
        db_session: AsyncSession,
        stored_vapid_key: VapidKey,  # noqa: ARG002
    ) -> None:
        with patch("homehub.services.push_service.webpush") as mock_webpush:
            result = await NotificationDispatcher(db_session).send_push(
                [OTHER_USER_ID], "Title", "Body"
            )

        mock_webpush.assert_not_called()
        assert [(r.recipient, r.status) for r in result.results] == [
            (OTHER_USER_ID, "no_subscription")
        ]
        assert result.failed == 1

    async def test_expired_subscription_is_pruned(
        self,
        db_session: AsyncSession,
        session_factory: async_sessionmaker[AsyncSession],
        stored_vapid_key: VapidKey,  # noqa: ARG002
        push_subscription_factory: Callable[..., Any],
    ) -> None:
        await push_subscription_factory()
        await push_subscription_factory(
            user_id=OTHER_USER_ID, endpoint="https://push.example.com/send/other"
        )

        with patch("homehub.services.push_service.webpush", side_effect=[_gone(410), None]):
            result = await NotificationDispatcher(db_session).send_push(
                [TEST_USER_ID, OTHER_USER_ID], "Title", "Body"
            )

        assert [r.status for r in result.results] == ["expired", "sent"]
        async with session_factory() as session:
            remaining = (await session.execute(select(UserPushSubscription))).scalars().all()
        assert [s.user_id for s in remaining] == [OTHER_USER_ID]

    async def test_unreachable_recipient_does_not_stop_the_batch(
        self,
        db_session: AsyncSession,
        stored_vapid_key: VapidKey,  # noqa: ARG002
        push_subscription_factory: Callable[..., Any],
    ) -> None:
        await push_subscription_factory()
        await push_subscription_factory(
            user_id=OTHER_USER_ID, endpoint="https://push.example.com/send/other"
        )

        with patch(
            "homehub.services.push_service.webpush",
            side_effect=[requests.exceptions.ConnectionError("connection refused"), None],
        ) as mock_webpush:
            result = await NotificationDispatcher(db_session).send_push(
                [TEST_USER_ID, OTHER_USER_ID], "Title", "Body"
            )

        assert mock_webpush.call_count == 2
        assert [(r.recipient, r.status) for r in result.results] == [
            (TEST_USER_ID, "failed"),
            (OTHER_USER_ID, "sent"),
        ]


# ---------------------------------------------------------------------------
# Email dispatch
# ---------------------------------------------------------------------------


class TestSendEmail:
    async def test_reports_each_recipient(self, db_session: AsyncSession) -> None:
        email_service = _email_service("email-1", None)

        result = await NotificationDispatcher(db_session, email_service=email_service).send_email(
            ["a@example.com", "b@example.com"], "Subject", "<p>Hi</p>"
        )

        assert [(r.recipient, r.status, r.detail) for r in result.results] == [
            ("a@example.com", "sent", "email-1"),
            ("b@example.com", "failed", None),
        ]
        assert result.delivered == 1
        assert result.failed == 1
        email_service.send.assert_any_await(
            "a@example.com", "Subject", "<p>Hi</p>", source="client"
        )

    async def test_server_send_marks_settings_sent(
        self,
        db_session: AsyncSession,
        session_factory: async_sessionmaker[AsyncSession],
        email_settings_factory: Callable[..., Any],
    ) -> None:
        await email_settings_factory(auto_send_enabled=True)

        await NotificationDispatcher(db_session, email_service=_email_service("id")).send_email(
            [TEST_USER_EMAIL], "Daily", "<p>Summary</p>", source="server"
        )

        async with session_factory() as session:
            row = (await session.execute(select(AutoEmailSettings))).scalar_one()
        assert row.last_sent_date == datetime.now(UTC).date()

    async def test_client_send_does_not_mark_sent(
        self,
        db_session: AsyncSession,
        session_factory: async_sessionmaker[AsyncSession],
        email_settings_factory: Callable[..., Any],
    ) -> None:
        await email_settings_factory(auto_send_enabled=True)

        await NotificationDispatcher(db_session, email_service=_email_service("id")).send_email(
            [TEST_USER_EMAIL], "Manual", "<p>Report</p>"
        )

        async with session_factory() as session:
            row = (await session.execute(select(AutoEmailSettings))).scalar_one()
        assert row.last_sent_date is None

    async def test_failed_sent_date_update_keeps_delivery(
        self,
        db_session: AsyncSession,
        email_settings_factory: Callable[..., Any],
    ) -> None:
        await email_settings_factory(auto_send_enabled=True)
        email_service = _email_service("id-1", "id-2")

        with patch(
            "homehub.services.email_settings_store.EmailSettingsStore.mark_sent",
            new=AsyncMock(side_effect=OperationalError("UPDATE", {}, Exception("db down"))),
        ):
            result = await NotificationDispatcher(
                db_session, email_service=email_service
            ).send_email([TEST_USER_EMAIL, "b@example.com"], "Daily", "<p>Hi</p>", source="server")

        assert [(r.recipient, r.status) for r in result.results] == [
            (TEST_USER_EMAIL, "sent"),
            ("b@example.com", "sent"),
        ]
        assert email_service.send.await_count == 2
