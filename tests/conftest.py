"""Pytest configuration and fixtures for the HomeHub notifications test suite.

Provides:
- Test database (SQLite via aiosqlite unless TEST_DATABASE_URL is set) with
  per-test row cleanup
- Mock authentication (JWT bypass)
- Disabled rate limiting
- Model factories for push subscriptions, email settings and VAPID keys
- In-memory doubles of the platform push-registration API
"""

import os
from collections.abc import AsyncGenerator, Callable, Generator
from typing import Any
from unittest.mock import patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from homehub.core.auth import get_current_user
from homehub.core.database import get_async_session
from homehub.core.deps import get_db
from homehub.core.rate_limit import limiter
from homehub.main import app
from homehub.models.base import Base
from homehub.models.email_settings import DEFAULT_AUTO_SEND_TIME, AutoEmailSettings
from homehub.models.push_subscription import UserPushSubscription
from homehub.models.vapid_key import VapidKey
from homehub.services.key_codec import encode_bytes_to_base64
from homehub.services.vapid_service import VapidKeyPair, VapidKeyService, generate_key_pair

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
TEST_USER_ID = "test-user-id"
TEST_USER_EMAIL = "test@example.com"
OTHER_USER_ID = "other-user-id"
RESEND_TEST_API_KEY = "re_test_key"
# Decoded token of a backend caller (scheduler)
SERVICE_CALLER = {"sub": "scheduler", "role": "service_role"}

P256DH_RAW = bytes([4]) + bytes(range(1, 65))  # 65-byte uncompressed point
AUTH_RAW = bytes(range(100, 116))  # 16-byte auth secret

# ---------------------------------------------------------------------------
# Disable rate limiting globally for tests
# ---------------------------------------------------------------------------
limiter.enabled = False

# ---------------------------------------------------------------------------
# Session-scoped engine & table setup
# ---------------------------------------------------------------------------

_test_engine: Any = None
_test_session_factory: Any = None


@pytest_asyncio.fixture(scope="session", loop_scope="session")
async def _create_tables(
    tmp_path_factory: pytest.TempPathFactory,
) -> AsyncGenerator[None, None]:
    """Create all tables once per test session.

    Defaults to a throwaway SQLite file so the suite runs without a
    database server; set TEST_DATABASE_URL to run against Postgres.
    """
    global _test_engine, _test_session_factory  # noqa: PLW0603
    db_path = tmp_path_factory.mktemp("db") / "homehub_test.db"
    url = os.environ.get("TEST_DATABASE_URL", f"sqlite+aiosqlite:///{db_path}")

    _test_engine = create_async_engine(url, echo=False, future=True, poolclass=NullPool)
    _test_session_factory = async_sessionmaker(
        _test_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with _test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with _test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await _test_engine.dispose()


# ---------------------------------------------------------------------------
# Per-test database session + cleanup
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture(loop_scope="session")
async def db_session(_create_tables: None) -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session for test setup and service tests.

    Cleanup is handled by the ``_cleanup_tables`` autouse fixture.
    """
    async with _test_session_factory() as session:
        yield session


@pytest_asyncio.fixture(autouse=True)
async def _cleanup_tables() -> AsyncGenerator[None, None]:
    """Delete all rows after each test to restore a clean state."""
    yield
    if _test_engine is not None:
        async with _test_engine.begin() as conn:
            for table in reversed(Base.metadata.sorted_tables):
                await conn.execute(table.delete())


@pytest_asyncio.fixture
async def session_factory(_create_tables: None) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test database (for independent sessions)."""
    return _test_session_factory  # type: ignore[no-any-return]


# ---------------------------------------------------------------------------
# Auth mock
# ---------------------------------------------------------------------------


@pytest.fixture
def auth_user() -> dict[str, Any]:
    """Return the default authenticated test user payload (mimics decoded JWT)."""
    return {
        "sub": TEST_USER_ID,
        "email": TEST_USER_EMAIL,
    }


# ---------------------------------------------------------------------------
# Authenticated client (overrides DB and auth)
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession,  # noqa: ARG001  # Ensures _create_tables runs
    auth_user: dict[str, Any],
) -> AsyncGenerator[AsyncClient, None]:
    """Authenticated async test client with all dependencies overridden."""

    async def _override_session() -> AsyncGenerator[AsyncSession, None]:
        async with _test_session_factory() as s:
            yield s

    async def _override_user() -> dict[str, Any]:
        return auth_user

    app.dependency_overrides[get_async_session] = _override_session
    app.dependency_overrides[get_db] = _override_session
    app.dependency_overrides[get_current_user] = _override_user

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Unauthenticated client (overrides DB only, no auth bypass)
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def unauthed_client(
    db_session: AsyncSession,  # noqa: ARG001  # Ensures _create_tables runs
) -> AsyncGenerator[AsyncClient, None]:
    """Unauthenticated async test client. Auth is NOT overridden."""

    async def _override_session() -> AsyncGenerator[AsyncSession, None]:
        async with _test_session_factory() as s:
            yield s

    app.dependency_overrides[get_async_session] = _override_session
    app.dependency_overrides[get_db] = _override_session

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Lightweight client (no DB, no auth, for stateless endpoint tests)
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def plain_client() -> AsyncGenerator[AsyncClient, None]:
    """Minimal async test client with NO dependency overrides."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# ---------------------------------------------------------------------------
# Model Factories
# ---------------------------------------------------------------------------


@pytest.fixture
def push_subscription_factory(db_session: AsyncSession) -> Callable[..., Any]:
    """Factory that creates UserPushSubscription rows."""

    async def _create(
        *,
        user_id: str = TEST_USER_ID,
        endpoint: str = "https://push.example.com/send/abc123",
        p256dh: str | None = None,
        auth: str | None = None,
    ) -> UserPushSubscription:
        subscription = UserPushSubscription(
            user_id=user_id,
            endpoint=endpoint,
            p256dh=p256dh or encode_bytes_to_base64(P256DH_RAW),
            auth=auth or encode_bytes_to_base64(AUTH_RAW),
        )
        db_session.add(subscription)
        await db_session.commit()
        await db_session.refresh(subscription)
        return subscription

    return _create


@pytest.fixture
def email_settings_factory(db_session: AsyncSession) -> Callable[..., Any]:
    """Factory that creates AutoEmailSettings rows, duplicates allowed."""

    async def _create(
        *,
        email: str = TEST_USER_EMAIL,
        id: str | None = None,  # noqa: A002
        auto_send_enabled: bool = False,
        auto_send_time: str = DEFAULT_AUTO_SEND_TIME,
        last_sent_date: Any = None,
    ) -> AutoEmailSettings:
        row = AutoEmailSettings(
            email=email,
            auto_send_enabled=auto_send_enabled,
            auto_send_time=auto_send_time,
            last_sent_date=last_sent_date,
        )
        if id is not None:
            row.id = id
        db_session.add(row)
        await db_session.commit()
        await db_session.refresh(row)
        return row

    return _create


@pytest.fixture(scope="session")
def vapid_key_pair() -> VapidKeyPair:
    """A real P-256 key pair, generated once per test session."""
    return generate_key_pair()


@pytest_asyncio.fixture
async def stored_vapid_key(db_session: AsyncSession, vapid_key_pair: VapidKeyPair) -> VapidKey:
    """The session key pair stored in the vapid_keys table."""
    return await VapidKeyService(db_session).store_key_pair(vapid_key_pair)


@pytest.fixture(autouse=True)
def set_test_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    """Give every test the same provider configuration."""
    monkeypatch.setattr("homehub.core.config.settings.resend_api_key", RESEND_TEST_API_KEY)
    monkeypatch.setattr("homehub.core.config.settings.vapid_subject", "mailto:test@example.com")


@pytest.fixture
def mock_async_session_maker(_create_tables: None) -> Generator[None, None, None]:
    """Patch async_session_maker so background tasks use the test database."""
    with patch("homehub.workers.tasks.notifications.async_session_maker", _test_session_factory):
        yield


# ---------------------------------------------------------------------------
# Platform push API doubles
# ---------------------------------------------------------------------------


class FakeSubscription:
    """Platform subscription holding fixed raw keys."""

    def __init__(
        self,
        manager: "FakePushManager",
        endpoint: str,
        keys: dict[str, bytes | None],
    ) -> None:
        self.manager = manager
        self.endpoint = endpoint
        self.keys = keys
        self.active = True

    def get_key(self, name: str) -> bytes | None:
        return self.keys.get(name)

    async def unsubscribe(self) -> bool:
        self.active = False
        self.manager.unsubscribe_calls += 1
        if self.manager.current is self:
            self.manager.current = None
        return True


class FakePushManager:
    def __init__(self) -> None:
        self.current: FakeSubscription | None = None
        self.subscribe_calls: list[dict[str, Any]] = []
        self.unsubscribe_calls = 0
        self.fail_subscribe: Exception | None = None
        self.keys: dict[str, bytes | None] = {"p256dh": P256DH_RAW, "auth": AUTH_RAW}

    @property
    def active_subscriptions(self) -> int:
        return 1 if self.current is not None and self.current.active else 0

    async def get_subscription(self) -> FakeSubscription | None:
        return self.current

    async def subscribe(
        self, *, user_visible_only: bool, application_server_key: bytes
    ) -> FakeSubscription:
        self.subscribe_calls.append(
            {
                "user_visible_only": user_visible_only,
                "application_server_key": application_server_key,
            }
        )
        if self.fail_subscribe is not None:
            raise self.fail_subscribe
        if self.current is not None:
            # Real platforms reject a second subscription under a different key
            raise RuntimeError("A subscription with a different key already exists")
        self.current = FakeSubscription(
            self,
            f"https://push.example.com/send/{len(self.subscribe_calls)}",
            dict(self.keys),
        )
        return self.current


class FakeRegistration:
    def __init__(self, push_manager: FakePushManager) -> None:
        self.push_manager = push_manager


class FakePushPlatform:
    """Records how often the platform is asked to register."""

    def __init__(self) -> None:
        self.push_manager = FakePushManager()
        self.registration = FakeRegistration(self.push_manager)
        self.register_calls: list[str] = []
        self.ready_calls = 0

    async def register(self, script_url: str) -> FakeRegistration:
        self.register_calls.append(script_url)
        return self.registration

    async def ready(self) -> FakeRegistration:
        self.ready_calls += 1
        return self.registration


class RecordingNotifier:
    def __init__(self) -> None:
        self.errors: list[tuple[str, str]] = []

    def error(self, title: str, description: str) -> None:
        self.errors.append((title, description))


@pytest.fixture
def push_platform() -> FakePushPlatform:
    return FakePushPlatform()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()
