"""
Test configuration and fixtures.
Uses SQLite in-memory for fast tests. Mocks all external services.
"""
import base64
import hashlib
import hmac
import time

import pytest
from unittest.mock import AsyncMock
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.pool import StaticPool

import hookwarden.models  # noqa: F401 - registers tables on Base.metadata
from hookwarden.config import NotificationPolicy, RetryPolicy, Settings
from hookwarden.database import Base
from hookwarden.services.providers import ProviderRegistry
from hookwarden.services.validation import ValidationOrchestrator
from hookwarden.services.webhook_log_store import WebhookLogStore
from hookwarden.utils.cooldowns import InMemoryCooldownStore

SECRETS = {
    "stripe": "whsec_test_secret",
    "github": "gh_test_secret",
    "slack": "slack_signing_secret",
    "shopify": "shpss_test_secret",
}


# Register JSONB as JSON for SQLite compatibility in tests
@compiles(JSONB, "sqlite")
def _compile_jsonb_sqlite(type_, compiler, **kw):
    return "JSON"


class Signer:
    """Produces valid provider signatures for test payloads."""

    def __init__(self, secrets: dict):
        self.secrets = secrets

    def _hex(self, provider: str, message: bytes, secret=None) -> str:
        key = (secret or self.secrets[provider]).encode()
        return hmac.new(key, message, hashlib.sha256).hexdigest()

    def stripe(self, payload: bytes, timestamp=None, secret=None) -> str:
        ts = int(time.time()) if timestamp is None else timestamp
        return f"t={ts},v1={self._hex('stripe', f'{ts}.'.encode() + payload, secret)}"

    def github(self, payload: bytes, secret=None) -> str:
        return "sha256=" + self._hex("github", payload, secret)

    def shopify(self, payload: bytes, secret=None) -> str:
        key = (secret or self.secrets["shopify"]).encode()
        return base64.b64encode(hmac.new(key, payload, hashlib.sha256).digest()).decode()

    def slack_headers(self, payload: bytes, timestamp=None, secret=None) -> tuple[str, str]:
        ts = str(int(time.time()) if timestamp is None else timestamp)
        return ts, "v0=" + self._hex("slack", f"v0:{ts}:".encode() + payload, secret)

    def slack(self, payload: bytes, timestamp=None, secret=None) -> str:
        ts, sig = self.slack_headers(payload, timestamp, secret)
        return f"{ts}:{sig}"

    def sign(self, provider: str, payload: bytes) -> str:
        return getattr(self, provider)(payload)


@pytest.fixture
def signer():
    return Signer(SECRETS)


@pytest.fixture
def settings():
    """Explicit settings - never read from the environment or .env."""
    return Settings(
        _env_file=None,
        app_env="test",
        database_url="sqlite+aiosqlite:///:memory:",
        database_auto_create=False,
        cooldown_backend="memory",
        stripe_webhook_secret=SECRETS["stripe"],
        github_webhook_secret=SECRETS["github"],
        slack_signing_secret=SECRETS["slack"],
        shopify_webhook_secret=SECRETS["shopify"],
        retry_delays=[0, 0, 0],
    )


@pytest.fixture
async def engine():
    """In-memory SQLite engine shared by every session in a test."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    """In-memory SQLite database session for tests."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(session_factory):
    return WebhookLogStore(session_factory)


@pytest.fixture
def registry():
    return ProviderRegistry(SECRETS)


@pytest.fixture
def cooldowns():
    return InMemoryCooldownStore()


@pytest.fixture
def retry_policy():
    return RetryPolicy(enabled=True, max_attempts=3, delays=(0, 0, 0))


@pytest.fixture
def notification_policy():
    return NotificationPolicy(
        enabled=True,
        channels=("mail",),
        recipients={"mail": ("ops@example.com",)},
        failure_threshold=3,
        failure_window_minutes=30,
        cooldown_minutes=30,
        dashboard_url="https://hooks.example.com/hookwarden/dashboard",
    )


@pytest.fixture
def mock_sleep():
    return AsyncMock()


@pytest.fixture
def orchestrator(registry, store, retry_policy, mock_sleep):
    return ValidationOrchestrator(registry, store, retry_policy, sleep=mock_sleep)


@pytest.fixture
def mock_redis():
    """Mock for async Redis - prevents real Redis calls in tests."""
    redis_mock = AsyncMock()
    redis_mock.set = AsyncMock(return_value=True)
    redis_mock.get = AsyncMock(return_value=None)
    redis_mock.delete = AsyncMock(return_value=1)
    redis_mock.ping = AsyncMock(return_value=True)
    redis_mock.publish = AsyncMock(return_value=1)
    return redis_mock
